"""
Reconstructing module for the pystmatch library.

This module turns matched candidate sequences into explicit route geometry and
removes short back-and-forth excursions left by noisy fixes.
"""

from pystmatch.reconstructing.route import Route, RouteNode, RouteWay
from pystmatch.reconstructing.uturn import UTURN_BEARING_TOLERANCE, filter_uturns
from pystmatch.reconstructing.path_reconstruction import PathReconstructer, reconstruct_route

__all__ = [
    'Route',
    'RouteNode',
    'RouteWay',
    'UTURN_BEARING_TOLERANCE',
    'filter_uturns',
    'PathReconstructer',
    'reconstruct_route',
]
