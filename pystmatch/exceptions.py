"""
Exceptions raised by pystmatch.

The matching pipeline treats several unusual situations as ordinary values
(an unreachable destination, a fix far from any road). The exceptions below
are reserved for inconsistent inputs and for explicit caller requests.
"""


class MapDataError(ValueError):
    """Road data cannot be turned into a trustworthy road graph (missing or malformed tags)."""


class PathConsistencyError(ValueError):
    """A point expected to lie on a road geometry could not be located on it."""


# Name used by callers that think of the failure as "path not found on geometry"
PathNotFoundOnGeometry = PathConsistencyError


class EmptyLayerError(RuntimeError):
    """A GPS fix produced no candidate points and the caller asked for a hard failure."""

    def __init__(self, fix_index):
        super().__init__(f"No road candidates found for fix {fix_index}")
        self.fix_index = fix_index


class MatchingCancelled(RuntimeError):
    """Matching was cancelled through the caller supplied cancel event."""
