"""
pystmatch - ST-matching of GPS traces to road networks.

pystmatch matches a noisy, time-ordered sequence of GPS fixes to the most
plausible path through a road network (spatio-temporal map matching) and
reconstructs the route geometry for downstream travel-time analysis.

Components
----------
- **matching**: Candidate generation, candidates graph, Viterbi decoding, ST-matching
- **reconstructing**: Route reconstruction and u-turn removal
- **utilities**: Geodesic helpers, road graph, A* pathfinder, visualization

Quick Start
-----------
```python
import pystmatch as pst

# Build the road graph from tagged ways
road_ways = pst.utilities.road_ways_from_osm(nodes, ways)
road_graph = pst.utilities.RoadGraph.from_road_ways(road_ways)

# Match a trajectory
matched_df = pst.matching.st_match(df, road_graph)

# Reconstruct the route, dropping back-and-forth excursions up to 100 m
route = pst.reconstructing.reconstruct_route(df, road_graph, max_uturn_length=100)
route_df = route.to_dataframe()

# Visualize
pst.utilities.visualization.matching_map(df, route=route)
```
"""

from pystmatch._version import __version__, __version_info__
from pystmatch import exceptions, matching, reconstructing, utilities

__all__ = [
    '__version__',
    '__version_info__',
    'exceptions',
    'matching',
    'reconstructing',
    'utilities',
]
