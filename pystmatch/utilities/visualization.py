"""
Visualization module for pystmatch.

Draws a GPS trace together with its matched candidates and reconstructed route,
either on an interactive Folium map or on a static matplotlib plot.
"""

import numpy as np
import pandas as pd
import polars as pl
import folium
from matplotlib import pyplot as plt
from branca.element import Template, MacroElement

TRACE_COLOR = "orange"
MATCHED_COLOR = "#1f77b4"
ROUTE_COLOR = "#2ca02c"


def _trace_coordinates(trace, lat_col, lon_col):
    if isinstance(trace, (pd.DataFrame, pl.DataFrame)):
        lats = trace[lat_col].to_numpy()
        lons = trace[lon_col].to_numpy()
    else:
        fixes = list(trace)
        lats = np.array([f.lat for f in fixes], dtype=float)
        lons = np.array([f.lon for f in fixes], dtype=float)
    return np.asarray(lats, dtype=float), np.asarray(lons, dtype=float)


def matching_map(trace,
                 matched: list = None,
                 route=None,
                 return_map: bool = False,
                 show_legend: bool = True,
                 legend_name: str = 'ST-matching',
                 show_in_browser: bool = True,
                 lat_col: str = 'lat',
                 lon_col: str = 'lon',
                 tiles: str = "OpenStreetMap"):
    """
    Plot a trace, its matched candidates and its reconstructed route on a Folium map.

    Parameters
    ----------
    trace : pd.DataFrame, pl.DataFrame or sequence of GPSFix
        The raw GPS trace, drawn as an orange polyline.
    matched : list of CandidatePoint, optional
        Matched candidates, drawn as blue circle markers with a popup showing
        the fix index and source way id.
    route : Route, optional
        Reconstructed route, drawn as a green polyline per way.
    return_map : bool, default=False
        If True, returns the folium.Map object instead of displaying it.
    show_legend : bool, default=True
        If True, displays a draggable legend on the map.
    legend_name : str, default='ST-matching'
        The title of the legend box.
    show_in_browser : bool, default=True
        If True, opens the map in the default web browser.
    lat_col, lon_col : str
        Column names used when the trace is a DataFrame.
    tiles : str, default="OpenStreetMap"
        The map tile style.

    Returns
    -------
    folium.Map or None
        If return_map=True, returns the folium.Map object. Otherwise, returns None.

    Examples
    --------
    >>> matched = STMatching(road_graph).match(fixes)
    >>> route = PathReconstructer(road_graph).reconstruct(matched)
    >>> matching_map(df, matched=matched, route=route)
    """
    lats, lons = _trace_coordinates(trace, lat_col, lon_col)
    if len(lats) == 0:
        raise ValueError("Cannot draw an empty trace")

    _map = folium.Map([float(np.mean(lats)), float(np.mean(lons))], zoom_start=15, tiles=tiles)

    folium.PolyLine(list(zip(lats.tolist(), lons.tolist())), color=TRACE_COLOR, weight=3).add_to(_map)
    items = [("GPS trace", TRACE_COLOR)]

    if route is not None and route.ways:
        for way in route.ways:
            folium.PolyLine([(n.lat, n.lon) for n in way.nodes], color=ROUTE_COLOR, weight=4,
                            tooltip=f"way {way.way_id} (#{way.order})").add_to(_map)
        items.append(("Reconstructed route", ROUTE_COLOR))

    if matched:
        for candidate in matched:
            folium.CircleMarker([candidate.lat, candidate.lon], radius=4, color=MATCHED_COLOR,
                                fill=True, fill_opacity=0.8,
                                popup=f"fix {candidate.fix.index}, way {candidate.way_id}").add_to(_map)
        items.append(("Matched candidates", MATCHED_COLOR))

    if show_legend:
        __add_map_legend(_map, legend_name, items)
        folium.map.LayerControl().add_to(_map)

    if return_map:
        return _map

    if show_in_browser:
        _map.show_in_browser()

    return None


def matching_plt(trace,
                 matched: list = None,
                 route=None,
                 lat_col: str = 'lat',
                 lon_col: str = 'lon',
                 ax=None,
                 show: bool = True):
    """
    Plot a trace, its matched candidates and its reconstructed route with matplotlib.

    The plot uses raw lon/lat coordinates (not projected). Pass `ax` to draw
    into an existing axes and `show=False` to keep the figure open (e.g. for
    plt.savefig()).

    Returns
    -------
    matplotlib.axes.Axes
    """
    lats, lons = _trace_coordinates(trace, lat_col, lon_col)
    if ax is None:
        _, ax = plt.subplots()

    ax.plot(lons, lats, color=TRACE_COLOR, linestyle='solid', label='GPS trace')

    if route is not None and route.ways:
        for i, way in enumerate(route.ways):
            ax.plot([n.lon for n in way.nodes], [n.lat for n in way.nodes], color=ROUTE_COLOR,
                    linewidth=2, label='Reconstructed route' if i == 0 else None)

    if matched:
        ax.scatter([c.lon for c in matched], [c.lat for c in matched], color=MATCHED_COLOR,
                   s=12, zorder=3, label='Matched candidates')

    ax.set_xlabel('Longitude')
    ax.set_ylabel('Latitude')
    ax.legend()

    if show:
        plt.show()
    return ax


def __add_map_legend(m, title, items):
    """
    Add a draggable legend box to a Folium map.

    `items` is a list of (name, color) pairs.
    """
    item_template = "<li><span style='background:{};'></span>{}</li>"
    list_items = '\n'.join([item_template.format(c, n) for (n, c) in items])

    template = """
    {{% macro html(this, kwargs) %}}
    <!doctype html>
    <html lang="en">
    <head>
      <meta charset="utf-8">
      <link rel="stylesheet" href="//code.jquery.com/ui/1.12.1/themes/base/jquery-ui.css">
      <script src="https://code.jquery.com/jquery-1.12.4.js"></script>
      <script src="https://code.jquery.com/ui/1.12.1/jquery-ui.js"></script>
      <script>
      $( function() {{ $( "#maplegend" ).draggable(); }});
      </script>
    </head>
    <body>
    <div id='maplegend' class='maplegend'
        style='position: absolute; z-index:9999; border:2px solid grey;
        background-color:rgba(255, 255, 255, 0.8); border-radius:6px;
        padding: 10px; font-size:14px; right: 20px; bottom: 20px;'>
    <div class='legend-title'> {} </div>
    <ul class='legend-labels'>
      {}
    </ul>
    </div>
    </body>
    </html>
    <style type='text/css'>
      .maplegend .legend-title {{ font-weight: bold; margin-bottom: 5px; }}
      .maplegend ul.legend-labels {{ margin: 0; padding: 0; list-style: none; }}
      .maplegend ul.legend-labels li {{ font-size: 80%; line-height: 18px; }}
      .maplegend ul.legend-labels li span {{
        display: block; float: left; height: 16px; width: 30px;
        margin-right: 5px; border: 1px solid #999;
        }}
    </style>
    {{% endmacro %}}""".format(title, list_items)

    macro = MacroElement()
    macro._template = Template(template)
    m.get_root().add_child(macro, name='map_legend')
