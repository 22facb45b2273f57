"""
U-turn filter module for pystmatch.

Map matching sometimes drags a route a short way into a side road (or past the
true position along the same road) and straight back, because a noisy fix was
snapped there. This module removes such back-and-forth excursions from a
reconstructed route.

The route is flattened into segments (consecutive node pairs, ways taken in
route order) and processed in a single pass with a bounded lookback window:

1. The window holds the most recent confirmed segments, at most
   `max_uturn_length` meters of them (but always the last one).
2. A segment whose bearing is the reverse (within UTURN_BEARING_TOLERANCE) of
   the last non-degenerate window segment opens a return run.
3. The run grows while the following segments end on window segments, i.e.
   keep retracing the outward leg. The first segment that reverses again or
   leaves the window becomes the continuation.
4. The excursion is kept (treated as a genuine change of direction) when the
   return run is longer than `max_uturn_length`, when the continuation
   retraces past the window start, or when the route ends inside the run.
5. Otherwise the outward stretch after the junction and the return run are
   excised, the window segment is cut at the junction, and the ways on both
   sides of the junction are merged when they carry the same source way id.

Degenerate segments (shorter than EPS_LENGTH) never open a return run.
"""

from pystmatch.utilities.geometry import EPS_LENGTH, bearing, distance, distance_to_segment

# Bearing tolerance in degrees for two segments to count as exact reversals
UTURN_BEARING_TOLERANCE = 0.01


class _Segment:
    __slots__ = ("start", "end", "way")

    def __init__(self, start, end, way):
        self.start = start
        self.end = end
        self.way = way

    @property
    def length(self):
        return distance(self.start.point, self.end.point)

    @property
    def bearing(self):
        return bearing(self.start.point, self.end.point)

    def contains(self, point, eps):
        return distance_to_segment(point, self.start.point, self.end.point) < eps


def is_uturn(first, second, tolerance=UTURN_BEARING_TOLERANCE):
    """True if the bearing of `second` is the reverse of the bearing of `first` within tolerance (degrees)."""
    return abs((abs(first.bearing - second.bearing) % 360) - 180) < tolerance


def _flatten(route):
    segments = []
    for way in sorted(route.ways, key=lambda w: w.order):
        for start, end in zip(way.nodes, way.nodes[1:]):
            segments.append(_Segment(start, end, way))
    return segments


def _trim_window(kept, window_start, max_length):
    window_start = min(window_start, len(kept))
    total = sum(s.length for s in kept[window_start:])
    while total > max_length and window_start < len(kept) - 1:
        total -= kept[window_start].length
        window_start += 1
    return window_start


def _last_non_degenerate(segments, eps):
    for segment in reversed(segments):
        if segment.length >= eps:
            return segment
    return None


def _on_window(point, window, eps):
    return any(s.contains(point, eps) for s in window)


def _return_run(segments, i, kept, window_start, max_length, tolerance, eps):
    """
    Follow the return run opened by segments[i].

    Returns (run, continuation index, retraced window index), or None when the
    excursion has to be kept.
    """
    window = kept[window_start:]
    run = [segments[i]]
    run_length = segments[i].length
    if not _on_window(run[0].end.point, window, eps):
        return None

    k = i + 1
    while True:
        if run_length > max_length:
            return None
        if k >= len(segments):
            return None
        following = segments[k]
        turning = following.length >= eps and is_uturn(_last_non_degenerate(run, eps), following, tolerance)
        if turning or not _on_window(following.end.point, window, eps):
            break
        run.append(following)
        run_length += following.length
        k += 1

    if run_length > max_length:
        return None

    continuation = segments[k]
    window_start_point = window[0].start.point
    if (continuation.contains(window_start_point, eps)
            and distance(continuation.start.point, window_start_point) >= eps):
        return None
    if _on_window(continuation.end.point, kept[:window_start], eps):
        return None

    junction = run[-1].end.point
    for m in range(len(kept) - 1, window_start - 1, -1):
        if kept[m].contains(junction, eps):
            return run, k, m
    return None


def _resolve(way, merged):
    while way in merged:
        way = merged[way]
    return way


def _rebuild(route, kept, merged):
    groups = []
    for segment in kept:
        way = _resolve(segment.way, merged)
        if groups and groups[-1][0] is way and groups[-1][1][-1].end is segment.start:
            groups[-1][1].append(segment)
        else:
            groups.append((way, [segment]))

    used = set()
    ways = []
    for way, group in groups:
        if id(way) in used:
            way = route.clone_way(way)
        used.add(id(way))
        way.nodes = [group[0].start] + [s.end for s in group]
        ways.append(way)

    route.ways = ways
    route.renumber()
    route.prune_nodes()


def filter_uturns(route, max_uturn_length, tolerance=UTURN_BEARING_TOLERANCE, eps=EPS_LENGTH):
    """
    Remove short back-and-forth excursions from a reconstructed route in place.

    Parameters
    ----------
    route : Route
        Route produced by PathReconstructer.
    max_uturn_length : float
        Longest excursion in meters (length of the return leg) treated as
        matching noise. Longer reversals are genuine and kept.
    tolerance : float, default=UTURN_BEARING_TOLERANCE
        Bearing tolerance in degrees for detecting a reversal.
    eps : float, default=EPS_LENGTH
        Distance in meters under which points coincide.

    Returns
    -------
    int
        Number of removed u-turns. The route is left untouched when it is 0.

    Examples
    --------
    >>> removed = filter_uturns(route, max_uturn_length=100)
    >>> print(f"Removed {removed} u-turn(s), {len(route.ways)} ways left")
    """
    if max_uturn_length < 0:
        raise ValueError("max_uturn_length must be non-negative")

    segments = _flatten(route)
    kept = []
    window_start = 0
    merged = {}
    removed = 0

    i = 0
    while i < len(segments):
        segment = segments[i]
        window = kept[window_start:]
        last = _last_non_degenerate(window, eps)
        if last is not None and segment.length >= eps and is_uturn(last, segment, tolerance):
            found = _return_run(segments, i, kept, window_start, max_uturn_length, tolerance, eps)
            if found is not None:
                run, k, m = found
                retraced = kept[m]
                junction = run[-1].end
                continuation = segments[k]

                del kept[m:]
                if distance(retraced.start.point, junction.point) >= eps:
                    kept.append(_Segment(retraced.start, junction, retraced.way))
                else:
                    continuation.start = retraced.start

                if kept:
                    previous_way = _resolve(kept[-1].way, merged)
                    continuation_way = _resolve(continuation.way, merged)
                    if previous_way is not continuation_way and previous_way.way_id == continuation_way.way_id:
                        merged[continuation_way] = previous_way

                removed += 1
                window_start = _trim_window(kept, 0, max_uturn_length)
                i = k
                continue

        kept.append(segment)
        window_start = _trim_window(kept, window_start, max_uturn_length)
        i += 1

    if removed:
        _rebuild(route, kept, merged)
    return removed
