"""
Work-unit runner shared by the matching stages.

Candidate generation (one unit per fix) and layer connection (one unit per
pair of adjacent layers) only read the road graph, so their units can run on a
thread pool. Results always come back in input order.
"""

import os
from concurrent.futures import ThreadPoolExecutor, as_completed

from tqdm import tqdm

from pystmatch.exceptions import MatchingCancelled


def check_cancelled(cancel_event):
    """Raise MatchingCancelled if the given threading.Event is set."""
    if cancel_event is not None and cancel_event.is_set():
        raise MatchingCancelled("Matching cancelled by caller")


def _run_unit(func, item, cancel_event):
    check_cancelled(cancel_event)
    return func(item)


def map_units(func, items, n_jobs=1, cancel_event=None, desc=None, verbose=False):
    """
    Apply func to every item, optionally on a thread pool.

    Parameters
    ----------
    func : callable
        Function of one argument.
    items : iterable
        Work units.
    n_jobs : int, default=1
        Number of worker threads. 1 runs sequentially, -1 uses all CPUs.
    cancel_event : threading.Event, optional
        Checked before every unit; when set, MatchingCancelled is raised.
    desc : str, optional
        Progress bar label.
    verbose : bool, default=False
        Show a tqdm progress bar.

    Returns
    -------
    list
        func(item) for every item, in input order.
    """
    items = list(items)
    if n_jobs is None or n_jobs == 0:
        n_jobs = 1
    elif n_jobs < 0:
        n_jobs = os.cpu_count() or 1

    results = [None] * len(items)
    progress = tqdm(total=len(items), desc=desc, disable=not verbose)
    try:
        if n_jobs == 1 or len(items) <= 1:
            for i, item in enumerate(items):
                results[i] = _run_unit(func, item, cancel_event)
                progress.update(1)
            return results

        with ThreadPoolExecutor(max_workers=n_jobs) as executor:
            futures = {executor.submit(_run_unit, func, item, cancel_event): i
                       for i, item in enumerate(items)}
            for future in as_completed(futures):
                results[futures[future]] = future.result()
                progress.update(1)
        return results
    finally:
        progress.close()
