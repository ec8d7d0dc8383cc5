"""
Nearest-point queries across overlapping CGM series.

A query runs in two stages: per visible series, the reading closest in time to
the cursor; then, among those candidates, the one closest to the cursor in
screen space. A global nearest-point scan would favor densely sampled series
rather than what the pointer is visually over.
"""

import math
import numpy as np
import pandas as pd
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from cgm_methods import NormalizedReading, PatientSeries
from dashboard_config import DEFAULT_CONFIG

MAX_DISTANCE = DEFAULT_CONFIG.max_distance


@dataclass(frozen=True)
class ProximityHit:
    series_id: str
    reading: NormalizedReading
    screen_pos: tuple
    distance: float


def nearest_in_time(normalized: pd.DataFrame, time) -> int:
    """
    Position of the reading whose ``time`` is closest to ``time``.

    Linear scan; on equal distance the earliest reading in series order wins.
    """
    t = pd.Timestamp(time)
    tz = normalized["time"].dt.tz
    if t.tzinfo is None and tz is not None:
        t = t.tz_localize(tz)
    elif t.tzinfo is not None:
        # Compare in the series clock; naive series drop the query's zone
        t = t.tz_convert(tz)
    deltas = (normalized["time"] - t).abs()
    # argmin returns the first occurrence of the minimum
    return int(np.argmin(deltas.to_numpy()))


def query(series: Iterable[PatientSeries],
          time,
          screen_point: tuple,
          visible: Callable[[PatientSeries], bool],
          x_of: Callable,
          y_of: Callable,
          max_distance: float = MAX_DISTANCE) -> Optional[ProximityHit]:
    """
    Find the single reading highlighted for a pointer position.

    Parameters
    ----------
    series : iterable of PatientSeries
        Candidate series, usually the cohort in load order.
    time : datetime-like
        Query time on the reference date (the pointer's x inverted to time).
    screen_point : tuple of float
        Pointer position ``(x, y)`` in display units.
    visible : callable
        Visibility predicate; hidden series never produce a hit.
    x_of, y_of : callable
        Time -> x and glucose -> y mappings of the rendered chart.
    max_distance : float, default 50
        Hits farther than this from ``screen_point`` are discarded.

    Returns
    -------
    ProximityHit or None
        ``None`` when no visible series exists or the closest candidate is
        beyond ``max_distance``. On equal screen distance the series that
        comes first wins.
    """
    px, py = screen_point
    best = None

    for s in series:
        if not visible(s) or s.normalized.empty:
            continue
        idx = nearest_in_time(s.normalized, time)
        reading = s.reading(idx)
        x, y = float(x_of(reading.time)), float(y_of(reading.gl))
        dist = math.hypot(x - px, y - py)
        if best is None or dist < best.distance:
            best = ProximityHit(series_id=s.id, reading=reading, screen_pos=(x, y), distance=dist)

    if best is None or best.distance > max_distance:
        return None
    return best


def tooltip_payload(hit: ProximityHit, series: PatientSeries) -> dict:
    return {
        "series_id": hit.series_id,
        "time": hit.reading.time.strftime("%H:%M"),
        "original_time": hit.reading.original_time,
        "glucose": hit.reading.gl,
        "gender": series.gender.value,
        "screen_pos": hit.screen_pos,
    }


# --------------------------------
# Linear scales
# --------------------------------
def _as_number(t) -> float:
    if isinstance(t, (int, float, np.number)):
        return float(t)
    return float(pd.Timestamp(t).value)


def time_scale(domain: tuple, output_range: tuple) -> Callable:
    d0, d1 = _as_number(domain[0]), _as_number(domain[1])
    r0, r1 = output_range

    def scale(t):
        if d1 == d0:
            return (r0 + r1) / 2
        return r0 + (_as_number(t) - d0) / (d1 - d0) * (r1 - r0)
    return scale


def value_scale(domain: tuple, output_range: tuple) -> Callable:
    d0, d1 = domain
    r0, r1 = output_range

    def scale(v):
        if d1 == d0:
            return (r0 + r1) / 2
        return r0 + (float(v) - d0) / (d1 - d0) * (r1 - r0)
    return scale
