"""
Meal-log aggregation for the annotation overlay.

Food rows arrive from heterogeneous logs. ``to_food_entries`` converts them
once into ``FoodEntry`` values; ``aggregate_food_log`` then keeps the entries
of the patient's represented day, groups them by the reported time string and
sums their nutrients.

Date matching is deliberately loose: ``/`` becomes ``-`` and a log date matches
when it is a substring of one of the day's textual forms (ISO ``YYYY-MM-DD``,
``MM-DD-YYYY`` or ``M-D-YYYY``) or the other way round. Dates that differ only
in day/month order can match by mistake; which format a log uses cannot be
told from the data alone.
"""

import datetime as dt
import re
import pandas as pd
import matplotlib.colors as mcolors
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional, Union

from dashboard_config import DEFAULT_CONFIG, FOOD_TIME_FIELDS, NUTRIENTS
from dashboard_errors import MalformedAnnotationError
from dashboard_logging import get_logger

logger = get_logger(__name__)

FOOD_NAME_FIELDS = ("logged_food", "food_name", "food")

_COLON_TIME = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")
_DIGIT_TIME = re.compile(r"^(\d{2})(\d{2})$")
_HOUR_ONLY = re.compile(r"^(\d{1,2})$")


@dataclass(frozen=True)
class FoodEntry:
    date: str
    time: str
    nutrients: dict = field(default_factory=dict)
    food_name: str = ""


@dataclass(frozen=True)
class AnnotationBucket:
    """Food entries sharing one reported time string, with summed nutrients."""
    time_label: str
    time_of_day: pd.Timestamp
    entries: tuple
    nutrient_totals: dict

    @property
    def carbs(self) -> float:
        return self.nutrient_totals.get("total_carb", 0.0)


@dataclass(frozen=True)
class CarbColorScale:
    """
    Linear color ramp over bucket carbohydrate totals.

    Doubles as the legend payload: domain bounds plus the two anchor colors.
    """
    vmin: float
    vmax: float
    low_color: str
    high_color: str

    def __call__(self, carbs: float) -> str:
        # The colormap clips values outside the domain to its end colors
        return mcolors.to_hex(self.colormap()(self.norm()(carbs)))

    def colormap(self) -> mcolors.Colormap:
        return mcolors.LinearSegmentedColormap.from_list("carbs", [self.low_color, self.high_color])

    def norm(self) -> mcolors.Normalize:
        return mcolors.Normalize(vmin=self.vmin, vmax=self.vmax)


@dataclass(frozen=True)
class AnnotationSet:
    buckets: tuple
    carb_scale: Optional[CarbColorScale] = None

    def color_for(self, bucket: AnnotationBucket, default: str = "orange") -> str:
        if self.carb_scale is None:
            return default
        return self.carb_scale(bucket.carbs)


# --------------------------------
# Ingestion
# --------------------------------
def _text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if pd.isna(value):
        return ""
    return str(value)


def _first_field(row: Mapping, fields: Iterable[str]) -> str:
    for name in fields:
        text = _text(row.get(name)).strip()
        if text:
            return _text(row.get(name))
    return ""


def to_food_entries(rows: Union[pd.DataFrame, Iterable[Mapping]]) -> list[FoodEntry]:
    """
    Convert raw food-log rows into ``FoodEntry`` values.

    The time is taken from the first non-empty of ``time``, ``time_of_day``,
    ``time_begin``. Nutrients that are missing or not numeric become 0.
    """
    df = rows if isinstance(rows, pd.DataFrame) else pd.DataFrame(list(rows))
    if df.empty:
        return []

    numeric = {}
    for name in NUTRIENTS:
        if name in df.columns:
            numeric[name] = pd.to_numeric(df[name], errors="coerce").fillna(0.0).astype(float).tolist()
        else:
            numeric[name] = [0.0] * len(df)

    entries = []
    for i, row in enumerate(df.to_dict("records")):
        entries.append(FoodEntry(
            date=_text(row.get("date")),
            time=_first_field(row, FOOD_TIME_FIELDS),
            nutrients={name: numeric[name][i] for name in NUTRIENTS},
            food_name=_first_field(row, FOOD_NAME_FIELDS).strip(),
        ))
    return entries


# --------------------------------
# Date / time parsing
# --------------------------------
def normalize_date(text) -> str:
    return _text(text).strip().replace("/", "-")


def _day_forms(target_day) -> list[str]:
    if isinstance(target_day, dt.datetime):
        target_day = target_day.date()
    if not isinstance(target_day, dt.date):
        text = normalize_date(target_day)
        try:
            target_day = dt.date.fromisoformat(text)
        except ValueError:
            return [text] if text else []
    d = target_day
    return [
        d.isoformat(),
        f"{d.month:02d}-{d.day:02d}-{d.year}",
        f"{d.month}-{d.day}-{d.year}",
    ]


def date_matches(log_date, target_day) -> bool:
    entry = normalize_date(log_date)
    if not entry:
        return False
    return any(entry in form or form in entry for form in _day_forms(target_day))


def parse_time_of_day(text) -> dt.time:
    """
    Parse ``HH:MM[:SS]``, ``HHMM`` or a bare hour.

    Raises
    ------
    MalformedAnnotationError
        For any other shape or an out-of-range component.
    """
    raw = _text(text).strip()
    m = _COLON_TIME.match(raw)
    if m:
        parts = (int(m.group(1)), int(m.group(2)), int(m.group(3) or 0))
    elif _DIGIT_TIME.match(raw):
        m = _DIGIT_TIME.match(raw)
        parts = (int(m.group(1)), int(m.group(2)), 0)
    elif _HOUR_ONLY.match(raw):
        parts = (int(raw), 0, 0)
    else:
        raise MalformedAnnotationError(f"unrecognized time {raw!r}")

    try:
        return dt.time(*parts)
    except ValueError as e:
        raise MalformedAnnotationError(f"time out of range {raw!r}") from e


# --------------------------------
# Aggregation
# --------------------------------
def _carb_scale(buckets: list[AnnotationBucket], config) -> Optional[CarbColorScale]:
    if len(buckets) < 2:
        return None
    carbs = [b.carbs for b in buckets]
    lo, hi = min(carbs), max(carbs)
    if lo == hi:
        return None
    return CarbColorScale(vmin=lo, vmax=hi,
                          low_color=config.carb_low_color,
                          high_color=config.carb_high_color)


def aggregate_food_log(entries: Iterable[FoodEntry],
                       target_day,
                       tz=None,
                       config=DEFAULT_CONFIG) -> AnnotationSet:
    """
    Bucket one patient's food entries for its represented day.

    Parameters
    ----------
    entries : iterable of FoodEntry
        Output of ``to_food_entries``.
    target_day : datetime.date or str
        The patient's selected calendar day (original, not the reference date).
    tz : tzinfo or str or None, default None
        Timezone of the chart's time axis; bucket times are localized to it.
    config : DashboardConfig
        Supplies the reference date and carb scale colors.

    Returns
    -------
    AnnotationSet
        Buckets in order of first appearance and a carb color scale, which is
        ``None`` with fewer than two buckets or identical carb totals.
    """
    grouped: dict[str, list[tuple[FoodEntry, dt.time]]] = {}
    skipped = 0

    for entry in entries:
        if not date_matches(entry.date, target_day):
            if not normalize_date(entry.date):
                logger.warning("food entry without a date skipped: %r", entry)
                skipped += 1
            continue
        try:
            tod = parse_time_of_day(entry.time)
        except MalformedAnnotationError as e:
            logger.warning("food entry skipped: %s", e)
            skipped += 1
            continue
        grouped.setdefault(entry.time, []).append((entry, tod))

    ref = pd.Timestamp(config.reference_date)
    if tz is not None:
        ref = ref.tz_localize(tz)

    buckets = []
    for label, items in grouped.items():
        tod = items[0][1]
        totals = {name: float(sum(e.nutrients.get(name, 0.0) for e, _ in items)) for name in NUTRIENTS}
        buckets.append(AnnotationBucket(
            time_label=label,
            time_of_day=ref + pd.Timedelta(hours=tod.hour, minutes=tod.minute, seconds=tod.second),
            entries=tuple(e for e, _ in items),
            nutrient_totals=totals,
        ))

    if skipped:
        logger.info("%d food entries skipped for %s", skipped, target_day)
    return AnnotationSet(buckets=tuple(buckets), carb_scale=_carb_scale(buckets, config))
