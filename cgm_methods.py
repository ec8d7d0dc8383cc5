import pandas as pd
from dataclasses import dataclass
from datetime import date

from dashboard_config import DEFAULT_CONFIG
from dashboard_logging import get_logger
from selection import Gender

logger = get_logger(__name__)


@dataclass(frozen=True)
class NormalizedReading:
    original_time: pd.Timestamp
    time: pd.Timestamp
    gl: float


@dataclass(frozen=True, eq=False)
class PatientSeries:
    """
    One patient's representative day of CGM readings.

    Attributes
    ----------
    id : str
        Zero-padded patient id, e.g. ``"004"``.
    gender : Gender
        Demographic category used by the gender filter.
    day : datetime.date
        Calendar day the readings were taken from (original, non-normalized).
    original : pandas.DataFrame
        Readings of ``day`` with columns ``["time", "gl"]``.
    normalized : pandas.DataFrame
        Same readings with columns ``["original_time", "time", "gl"]`` where
        ``time`` sits on the reference date. Never empty.
    """
    id: str
    gender: Gender
    day: date
    original: pd.DataFrame
    normalized: pd.DataFrame

    def reading(self, idx: int) -> NormalizedReading:
        row = self.normalized.iloc[idx]
        return NormalizedReading(original_time=row["original_time"],
                                 time=row["time"],
                                 gl=float(row["gl"]))


def select_representative_day(df: pd.DataFrame, day_ordinal: int = DEFAULT_CONFIG.day_ordinal) -> date | None:
    """
    Pick the calendar day a patient is represented by.

    The ``day_ordinal``-th earliest recorded day when the recording is long
    enough (skips sensor warm-up), otherwise the latest day. ``None`` when
    there are no readings at all.
    """
    if df.empty:
        return None
    days = sorted(df["time"].dt.date.unique())
    if len(days) >= day_ordinal:
        return days[day_ordinal - 1]
    return days[-1]


def normalize_to_reference_day(times: pd.Series, reference_date: date = DEFAULT_CONFIG.reference_date) -> pd.Series:
    # Keep the time-of-day, swap the calendar date
    time_of_day = times - times.dt.floor("D")
    ref = pd.Timestamp(reference_date)
    if times.dt.tz is not None:
        ref = ref.tz_localize(times.dt.tz)
    return ref + time_of_day


def normalize_series(patient_id: str,
                     df: pd.DataFrame,
                     gender: Gender = Gender.UNKNOWN,
                     config=DEFAULT_CONFIG) -> PatientSeries | None:
    """
    Reduce a patient's readings to its representative day on the reference date.

    Parameters
    ----------
    patient_id : str
        Patient identifier.
    df : pandas.DataFrame
        Chronologically ordered readings with columns ``["time", "gl"]``.
    gender : Gender, default Gender.UNKNOWN
        Demographic category carried onto the series.
    config : DashboardConfig
        Supplies ``day_ordinal`` and ``reference_date``.

    Returns
    -------
    PatientSeries or None
        ``None`` when nothing is left after day selection; the patient is then
        left out of the cohort.
    """
    day = select_representative_day(df, config.day_ordinal)
    if day is None:
        logger.info("patient %s has no readings, excluded", patient_id)
        return None

    day_df = df[df["time"].dt.date == day][["time", "gl"]].reset_index(drop=True)
    if day_df.empty:
        logger.info("patient %s has no readings on %s, excluded", patient_id, day)
        return None

    normalized = pd.DataFrame({
        "original_time": day_df["time"],
        "time": normalize_to_reference_day(day_df["time"], config.reference_date),
        "gl": day_df["gl"].astype(float),
    })
    logger.debug("patient %s: %d readings on %s", patient_id, len(normalized), day)
    return PatientSeries(id=patient_id, gender=gender, day=day,
                         original=day_df, normalized=normalized)
