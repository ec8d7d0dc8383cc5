import pandas as pd
from dataclasses import dataclass
from typing import Iterable, Optional

from cgm_methods import PatientSeries
from dashboard_config import DEFAULT_CONFIG
from dashboard_errors import EmptyCohortError
from dashboard_logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True, eq=False)
class CohortIndex:
    """
    Normalized per-patient series of one dataset load plus their shared scale domains.

    Built once by ``build_cohort`` and replaced wholesale on reload; consumers
    never mutate it.

    Attributes
    ----------
    series : tuple of PatientSeries
        Retained series in load order. Every entry has at least one reading.
    time_domain : tuple of pandas.Timestamp
        Earliest and latest normalized timestamp across all series.
    value_domain : tuple of float
        Padded glucose extent, ``(0.9 * min, 1.1 * max)`` by default.
    """
    series: tuple
    time_domain: tuple
    value_domain: tuple

    def __len__(self):
        return len(self.series)

    def __iter__(self):
        return iter(self.series)

    @property
    def ids(self) -> list[str]:
        return [s.id for s in self.series]

    def get(self, patient_id: str) -> Optional[PatientSeries]:
        return next((s for s in self.series if s.id == patient_id), None)


def build_cohort(series: Iterable[Optional[PatientSeries]], config=DEFAULT_CONFIG) -> CohortIndex:
    retained = tuple(s for s in series if s is not None and not s.normalized.empty)
    if not retained:
        raise EmptyCohortError("no patient has readings on its selected day")

    # Union of every retained reading; non-empty by construction
    readings = pd.concat([s.normalized[["time", "gl"]] for s in retained], ignore_index=True)
    time_domain = (readings["time"].min(), readings["time"].max())
    value_domain = (float(readings["gl"].min()) * (1 - config.value_padding),
                    float(readings["gl"].max()) * (1 + config.value_padding))

    logger.info("cohort built: %d patients, %d readings", len(retained), len(readings))
    return CohortIndex(series=retained, time_domain=time_domain, value_domain=value_domain)
