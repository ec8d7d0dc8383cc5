"""Error types raised by the cohort dashboard core."""

from __future__ import annotations


class DashboardError(Exception):
    """Base class for dashboard errors."""


class MissingDataError(DashboardError, ValueError):
    """A patient (or the whole cohort) has no readings left after day selection."""


class EmptyCohortError(MissingDataError):
    """Every patient was excluded; there is nothing to index."""


class MalformedAnnotationError(DashboardError, ValueError):
    """A food-log row has a date or time that cannot be interpreted."""


class LoadFailureError(DashboardError, RuntimeError):
    """A series, demographics or food-log source failed."""

    def __init__(self, message: str, patient_id: str | None = None):
        super().__init__(message)
        self.patient_id = patient_id
