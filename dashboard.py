"""
Dashboard controller: loads data, owns the selection store, and drives sinks.

All state changes happen on the asyncio event-loop thread. Loads follow a
"fire, await, replace wholesale" pattern: the cohort is built only after every
patient's series has arrived, and a food-log result is applied only if its
patient is still the sole selection when the load completes.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Callable, Mapping, Optional, Protocol, Sequence

from annotations import AnnotationSet, aggregate_food_log, to_food_entries
from cgm_methods import PatientSeries, normalize_series
from cohort import CohortIndex, build_cohort
from dashboard_config import DEFAULT_CONFIG
from dashboard_errors import EmptyCohortError, LoadFailureError
from dashboard_logging import get_logger
import proximity
from selection import (Action, DashboardStore, Gender, Hover, SelectionState,
                       series_style, sole_selection, visibility_predicate)

logger = get_logger(__name__)


class RenderSink(Protocol):
    def render_series(self, cohort: CohortIndex, styles: Sequence) -> None: ...
    def show_highlight(self, payload: dict) -> None: ...
    def clear_highlight(self) -> None: ...
    def show_no_data(self) -> None: ...


class AnnotationSink(Protocol):
    def show_annotations(self, annotations: AnnotationSet) -> None: ...
    def clear_annotations(self) -> None: ...


async def _call_source(source: Callable, *args) -> Any:
    # Sync sources (CSV readers) run off-loop; coroutine sources are awaited
    if inspect.iscoroutinefunction(source):
        return await source(*args)
    result = await asyncio.to_thread(source, *args)
    if inspect.isawaitable(result):
        result = await result
    return result


class CohortDashboard:
    """
    Wire data sources, selection state and render sinks together.

    Parameters
    ----------
    series_source : callable
        ``series_source(patient_id)`` returning a dataframe with ``["time", "gl"]``.
    demographics_source : callable or None
        ``demographics_source()`` returning ``{patient_id: Gender}``.
    food_source : callable or None
        ``food_source(patient_id)`` returning raw food-log rows.
    render_sink, annotation_sink : optional
        Receivers of render directives; either may be attached later.
    config : DashboardConfig
    """

    def __init__(self,
                 series_source: Callable,
                 demographics_source: Optional[Callable] = None,
                 food_source: Optional[Callable] = None,
                 render_sink: Optional[RenderSink] = None,
                 annotation_sink: Optional[AnnotationSink] = None,
                 config=DEFAULT_CONFIG):
        self.series_source = series_source
        self.demographics_source = demographics_source
        self.food_source = food_source
        self.render_sink = render_sink
        self.annotation_sink = annotation_sink
        self.config = config

        self.store = DashboardStore()
        self.cohort: Optional[CohortIndex] = None
        self.demographics: Mapping[str, Gender] = {}
        self.annotations: Optional[AnnotationSet] = None
        self.annotation_patient: Optional[str] = None
        self.failures: dict[str, LoadFailureError] = {}
        self._food_task: Optional[asyncio.Task] = None

        self.store.subscribe(self._on_state_change)

    @property
    def state(self) -> SelectionState:
        return self.store.state

    # --- Loading ---
    async def load(self, patient_ids: Sequence[str]) -> Optional[CohortIndex]:
        """
        Load demographics, then all series as one batch, then build the cohort.

        Returns ``None`` (and tells the render sink) when nobody has data.
        """
        self.failures = {}
        self._clear_annotations()
        self.demographics = await self._load_demographics()

        results = await asyncio.gather(*(self._load_series(pid) for pid in patient_ids))

        try:
            cohort = build_cohort(results, self.config)
        except EmptyCohortError as e:
            logger.warning("%s", e)
            self.cohort = None
            if self.render_sink is not None:
                self.render_sink.show_no_data()
            return None

        self.cohort = cohort
        self.render()
        return cohort

    async def _load_demographics(self) -> Mapping[str, Gender]:
        if self.demographics_source is None:
            return {}
        try:
            return dict(await _call_source(self.demographics_source))
        except Exception as e:
            logger.error("demographics load failed: %s", e)
            return {}

    async def _load_series(self, patient_id: str) -> Optional[PatientSeries]:
        gender = self.demographics.get(patient_id, Gender.UNKNOWN)
        try:
            df = await _call_source(self.series_source, patient_id)
            return normalize_series(patient_id, df, gender=gender, config=self.config)
        except Exception as e:
            # One patient failing never aborts the batch
            failure = LoadFailureError(f"series load failed for {patient_id}: {e}", patient_id)
            self.failures[patient_id] = failure
            logger.error("%s", failure)
            return None

    # --- State ---
    def dispatch(self, action: Action) -> SelectionState:
        return self.store.dispatch(action)

    def _on_state_change(self, prev: SelectionState, state: SelectionState) -> None:
        self.render()

        patient_id = sole_selection(state)
        if patient_id == sole_selection(prev):
            return
        if patient_id is None:
            self._clear_annotations()
        else:
            self._schedule_food_log(patient_id)

    def render(self) -> None:
        if self.cohort is None or self.render_sink is None:
            return
        styles = [series_style(self.state, s, self.config) for s in self.cohort]
        self.render_sink.render_series(self.cohort, styles)

    # --- Pointer ---
    def pointer_move(self, time, screen_point: tuple, x_of: Callable, y_of: Callable) -> Optional[proximity.ProximityHit]:
        if self.cohort is None:
            return None
        hit = proximity.query(self.cohort, time, screen_point,
                              visibility_predicate(self.state), x_of, y_of,
                              max_distance=self.config.max_distance)
        if hit is None:
            self.pointer_out()
            return None

        self.dispatch(Hover(hit.series_id))
        if self.render_sink is not None:
            self.render_sink.show_highlight(proximity.tooltip_payload(hit, self.cohort.get(hit.series_id)))
        return hit

    def pointer_out(self) -> None:
        self.dispatch(Hover(None))
        if self.render_sink is not None:
            self.render_sink.clear_highlight()

    # --- Annotations ---
    def _schedule_food_log(self, patient_id: str) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("no running loop, food log for %s not scheduled", patient_id)
            return
        self._food_task = loop.create_task(self.load_annotations(patient_id))

    def _clear_annotations(self) -> None:
        self.annotations = None
        self.annotation_patient = None
        if self.annotation_sink is not None:
            self.annotation_sink.clear_annotations()

    async def load_annotations(self, patient_id: str) -> Optional[AnnotationSet]:
        """
        Load and aggregate one patient's food log.

        The result is dropped if ``patient_id`` is no longer the sole selection
        once the load completes.
        """
        if self.food_source is None or self.cohort is None:
            return None
        series = self.cohort.get(patient_id)
        if series is None:
            logger.info("patient %s is not in the cohort, no annotations", patient_id)
            return None

        try:
            rows = await _call_source(self.food_source, patient_id)
            if sole_selection(self.state) != patient_id:
                logger.debug("stale food log for %s discarded", patient_id)
                return None
            result = aggregate_food_log(to_food_entries(rows), series.day,
                                        tz=series.normalized["time"].dt.tz, config=self.config)
        except Exception as e:
            # Load, ingestion or aggregation failure: the annotation is absent
            logger.error("%s", LoadFailureError(f"food log load failed for {patient_id}: {e}", patient_id))
            if sole_selection(self.state) == patient_id:
                self._clear_annotations()
            return None

        self.annotations = result
        self.annotation_patient = patient_id
        if self.annotation_sink is not None:
            if result.buckets:
                self.annotation_sink.show_annotations(result)
            else:
                self.annotation_sink.clear_annotations()
        return result
