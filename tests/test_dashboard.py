from __future__ import annotations

import asyncio

import pandas as pd
import pytest

from dashboard import CohortDashboard
from proximity import time_scale, value_scale
from selection import Gender, SetGenderEnabled, ToggleSelect


class RecordingSink:
    def __init__(self):
        self.renders = []
        self.highlights = []
        self.cleared = 0
        self.no_data = 0
        self.annotations = []
        self.annotations_cleared = 0

    def render_series(self, cohort, styles):
        self.renders.append({s.series_id: s for s in styles})

    def show_highlight(self, payload):
        self.highlights.append(payload)

    def clear_highlight(self):
        self.cleared += 1

    def show_no_data(self):
        self.no_data += 1

    def show_annotations(self, annotations):
        self.annotations.append(annotations)

    def clear_annotations(self):
        self.annotations_cleared += 1


def make_source(data: dict):
    def source(patient_id):
        if patient_id not in data:
            raise FileNotFoundError(patient_id)
        times, values = data[patient_id]
        return pd.DataFrame({"time": pd.to_datetime(times, utc=True), "gl": values})
    return source


SERIES = {
    "001": (["2020-02-01T08:00", "2020-02-01T09:00"], [100.0, 140.0]),
    "002": (["2020-03-05T08:30", "2020-03-05T12:00"], [180.0, 120.0]),
    "003": ([], []),
}

FOOD = [
    {"date": "2/1/2020", "time_of_day": "08:00", "total_carb": "30", "logged_food": "Toast"},
    {"date": "2/1/2020", "time_of_day": "12:15", "total_carb": "60", "logged_food": "Pasta"},
    {"date": "2/2/2020", "time_of_day": "08:00", "total_carb": "99", "logged_food": "Cake"},
]


def make_dashboard(sink, food_source=None, series=SERIES):
    return CohortDashboard(
        series_source=make_source(series),
        demographics_source=lambda: {"001": Gender.MALE, "002": Gender.FEMALE},
        food_source=food_source,
        render_sink=sink,
        annotation_sink=sink,
    )


def test_load_builds_cohort_and_isolates_failures() -> None:
    sink = RecordingSink()
    dash = make_dashboard(sink)
    cohort = asyncio.run(dash.load(["001", "002", "003", "404"]))

    assert cohort.ids == ["001", "002"]
    assert cohort.get("001").gender is Gender.MALE
    assert set(dash.failures) == {"404"}
    assert list(sink.renders[-1]) == ["001", "002"]


def test_load_with_no_data_reports_empty_cohort() -> None:
    sink = RecordingSink()
    dash = make_dashboard(sink, series={"003": ([], [])})
    assert asyncio.run(dash.load(["003"])) is None
    assert dash.cohort is None
    assert sink.no_data == 1


def test_dispatch_rerenders_with_new_styles() -> None:
    sink = RecordingSink()
    dash = make_dashboard(sink)
    asyncio.run(dash.load(["001", "002"]))

    dash.dispatch(SetGenderEnabled(Gender.FEMALE, False))
    assert not sink.renders[-1]["002"].interactive
    assert dash.state.version == 1


def test_pointer_move_highlights_and_clears() -> None:
    sink = RecordingSink()
    dash = make_dashboard(sink)
    cohort = asyncio.run(dash.load(["001", "002"]))
    x_of = time_scale(cohort.time_domain, (0.0, 400.0))
    y_of = value_scale(cohort.value_domain, (300.0, 0.0))

    t = pd.Timestamp("2020-02-22T08:00", tz="UTC")
    hit = dash.pointer_move(t, (x_of(t), y_of(100.0)), x_of, y_of)
    assert hit.series_id == "001"
    assert dash.state.hovered_id == "001"
    assert sink.highlights[-1]["time"] == "08:00"
    assert sink.renders[-1]["001"].alpha == 1.0

    far = dash.pointer_move(t, (x_of(t), y_of(100.0) + 500), x_of, y_of)
    assert far is None
    assert dash.state.hovered_id is None
    assert sink.cleared >= 1


def test_sole_selection_loads_annotations() -> None:
    sink = RecordingSink()
    dash = make_dashboard(sink, food_source=lambda pid: pd.DataFrame(FOOD))

    async def scenario():
        await dash.load(["001", "002"])
        dash.dispatch(ToggleSelect("001"))
        await dash._food_task

    asyncio.run(scenario())
    result = sink.annotations[-1]
    assert dash.annotation_patient == "001"
    assert [b.time_label for b in result.buckets] == ["08:00", "12:15"]
    assert result.carb_scale is not None


def test_stale_food_log_is_discarded() -> None:
    sink = RecordingSink()

    async def scenario():
        gate = asyncio.Event()

        async def slow_food(pid):
            await gate.wait()
            return FOOD

        dash = make_dashboard(sink, food_source=slow_food)
        await dash.load(["001", "002"])
        dash.dispatch(ToggleSelect("001"))
        task = dash._food_task
        dash.dispatch(ToggleSelect("002"))  # two selected, 001 no longer sole
        gate.set()
        return dash, await task

    dash, result = asyncio.run(scenario())
    assert result is None
    assert sink.annotations == []
    assert dash.annotations is None
    assert sink.annotations_cleared >= 1


def test_food_log_failure_is_treated_as_absent() -> None:
    sink = RecordingSink()

    def broken(pid):
        raise OSError("disk gone")

    dash = make_dashboard(sink, food_source=broken)

    async def scenario():
        await dash.load(["001"])
        dash.dispatch(ToggleSelect("001"))
        return await dash._food_task

    assert asyncio.run(scenario()) is None
    assert sink.annotations == []
    assert dash.annotations is None


def test_annotations_not_scheduled_without_running_loop() -> None:
    sink = RecordingSink()
    dash = make_dashboard(sink, food_source=lambda pid: FOOD)
    asyncio.run(dash.load(["001"]))
    dash.dispatch(ToggleSelect("001"))
    assert dash._food_task is None

    result = asyncio.run(dash.load_annotations("001"))
    assert len(result.buckets) == 2


@pytest.mark.parametrize("patient_id", ["002", "999"])
def test_load_annotations_for_other_patients(patient_id) -> None:
    sink = RecordingSink()
    dash = make_dashboard(sink, food_source=lambda pid: FOOD)
    asyncio.run(dash.load(["001", "002"]))
    assert asyncio.run(dash.load_annotations(patient_id)) is None


def test_food_source_returning_nothing_is_treated_as_absent() -> None:
    sink = RecordingSink()
    dash = make_dashboard(sink, food_source=lambda pid: None)
    asyncio.run(dash.load(["001"]))
    dash.dispatch(ToggleSelect("001"))
    cleared = sink.annotations_cleared

    assert asyncio.run(dash.load_annotations("001")) is None
    assert sink.annotations == []
    assert dash.annotations is None
    assert sink.annotations_cleared == cleared + 1


def test_reload_clears_previous_annotations() -> None:
    sink = RecordingSink()
    dash = make_dashboard(sink, food_source=lambda pid: FOOD)
    asyncio.run(dash.load(["001"]))
    dash.dispatch(ToggleSelect("001"))
    assert asyncio.run(dash.load_annotations("001")) is not None
    assert dash.annotation_patient == "001"

    cleared = sink.annotations_cleared
    asyncio.run(dash.load(["001", "002"]))
    assert dash.annotations is None
    assert dash.annotation_patient is None
    assert sink.annotations_cleared == cleared + 1
