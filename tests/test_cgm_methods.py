from __future__ import annotations

from datetime import date

import pandas as pd

from cgm_methods import normalize_series, normalize_to_reference_day, select_representative_day
from dashboard_config import DashboardConfig
from selection import Gender


def test_select_day_with_four_days_takes_latest(readings) -> None:
    df = readings(
        ["2020-03-01T08:00", "2020-03-02T08:00", "2020-03-02T09:00",
         "2020-03-03T08:00", "2020-03-04T08:00"],
        [100, 110, 120, 130, 140],
    )
    assert select_representative_day(df) == date(2020, 3, 4)


def test_select_day_with_five_or_more_days_takes_fifth(multi_day_readings) -> None:
    assert select_representative_day(multi_day_readings) == date(2020, 2, 5)


def test_select_day_ignores_readings_per_day(readings) -> None:
    # Day 1 is heavily sampled; the fifth distinct day still wins
    times = [f"2020-03-01T{h:02d}:00" for h in range(24)]
    times += ["2020-03-02T08:00", "2020-03-03T08:00", "2020-03-04T08:00",
              "2020-03-05T08:00", "2020-03-06T08:00"]
    df = readings(times, [100] * len(times))
    assert select_representative_day(df) == date(2020, 3, 5)


def test_select_day_empty_returns_none(readings) -> None:
    assert select_representative_day(readings([], [])) is None


def test_normalize_series_keeps_only_selected_day(multi_day_readings) -> None:
    s = normalize_series("004", multi_day_readings, gender=Gender.FEMALE)
    assert s is not None
    assert s.id == "004"
    assert s.gender is Gender.FEMALE
    assert s.day == date(2020, 2, 5)
    assert list(s.normalized["gl"]) == [105.0, 105.0]
    assert list(s.normalized["original_time"].dt.date) == [date(2020, 2, 5)] * 2


def test_normalize_series_maps_onto_reference_date(multi_day_readings) -> None:
    cfg = DashboardConfig(reference_date=date(2020, 2, 22))
    s = normalize_series("001", multi_day_readings, config=cfg)
    assert set(s.normalized["time"].dt.date) == {date(2020, 2, 22)}
    assert list(s.normalized["time"].dt.hour) == [8, 20]
    assert s.normalized["original_time"].iloc[1] == pd.Timestamp("2020-02-05T20:00", tz="UTC")


def test_normalize_series_empty_is_excluded(readings) -> None:
    assert normalize_series("009", readings([], [])) is None


def test_normalization_is_idempotent(readings) -> None:
    df = readings(["2020-07-04T06:15:30", "2020-07-04T23:59:59"], [90, 95])
    once = normalize_to_reference_day(df["time"], date(2020, 2, 22))
    twice = normalize_to_reference_day(once, date(2020, 2, 22))
    assert list(once) == list(twice)
    assert once.iloc[0] == pd.Timestamp("2020-02-22T06:15:30", tz="UTC")


def test_normalization_handles_naive_times() -> None:
    times = pd.Series(pd.to_datetime(["2021-01-10 13:45"]))
    out = normalize_to_reference_day(times, date(2020, 2, 22))
    assert out.iloc[0] == pd.Timestamp("2020-02-22 13:45")
