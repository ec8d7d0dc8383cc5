from __future__ import annotations

import matplotlib

matplotlib.use("Agg")

import pandas as pd
import pytest


def make_readings(times: list[str], values: list[float]) -> pd.DataFrame:
    return pd.DataFrame({
        "time": pd.to_datetime(times, utc=True),
        "gl": [float(v) for v in values],
    })


@pytest.fixture
def multi_day_readings() -> pd.DataFrame:
    # Six days, two readings a day, 100 + day index
    times, values = [], []
    for day in range(1, 7):
        for hour in (8, 20):
            times.append(f"2020-02-{day:02d}T{hour:02d}:00:00")
            values.append(100 + day)
    return make_readings(times, values)


@pytest.fixture
def readings():
    return make_readings
