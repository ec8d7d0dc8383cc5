from dataclasses import dataclass
from datetime import date

# ---- Dexcom export columns ----
DEXCOM_TIME_COL = "Timestamp (YYYY-MM-DDThh:mm:ss)"
DEXCOM_GL_COL = "Glucose Value (mg/dL)"

# ---- Food log ----
NUTRIENTS = ("calorie", "total_carb", "dietary_fiber", "sugar", "protein", "total_fat")
FOOD_TIME_FIELDS = ("time", "time_of_day", "time_begin")

N_PATIENTS = 16


def patient_ids(n: int = N_PATIENTS) -> list[str]:
    return [str(i + 1).zfill(3) for i in range(n)]


@dataclass(frozen=True)
class DashboardConfig:
    """
    Tunables shared by the normalizer, query engine and render sinks.

    Parameters
    ----------
    reference_date : datetime.date, default 2020-02-22
        Calendar date every normalized reading is mapped onto.
    day_ordinal : int, default 5
        Patients with at least this many recorded days show that day (1-based);
        shorter recordings show their latest day.
    value_padding : float, default 0.1
        Fractional padding applied below the minimum and above the maximum glucose.
    max_distance : float, default 50.0
        Screen-space cutoff for the proximity query.
    carb_low_color, carb_high_color : str
        Anchor colors of the carbohydrate color scale.
    full_alpha, dimmed_alpha, faded_alpha : float
        Line opacity for focused, hover-dimmed, and unselected series.
    line_width, hover_line_width : float
        Line widths for regular and hovered series.
    """
    reference_date: date = date(2020, 2, 22)
    day_ordinal: int = 5
    value_padding: float = 0.1
    max_distance: float = 50.0
    carb_low_color: str = "#fee8c8"
    carb_high_color: str = "#e34a33"
    line_color: str = "steelblue"
    full_alpha: float = 1.0
    dimmed_alpha: float = 0.3
    faded_alpha: float = 0.08
    line_width: float = 1.2
    hover_line_width: float = 2.5


DEFAULT_CONFIG = DashboardConfig()
