import pandas as pd
from pathlib import Path
from typing import Literal, Optional

from dashboard_config import DEXCOM_TIME_COL, DEXCOM_GL_COL
from dashboard_logging import get_logger
from selection import Gender

logger = get_logger(__name__)


def _resolve_file(base_path: str | Path, subject_id: str | None, filename: str | None) -> Path:
    base_path = Path(base_path)
    subject_dir = base_path / str(subject_id) if subject_id else base_path
    if not filename:
        raise ValueError("filename required for source='file'.")

    filename = filename.format(subject_id=subject_id)
    file_path = next((p for p in [subject_dir / filename, base_path / filename] if p.exists()), None)
    if not file_path:
        raise FileNotFoundError(f"No file found (tried {filename})")
    return file_path


def _clean_readings(time: pd.Series, gl: pd.Series) -> pd.DataFrame:
    # Out-of-range sensor values map to the device limits
    gl = gl.replace({"Low": "39", "High": "401"})
    df = pd.DataFrame({
        "time": pd.to_datetime(time, utc=True, errors="coerce"),
        "gl": pd.to_numeric(gl, errors="coerce"),
    })
    n_raw = len(df)
    df = df.dropna(subset=["time", "gl"])
    df = df[df["gl"] > 0]
    if len(df) < n_raw:
        logger.debug("dropped %d unparseable readings", n_raw - len(df))
    return df.sort_values("time", kind="stable").reset_index(drop=True)


def load_cgm_data(source: Literal["file", "client"] = "file",
                  base_path: str | Path | None = None,
                  subject_id: str | None = None,
                  filename: str | None = "Dexcom_{subject_id}.csv",
                  client_df: Optional[pd.DataFrame] = None
                 ) -> pd.DataFrame:

    # Prepare dataframe if given in memory, columns already named time/gl
    if source == "client":
        if client_df is None:
            raise ValueError("client_df must be provided when source='client'.")
        return _clean_readings(client_df["time"], client_df["gl"])

    # Prepare dataframe from a Dexcom CSV export
    file_path = _resolve_file(base_path, subject_id, filename)
    raw = pd.read_csv(file_path)
    if DEXCOM_TIME_COL not in raw.columns or DEXCOM_GL_COL not in raw.columns:
        raise ValueError(f"{file_path} is not a Dexcom export")

    # Leading device/alert rows carry no timestamp and drop out here
    return _clean_readings(raw[DEXCOM_TIME_COL], raw[DEXCOM_GL_COL])


def load_demographics(path: str | Path,
                      id_col: str = "ID",
                      gender_col: str = "Gender") -> dict[str, Gender]:
    raw = pd.read_csv(path, dtype=str)
    ids = raw[id_col].str.strip().str.zfill(3)
    genders = raw[gender_col].map(Gender.parse)
    return dict(zip(ids, genders))


def load_food_entry_data(source: Literal["file", "client"] = "file",
                         base_path: str | Path | None = None,
                         subject_id: str | None = None,
                         filename: str | None = "Food_Log_{subject_id}.csv",
                         client_df: Optional[pd.DataFrame] = None) -> pd.DataFrame:
    if source == "client":
        if client_df is None:
            raise ValueError("client_df must be provided when source='client'.")
        return client_df.copy()

    file_path = _resolve_file(base_path, subject_id, filename)

    # Keep everything as text; annotations.to_food_entries does the coercion
    return pd.read_csv(file_path, dtype=str, keep_default_na=False)
