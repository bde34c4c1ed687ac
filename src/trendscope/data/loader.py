import json
import logging
from pathlib import Path
from typing import Any, Dict, List

import pandas as pd

from trendscope.exceptions import DataSourceError

logger = logging.getLogger(__name__)

# Column layout of the metrics backend timeline export
SEVERITY_COLUMNS = {
    "critical": "critical_fails",
    "high": "high_fails",
    "medium": "medium_fails",
    "low": "low_fails",
}
POINT_COLUMNS = ["period", "fail_count", "pass_count", "fail_rate"]


def load_timeline(file_path: Path, sort: bool = True) -> List[Dict[str, Any]]:
    """
    Loads a historical fail-count series from a CSV, XLSX or JSON export.

    Rows are returned as raw point records; validation happens in the normalizer so
    one bad row is dropped on its own instead of failing the whole file.
    """
    df = _read_frame(file_path)
    if df.empty:
        return []
    df.columns = df.columns.astype(str).str.strip().str.lower()
    if "period" not in df.columns:
        raise DataSourceError(f"{file_path}: missing 'period' column")

    if sort:
        df = df.sort_values("period", kind="stable")

    # NaN cells mean "no data", not zero
    df = df.astype(object).where(df.notna(), None)

    records = []
    for row in df.to_dict(orient="records"):
        point = {col: row.get(col) for col in POINT_COLUMNS if col in row}
        severity = {key: row.get(col) for key, col in SEVERITY_COLUMNS.items() if col in row}
        if isinstance(row.get("by_severity"), dict):
            point["by_severity"] = row["by_severity"]
        elif severity:
            point["by_severity"] = {key: value or 0 for key, value in severity.items()}
        records.append(point)

    logger.info(f"Loaded {len(records)} timeline rows from {file_path}")
    return records


def load_prediction_payload(file_path: Path) -> Dict[str, Any]:
    """Reads a saved prediction response (JSON) as produced by the AI provider."""
    if not file_path.exists():
        raise DataSourceError(f"Input file not found: {file_path}")
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            payload = json.load(f)
    except json.JSONDecodeError as e:
        raise DataSourceError(f"{file_path}: invalid JSON ({e.msg})")
    if not isinstance(payload, dict):
        raise DataSourceError(f"{file_path}: expected a JSON object")
    return payload


def _read_frame(file_path: Path) -> pd.DataFrame:
    if not file_path.exists():
        logger.error(f"Input file not found: {file_path}")
        raise DataSourceError(f"Input file not found: {file_path}")

    suffix = file_path.suffix.lower()
    try:
        if suffix in (".xlsx", ".xlsm"):
            return pd.read_excel(file_path, engine="openpyxl")
        if suffix == ".json":
            with open(file_path, "r", encoding="utf-8") as f:
                raw = json.load(f)
            # Accept either a bare list or the backend's {"data": [...]} envelope
            rows = raw.get("data", []) if isinstance(raw, dict) else raw
            return pd.DataFrame(rows)
        if suffix == ".csv":
            return pd.read_csv(file_path, dtype={"period": str})
    except (ValueError, OSError) as e:
        raise DataSourceError(f"Failed to read {file_path}: {e}")
    raise DataSourceError(f"Unsupported timeline format: {suffix or file_path.name}")
