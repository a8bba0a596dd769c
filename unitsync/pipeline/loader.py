"""Load import rows from CSV, XLSX or JSON files for the CLI."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pandas as pd

MAX_FILE_SIZE_MB = 50
MAX_ROWS = 50000


def load_rows(file_path: Path, sheet_name: str | None = None) -> list[dict[str, Any]]:
    """Read a unit table into a list of raw rows.

    Empty cells become None. JSON files may hold either a list of rows or a
    full import body with a ``data`` key.

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If the format is unsupported or the file is too large
    """
    if not file_path.exists():
        raise FileNotFoundError(f"Import file not found: {file_path}")

    file_size_mb = file_path.stat().st_size / (1024 * 1024)
    if file_size_mb > MAX_FILE_SIZE_MB:
        raise ValueError(
            f"File too large ({file_size_mb:.1f}MB). Maximum allowed: {MAX_FILE_SIZE_MB}MB"
        )

    suffix = file_path.suffix.lower()
    if suffix == ".json":
        rows = _load_json(file_path)
    elif suffix == ".csv":
        rows = _frame_to_rows(pd.read_csv(file_path, dtype=object))
    elif suffix in (".xlsx", ".xls"):
        rows = _frame_to_rows(pd.read_excel(file_path, sheet_name=sheet_name or 0, dtype=object))
    else:
        raise ValueError(f"Unsupported file format: {file_path.suffix}. Use CSV, XLSX or JSON.")

    if len(rows) > MAX_ROWS:
        raise ValueError(f"Too many rows ({len(rows):,}). Maximum allowed: {MAX_ROWS:,}")

    return rows


def _frame_to_rows(df: pd.DataFrame) -> list[dict[str, Any]]:
    df = df.dropna(how="all")
    df.columns = [str(column).strip() for column in df.columns]
    cleaned = df.astype(object).where(pd.notna(df), None)
    return cleaned.to_dict(orient="records")


def _load_json(file_path: Path) -> list[dict[str, Any]]:
    payload = json.loads(file_path.read_text(encoding="utf-8"))
    if isinstance(payload, dict):
        payload = payload.get("data")
    if not isinstance(payload, list) or not all(isinstance(row, dict) for row in payload):
        raise ValueError("JSON import file must contain a list of row objects")
    return payload
