"""
sources/files.py — Local snapshot loader for seed data files.

Seed files live in the data directory (censusdata_pipeline/data by default,
SEED_DATA_DIR to override). JSON files are parsed as-is; CSV files are read
with polars with every column kept as a string.

Usage:
    from censusdata_pipeline.sources.files import load_records, resolve_data_dir

    rows = load_records(resolve_data_dir(), "summary_levels.json",
                        extract_path="summary_levels")
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import polars as pl
import structlog

from censusdata_shared.config import settings
from censusdata_pipeline.errors import SourceLoadError

log = structlog.get_logger(__name__)

# censusdata_pipeline/data, shipped as package data
DEFAULT_DATA_DIR: Path = Path(__file__).resolve().parent.parent / "data"


def resolve_data_dir(data_dir: str | Path | None = None) -> Path:
    """Return *data_dir*, else settings.seed_data_dir, else the bundled data directory."""
    if data_dir is not None:
        return Path(data_dir)
    if settings.seed_data_dir:
        return Path(settings.seed_data_dir)
    return DEFAULT_DATA_DIR


def extract_path(data: Any, path: str | None, source: str) -> list[Any]:
    """
    Walk a dot-delimited key path into *data* and return the array found there.

    Args:
        data:   Parsed JSON payload.
        path:   Dot-delimited key path ("a.b.c"), or None for the payload itself.
        source: File path or URL, used in error messages.

    Returns:
        The list at the end of the path.

    Raises:
        SourceLoadError: A key is missing or the result is not a list.
    """
    current = data
    if path:
        for key in path.split("."):
            if not isinstance(current, dict) or key not in current:
                raise SourceLoadError(f'Key "{key}" not found in data from {source}')
            current = current[key]

    if not isinstance(current, list):
        raise SourceLoadError(
            f"Expected array data from {source}, got {type(current).__name__}"
        )
    return current


def load_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise SourceLoadError(f"Invalid JSON in {path}: {exc}") from exc


def load_csv(path: Path) -> list[dict[str, Any]]:
    """Read a CSV snapshot as a list of row dicts (all values as strings)."""
    df = pl.read_csv(path, infer_schema_length=0)
    return df.to_dicts()


def load_records(
    data_dir: Path,
    file: str,
    extract_path_: str | None = None,
) -> list[Any]:
    """
    Load a seed file from *data_dir* and return its records.

    Args:
        data_dir:      Directory holding the seed snapshots.
        file:          File name relative to data_dir (.json or .csv).
        extract_path_: Optional dot-delimited key path into a JSON payload.

    Returns:
        The records, possibly empty.

    Raises:
        SourceLoadError: Missing file, unsupported format, bad key path.
    """
    path = data_dir / file
    if not path.is_file():
        raise SourceLoadError(f"Seed file not found: {path}")

    suffix = path.suffix.lower()
    if suffix == ".json":
        payload: Any = load_json(path)
    elif suffix == ".csv":
        payload = load_csv(path)
    else:
        raise SourceLoadError(f"Unsupported seed file format: {path}")

    records = extract_path(payload, extract_path_, str(path))
    log.debug("seed_file_loaded", path=str(path), records=len(records))
    return records
