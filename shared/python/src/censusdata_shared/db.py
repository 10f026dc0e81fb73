"""
db.py — DuckDB connection singleton.

The seeder drives exactly one store connection per process; every seed
transaction and hook query runs on it.

Usage:
    from censusdata_shared.db import apply_schema, get_duckdb_connection

    duck = get_duckdb_connection()
    apply_schema(duck)
    duck.execute("SELECT id, year FROM years").fetchall()
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Optional

import duckdb
import structlog

from censusdata_shared.config import settings

logger = structlog.get_logger(__name__)

_duckdb_lock = threading.Lock()
_duckdb_conn: Optional[duckdb.DuckDBPyConnection] = None

# DDL for every table the seeds write into
SCHEMA_PATH = Path(__file__).parent / "schema.sql"


def get_duckdb_connection(path: str | None = None) -> duckdb.DuckDBPyConnection:
    """
    Return a singleton DuckDB connection to the seed database.

    The file path is read from settings.duckdb_path unless *path* is given on
    the first call. ":memory:" is passed through untouched. Creates parent
    directories if they don't exist.

    Returns:
        duckdb.DuckDBPyConnection
    """
    global _duckdb_conn

    with _duckdb_lock:
        if _duckdb_conn is None:
            db_path = path or settings.duckdb_path
            if db_path != ":memory:":
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)

            _duckdb_conn = duckdb.connect(db_path)
            logger.info("duckdb_connected", path=db_path)

        return _duckdb_conn


def reset_duckdb_connection() -> None:
    """Close and forget the DuckDB singleton (end of run, tests)."""
    global _duckdb_conn
    with _duckdb_lock:
        if _duckdb_conn is not None:
            _duckdb_conn.close()
            _duckdb_conn = None
            logger.info("duckdb_closed")


def apply_schema(conn: Optional[duckdb.DuckDBPyConnection] = None) -> None:
    """
    Create the seed tables and their id sequences if they don't exist yet.

    Existing tables and rows are left alone, so this is safe before every run.
    """
    conn = conn or get_duckdb_connection()
    conn.execute(SCHEMA_PATH.read_text(encoding="utf-8"))
    logger.info("duckdb_schema_applied", schema=SCHEMA_PATH.name)
