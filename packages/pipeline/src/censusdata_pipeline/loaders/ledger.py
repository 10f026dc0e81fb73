"""
loaders/ledger.py — Persistent record of remote URLs already fetched.

A seed whose resolved URL is in the ledger is skipped on the next run, so an
interrupted run resumes where it stopped. Writes go through the caller's
open transaction: a seed that rolls back forgets its fetch too.

Usage:
    ledger = ApiCallLedger(get_duckdb_connection())
    if not ledger.has_been_called(url):
        payload = await api.get_json(url)
        ledger.record_call(url)
"""

from __future__ import annotations

from datetime import datetime, timezone

import duckdb
import structlog

log = structlog.get_logger(__name__)

LEDGER_TABLE = "api_call_log"

_CREATE_SQL = f"""
    CREATE TABLE IF NOT EXISTS {LEDGER_TABLE} (
        url         VARCHAR PRIMARY KEY,
        last_called TIMESTAMP NOT NULL
    )
"""


class ApiCallLedger:
    """URL -> last successful fetch time, stored next to the seeded tables."""

    def __init__(self, conn: duckdb.DuckDBPyConnection) -> None:
        self._conn = conn

    def ensure_table(self) -> None:
        # Run every time: DDL inside a rolled-back transaction is undone too
        self._conn.execute(_CREATE_SQL)

    def has_been_called(self, url: str) -> bool:
        self.ensure_table()
        row = self._conn.execute(
            f"SELECT 1 FROM {LEDGER_TABLE} WHERE url = ?", [url]
        ).fetchone()
        return row is not None

    def record_call(self, url: str) -> None:
        self.ensure_table()
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        self._conn.execute(
            f"""
            INSERT INTO {LEDGER_TABLE} (url, last_called) VALUES (?, ?)
            ON CONFLICT (url) DO UPDATE SET last_called = EXCLUDED.last_called
            """,
            [url, now],
        )
        log.debug("api_call_recorded", url=url)

    def last_called(self, url: str) -> datetime | None:
        self.ensure_table()
        row = self._conn.execute(
            f"SELECT last_called FROM {LEDGER_TABLE} WHERE url = ?", [url]
        ).fetchone()
        return row[0] if row else None

    def count(self) -> int:
        self.ensure_table()
        row = self._conn.execute(f"SELECT COUNT(*) FROM {LEDGER_TABLE}").fetchone()
        return int(row[0]) if row else 0
