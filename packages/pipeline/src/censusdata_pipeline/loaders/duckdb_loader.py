"""
loaders/duckdb_loader.py — Idempotent bulk upsert into DuckDB.

Every seed funnels its records through this module. The loader:
  - Validates table/column identifiers and the record shape before writing
  - Inserts with one parameterized multi-row INSERT … ON CONFLICT DO NOTHING
    per batch, so re-running a seed never duplicates rows
  - Reads back the ids of every row carrying the submitted keys, new and
    pre-existing alike, in input order
  - Splits inputs over 1000 records into batches with a short pause between

It does not open or close transactions; the seed executor owns those.

Usage:
    from censusdata_pipeline.loaders.duckdb_loader import DuckDBLoader

    loader = DuckDBLoader(get_duckdb_connection())
    result = await loader.upsert("years", [{"year": 2023}], "year")
    print(result.ids)
"""

from __future__ import annotations

import asyncio
import math
import re
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import duckdb
import structlog

from censusdata_shared.config import settings
from censusdata_pipeline.errors import SeedConfigError, SeedDataError

log = structlog.get_logger(__name__)

# Inputs up to this size go out as a single statement
BATCH_THRESHOLD = 1000

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass
class UpsertResult:
    """Summary of one upsert call."""

    table: str
    ids: list[int] = field(default_factory=list)
    records_submitted: int = 0
    batches_total: int = 0
    duration_ms: int = 0

    @property
    def records_present(self) -> int:
        return len(self.ids)


def validate_identifier(name: str, kind: str = "identifier") -> str:
    if not isinstance(name, str) or not _IDENTIFIER_RE.match(name):
        raise SeedConfigError(f"Invalid SQL {kind}: {name!r}")
    return name


def validate_records(records: Sequence[Any], conflict_column: str) -> list[str]:
    """
    Check *records* against the column set of the first record.

    Returns:
        The column list shared by the batch.

    Raises:
        SeedConfigError: The conflict column is not a column of the data.
        SeedDataError:   A record is not a mapping, lacks a column or has a
                         null conflict key.
    """
    first = records[0]
    if not isinstance(first, dict):
        raise SeedDataError(f"Record 0 is not an object: {type(first).__name__}")

    columns = list(first.keys())
    for column in columns:
        validate_identifier(column, "column")

    if conflict_column not in columns:
        raise SeedConfigError(
            f"Conflict column '{conflict_column}' not found in data. "
            f"Available columns: {', '.join(columns)}"
        )

    for index, record in enumerate(records):
        if not isinstance(record, dict):
            raise SeedDataError(
                f"Record {index} is not an object: {type(record).__name__}"
            )
        for column in columns:
            if column not in record:
                raise SeedDataError(
                    f"Record {index} is missing column '{column}'. "
                    f"Available columns: {', '.join(record.keys())}"
                )
        if record[conflict_column] is None:
            raise SeedDataError(
                f"Record {index} has no value for conflict column '{conflict_column}'"
            )
    return columns


class DuckDBLoader:
    """Batching upsert loader running on the caller's DuckDB connection."""

    def __init__(
        self,
        conn: duckdb.DuckDBPyConnection,
        *,
        batch_size: int | None = None,
        batch_pause: float | None = None,
    ) -> None:
        self._conn = conn
        self._batch_size = batch_size or settings.upsert_batch_size
        self._batch_pause = (
            batch_pause if batch_pause is not None else settings.upsert_batch_pause
        )

    # ------------------------------------------------------------------
    # Core upsert
    # ------------------------------------------------------------------

    async def upsert(
        self,
        table: str,
        records: Sequence[dict[str, Any]],
        conflict_column: str,
    ) -> UpsertResult:
        """
        Insert *records* into *table*, skipping rows whose conflict key exists.

        All records are validated before the first statement runs. Columns
        are taken from the first record; extra keys on later records are
        ignored.

        Args:
            table:           Target table name.
            records:         Homogeneous list of row dicts.
            conflict_column: Unique column identifying a row.

        Returns:
            UpsertResult whose ids are those of every row now holding one of
            the submitted keys, in input order.
        """
        result = UpsertResult(table=table, records_submitted=len(records))
        if not records:
            return result

        validate_identifier(table, "table name")
        validate_identifier(conflict_column, "column")
        columns = validate_records(records, conflict_column)

        t0 = time.monotonic()
        loader_log = log.bind(table=table, total_rows=len(records))

        if len(records) > BATCH_THRESHOLD:
            batch_size = self._batch_size
        else:
            batch_size = len(records)
        n_batches = math.ceil(len(records) / batch_size)
        result.batches_total = n_batches

        for batch_idx in range(n_batches):
            start = batch_idx * batch_size
            batch = records[start : start + batch_size]
            if n_batches > 1:
                loader_log.info("batch_processing", batch=batch_idx + 1, n_batches=n_batches)

            result.ids.extend(self._upsert_batch(table, batch, columns, conflict_column))
            loader_log.debug(
                "batch_loaded",
                batch=batch_idx + 1,
                n_batches=n_batches,
                batch_size=len(batch),
            )

            if batch_idx < n_batches - 1 and self._batch_pause > 0:
                await asyncio.sleep(self._batch_pause)

        result.duration_ms = int((time.monotonic() - t0) * 1000)
        loader_log.info(
            "upsert_complete",
            records_present=result.records_present,
            batches=n_batches,
            duration_ms=result.duration_ms,
        )
        return result

    def _upsert_batch(
        self,
        table: str,
        batch: Sequence[dict[str, Any]],
        columns: list[str],
        conflict_column: str,
    ) -> list[int]:
        # First occurrence of a key wins, like DO NOTHING across statements
        unique_rows: dict[str, dict[str, Any]] = {}
        for record in batch:
            unique_rows.setdefault(str(record[conflict_column]), record)
        rows = list(unique_rows.values())

        column_list = ", ".join(columns)
        row_placeholder = "(" + ", ".join("?" for _ in columns) + ")"
        values_sql = ", ".join(row_placeholder for _ in rows)
        params = [record[column] for record in rows for column in columns]

        self._conn.execute(
            f"INSERT INTO {table} ({column_list}) VALUES {values_sql} "
            f"ON CONFLICT ({conflict_column}) DO NOTHING",
            params,
        )

        keys = [record[conflict_column] for record in rows]
        key_placeholders = ", ".join("?" for _ in keys)
        found = self._conn.execute(
            f"SELECT {conflict_column}, id FROM {table} "
            f"WHERE {conflict_column} IN ({key_placeholders})",
            keys,
        ).fetchall()
        id_by_key = {str(key): row_id for key, row_id in found}

        return [id_by_key[key] for key in unique_rows if key in id_by_key]
