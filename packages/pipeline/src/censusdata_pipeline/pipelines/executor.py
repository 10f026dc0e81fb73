"""
pipelines/executor.py — Runs one seed descriptor inside one transaction.

For every descriptor the runner:
  1. Opens a transaction on the shared DuckDB connection
  2. Loads records from a snapshot file, or from the Census API unless the
     resolved URL is already in the API call ledger
  3. Commits straight away when nothing was loaded
  4. Runs before_seed, which returns the records to write
  5. Upserts them and runs after_seed with the resulting ids
  6. Commits, or rolls back and re-raises on any error

Usage:
    runner = SeedRunner(conn, api=api)
    result = await runner.seed(years_descriptor)
    result = await runner.seed_geography(state_descriptor, context)
    result.context   # context extended with the state rows
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, assert_never

import duckdb
import structlog

from censusdata_pipeline.errors import SeedConfigError, SeedDataError
from censusdata_pipeline.loaders.duckdb_loader import DuckDBLoader
from censusdata_pipeline.loaders.ledger import ApiCallLedger
from censusdata_pipeline.pipelines.context import GeographyContext
from censusdata_pipeline.pipelines.descriptors import (
    AfterSeedHook,
    BeforeSeedHook,
    GeographyDescriptor,
    GeographySeedDescriptor,
    MultiParentGeographySeedDescriptor,
    SeedDescriptor,
)
from censusdata_pipeline.sources.census_api import CensusApiClient, resolve_url
from censusdata_pipeline.sources.files import extract_path, load_records, resolve_data_dir

log = structlog.get_logger(__name__)


@dataclass
class SeedResult:
    """Outcome of one executor pass."""

    name: str
    table: str
    ids: list[int] = field(default_factory=list)
    records_written: int = 0
    skipped: bool = False
    context: GeographyContext | None = None
    parent_code: str | None = None
    duration_ms: int = 0


@dataclass(frozen=True)
class _SeedPlan:
    name: str
    table: str
    conflict_column: str
    file: str | None
    url: str | None
    extract_path: str | None
    query_params: Mapping[str, str] | None
    before_seed: BeforeSeedHook | None
    after_seed: AfterSeedHook | None
    publishes: str | None = None
    parent_code: str | None = None
    always_fetch: bool = False


class SeedRunner:
    """Executes seed descriptors against one DuckDB connection."""

    def __init__(
        self,
        conn: duckdb.DuckDBPyConnection,
        *,
        api: CensusApiClient,
        ledger: ApiCallLedger | None = None,
        loader: DuckDBLoader | None = None,
        data_dir: str | Path | None = None,
    ) -> None:
        self._conn = conn
        self._api = api
        self._ledger = ledger or ApiCallLedger(conn)
        self._loader = loader or DuckDBLoader(conn)
        self._data_dir = resolve_data_dir(data_dir)

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def seed(
        self,
        descriptor: SeedDescriptor,
        context: GeographyContext | None = None,
    ) -> SeedResult:
        """Run a static seed descriptor."""
        url = descriptor.url(context) if callable(descriptor.url) else descriptor.url
        plan = _SeedPlan(
            name=descriptor.name,
            table=descriptor.table,
            conflict_column=descriptor.conflict_column,
            file=descriptor.file,
            url=url,
            extract_path=descriptor.extract_path,
            query_params=descriptor.query_params,
            before_seed=descriptor.before_seed,
            after_seed=descriptor.after_seed,
            always_fetch=descriptor.always_fetch,
        )
        return await self._execute(plan, context)

    async def seed_geography(
        self,
        descriptor: GeographyDescriptor,
        context: GeographyContext,
        parent_code: str | None = None,
    ) -> SeedResult:
        """
        Run one pass of a geography descriptor for *context*.year.

        Multi-parent descriptors need *parent_code*; the scheduler calls this
        once per parent.
        """
        if isinstance(descriptor, GeographySeedDescriptor):
            url = descriptor.url(context)
        elif isinstance(descriptor, MultiParentGeographySeedDescriptor):
            if parent_code is None:
                raise SeedConfigError(
                    f'Geography seed "{descriptor.name}" needs a parent code'
                )
            url = descriptor.url_for_parent(context, parent_code)
        else:
            assert_never(descriptor)

        plan = _SeedPlan(
            name=descriptor.name,
            table=descriptor.table,
            conflict_column=descriptor.conflict_column,
            file=None,
            url=url,
            extract_path=descriptor.extract_path,
            query_params=descriptor.query_params,
            before_seed=descriptor.before_seed,
            after_seed=descriptor.after_seed,
            publishes=descriptor.publishes,
            parent_code=parent_code,
        )
        return await self._execute(plan, context)

    # ------------------------------------------------------------------
    # Transaction body
    # ------------------------------------------------------------------

    async def _execute(
        self, plan: _SeedPlan, context: GeographyContext | None
    ) -> SeedResult:
        seed_log = log.bind(seed=plan.name, table=plan.table)
        if context is not None:
            seed_log = seed_log.bind(year=context.year)
        if plan.parent_code is not None:
            seed_log = seed_log.bind(parent_code=plan.parent_code)

        result = SeedResult(
            name=plan.name,
            table=plan.table,
            context=context,
            parent_code=plan.parent_code,
        )
        t0 = time.monotonic()
        seed_log.info("seed_start")

        self._conn.execute("BEGIN TRANSACTION")
        try:
            records = await self._load(plan, seed_log)

            if not records:
                self._conn.execute("COMMIT")
                result.skipped = True
                result.duration_ms = int((time.monotonic() - t0) * 1000)
                seed_log.info("seed_skipped", reason="no_records")
                return result

            if plan.before_seed is not None:
                transformed = await plan.before_seed(self._conn, records, context)
                if transformed is None:
                    raise SeedDataError(
                        f'before_seed hook for "{plan.name}" returned no records'
                    )
                records = list(transformed)

            upserted = await self._loader.upsert(plan.table, records, plan.conflict_column)

            if plan.after_seed is not None:
                await plan.after_seed(self._conn, upserted.ids, context)

            self._conn.execute("COMMIT")
        except BaseException as exc:
            # Cancellation included: the shared connection must not stay mid-transaction
            self._conn.execute("ROLLBACK")
            seed_log.error(
                "seed_failed",
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=True,
            )
            raise

        result.ids = upserted.ids
        result.records_written = len(records)
        if plan.publishes and context is not None:
            result.context = context.with_level(plan.publishes, records)
        result.duration_ms = int((time.monotonic() - t0) * 1000)
        seed_log.info(
            "seed_complete",
            records_written=result.records_written,
            ids=len(result.ids),
            duration_ms=result.duration_ms,
        )
        return result

    async def _load(self, plan: _SeedPlan, seed_log: Any) -> list[Any]:
        if plan.file is not None:
            return load_records(self._data_dir, plan.file, plan.extract_path)

        assert plan.url is not None
        url = resolve_url(plan.url, dict(plan.query_params) if plan.query_params else None)
        if not plan.always_fetch and self._ledger.has_been_called(url):
            seed_log.info("api_call_skipped", url=url)
            return []

        payload = await self._api.get_json(url)
        self._ledger.record_call(url)
        records = extract_path(payload, plan.extract_path, url)
        seed_log.info("api_records_fetched", url=url, records=len(records))
        return records
