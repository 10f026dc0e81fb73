"""
pipelines/scheduler.py — Orders seeds and threads geography context.

Static seeds run first, in declared order. Without a target, geography seeds
then run for every year flagged import_geographies: each year gets a fresh
GeographyContext that flows nation -> region -> division -> state -> county
(-> county subdivision -> place -> ZCTA in full mode). Multi-parent levels
fan out into one executor pass per parent code.

The first failing seed stops the run; seeds already committed stay.

Usage:
    import asyncio
    from censusdata_pipeline.pipelines.scheduler import run_seeds

    asyncio.run(run_seeds())                    # everything
    asyncio.run(run_seeds("years.json"))        # one static seed, no geography
    asyncio.run(run_seeds(mode="full"))
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from pathlib import Path
from typing import assert_never

import duckdb
import structlog

from censusdata_shared.config import settings
from censusdata_shared.constants import SeedMode
from censusdata_shared.db import get_duckdb_connection, reset_duckdb_connection
from censusdata_pipeline.errors import ParentContextError, SeedConfigError
from censusdata_pipeline.loaders.duckdb_loader import validate_identifier
from censusdata_pipeline.pipelines.context import GeographyContext
from censusdata_pipeline.pipelines.descriptors import (
    GeographyDescriptor,
    GeographySeedDescriptor,
    MultiParentGeographySeedDescriptor,
    SeedDescriptor,
)
from censusdata_pipeline.pipelines.executor import SeedResult, SeedRunner
from censusdata_pipeline.seeds import STATIC_SEEDS, geography_seeds
from censusdata_pipeline.sources.census_api import CensusApiClient

log = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Store queries
# ---------------------------------------------------------------------------


def get_available_years(conn: duckdb.DuckDBPyConnection) -> list[tuple[int, int]]:
    """Return (year, year_id) pairs flagged for geography import, oldest first."""
    rows = conn.execute(
        "SELECT year, id FROM years WHERE import_geographies ORDER BY year"
    ).fetchall()
    return [(int(year), int(year_id)) for year, year_id in rows]


def parent_codes_from_store(
    conn: duckdb.DuckDBPyConnection,
    descriptor: MultiParentGeographySeedDescriptor,
    context: GeographyContext,
) -> list[str]:
    """Parent codes of geographies already linked to the context's year."""
    code_field = validate_identifier(descriptor.parent_code_field, "column")
    rows = conn.execute(
        f"""
        SELECT DISTINCT g.{code_field}
        FROM geographies g
        JOIN geography_years gy ON gy.geography_id = g.id
        WHERE gy.year_id = ?
          AND g.summary_level_code = ?
          AND g.{code_field} IS NOT NULL
        """,
        [context.year_id, descriptor.parent_summary_level],
    ).fetchall()
    return sorted({str(code).zfill(descriptor.parent_code_width) for (code,) in rows})


def resolve_parent_codes(
    conn: duckdb.DuckDBPyConnection,
    descriptor: MultiParentGeographySeedDescriptor,
    context: GeographyContext,
) -> list[str]:
    """
    Parent codes for a fan-out level: context first, then the store.

    The store fallback covers resumed runs where the parent seed was skipped
    through the ledger and therefore published nothing.

    Raises:
        ParentContextError: Neither source has codes for the year.
    """
    try:
        return context.parent_codes(
            descriptor.parent_level,
            descriptor.parent_code_field,
            context.year,
            descriptor.parent_code_width,
        )
    except ParentContextError:
        codes = parent_codes_from_store(conn, descriptor, context)
        if not codes:
            raise
        log.info(
            "parent_codes_from_store",
            seed=descriptor.name,
            year=context.year,
            parent_level=descriptor.parent_level,
            count=len(codes),
        )
        return codes


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------


async def run_static_seeds(
    runner: SeedRunner,
    target: str | None,
    descriptors: Sequence[SeedDescriptor],
) -> list[SeedResult]:
    """
    Run static seeds in declared order, or only those matching *target*.

    Raises:
        SeedConfigError: *target* matches no descriptor name or file.
    """
    if target is not None:
        selected = [d for d in descriptors if d.matches(target)]
        if not selected:
            raise SeedConfigError(f'Seed "{target}" not found')
    else:
        selected = list(descriptors)

    results: list[SeedResult] = []
    for descriptor in selected:
        results.append(await runner.seed(descriptor))
    return results


async def run_geography_seeds(
    runner: SeedRunner,
    conn: duckdb.DuckDBPyConnection,
    descriptors: Sequence[GeographyDescriptor],
) -> list[SeedResult]:
    """Seed every geography level for every import year."""
    years = get_available_years(conn)
    if not years:
        log.warning("no_geography_years")
        return []

    results: list[SeedResult] = []
    for year, year_id in years:
        year_log = log.bind(year=year)
        year_log.info("geography_year_start", levels=len(descriptors))
        context = GeographyContext(year=year, year_id=year_id)

        for descriptor in descriptors:
            if isinstance(descriptor, GeographySeedDescriptor):
                result = await runner.seed_geography(descriptor, context)
                results.append(result)
                context = result.context or context
            elif isinstance(descriptor, MultiParentGeographySeedDescriptor):
                codes = resolve_parent_codes(conn, descriptor, context)
                year_log.info("geography_fan_out", seed=descriptor.name, parents=len(codes))
                for code in codes:
                    result = await runner.seed_geography(descriptor, context, code)
                    results.append(result)
                    context = result.context or context
            else:
                assert_never(descriptor)

        year_log.info("geography_year_complete")
    return results


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


async def run_seeds(
    target: str | None = None,
    *,
    mode: SeedMode | None = None,
    conn: duckdb.DuckDBPyConnection | None = None,
    api: CensusApiClient | None = None,
    data_dir: str | Path | None = None,
) -> list[SeedResult]:
    """
    Run the full seeding schedule.

    Args:
        target:   Static seed name or file name; geography is skipped when set.
        mode:     "standard" or "full"; defaults to settings.seed_mode.
        conn:     DuckDB connection; the process singleton when omitted.
        api:      Census API client; built from settings when omitted.
        data_dir: Snapshot directory override.

    Returns:
        One SeedResult per executor pass, in execution order.
    """
    mode = mode or settings.seed_mode
    owns_conn = conn is None
    owns_api = api is None
    conn = conn if conn is not None else get_duckdb_connection()
    api = api if api is not None else CensusApiClient.from_settings()

    runner = SeedRunner(conn, api=api, data_dir=data_dir)
    t0 = time.monotonic()
    log.info("seeding_start", target=target, mode=mode, data_dir=str(runner.data_dir))

    try:
        results = await run_static_seeds(runner, target, STATIC_SEEDS)
        if target is None:
            results.extend(await run_geography_seeds(runner, conn, geography_seeds(mode)))
        log.info(
            "seeding_complete",
            passes=len(results),
            skipped=sum(1 for r in results if r.skipped),
            duration_ms=int((time.monotonic() - t0) * 1000),
        )
        return results
    finally:
        # Outstanding fetches finish before the store goes away
        if owns_api:
            await api.aclose()
        else:
            await api.queue.drain()
        if owns_conn:
            reset_duckdb_connection()
