"""
seeds/reference.py — Static reference seeds read from the data directory.

Declared in dependency order: summary levels, years, topics, programs,
components, datasets. Datasets are the one remote seed here: the API's
discovery document is refetched on every run so new vintages are picked up.
"""

from __future__ import annotations

from typing import Any

import duckdb
import structlog

from censusdata_pipeline.pipelines.context import GeographyContext
from censusdata_shared.config import settings
from censusdata_pipeline.pipelines.descriptors import SeedDescriptor
from censusdata_pipeline.transforms.reference import (
    build_dataset,
    find_component_id,
    get_or_create_year,
    transform_components,
    transform_datasets,
    transform_programs,
    transform_topics,
    validate_summary_levels,
    validate_years,
)

log = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Summary levels
# ---------------------------------------------------------------------------

async def _before_summary_levels(
    conn: duckdb.DuckDBPyConnection, raw: list[Any], context: GeographyContext | None
) -> list[dict[str, Any]]:
    return validate_summary_levels(raw)


async def _after_summary_levels(
    conn: duckdb.DuckDBPyConnection, ids: list[int], context: GeographyContext | None
) -> None:
    conn.execute(
        """
        UPDATE summary_levels
        SET parent_summary_level_id = (
            SELECT parent.id FROM summary_levels parent
            WHERE parent.code = summary_levels.parent_summary_level
        )
        WHERE parent_summary_level IS NOT NULL
        """
    )

    total, with_parent, should_have_parent = conn.execute(
        """
        SELECT
            COUNT(*),
            COUNT(parent_summary_level_id),
            COUNT(*) FILTER (WHERE parent_summary_level IS NOT NULL)
        FROM summary_levels
        """
    ).fetchone()
    log.info(
        "summary_level_parents",
        total=total,
        with_parent=with_parent,
        should_have_parent=should_have_parent,
    )

    if with_parent != should_have_parent:
        orphans = conn.execute(
            """
            SELECT name, code, parent_summary_level
            FROM summary_levels
            WHERE parent_summary_level IS NOT NULL AND parent_summary_level_id IS NULL
            ORDER BY code
            """
        ).fetchall()
        log.warning(
            "summary_level_orphans",
            orphans=[
                {"name": name, "code": code, "parent_summary_level": parent}
                for name, code, parent in orphans
            ],
        )


# ---------------------------------------------------------------------------
# Years
# ---------------------------------------------------------------------------

async def _before_years(
    conn: duckdb.DuckDBPyConnection, raw: list[Any], context: GeographyContext | None
) -> list[dict[str, Any]]:
    return validate_years(raw)


# ---------------------------------------------------------------------------
# Topics
# ---------------------------------------------------------------------------

async def _before_topics(
    conn: duckdb.DuckDBPyConnection, raw: list[Any], context: GeographyContext | None
) -> list[dict[str, Any]]:
    return transform_topics(raw)


async def _after_topics(
    conn: duckdb.DuckDBPyConnection, ids: list[int], context: GeographyContext | None
) -> None:
    conn.execute(
        """
        UPDATE topics
        SET parent_topic_id = (
            SELECT parent.id FROM topics parent
            WHERE parent.topic_string = topics.parent_topic_string
        )
        WHERE parent_topic_string IS NOT NULL
        """
    )


# ---------------------------------------------------------------------------
# Programs
# ---------------------------------------------------------------------------

async def _before_programs(
    conn: duckdb.DuckDBPyConnection, raw: list[Any], context: GeographyContext | None
) -> list[dict[str, Any]]:
    return transform_programs(raw)


# ---------------------------------------------------------------------------
# Components
# ---------------------------------------------------------------------------

async def _before_components(
    conn: duckdb.DuckDBPyConnection, raw: list[Any], context: GeographyContext | None
) -> list[dict[str, Any]]:
    program_ids = dict(conn.execute("SELECT acronym, id FROM programs").fetchall())
    return transform_components(raw, program_ids)


# ---------------------------------------------------------------------------
# Datasets
# ---------------------------------------------------------------------------

async def _before_datasets(
    conn: duckdb.DuckDBPyConnection, raw: list[Any], context: GeographyContext | None
) -> list[dict[str, Any]]:
    rows: list[dict[str, Any]] = []
    for record in transform_datasets(raw):
        year_id = None
        if record["vintage"] is not None:
            year_id = get_or_create_year(conn, record["vintage"])
        else:
            log.warning("dataset_without_vintage", dataset_id=record["dataset_id"])
        component_id = find_component_id(conn, record["dataset_param"])
        rows.append(build_dataset(record, year_id, component_id))
    return rows


def _datasets_url(context: GeographyContext | None) -> str:
    return f"{settings.census_api_base_url.rstrip('/')}/"


SUMMARY_LEVELS = SeedDescriptor(
    name="summary_levels",
    table="summary_levels",
    conflict_column="code",
    file="summary_levels.json",
    extract_path="summary_levels",
    before_seed=_before_summary_levels,
    after_seed=_after_summary_levels,
)

YEARS = SeedDescriptor(
    name="years",
    table="years",
    conflict_column="year",
    file="years.json",
    extract_path="years",
    before_seed=_before_years,
)

TOPICS = SeedDescriptor(
    name="topics",
    table="topics",
    conflict_column="topic_string",
    file="topics.json",
    extract_path="topics",
    before_seed=_before_topics,
    after_seed=_after_topics,
)

PROGRAMS = SeedDescriptor(
    name="programs",
    table="programs",
    conflict_column="acronym",
    file="components-programs.csv",
    before_seed=_before_programs,
)

COMPONENTS = SeedDescriptor(
    name="components",
    table="components",
    conflict_column="component_id",
    file="components-programs.csv",
    before_seed=_before_components,
)

DATASETS = SeedDescriptor(
    name="datasets",
    table="datasets",
    conflict_column="dataset_id",
    url=_datasets_url,
    extract_path="dataset",
    always_fetch=True,
    before_seed=_before_datasets,
)

STATIC_SEEDS: tuple[SeedDescriptor, ...] = (
    SUMMARY_LEVELS, YEARS, TOPICS, PROGRAMS, COMPONENTS, DATASETS
)
