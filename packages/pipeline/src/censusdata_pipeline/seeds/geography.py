"""
seeds/geography.py — Geography level seeds against the Census geoinfo API.

Every level shares the same hooks: parse and validate the geoinfo rows,
fill in region/division codes, then link the written rows to the year and
resolve parent_geography_id. County subdivisions are only served one state
at a time, so that level fans out over the states in the year's context.
"""

from __future__ import annotations

from typing import Any

import duckdb
import structlog

from censusdata_shared.config import settings
from censusdata_shared.constants import FULL_ONLY_LEVELS, STANDARD_LEVELS, SeedMode
from censusdata_pipeline.errors import SeedConfigError
from censusdata_pipeline.pipelines.context import GeographyContext
from censusdata_pipeline.pipelines.descriptors import (
    AfterSeedHook,
    BeforeSeedHook,
    GeographyDescriptor,
    GeographySeedDescriptor,
    MultiParentGeographySeedDescriptor,
)
from censusdata_pipeline.transforms.geography import (
    assign_region_division,
    link_geography_years,
    load_division_region_mappings,
    parse_geoinfo,
    to_geography_rows,
    update_parent_geographies,
)

log = structlog.get_logger(__name__)

_POINT = ("INTPTLAT", "INTPTLON")


def geoinfo_url(
    year: int,
    variables: tuple[str, ...],
    for_clause: str,
    in_clause: str | None = None,
) -> str:
    """Build a geoinfo request URL under settings.census_api_base_url."""
    url = (
        f"{settings.census_api_base_url}/{year}/geoinfo"
        f"?get={','.join(variables)}&for={for_clause}"
    )
    if in_clause:
        url += f"&in={in_clause}"
    return url


# ---------------------------------------------------------------------------
# Shared hooks
# ---------------------------------------------------------------------------

def geography_before_seed(level: str) -> BeforeSeedHook:
    async def before_seed(
        conn: duckdb.DuckDBPyConnection, raw: list[Any], context: GeographyContext | None
    ) -> list[dict[str, Any]]:
        records = parse_geoinfo(raw, level)
        rows = to_geography_rows(records, level)
        return assign_region_division(
            rows, level, load_division_region_mappings(), context=context
        )

    return before_seed


def geography_after_seed(level: str) -> AfterSeedHook:
    async def after_seed(
        conn: duckdb.DuckDBPyConnection, ids: list[int], context: GeographyContext | None
    ) -> None:
        if context is None:
            raise SeedConfigError(f"Geography seed {level} needs a year context")
        link_geography_years(conn, ids, context.year_id)
        update_parent_geographies(conn, level)
        log.info("geography_seeded", level=level, year=context.year, count=len(ids))

    return after_seed


def _level(
    level: str,
    variables: tuple[str, ...],
    for_clause: str,
    publishes: str | None = None,
) -> GeographySeedDescriptor:
    return GeographySeedDescriptor(
        name=level,
        table="geographies",
        conflict_column="ucgid_code",
        url=lambda ctx: geoinfo_url(ctx.year, variables, for_clause),
        publishes=publishes,
        before_seed=geography_before_seed(level),
        after_seed=geography_after_seed(level),
    )


# ---------------------------------------------------------------------------
# Levels, in hierarchy order
# ---------------------------------------------------------------------------

NATION = _level("nation", ("NAME", "SUMLEVEL", "GEO_ID", *_POINT), "us:*")

REGION = _level(
    "region", ("NAME", "SUMLEVEL", "GEO_ID", "REGION", *_POINT), "region:*", publishes="regions"
)

DIVISION = _level(
    "division", ("NAME", "SUMLEVEL", "GEO_ID", *_POINT), "division:*", publishes="divisions"
)

STATE = _level(
    "state", ("NAME", "SUMLEVEL", "GEO_ID", "STATE", *_POINT), "state:*", publishes="states"
)

COUNTY = _level(
    "county",
    ("NAME", "SUMLEVEL", "GEO_ID", "STATE", "COUNTY", *_POINT),
    "county:*",
    publishes="counties",
)

COUNTY_SUBDIVISION = MultiParentGeographySeedDescriptor(
    name="county_subdivision",
    table="geographies",
    conflict_column="ucgid_code",
    url_for_parent=lambda ctx, state_code: geoinfo_url(
        ctx.year,
        ("NAME", "SUMLEVEL", "GEO_ID", "STATE", "COUNTY", "COUSUB", *_POINT),
        "county%20subdivision:*",
        f"state:{state_code}",
    ),
    parent_level="states",
    parent_code_field="state_code",
    parent_summary_level="040",
    parent_code_width=2,
    before_seed=geography_before_seed("county_subdivision"),
    after_seed=geography_after_seed("county_subdivision"),
)

PLACE = _level(
    "place", ("NAME", "SUMLEVEL", "GEO_ID", "STATE", "PLACE", *_POINT), "place:*"
)

ZIP_CODE_TABULATION_AREA = _level(
    "zip_code_tabulation_area",
    ("NAME", "SUMLEVEL", "GEO_ID", "ZCTA", *_POINT),
    "zip%20code%20tabulation%20area:*",
)

GEOGRAPHY_SEEDS: dict[str, GeographyDescriptor] = {
    "nation": NATION,
    "region": REGION,
    "division": DIVISION,
    "state": STATE,
    "county": COUNTY,
    "county_subdivision": COUNTY_SUBDIVISION,
    "place": PLACE,
    "zip_code_tabulation_area": ZIP_CODE_TABULATION_AREA,
}


def geography_seeds(mode: SeedMode = "standard") -> list[GeographyDescriptor]:
    """Geography descriptors for *mode*, in hierarchy order."""
    if mode not in ("standard", "full"):
        raise SeedConfigError(f"Unknown seed mode: {mode}")
    levels = STANDARD_LEVELS + (FULL_ONLY_LEVELS if mode == "full" else ())
    return [GEOGRAPHY_SEEDS[level] for level in levels]
