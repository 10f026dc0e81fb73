"""
transforms/geography.py — Census geoinfo responses -> geographies rows.

geoinfo answers with an array of arrays: a header row, then one row per
geography. parse_geoinfo() maps the header onto table columns (requested
variables first, echoed for=/in= predicate columns second), checks the
level's required columns, and validates every row with GeographyRecord.

The remaining helpers finish the rows for a level and run the SQL each
geography seed needs after its upsert:

  geography_params()        — for_param / in_param API query fragments
  assign_region_division()  — region/division codes the API omits
  link_geography_years()    — geography_years rows for the seeded year
  update_parent_geographies() — parent_geography_id per level

Usage:
    records = parse_geoinfo(raw_rows, "county")
    rows = to_geography_rows(records, "county")
    rows = assign_region_division(rows, "county", mappings, context=ctx)
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import Any

import duckdb
import polars as pl
import structlog
from pydantic import ValidationError

from censusdata_shared.config import settings
from censusdata_shared.constants import (
    GEOINFO_PREDICATES,
    GEOINFO_VARIABLES,
    REQUIRED_GEOGRAPHY_COLUMNS,
    SUMMARY_LEVEL_CODES,
)
from censusdata_shared.models import DivisionRegionMappings, GeographyRecord
from censusdata_pipeline.errors import SeedDataError
from censusdata_pipeline.pipelines.context import GeographyContext
from censusdata_pipeline.sources.files import load_json, resolve_data_dir

log = structlog.get_logger(__name__)

MAPPINGS_FILE = "division_region_mappings.json"

# Column order of every row written to geographies
GEOGRAPHY_INSERT_COLUMNS: tuple[str, ...] = (
    "name",
    "ucgid_code",
    "summary_level_code",
    "region_code",
    "division_code",
    "state_code",
    "county_code",
    "county_subdivision_code",
    "place_code",
    "zip_code_tabulation_area",
    "latitude",
    "longitude",
    "for_param",
    "in_param",
)

# Levels whose rows get region/division from their state
_STATE_SCOPED_LEVELS = frozenset({"state", "county", "county_subdivision", "place"})

# parent_geography_id resolution, keyed by child level
PARENT_GEOGRAPHY_SQL: dict[str, str] = {
    "region": """
        UPDATE geographies
        SET parent_geography_id = (
            SELECT parent.id FROM geographies parent
            WHERE parent.summary_level_code = '010'
        )
        WHERE summary_level_code = '020'
    """,
    "division": """
        UPDATE geographies
        SET parent_geography_id = (
            SELECT parent.id FROM geographies parent
            WHERE parent.summary_level_code = '020'
              AND parent.region_code = geographies.region_code
        )
        WHERE summary_level_code = '030'
    """,
    "state": """
        UPDATE geographies
        SET parent_geography_id = (
            SELECT parent.id FROM geographies parent
            WHERE parent.summary_level_code = '030'
              AND parent.division_code = geographies.division_code
        )
        WHERE summary_level_code = '040'
    """,
    "county": """
        UPDATE geographies
        SET parent_geography_id = (
            SELECT parent.id FROM geographies parent
            WHERE parent.summary_level_code = '040'
              AND parent.state_code = geographies.state_code
        )
        WHERE summary_level_code = '050'
    """,
    "county_subdivision": """
        UPDATE geographies
        SET parent_geography_id = (
            SELECT parent.id FROM geographies parent
            WHERE parent.summary_level_code = '050'
              AND parent.state_code = geographies.state_code
              AND parent.county_code = geographies.county_code
        )
        WHERE summary_level_code = '060'
    """,
    "place": """
        UPDATE geographies
        SET parent_geography_id = (
            SELECT parent.id FROM geographies parent
            WHERE parent.summary_level_code = '040'
              AND parent.state_code = geographies.state_code
        )
        WHERE summary_level_code = '160'
    """,
    "zip_code_tabulation_area": """
        UPDATE geographies
        SET parent_geography_id = (
            SELECT parent.id FROM geographies parent
            WHERE parent.summary_level_code = '010'
        )
        WHERE summary_level_code = '860'
    """,
}


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------


def _header_columns(headers: list[str]) -> dict[str, str]:
    """Table column -> response header. Requested variables beat predicate echoes."""
    columns: dict[str, str] = {}
    for header in headers:
        column = GEOINFO_PREDICATES.get(header)
        if column is not None:
            columns[column] = header
    for header in headers:
        column = GEOINFO_VARIABLES.get(header)
        if column is not None:
            columns[column] = header
    return columns


def parse_geoinfo(raw: Sequence[Any], level: str) -> list[GeographyRecord]:
    """
    Validate a geoinfo response for *level* and return one record per row.

    Args:
        raw:   The response payload (header row + value rows).
        level: Geography level name, a key of SUMMARY_LEVEL_CODES.

    Raises:
        SeedDataError: Malformed payload, missing required columns, bad row
                       length, unparseable coordinates or invalid values.
    """
    if level not in SUMMARY_LEVEL_CODES:
        raise SeedDataError(f"Unknown geography level: {level}")
    if not all(isinstance(row, list) for row in raw):
        raise SeedDataError(f"{level}: Census API response must be an array of arrays")
    if len(raw) < 2:
        raise SeedDataError(
            f"{level}: Census API response must have a header row and at least one data row"
        )

    headers = [str(h) for h in raw[0]]
    data_rows = raw[1:]
    log.info("geoinfo_parse", level=level, rows=len(data_rows), headers=",".join(headers))

    columns = _header_columns(headers)
    missing = [c for c in REQUIRED_GEOGRAPHY_COLUMNS[level] if c not in columns]
    if missing:
        raise SeedDataError(f"Missing required columns for {level}: {', '.join(missing)}")

    for index, row in enumerate(data_rows):
        if len(row) != len(headers):
            raise SeedDataError(
                f"{level}: row {index + 1} has {len(row)} values but expected {len(headers)}"
            )

    df = pl.DataFrame(
        [[None if v is None else str(v) for v in row] for row in data_rows],
        schema={h: pl.String for h in headers},
        orient="row",
    ).select([pl.col(header).alias(column) for column, header in columns.items()])

    for coord in ("latitude", "longitude"):
        if coord not in df.columns:
            continue
        parsed = (
            df[coord].str.strip_chars().str.strip_chars_start("+").cast(pl.Float64, strict=False)
        )
        bad = df.filter(parsed.is_null() & df[coord].is_not_null())
        if bad.height:
            raise SeedDataError(
                f"{level}: invalid number for {coord}: \"{bad[coord][0]}\""
            )
        df = df.with_columns(parsed.alias(coord))

    expected_code = SUMMARY_LEVEL_CODES[level]
    records: list[GeographyRecord] = []
    for index, row in enumerate(df.to_dicts()):
        try:
            record = GeographyRecord.model_validate(row)
        except ValidationError as exc:
            issue = exc.errors()[0]
            field_path = ".".join(str(p) for p in issue["loc"])
            raise SeedDataError(
                f"{level} validation failed: record {index}, field \"{field_path}\": {issue['msg']}"
            ) from exc
        if record.summary_level_code != expected_code:
            raise SeedDataError(
                f"{level} validation failed: record {index} has summary level "
                f"{record.summary_level_code}, expected {expected_code}"
            )
        records.append(record)

    log.info("geoinfo_validated", level=level, count=len(records))
    return records


# ---------------------------------------------------------------------------
# Row shaping
# ---------------------------------------------------------------------------


def geography_params(level: str, row: dict[str, Any]) -> tuple[str, str | None]:
    """Return the (for_param, in_param) fragments that address *row* in the API."""
    if level == "nation":
        return "us:*", None
    if level == "region":
        return f"region:{row['region_code']}", None
    if level == "division":
        return f"division:{row['division_code']}", None
    if level == "state":
        return f"state:{row['state_code']}", None
    if level == "county":
        return f"county:{row['county_code']}", f"state:{row['state_code']}"
    if level == "county_subdivision":
        return (
            f"county%20subdivision:{row['county_subdivision_code']}",
            f"state:{row['state_code']}%20county:{row['county_code']}",
        )
    if level == "place":
        return f"place:{row['place_code']}", f"state:{row['state_code']}"
    if level == "zip_code_tabulation_area":
        return f"zip%20code%20tabulation%20area:{row['zip_code_tabulation_area']}", None
    raise SeedDataError(f"Unknown geography level: {level}")


def to_geography_rows(records: Sequence[GeographyRecord], level: str) -> list[dict[str, Any]]:
    """Dump records to homogeneous geographies rows with API params filled in."""
    rows: list[dict[str, Any]] = []
    for record in records:
        row = {column: None for column in GEOGRAPHY_INSERT_COLUMNS}
        row.update(record.to_insert_dict(list(GEOGRAPHY_INSERT_COLUMNS)))
        row["for_param"], row["in_param"] = geography_params(level, row)
        rows.append(row)
    return rows


def load_division_region_mappings(data_dir: str | Path | None = None) -> DivisionRegionMappings:
    path = resolve_data_dir(data_dir) / MAPPINGS_FILE
    if not path.is_file():
        raise SeedDataError(f"Division/region mappings not found: {path}")
    try:
        return DivisionRegionMappings.model_validate(load_json(path))
    except ValidationError as exc:
        raise SeedDataError(f"Invalid division/region mappings in {path}: {exc}") from exc


def _state_lookup(
    mappings: DivisionRegionMappings,
    context: GeographyContext | None,
) -> dict[str, tuple[str | None, str | None]]:
    lookup: dict[str, tuple[str | None, str | None]] = dict(
        mappings.state_to_region_division()
    )
    if context is not None:
        # Rows already seeded for this year win over the static snapshot
        for state in context.rows_for("states"):
            code = state.get("state_code")
            if code and (state.get("region_code") or state.get("division_code")):
                lookup[str(code)] = (state.get("region_code"), state.get("division_code"))
    return lookup


def assign_region_division(
    rows: Sequence[dict[str, Any]],
    level: str,
    mappings: DivisionRegionMappings,
    *,
    context: GeographyContext | None = None,
    strict: bool | None = None,
) -> list[dict[str, Any]]:
    """
    Return copies of *rows* with region_code / division_code filled in.

    Divisions take their region from the mapping and fail when it has none.
    State-scoped levels take both codes from their state; an unmapped state
    (Puerto Rico, island areas) only warns unless *strict* is set.

    Args:
        rows:     Rows from to_geography_rows().
        level:    Geography level name.
        mappings: Static division/region snapshot.
        context:  Current year context; its "states" rows are preferred.
        strict:   Raise on unmapped states. Defaults to
                  settings.strict_geography_relationships.
    """
    strict = settings.strict_geography_relationships if strict is None else strict

    if level == "division":
        division_to_region = mappings.division_to_region()
        assigned: list[dict[str, Any]] = []
        for row in rows:
            division_code = row.get("division_code")
            if division_code is None:
                raise SeedDataError(f"Missing division_code for record {row.get('ucgid_code')}")
            region_code = division_to_region.get(str(division_code))
            if region_code is None:
                raise SeedDataError(f"No region code found for division: {division_code}")
            assigned.append({**row, "region_code": region_code})
        return assigned

    if level not in _STATE_SCOPED_LEVELS:
        return [dict(row) for row in rows]

    lookup = _state_lookup(mappings, context)
    assigned = []
    unmapped: set[str] = set()
    for row in rows:
        state_code = row.get("state_code")
        if state_code is None:
            raise SeedDataError(f"Missing state_code for {level}: {row.get('ucgid_code')}")
        codes = lookup.get(str(state_code))
        if codes is None:
            if strict:
                raise SeedDataError(
                    f"No region/division data found for {level} in state {state_code}"
                )
            unmapped.add(str(state_code))
            assigned.append(dict(row))
            continue
        region_code, division_code = codes
        assigned.append({**row, "region_code": region_code, "division_code": division_code})

    if unmapped:
        log.warning(
            "region_division_unmapped",
            level=level,
            state_codes=",".join(sorted(unmapped)),
            hint="state may be a territory outside the census regions",
        )
    return assigned


# ---------------------------------------------------------------------------
# Post-upsert SQL
# ---------------------------------------------------------------------------


def link_geography_years(
    conn: duckdb.DuckDBPyConnection, geography_ids: Sequence[int], year_id: int
) -> None:
    if not geography_ids:
        return
    conn.executemany(
        """
        INSERT INTO geography_years (geography_id, year_id) VALUES (?, ?)
        ON CONFLICT (geography_id, year_id) DO NOTHING
        """,
        [[geography_id, year_id] for geography_id in geography_ids],
    )


def update_parent_geographies(conn: duckdb.DuckDBPyConnection, level: str) -> None:
    sql = PARENT_GEOGRAPHY_SQL.get(level)
    if sql is not None:
        conn.execute(sql)
