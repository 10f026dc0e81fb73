"""
constants.py — shared constants for the census geography hierarchy.

Summary level codes, the geoinfo column mappings and typed literals are
defined here so configs, transforms and tests agree on them.
"""

from __future__ import annotations

from typing import Final, Literal

GeographyLevel = Literal[
    "nation",
    "region",
    "division",
    "state",
    "county",
    "county_subdivision",
    "place",
    "zip_code_tabulation_area",
]

SeedMode = Literal["standard", "full"]

# ---------------------------------------------------------------------------
# Census summary levels: level -> 3-digit code
# ---------------------------------------------------------------------------
SUMMARY_LEVEL_CODES: Final[dict[str, str]] = {
    "nation": "010",
    "region": "020",
    "division": "030",
    "state": "040",
    "county": "050",
    "county_subdivision": "060",
    "place": "160",
    "zip_code_tabulation_area": "860",
}

# Levels seeded in every run, in hierarchy order
STANDARD_LEVELS: Final[tuple[str, ...]] = (
    "nation",
    "region",
    "division",
    "state",
    "county",
)

# Extra levels seeded in "full" mode, after the standard ones
FULL_ONLY_LEVELS: Final[tuple[str, ...]] = (
    "county_subdivision",
    "place",
    "zip_code_tabulation_area",
)

# ---------------------------------------------------------------------------
# geoinfo response columns -> geographies table columns
# ---------------------------------------------------------------------------
# Variables requested explicitly with get=...
GEOINFO_VARIABLES: Final[dict[str, str]] = {
    "NAME": "name",
    "GEO_ID": "ucgid_code",
    "SUMLEVEL": "summary_level_code",
    "REGION": "region_code",
    "DIVISION": "division_code",
    "STATE": "state_code",
    "COUNTY": "county_code",
    "COUSUB": "county_subdivision_code",
    "PLACE": "place_code",
    "ZCTA": "zip_code_tabulation_area",
    "INTPTLAT": "latitude",
    "INTPTLON": "longitude",
}

# Predicate columns echoed back by the API for for=/in= clauses. Only used
# when the matching variable was not requested.
GEOINFO_PREDICATES: Final[dict[str, str]] = {
    "region": "region_code",
    "division": "division_code",
    "state": "state_code",
    "county": "county_code",
    "county subdivision": "county_subdivision_code",
    "place": "place_code",
    "zip code tabulation area": "zip_code_tabulation_area",
}

# Table columns each level's response must yield (from a variable or a predicate)
_BASE_COLUMNS: Final[tuple[str, ...]] = ("name", "summary_level_code", "ucgid_code")
_POINT_COLUMNS: Final[tuple[str, ...]] = ("latitude", "longitude")

REQUIRED_GEOGRAPHY_COLUMNS: Final[dict[str, tuple[str, ...]]] = {
    "nation": _BASE_COLUMNS,
    "region": (*_BASE_COLUMNS, "region_code"),
    "division": (*_BASE_COLUMNS, "division_code"),
    "state": (*_BASE_COLUMNS, "state_code", *_POINT_COLUMNS),
    "county": (*_BASE_COLUMNS, "state_code", "county_code", *_POINT_COLUMNS),
    "county_subdivision": (
        *_BASE_COLUMNS, "state_code", "county_code", "county_subdivision_code", *_POINT_COLUMNS,
    ),
    "place": (*_BASE_COLUMNS, "state_code", "place_code", *_POINT_COLUMNS),
    "zip_code_tabulation_area": (*_BASE_COLUMNS, "zip_code_tabulation_area", *_POINT_COLUMNS),
}
