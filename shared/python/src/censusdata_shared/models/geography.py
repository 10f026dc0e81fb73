"""
models/geography.py — Pydantic models for the geographies table and the
static division/region mapping snapshot.
"""

from __future__ import annotations

from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

SummaryLevelCode = Annotated[str, StringConstraints(pattern=r"^\d{3}$")]
RegionCode = Annotated[str, StringConstraints(pattern=r"^\d$")]
DivisionCode = Annotated[str, StringConstraints(pattern=r"^\d$")]
StateCode = Annotated[str, StringConstraints(pattern=r"^\d{2}$")]
CountyCode = Annotated[str, StringConstraints(pattern=r"^\d{3}$")]
FiveDigitCode = Annotated[str, StringConstraints(pattern=r"^\d{5}$")]


class GeographyRecord(BaseModel):
    """One geoinfo row mapped onto geographies table columns."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1)
    ucgid_code: str = Field(min_length=1)
    summary_level_code: SummaryLevelCode
    region_code: RegionCode | None = None
    division_code: DivisionCode | None = None
    state_code: StateCode | None = None
    county_code: CountyCode | None = None
    county_subdivision_code: FiveDigitCode | None = None
    place_code: FiveDigitCode | None = None
    zip_code_tabulation_area: FiveDigitCode | None = None
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)

    def to_insert_dict(self, columns: list[str]) -> dict[str, Any]:
        """Dump only *columns*, keeping None values so batches stay homogeneous."""
        return self.model_dump(include=set(columns))


class StateMembership(BaseModel):
    state_code: StateCode
    name: str | None = None


class DivisionRegionMapping(BaseModel):
    """One division entry from division_region_mappings.json."""

    division_code: DivisionCode
    region_code: RegionCode
    name: str | None = None
    states: list[StateMembership] = Field(default_factory=list)


class DivisionRegionMappings(BaseModel):
    divisions: list[DivisionRegionMapping]

    def division_to_region(self) -> dict[str, str]:
        return {d.division_code: d.region_code for d in self.divisions}

    def state_to_region_division(self) -> dict[str, tuple[str, str]]:
        return {
            state.state_code: (d.region_code, d.division_code)
            for d in self.divisions
            for state in d.states
        }
