"""
models/reference.py — Pydantic models for the static reference tables
(summary_levels, years, topics, programs, components, datasets).
"""

from __future__ import annotations

from datetime import date
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

# Alphanumeric segments joined by underscores: snake_case, UPPER_SNAKE or Mixed_Case
SnakeCaseString = Annotated[
    str, StringConstraints(pattern=r"^[A-Za-z0-9]+(_[A-Za-z0-9]+)*$")
]


class SummaryLevel(BaseModel):
    """Matches the summary_levels table row (minus generated columns)."""

    name: str = Field(min_length=1)
    description: str | None = None
    get_variable: str = Field(min_length=1)
    query_name: str = Field(min_length=1)
    on_spine: bool
    code: str = Field(min_length=1)
    parent_summary_level: str | None

    def to_insert_dict(self) -> dict[str, Any]:
        return self.model_dump()


class Year(BaseModel):
    year: int = Field(ge=1776)
    import_geographies: bool = False

    def to_insert_dict(self) -> dict[str, Any]:
        return self.model_dump()


class RawTopic(BaseModel):
    """A topic as it appears in topics.json (upper-case keys)."""

    TOPIC_STRING: SnakeCaseString
    TOPIC_LABEL: str
    PARENT_TOPIC_STRING: SnakeCaseString | None = None
    DESCRIPTION: str


class Topic(BaseModel):
    name: str
    topic_string: SnakeCaseString
    parent_topic_string: SnakeCaseString | None = None
    description: str

    @classmethod
    def from_raw(cls, raw: RawTopic) -> "Topic":
        return cls(
            name=raw.TOPIC_LABEL,
            topic_string=raw.TOPIC_STRING,
            parent_topic_string=raw.PARENT_TOPIC_STRING,
            description=raw.DESCRIPTION,
        )

    def to_insert_dict(self) -> dict[str, Any]:
        return self.model_dump()


class RawProgram(BaseModel):
    """One row of components-programs.csv (only the program columns)."""

    PROGRAM_STRING: str = Field(min_length=1)
    PROGRAM_LABEL: str = Field(min_length=1)


class Program(BaseModel):
    acronym: str
    label: str

    def to_insert_dict(self) -> dict[str, Any]:
        return self.model_dump()


class RawComponent(BaseModel):
    """One row of components-programs.csv (the component columns)."""

    PROGRAM_STRING: str = Field(min_length=1)
    COMPONENT_STRING: str = Field(min_length=1)
    COMPONENT_LABEL: str = Field(min_length=1)
    COMPONENT_DESCRIPTION: str | None = None
    API_ENDPOINT: str = Field(min_length=1)


class Component(BaseModel):
    component_id: str
    label: str
    description: str | None = None
    api_endpoint: str
    program_id: int

    def to_insert_dict(self) -> dict[str, Any]:
        return self.model_dump()


DatasetType = Literal["aggregate", "microdata", "timeseries"]


class RawDataset(BaseModel):
    """
    One entry of the API discovery document's "dataset" array.

    Only the fields the seed reads are declared; the rest are ignored.
    """

    model_config = ConfigDict(extra="ignore")

    title: str
    identifier: str = Field(min_length=1)
    description: str
    c_dataset: list[str] = Field(min_length=1)
    c_vintage: int | str | None = None
    temporal: str | None = None
    c_isAggregate: bool = False
    c_isTimeseries: bool = False
    c_isMicrodata: bool = False

    @property
    def dataset_type(self) -> DatasetType | None:
        if self.c_isAggregate:
            return "aggregate"
        if self.c_isTimeseries:
            return "timeseries"
        if self.c_isMicrodata:
            return "microdata"
        return None


class Dataset(BaseModel):
    name: str
    dataset_id: str = Field(min_length=1)
    dataset_param: str = Field(min_length=1)
    description: str | None = None
    type: DatasetType
    year_id: int | None = None
    component_id: int | None = None
    temporal_start: date | None = None
    temporal_end: date | None = None

    def to_insert_dict(self) -> dict[str, Any]:
        return self.model_dump()
