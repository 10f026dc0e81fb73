"""
censusdata_shared.models — Pydantic models matching the seeded tables.

The pipeline validates source rows against these before writing them.

All table models provide:
  .to_insert_dict() -> dict
"""

from censusdata_shared.models.geography import (
    DivisionRegionMapping,
    DivisionRegionMappings,
    GeographyRecord,
)
from censusdata_shared.models.reference import (
    Component,
    Dataset,
    DatasetType,
    Program,
    RawComponent,
    RawDataset,
    RawProgram,
    RawTopic,
    SummaryLevel,
    Topic,
    Year,
)

__all__ = [
    "GeographyRecord",
    "DivisionRegionMapping",
    "DivisionRegionMappings",
    "SummaryLevel",
    "Year",
    "RawTopic",
    "Topic",
    "RawProgram",
    "Program",
    "RawComponent",
    "Component",
    "RawDataset",
    "DatasetType",
    "Dataset",
]
