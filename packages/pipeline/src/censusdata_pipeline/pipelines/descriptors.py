"""
pipelines/descriptors.py — Declarative seed descriptors.

A descriptor names a target table and its unique conflict column, where the
records come from, and the optional hooks run inside the seed transaction:

  before_seed(conn, records, context) -> list[dict]   records to write
  after_seed(conn, ids, context) -> None              post-write SQL

Three shapes exist:
  SeedDescriptor                     — static snapshot file or fixed URL
  GeographySeedDescriptor            — one geoinfo request per year
  MultiParentGeographySeedDescriptor — one geoinfo request per parent code

The two geography shapes form the GeographyDescriptor union, which the
scheduler and executor branch on exhaustively.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any, Union

import duckdb

from censusdata_pipeline.errors import SeedConfigError
from censusdata_pipeline.loaders.duckdb_loader import validate_identifier
from censusdata_pipeline.pipelines.context import GeographyContext

BeforeSeedHook = Callable[
    [duckdb.DuckDBPyConnection, list[Any], GeographyContext | None],
    Awaitable[list[dict[str, Any]] | None],
]
AfterSeedHook = Callable[
    [duckdb.DuckDBPyConnection, list[int], GeographyContext | None],
    Awaitable[None],
]
UrlFactory = Callable[[GeographyContext], str]
ParentUrlFactory = Callable[[GeographyContext, str], str]


def _check_common(name: str, table: str, conflict_column: str) -> None:
    if not name:
        raise SeedConfigError("Seed descriptor needs a name")
    try:
        validate_identifier(table, "table name")
        validate_identifier(conflict_column, "column")
    except SeedConfigError as exc:
        raise SeedConfigError(f'Seed "{name}": {exc}') from exc


@dataclass(frozen=True)
class SeedDescriptor:
    """A static seed: exactly one of *file* or *url*."""

    name: str
    table: str
    conflict_column: str
    file: str | None = None
    url: str | UrlFactory | None = None
    extract_path: str | None = None
    query_params: Mapping[str, str] | None = None
    before_seed: BeforeSeedHook | None = None
    after_seed: AfterSeedHook | None = None
    # Refetch the url on every run; the ledger still records the call
    always_fetch: bool = False

    def __post_init__(self) -> None:
        _check_common(self.name, self.table, self.conflict_column)
        if self.file and self.url:
            raise SeedConfigError(
                f'Seed "{self.name}" cannot have both file and url'
            )
        if not self.file and not self.url:
            raise SeedConfigError(
                f'Seed "{self.name}" must have either file or url'
            )
        if self.always_fetch and not self.url:
            raise SeedConfigError(
                f'Seed "{self.name}" sets always_fetch without a url'
            )

    def matches(self, target: str) -> bool:
        return target in (self.name, self.file)


@dataclass(frozen=True)
class GeographySeedDescriptor:
    """A geography level fetched with one request per year."""

    name: str
    table: str
    conflict_column: str
    url: UrlFactory
    extract_path: str | None = None
    query_params: Mapping[str, str] | None = None
    # Context slot that receives the written rows, e.g. "states"
    publishes: str | None = None
    before_seed: BeforeSeedHook | None = None
    after_seed: AfterSeedHook | None = None

    def __post_init__(self) -> None:
        _check_common(self.name, self.table, self.conflict_column)
        if not callable(self.url):
            raise SeedConfigError(
                f'Geography seed "{self.name}" needs a url callable of the context'
            )


@dataclass(frozen=True)
class MultiParentGeographySeedDescriptor:
    """A geography level the API only serves one parent unit at a time."""

    name: str
    table: str
    conflict_column: str
    url_for_parent: ParentUrlFactory
    parent_level: str = "states"
    parent_code_field: str = "state_code"
    parent_summary_level: str = "040"
    parent_code_width: int = 2
    extract_path: str | None = None
    query_params: Mapping[str, str] | None = None
    publishes: str | None = None
    before_seed: BeforeSeedHook | None = None
    after_seed: AfterSeedHook | None = None

    def __post_init__(self) -> None:
        _check_common(self.name, self.table, self.conflict_column)
        if not callable(self.url_for_parent):
            raise SeedConfigError(
                f'Geography seed "{self.name}" needs a url_for_parent callable'
            )
        if not self.parent_level:
            raise SeedConfigError(f'Geography seed "{self.name}" needs a parent_level')
        validate_identifier(self.parent_code_field, "column")
        if self.parent_code_width < 1:
            raise SeedConfigError(
                f'Geography seed "{self.name}" has invalid parent_code_width '
                f"{self.parent_code_width}"
            )


GeographyDescriptor = Union[GeographySeedDescriptor, MultiParentGeographySeedDescriptor]
