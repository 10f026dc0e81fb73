"""
transforms/reference.py — Validation and shaping for the static reference seeds.

Each function takes the raw records loaded from a snapshot and returns new
row dicts ready for the upsert; none of them mutate their input.

  validate_summary_levels() — summary_levels.json rows, as-is once valid
  validate_years()          — years.json rows (year >= 1776)
  transform_topics()        — TOPIC_* keys -> topics table columns
  transform_programs()      — components CSV -> one row per program acronym
  transform_components()    — components CSV -> one row per component, linked to its program
  transform_datasets()      — API discovery document -> one row per dataset id

get_or_create_year() and find_component_id() are the two store lookups the
datasets seed needs; they run on the seed transaction's connection.
"""

from __future__ import annotations

import calendar
from collections.abc import Mapping, Sequence
from datetime import date
from typing import Any, TypeVar

import duckdb
import structlog
from pydantic import BaseModel, ValidationError

from censusdata_shared.models import (
    Component,
    Dataset,
    Program,
    RawComponent,
    RawDataset,
    RawProgram,
    RawTopic,
    SummaryLevel,
    Topic,
    Year,
)
from censusdata_pipeline.errors import SeedDataError

log = structlog.get_logger(__name__)

M = TypeVar("M", bound=BaseModel)

# Issues echoed to the log before giving up on a file
_MAX_REPORTED_ISSUES = 5


def validate_all(model: type[M], raw: Sequence[Any], label: str) -> list[M]:
    """
    Validate every raw record against *model*.

    All records are checked before raising so the log lists every failing
    record (up to a limit), not just the first.

    Raises:
        SeedDataError: One or more records failed validation.
    """
    validated: list[M] = []
    failures: list[str] = []
    for index, item in enumerate(raw):
        try:
            validated.append(model.model_validate(item))
        except ValidationError as exc:
            for issue in exc.errors():
                field_path = ".".join(str(p) for p in issue["loc"])
                failures.append(f"Record {index}, field \"{field_path}\": {issue['msg']}")

    if failures:
        for message in failures[:_MAX_REPORTED_ISSUES]:
            log.error("record_validation_failed", label=label, issue=message)
        if len(failures) > _MAX_REPORTED_ISSUES:
            log.error(
                "record_validation_failed_more",
                label=label,
                remaining=len(failures) - _MAX_REPORTED_ISSUES,
            )
        raise SeedDataError(
            f"{label} data validation failed: {len(failures)} issue(s); first: {failures[0]}"
        )

    log.info("records_validated", label=label, count=len(validated))
    return validated


def validate_summary_levels(raw: Sequence[Any]) -> list[dict[str, Any]]:
    return [level.to_insert_dict() for level in validate_all(SummaryLevel, raw, "Summary levels")]


def validate_years(raw: Sequence[Any]) -> list[dict[str, Any]]:
    return [year.to_insert_dict() for year in validate_all(Year, raw, "Years")]


def transform_topics(raw: Sequence[Any]) -> list[dict[str, Any]]:
    """Map TOPIC_STRING/TOPIC_LABEL/PARENT_TOPIC_STRING/DESCRIPTION onto topic columns."""
    return [
        Topic.from_raw(topic).to_insert_dict()
        for topic in validate_all(RawTopic, raw, "Topics")
    ]


def transform_programs(raw: Sequence[Any]) -> list[dict[str, Any]]:
    """
    Collapse component rows into one program per PROGRAM_STRING.

    The first label seen for an acronym wins.
    """
    programs: dict[str, Program] = {}
    for row in validate_all(RawProgram, raw, "Programs"):
        if row.PROGRAM_STRING not in programs:
            programs[row.PROGRAM_STRING] = Program(
                acronym=row.PROGRAM_STRING, label=row.PROGRAM_LABEL
            )
    return [program.to_insert_dict() for program in programs.values()]


def transform_components(
    raw: Sequence[Any], program_ids: Mapping[str, int]
) -> list[dict[str, Any]]:
    """
    Map component rows onto the components table, resolving program_id.

    Args:
        raw:         Rows of components-programs.csv.
        program_ids: Program acronym -> programs.id, as already seeded.

    Raises:
        SeedDataError: No programs are seeded, or a row names an unknown program.
    """
    if not program_ids:
        raise SeedDataError(
            "No programs found in the store; seed programs before components"
        )

    components: dict[str, Component] = {}
    missing: set[str] = set()
    for row in validate_all(RawComponent, raw, "Components"):
        program_id = program_ids.get(row.PROGRAM_STRING)
        if program_id is None:
            missing.add(row.PROGRAM_STRING)
            continue
        if row.COMPONENT_STRING in components:
            continue
        components[row.COMPONENT_STRING] = Component(
            component_id=row.COMPONENT_STRING,
            label=row.COMPONENT_LABEL,
            description=row.COMPONENT_DESCRIPTION,
            api_endpoint=row.API_ENDPOINT,
            program_id=program_id,
        )

    if missing:
        raise SeedDataError(
            f"Components reference unknown program(s): {', '.join(sorted(missing))}"
        )
    return [component.to_insert_dict() for component in components.values()]


def parse_temporal_range(temporal: str) -> tuple[date | None, date | None]:
    """
    Parse a "YYYY[-MM]/YYYY[-MM]" coverage string.

    The start is the first day of its month (January when no month is given);
    the end is the last day of its month (December when no month is given).
    Unparseable strings log a warning and yield (None, None).
    """
    try:
        start, end = temporal.split("/")
        start_parts = start.split("-")
        start_year = int(start_parts[0])
        start_month = int(start_parts[1]) if len(start_parts) > 1 else 1
        end_parts = end.split("-")
        end_year = int(end_parts[0])
        end_month = int(end_parts[1]) if len(end_parts) > 1 else 12
        last_day = calendar.monthrange(end_year, end_month)[1]
        return date(start_year, start_month, 1), date(end_year, end_month, last_day)
    except ValueError as exc:
        log.warning("temporal_unparsed", temporal=temporal, error=str(exc))
        return None, None


def transform_datasets(raw: Sequence[Any]) -> list[dict[str, Any]]:
    """
    Shape discovery-document entries into dataset rows.

    Entries missing a title, identifier, description or c_dataset path are
    skipped; entries with no type flag are excluded with a warning. When a
    dataset id repeats, the last occurrence wins.

    Each returned dict holds the datasets columns except year_id and
    component_id, plus "vintage" (raw c_vintage, possibly None). The caller
    resolves those against the store.
    """
    by_id: dict[str, dict[str, Any]] = {}
    occurrences: dict[str, int] = {}
    skipped = 0
    for item in raw:
        try:
            entry = RawDataset.model_validate(item)
        except ValidationError:
            skipped += 1
            continue

        dataset_id = entry.identifier.rstrip("/").rsplit("/", 1)[-1]
        dataset_type = entry.dataset_type
        if dataset_type is None:
            log.warning("dataset_untyped", dataset_id=dataset_id)
            continue

        temporal_start, temporal_end = (
            parse_temporal_range(entry.temporal) if entry.temporal else (None, None)
        )
        by_id.pop(dataset_id, None)
        by_id[dataset_id] = {
            "name": entry.title,
            "dataset_id": dataset_id,
            "dataset_param": "/".join(entry.c_dataset),
            "description": entry.description,
            "type": dataset_type,
            "temporal_start": temporal_start,
            "temporal_end": temporal_end,
            "vintage": entry.c_vintage,
        }
        occurrences[dataset_id] = occurrences.get(dataset_id, 0) + 1

    if skipped:
        log.warning("dataset_entries_skipped", skipped=skipped)
    duplicates = {k: n for k, n in occurrences.items() if n > 1}
    if duplicates:
        log.warning("dataset_duplicates", count=len(duplicates), duplicates=duplicates)
    return list(by_id.values())


def get_or_create_year(conn: duckdb.DuckDBPyConnection, vintage: int | str) -> int:
    """
    Return years.id for *vintage*, inserting the year if it is new.

    Raises:
        SeedDataError: *vintage* is not a valid year.
    """
    try:
        year = Year(year=int(vintage))
    except (TypeError, ValueError) as exc:
        raise SeedDataError(f"Invalid dataset vintage {vintage!r}") from exc

    conn.execute(
        "INSERT INTO years (year) VALUES (?) ON CONFLICT (year) DO NOTHING", [year.year]
    )
    row = conn.execute("SELECT id FROM years WHERE year = ?", [year.year]).fetchone()
    return int(row[0])


def find_component_id(conn: duckdb.DuckDBPyConnection, dataset_param: str) -> int | None:
    """
    Return the id of the component whose api_endpoint best covers *dataset_param*.

    An endpoint covers a path it equals or prefixes at a "/" boundary; the
    longest covering endpoint wins.
    """
    row = conn.execute(
        """
        SELECT id FROM components
        WHERE ? = api_endpoint OR starts_with(?, api_endpoint || '/')
        ORDER BY length(api_endpoint) DESC
        LIMIT 1
        """,
        [dataset_param, dataset_param],
    ).fetchone()
    if row is None:
        log.warning("dataset_component_not_found", dataset_param=dataset_param)
        return None
    return int(row[0])


def build_dataset(
    record: Mapping[str, Any], year_id: int | None, component_id: int | None
) -> dict[str, Any]:
    """Validate one transform_datasets() row with its resolved ids."""
    fields = {k: v for k, v in record.items() if k != "vintage"}
    return Dataset(**fields, year_id=year_id, component_id=component_id).to_insert_dict()
