"""
tests/test_transforms/test_reference.py — Unit tests for reference transforms.
"""

from __future__ import annotations

import datetime

import pytest

from censusdata_pipeline.errors import SeedDataError
from censusdata_pipeline.transforms.reference import (
    build_dataset,
    find_component_id,
    get_or_create_year,
    parse_temporal_range,
    transform_components,
    transform_datasets,
    transform_programs,
    transform_topics,
    validate_summary_levels,
    validate_years,
)

SUMMARY_LEVEL = {
    "name": "State",
    "description": "States and state equivalents",
    "get_variable": "STATE",
    "query_name": "state",
    "on_spine": True,
    "code": "040",
    "parent_summary_level": "030",
}


class TestSummaryLevels:
    def test_valid_rows_pass_through(self):
        assert validate_summary_levels([SUMMARY_LEVEL]) == [SUMMARY_LEVEL]

    def test_reports_field_of_first_failure(self):
        bad = {**SUMMARY_LEVEL, "name": ""}
        with pytest.raises(SeedDataError, match='Summary levels data validation failed: 1 issue.*field "name"'):
            validate_summary_levels([SUMMARY_LEVEL, bad])

    def test_counts_every_failing_record(self):
        bad = {k: v for k, v in SUMMARY_LEVEL.items() if k != "code"}
        with pytest.raises(SeedDataError, match="3 issue"):
            validate_summary_levels([bad, bad, bad])


class TestYears:
    def test_import_geographies_defaults_false(self):
        assert validate_years([{"year": 2020}]) == [{"year": 2020, "import_geographies": False}]

    def test_rejects_years_before_1776(self):
        with pytest.raises(SeedDataError, match='field "year"'):
            validate_years([{"year": 1700}])


class TestTopics:
    def test_maps_upper_case_keys_to_columns(self):
        raw = [{
            "TOPIC_STRING": "age_and_sex",
            "TOPIC_LABEL": "Age and Sex",
            "PARENT_TOPIC_STRING": "population",
            "DESCRIPTION": "Population by age group and sex",
        }]
        assert transform_topics(raw) == [{
            "name": "Age and Sex",
            "topic_string": "age_and_sex",
            "parent_topic_string": "population",
            "description": "Population by age group and sex",
        }]

    def test_root_topic_has_no_parent(self):
        [row] = transform_topics([
            {"TOPIC_STRING": "population", "TOPIC_LABEL": "People", "DESCRIPTION": "All"}
        ])
        assert row["parent_topic_string"] is None

    def test_rejects_non_snake_case_topic_string(self):
        with pytest.raises(SeedDataError, match="TOPIC_STRING"):
            transform_topics([
                {"TOPIC_STRING": "age and sex", "TOPIC_LABEL": "Age", "DESCRIPTION": "x"}
            ])


class TestPrograms:
    def test_one_row_per_acronym_first_label_wins(self):
        raw = [
            {"PROGRAM_STRING": "ACS", "PROGRAM_LABEL": "American Community Survey", "COMPONENT_STRING": "ACSDT1Y"},
            {"PROGRAM_STRING": "ACS", "PROGRAM_LABEL": "ACS (renamed)", "COMPONENT_STRING": "ACSDT5Y"},
            {"PROGRAM_STRING": "DEC", "PROGRAM_LABEL": "Decennial Census", "COMPONENT_STRING": "DECENNIALPL"},
        ]
        assert transform_programs(raw) == [
            {"acronym": "ACS", "label": "American Community Survey"},
            {"acronym": "DEC", "label": "Decennial Census"},
        ]

    def test_empty_program_string_is_rejected(self):
        with pytest.raises(SeedDataError, match="PROGRAM_STRING"):
            transform_programs([{"PROGRAM_STRING": "", "PROGRAM_LABEL": "Nothing"}])

    def test_input_not_mutated(self):
        raw = [{"PROGRAM_STRING": "CBP", "PROGRAM_LABEL": "County Business Patterns"}]
        transform_programs(raw)
        assert raw == [{"PROGRAM_STRING": "CBP", "PROGRAM_LABEL": "County Business Patterns"}]


def component_row(program: str, component: str, endpoint: str, **extra) -> dict:
    return {
        "PROGRAM_STRING": program,
        "PROGRAM_LABEL": f"{program} program",
        "COMPONENT_STRING": component,
        "COMPONENT_LABEL": f"{component} label",
        "API_ENDPOINT": endpoint,
        **extra,
    }


class TestComponents:
    def test_resolves_program_id_and_keeps_first_duplicate(self):
        raw = [
            component_row("ACS", "ACSDT1Y", "acs/acs1", COMPONENT_DESCRIPTION="One year"),
            component_row("ACS", "ACSDT1Y", "acs/acs1/changed"),
            component_row("DEC", "DECENNIALPL", "dec/pl"),
        ]
        assert transform_components(raw, {"ACS": 1, "DEC": 2}) == [
            {
                "component_id": "ACSDT1Y",
                "label": "ACSDT1Y label",
                "description": "One year",
                "api_endpoint": "acs/acs1",
                "program_id": 1,
            },
            {
                "component_id": "DECENNIALPL",
                "label": "DECENNIALPL label",
                "description": None,
                "api_endpoint": "dec/pl",
                "program_id": 2,
            },
        ]

    def test_no_programs_seeded(self):
        with pytest.raises(SeedDataError, match="seed programs before components"):
            transform_components([component_row("ACS", "ACSDT1Y", "acs/acs1")], {})

    def test_lists_every_unknown_program(self):
        raw = [
            component_row("PEP", "PEPPOP", "pep/population"),
            component_row("CBP", "CBP", "cbp"),
            component_row("ACS", "ACSDT1Y", "acs/acs1"),
        ]
        with pytest.raises(SeedDataError, match=r"unknown program\(s\): CBP, PEP"):
            transform_components(raw, {"ACS": 1})


class TestTemporalRange:
    @pytest.mark.parametrize(
        "temporal, expected",
        [
            ("2018/2022", (datetime.date(2018, 1, 1), datetime.date(2022, 12, 31))),
            ("2020-03/2020-03", (datetime.date(2020, 3, 1), datetime.date(2020, 3, 31))),
            ("2019-07/2024-02", (datetime.date(2019, 7, 1), datetime.date(2024, 2, 29))),
        ],
    )
    def test_parses_year_and_month_bounds(self, temporal, expected):
        assert parse_temporal_range(temporal) == expected

    @pytest.mark.parametrize("temporal", ["unidentified", "2020", "2020-13/2021", "abcd/2021"])
    def test_unparseable_yields_nulls(self, temporal):
        assert parse_temporal_range(temporal) == (None, None)


def discovery_entry(identifier: str, **overrides) -> dict:
    entry = {
        "title": f"Dataset {identifier}",
        "identifier": f"https://api.census.gov/data/id/{identifier}",
        "description": "desc",
        "c_vintage": 2022,
        "c_dataset": ["acs", "acs5"],
        "c_isAggregate": True,
    }
    entry.update(overrides)
    return entry


class TestDatasets:
    def test_shapes_entry(self):
        [row] = transform_datasets([discovery_entry("ACSDT5Y2022", temporal="2018/2022")])
        assert row == {
            "name": "Dataset ACSDT5Y2022",
            "dataset_id": "ACSDT5Y2022",
            "dataset_param": "acs/acs5",
            "description": "desc",
            "type": "aggregate",
            "temporal_start": datetime.date(2018, 1, 1),
            "temporal_end": datetime.date(2022, 12, 31),
            "vintage": 2022,
        }

    def test_type_flag_precedence(self):
        rows = transform_datasets([
            discovery_entry("A", c_isAggregate=True, c_isTimeseries=True),
            discovery_entry("T", c_isAggregate=False, c_isTimeseries=True, c_isMicrodata=True),
            discovery_entry("M", c_isAggregate=False, c_isMicrodata=True),
        ])
        assert [(r["dataset_id"], r["type"]) for r in rows] == [
            ("A", "aggregate"), ("T", "timeseries"), ("M", "microdata"),
        ]

    def test_untyped_and_incomplete_entries_dropped(self):
        rows = transform_datasets([
            discovery_entry("UNTYPED", c_isAggregate=False),
            discovery_entry("NOPATH", c_dataset=[]),
            {"title": "No identifier", "description": "x", "c_dataset": ["a"]},
            "not an object",
            discovery_entry("KEPT"),
        ])
        assert [r["dataset_id"] for r in rows] == ["KEPT"]

    def test_last_duplicate_wins_in_last_position(self):
        rows = transform_datasets([
            discovery_entry("DUP", title="first"),
            discovery_entry("OTHER"),
            discovery_entry("DUP", title="second"),
        ])
        assert [(r["dataset_id"], r["name"]) for r in rows] == [
            ("OTHER", "Dataset OTHER"), ("DUP", "second"),
        ]

    def test_build_dataset_drops_vintage_and_adds_ids(self):
        [row] = transform_datasets([discovery_entry("X")])
        built = build_dataset(row, year_id=3, component_id=None)
        assert "vintage" not in built
        assert built["year_id"] == 3
        assert built["component_id"] is None


class TestStoreLookups:
    def test_get_or_create_year_reuses_and_inserts(self, duck_conn):
        duck_conn.execute("INSERT INTO years (year, import_geographies) VALUES (2022, TRUE)")
        existing = duck_conn.execute("SELECT id FROM years WHERE year = 2022").fetchone()[0]

        assert get_or_create_year(duck_conn, "2022") == existing
        created = get_or_create_year(duck_conn, 1990)
        assert get_or_create_year(duck_conn, 1990) == created
        assert duck_conn.execute(
            "SELECT import_geographies FROM years WHERE id = ?", [created]
        ).fetchone() == (False,)

    @pytest.mark.parametrize("vintage", ["twenty", "1700", None])
    def test_get_or_create_year_rejects_bad_vintage(self, duck_conn, vintage):
        with pytest.raises(SeedDataError, match="Invalid dataset vintage"):
            get_or_create_year(duck_conn, vintage)

    def test_find_component_id_prefers_longest_endpoint(self, duck_conn):
        duck_conn.execute("INSERT INTO programs (acronym, label) VALUES ('ACS', 'ACS')")
        duck_conn.execute(
            """
            INSERT INTO components (component_id, label, api_endpoint, program_id) VALUES
                ('ACSDT5Y', 'Detailed', 'acs/acs5', 1),
                ('ACSST5Y', 'Subject', 'acs/acs5/subject', 1)
            """
        )
        ids = dict(duck_conn.execute("SELECT component_id, id FROM components").fetchall())

        assert find_component_id(duck_conn, "acs/acs5") == ids["ACSDT5Y"]
        assert find_component_id(duck_conn, "acs/acs5/subject") == ids["ACSST5Y"]
        assert find_component_id(duck_conn, "acs/acs5/profile") == ids["ACSDT5Y"]
        assert find_component_id(duck_conn, "acs/acs5x") is None
        assert find_component_id(duck_conn, "cbp") is None
