"""
tests/test_pipelines/test_executor.py — Unit tests for SeedRunner.

File seeds read from a temporary data directory; URL seeds go through the
respx router. Every test runs against an in-memory DuckDB.
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
import pytest

from censusdata_pipeline.errors import SeedConfigError, SeedDataError, SourceLoadError
from censusdata_pipeline.loaders.ledger import ApiCallLedger
from censusdata_pipeline.pipelines.context import GeographyContext
from censusdata_pipeline.pipelines.descriptors import (
    GeographySeedDescriptor,
    MultiParentGeographySeedDescriptor,
    SeedDescriptor,
)
from censusdata_pipeline.pipelines.executor import SeedResult, SeedRunner

YEARS_URL = "https://example.test/years"


def count(conn, table: str) -> int:
    return conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]


class HookSpy:
    """Records hook invocations; optionally fails in the after hook."""

    def __init__(self, *, fail_after: bool = False, return_none: bool = False) -> None:
        self.before_calls: list[list[Any]] = []
        self.after_calls: list[list[int]] = []
        self.fail_after = fail_after
        self.return_none = return_none

    async def before(self, conn, records, context):
        self.before_calls.append(list(records))
        if self.return_none:
            return None
        return [{"year": int(r["year"])} for r in records]

    async def after(self, conn, ids, context):
        self.after_calls.append(list(ids))
        if self.fail_after:
            raise RuntimeError("after hook exploded")


@pytest.fixture
def runner(duck_conn, api, data_dir) -> SeedRunner:
    return SeedRunner(duck_conn, api=api, data_dir=data_dir)


# ---------------------------------------------------------------------------
# File seeds
# ---------------------------------------------------------------------------

class TestFileSeeds:
    @pytest.mark.asyncio
    async def test_loads_transforms_writes_and_runs_after_hook(self, runner, duck_conn, write_seed):
        write_seed("years.json", {"years": [{"year": "2020"}, {"year": "2021"}]})
        spy = HookSpy()
        descriptor = SeedDescriptor(
            name="years",
            table="years",
            conflict_column="year",
            file="years.json",
            extract_path="years",
            before_seed=spy.before,
            after_seed=spy.after,
        )

        result = await runner.seed(descriptor)

        assert isinstance(result, SeedResult)
        assert result.records_written == 2
        assert not result.skipped
        assert spy.after_calls == [result.ids]
        assert count(duck_conn, "years") == 2

    @pytest.mark.asyncio
    async def test_empty_source_commits_and_skips_hooks(self, runner, duck_conn, write_seed):
        write_seed("years.json", {"years": []})
        spy = HookSpy()
        descriptor = SeedDescriptor(
            name="years", table="years", conflict_column="year", file="years.json",
            extract_path="years", before_seed=spy.before, after_seed=spy.after,
        )

        result = await runner.seed(descriptor)

        assert result.skipped
        assert spy.before_calls == [] and spy.after_calls == []

    @pytest.mark.asyncio
    async def test_rerun_is_idempotent(self, runner, duck_conn, write_seed):
        write_seed("years.json", [{"year": 2020}, {"year": 2021}])
        descriptor = SeedDescriptor(name="years", table="years", conflict_column="year", file="years.json")

        first = await runner.seed(descriptor)
        second = await runner.seed(descriptor)

        assert count(duck_conn, "years") == 2
        assert second.ids == first.ids

    @pytest.mark.asyncio
    async def test_before_hook_returning_none_is_a_data_error(self, runner, duck_conn, write_seed):
        write_seed("years.json", [{"year": 2020}])
        descriptor = SeedDescriptor(
            name="years", table="years", conflict_column="year", file="years.json",
            before_seed=HookSpy(return_none=True).before,
        )
        with pytest.raises(SeedDataError, match="returned no records"):
            await runner.seed(descriptor)
        assert count(duck_conn, "years") == 0

    @pytest.mark.asyncio
    async def test_after_hook_failure_rolls_back_the_upsert(self, runner, duck_conn, write_seed):
        write_seed("years.json", [{"year": 2020}, {"year": 2021}])
        spy = HookSpy(fail_after=True)
        descriptor = SeedDescriptor(
            name="years", table="years", conflict_column="year", file="years.json",
            before_seed=spy.before, after_seed=spy.after,
        )

        with pytest.raises(RuntimeError, match="after hook exploded"):
            await runner.seed(descriptor)

        assert len(spy.after_calls) == 1
        assert count(duck_conn, "years") == 0

    @pytest.mark.asyncio
    async def test_missing_conflict_column_writes_nothing(self, runner, duck_conn, write_seed):
        write_seed("years.json", [{"yr": 2020}])
        descriptor = SeedDescriptor(name="years", table="years", conflict_column="year", file="years.json")
        with pytest.raises(SeedConfigError, match="Conflict column 'year' not found"):
            await runner.seed(descriptor)
        assert count(duck_conn, "years") == 0

    @pytest.mark.asyncio
    async def test_bad_extract_path(self, runner, write_seed):
        write_seed("years.json", {"data": []})
        descriptor = SeedDescriptor(
            name="years", table="years", conflict_column="year", file="years.json",
            extract_path="years",
        )
        with pytest.raises(SourceLoadError, match='Key "years" not found'):
            await runner.seed(descriptor)

    @pytest.mark.asyncio
    async def test_connection_usable_after_failure(self, runner, duck_conn, write_seed):
        write_seed("bad.json", [{"yr": 2020}])
        write_seed("good.json", [{"year": 2020}])
        bad = SeedDescriptor(name="bad", table="years", conflict_column="year", file="bad.json")
        good = SeedDescriptor(name="good", table="years", conflict_column="year", file="good.json")

        with pytest.raises(SeedConfigError):
            await runner.seed(bad)
        await runner.seed(good)
        assert count(duck_conn, "years") == 1

    @pytest.mark.asyncio
    async def test_cancelled_after_hook_rolls_back(self, runner, duck_conn, write_seed):
        write_seed("years.json", [{"year": 2020}, {"year": 2021}])

        async def cancelled(conn, ids, context):
            raise asyncio.CancelledError()

        descriptor = SeedDescriptor(
            name="years", table="years", conflict_column="year", file="years.json",
            after_seed=cancelled,
        )
        with pytest.raises(asyncio.CancelledError):
            await runner.seed(descriptor)
        assert count(duck_conn, "years") == 0

        retry = SeedDescriptor(name="years", table="years", conflict_column="year", file="years.json")
        result = await runner.seed(retry)
        assert result.records_written == 2
        assert count(duck_conn, "years") == 2


# ---------------------------------------------------------------------------
# URL seeds and the API call ledger
# ---------------------------------------------------------------------------

class TestUrlSeeds:
    @pytest.mark.asyncio
    async def test_second_run_skips_fetch_and_upsert(self, runner, duck_conn, mock_http):
        route = mock_http.get(YEARS_URL).mock(
            return_value=httpx.Response(200, json={"years": [{"year": 2020}]})
        )
        spy = HookSpy()
        descriptor = SeedDescriptor(
            name="remote_years", table="years", conflict_column="year", url=YEARS_URL,
            extract_path="years", before_seed=spy.before, after_seed=spy.after,
        )

        first = await runner.seed(descriptor)
        second = await runner.seed(descriptor)

        assert route.call_count == 1
        assert not first.skipped
        assert second.skipped
        assert len(spy.before_calls) == 1 and len(spy.after_calls) == 1
        assert ApiCallLedger(duck_conn).has_been_called(YEARS_URL)

    @pytest.mark.asyncio
    async def test_always_fetch_bypasses_the_ledger(self, runner, duck_conn, mock_http):
        route = mock_http.get(YEARS_URL).mock(
            side_effect=[
                httpx.Response(200, json=[{"year": 2020}]),
                httpx.Response(200, json=[{"year": 2020}, {"year": 2021}]),
            ]
        )
        descriptor = SeedDescriptor(
            name="remote_years", table="years", conflict_column="year", url=YEARS_URL,
            always_fetch=True,
        )

        first = await runner.seed(descriptor)
        second = await runner.seed(descriptor)

        assert route.call_count == 2
        assert first.records_written == 1
        assert not second.skipped
        assert second.records_written == 2
        assert count(duck_conn, "years") == 2
        assert ApiCallLedger(duck_conn).has_been_called(YEARS_URL)

    @pytest.mark.asyncio
    async def test_rolled_back_seed_fetches_again(self, runner, duck_conn, mock_http):
        route = mock_http.get(YEARS_URL).mock(
            return_value=httpx.Response(200, json=[{"year": 2020}])
        )
        descriptor = SeedDescriptor(
            name="remote_years", table="years", conflict_column="year", url=YEARS_URL,
            after_seed=HookSpy(fail_after=True).after,
        )

        with pytest.raises(RuntimeError):
            await runner.seed(descriptor)
        assert not ApiCallLedger(duck_conn).has_been_called(YEARS_URL)

        with pytest.raises(RuntimeError):
            await runner.seed(descriptor)
        assert route.call_count == 2

    @pytest.mark.asyncio
    async def test_query_params_are_part_of_fetch_and_ledger_key(self, runner, duck_conn, mock_http):
        route = mock_http.get(url__startswith=YEARS_URL).mock(
            return_value=httpx.Response(200, json=[{"year": 2020}])
        )
        descriptor = SeedDescriptor(
            name="remote_years", table="years", conflict_column="year", url=YEARS_URL,
            query_params={"vintage": "2023"},
        )

        await runner.seed(descriptor)

        requested = route.calls[0].request.url
        assert requested.params["vintage"] == "2023"
        assert ApiCallLedger(duck_conn).has_been_called(str(requested))
        assert not ApiCallLedger(duck_conn).has_been_called(YEARS_URL)

    @pytest.mark.asyncio
    async def test_failed_fetch_rolls_back(self, runner, duck_conn, mock_http):
        mock_http.get(YEARS_URL).mock(return_value=httpx.Response(500))
        descriptor = SeedDescriptor(name="remote_years", table="years", conflict_column="year", url=YEARS_URL)

        with pytest.raises(Exception, match="API request failed: 500"):
            await runner.seed(descriptor)
        assert not ApiCallLedger(duck_conn).has_been_called(YEARS_URL)


# ---------------------------------------------------------------------------
# Geography descriptors
# ---------------------------------------------------------------------------

async def _rows_as_years(conn, records, context):
    return [{"year": int(r["year"])} for r in records]


class TestGeographySeeds:
    @pytest.mark.asyncio
    async def test_publishes_written_rows_into_new_context(self, runner, mock_http):
        mock_http.get(url__startswith="https://example.test/2023").mock(
            return_value=httpx.Response(200, json=[{"year": "2001"}, {"year": "2002"}])
        )
        descriptor = GeographySeedDescriptor(
            name="fake_level",
            table="years",
            conflict_column="year",
            url=lambda ctx: f"https://example.test/{ctx.year}",
            publishes="fakes",
            before_seed=_rows_as_years,
        )
        ctx = GeographyContext(year=2023, year_id=1)

        result = await runner.seed_geography(descriptor, ctx)

        assert result.context is not ctx
        assert result.context.rows_for("fakes") == ({"year": 2001}, {"year": 2002})
        assert ctx.rows_for("fakes") == ()

    @pytest.mark.asyncio
    async def test_skipped_geography_seed_keeps_context(self, runner, duck_conn):
        url = "https://example.test/2023"
        ApiCallLedger(duck_conn).record_call(url)
        descriptor = GeographySeedDescriptor(
            name="fake_level", table="years", conflict_column="year",
            url=lambda ctx: url, publishes="fakes",
        )
        ctx = GeographyContext(year=2023, year_id=1)

        result = await runner.seed_geography(descriptor, ctx)

        assert result.skipped
        assert result.context is ctx

    @pytest.mark.asyncio
    async def test_multi_parent_uses_parent_url(self, runner, mock_http):
        route = mock_http.get("https://example.test/parents/07").mock(
            return_value=httpx.Response(200, json=[{"year": "2007"}])
        )
        descriptor = MultiParentGeographySeedDescriptor(
            name="fake_children", table="years", conflict_column="year",
            url_for_parent=lambda ctx, code: f"https://example.test/parents/{code}",
            before_seed=_rows_as_years,
        )

        result = await runner.seed_geography(descriptor, GeographyContext(2023, 1), "07")

        assert route.call_count == 1
        assert result.parent_code == "07"

    @pytest.mark.asyncio
    async def test_multi_parent_without_parent_code(self, runner):
        descriptor = MultiParentGeographySeedDescriptor(
            name="fake_children", table="years", conflict_column="year",
            url_for_parent=lambda ctx, code: f"https://example.test/parents/{code}",
        )
        with pytest.raises(SeedConfigError, match="needs a parent code"):
            await runner.seed_geography(descriptor, GeographyContext(2023, 1))
