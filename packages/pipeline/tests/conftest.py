"""
tests/conftest.py — Shared pytest fixtures for the seeder test suite.

Provides:
  duck_conn()     — in-memory DuckDB with the reference schema applied
  data_dir()      — empty temporary data directory
  write_seed()    — helper writing a JSON/CSV seed file into data_dir
  mock_http       — configured respx router for faking HTTP responses
  api()           — CensusApiClient with no retry delay and a fast limiter
  geoinfo()       — builds a geoinfo-style array-of-arrays payload
"""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import duckdb
import httpx
import pytest
import pytest_asyncio
import respx

from censusdata_shared.db import apply_schema
from censusdata_pipeline.sources.census_api import CensusApiClient
from censusdata_pipeline.utils.throttle import FetchQueue, RateLimiter

CENSUS_BASE = "https://api.census.gov/data"


# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------

@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def write_seed(data_dir: Path) -> Callable[[str, Any], Path]:
    """
    Write a seed file into data_dir.

    JSON payloads are serialized; strings are written verbatim (CSV).
    """

    def _write(name: str, payload: Any) -> Path:
        path = data_dir / name
        if isinstance(payload, str):
            path.write_text(payload, encoding="utf-8")
        else:
            path.write_text(json.dumps(payload), encoding="utf-8")
        return path

    return _write


# ---------------------------------------------------------------------------
# DuckDB
# ---------------------------------------------------------------------------

@pytest.fixture
def duck_conn():
    """In-memory DuckDB connection with the packaged schema applied."""
    conn = duckdb.connect(":memory:")
    apply_schema(conn)
    yield conn
    conn.close()


# ---------------------------------------------------------------------------
# respx HTTP mock router
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_http():
    """
    Activate the respx mock router for all httpx requests.

    Unrouted requests fail the test, so a test that should not touch the
    network proves it by simply not adding routes.

    Usage in tests:
        def test_something(mock_http):
            mock_http.get("https://...").mock(return_value=httpx.Response(200, json=[...]))
    """
    with respx.mock(assert_all_called=False) as router:
        yield router


@pytest_asyncio.fixture
async def api(mock_http):
    """CensusApiClient over respx: 2 workers, 1 retry, no backoff delay."""
    queue = FetchQueue(burst_limit=2, limiter=RateLimiter(1000.0))
    client = CensusApiClient(
        queue=queue,
        client=httpx.AsyncClient(),
        retry_attempts=1,
        retry_delay=0.0,
    )
    yield client
    await client.aclose()
    await client._client.aclose()


# ---------------------------------------------------------------------------
# Payload builders
# ---------------------------------------------------------------------------

@pytest.fixture
def geoinfo() -> Callable[..., list[list[str]]]:
    def _build(headers: list[str], *rows: list[str]) -> list[list[str]]:
        return [list(headers), *[list(r) for r in rows]]

    return _build
