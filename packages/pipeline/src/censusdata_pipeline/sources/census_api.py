"""
sources/census_api.py — Census Bureau data API client.

Every request goes through the shared FetchQueue (rate limit + burst limit)
and is retried with linear backoff on transport errors and non-2xx
responses. Responses are parsed as JSON; geoinfo endpoints answer with an
array of arrays whose first row is the header.

Usage:
    async with CensusApiClient.from_settings() as api:
        rows = await api.get_json(
            "https://api.census.gov/data/2023/geoinfo",
            params={"get": "NAME,GEO_ID", "for": "state:*"},
        )
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from censusdata_shared.config import settings
from censusdata_pipeline.errors import FetchError
from censusdata_pipeline.utils.retry import with_retry
from censusdata_pipeline.utils.throttle import FetchQueue, RateLimiter

log = structlog.get_logger(__name__)


def resolve_url(url: str, params: dict[str, Any] | None = None) -> str:
    """Return *url* with *params* merged into its query string."""
    if not params:
        return url
    return str(httpx.URL(url).copy_merge_params(params))


class CensusApiClient:
    """Throttled, retrying JSON client over one shared httpx.AsyncClient."""

    def __init__(
        self,
        *,
        queue: FetchQueue,
        client: httpx.AsyncClient | None = None,
        retry_attempts: int | None = None,
        retry_delay: float | None = None,
        timeout: float | None = None,
    ) -> None:
        self._queue = queue
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout if timeout is not None else settings.fetch_timeout,
            follow_redirects=True,
            headers={"Accept": "application/json"},
        )
        self._retry_attempts = (
            retry_attempts if retry_attempts is not None else settings.fetch_retry_attempts
        )
        self._retry_delay = retry_delay if retry_delay is not None else settings.fetch_retry_delay

    @classmethod
    def from_settings(cls) -> "CensusApiClient":
        queue = FetchQueue(
            burst_limit=settings.fetch_burst_limit,
            limiter=RateLimiter(settings.fetch_requests_per_second),
        )
        return cls(queue=queue)

    @property
    def queue(self) -> FetchQueue:
        return self._queue

    async def __aenter__(self) -> "CensusApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    async def get_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        """
        Fetch *url* (with *params* appended) through the fetch queue.

        Returns:
            The parsed JSON body.

        Raises:
            FetchError: Still non-2xx after all retries.
            httpx.TransportError: Still failing at the network level after all retries.
        """
        resolved = resolve_url(url, params)
        return await self._queue.submit(lambda: self._get_with_retry(resolved))

    async def _get_with_retry(self, url: str) -> Any:
        retrying = with_retry(
            max_attempts=self._retry_attempts + 1,
            base_delay=self._retry_delay,
            max_delay=max(self._retry_delay * (self._retry_attempts + 1), 1.0),
            retry_on=(httpx.TransportError, FetchError),
            backoff="linear",
        )(self._get_once)
        return await retrying(url)

    async def _get_once(self, url: str) -> Any:
        log.debug("census_api_request", url=url)
        resp = await self._client.get(url)
        if not resp.is_success:
            raise FetchError(
                f"API request failed: {resp.status_code} {resp.reason_phrase}",
                status_code=resp.status_code,
                reason=resp.reason_phrase,
            )
        return resp.json()

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def aclose(self) -> None:
        """Drain the fetch queue, then close the HTTP client if we created it."""
        await self._queue.close()
        if self._owns_client:
            await self._client.aclose()
