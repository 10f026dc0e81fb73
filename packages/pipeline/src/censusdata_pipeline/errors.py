"""
errors.py — Exception hierarchy for seeding.

Every error raised inside a seed rolls back that seed's transaction and
propagates to the scheduler, which stops the run. Only FetchError (and
httpx transport errors) are retried, by the Census API client.
"""

from __future__ import annotations


class SeedError(Exception):
    """Base class for all seeding failures."""


class SeedConfigError(SeedError):
    """Malformed descriptor, unknown target, bad identifier or missing conflict column."""


class FetchError(SeedError):
    """Remote source answered with a non-2xx status."""

    def __init__(self, message: str, *, status_code: int, reason: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.reason = reason


class SourceLoadError(SeedError):
    """Missing file, missing key along the extract path, or a non-array payload."""


class SeedDataError(SeedError):
    """Records failed validation or transformation inside a hook."""


class ParentContextError(SeedError):
    """A multi-parent level found no parent codes for the year."""
