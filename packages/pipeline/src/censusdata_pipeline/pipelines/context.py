"""
pipelines/context.py — Per-year geography context threaded between seeds.

A GeographyContext is created once per year iteration and never mutated:
each completed geography seed hands the scheduler a new context with its
rows registered under a level slot ("states", "counties", ...), which later
levels read for parent codes and region/division lookups.

Usage:
    ctx = GeographyContext(year=2023, year_id=7)
    ctx = ctx.with_level("states", state_rows)
    ctx.parent_codes("states", "state_code")   # ["01", "02", ...]
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from censusdata_pipeline.errors import ParentContextError


@dataclass(frozen=True)
class GeographyContext:
    year: int
    year_id: int
    parent_geographies: Mapping[str, tuple[dict[str, Any], ...]] = field(
        default_factory=dict
    )

    def with_level(self, level: str, rows: Iterable[Mapping[str, Any]]) -> GeographyContext:
        """Return a copy with *rows* appended under *level*."""
        updated = dict(self.parent_geographies)
        updated[level] = (*updated.get(level, ()), *(dict(row) for row in rows))
        return replace(self, parent_geographies=updated)

    def rows_for(self, level: str) -> tuple[dict[str, Any], ...]:
        return self.parent_geographies.get(level, ())

    def has_level(self, level: str) -> bool:
        return bool(self.parent_geographies.get(level))

    def parent_codes(
        self,
        level: str,
        code_field: str,
        year: int | None = None,
        width: int = 2,
    ) -> list[str]:
        """
        Distinct parent codes registered under *level*, zero-padded and sorted.

        Args:
            level:      Context slot holding the parent rows ("states").
            code_field: Row key carrying the code ("state_code").
            year:       Year the caller is seeding; defaults to this context's.
            width:      Zero-pad width of the codes.

        Raises:
            ParentContextError: Wrong year, or no codes under *level*.
        """
        year = self.year if year is None else year
        if year != self.year:
            raise ParentContextError(f"No {level} found in context of year {year}")

        codes = {
            str(row[code_field]).zfill(width)
            for row in self.rows_for(level)
            if row.get(code_field) not in (None, "")
        }
        if not codes:
            raise ParentContextError(f"No {level} found in context of year {year}")
        return sorted(codes)
