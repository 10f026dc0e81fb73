"""
censusdata_pipeline — seed orchestration for the censusdata store.

Architecture:
  sources/     — Census data API client, local JSON/CSV snapshot loader
  transforms/  — geoinfo response shaping, reference-table validation
  loaders/     — transactional DuckDB upserts, API call ledger
  pipelines/   — seed descriptors, geography context, executor, scheduler
  seeds/       — the shipped static and geography seed configurations
  utils/       — structlog configuration, retry decorator, fetch throttling

Quick start:
    import asyncio
    from censusdata_pipeline.pipelines.scheduler import run_seeds

    asyncio.run(run_seeds())              # everything, geography included
    asyncio.run(run_seeds("topics"))      # a single static seed

CLI:
    censusdata-seed seed
    censusdata-seed seed years.json
    censusdata-seed seed --mode full
    censusdata-seed status

Shared code from censusdata_shared:
    from censusdata_shared.config import settings
    from censusdata_shared.db import get_duckdb_connection
    from censusdata_shared.models import GeographyRecord, SummaryLevel
    from censusdata_shared.constants import SUMMARY_LEVEL_CODES
"""

__version__ = "0.1.0"
