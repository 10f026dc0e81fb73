"""
cli.py — Click CLI entrypoint for the seeder.

Usage:
    censusdata-seed init-db
    censusdata-seed seed
    censusdata-seed seed summary_levels.json
    censusdata-seed seed --mode full
    censusdata-seed status
"""

from __future__ import annotations

import asyncio
import sys

import click
import duckdb
import structlog

from censusdata_shared.config import settings

log = structlog.get_logger(__name__)


@click.group()
@click.option(
    "--log-level",
    default=settings.log_level,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Log level",
)
@click.option(
    "--log-format",
    default=settings.log_format,
    type=click.Choice(["console", "json"]),
    help="Log output format",
)
def main(log_level: str, log_format: str) -> None:
    """censusdata seed runner."""
    from censusdata_pipeline.utils.logging import configure_logging

    configure_logging(log_level=log_level, log_format=log_format)


@main.command("init-db")
def init_db() -> None:
    """Create the seed tables in the configured database if missing."""
    from censusdata_shared.db import apply_schema, get_duckdb_connection, reset_duckdb_connection

    try:
        try:
            apply_schema(get_duckdb_connection())
        finally:
            reset_duckdb_connection()
    except duckdb.Error as exc:
        click.echo(f"Schema setup failed: {exc}", err=True)
        sys.exit(1)
    click.echo(f"Schema ready: {settings.duckdb_path}")


@main.command()
@click.argument("target", required=False)
@click.option(
    "--mode",
    type=click.Choice(["standard", "full"]),
    default=None,
    help="Geography depth; defaults to SEED_MODE.",
)
def seed(target: str | None, mode: str | None) -> None:
    """
    Run every seed, or only the static seed named TARGET (name or file).

    The tables must exist; run init-db first on a fresh database.
    """
    from censusdata_pipeline.pipelines.scheduler import run_seeds

    try:
        results = asyncio.run(run_seeds(target, mode=mode))  # type: ignore[arg-type]
    except Exception as exc:
        log.error("seeding_failed", error=str(exc), error_type=type(exc).__name__)
        click.echo(f"Seeding failed: {exc}", err=True)
        sys.exit(1)

    written = sum(r.records_written for r in results)
    skipped = sum(1 for r in results if r.skipped)
    click.echo(
        f"Seeding complete: {len(results)} pass(es), {written} record(s) written, "
        f"{skipped} skipped."
    )


@main.command()
def status() -> None:
    """Show the years flagged for geography import and the API ledger size."""
    from censusdata_shared.db import get_duckdb_connection, reset_duckdb_connection
    from censusdata_pipeline.loaders.ledger import ApiCallLedger
    from censusdata_pipeline.pipelines.scheduler import get_available_years

    click.echo(f"Seed database: {settings.duckdb_path}")
    try:
        conn = get_duckdb_connection()
        try:
            years = get_available_years(conn)
            ledger_size = ApiCallLedger(conn).count()
        finally:
            reset_duckdb_connection()
    except duckdb.Error as exc:
        click.echo(f"  Error fetching status: {exc}", err=True)
        sys.exit(1)

    if years:
        click.echo("  Geography import years: " + ", ".join(str(y) for y, _ in years))
    else:
        click.echo("  No years flagged for geography import.")
    click.echo(f"  API calls recorded: {ledger_size}")


if __name__ == "__main__":
    main()
