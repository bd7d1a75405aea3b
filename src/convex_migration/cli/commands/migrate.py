"""
Migration execution commands.

This module provides commands for running the users, properties and tags
phases against the configured MongoDB source and Convex deployment.
"""

import asyncio
from datetime import UTC, datetime
from pathlib import Path

import click

from convex_migration.cli.context import MigrationContext
from convex_migration.cli.decorators import handle_errors, pass_context, requires_config
from convex_migration.cli.utils import console, echo_info, echo_success, echo_warning, step_progress
from convex_migration.migration.coordinator import PHASE_ORDER, enabled_phases, run_migration
from convex_migration.reporting.report import MigrationReport, build_summary_table
from convex_migration.utils.logging import get_logger

logger = get_logger(__name__)

report_option = click.option(
    "--report",
    "report_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Write a JSON summary report to this path",
)


def _run_phases(ctx: MigrationContext, phases: list[str], report_path: Path | None) -> None:
    """Run the given phases and print the summary."""
    config = ctx.config
    if not phases:
        echo_warning("No phases enabled in the configuration; nothing to do.")
        return

    echo_info(f"Running phases: {', '.join(phases)}")
    started_at = datetime.now(UTC)

    with step_progress(f"Migrating {', '.join(phases)}"):
        stats = asyncio.run(run_migration(config, phases))

    report = MigrationReport(stats, phases, started_at)
    console.print(build_summary_table(stats))

    if report_path:
        report.generate_json(report_path)
        echo_info(f"Report written to {report_path}")

    logger.info("migration_finished", phases=phases, totals=report.totals())

    if stats.has_errors:
        echo_warning(
            f"{report.totals()['errored']} records failed. "
            "Re-running is safe: migrated records are detected and skipped."
        )
    else:
        echo_success("Migration completed")


@click.group(name="migrate")
def migrate() -> None:
    """Run migration phases.

    Phases run in the order users, properties, tags. Each one is safe to
    re-run: records already present on the target are skipped.
    """


@migrate.command(name="users")
@report_option
@pass_context
@requires_config
@handle_errors
def users(ctx: MigrationContext, report_path: Path | None) -> None:
    """Create or update users from the legacy users collection.

    Examples:

        convex-bridge migrate users --config config.yaml
    """
    _run_phases(ctx, ["users"], report_path)


@migrate.command(name="properties")
@report_option
@pass_context
@requires_config
@handle_errors
def properties(ctx: MigrationContext, report_path: Path | None) -> None:
    """Geocode the addresses of existing properties.

    Examples:

        convex-bridge migrate properties --config config.yaml
    """
    _run_phases(ctx, ["properties"], report_path)


@migrate.command(name="tags")
@report_option
@pass_context
@requires_config
@handle_errors
def tags(ctx: MigrationContext, report_path: Path | None) -> None:
    """Create tags and link them to their records.

    Examples:

        convex-bridge migrate tags --config config.yaml
    """
    _run_phases(ctx, ["tags"], report_path)


@migrate.command(name="all")
@report_option
@pass_context
@requires_config
@handle_errors
def all_phases(ctx: MigrationContext, report_path: Path | None) -> None:
    """Run every phase enabled in the configuration.

    Examples:

        convex-bridge migrate all --config config.yaml --report reports/run.json
    """
    selected = enabled_phases(ctx.config)
    _run_phases(ctx, [phase for phase in PHASE_ORDER if phase in selected], report_path)
