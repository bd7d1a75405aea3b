"""
Source record counting command.
"""

import asyncio

import click

from convex_migration.cli.context import MigrationContext
from convex_migration.cli.decorators import handle_errors, pass_context, requires_config
from convex_migration.cli.utils import print_table, step_progress
from convex_migration.migration.coordinator import count_source_records


@click.command(name="count")
@pass_context
@requires_config
@handle_errors
def count(ctx: MigrationContext) -> None:
    """Count the legacy documents each phase would read.

    Tags are counted with the configured team filter, references with the
    configured reference types.

    Examples:

        convex-bridge count --config config.yaml
    """
    with step_progress("Counting source documents"):
        counts = asyncio.run(count_source_records(ctx.config))

    print_table("Source Documents", ["Collection", "Documents"], [[k, f"{v:,}"] for k, v in counts.items()])
