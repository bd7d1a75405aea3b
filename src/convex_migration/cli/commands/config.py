"""
Configuration management commands.

This module provides commands for validating and displaying the
migration configuration.
"""

import click
import yaml

from convex_migration.cli.context import MigrationContext
from convex_migration.cli.decorators import handle_errors, pass_context, requires_config
from convex_migration.cli.utils import echo_info, echo_success, echo_warning, print_table
from convex_migration.config import MigrationConfig
from convex_migration.migration.coordinator import PHASE_ORDER, enabled_phases
from convex_migration.utils.logging import get_logger, sanitize_payload

logger = get_logger(__name__)


@click.group(name="config")
def config() -> None:
    """Configuration management commands.

    Validate and display migration configuration files.
    """


@config.command(name="validate")
@pass_context
@requires_config
@handle_errors
def validate(ctx: MigrationContext) -> None:
    """Validate migration configuration.

    Loading already checks required fields, URL schemes, tokens, page size
    bounds and log settings. This command also reports mapping coverage.

    Examples:

        convex-bridge config validate --config config.yaml
    """
    echo_info(f"Validating configuration: {ctx.config_path}")
    config = ctx.config

    click.echo()
    _display_config_summary(config)
    click.echo()
    _check_mappings(ctx)

    click.echo()
    echo_success("Configuration is valid!")


def _display_config_summary(config: MigrationConfig) -> None:
    """Display configuration summary."""
    selected = enabled_phases(config)
    rows = [
        ["Source Database", config.source.database],
        ["Target URL", config.target.url],
        ["Geocoder", config.geocoding.url if config.geocoding else "not configured"],
        ["Phases", ", ".join(p for p in PHASE_ORDER if p in selected) or "none"],
        ["Source Page Size", config.performance.source_page_size],
        ["Target Page Size", config.performance.target_page_size],
        ["Write Delay (ms)", config.performance.write_delay_ms],
        ["Rate Limit (req/s)", config.performance.rate_limit],
    ]

    print_table("Configuration Summary", ["Setting", "Value"], rows)

    if config.phases.properties and config.geocoding is None:
        echo_warning("No geocoding section: 'migrate properties' and 'migrate all' will fail.")


def _check_mappings(ctx: MigrationContext) -> None:
    mapper = ctx.mapper
    config = ctx.config

    echo_info(
        f"Mappings: {len(mapper.organizations)} organizations, {len(mapper.users)} users"
    )
    if not mapper.organizations:
        echo_warning("No organization mappings: every user and tag will be skipped.")
    if config.phases.tags and not mapper.users and not mapper.fallback_user_id:
        echo_warning("No user mappings or fallback user: tags will be created without a creator.")
    elif mapper.fallback_user_id:
        echo_warning(
            f"Tags from unmapped users will be attributed to {mapper.fallback_user_id}."
        )


@config.command(name="show")
@pass_context
@requires_config
@handle_errors
def show(ctx: MigrationContext) -> None:
    """Display current configuration.

    Shows the loaded configuration with sensitive values masked.

    Examples:

        convex-bridge config show --config config.yaml
    """
    config = ctx.config
    _display_config_summary(config)

    data = config.model_dump(exclude={"mappings"})
    data["source"]["uri"] = "[REDACTED]"
    click.echo()
    click.echo(yaml.safe_dump(sanitize_payload(data), sort_keys=False))
