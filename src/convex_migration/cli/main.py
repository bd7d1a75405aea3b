"""
Main CLI entry point for Convex Bridge.

This module provides the command-line interface for migrating legacy
MongoDB records into a Convex deployment.
"""

import sys
from pathlib import Path

import click
from dotenv import load_dotenv

from convex_migration import __version__
from convex_migration.cli.commands import config as config_commands
from convex_migration.cli.commands import count as count_commands
from convex_migration.cli.commands import migrate as migrate_commands
from convex_migration.cli.context import MigrationContext
from convex_migration.utils.logging import configure_logging, get_logger

# Load environment variables from .env file
load_dotenv()

logger = get_logger(__name__)


@click.group()
@click.version_option(version=__version__, prog_name="convex-bridge")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file",
    envvar="CONVEX_BRIDGE_CONFIG",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Console logging level (default: logging.level from the configuration, else WARNING)",
    envvar="CONVEX_BRIDGE_LOG_LEVEL",
)
@click.option(
    "--log-file",
    type=click.Path(path_type=Path),
    help="Log file path (default: logs/migration.log)",
    envvar="CONVEX_BRIDGE_LOG_FILE",
)
@click.pass_context
def cli(
    ctx: click.Context,
    config: Path | None,
    log_level: str | None,
    log_file: Path | None,
) -> None:
    """Convex Bridge - Migrate legacy MongoDB records into Convex.

    Moves users, geocodes properties, and recreates tags with their record
    links. Every phase can be re-run safely.

    Examples:

        # Validate configuration
        convex-bridge config validate --config config.yaml

        # Count source documents
        convex-bridge count --config config.yaml

        # Run every enabled phase
        convex-bridge migrate all --config config.yaml --report reports/run.json
    """
    effective_log_file = str(log_file) if log_file else "logs/migration.log"
    Path(effective_log_file).parent.mkdir(parents=True, exist_ok=True)

    configure_logging(level=log_level or "WARNING", log_file=effective_log_file)

    ctx.obj = MigrationContext(
        config_path=config,
        log_level=log_level,
        log_file=log_file,
    )

    logger.debug(
        "cli_initialized",
        config=str(config) if config else None,
        log_level=log_level,
    )


cli.add_command(config_commands.config)
cli.add_command(migrate_commands.migrate)
cli.add_command(count_commands.count)


def main() -> int:
    """Main entry point for CLI."""
    try:
        cli(standalone_mode=False)
        return 0
    except click.exceptions.Exit as e:
        return e.exit_code
    except click.ClickException as e:
        e.show()
        return e.exit_code
    except click.exceptions.Abort:
        click.echo("Aborted!", err=True)
        return 1
    except Exception as e:
        logger.error("unexpected_error", error=str(e), exc_info=True)
        click.echo(f"Error: {e}", err=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
