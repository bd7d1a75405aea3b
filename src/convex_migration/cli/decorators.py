"""
Decorators for CLI commands.

This module provides decorators for error handling and context passing.
"""

import functools
from collections.abc import Callable

import click
from pydantic import ValidationError

from convex_migration.cli.context import MigrationContext
from convex_migration.client.exceptions import (
    APIError,
    AuthenticationError,
    ConfigurationError,
    FatalMigrationError,
    NetworkError,
    SourceStoreError,
)
from convex_migration.utils.logging import get_logger

logger = get_logger(__name__)


def pass_context(f: Callable) -> Callable:
    """
    Decorator to pass MigrationContext to command function.

    Usage:
        @click.command()
        @pass_context
        def my_command(ctx: MigrationContext):
            print(ctx.config)
    """

    @click.pass_context
    @functools.wraps(f)
    def wrapper(click_ctx: click.Context, *args, **kwargs):
        migration_ctx: MigrationContext = click_ctx.obj
        return f(migration_ctx, *args, **kwargs)

    return wrapper


def handle_errors(f: Callable) -> Callable:
    """
    Decorator to handle fatal errors in CLI commands.

    Exit codes:
        0: Success
        1: General error
        2: Configuration error
        3: Authentication error
        4: API or network error
        6: Extraction or source store error
    """

    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)

        except click.exceptions.Exit:
            raise

        except (ConfigurationError, ValidationError) as e:
            logger.error("configuration_error", error=str(e))
            click.echo(f"Configuration Error: {e}", err=True)
            click.echo(
                "\nPlease check your configuration file and ensure all required fields are set.",
                err=True,
            )
            raise click.exceptions.Exit(2) from e

        except AuthenticationError as e:
            logger.error("authentication_error", error=str(e))
            click.echo(f"Authentication Error: {e}", err=True)
            click.echo("\nPlease verify the Convex token in the configuration file.", err=True)
            raise click.exceptions.Exit(3) from e

        except (APIError, NetworkError) as e:
            logger.error("api_error", error=str(e))
            click.echo(f"API Error: {e}", err=True)
            if getattr(e, "status_code", None):
                click.echo(f"\nResponse status: {e.status_code}", err=True)
            raise click.exceptions.Exit(4) from e

        except (FatalMigrationError, SourceStoreError) as e:
            logger.error("extraction_error", error=str(e))
            click.echo(f"Extraction Error: {e}", err=True)
            click.echo(
                "\nThe complete source or target record set could not be read. "
                "Nothing after the failed step was written.",
                err=True,
            )
            raise click.exceptions.Exit(6) from e

        except Exception as e:
            logger.error("unexpected_error", error=str(e), exc_info=True)
            click.echo(f"Unexpected Error: {e}", err=True)
            click.echo(
                "\nAn unexpected error occurred. Please check the logs for details.",
                err=True,
            )
            raise click.exceptions.Exit(1) from e

    return wrapper


def requires_config(f: Callable) -> Callable:
    """
    Decorator to ensure configuration is loaded.

    Loads and validates the configuration before executing the command.
    """

    @functools.wraps(f)
    def wrapper(ctx: MigrationContext, *args, **kwargs):
        if ctx.config_path is None:
            click.echo(
                "Error: Configuration file required. "
                "Use --config option or set CONVEX_BRIDGE_CONFIG.",
                err=True,
            )
            raise click.exceptions.Exit(2)

        try:
            _ = ctx.config
        except Exception as e:
            click.echo(f"Error loading configuration: {e}", err=True)
            raise click.exceptions.Exit(2) from e

        return f(ctx, *args, **kwargs)

    return wrapper
