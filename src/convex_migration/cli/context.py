"""
CLI context for Convex Bridge.

This module provides the context object that is passed to all CLI commands,
holding the lazily loaded configuration and identifier mapper.
"""

from dataclasses import dataclass, field
from pathlib import Path

from convex_migration.client.exceptions import ConfigurationError
from convex_migration.config import MigrationConfig, load_config_from_yaml
from convex_migration.migration.mapping import IdentifierMapper
from convex_migration.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


@dataclass
class MigrationContext:
    """
    Context object for CLI commands.

    Attributes:
        config_path: Path to configuration file
        log_level: Console logging level
        log_file: Optional log file path
    """

    config_path: Path | None = None
    log_level: str | None = None
    log_file: Path | None = None

    # Lazy-loaded attributes
    _config: MigrationConfig | None = field(default=None, init=False, repr=False)
    _mapper: IdentifierMapper | None = field(default=None, init=False, repr=False)

    @property
    def config(self) -> MigrationConfig:
        """Get or load migration configuration."""
        if self._config is None:
            if self.config_path is None:
                raise ConfigurationError(
                    "Configuration file path not provided. "
                    "Use --config option or set CONVEX_BRIDGE_CONFIG environment variable."
                )

            logger.debug("loading_configuration", config_path=str(self.config_path))
            self._config = load_config_from_yaml(self.config_path)
            logging_config = self._config.logging
            configure_logging(
                level=self.log_level or logging_config.level,
                log_format=logging_config.format,
                log_file=str(self.log_file) if self.log_file else logging_config.file,
                file_level=logging_config.file_level,
            )
            logger.debug("configuration_loaded")

        return self._config

    @property
    def mapper(self) -> IdentifierMapper:
        """Identifier mapper built from the loaded mappings."""
        if self._mapper is None:
            self._mapper = IdentifierMapper.from_config(self.config.mappings)
        return self._mapper
