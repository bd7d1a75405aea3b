"""Configuration management for Convex Bridge using Pydantic.

This module provides type-safe configuration models for the MongoDB source,
the Convex target, the geocoder, identifier mappings and run tuning.
"""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class PathConfig(BaseModel):
    """Configuration for file paths."""

    mappings_file: str = Field(
        default="config/mappings.yaml",
        description="Path to the identifier mappings file",
    )
    report_dir: str = Field(default="reports", description="Directory for migration reports")


class SourceStoreConfig(BaseModel):
    """Configuration for the MongoDB source store."""

    uri: str = Field(..., description="MongoDB connection string")
    database: str = Field(..., description="Database holding the legacy collections")
    users_collection: str = Field(default="users")
    tags_collection: str = Field(default="tagdatas")
    tag_refs_collection: str = Field(default="tagrefs")
    team_ids: list[str] = Field(
        default_factory=list,
        description="Source team ids whose tags are migrated (empty = all tags)",
    )
    reference_types: list[str] = Field(
        default_factory=lambda: ["property"],
        description="Tag reference types replayed by the association pass",
    )
    timeout_ms: int = Field(default=10000, ge=100, le=120000)

    @field_validator("uri")
    @classmethod
    def validate_uri(cls, v: str) -> str:
        """Validate MongoDB URI scheme."""
        if not v.startswith(("mongodb://", "mongodb+srv://")):
            raise ValueError("URI must start with mongodb:// or mongodb+srv://")
        return v

    @field_validator("reference_types")
    @classmethod
    def validate_reference_types(cls, v: list[str]) -> list[str]:
        """Only contact and property references can be linked."""
        invalid = sorted(set(v) - {"contact", "property"})
        if invalid:
            raise ValueError(f"Unsupported reference types: {', '.join(invalid)}")
        return v


class TargetConfig(BaseModel):
    """Configuration for the Convex deployment."""

    url: str = Field(..., description="Convex deployment URL")
    token: str = Field(..., description="Convex authentication token")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    timeout: int = Field(default=30, ge=1, le=600, description="API request timeout in seconds")

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate and normalize URL."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("URL must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("token")
    @classmethod
    def validate_token(cls, v: str) -> str:
        """Validate token is not empty."""
        if not v or v.strip() == "":
            raise ValueError("Token cannot be empty")
        return v


class GeocodingConfig(BaseModel):
    """Configuration for the Google Geocoding API."""

    api_key: str = Field(..., description="Google Maps API key with Geocoding enabled")
    url: str = Field(default="https://maps.googleapis.com/maps/api/geocode")
    timeout: int = Field(default=15, ge=1, le=120)
    rate_limit: int = Field(default=10, ge=0, le=50, description="Requests per second limit")

    @field_validator("api_key")
    @classmethod
    def validate_api_key(cls, v: str) -> str:
        """Validate key is not empty."""
        if not v or v.strip() == "":
            raise ValueError("API key cannot be empty")
        return v


class MappingsConfig(BaseModel):
    """Static source-to-target identifier tables."""

    model_config = ConfigDict(frozen=True)

    organizations: dict[str, str] = Field(default_factory=dict)
    users: dict[str, str] = Field(default_factory=dict)
    fallback_user_id: str | None = Field(
        default=None,
        description="Target user credited for records whose source user is not mapped",
    )


class PerformanceConfig(BaseModel):
    """Performance tuning configuration."""

    source_page_size: int = Field(default=500, ge=1, le=10000)
    target_page_size: int = Field(default=1000, ge=1, le=8192)
    write_delay_ms: int = Field(
        default=200, ge=0, le=60000, description="Pause after each successful write"
    )
    rate_limit: int = Field(default=20, ge=0, le=100, description="Requests per second limit")


class FunctionsConfig(BaseModel):
    """Convex function paths used by the migration."""

    viewer: str = "users:viewer"
    users_get_all: str = "users:getAll"
    users_create: str = "users:create"
    users_update: str = "users:update"
    properties_list: str = "properties:getProperties"
    properties_update: str = "properties:updateProperty"
    properties_by_mongo_id: str = "properties:getByMongoId"
    contacts_by_mongo_id: str = "contacts:getByMongoId"
    tags_get_all: str = "tags:getAll"
    tags_create: str = "tags:createTagFromMongo"
    tags_for_record: str = "tags:getTagsForRecord"
    tags_add_to_record: str = "tags:addTagToRecord"


class PhasesConfig(BaseModel):
    """Configuration for migration phases."""

    users: bool = Field(default=True)
    properties: bool = Field(default=True)
    tags: bool = Field(default=True)


class TagsConfig(BaseModel):
    """Tag migration options."""

    relink_existing: bool = Field(
        default=False,
        description="Replay associations for tags created by an earlier run",
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="WARNING", description="Console log level")
    file_level: str = Field(default="DEBUG", description="File log level")
    format: str = Field(default="json", description="Log file format (json or console)")
    file: str | None = Field(default="logs/migration.log", description="Log file path")
    log_payloads: bool = Field(
        default=False,
        description="Log request/response payloads at DEBUG level (secrets are redacted)",
    )
    max_payload_size: int = Field(default=10000, ge=100, le=1000000)

    @field_validator("level", "file_level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Log level must be one of: {', '.join(valid_levels)}")
        return v_upper

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate log format."""
        valid_formats = ["json", "console"]
        v_lower = v.lower()
        if v_lower not in valid_formats:
            raise ValueError(f"Log format must be one of: {', '.join(valid_formats)}")
        return v_lower


class MigrationConfig(BaseSettings):
    """Main migration configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CONVEX_BRIDGE_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    source: SourceStoreConfig = Field(..., description="MongoDB source configuration")
    target: TargetConfig = Field(..., description="Convex target configuration")
    geocoding: GeocodingConfig | None = Field(
        default=None, description="Geocoder configuration (required for properties)"
    )

    paths: PathConfig = Field(default_factory=PathConfig)
    mappings: MappingsConfig = Field(default_factory=MappingsConfig)
    performance: PerformanceConfig = Field(default_factory=PerformanceConfig)
    functions: FunctionsConfig = Field(default_factory=FunctionsConfig)
    phases: PhasesConfig = Field(default_factory=PhasesConfig)
    tags: TagsConfig = Field(default_factory=TagsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def load_mappings_from_file(self) -> "MigrationConfig":
        """Load identifier mappings from the configured file if none are inline."""
        inline = self.mappings.organizations or self.mappings.users
        if inline or not self.paths.mappings_file:
            return self

        mappings_path = Path(self.paths.mappings_file)
        if mappings_path.exists():
            self.mappings = load_mappings_from_yaml(mappings_path)
        return self


def load_mappings_from_yaml(mappings_path: str | Path) -> MappingsConfig:
    """Load identifier mapping tables from a YAML file.

    Expected layout::

        organizations:
          "<source org id>": "<target org id>"
        users:
          "<source user id>": "<target user id>"
        fallback_user_id: "<target user id>"

    Raises:
        ValueError: If the file is not a mapping
    """
    with open(mappings_path) as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"Mappings file must contain a mapping: {mappings_path}")

    # YAML may read unquoted ids as numbers
    return MappingsConfig(
        organizations={str(k): str(v) for k, v in (data.get("organizations") or {}).items()},
        users={str(k): str(v) for k, v in (data.get("users") or {}).items()},
        fallback_user_id=data.get("fallback_user_id"),
    )


def load_config_from_yaml(config_path: str | Path) -> MigrationConfig:
    """Load configuration from YAML file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        MigrationConfig: Loaded configuration

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config file is invalid
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path) as f:
        config_data = yaml.safe_load(f)

    if not config_data:
        raise ValueError(f"Empty configuration file: {config_path}")

    config_data = _expand_env_vars(config_data)

    return MigrationConfig(**config_data)


def _expand_env_vars(data: Any) -> Any:
    """Recursively expand ``${VAR_NAME}`` values from the environment.

    Raises:
        ValueError: If a referenced variable is not set
    """
    if isinstance(data, dict):
        return {k: _expand_env_vars(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    elif isinstance(data, str):
        if data.startswith("${") and data.endswith("}"):
            var_name = data[2:-1]
            env_value = os.environ.get(var_name)
            if env_value is None:
                raise ValueError(
                    f"Environment variable '{var_name}' not found. "
                    f"Please set it in your environment or .env file."
                )
            return env_value
        return data
    else:
        return data
