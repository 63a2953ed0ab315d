"""Configuration loading for ledgermock.

This module provides centralized configuration management:
- Load settings from environment variables and .env files
- Validate configuration using pydantic
- Resolve the data-source descriptor for a mock node's store by layering
  runtime overrides, a provider file, fixed overrides, the node's
  organisation name and an in-memory default
"""

import logging
import re
import secrets
from collections.abc import Callable, Mapping, Sequence
from enum import Enum
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict, TomlConfigSettingsSource

from ledgermock.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

DATA_SOURCE_CLASS_NAME = "data_source_class_name"
DATA_SOURCE_URL = "data_source_url"
DATA_SOURCE_USER = "data_source_user"
DATA_SOURCE_PASSWORD = "data_source_password"
DATABASE_SCHEMA = "database_schema"
TRANSACTION_ISOLATION_LEVEL = "database_transaction_isolation_level"

DATA_SOURCE_KEYS = (
    DATA_SOURCE_CLASS_NAME,
    DATA_SOURCE_URL,
    DATA_SOURCE_USER,
    DATA_SOURCE_PASSWORD,
    DATABASE_SCHEMA,
    TRANSACTION_ISOLATION_LEVEL,
)

NODE_ORGANIZATION_NAME = "node_organization_name"
BASE_DIRECTORY = "base_directory"

DEFAULT_DATA_SOURCE_CLASS = "ledgermock.adapters.store.sqlite.SQLitePersistence"

_PLACEHOLDER = re.compile(r"\$\{([A-Za-z0-9_]+)\}")


class TransactionIsolationLevel(str, Enum):
    """Isolation level applied to store transactions."""

    READ_UNCOMMITTED = "READ_UNCOMMITTED"
    READ_COMMITTED = "READ_COMMITTED"
    REPEATABLE_READ = "REPEATABLE_READ"
    SERIALIZABLE = "SERIALIZABLE"


class Settings(BaseSettings):
    """Process-wide configuration loaded from the environment.

    Uses pydantic-settings for environment variable handling with
    .env file support. The data-source fields are the runtime override
    layer of the data-source resolution; unset fields do not override.
    """

    model_config = SettingsConfigDict(
        env_prefix="LEDGERMOCK_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database provider file selection
    database_provider: str | None = Field(
        default=None,
        description="Name of the provider file (without .toml) to layer under overrides",
    )
    database_provider_dir: str = Field(
        default=".",
        description="Directory searched for <database_provider>.toml",
    )

    # Data-source runtime overrides
    data_source_class_name: str | None = Field(
        default=None,
        description="Dotted path of the persistence adapter class",
    )
    data_source_url: str | None = Field(
        default=None,
        description="Store URL, e.g. sqlite:mem:<name> or postgresql://host/db",
    )
    data_source_user: str | None = Field(default=None, description="Store user")
    data_source_password: str | None = Field(default=None, description="Store password")
    database_schema: str | None = Field(default=None, description="Store schema name")
    database_transaction_isolation_level: str | None = Field(
        default=None,
        description="READ_UNCOMMITTED, READ_COMMITTED, REPEATABLE_READ or SERIALIZABLE",
    )

    # Logging configuration
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Log level",
    )
    log_format: Literal["json", "text"] = Field(
        default="text",
        description="Log format",
    )

    @field_validator("database_transaction_isolation_level")
    @classmethod
    def validate_isolation_level(cls, v: str | None) -> str | None:
        """Ensure the isolation level names a known level."""
        if v is not None and v not in TransactionIsolationLevel.__members__:
            raise ValueError(f"unknown transaction isolation level: {v}")
        return v

    @field_validator("database_provider")
    @classmethod
    def validate_provider(cls, v: str | None) -> str | None:
        """Treat an empty provider name as unset."""
        if v is not None and not v.strip():
            return None
        return v


def load_settings(env_file: str | None = None) -> Settings:
    """Load settings from environment.

    Args:
        env_file: Optional path to .env file. If not provided,
                 uses the default .env in the current directory.

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If settings validation fails.
    """
    try:
        if env_file:
            return Settings(_env_file=env_file)  # type: ignore[call-arg]
        return Settings()
    except ValidationError as e:
        raise ConfigurationError(f"Invalid ledgermock settings: {e}") from e


class DataSourceConfig(BaseModel):
    """Resolved data-source descriptor. Never mutated after resolution."""

    model_config = ConfigDict(frozen=True)

    class_name: str
    url: str
    user: str = ""
    password: SecretStr = SecretStr("")
    schema_name: str = ""
    isolation_level: TransactionIsolationLevel = TransactionIsolationLevel.READ_COMMITTED

    @field_validator("class_name", "url")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        """Ensure required properties are not blank."""
        if not v or not v.strip():
            raise ValueError("must be a non-empty string")
        return v

    def describe(self) -> str:
        """One-line description safe for logs (no password)."""
        schema = f" schema={self.schema_name}" if self.schema_name else ""
        return f"{self.class_name} url={self.url} user={self.user}{schema}"


class DatabaseConfig(BaseModel):
    """How the store should be prepared and used."""

    model_config = ConfigDict(frozen=True)

    run_migration: bool = True
    transaction_isolation_level: TransactionIsolationLevel = TransactionIsolationLevel.READ_COMMITTED
    schema_name: str = ""


def random_instance_name() -> str:
    """256-bit random hex, unique across concurrent test runs."""
    return secrets.token_hex(32)


def db_schema_friendly_name(name: str) -> str:
    return name.replace(" ", "").replace("-", "_").replace(".", "_")


def in_memory_data_source_layer(instance_name: str, postfix: str | None = None) -> dict[str, Any]:
    """Default descriptor for a private in-memory SQLite store."""
    instance = f"{instance_name}_{postfix}" if postfix is not None else instance_name
    return {
        DATA_SOURCE_CLASS_NAME: DEFAULT_DATA_SOURCE_CLASS,
        DATA_SOURCE_URL: (
            f"sqlite:mem:{instance}_persistence;LOCK_TIMEOUT=10000;DB_CLOSE_ON_EXIT=FALSE"
        ),
        DATA_SOURCE_USER: "sa",
        DATA_SOURCE_PASSWORD: "",
    }


def provider_file_layer(settings: Settings) -> dict[str, Any]:
    """Contents of ``<database_provider>.toml``; empty if unset or missing."""
    if settings.database_provider is None:
        return {}
    path = Path(settings.database_provider_dir) / f"{settings.database_provider}.toml"
    if not path.is_file():
        logger.warning(f"Database provider file {path} not found, ignoring")
        return {}
    try:
        return dict(TomlConfigSettingsSource(Settings, toml_file=path)())
    except ValueError as e:
        raise ConfigurationError(f"Cannot parse database provider file {path}: {e}") from e


def runtime_override_layer(
    settings: Settings, overrides: Mapping[str, Any] | None = None
) -> dict[str, Any]:
    """Explicit overrides first, then data-source values set in the environment."""
    layer = {
        key: getattr(settings, key)
        for key in DATA_SOURCE_KEYS
        if getattr(settings, key) is not None
    }
    layer.update(overrides or {})
    return layer


def merge_layers(layers: Sequence[Mapping[str, Any]]) -> dict[str, Any]:
    """Merge layers given highest priority first; the first to define a key wins."""
    merged: dict[str, Any] = {}
    for layer in layers:
        for key, value in layer.items():
            merged.setdefault(key, value)
    return merged


def _substitute(key: str, merged: Mapping[str, Any], resolving: tuple[str, ...]) -> Any:
    value = merged[key]
    if not isinstance(value, str):
        return value

    def replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name in resolving:
            raise ConfigurationError(
                f"Circular substitution {' -> '.join((*resolving, name))}"
            )
        if name not in merged:
            raise ConfigurationError(f"Unresolved substitution ${{{name}}} in {key}")
        return str(_substitute(name, merged, (*resolving, name)))

    return _PLACEHOLDER.sub(replace, value)


def resolve_substitutions(merged: Mapping[str, Any]) -> dict[str, Any]:
    """Replace ``${name}`` placeholders with values from the merged layers.

    Raises:
        ConfigurationError: On unknown or circular placeholders.
    """
    return {key: _substitute(key, merged, (key,)) for key in merged}


def resolve_data_source_properties(
    instance_name: str | None = None,
    postfix: str | None = None,
    *,
    overrides: Mapping[str, Any] | None = None,
    settings: Settings | None = None,
    name_source: Callable[[], str] = random_instance_name,
) -> dict[str, Any]:
    """Merge the five configuration layers and resolve placeholders.

    Args:
        instance_name: Name of the mock node (usually its organisation).
            Drawn from ``name_source`` when omitted.
        postfix: Extra suffix for the in-memory instance name.
        overrides: Highest-priority values, above the environment.
        settings: Settings to read the environment layers from.
        name_source: Uniqueness source for generated instance names.
    """
    settings = settings if settings is not None else load_settings()
    organisation_layer: dict[str, Any] = {}
    if instance_name is not None:
        organisation_layer[NODE_ORGANIZATION_NAME] = db_schema_friendly_name(instance_name)
    default_instance = instance_name if instance_name is not None else name_source()

    layers = [
        runtime_override_layer(settings, overrides),
        provider_file_layer(settings),
        {BASE_DIRECTORY: ""},
        organisation_layer,
        in_memory_data_source_layer(default_instance, postfix),
    ]
    return resolve_substitutions(merge_layers(layers))


def data_source_config_from_properties(properties: Mapping[str, Any]) -> DataSourceConfig:
    """Build the frozen descriptor from resolved properties.

    Raises:
        ConfigurationError: If a property is missing or malformed.
    """
    values: dict[str, Any] = {
        "class_name": properties.get(DATA_SOURCE_CLASS_NAME, ""),
        "url": properties.get(DATA_SOURCE_URL, ""),
        "user": properties.get(DATA_SOURCE_USER, ""),
        "password": properties.get(DATA_SOURCE_PASSWORD, ""),
        "schema_name": properties.get(DATABASE_SCHEMA, ""),
    }
    if properties.get(TRANSACTION_ISOLATION_LEVEL):
        values["isolation_level"] = properties[TRANSACTION_ISOLATION_LEVEL]
    try:
        return DataSourceConfig(**values)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid data source configuration: {e}") from e


def resolve_data_source_config(
    instance_name: str | None = None,
    postfix: str | None = None,
    *,
    overrides: Mapping[str, Any] | None = None,
    settings: Settings | None = None,
    name_source: Callable[[], str] = random_instance_name,
) -> DataSourceConfig:
    """Resolve the data-source descriptor for a mock node's store."""
    properties = resolve_data_source_properties(
        instance_name,
        postfix,
        overrides=overrides,
        settings=settings,
        name_source=name_source,
    )
    config = data_source_config_from_properties(properties)
    logger.debug(f"Resolved data source: {config.describe()}")
    return config


def make_test_data_source_properties(
    node_name: str | None = None,
    node_name_extension: str | None = None,
    **kwargs: Any,
) -> dict[str, Any]:
    """Data-source properties in the flat form JDBC-style pools expect."""
    config = resolve_data_source_config(node_name, node_name_extension, **kwargs)
    return {
        "dataSourceClassName": config.class_name,
        "dataSource.url": config.url,
        "dataSource.user": config.user,
        "dataSource.password": config.password.get_secret_value(),
        "autoCommit": False,
    }


def make_test_database_properties(node_name: str | None = None, **kwargs: Any) -> DatabaseConfig:
    """Database preparation settings for a mock node's store."""
    config = resolve_data_source_config(node_name, **kwargs)
    return DatabaseConfig(
        run_migration=True,
        transaction_isolation_level=config.isolation_level,
        schema_name=config.schema_name,
    )


__all__ = [
    "DataSourceConfig",
    "DatabaseConfig",
    "Settings",
    "TransactionIsolationLevel",
    "load_settings",
    "make_test_data_source_properties",
    "make_test_database_properties",
    "resolve_data_source_config",
]
