"""Tests for settings loading and data-source resolution."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from ledgermock.config import (
    BASE_DIRECTORY,
    DATA_SOURCE_KEYS,
    DATA_SOURCE_URL,
    DEFAULT_DATA_SOURCE_CLASS,
    NODE_ORGANIZATION_NAME,
    TRANSACTION_ISOLATION_LEVEL,
    Settings,
    TransactionIsolationLevel,
    db_schema_friendly_name,
    load_settings,
    make_test_data_source_properties,
    make_test_database_properties,
    merge_layers,
    resolve_data_source_config,
    resolve_data_source_properties,
    resolve_substitutions,
)
from ledgermock.core.errors import ConfigurationError


@pytest.fixture
def settings() -> Settings:
    """Settings with no provider and no environment overrides."""
    return Settings(_env_file=None)  # type: ignore[call-arg]


def fixed_name() -> str:
    return "f" * 64


class TestSettingsLoading:
    """Test configuration loading and validation."""

    def test_load_settings_with_defaults(self) -> None:
        """Load settings with default values."""
        with patch.dict(os.environ, {}, clear=True):
            settings = load_settings()
        assert settings.database_provider is None
        assert settings.data_source_url is None
        assert settings.log_level == "INFO"
        assert settings.log_format == "text"

    def test_load_settings_from_env(self) -> None:
        """Load settings from prefixed environment variables."""
        with patch.dict(
            os.environ,
            {
                "LEDGERMOCK_DATA_SOURCE_URL": "sqlite:mem:from_env",
                "LEDGERMOCK_DATABASE_TRANSACTION_ISOLATION_LEVEL": "SERIALIZABLE",
                "LEDGERMOCK_LOG_LEVEL": "DEBUG",
            },
        ):
            settings = load_settings()
        assert settings.data_source_url == "sqlite:mem:from_env"
        assert settings.database_transaction_isolation_level == "SERIALIZABLE"
        assert settings.log_level == "DEBUG"

    def test_load_settings_from_env_file(self, tmp_path: Path) -> None:
        env_file = tmp_path / "test.env"
        env_file.write_text("LEDGERMOCK_DATABASE_PROVIDER=postgres\n")
        with patch.dict(os.environ, {}, clear=True):
            settings = load_settings(str(env_file))
        assert settings.database_provider == "postgres"

    def test_unknown_isolation_level_rejected(self) -> None:
        with patch.dict(os.environ, {"LEDGERMOCK_DATABASE_TRANSACTION_ISOLATION_LEVEL": "SNAPSHOT"}):
            with pytest.raises(ConfigurationError, match="isolation level"):
                load_settings()

    def test_blank_provider_is_unset(self) -> None:
        with patch.dict(os.environ, {"LEDGERMOCK_DATABASE_PROVIDER": "  "}):
            assert load_settings().database_provider is None


class TestLayering:
    """Test layer merging and placeholder substitution."""

    def test_first_layer_wins(self) -> None:
        merged = merge_layers([{"a": 1}, {"a": 2, "b": 2}, {"c": 3}])
        assert merged == {"a": 1, "b": 2, "c": 3}

    def test_substitution(self) -> None:
        resolved = resolve_substitutions({"url": "sqlite:file:${dir}/db", "dir": "/tmp/${name}", "name": "x"})
        assert resolved["url"] == "sqlite:file:/tmp/x/db"

    def test_unknown_placeholder(self) -> None:
        with pytest.raises(ConfigurationError, match=r"\$\{missing\}"):
            resolve_substitutions({"url": "${missing}"})

    def test_circular_placeholder(self) -> None:
        with pytest.raises(ConfigurationError, match="Circular"):
            resolve_substitutions({"a": "${b}", "b": "${a}"})

    def test_friendly_name(self) -> None:
        assert db_schema_friendly_name("Bank of Ledger-1.0") == "BankofLedger_1_0"


class TestResolveDataSource:
    """Test data-source resolution for mock node stores."""

    def test_in_memory_default_for_instance(self, settings: Settings) -> None:
        config = resolve_data_source_config("Alice Corp", settings=settings)

        assert config.class_name == DEFAULT_DATA_SOURCE_CLASS
        assert config.url == (
            "sqlite:mem:Alice Corp_persistence;LOCK_TIMEOUT=10000;DB_CLOSE_ON_EXIT=FALSE"
        )
        assert config.user == "sa"
        assert config.password.get_secret_value() == ""
        assert config.isolation_level is TransactionIsolationLevel.READ_COMMITTED

    def test_postfix_extends_instance_name(self, settings: Settings) -> None:
        config = resolve_data_source_config("node", "2", settings=settings)
        assert config.url.startswith("sqlite:mem:node_2_persistence;")

    def test_generated_instance_name(self, settings: Settings) -> None:
        properties = resolve_data_source_properties(settings=settings, name_source=fixed_name)

        assert properties[DATA_SOURCE_URL].startswith(f"sqlite:mem:{fixed_name()}_persistence;")
        assert NODE_ORGANIZATION_NAME not in properties

    def test_random_names_differ(self, settings: Settings) -> None:
        first = resolve_data_source_config(settings=settings)
        second = resolve_data_source_config(settings=settings)
        assert first.url != second.url

    def test_fixed_layers_present(self, settings: Settings) -> None:
        properties = resolve_data_source_properties("Bank of Ledger", settings=settings)

        assert properties[BASE_DIRECTORY] == ""
        assert properties[NODE_ORGANIZATION_NAME] == "BankofLedger"

    def test_explicit_overrides_win_over_environment(self) -> None:
        with patch.dict(os.environ, {"LEDGERMOCK_DATA_SOURCE_USER": "env-user"}):
            settings = Settings(_env_file=None)  # type: ignore[call-arg]
            config = resolve_data_source_config(
                "node", overrides={"data_source_user": "override-user"}, settings=settings
            )
            env_only = resolve_data_source_config("node", settings=settings)

        assert config.user == "override-user"
        assert env_only.user == "env-user"

    def test_provider_file_layer(self, tmp_path: Path) -> None:
        (tmp_path / "filedb.toml").write_text(
            'data_source_url = "sqlite:file:${base_directory}/tmp/${node_organization_name}.db"\n'
            'database_schema = "${node_organization_name}"\n'
            'database_transaction_isolation_level = "SERIALIZABLE"\n'
        )
        settings = Settings(  # type: ignore[call-arg]
            _env_file=None, database_provider="filedb", database_provider_dir=str(tmp_path)
        )

        config = resolve_data_source_config("Alice Corp", settings=settings)

        assert config.url == "sqlite:file:/tmp/AliceCorp.db"
        assert config.schema_name == "AliceCorp"
        assert config.isolation_level is TransactionIsolationLevel.SERIALIZABLE
        assert config.user == "sa"

    def test_missing_provider_file_is_ignored(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        settings = Settings(  # type: ignore[call-arg]
            _env_file=None, database_provider="absent", database_provider_dir=str(tmp_path)
        )

        config = resolve_data_source_config("node", settings=settings)

        assert config.url.startswith("sqlite:mem:node_persistence")
        assert "not found" in caplog.text

    def test_blank_url_rejected(self, settings: Settings) -> None:
        with pytest.raises(ConfigurationError, match="Invalid data source configuration"):
            resolve_data_source_config("node", overrides={"data_source_url": ""}, settings=settings)

    def test_bad_isolation_override_rejected(self, settings: Settings) -> None:
        with pytest.raises(ConfigurationError):
            resolve_data_source_config(
                "node",
                overrides={"database_transaction_isolation_level": "CHAOS"},
                settings=settings,
            )

    def test_describe_hides_password(self, settings: Settings) -> None:
        config = resolve_data_source_config(
            "node", overrides={"data_source_password": "hunter2"}, settings=settings
        )
        assert "hunter2" not in config.describe()
        assert "hunter2" not in repr(config)


class TestTestProperties:
    """Test the flat property helpers."""

    def test_data_source_properties(self, settings: Settings) -> None:
        properties = make_test_data_source_properties("node", settings=settings)

        assert properties["dataSourceClassName"] == DEFAULT_DATA_SOURCE_CLASS
        assert properties["dataSource.url"].startswith("sqlite:mem:node_persistence")
        assert properties["dataSource.user"] == "sa"
        assert properties["autoCommit"] is False

    def test_database_properties(self, settings: Settings) -> None:
        config = make_test_database_properties("node", settings=settings)
        assert config.run_migration is True
        assert config.transaction_isolation_level is TransactionIsolationLevel.READ_COMMITTED


@pytest.mark.parametrize("key", DATA_SOURCE_KEYS)
def test_override_beats_every_lower_layer(key: str, tmp_path: Path) -> None:
    """An overridden key always resolves to the override's value."""
    (tmp_path / "provider.toml").write_text(f'{key} = "from-provider"\n')
    settings = Settings(  # type: ignore[call-arg]
        _env_file=None, database_provider="provider", database_provider_dir=str(tmp_path)
    )
    value = "READ_UNCOMMITTED" if key == TRANSACTION_ISOLATION_LEVEL else "from-override"

    properties = resolve_data_source_properties("node", overrides={key: value}, settings=settings)

    assert properties[key] == value
