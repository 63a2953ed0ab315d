"""Shared fixtures for store adapter tests."""

import secrets

import pytest

from ledgermock.adapters.store.sqlite import SQLitePersistence
from ledgermock.config import DEFAULT_DATA_SOURCE_CLASS, DataSourceConfig


def memory_config(**kwargs) -> DataSourceConfig:
    """Config for a private in-memory store."""
    return DataSourceConfig(
        class_name=DEFAULT_DATA_SOURCE_CLASS,
        url=f"sqlite:mem:test_{secrets.token_hex(8)};LOCK_TIMEOUT=2000",
        **kwargs,
    )


@pytest.fixture
async def db() -> SQLitePersistence:
    """An open in-memory SQLite store, closed after the test."""
    persistence = SQLitePersistence(memory_config())
    await persistence.open()
    yield persistence
    await persistence.close()
