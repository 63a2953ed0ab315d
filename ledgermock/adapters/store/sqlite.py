"""SQLite persistence adapter.

Implements PersistencePort using SQLite with aiosqlite for async access.
The default mock-node store is a shared-cache in-memory database that lives
exactly as long as this adapter's connection is open.

URL forms:
- ``sqlite:mem:<name>[;KEY=VALUE...]``: named in-memory database
- ``sqlite:file:<path>[;KEY=VALUE...]``: database file

Recognised options: ``LOCK_TIMEOUT`` (milliseconds a writer waits for a
lock) and ``DB_CLOSE_ON_EXIT`` (accepted for compatibility; the database is
dropped when the last connection closes).
"""

import logging
import re
import urllib.parse
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import aiosqlite

from ledgermock.config import DataSourceConfig, TransactionIsolationLevel
from ledgermock.core.errors import ConfigurationError, ProvisioningError
from ledgermock.core.ports import ForeignKey, PersistencePort

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
DEFAULT_LOCK_TIMEOUT_MS = 10000


@dataclass(frozen=True)
class SQLiteTarget:
    """Where and how to connect, parsed from a data-source URL."""

    database: str
    uri: bool
    lock_timeout_ms: int
    in_memory: bool


def parse_sqlite_url(url: str) -> SQLiteTarget:
    """Parse a ``sqlite:`` data-source URL.

    Raises:
        ConfigurationError: If the URL is not a recognised SQLite URL.
    """
    target, *option_parts = url.split(";")
    options: dict[str, str] = {}
    for part in option_parts:
        if not part:
            continue
        key, sep, value = part.partition("=")
        if not sep:
            raise ConfigurationError(f"Malformed option {part!r} in data source URL {url!r}")
        options[key.strip().upper()] = value.strip()

    try:
        lock_timeout_ms = int(options.get("LOCK_TIMEOUT", DEFAULT_LOCK_TIMEOUT_MS))
    except ValueError as e:
        raise ConfigurationError(f"LOCK_TIMEOUT must be an integer in {url!r}") from e

    if target.startswith("sqlite:mem:"):
        name = target.removeprefix("sqlite:mem:")
        if not name:
            raise ConfigurationError(f"In-memory database name missing in {url!r}")
        database = f"file:{urllib.parse.quote(name)}?mode=memory&cache=shared"
        return SQLiteTarget(database, True, lock_timeout_ms, True)
    if target.startswith("sqlite:file:"):
        path = target.removeprefix("sqlite:file:")
        if not path:
            raise ConfigurationError(f"Database file path missing in {url!r}")
        return SQLiteTarget(path, False, lock_timeout_ms, False)
    raise ConfigurationError(f"Not a SQLite data source URL: {url!r}")


def _quote_identifier(name: str) -> str:
    if not _IDENTIFIER.match(name):
        raise ValueError(f"Invalid SQL identifier: {name!r}")
    return f'"{name}"'


class SQLitePersistence(PersistencePort):
    """Single-connection SQLite store with foreign keys enforced."""

    def __init__(self, config: DataSourceConfig):
        """Initialize the adapter without connecting.

        Args:
            config: Resolved data-source descriptor with a ``sqlite:`` URL.

        Raises:
            ConfigurationError: If the URL cannot be parsed.
        """
        self.config = config
        self.target = parse_sqlite_url(config.url)
        self._conn: aiosqlite.Connection | None = None

    async def open(self) -> None:
        if self._conn is not None:
            return
        if not self.target.uri:
            Path(self.target.database).parent.mkdir(parents=True, exist_ok=True)
        try:
            conn = await aiosqlite.connect(
                self.target.database,
                timeout=self.target.lock_timeout_ms / 1000,
                uri=self.target.uri,
                isolation_level=None,
            )
        except (aiosqlite.Error, OSError) as e:
            raise ProvisioningError(f"Cannot open SQLite store {self.config.url}: {e}") from e

        try:
            # Enable foreign keys
            await conn.execute("PRAGMA foreign_keys = ON")
            if self.config.isolation_level is TransactionIsolationLevel.READ_UNCOMMITTED:
                await conn.execute("PRAGMA read_uncommitted = 1")
        except aiosqlite.Error as e:
            await conn.close()
            raise ProvisioningError(f"Cannot configure SQLite store {self.config.url}: {e}") from e

        self._conn = conn
        logger.info(
            f"Opened SQLite store {self.target.database}",
            extra={"in_memory": self.target.in_memory},
        )

    async def close(self) -> None:
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        await conn.close()
        logger.info(f"Closed SQLite store {self.target.database}")

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def connection(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise ProvisioningError(f"SQLite store {self.config.url} is not open")
        return self._conn

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> None:
        await self.connection.execute(sql, tuple(params))

    async def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> list[tuple[Any, ...]]:
        cursor = await self.connection.execute(sql, tuple(params))
        try:
            rows = await cursor.fetchall()
        finally:
            await cursor.close()
        return [tuple(row) for row in rows]

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        conn = self.connection
        begin = "BEGIN"
        if self.config.isolation_level in (
            TransactionIsolationLevel.REPEATABLE_READ,
            TransactionIsolationLevel.SERIALIZABLE,
        ):
            begin = "BEGIN IMMEDIATE"
        await conn.execute(begin)
        try:
            yield
        except BaseException:
            await conn.execute("ROLLBACK")
            raise
        await conn.execute("COMMIT")

    async def list_tables(self) -> list[str]:
        rows = await self.fetch_all(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name NOT LIKE 'sqlite_%'"
        )
        return sorted(row[0].lower() for row in rows)

    async def foreign_keys(self, table: str) -> list[ForeignKey]:
        rows = await self.fetch_all(f"PRAGMA foreign_key_list({_quote_identifier(table)})")
        # (id, seq, table, from, to, on_update, on_delete, match)
        return [
            ForeignKey(
                table=table.lower(),
                column=row[3].lower(),
                referenced_table=row[2].lower(),
                referenced_column=(row[4] or "").lower(),
            )
            for row in rows
        ]
