"""PostgreSQL persistence adapter.

Implements PersistencePort using PostgreSQL with asyncpg for async access.
Selected by a provider file or override naming this class, for running the
same tests against a server-backed store. The configured schema is created
if needed and put first on the search path.
"""

import logging
import re
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from typing import Any

import asyncpg

from ledgermock.config import DataSourceConfig
from ledgermock.core.errors import ConfigurationError, ProvisioningError
from ledgermock.core.ports import ForeignKey, PersistencePort

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
CONNECT_TIMEOUT_SECONDS = 10.0


def to_positional_params(sql: str) -> str:
    """Rewrite ``?`` placeholders as asyncpg's ``$1, $2, ...``."""
    counter = 0

    def replace(_: re.Match[str]) -> str:
        nonlocal counter
        counter += 1
        return f"${counter}"

    return re.sub(r"\?", replace, sql)


class PostgreSQLPersistence(PersistencePort):
    """Single-connection PostgreSQL store."""

    def __init__(self, config: DataSourceConfig):
        """Initialize the adapter without connecting.

        Args:
            config: Resolved data-source descriptor with a ``postgresql://`` URL.

        Raises:
            ConfigurationError: If the URL or schema name is unusable.
        """
        if not config.url.startswith(("postgresql://", "postgres://")):
            raise ConfigurationError(f"Not a PostgreSQL data source URL: {config.url!r}")
        if config.schema_name and not _IDENTIFIER.match(config.schema_name):
            raise ConfigurationError(f"Invalid schema name: {config.schema_name!r}")
        self.config = config
        self._conn: asyncpg.Connection | None = None

    async def open(self) -> None:
        if self._conn is not None:
            return
        try:
            conn = await asyncpg.connect(
                dsn=self.config.url,
                user=self.config.user or None,
                password=self.config.password.get_secret_value() or None,
                timeout=CONNECT_TIMEOUT_SECONDS,
            )
        except (asyncpg.PostgresError, OSError, TimeoutError) as e:
            raise ProvisioningError(f"Cannot open PostgreSQL store {self.config.url}: {e}") from e

        try:
            if self.config.schema_name:
                await conn.execute(f'CREATE SCHEMA IF NOT EXISTS "{self.config.schema_name}"')
                await conn.execute(f'SET search_path TO "{self.config.schema_name}"')
        except asyncpg.PostgresError as e:
            await conn.close()
            raise ProvisioningError(
                f"Cannot prepare schema {self.config.schema_name}: {e}"
            ) from e

        self._conn = conn
        logger.info(f"Opened PostgreSQL store {self.config.url}")

    async def close(self) -> None:
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        await conn.close()
        logger.info(f"Closed PostgreSQL store {self.config.url}")

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def connection(self) -> asyncpg.Connection:
        if self._conn is None:
            raise ProvisioningError(f"PostgreSQL store {self.config.url} is not open")
        return self._conn

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> None:
        await self.connection.execute(to_positional_params(sql), *params)

    async def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> list[tuple[Any, ...]]:
        rows = await self.connection.fetch(to_positional_params(sql), *params)
        return [tuple(row) for row in rows]

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        isolation = self.config.isolation_level.value.lower()
        async with self.connection.transaction(isolation=isolation):
            yield

    async def list_tables(self) -> list[str]:
        rows = await self.fetch_all(
            """
            SELECT table_name FROM information_schema.tables
            WHERE table_schema = current_schema() AND table_type = 'BASE TABLE'
            """
        )
        return sorted(row[0].lower() for row in rows)

    async def foreign_keys(self, table: str) -> list[ForeignKey]:
        rows = await self.fetch_all(
            """
            SELECT kcu.column_name, ccu.table_name, ccu.column_name
            FROM information_schema.table_constraints tc
            JOIN information_schema.key_column_usage kcu
              ON tc.constraint_name = kcu.constraint_name
             AND tc.table_schema = kcu.table_schema
            JOIN information_schema.constraint_column_usage ccu
              ON tc.constraint_name = ccu.constraint_name
             AND tc.table_schema = ccu.table_schema
            WHERE tc.constraint_type = 'FOREIGN KEY'
              AND tc.table_schema = current_schema()
              AND tc.table_name = ?
            """,
            (table.lower(),),
        )
        return [
            ForeignKey(
                table=table.lower(),
                column=row[0].lower(),
                referenced_table=row[1].lower(),
                referenced_column=row[2].lower(),
            )
            for row in rows
        ]
