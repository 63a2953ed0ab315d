"""Port interfaces for the ledgermock service hub.

These abstract base classes define the boundaries between the core
services and the adapters that back them. Implementations live in the
adapters/ package; in-memory fakes live in tests/fakes.

Port Interface Categories:

1. **Storage Ports** (core calls out to adapters)
   - PersistencePort: Connection to the relational store
   - TransactionStoragePort: Recorded transactions by id
   - AttachmentStoragePort: Content-addressed attachments
   - VaultStorePort: Durable state index, fed by vault updates

2. **Module Ports**
   - ModuleProviderPort: Application modules and contract attachments
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from typing import Any

from .crypto import PublicKey, SecureHash
from .models import (
    AppModule,
    SignedTransaction,
    StateRef,
    StateStatus,
    VaultUpdate,
)


@dataclass(frozen=True)
class ForeignKey:
    """A foreign key as reported by the store's catalogue."""

    table: str
    column: str
    referenced_table: str
    referenced_column: str


# ============================================================================
# STORAGE PORTS
# ============================================================================


class PersistencePort(ABC):
    """Port for the relational store behind a database-backed mock node.

    SQL passed to this port uses ``?`` placeholders; adapters translate
    to their driver's parameter style.

    Implementations must handle:
    - Opening and closing exactly one live connection
    - Transactions with the configured isolation level
    - Catalogue queries used by the schema migrator
    """

    @abstractmethod
    async def open(self) -> None:
        """Open the connection.

        Raises:
            ProvisioningError: If the store is unreachable.
        """

    @abstractmethod
    async def close(self) -> None:
        """Close the connection. Safe to call more than once."""

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """True between a successful open() and close()."""

    @property
    @abstractmethod
    def connection(self) -> Any:
        """The live driver connection.

        Raises:
            ProvisioningError: If the store has not been opened.
        """

    @abstractmethod
    async def execute(self, sql: str, params: Sequence[Any] = ()) -> None:
        """Execute a statement outside of any explicit result handling."""

    @abstractmethod
    async def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> list[tuple[Any, ...]]:
        """Run a query and return every row as a tuple."""

    async def fetch_one(self, sql: str, params: Sequence[Any] = ()) -> tuple[Any, ...] | None:
        """Run a query and return the first row, or None."""
        rows = await self.fetch_all(sql, params)
        return rows[0] if rows else None

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[None]:
        """Context manager committing on success and rolling back on error."""

    @abstractmethod
    async def list_tables(self) -> list[str]:
        """Names of the user tables in the configured schema, lower case."""

    async def table_exists(self, name: str) -> bool:
        return name.lower() in await self.list_tables()

    @abstractmethod
    async def foreign_keys(self, table: str) -> list[ForeignKey]:
        """Foreign keys declared on ``table``."""


class TransactionStoragePort(ABC):
    """Port for recorded transactions."""

    @abstractmethod
    def add_transaction(self, transaction: SignedTransaction) -> bool:
        """Store a transaction.

        Returns:
            True if the transaction was new, False if it was already stored.
        """

    @abstractmethod
    def get_transaction(self, tx_id: SecureHash) -> SignedTransaction | None:
        """Look up a transaction by id, or None."""

    @abstractmethod
    def __len__(self) -> int:
        """Number of stored transactions."""


class AttachmentStoragePort(ABC):
    """Port for content-addressed attachment storage."""

    @abstractmethod
    def import_attachment(
        self, data: bytes, uploader: str = "test", filename: str | None = None
    ) -> SecureHash:
        """Store attachment bytes and return their hash. Idempotent."""

    @abstractmethod
    def open_attachment(self, attachment_id: SecureHash) -> bytes | None:
        """Attachment bytes by id, or None."""

    @abstractmethod
    def has_attachment(self, attachment_id: SecureHash) -> bool:
        """True if an attachment with this id was imported."""


class VaultStorePort(ABC):
    """Port for the durable state index behind the vault.

    The store observes vault updates and answers reference queries;
    resolving references to states is the vault's job.
    """

    @abstractmethod
    async def on_update(self, update: VaultUpdate) -> None:
        """Mirror an update: insert produced states, mark consumed ones."""

    @abstractmethod
    async def query_refs(
        self,
        contract_state_type: str | None = None,
        status: StateStatus = StateStatus.UNCONSUMED,
        owner: PublicKey | None = None,
    ) -> list[StateRef]:
        """References matching the filters, in record order."""

    @abstractmethod
    async def is_known(self, ref: StateRef) -> bool:
        """True if the state was ever recorded."""


# ============================================================================
# MODULE PORTS
# ============================================================================


class ModuleProviderPort(ABC):
    """Port for application modules known to the mock node."""

    @property
    @abstractmethod
    def modules(self) -> Sequence[AppModule]:
        """Loaded and mock application modules."""

    @abstractmethod
    def get_contract_attachment_id(self, contract_class_name: str) -> SecureHash | None:
        """Attachment id of the module containing the contract, or None."""
