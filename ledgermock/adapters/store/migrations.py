"""Schema changesets and the runner that applies them.

Each changeset carries a precondition. When the precondition does not hold
the changeset is recorded as run without executing (``OnFail.MARK_RAN``),
so applying the set to an up-to-date or partially legacy schema is safe.
Applied and marked changesets are recorded in ``schema_changelog``; a
changeset already recorded is never looked at again.

A changeset may also declare a conflict check. A conflict means the schema
is in a state no legacy layout explains. Conflicts of every pending
changeset are checked against the schema as found, before any changeset
runs, and migration stops with ProvisioningError rather than guess.
"""

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from ledgermock.core.errors import ProvisioningError
from ledgermock.core.ports import PersistencePort

logger = logging.getLogger(__name__)

CHANGELOG_TABLE = "schema_changelog"


class OnFail(Enum):
    """What to do when a changeset's precondition does not hold."""

    MARK_RAN = "MARK_RAN"
    HALT = "HALT"


@dataclass(frozen=True)
class TableExists:
    """Precondition: ``table`` exists."""

    table: str

    async def holds(self, db: PersistencePort) -> bool:
        return await db.table_exists(self.table)

    def __str__(self) -> str:
        return f"table {self.table} exists"


@dataclass(frozen=True)
class TableMissing:
    """Precondition: ``table`` does not exist."""

    table: str

    async def holds(self, db: PersistencePort) -> bool:
        return not await db.table_exists(self.table)

    def __str__(self) -> str:
        return f"table {self.table} does not exist"


@dataclass(frozen=True)
class AllOf:
    """Precondition: every part holds."""

    parts: tuple["Precondition", ...]

    async def holds(self, db: PersistencePort) -> bool:
        for part in self.parts:
            if not await part.holds(db):
                return False
        return True

    def __str__(self) -> str:
        return " and ".join(str(part) for part in self.parts)


@dataclass(frozen=True)
class AnyOf:
    """Precondition: at least one part holds."""

    parts: tuple["Precondition", ...]

    async def holds(self, db: PersistencePort) -> bool:
        for part in self.parts:
            if await part.holds(db):
                return True
        return False

    def __str__(self) -> str:
        return "(" + " or ".join(str(part) for part in self.parts) + ")"


Precondition = TableExists | TableMissing | AllOf | AnyOf


@dataclass(frozen=True)
class Changeset:
    """One schema change."""

    id: str
    statements: tuple[str, ...]
    precondition: Precondition | None = None
    on_fail: OnFail = OnFail.MARK_RAN
    conflict: Precondition | None = None


@dataclass
class MigrationResult:
    """Outcome of one migrate() call."""

    executed: list[str] = field(default_factory=list)
    marked_ran: list[str] = field(default_factory=list)
    already_applied: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.executed or self.marked_ran)


LEGACY_CONTRACTS_TABLE = "node_attchments_contracts"
INTERMEDIATE_CONTRACTS_TABLE = "node_attachments_contract_class_name"
CONTRACTS_TABLE = "node_attachments_contracts"
SIGNERS_TABLE = "node_attachments_signers"

CHANGESETS: tuple[Changeset, ...] = (
    Changeset(
        id="create-node-transactions",
        precondition=TableMissing("node_transactions"),
        statements=(
            """
            CREATE TABLE node_transactions (
                tx_id VARCHAR(64) NOT NULL PRIMARY KEY,
                transaction_value BYTEA,
                status CHAR(1) NOT NULL
            )
            """,
        ),
    ),
    Changeset(
        id="create-node-attachments",
        precondition=TableMissing("node_attachments"),
        statements=(
            """
            CREATE TABLE node_attachments (
                att_id VARCHAR(64) NOT NULL PRIMARY KEY,
                uploader VARCHAR(255),
                filename VARCHAR(255),
                insertion_date VARCHAR(64) NOT NULL
            )
            """,
        ),
    ),
    Changeset(
        id="create-vault-states",
        precondition=TableMissing("vault_states"),
        statements=(
            """
            CREATE TABLE vault_states (
                transaction_id VARCHAR(64) NOT NULL,
                output_index INTEGER NOT NULL,
                contract_state_class_name VARCHAR(255) NOT NULL,
                contract VARCHAR(255) NOT NULL,
                owner_key VARCHAR(128),
                state_status INTEGER NOT NULL,
                recorded_timestamp VARCHAR(64) NOT NULL,
                consumed_timestamp VARCHAR(64),
                record_seq INTEGER NOT NULL,
                PRIMARY KEY (transaction_id, output_index)
            )
            """,
            "CREATE INDEX vault_states_owner_idx ON vault_states(owner_key)",
            "CREATE INDEX vault_states_status_idx ON vault_states(state_status)",
        ),
    ),
    Changeset(
        id="rename-attachments-contracts-legacy",
        precondition=TableExists(LEGACY_CONTRACTS_TABLE),
        conflict=AllOf(
            (
                TableExists(LEGACY_CONTRACTS_TABLE),
                AnyOf((TableExists(INTERMEDIATE_CONTRACTS_TABLE), TableExists(CONTRACTS_TABLE))),
            )
        ),
        statements=(
            f"ALTER TABLE {LEGACY_CONTRACTS_TABLE} RENAME TO {INTERMEDIATE_CONTRACTS_TABLE}",
        ),
    ),
    Changeset(
        id="rename-attachments-contracts-canonical",
        precondition=TableExists(INTERMEDIATE_CONTRACTS_TABLE),
        conflict=AllOf((TableExists(INTERMEDIATE_CONTRACTS_TABLE), TableExists(CONTRACTS_TABLE))),
        statements=(
            f"ALTER TABLE {INTERMEDIATE_CONTRACTS_TABLE} RENAME TO {CONTRACTS_TABLE}",
        ),
    ),
    Changeset(
        id="create-attachments-contracts",
        precondition=TableMissing(CONTRACTS_TABLE),
        statements=(
            f"""
            CREATE TABLE {CONTRACTS_TABLE} (
                att_id VARCHAR(64) NOT NULL,
                contract_class_name VARCHAR(255) NOT NULL,
                FOREIGN KEY (att_id) REFERENCES node_attachments(att_id)
            )
            """,
        ),
    ),
    Changeset(
        id="create-attachments-signers",
        precondition=TableMissing(SIGNERS_TABLE),
        statements=(
            f"""
            CREATE TABLE {SIGNERS_TABLE} (
                att_id VARCHAR(64) NOT NULL,
                signer VARCHAR(1024) NOT NULL,
                FOREIGN KEY (att_id) REFERENCES node_attachments(att_id)
            )
            """,
        ),
    ),
)


class SchemaMigrator:
    """Applies changesets in order, recording each in the changelog."""

    def __init__(self, db: PersistencePort, changesets: tuple[Changeset, ...] = CHANGESETS):
        self.db = db
        self.changesets = changesets

    async def _ensure_changelog(self) -> None:
        if not await self.db.table_exists(CHANGELOG_TABLE):
            await self.db.execute(
                f"""
                CREATE TABLE {CHANGELOG_TABLE} (
                    id VARCHAR(255) NOT NULL PRIMARY KEY,
                    outcome VARCHAR(16) NOT NULL,
                    applied_at VARCHAR(64) NOT NULL
                )
                """
            )

    async def applied_ids(self) -> set[str]:
        rows = await self.db.fetch_all(f"SELECT id FROM {CHANGELOG_TABLE}")
        return {row[0] for row in rows}

    async def _record(self, changeset: Changeset, outcome: str) -> None:
        await self.db.execute(
            f"INSERT INTO {CHANGELOG_TABLE} (id, outcome, applied_at) VALUES (?, ?, ?)",
            (changeset.id, outcome, datetime.now(UTC).isoformat()),
        )

    async def _check_conflicts(self, pending: list[Changeset]) -> None:
        for changeset in pending:
            if changeset.conflict is not None and await changeset.conflict.holds(self.db):
                raise ProvisioningError(
                    f"Changeset {changeset.id} conflicts with existing schema: {changeset.conflict}"
                )

    async def _apply(self, changeset: Changeset, result: MigrationResult) -> None:
        if changeset.precondition is not None and not await changeset.precondition.holds(self.db):
            if changeset.on_fail is OnFail.HALT:
                raise ProvisioningError(
                    f"Precondition of changeset {changeset.id} failed: {changeset.precondition}"
                )
            async with self.db.transaction():
                await self._record(changeset, OnFail.MARK_RAN.value)
            result.marked_ran.append(changeset.id)
            logger.debug(f"Changeset {changeset.id} marked ran ({changeset.precondition} is false)")
            return

        async with self.db.transaction():
            for statement in changeset.statements:
                await self.db.execute(statement)
            await self._record(changeset, "EXECUTED")
        result.executed.append(changeset.id)
        logger.info(f"Applied changeset {changeset.id}")

    async def migrate(self) -> MigrationResult:
        """Bring the schema up to date.

        Raises:
            ProvisioningError: On a conflicting schema or a failing statement.
        """
        result = MigrationResult()
        try:
            await self._ensure_changelog()
            applied = await self.applied_ids()
            pending = [c for c in self.changesets if c.id not in applied]
            result.already_applied.extend(c.id for c in self.changesets if c.id in applied)
            await self._check_conflicts(pending)
            for changeset in pending:
                await self._apply(changeset, result)
        except ProvisioningError:
            raise
        except Exception as e:
            raise ProvisioningError(f"Schema migration failed: {e}") from e

        logger.info(
            f"Schema migration complete: {len(result.executed)} executed, "
            f"{len(result.marked_ran)} marked ran, {len(result.already_applied)} already applied"
        )
        return result
