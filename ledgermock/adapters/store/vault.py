"""Durable vault state index.

Implements VaultStorePort over a PersistencePort. Subscribed to the vault's
raw updates, it mirrors produced and consumed states into ``vault_states``
and answers reference queries from that table.
"""

import logging
from collections.abc import Callable
from datetime import UTC, datetime

from ledgermock.core.crypto import PublicKey, SecureHash
from ledgermock.core.models import StateRef, StateStatus, VaultUpdate
from ledgermock.core.ports import PersistencePort, VaultStorePort
from ledgermock.core.vault import state_class_name, state_owner_key

logger = logging.getLogger(__name__)

UNCONSUMED = 0
CONSUMED = 1


def _utc_now() -> datetime:
    return datetime.now(UTC)


class PersistentVaultStore(VaultStorePort):
    """Vault index kept in the mock node's relational store."""

    def __init__(self, db: PersistencePort, clock: Callable[[], datetime] = _utc_now):
        self.db = db
        self.clock = clock

    async def _next_seq(self) -> int:
        row = await self.db.fetch_one("SELECT COALESCE(MAX(record_seq), 0) FROM vault_states")
        return int(row[0]) + 1 if row is not None else 1

    async def on_update(self, update: VaultUpdate) -> None:
        now = self.clock().isoformat()
        async with self.db.transaction():
            seq = await self._next_seq()
            for produced in update.produced:
                owner = state_owner_key(produced.state.data)
                await self.db.execute(
                    """
                    INSERT INTO vault_states
                    (transaction_id, output_index, contract_state_class_name, contract,
                     owner_key, state_status, recorded_timestamp, consumed_timestamp, record_seq)
                    VALUES (?, ?, ?, ?, ?, ?, ?, NULL, ?)
                    ON CONFLICT (transaction_id, output_index) DO NOTHING
                    """,
                    (
                        str(produced.ref.txhash),
                        produced.ref.index,
                        state_class_name(produced.state.data),
                        produced.state.contract,
                        owner.encoded.hex() if owner is not None else None,
                        UNCONSUMED,
                        now,
                        seq,
                    ),
                )
                seq += 1
            for ref in update.consumed:
                await self.db.execute(
                    """
                    UPDATE vault_states
                    SET state_status = ?, consumed_timestamp = ?
                    WHERE transaction_id = ? AND output_index = ? AND state_status = ?
                    """,
                    (CONSUMED, now, str(ref.txhash), ref.index, UNCONSUMED),
                )
        logger.debug(
            f"Mirrored vault update: {len(update.produced)} produced, "
            f"{len(update.consumed)} consumed"
        )

    async def query_refs(
        self,
        contract_state_type: str | None = None,
        status: StateStatus = StateStatus.UNCONSUMED,
        owner: PublicKey | None = None,
    ) -> list[StateRef]:
        clauses: list[str] = []
        params: list[object] = []
        if contract_state_type is not None:
            clauses.append("contract_state_class_name = ?")
            params.append(contract_state_type)
        if status is StateStatus.UNCONSUMED:
            clauses.append("state_status = ?")
            params.append(UNCONSUMED)
        elif status is StateStatus.CONSUMED:
            clauses.append("state_status = ?")
            params.append(CONSUMED)
        if owner is not None:
            clauses.append("owner_key = ?")
            params.append(owner.encoded.hex())

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = await self.db.fetch_all(
            f"SELECT transaction_id, output_index FROM vault_states {where} ORDER BY record_seq",
            params,
        )
        return [StateRef(SecureHash.parse(row[0]), int(row[1])) for row in rows]

    async def is_known(self, ref: StateRef) -> bool:
        row = await self.db.fetch_one(
            "SELECT 1 FROM vault_states WHERE transaction_id = ? AND output_index = ?",
            (str(ref.txhash), ref.index),
        )
        return row is not None

    async def count(self, status: StateStatus = StateStatus.ALL) -> int:
        return len(await self.query_refs(status=status))
