"""Vault service: indexes the states relevant to this node.

The vault is notified synchronously when transactions are recorded. Every
subscribed observer is awaited before ``notify_all`` returns, so a query
issued right after recording sees the new outputs without polling.
"""

import logging
from collections.abc import Awaitable, Callable, Iterable

from .crypto import PublicKey
from .keys import MockKeyManagementService
from .models import (
    AbstractParty,
    ContractState,
    SignedTransaction,
    StateAndRef,
    StateRef,
    StatesToRecord,
    StateStatus,
    VaultUpdate,
)
from .ports import VaultStorePort
from .resolution import ServicesForResolution
from .service_registry import type_id

logger = logging.getLogger(__name__)

VaultObserver = Callable[[VaultUpdate], Awaitable[None]]


def state_class_name(data: ContractState) -> str:
    return type_id(type(data))


def state_owner_key(data: ContractState) -> PublicKey | None:
    """Owning key of an ownable state, or None for states without an owner."""
    owner = getattr(data, "owner", None)
    if isinstance(owner, AbstractParty):
        return owner.owning_key
    return None


class VaultService:
    """Tracks produced and consumed states and answers queries over them."""

    def __init__(
        self,
        key_management_service: MockKeyManagementService,
        services_for_resolution: ServicesForResolution,
        store: VaultStorePort,
    ):
        self.key_management_service = key_management_service
        self.services_for_resolution = services_for_resolution
        self.store = store
        self._observers: list[VaultObserver] = []

    def subscribe(self, observer: VaultObserver) -> None:
        """Add an observer of raw vault updates."""
        self._observers.append(observer)

    def _is_relevant(self, data: ContractState) -> bool:
        my_keys = self.key_management_service.keys
        return any(party.owning_key in my_keys for party in data.participants)

    async def notify_all(
        self, states_to_record: StatesToRecord, txs: Iterable[SignedTransaction]
    ) -> VaultUpdate:
        """Compute the update for a batch of transactions and publish it.

        Inputs already in the vault, or produced earlier in the same batch,
        are reported as consumed. Outputs are kept according to
        ``states_to_record``.

        Returns:
            The published update (empty when nothing changed).
        """
        batch = list(txs)
        if states_to_record is StatesToRecord.NONE or not batch:
            return VaultUpdate((), ())

        consumed: list[StateRef] = []
        produced: list[StateAndRef] = []
        produced_refs: set[StateRef] = set()
        for stx in batch:
            for ref in stx.inputs:
                if ref in produced_refs or await self.store.is_known(ref):
                    consumed.append(ref)
            for index, output in enumerate(stx.tx.outputs):
                if (
                    states_to_record is StatesToRecord.ONLY_RELEVANT
                    and not self._is_relevant(output.data)
                ):
                    continue
                ref = StateRef(stx.id, index)
                produced.append(StateAndRef(output, ref))
                produced_refs.add(ref)

        update = VaultUpdate(tuple(consumed), tuple(produced))
        if update.is_empty():
            return update

        logger.debug(
            f"Vault update: {len(update.produced)} produced, {len(update.consumed)} consumed",
            extra={"transactions": [str(stx.id) for stx in batch]},
        )
        for observer in self._observers:
            await observer(update)
        return update

    async def query_by(
        self,
        contract_state_type: type | None = None,
        status: StateStatus = StateStatus.UNCONSUMED,
        owner: AbstractParty | PublicKey | None = None,
    ) -> list[StateAndRef]:
        """States matching exact type, status and owner filters."""
        type_name = type_id(contract_state_type) if contract_state_type is not None else None
        owner_key = owner.owning_key if isinstance(owner, AbstractParty) else owner
        refs = await self.store.query_refs(type_name, status, owner_key)
        return self.services_for_resolution.load_states(refs)
