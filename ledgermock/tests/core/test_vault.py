"""Unit tests for the vault service against the in-memory fake store."""

import pytest

from ledgermock.adapters.memory.attachments import MockAttachmentStorage
from ledgermock.adapters.memory.transactions import MockTransactionStorage
from ledgermock.adapters.modules.loader import ModuleLoader
from ledgermock.adapters.modules.provider import MockModuleProvider
from ledgermock.core.identity import make_test_identity_service
from ledgermock.core.keys import MockKeyManagementService
from ledgermock.core.models import (
    LegalName,
    SignedTransaction,
    StateRef,
    StatesToRecord,
    StateStatus,
    TestIdentity,
    TransactionState,
    VaultUpdate,
    WireTransaction,
    test_network_parameters,
)
from ledgermock.core.resolution import ServicesForResolution
from ledgermock.core.vault import VaultService, state_owner_key
from ledgermock.tests.fakes import FakeVaultStore
from ledgermock.tests.sample_app.contracts import (
    CASH_CONTRACT,
    NOTE_CONTRACT,
    CashState,
    NoteState,
)

ALICE = TestIdentity(LegalName("Alice Corp", "Madrid", "ES"))
BOB = TestIdentity(LegalName("Bob Plc", "Rome", "IT"))


@pytest.fixture
def storage() -> MockTransactionStorage:
    return MockTransactionStorage()


@pytest.fixture
def store() -> FakeVaultStore:
    return FakeVaultStore()


@pytest.fixture
def vault(storage: MockTransactionStorage, store: FakeVaultStore) -> VaultService:
    identity_service = make_test_identity_service(ALICE.identity, BOB.identity)
    attachments = MockAttachmentStorage()
    resolver = ServicesForResolution(
        identity_service,
        attachments,
        MockModuleProvider(ModuleLoader(), attachments),
        test_network_parameters(),
        storage,
    )
    kms = MockKeyManagementService(identity_service, ALICE.key_pair)
    service = VaultService(kms, resolver, store)
    service.subscribe(store.on_update)
    return service


def cash(amount: int, owner: TestIdentity) -> TransactionState:
    return TransactionState(CashState(amount, owner.party, ALICE.party), CASH_CONTRACT)


def record(storage: MockTransactionStorage, wtx: WireTransaction) -> SignedTransaction:
    stx = SignedTransaction(wtx)
    storage.add_transaction(stx)
    return stx


class TestNotifyAll:
    """Test update computation and publication."""

    @pytest.mark.asyncio
    async def test_relevant_outputs_are_produced(
        self, vault: VaultService, storage: MockTransactionStorage, store: FakeVaultStore
    ) -> None:
        stx = record(storage, WireTransaction(outputs=(cash(10, ALICE), cash(5, BOB))))

        update = await vault.notify_all(StatesToRecord.ONLY_RELEVANT, [stx])

        assert [p.ref for p in update.produced] == [StateRef(stx.id, 0)]
        assert store.updates == [update]

    @pytest.mark.asyncio
    async def test_all_visible_keeps_irrelevant_outputs(
        self, vault: VaultService, storage: MockTransactionStorage
    ) -> None:
        stx = record(storage, WireTransaction(outputs=(cash(10, ALICE), cash(5, BOB))))

        update = await vault.notify_all(StatesToRecord.ALL_VISIBLE, [stx])

        assert len(update.produced) == 2

    @pytest.mark.asyncio
    async def test_none_records_nothing(
        self, vault: VaultService, storage: MockTransactionStorage, store: FakeVaultStore
    ) -> None:
        stx = record(storage, WireTransaction(outputs=(cash(10, ALICE),)))

        update = await vault.notify_all(StatesToRecord.NONE, [stx])

        assert update.is_empty()
        assert store.updates == []

    @pytest.mark.asyncio
    async def test_empty_update_not_published(
        self, vault: VaultService, storage: MockTransactionStorage, store: FakeVaultStore
    ) -> None:
        stx = record(storage, WireTransaction(outputs=(cash(5, BOB),)))

        update = await vault.notify_all(StatesToRecord.ONLY_RELEVANT, [stx])

        assert update.is_empty()
        assert store.updates == []

    @pytest.mark.asyncio
    async def test_known_inputs_are_consumed(
        self, vault: VaultService, storage: MockTransactionStorage
    ) -> None:
        issue = record(storage, WireTransaction(outputs=(cash(10, ALICE),)))
        await vault.notify_all(StatesToRecord.ONLY_RELEVANT, [issue])
        unknown = StateRef(issue.id, 7)
        spend = record(
            storage,
            WireTransaction(inputs=(StateRef(issue.id, 0), unknown), outputs=(cash(10, BOB),)),
        )

        update = await vault.notify_all(StatesToRecord.ONLY_RELEVANT, [spend])

        assert update.consumed == (StateRef(issue.id, 0),)
        assert update.produced == ()

    @pytest.mark.asyncio
    async def test_outputs_consumed_within_same_batch(
        self, vault: VaultService, storage: MockTransactionStorage
    ) -> None:
        issue = record(storage, WireTransaction(outputs=(cash(10, ALICE),)))
        move = record(
            storage,
            WireTransaction(inputs=(StateRef(issue.id, 0),), outputs=(cash(10, ALICE),)),
        )

        update = await vault.notify_all(StatesToRecord.ONLY_RELEVANT, [issue, move])

        assert update.consumed == (StateRef(issue.id, 0),)
        assert [p.ref for p in update.produced] == [StateRef(issue.id, 0), StateRef(move.id, 0)]

    @pytest.mark.asyncio
    async def test_every_observer_is_awaited(
        self, vault: VaultService, storage: MockTransactionStorage
    ) -> None:
        seen: list[VaultUpdate] = []

        async def observer(update: VaultUpdate) -> None:
            seen.append(update)

        vault.subscribe(observer)
        stx = record(storage, WireTransaction(outputs=(cash(1, ALICE),)))

        update = await vault.notify_all(StatesToRecord.ONLY_RELEVANT, [stx])

        assert seen == [update]


class TestQueryBy:
    """Test vault queries."""

    @pytest.mark.asyncio
    async def test_unconsumed_by_type(
        self, vault: VaultService, storage: MockTransactionStorage
    ) -> None:
        note = TransactionState(NoteState("hello", (ALICE.party,)), NOTE_CONTRACT)
        stx = record(storage, WireTransaction(outputs=(cash(10, ALICE), note)))
        await vault.notify_all(StatesToRecord.ONLY_RELEVANT, [stx])

        cash_states = await vault.query_by(CashState)
        note_states = await vault.query_by(NoteState)

        assert [s.state.data.amount for s in cash_states] == [10]
        assert [s.state.data.text for s in note_states] == ["hello"]
        assert len(await vault.query_by()) == 2

    @pytest.mark.asyncio
    async def test_status_filter(self, vault: VaultService, storage: MockTransactionStorage) -> None:
        issue = record(storage, WireTransaction(outputs=(cash(10, ALICE),)))
        move = record(
            storage,
            WireTransaction(inputs=(StateRef(issue.id, 0),), outputs=(cash(10, ALICE),)),
        )
        await vault.notify_all(StatesToRecord.ONLY_RELEVANT, [issue])
        await vault.notify_all(StatesToRecord.ONLY_RELEVANT, [move])

        unconsumed = await vault.query_by(CashState)
        consumed = await vault.query_by(CashState, status=StateStatus.CONSUMED)
        everything = await vault.query_by(CashState, status=StateStatus.ALL)

        assert [s.ref for s in unconsumed] == [StateRef(move.id, 0)]
        assert [s.ref for s in consumed] == [StateRef(issue.id, 0)]
        assert len(everything) == 2

    @pytest.mark.asyncio
    async def test_owner_filter_accepts_party_or_key(
        self, vault: VaultService, storage: MockTransactionStorage
    ) -> None:
        stx = record(storage, WireTransaction(outputs=(cash(10, ALICE), cash(5, BOB))))
        await vault.notify_all(StatesToRecord.ALL_VISIBLE, [stx])

        by_party = await vault.query_by(CashState, owner=BOB.party)
        by_key = await vault.query_by(CashState, owner=BOB.public_key)

        assert [s.state.data.amount for s in by_party] == [5]
        assert by_key == by_party


def test_state_owner_key() -> None:
    assert state_owner_key(CashState(1, BOB.party, ALICE.party)) == BOB.public_key
    assert state_owner_key(NoteState("x", (BOB.party,))) is None
