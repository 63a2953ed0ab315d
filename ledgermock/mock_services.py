"""Composition root: an in-memory service hub for testing application code.

This module is the ONLY location that imports both core services and
concrete adapter implementations. MockServices has enough functionality to
test code that builds, signs and records transactions, resolves states and
looks up application services. It does not simulate a network.

Wiring order:
1. Application module loader (packages to scan)
2. Data store (only for ``with_database``)
3. Identity service and key management
4. Vault (only for ``with_database``)
5. Application service registry

Every instance needs at least an identity of its own. The builders below
cover the usual ways of supplying one; all of them end in the single
``MockServices.__init__``.
"""

import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from datetime import UTC, datetime
from typing import Any, TypeVar

from ledgermock.adapters.memory.attachments import MockAttachmentStorage
from ledgermock.adapters.memory.transactions import MockTransactionStorage
from ledgermock.adapters.modules.loader import ModuleLoader, caller_package
from ledgermock.adapters.modules.provider import MockModuleProvider
from ledgermock.adapters.store.provisioning import provision_database
from ledgermock.adapters.store.vault import PersistentVaultStore
from ledgermock.config import Settings, random_instance_name, resolve_data_source_config
from ledgermock.core.crypto import KeyPair, PublicKey, SecureHash
from ledgermock.core.errors import UnsupportedOperation
from ledgermock.core.identity import InMemoryIdentityService, make_test_identity_service
from ledgermock.core.keys import MockKeyManagementService
from ledgermock.core.models import (
    LegalName,
    NetworkParameters,
    NodeInfo,
    RegistryState,
    SignedTransaction,
    StateAndRef,
    StateRef,
    StatesToRecord,
    TestIdentity,
    TransactionState,
    WireTransaction,
    test_network_parameters,
)
from ledgermock.core.ports import PersistencePort, TransactionStoragePort
from ledgermock.core.resolution import ServicesForResolution
from ledgermock.core.service_registry import ServiceRegistry
from ledgermock.core.vault import VaultService

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_IDENTITY_NAME = LegalName("TestIdentity", "", "GB")
MOCK_NODE_ADDRESS = "mock.node.services:10000"


class MockServices:
    """Service hub for unit tests of contract and workflow code.

    Without a backing store the vault and ``db_session`` are unavailable and
    recording a transaction only stores it. Use ``with_database`` for a hub
    with a migrated store and a vault.
    """

    def __init__(
        self,
        module_loader: ModuleLoader,
        validated_transactions: TransactionStoragePort,
        identity_service: InMemoryIdentityService,
        network_parameters: NetworkParameters,
        initial_identity: TestIdentity,
        more_keys: Sequence[KeyPair] = (),
    ):
        """Wire the hub's services.

        Args:
            module_loader: Application modules to expose.
            validated_transactions: Storage for recorded transactions.
            identity_service: Identities this node knows about.
            network_parameters: Network parameters to report.
            initial_identity: The identity this node represents.
            more_keys: Extra key pairs held by key management.
        """
        self.module_loader = module_loader
        self.attachments = MockAttachmentStorage()
        self.module_provider = MockModuleProvider(
            module_loader,
            self.attachments,
            network_parameters.whitelisted_contract_implementations,
        )
        self.validated_transactions = validated_transactions
        self.identity_service = identity_service
        self.network_parameters = network_parameters
        self.initial_identity = initial_identity
        self.more_keys = tuple(more_keys)
        self.key_management_service = MockKeyManagementService(
            identity_service, initial_identity.key_pair, *self.more_keys
        )
        self.services_for_resolution = ServicesForResolution(
            identity_service,
            self.attachments,
            self.module_provider,
            network_parameters,
            validated_transactions,
        )
        self._vault_service = self._make_vault_service()
        self.app_services = ServiceRegistry()

        logger.info(
            f"Mock services created for {initial_identity.name}",
            extra={
                "identity": str(initial_identity.name),
                "modules": [module.name for module in module_loader.modules],
                "state": self.state.value,
            },
        )

    def _make_vault_service(self) -> VaultService | None:
        return None

    # ------------------------------------------------------------------
    # Builders
    # ------------------------------------------------------------------

    @classmethod
    def for_identity(
        cls,
        packages: Sequence[str],
        initial_identity: TestIdentity,
        identity_service: InMemoryIdentityService,
        *more_keys: KeyPair,
        network_parameters: NetworkParameters | None = None,
    ) -> "MockServices":
        """Scan ``packages`` and represent ``initial_identity``."""
        return cls(
            ModuleLoader.create_with_packages(packages),
            MockTransactionStorage(),
            identity_service,
            network_parameters or test_network_parameters(),
            initial_identity,
            more_keys,
        )

    @classmethod
    def for_name_and_key(
        cls,
        packages: Sequence[str],
        name: LegalName,
        key: KeyPair,
        *more_keys: KeyPair,
        identity_service: InMemoryIdentityService | None = None,
    ) -> "MockServices":
        """Represent ``name`` with the given key pair."""
        return cls.for_identity(
            packages,
            TestIdentity(name, key),
            identity_service or make_test_identity_service(),
            *more_keys,
        )

    @classmethod
    def for_name(
        cls,
        packages: Sequence[str],
        name: LegalName = DEFAULT_IDENTITY_NAME,
        identity_service: InMemoryIdentityService | None = None,
    ) -> "MockServices":
        """Represent ``name`` with a freshly generated key pair."""
        return cls.for_identity(
            packages, TestIdentity(name), identity_service or make_test_identity_service()
        )

    @classmethod
    def for_caller(
        cls,
        caller_module: str,
        name: LegalName,
        *keys: KeyPair,
        identity_service: InMemoryIdentityService | None = None,
    ) -> "MockServices":
        """Scan the package of ``caller_module`` (pass ``__name__``).

        The first key, if any, is the identity's key; the rest are extra keys.
        """
        packages = [caller_package(caller_module)]
        if keys:
            return cls.for_name_and_key(
                packages, name, keys[0], *keys[1:], identity_service=identity_service
            )
        return cls.for_name(packages, name, identity_service)

    @classmethod
    def from_identities(
        cls, caller_module: str, first_identity: TestIdentity, *more_identities: TestIdentity
    ) -> "MockServices":
        """Represent ``first_identity`` and know about all given identities.

        This is the most convenient builder: the identity service is derived
        from the identities and the caller's package is scanned.
        """
        identities = (first_identity, *more_identities)
        identity_service = make_test_identity_service(*(i.identity for i in identities))
        return cls.for_identity(
            [caller_package(caller_module)], first_identity, identity_service
        )

    @classmethod
    def default(cls, caller_module: str) -> "MockServices":
        """Default identity, empty identity service, caller's package."""
        return cls.for_name([caller_package(caller_module)])

    @classmethod
    async def with_database(
        cls,
        packages: Sequence[str],
        initial_identity: TestIdentity,
        identity_service: InMemoryIdentityService,
        *more_keys: KeyPair,
        network_parameters: NetworkParameters | None = None,
        settings: Settings | None = None,
        overrides: Mapping[str, Any] | None = None,
        instance_name: str | None = None,
        postfix: str | None = None,
        name_source: Callable[[], str] = random_instance_name,
    ) -> "DatabaseMockServices":
        """Build a hub backed by a provisioned store with an active vault.

        The store is named after the identity's organisation with a postfix
        drawn from ``name_source``, so every hub gets a store of its own. Pass
        ``instance_name`` (and optionally ``postfix``) to open a named store
        instead; hubs opening the same named store share its vault rows.
        Close the hub (or use ``async with``) to release the store.

        Raises:
            ConfigurationError: If the data-source configuration is invalid.
            ProvisioningError: If the store cannot be opened or migrated.
        """
        loader = ModuleLoader.create_with_packages(packages)
        if instance_name is None and postfix is None:
            postfix = name_source()
        config = resolve_data_source_config(
            instance_name or initial_identity.name.organisation,
            postfix,
            overrides=overrides,
            settings=settings,
            name_source=name_source,
        )
        database, _ = await provision_database(config)
        try:
            return DatabaseMockServices(
                loader,
                MockTransactionStorage(),
                identity_service,
                network_parameters or test_network_parameters(),
                initial_identity,
                more_keys,
                database=database,
            )
        except Exception:
            await database.close()
            raise

    # ------------------------------------------------------------------
    # Node information
    # ------------------------------------------------------------------

    @property
    def state(self) -> RegistryState:
        return RegistryState.CONSTRUCTED_NO_STORE

    @property
    def my_info(self) -> NodeInfo:
        return NodeInfo(
            addresses=(MOCK_NODE_ADDRESS,),
            legal_identities_and_certs=(self.initial_identity.identity,),
            platform_version=1,
            serial=1,
        )

    @property
    def clock(self) -> datetime:
        return datetime.now(UTC)

    # ------------------------------------------------------------------
    # Capabilities a mock node does not have
    # ------------------------------------------------------------------

    @property
    def vault_service(self) -> VaultService:
        if self._vault_service is None:
            raise UnsupportedOperation("Vault requires MockServices.with_database()")
        return self._vault_service

    @property
    def contract_upgrade_service(self) -> Any:
        raise UnsupportedOperation("Contract upgrades are not supported by MockServices")

    @property
    def network_map_cache(self) -> Any:
        raise UnsupportedOperation("MockServices has no network map")

    def register_unload_handler(self, run_on_stop: Callable[[], None]) -> None:
        raise UnsupportedOperation("MockServices does not run unload handlers")

    def db_session(self) -> Any:
        """Live connection backing the store.

        Raises:
            UnsupportedOperation: If built without a store.
        """
        raise UnsupportedOperation("No database session: MockServices was built without a store")

    # ------------------------------------------------------------------
    # Transactions and states
    # ------------------------------------------------------------------

    async def record_transactions(
        self,
        txs: Iterable[SignedTransaction],
        states_to_record: StatesToRecord = StatesToRecord.ONLY_RELEVANT,
    ) -> list[SignedTransaction]:
        """Add each transaction to transaction storage.

        Returns:
            The transactions as recorded, in order.
        """
        batch = list(txs)
        for stx in batch:
            self.validated_transactions.add_transaction(stx)
        logger.debug(f"Recorded {len(batch)} transactions")
        return batch

    def load_state(self, ref: StateRef) -> TransactionState:
        """Raises UnresolvedReference if ``ref`` cannot be resolved."""
        return self.services_for_resolution.load_state(ref)

    def load_states(self, refs: Iterable[StateRef]) -> list[StateAndRef]:
        """Raises UnresolvedReference naming the first unresolvable ref."""
        return self.services_for_resolution.load_states(refs)

    def sign_initial_transaction(
        self, tx: WireTransaction, public_key: PublicKey | None = None
    ) -> SignedTransaction:
        """Sign ``tx`` with this node's key (or ``public_key``)."""
        key = public_key or self.initial_identity.public_key
        signature = self.key_management_service.sign(tx.id.digest, key)
        return SignedTransaction(tx, (signature,))

    # ------------------------------------------------------------------
    # Application modules and services
    # ------------------------------------------------------------------

    def add_mock_module(self, contract_class_name: str) -> SecureHash:
        """Make ``contract_class_name`` resolvable without scanning a package."""
        return self.module_provider.add_mock_module(contract_class_name)

    def app_service(self, service_type: type[T]) -> T:
        """Registered instance of ``service_type``.

        Raises:
            InvalidServiceType: If the type is not a ledger service.
            ServiceNotFound: If no instance was registered.
        """
        return self.app_services.get(service_type)

    def register_service(self, instance: Any) -> None:
        self.app_services.register(type(instance), instance)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Release resources. Nothing to release without a store."""

    async def __aenter__(self) -> "MockServices":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()


class DatabaseMockServices(MockServices):
    """MockServices with a provisioned store and an active vault.

    Owns the persistence handle: it is open from construction until
    ``close()``.
    """

    def __init__(
        self,
        module_loader: ModuleLoader,
        validated_transactions: TransactionStoragePort,
        identity_service: InMemoryIdentityService,
        network_parameters: NetworkParameters,
        initial_identity: TestIdentity,
        more_keys: Sequence[KeyPair] = (),
        *,
        database: PersistencePort,
    ):
        self.database = database
        self.vault_store = PersistentVaultStore(database)
        super().__init__(
            module_loader,
            validated_transactions,
            identity_service,
            network_parameters,
            initial_identity,
            more_keys,
        )

    def _make_vault_service(self) -> VaultService:
        vault = VaultService(
            self.key_management_service, self.services_for_resolution, self.vault_store
        )
        vault.subscribe(self.vault_store.on_update)
        return vault

    @property
    def state(self) -> RegistryState:
        return RegistryState.CONSTRUCTED_WITH_STORE

    def db_session(self) -> Any:
        return self.database.connection

    async def record_transactions(
        self,
        txs: Iterable[SignedTransaction],
        states_to_record: StatesToRecord = StatesToRecord.ONLY_RELEVANT,
    ) -> list[SignedTransaction]:
        """Store the transactions, then notify the vault with the whole batch.

        The vault and its store are updated before this returns, so the next
        query sees the recorded outputs.
        """
        batch = await super().record_transactions(txs, states_to_record)
        await self.vault_service.notify_all(states_to_record, batch)
        return batch

    async def close(self) -> None:
        await self.database.close()


class MockAppServiceHub:
    """Service hub handed to application service constructors.

    Delegates everything to the wrapped MockServices; starting flows is not
    possible from a mock node.
    """

    def __init__(self, service_hub: MockServices):
        self.service_hub = service_hub

    def __getattr__(self, name: str) -> Any:
        return getattr(self.service_hub, name)

    def start_flow(self, flow: Any) -> Any:
        raise UnsupportedOperation("MockAppServiceHub cannot start flows")

    def start_tracked_flow(self, flow: Any) -> Any:
        raise UnsupportedOperation("MockAppServiceHub cannot start flows")


def create_mock_service(service_hub: MockServices, factory: Callable[[MockAppServiceHub], T]) -> T:
    """Build an application service (e.g. an oracle) and register it.

    Args:
        service_hub: The hub to register the service with.
        factory: Called with a MockAppServiceHub; returns the service.

    Returns:
        The registered service instance.
    """
    instance = factory(MockAppServiceHub(service_hub))
    service_hub.app_services.register(type(instance), instance)
    return instance
