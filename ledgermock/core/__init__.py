"""Core domain logic for the ledgermock service hub.

This package contains zero external dependencies: models, identity and
key management, the service registry, state resolution and the vault.
Storage and module loading are handled by the adapters package.
"""

from .errors import (
    ConfigurationError,
    InvalidServiceType,
    LedgerMockError,
    ProvisioningError,
    ServiceNotFound,
    UnresolvedReference,
    UnsupportedOperation,
)
from .models import (
    AnonymousParty,
    ContractState,
    Identity,
    LegalName,
    NetworkParameters,
    Party,
    RegistryState,
    SignedTransaction,
    StateAndRef,
    StateRef,
    StatesToRecord,
    StateStatus,
    TestIdentity,
    TransactionState,
    WireTransaction,
)
from .service_registry import ledger_service

__all__ = [
    "AnonymousParty",
    "ConfigurationError",
    "ContractState",
    "Identity",
    "InvalidServiceType",
    "LedgerMockError",
    "LegalName",
    "NetworkParameters",
    "Party",
    "ProvisioningError",
    "RegistryState",
    "ServiceNotFound",
    "SignedTransaction",
    "StateAndRef",
    "StateRef",
    "StateStatus",
    "StatesToRecord",
    "TestIdentity",
    "TransactionState",
    "UnresolvedReference",
    "UnsupportedOperation",
    "WireTransaction",
    "ledger_service",
]
