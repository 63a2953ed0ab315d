"""Domain models for the ledgermock service hub.

All models in this module use only Python standard library types,
keeping the core free of external dependencies.
"""

import secrets
import weakref
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from functools import cached_property
from types import MappingProxyType
from typing import Any

from .crypto import (
    DEV_ROOT_CA,
    Certificate,
    KeyPair,
    PublicKey,
    SecureHash,
    generate_key_pair,
    issue_certificate,
)


@dataclass(frozen=True)
class LegalName:
    """X.500 style legal name of a node or party."""

    organisation: str
    locality: str
    country: str

    def __post_init__(self) -> None:
        """Validate name invariants on creation."""
        if not self.organisation or not self.organisation.strip():
            raise ValueError("organisation must be a non-empty string")
        if len(self.country) != 2 or not self.country.isupper():
            raise ValueError(f"country must be a two letter upper case code, got {self.country!r}")

    def __str__(self) -> str:
        return f"O={self.organisation},L={self.locality},C={self.country}"


class AbstractParty(ABC):
    """A participant in a state, identified at least by its owning key."""

    owning_key: PublicKey


@dataclass(frozen=True)
class AnonymousParty(AbstractParty):
    """A party known only by its key."""

    owning_key: PublicKey


@dataclass(frozen=True)
class Party(AbstractParty):
    """A well-known party: legal name plus owning key."""

    name: LegalName
    owning_key: PublicKey

    def anonymise(self) -> AnonymousParty:
        return AnonymousParty(self.owning_key)

    def __str__(self) -> str:
        return str(self.name)


@dataclass(frozen=True)
class Identity:
    """A party together with the certificate that vouches for its key.

    Immutable once an identity service has been built from it.
    """

    party: Party
    certificate: Certificate

    def __post_init__(self) -> None:
        """Check that the certificate belongs to the party."""
        if self.certificate.public_key != self.party.owning_key:
            raise ValueError(
                f"Certificate key does not match owning key of {self.party.name}"
            )

    @property
    def name(self) -> LegalName:
        return self.party.name

    @property
    def owning_key(self) -> PublicKey:
        return self.party.owning_key

    @property
    def chain_root(self) -> str:
        return self.certificate.issuer


@dataclass(frozen=True)
class TestIdentity:
    """An identity supplied by test code, with its key pair.

    When no key pair is given one is generated from a cryptographic random
    source, so two TestIdentity values with the same name still differ.
    """

    __test__ = False  # not a pytest test class

    name: LegalName
    key_pair: KeyPair = field(default_factory=generate_key_pair)
    issuer: Certificate = field(default=DEV_ROOT_CA, repr=False)

    @property
    def public_key(self) -> PublicKey:
        return self.key_pair.public

    @property
    def party(self) -> Party:
        return Party(self.name, self.key_pair.public)

    @cached_property
    def identity(self) -> Identity:
        return _identity_for(self.name, self.key_pair.public, self.issuer)

    @staticmethod
    def fresh(organisation: str, locality: str = "London", country: str = "GB") -> "TestIdentity":
        return TestIdentity(LegalName(organisation, locality, country))


# Entries live as long as some TestIdentity (or caller) holds the Identity.
_issued: weakref.WeakValueDictionary[tuple[LegalName, PublicKey, str], Identity] = (
    weakref.WeakValueDictionary()
)


def _identity_for(name: LegalName, key: PublicKey, issuer: Certificate) -> Identity:
    # Certificates carry a serial, so equal identities share one certificate.
    cache_key = (name, key, issuer.subject)
    identity = _issued.get(cache_key)
    if identity is None:
        certificate = issue_certificate(issuer, str(name), key)
        identity = Identity(Party(name, key), certificate)
        _issued[cache_key] = identity
    return identity


@dataclass(frozen=True)
class NotaryInfo:
    """A notary listed in the network parameters."""

    identity: Party
    validating: bool


@dataclass(frozen=True)
class NetworkParameters:
    """Immutable snapshot of network-wide parameters."""

    minimum_platform_version: int
    notaries: tuple[NotaryInfo, ...]
    max_message_size: int
    max_transaction_size: int
    modified_time: datetime
    epoch: int
    whitelisted_contract_implementations: Mapping[str, tuple[SecureHash, ...]] = field(
        default_factory=dict
    )

    def __post_init__(self) -> None:
        """Validate parameters and freeze the whitelist."""
        if self.minimum_platform_version < 1:
            raise ValueError("minimum_platform_version must be at least 1")
        if self.max_message_size <= 0:
            raise ValueError("max_message_size must be positive")
        if self.max_transaction_size <= 0:
            raise ValueError("max_transaction_size must be positive")
        if self.epoch <= 0:
            raise ValueError("epoch must be positive")
        object.__setattr__(
            self,
            "whitelisted_contract_implementations",
            MappingProxyType(dict(self.whitelisted_contract_implementations)),
        )


def test_network_parameters(
    notaries: tuple[NotaryInfo, ...] = (),
    minimum_platform_version: int = 1,
    whitelisted_contract_implementations: Mapping[str, tuple[SecureHash, ...]] | None = None,
) -> NetworkParameters:
    """Default network parameters for tests."""
    max_message_size = 10485760
    return NetworkParameters(
        minimum_platform_version=minimum_platform_version,
        notaries=notaries,
        max_message_size=max_message_size,
        max_transaction_size=max_message_size * 50,
        modified_time=datetime.now(UTC),
        epoch=1,
        whitelisted_contract_implementations=whitelisted_contract_implementations or {},
    )


test_network_parameters.__test__ = False  # type: ignore[attr-defined]


@dataclass(frozen=True)
class NodeInfo:
    """What the mock node reports about itself."""

    addresses: tuple[str, ...]
    legal_identities_and_certs: tuple[Identity, ...]
    platform_version: int
    serial: int

    @property
    def legal_identities(self) -> tuple[Party, ...]:
        return tuple(identity.party for identity in self.legal_identities_and_certs)


class ContractState(ABC):
    """Base class for ledger states.

    Subclasses are usually frozen dataclasses and expose ``participants`` as
    a property. A state with an ``owner`` attribute is indexed by owner in
    the vault.
    """

    @property
    @abstractmethod
    def participants(self) -> tuple[AbstractParty, ...]:
        """Parties whose keys make this state relevant to them."""


class Contract(ABC):
    """Verification rules for the states that name this contract.

    Contract classes found in scanned packages are listed by their fully
    qualified name in the application module that contains them.
    """

    @abstractmethod
    def verify(self, tx: "WireTransaction") -> None:
        """Raise if ``tx`` is not valid under this contract."""


@dataclass(frozen=True, order=True)
class StateRef:
    """Pointer to an output: producing transaction id plus output index."""

    txhash: SecureHash
    index: int

    def __post_init__(self) -> None:
        """Validate index."""
        if self.index < 0:
            raise ValueError(f"index must be non-negative, got {self.index}")

    def __str__(self) -> str:
        return f"{self.txhash}({self.index})"


@dataclass(frozen=True)
class TransactionState:
    """A state as it appears in a transaction output."""

    data: ContractState
    contract: str  # fully qualified contract class name
    notary: Party | None = None


@dataclass(frozen=True)
class StateAndRef:
    """A resolved state together with the reference it was loaded from."""

    state: TransactionState
    ref: StateRef


@dataclass(frozen=True)
class WireTransaction:
    """Transaction contents; the id is derived from them."""

    inputs: tuple[StateRef, ...] = ()
    outputs: tuple[TransactionState, ...] = ()
    attachments: tuple[SecureHash, ...] = ()
    notary: Party | None = None
    signers: tuple[PublicKey, ...] = ()
    privacy_salt: bytes = field(default_factory=lambda: secrets.token_bytes(32), repr=False)

    def __post_init__(self) -> None:
        """Reject duplicated inputs."""
        if len(set(self.inputs)) != len(self.inputs):
            raise ValueError("Transaction inputs must be unique")

    @cached_property
    def id(self) -> SecureHash:
        parts: list[str] = [self.privacy_salt.hex()]
        parts.extend(f"in:{ref}" for ref in self.inputs)
        parts.extend(
            f"out:{state.contract}:{type(state.data).__qualname__}:{state.data!r}:{state.notary!r}"
            for state in self.outputs
        )
        parts.extend(f"att:{attachment}" for attachment in self.attachments)
        parts.append(f"notary:{self.notary!r}")
        parts.extend(f"signer:{key}" for key in self.signers)
        return SecureHash.sha256("|".join(parts).encode())

    def out_ref(self, index: int) -> StateAndRef:
        return StateAndRef(self.outputs[index], StateRef(self.id, index))


@dataclass(frozen=True)
class SignedTransaction:
    """A wire transaction plus the signatures collected over its id."""

    tx: WireTransaction
    sigs: tuple[Any, ...] = ()  # DigitalSignature values

    @property
    def id(self) -> SecureHash:
        return self.tx.id

    @property
    def inputs(self) -> tuple[StateRef, ...]:
        return self.tx.inputs

    def with_additional_signature(self, signature: Any) -> "SignedTransaction":
        return SignedTransaction(self.tx, self.sigs + (signature,))


class StatesToRecord(Enum):
    """Which outputs of a recorded transaction the vault should keep."""

    NONE = "none"
    ALL_VISIBLE = "all_visible"
    ONLY_RELEVANT = "only_relevant"


class StateStatus(Enum):
    """Vault query filter on consumption status."""

    UNCONSUMED = "unconsumed"
    CONSUMED = "consumed"
    ALL = "all"


@dataclass(frozen=True)
class VaultUpdate:
    """States consumed and produced by one vault notification."""

    consumed: tuple[StateRef, ...]
    produced: tuple[StateAndRef, ...]

    def is_empty(self) -> bool:
        return not self.consumed and not self.produced


@dataclass(frozen=True)
class AppModule:
    """An application module: contracts and services found in one package."""

    name: str
    packages: tuple[str, ...]
    contract_class_names: tuple[str, ...]
    service_classes: tuple[type, ...]
    module_hash: SecureHash


class RegistryState(Enum):
    """Construction-time state of a MockServices instance. Never changes."""

    CONSTRUCTED_NO_STORE = "constructed_no_store"
    CONSTRUCTED_WITH_STORE = "constructed_with_store"
