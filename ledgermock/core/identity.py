"""In-memory identity service.

Holds the identities a mock node knows about. Built once, then only read.
"""

import logging
from collections.abc import Iterable
from types import MappingProxyType

from .crypto import DEV_ROOT_CA, Certificate, PublicKey
from .models import AbstractParty, Identity, LegalName, Party

logger = logging.getLogger(__name__)


class InMemoryIdentityService:
    """Immutable lookup of identities by legal name and by public key."""

    def __init__(self, identities: Iterable[Identity] = (), trust_root: Certificate = DEV_ROOT_CA):
        """Build the lookup tables.

        Args:
            identities: Identities to register.
            trust_root: Certificate every identity must be issued by.

        Raises:
            ValueError: If an identity is not rooted at the trust root, or two
                different keys claim the same legal name.
        """
        self.trust_root = trust_root
        by_name: dict[LegalName, Identity] = {}
        by_key: dict[PublicKey, Identity] = {}
        for identity in identities:
            if not identity.certificate.is_issued_by(trust_root):
                raise ValueError(
                    f"Certificate for {identity.name} was issued by {identity.chain_root}, "
                    f"not by trust root {trust_root.subject}"
                )
            existing = by_name.get(identity.name)
            if existing is not None and existing.owning_key != identity.owning_key:
                raise ValueError(f"Conflicting keys registered for {identity.name}")
            by_name[identity.name] = identity
            by_key[identity.owning_key] = identity
        self._by_name = MappingProxyType(by_name)
        self._by_key = MappingProxyType(by_key)
        logger.debug(f"Identity service built with {len(by_name)} identities")

    def get_all_identities(self) -> tuple[Identity, ...]:
        return tuple(self._by_name.values())

    def well_known_party_from_x500_name(self, name: LegalName) -> Party | None:
        identity = self._by_name.get(name)
        return identity.party if identity is not None else None

    def party_from_key(self, key: PublicKey) -> Party | None:
        identity = self._by_key.get(key)
        return identity.party if identity is not None else None

    def certificate_from_key(self, key: PublicKey) -> Identity | None:
        return self._by_key.get(key)

    def well_known_party_from_anonymous(self, party: AbstractParty) -> Party | None:
        """Map any party, anonymous or not, to the well-known party for its key."""
        return self.party_from_key(party.owning_key)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __len__(self) -> int:
        return len(self._by_name)


def make_test_identity_service(*identities: Identity) -> InMemoryIdentityService:
    """Return an identity service holding ``identities``, rooted at the dev CA."""
    return InMemoryIdentityService(identities, DEV_ROOT_CA)
