"""Mock key management service."""

import logging

from .crypto import DigitalSignature, KeyPair, PublicKey, generate_key_pair, sign
from .identity import InMemoryIdentityService

logger = logging.getLogger(__name__)


class MockKeyManagementService:
    """Holds the key pairs of a mock node and signs with them.

    The identity service is kept for callers that need to map keys back to
    parties; key management itself never modifies it.
    """

    def __init__(self, identity_service: InMemoryIdentityService, *key_pairs: KeyPair):
        self.identity_service = identity_service
        self._key_store: dict[PublicKey, KeyPair] = {pair.public: pair for pair in key_pairs}

    @property
    def keys(self) -> frozenset[PublicKey]:
        return frozenset(self._key_store)

    def fresh_key(self) -> PublicKey:
        """Generate, store and return a new public key."""
        pair = generate_key_pair()
        self._key_store[pair.public] = pair
        logger.debug(f"Generated fresh key {pair.public.fingerprint}")
        return pair.public

    def filter_my_keys(self, candidates: list[PublicKey] | tuple[PublicKey, ...]) -> list[PublicKey]:
        return [key for key in candidates if key in self._key_store]

    def sign(self, data: bytes, public_key: PublicKey) -> DigitalSignature:
        """Sign ``data`` with the private key matching ``public_key``.

        Raises:
            KeyError: If the key is not held by this service.
        """
        pair = self._key_store.get(public_key)
        if pair is None:
            raise KeyError(f"No private key known for {public_key}")
        return sign(pair, data)

    def key_pair(self, public_key: PublicKey) -> KeyPair:
        return self._key_store[public_key]
