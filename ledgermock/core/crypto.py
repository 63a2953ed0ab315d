"""Key material, hashes and certificates for the mock node.

Keys are derived with hashlib and signatures are HMAC-SHA256 digests keyed by
the private half. This is enough for tests that need distinct, comparable
identities and signatures that round-trip through key management; it is not
a substitute for real public-key cryptography.
"""

import hashlib
import hmac
import itertools
import secrets
from dataclasses import dataclass, field

_PUBLIC_KEY_DOMAIN = b"ledgermock/public-key/v1"
_serials = itertools.count(1)


@dataclass(frozen=True, order=True)
class SecureHash:
    """A SHA-256 digest."""

    digest: bytes

    def __post_init__(self) -> None:
        """Validate digest length."""
        if len(self.digest) != 32:
            raise ValueError(f"SHA-256 digest must be 32 bytes, got {len(self.digest)}")

    @staticmethod
    def sha256(data: bytes) -> "SecureHash":
        return SecureHash(hashlib.sha256(data).digest())

    @staticmethod
    def random_sha256() -> "SecureHash":
        return SecureHash.sha256(secrets.token_bytes(32))

    @staticmethod
    def parse(text: str) -> "SecureHash":
        """Parse the hex form produced by ``str()``."""
        try:
            return SecureHash(bytes.fromhex(text))
        except ValueError as e:
            raise ValueError(f"Invalid SHA-256 hex string: {text!r}") from e

    def __str__(self) -> str:
        return self.digest.hex().upper()


@dataclass(frozen=True, order=True)
class PublicKey:
    """Public half of a key pair."""

    encoded: bytes

    @property
    def fingerprint(self) -> str:
        return self.encoded.hex()[:16]

    def __str__(self) -> str:
        return f"PK:{self.encoded.hex()}"


@dataclass(frozen=True)
class KeyPair:
    """A public key and the private bytes it was derived from."""

    public: PublicKey
    private: bytes = field(repr=False)


@dataclass(frozen=True)
class DigitalSignature:
    """Signature bytes together with the key that produced them."""

    by: PublicKey
    signature: bytes


@dataclass(frozen=True)
class Certificate:
    """Identity certificate binding a subject name to a public key."""

    subject: str
    issuer: str
    public_key: PublicKey
    serial: int

    def is_issued_by(self, issuer: "Certificate") -> bool:
        return self.issuer == issuer.subject


def generate_key_pair(entropy: bytes | None = None) -> KeyPair:
    """Generate a key pair, deterministically when ``entropy`` is given."""
    if entropy is None:
        private = secrets.token_bytes(32)
    else:
        private = hashlib.sha256(entropy).digest()
    public = hashlib.sha256(_PUBLIC_KEY_DOMAIN + private).digest()
    return KeyPair(public=PublicKey(public), private=private)


def sign(key_pair: KeyPair, data: bytes) -> DigitalSignature:
    digest = hmac.new(key_pair.private, data, hashlib.sha256).digest()
    return DigitalSignature(by=key_pair.public, signature=digest)


def verify(key_pair: KeyPair, data: bytes, signature: DigitalSignature) -> bool:
    """Check a signature against the key pair that claims to have made it."""
    if signature.by != key_pair.public:
        return False
    expected = hmac.new(key_pair.private, data, hashlib.sha256).digest()
    return hmac.compare_digest(expected, signature.signature)


def issue_certificate(issuer: Certificate, subject: str, public_key: PublicKey) -> Certificate:
    return Certificate(
        subject=subject,
        issuer=issuer.subject,
        public_key=public_key,
        serial=next(_serials),
    )


DEV_ROOT_KEY = generate_key_pair(entropy=b"ledgermock/dev-root-ca")
DEV_ROOT_CA = Certificate(
    subject="CN=Development Root CA,O=ledgermock,L=London,C=GB",
    issuer="CN=Development Root CA,O=ledgermock,L=London,C=GB",
    public_key=DEV_ROOT_KEY.public,
    serial=0,
)
