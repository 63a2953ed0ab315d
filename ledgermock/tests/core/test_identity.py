"""Unit tests for the identity service and mock key management."""

import pytest

from ledgermock.core.crypto import Certificate, generate_key_pair, issue_certificate, verify
from ledgermock.core.identity import InMemoryIdentityService, make_test_identity_service
from ledgermock.core.keys import MockKeyManagementService
from ledgermock.core.models import Identity, LegalName, Party, TestIdentity

ALICE = LegalName("Alice Corp", "Madrid", "ES")
BOB = LegalName("Bob Plc", "Rome", "IT")


@pytest.fixture
def alice() -> TestIdentity:
    return TestIdentity(ALICE, generate_key_pair(b"alice"))


@pytest.fixture
def bob() -> TestIdentity:
    return TestIdentity(BOB, generate_key_pair(b"bob"))


class TestInMemoryIdentityService:
    """Test identity lookups."""

    def test_lookup_by_name_and_key(self, alice: TestIdentity, bob: TestIdentity) -> None:
        service = make_test_identity_service(alice.identity, bob.identity)

        assert service.well_known_party_from_x500_name(ALICE) == alice.party
        assert service.party_from_key(bob.public_key) == bob.party
        assert service.certificate_from_key(alice.public_key) == alice.identity
        assert len(service) == 2
        assert BOB in service

    def test_unknown_lookups_return_none(self, alice: TestIdentity) -> None:
        service = make_test_identity_service(alice.identity)

        assert service.well_known_party_from_x500_name(BOB) is None
        assert service.party_from_key(generate_key_pair().public) is None

    def test_anonymous_party_maps_to_well_known(self, alice: TestIdentity) -> None:
        service = make_test_identity_service(alice.identity)
        assert service.well_known_party_from_anonymous(alice.party.anonymise()) == alice.party

    def test_empty_service(self) -> None:
        service = make_test_identity_service()
        assert service.get_all_identities() == ()

    def test_rejects_identity_from_other_root(self) -> None:
        other_root_key = generate_key_pair(b"other-root")
        other_root = Certificate("CN=Other Root", "CN=Other Root", other_root_key.public, 0)
        key = generate_key_pair()
        foreign = Identity(Party(ALICE, key.public), issue_certificate(other_root, str(ALICE), key.public))

        with pytest.raises(ValueError, match="not by trust root"):
            make_test_identity_service(foreign)

    def test_accepts_custom_trust_root(self) -> None:
        root_key = generate_key_pair(b"custom-root")
        root = Certificate("CN=Custom Root", "CN=Custom Root", root_key.public, 0)
        identity = TestIdentity(ALICE, issuer=root)

        service = InMemoryIdentityService([identity.identity], trust_root=root)
        assert service.party_from_key(identity.public_key) == identity.party

    def test_rejects_conflicting_keys_for_name(self, alice: TestIdentity) -> None:
        impostor = TestIdentity(ALICE)
        with pytest.raises(ValueError, match="Conflicting keys"):
            make_test_identity_service(alice.identity, impostor.identity)


class TestMockKeyManagementService:
    """Test key management."""

    def test_keys_include_all_given_pairs(self, alice: TestIdentity) -> None:
        extra = generate_key_pair()
        kms = MockKeyManagementService(make_test_identity_service(), alice.key_pair, extra)
        assert kms.keys == frozenset({alice.public_key, extra.public})

    def test_sign_produces_verifiable_signature(self, alice: TestIdentity) -> None:
        kms = MockKeyManagementService(make_test_identity_service(), alice.key_pair)

        signature = kms.sign(b"payload", alice.public_key)

        assert signature.by == alice.public_key
        assert verify(alice.key_pair, b"payload", signature)
        assert not verify(alice.key_pair, b"tampered", signature)

    def test_sign_with_unknown_key_raises(self, alice: TestIdentity, bob: TestIdentity) -> None:
        kms = MockKeyManagementService(make_test_identity_service(), alice.key_pair)
        with pytest.raises(KeyError):
            kms.sign(b"payload", bob.public_key)

    def test_fresh_key_is_held(self) -> None:
        kms = MockKeyManagementService(make_test_identity_service())

        key = kms.fresh_key()

        assert key in kms.keys
        assert kms.key_pair(key).public == key

    def test_filter_my_keys(self, alice: TestIdentity, bob: TestIdentity) -> None:
        kms = MockKeyManagementService(make_test_identity_service(), alice.key_pair)
        assert kms.filter_my_keys([bob.public_key, alice.public_key]) == [alice.public_key]
