"""Builders that scan this package by passing their own module name."""

from ledgermock.core.crypto import KeyPair
from ledgermock.core.models import LegalName, TestIdentity
from ledgermock.mock_services import MockServices


def services_for(name: LegalName, *keys: KeyPair) -> MockServices:
    return MockServices.for_caller(__name__, name, *keys)


def services_from(first: TestIdentity, *more: TestIdentity) -> MockServices:
    return MockServices.from_identities(__name__, first, *more)


def default_services() -> MockServices:
    return MockServices.default(__name__)
