"""Fake implementations of core ports for testing.

These in-memory implementations allow core logic to be tested without a
store:

- FakeVaultStore: In-memory vault index with call capture
- FakeAuthorizer: Permission table with call capture
"""

from .auth import FakeAuthorizer
from .vault_store import FakeVaultStore

__all__ = [
    "FakeAuthorizer",
    "FakeVaultStore",
]
