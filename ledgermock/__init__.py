"""ledgermock: an in-memory ledger node service hub for unit tests.

Start with ``ledgermock.mock_services.MockServices``.
"""

__version__ = "0.1.0"
