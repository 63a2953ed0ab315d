"""Adapters for the ledgermock service hub.

This package contains everything with external dependencies and provides
implementations of the core port interfaces.

Adapter Organization:

- memory/: In-memory transaction and attachment storage
- modules/: Application module scanning and mock modules
- store/: Relational store (SQLite, PostgreSQL), migrations, vault index
"""
