"""Relational store adapters.

Implementations support multiple backends:
- SQLite (zero-config, in-memory by default)
- PostgreSQL (server-backed, selected through a provider file)

Plus the schema migrator, the durable vault index and provisioning.
"""
