"""Test suite for ledgermock.

Organized into four parts:

1. core/: Unit tests for core domain logic
   - No store, no module scanning
   - Uses in-memory fakes for ports

2. adapters/: Tests for adapter implementations
   - SQLite stores in memory or in a temporary directory
   - Module scanning against sample_app

3. fakes/: Port implementations for testing

4. sample_app/: A small application package (contracts, states and
   services) that the module loader scans
"""
