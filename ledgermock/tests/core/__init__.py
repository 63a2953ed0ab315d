"""Unit tests for core domain logic.

These tests exercise core logic without a store. The vault store port is
replaced with the in-memory fake from tests/fakes/.
"""
