"""Tests for adapter implementations against real SQLite stores."""
