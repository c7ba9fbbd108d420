"""Persistence adapters for the queue, context, settings and metrics records.

Implementations support multiple backends:
- In-memory (tests, ephemeral processes)
- SQLite (zero-config, single-file)
"""
