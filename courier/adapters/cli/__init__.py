"""Command-line interface adapters.

Provides CLI commands for inspecting and maintaining the delivery queue:
- stats: Report queue size and composition
- metrics: Report delivery counters
- export / import: Move persisted state between installations
- flush: Drain every lane now
- clear / prune: Remove queued items
"""
