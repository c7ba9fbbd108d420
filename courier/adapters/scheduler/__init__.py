"""Scheduler adapters for driving the periodic delivery sweep.

Implementations:
- Daemon (asyncio event loop with configurable interval)
"""
