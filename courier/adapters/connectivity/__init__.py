"""Connectivity adapters: report online/offline state to the delivery engine.

Implementations:
- Static (always online unless toggled; tests and server processes)
- HTTP probe (periodic request against a health endpoint)
"""
