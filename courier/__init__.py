"""Courier: durable delivery of captured errors to pluggable reporting backends."""

__version__ = "0.1.0"
