"""External adapters for the Courier delivery system.

This package contains all external dependencies (SQLite, HTTP clients,
signal handling, etc.) and provides implementations of the core port
interfaces.

Adapter Organization:

- persistence/: Key-value backends for the persisted records (memory, SQLite)
- providers/: Reporting backends errors are delivered to (console, webhook)
- connectivity/: Online/offline monitors (static, HTTP probe)
- scheduler/: Adapters for driving the periodic sweep (daemon)
- cli/: Diagnostic and maintenance commands
"""
