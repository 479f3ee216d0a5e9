"""PostgreSQL LISTEN/NOTIFY relay and deferred-command runner."""

__version__ = "0.1.0"
