"""Subscription session over PostgreSQL."""

from pgrelay.storage.base import SessionProtocol
from pgrelay.storage.postgres import PostgresSession, escape_identifier

__all__ = [
    "PostgresSession",
    "SessionProtocol",
    "escape_identifier",
]
