"""Ledger persistence: store interface plus SQL and in-memory implementations."""

from prophet.storage.base import DuplicateRecordError, LedgerStore, LedgerUnit
from prophet.storage.memory import InMemoryLedgerStore
from prophet.storage.sql import SqlLedgerStore

__all__ = [
    "DuplicateRecordError",
    "InMemoryLedgerStore",
    "LedgerStore",
    "LedgerUnit",
    "SqlLedgerStore",
]
