"""
Persistence module for the record store, the durable ledger and collaborator stores.
"""

from .database import DatabaseManager, SQLiteDatabase, DatabaseFactory
from .ledger_store import MemoryLedgerStore, FileLedgerStore, DatabaseLedgerStore, LedgerStoreFactory
from .record_store import RecordStore, DerivedBatch
from .repositories import InMemoryClassRoster, InMemoryAcademicCalendar, ConfigSettingsProvider

__all__ = [
    "DatabaseManager",
    "SQLiteDatabase",
    "DatabaseFactory",
    "MemoryLedgerStore",
    "FileLedgerStore",
    "DatabaseLedgerStore",
    "LedgerStoreFactory",
    "RecordStore",
    "DerivedBatch",
    "InMemoryClassRoster",
    "InMemoryAcademicCalendar",
    "ConfigSettingsProvider",
]
