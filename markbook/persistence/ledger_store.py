"""
Durable ledger implementations: every mark and absence change is journaled here
before it becomes visible in the record store.
"""

import json
import os
import threading
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, List

from ..app_logger import get_logger
from ..core.enums import LedgerEntryType
from ..core.exceptions import PersistenceError, ConfigurationError
from ..core.interfaces import LedgerStore
from .database import DatabaseManager, DatabaseFactory

logger = get_logger("ledger_store")


class MemoryLedgerStore(LedgerStore):
    """In-process ledger, used by tests and the demo."""

    def __init__(self):
        self._streams: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        self._lock = threading.RLock()

    def append_entry(self, stream_id: str, entry_type: LedgerEntryType, data: Dict[str, Any]) -> int:
        with self._lock:
            stream = self._streams[stream_id]
            stream.append({
                "stream_id": stream_id,
                "entry_type": entry_type.value,
                "entry_data": dict(data),
                "created_at": datetime.now(timezone.utc).isoformat(),
                "version": len(stream) + 1,
            })
            return len(stream)

    def get_entries(self, stream_id: str, from_version: int = 0) -> List[Dict[str, Any]]:
        with self._lock:
            return [dict(entry) for entry in self._streams.get(stream_id, [])[from_version:]]

    def get_all_streams(self) -> List[str]:
        with self._lock:
            return sorted(self._streams)


class FileLedgerStore(LedgerStore):
    """File-based ledger: one JSON-lines file per stream."""

    def __init__(self, base_path: str = "ledger"):
        self._base_path = base_path
        self._lock = threading.RLock()
        self._versions: Dict[str, int] = {}
        os.makedirs(self._base_path, exist_ok=True)

    def _get_stream_path(self, stream_id: str) -> str:
        """Get file path for a stream."""
        safe_name = stream_id.replace("/", "__")
        return os.path.join(self._base_path, f"{safe_name}.jsonl")

    def append_entry(self, stream_id: str, entry_type: LedgerEntryType, data: Dict[str, Any]) -> int:
        """Append an entry to the stream file."""
        with self._lock:
            version = self.get_stream_version(stream_id) + 1
            record = {
                "stream_id": stream_id,
                "entry_type": entry_type.value,
                "entry_data": data,
                "created_at": datetime.now(timezone.utc).isoformat(),
                "version": version,
            }
            try:
                with open(self._get_stream_path(stream_id), "a", encoding="utf-8") as f:
                    f.write(json.dumps(record) + "\n")
                    f.flush()
                    os.fsync(f.fileno())
            except OSError as e:
                raise PersistenceError(f"Failed to append ledger entry: {str(e)}")
            self._versions[stream_id] = version
            return version

    def get_entries(self, stream_id: str, from_version: int = 0) -> List[Dict[str, Any]]:
        """Get entries for a stream."""
        with self._lock:
            stream_path = self._get_stream_path(stream_id)
            if not os.path.exists(stream_path):
                return []

            entries = []
            try:
                with open(stream_path, "r", encoding="utf-8") as f:
                    for line_num, line in enumerate(f, 1):
                        if line_num <= from_version or not line.strip():
                            continue
                        try:
                            entries.append(json.loads(line))
                        except json.JSONDecodeError as e:
                            logger.warning("Skipping malformed ledger line %d of %s: %s",
                                           line_num, stream_id, e)
            except OSError as e:
                raise PersistenceError(f"Failed to read ledger: {str(e)}")
            return entries

    def get_stream_version(self, stream_id: str) -> int:
        with self._lock:
            if stream_id not in self._versions:
                self._versions[stream_id] = len(self.get_entries(stream_id))
            return self._versions[stream_id]

    def get_all_streams(self) -> List[str]:
        """Get all stream IDs."""
        with self._lock:
            streams = []
            for filename in os.listdir(self._base_path):
                if filename.endswith(".jsonl"):
                    streams.append(filename[:-6].replace("__", "/"))
            return sorted(streams)


class DatabaseLedgerStore(LedgerStore):
    """Database-based ledger implementation."""

    def __init__(self, database: DatabaseManager):
        self._database = database
        self._lock = threading.RLock()

    def append_entry(self, stream_id: str, entry_type: LedgerEntryType, data: Dict[str, Any]) -> int:
        """Append an entry; the (stream, version) uniqueness constraint rejects forks."""
        with self._lock:
            version = self.get_stream_version(stream_id) + 1
            query = """
                INSERT INTO ledger_entries (stream_id, entry_type, entry_data, created_at, version)
                VALUES (?, ?, ?, ?, ?)
            """
            params = (
                stream_id,
                entry_type.value,
                json.dumps(data),
                datetime.now(timezone.utc).isoformat(),
                version,
            )
            try:
                self._database.execute_transaction([(query, params)])
            except PersistenceError:
                raise
            except Exception as e:
                raise PersistenceError(f"Failed to append ledger entry: {str(e)}")
            return version

    def get_entries(self, stream_id: str, from_version: int = 0) -> List[Dict[str, Any]]:
        """Get entries for a stream."""
        with self._lock:
            query = """
                SELECT stream_id, entry_type, entry_data, created_at, version
                FROM ledger_entries
                WHERE stream_id = ? AND version > ?
                ORDER BY version ASC
            """
            rows = self._database.execute_query(query, (stream_id, from_version))
            entries = []
            for row in rows:
                row["entry_data"] = json.loads(row["entry_data"])
                entries.append(row)
            return entries

    def get_stream_version(self, stream_id: str) -> int:
        """Get the current version of a stream."""
        with self._lock:
            query = "SELECT MAX(version) as max_version FROM ledger_entries WHERE stream_id = ?"
            results = self._database.execute_query(query, (stream_id,))
            return results[0]["max_version"] if results and results[0]["max_version"] else 0

    def get_all_streams(self) -> List[str]:
        """Get all stream IDs."""
        with self._lock:
            query = "SELECT DISTINCT stream_id FROM ledger_entries ORDER BY stream_id"
            return [row["stream_id"] for row in self._database.execute_query(query)]


class LedgerStoreFactory:
    """Factory for creating ledger store instances."""

    @staticmethod
    def create_ledger_store(store_type: str, **kwargs) -> LedgerStore:
        """Create a ledger store instance based on type."""
        store_type = store_type.lower()
        if store_type == "memory":
            return MemoryLedgerStore()
        elif store_type == "file":
            return FileLedgerStore(**kwargs)
        elif store_type == "database":
            database = DatabaseFactory.create_database(kwargs.pop("database_type", "sqlite"), **kwargs)
            return DatabaseLedgerStore(database)
        else:
            raise ConfigurationError(f"Unsupported ledger store type: {store_type}")
