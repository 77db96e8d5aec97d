import pytest

from markbook.core.enums import LedgerEntryType
from markbook.core.exceptions import ConfigurationError
from markbook.persistence import (
    DatabaseLedgerStore, FileLedgerStore, LedgerStoreFactory, MemoryLedgerStore, SQLiteDatabase
)

STREAM = "alice/2024-2025/T1/S1/math"


@pytest.fixture(params=["memory", "file", "database"])
def ledger_store(request, tmp_path):
    if request.param == "memory":
        return MemoryLedgerStore()
    if request.param == "file":
        return FileLedgerStore(base_path=str(tmp_path / "ledger"))
    return DatabaseLedgerStore(SQLiteDatabase(str(tmp_path / "markbook.db")))


def test_entries_are_appended_in_order(ledger_store):
    assert ledger_store.append_entry(STREAM, LedgerEntryType.MARK_CHANGE, {"new_mark": 12.0}) == 1
    assert ledger_store.append_entry(STREAM, LedgerEntryType.MARK_CHANGE, {"new_mark": 15.0}) == 2

    entries = ledger_store.get_entries(STREAM)
    assert [e["entry_data"]["new_mark"] for e in entries] == [12.0, 15.0]
    assert [e["version"] for e in entries] == [1, 2]
    assert entries[0]["entry_type"] == "mark_change"
    assert ledger_store.get_stream_version(STREAM) == 2


def test_get_entries_from_version(ledger_store):
    for mark in (10.0, 11.0, 12.0):
        ledger_store.append_entry(STREAM, LedgerEntryType.MARK_CHANGE, {"new_mark": mark})
    assert [e["entry_data"]["new_mark"] for e in ledger_store.get_entries(STREAM, from_version=1)] == [11.0, 12.0]


def test_streams_are_independent(ledger_store):
    ledger_store.append_entry(STREAM, LedgerEntryType.MARK_CHANGE, {"new_mark": 12.0})
    ledger_store.append_entry("alice/2024-2025/T1/S1/absences", LedgerEntryType.ABSENCE_CHANGE, {"new": 2})

    assert ledger_store.get_all_streams() == ["alice/2024-2025/T1/S1/absences", STREAM]
    assert ledger_store.get_entries("bob/2024-2025/T1/S1/math") == []


def test_file_ledger_survives_restart(tmp_path):
    path = str(tmp_path / "ledger")
    FileLedgerStore(base_path=path).append_entry(STREAM, LedgerEntryType.MARK_CHANGE, {"new_mark": 12.0})

    reopened = FileLedgerStore(base_path=path)
    assert reopened.get_stream_version(STREAM) == 1
    assert reopened.append_entry(STREAM, LedgerEntryType.MARK_CHANGE, {"new_mark": 13.0}) == 2


def test_file_ledger_skips_malformed_lines(tmp_path):
    store = FileLedgerStore(base_path=str(tmp_path))
    store.append_entry(STREAM, LedgerEntryType.MARK_CHANGE, {"new_mark": 12.0})
    with open(tmp_path / "alice__2024-2025__T1__S1__math.jsonl", "a", encoding="utf-8") as f:
        f.write("{not json\n")

    assert len(FileLedgerStore(base_path=str(tmp_path)).get_entries(STREAM)) == 1


def test_factory(tmp_path):
    assert isinstance(LedgerStoreFactory.create_ledger_store("memory"), MemoryLedgerStore)
    assert isinstance(LedgerStoreFactory.create_ledger_store("file", base_path=str(tmp_path / "l")),
                      FileLedgerStore)
    store = LedgerStoreFactory.create_ledger_store("database", database_path=str(tmp_path / "m.db"))
    assert isinstance(store, DatabaseLedgerStore)
    with pytest.raises(ConfigurationError):
        LedgerStoreFactory.create_ledger_store("redis")


def test_sqlite_schema(tmp_path):
    database = SQLiteDatabase(str(tmp_path / "markbook.db"))
    assert database.table_exists("ledger_entries")
    assert not database.table_exists("students")
