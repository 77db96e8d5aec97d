"""
Per-sequence absence counters.
"""

from typing import List

from ..app_logger import get_logger
from ..core.entities import (
    AbsenceChange, SequenceKey, SequenceRecord,
    validate_absence_count, validate_coordinate, validate_editor_id
)
from ..core.enums import ABSENCES_SUBJECT_ID, LedgerEntryType
from ..core.exceptions import ValidationError
from ..core.interfaces import LedgerStore
from ..persistence.record_store import RecordStore

logger = get_logger("absences")


class AbsenceTracker:
    """Absence counts keyed by (student, sequence), journaled like marks."""

    def __init__(self, record_store: RecordStore, ledger_store: LedgerStore):
        self._store = record_store
        self._ledger_store = ledger_store

    def set_absences(self, key: SequenceKey, count: int, editor_id: str) -> SequenceRecord:
        """Set the absence count of a sequence."""
        validate_coordinate(key)
        try:
            count = validate_absence_count(count)
            validate_editor_id(editor_id)
        except ValidationError:
            logger.warning("Rejected absence count %r for %s by %s", count, key, editor_id)
            raise
        self._store.ensure_active(key.student_id, key.academic_year_id)
        sequence = self._store.get_sequence(key)

        with sequence.lock:
            change = AbsenceChange(previous=sequence.absences, new=count, editor_id=editor_id)
            self._journal(key, change)
            sequence.apply_absence_change(change)
            logger.debug("Absences for %s set %d -> %d by %s",
                         key, change.previous, change.new, editor_id)
            return sequence.snapshot()

    def add_absences(self, key: SequenceKey, delta: int, editor_id: str) -> SequenceRecord:
        """Increment the absence count of a sequence by ``delta``."""
        validate_coordinate(key)
        delta = validate_absence_count(delta)
        validate_editor_id(editor_id)
        self._store.ensure_active(key.student_id, key.academic_year_id)
        sequence = self._store.get_sequence(key)

        with sequence.lock:
            change = AbsenceChange(previous=sequence.absences, new=sequence.absences + delta,
                                   editor_id=editor_id)
            self._journal(key, change)
            sequence.apply_absence_change(change)
            return sequence.snapshot()

    def restore(self, key: SequenceKey) -> int:
        """Replay the journaled absence changes of a sequence without history."""
        sequence = self._store.get_sequence(key)
        stream_id = key.subject(ABSENCES_SUBJECT_ID).stream_id()
        with sequence.lock:
            if sequence.absence_history:
                return 0
            entries = [entry for entry in self._ledger_store.get_entries(stream_id)
                       if entry["entry_type"] == LedgerEntryType.ABSENCE_CHANGE.value]
            for entry in entries:
                sequence.apply_absence_change(AbsenceChange.from_dict(entry["entry_data"]))
        return len(entries)

    def absences(self, key: SequenceKey) -> int:
        return self._store.get_sequence(key).absences

    def history(self, key: SequenceKey) -> List[AbsenceChange]:
        return self._store.get_sequence(key).absence_history

    def term_total(self, student_id: str, academic_year_id: str, term_id: str) -> int:
        """Total absences over the sequences of a term."""
        term = self._store.get_record(student_id, academic_year_id).get_term(term_id)
        return term.absence_total()

    def _journal(self, key: SequenceKey, change: AbsenceChange) -> None:
        stream_id = key.subject(ABSENCES_SUBJECT_ID).stream_id()
        data = change.to_dict()
        data["coordinate"] = {
            "student_id": key.student_id,
            "academic_year_id": key.academic_year_id,
            "term_id": key.term_id,
            "sequence_id": key.sequence_id,
        }
        self._ledger_store.append_entry(stream_id, LedgerEntryType.ABSENCE_CHANGE, data)
