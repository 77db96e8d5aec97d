"""
Mark ledger: the only write path for subject marks.

Each edit is validated, journaled to the durable ledger store, appended to the
subject's history and applied to its current mark as one unit under the subject's
lock. Averages and ranks are never touched here.
"""

from typing import Any, Dict, List, Union

from ..app_logger import get_logger
from ..core.audit import verify_chain
from ..core.entities import (
    MarkChange, SubjectKey, SubjectRecord, SequenceRecord,
    validate_coordinate, validate_mark, validate_editor_id
)
from ..core.enums import ABSENCES_SUBJECT_ID, LedgerEntryType
from ..core.exceptions import ValidationError
from ..core.interfaces import LedgerStore
from ..persistence.record_store import RecordStore
from .absence_tracker import AbsenceTracker

logger = get_logger("mark_ledger")


class MarkLedger:
    """Append-only history of mark changes."""

    def __init__(self, record_store: RecordStore, ledger_store: LedgerStore,
                 absence_tracker: AbsenceTracker):
        self._store = record_store
        self._ledger_store = ledger_store
        self._absence_tracker = absence_tracker

    def record_mark(self, key: SubjectKey, new_value: Any,
                    editor_id: str) -> Union[SubjectRecord, SequenceRecord]:
        """Record a new mark for one coordinate and return the updated record.

        The ``absences`` pseudo subject sets the sequence's absence count instead and
        returns the sequence.
        """
        validate_coordinate(key)

        if key.subject_id == ABSENCES_SUBJECT_ID:
            return self._absence_tracker.set_absences(key.sequence_key, new_value, editor_id)

        try:
            mark = validate_mark(new_value)
            validate_editor_id(editor_id)
        except ValidationError:
            logger.warning("Rejected mark %r for %s by %s", new_value, key.stream_id(), editor_id)
            raise

        self._store.ensure_active(key.student_id, key.academic_year_id)
        subject = self._store.get_subject(key)

        with subject.lock:
            change = MarkChange.create(
                previous_mark=subject.current_mark,
                new_mark=mark,
                editor_id=editor_id,
                prev_hash=subject.last_hash
            )
            # Journal first: if it fails the in-memory record is left as it was.
            self._ledger_store.append_entry(key.stream_id(), LedgerEntryType.MARK_CHANGE,
                                            self._journal_data(key, change))
            subject.apply_change(change)
            logger.debug("Mark for %s changed %r -> %r by %s",
                         key.stream_id(), change.previous_mark, change.new_mark, editor_id)
            return subject.snapshot()

    def restore(self, key: SubjectKey) -> int:
        """Replay the journal of a coordinate into its subject record.

        Only a subject without history is restored; returns the number of entries applied.
        """
        subject = self._store.get_subject(key)
        with subject.lock:
            if subject.modified:
                return 0
            applied = 0
            for entry in self.journal(key):
                if entry["entry_type"] != LedgerEntryType.MARK_CHANGE.value:
                    continue
                subject.apply_change(MarkChange.from_dict(entry["entry_data"]))
                applied += 1
        if applied:
            logger.debug("Restored %d mark changes for %s", applied, key.stream_id())
        return applied

    def history(self, key: SubjectKey) -> List[MarkChange]:
        """Get the mark history of a coordinate, oldest first."""
        return self._store.get_subject(key).modified

    def journal(self, key: SubjectKey) -> List[Dict[str, Any]]:
        """Get the durable journal entries of a coordinate."""
        return self._ledger_store.get_entries(key.stream_id())

    def verify_history(self, key: SubjectKey) -> bool:
        """Check the hash chain of a coordinate and that it matches the journal."""
        history = self.history(key)
        if not verify_chain(history):
            return False
        if not history:
            return True
        journaled = [entry["entry_data"].get("hash") for entry in self.journal(key)]
        return journaled[-len(history):] == [change.hash for change in history]

    @staticmethod
    def _journal_data(key: SubjectKey, change: MarkChange) -> Dict[str, Any]:
        data = change.to_dict()
        data["coordinate"] = {
            "student_id": key.student_id,
            "academic_year_id": key.academic_year_id,
            "term_id": key.term_id,
            "sequence_id": key.sequence_id,
            "subject_id": key.subject_id,
        }
        return data
