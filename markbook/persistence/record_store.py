"""
Canonical store of student academic records.

Records are kept in a flat arena of SubjectRecords keyed by SubjectKey, with
secondary indices for the sequences of a student and the students of a class.
Marks are never written here directly: the mark ledger mutates SubjectRecords under
their own locks. Derived values (averages, ranks, discipline) are written only through
``apply_batch`` so a class is never observed half-updated.
"""

import threading
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from ..app_logger import get_logger
from ..core.entities import (
    StudentAcademicRecord, SubjectRecord, SequenceRecord, TermRecord,
    SubjectKey, SequenceKey
)
from ..core.enums import DisciplineRating
from ..core.exceptions import NotFoundError, ValidationError

logger = get_logger("record_store")


@dataclass
class DerivedBatch:
    """Derived values to be written in one atomic step."""
    ranks: List[Tuple[object, Optional[int]]] = field(default_factory=list)
    averages: List[Tuple[object, Optional[float]]] = field(default_factory=list)
    disciplines: List[Tuple[TermRecord, DisciplineRating]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.ranks) + len(self.averages) + len(self.disciplines)


class RecordStore:
    """Arena-and-index store for StudentAcademicRecords."""

    def __init__(self):
        self._records: Dict[Tuple[str, str], StudentAcademicRecord] = {}
        self._subjects: Dict[SubjectKey, SubjectRecord] = {}
        self._sequences: Dict[SequenceKey, SequenceRecord] = {}
        self._class_index: Dict[Tuple[str, str], List[str]] = defaultdict(list)
        # Guards the indices above; never held while a record lock is taken.
        self._lock = threading.RLock()
        # Serializes derived-value batches against snapshot reads.
        self._derived_lock = threading.RLock()

    def add_record(self, record: StudentAcademicRecord) -> StudentAcademicRecord:
        """Register a new record and index its sequences and subjects."""
        key = (record.student_id, record.academic_year_id)
        with self._lock:
            if key in self._records:
                raise ValidationError(
                    f"Student {record.student_id} already has a record for year {record.academic_year_id}"
                )
            self._records[key] = record
            self._class_index[(record.class_id, record.academic_year_id)].append(record.student_id)
            for term in record.terms:
                for sequence in term.sequences:
                    seq_key = SequenceKey(record.student_id, record.academic_year_id,
                                          term.term_id, sequence.sequence_id)
                    self._sequences[seq_key] = sequence
                    for subject in sequence.subjects:
                        self._subjects[seq_key.subject(subject.subject_id)] = subject
        logger.info("Created academic record for student %s in class %s (%s)",
                    record.student_id, record.class_id, record.academic_year_id)
        return record

    def add_subject(self, seq_key: SequenceKey, subject: SubjectRecord) -> bool:
        """Attach a subject to an existing sequence; False if it was already there."""
        with self._lock:
            sequence = self.get_sequence(seq_key)
            key = seq_key.subject(subject.subject_id)
            if key in self._subjects:
                return False
            sequence.add_subject(subject)
            self._subjects[key] = subject
            return True

    def has_record(self, student_id: str, academic_year_id: str) -> bool:
        with self._lock:
            return (student_id, academic_year_id) in self._records

    def get_record(self, student_id: str, academic_year_id: str) -> StudentAcademicRecord:
        with self._lock:
            record = self._records.get((student_id, academic_year_id))
        if record is None:
            raise NotFoundError(
                f"No academic record for student {student_id} in year {academic_year_id}",
                details={"student_id": student_id, "academic_year_id": academic_year_id}
            )
        return record

    def ensure_active(self, student_id: str, academic_year_id: str) -> StudentAcademicRecord:
        """Get a record that still accepts edits."""
        record = self.get_record(student_id, academic_year_id)
        if not record.is_active:
            raise ValidationError(
                f"Record of student {student_id} for year {academic_year_id} is archived",
                error_code="RECORD_ARCHIVED"
            )
        return record

    def get_sequence(self, key: SequenceKey) -> SequenceRecord:
        with self._lock:
            sequence = self._sequences.get(key)
        if sequence is None:
            # Walk the tree to report which level is missing.
            self.get_record(key.student_id, key.academic_year_id).get_term(key.term_id).get_sequence(key.sequence_id)
            raise NotFoundError(f"Sequence {key.sequence_id} not found")
        return sequence

    def get_subject(self, key: SubjectKey) -> SubjectRecord:
        with self._lock:
            subject = self._subjects.get(key)
        if subject is None:
            self.get_sequence(key.sequence_key).get_subject(key.subject_id)
            raise NotFoundError(f"Subject {key.subject_id} not found")
        return subject

    def records_for_class(self, class_id: str, academic_year_id: str,
                          include_archived: bool = False) -> List[StudentAcademicRecord]:
        """Get the records of a class, in enrolment order."""
        with self._lock:
            student_ids = list(self._class_index.get((class_id, academic_year_id), []))
            records = [self._records[(student_id, academic_year_id)] for student_id in student_ids]
        if include_archived:
            return records
        return [record for record in records if record.is_active]

    def subjects_at(self, class_id: str, academic_year_id: str, term_id: str,
                    sequence_id: str, subject_id: str) -> List[Tuple[SubjectKey, SubjectRecord]]:
        """Get every active student's subject record at one coordinate of a class."""
        result = []
        for record in self.records_for_class(class_id, academic_year_id):
            key = SubjectKey(record.student_id, academic_year_id, term_id, sequence_id, subject_id)
            with self._lock:
                subject = self._subjects.get(key)
            if subject is not None:
                result.append((key, subject))
        return result

    def sequences_at(self, class_id: str, academic_year_id: str, term_id: str,
                     sequence_id: str) -> List[Tuple[SequenceKey, SequenceRecord]]:
        result = []
        for record in self.records_for_class(class_id, academic_year_id):
            key = SequenceKey(record.student_id, academic_year_id, term_id, sequence_id)
            with self._lock:
                sequence = self._sequences.get(key)
            if sequence is not None:
                result.append((key, sequence))
        return result

    def sequence_keys_for(self, student_id: str, academic_year_id: str) -> List[SequenceKey]:
        with self._lock:
            return [key for key in self._sequences
                    if key.student_id == student_id and key.academic_year_id == academic_year_id]

    def snapshot(self, student_id: str, academic_year_id: str) -> StudentAcademicRecord:
        """Consistent copy of a record, safe to hand to callers."""
        record = self.get_record(student_id, academic_year_id)
        with self._derived_lock:
            return record.snapshot()

    def apply_batch(self, batch: DerivedBatch) -> int:
        """Write all derived values of a batch at once and return how many were written."""
        with self._derived_lock:
            for target, rank in batch.ranks:
                target.set_rank(rank)
            for target, average in batch.averages:
                target.set_average(average)
            for term, rating in batch.disciplines:
                term.set_discipline(rating)
        return len(batch)
