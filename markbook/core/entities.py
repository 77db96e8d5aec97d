"""
Core entities for the Markbook engine: the academic calendar, the class curriculum and
the per-student record tree (year -> term -> sequence -> subject).
"""

import copy
import math
import re
import threading
import uuid
from datetime import datetime, timezone
from dataclasses import astuple, dataclass, field
from typing import Any, Dict, List, Optional

from .audit import GENESIS_HASH, compute_entry_hash
from .enums import RecordStatus, DisciplineRating, MIN_MARK, MAX_MARK
from .exceptions import ValidationError, NotFoundError


YEAR_LABEL_PATTERN = re.compile(r"^\d{4}-\d{4}$")


class AbstractEntity:
    """Base entity with universal ID, lifecycle timestamps and versioning."""

    def __init__(self, entity_id: Optional[str] = None):
        self._id = entity_id or str(uuid.uuid4())
        self._created_at = datetime.now(timezone.utc)
        self._updated_at = self._created_at
        self._version = 1

    @property
    def id(self) -> str:
        """Get the entity ID."""
        return self._id

    @property
    def created_at(self) -> datetime:
        """Get creation timestamp."""
        return self._created_at

    @property
    def updated_at(self) -> datetime:
        """Get last update timestamp."""
        return self._updated_at

    @property
    def version(self) -> int:
        """Get current version."""
        return self._version

    def touch(self) -> None:
        self._updated_at = datetime.now(timezone.utc)
        self._version += 1

    def to_dict(self) -> Dict[str, Any]:
        """Convert entity to dictionary."""
        return {
            'id': self._id,
            'created_at': self._created_at.isoformat(),
            'updated_at': self._updated_at.isoformat(),
            'version': self._version,
        }

    def __str__(self) -> str:
        return f"{self.__class__.__name__}(id={self._id})"

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id={self._id}, version={self._version})"


class AcademicYear(AbstractEntity):
    """An academic year such as ``2024-2025`` with its ordered terms."""

    def __init__(self, label: str, is_current: bool = False, **kwargs):
        super().__init__(**kwargs)
        if not YEAR_LABEL_PATTERN.match(label or ""):
            raise ValidationError(f"Academic year must be in format YYYY-YYYY, got {label!r}")
        self._label = label
        self._is_current = is_current
        self._term_ids: List[str] = []

    @property
    def label(self) -> str:
        return self._label

    @property
    def is_current(self) -> bool:
        return self._is_current

    @property
    def term_ids(self) -> List[str]:
        return list(self._term_ids)

    def set_current(self, value: bool) -> None:
        self._is_current = value
        self.touch()

    def add_term(self, term_id: str) -> None:
        if term_id not in self._term_ids:
            self._term_ids.append(term_id)
            self.touch()


class Term(AbstractEntity):
    """A grouping of sequences within an academic year (e.g. a trimester)."""

    def __init__(self, academic_year_id: str, name: str, **kwargs):
        super().__init__(**kwargs)
        self._academic_year_id = academic_year_id
        self._name = name
        self._sequence_ids: List[str] = []

    @property
    def academic_year_id(self) -> str:
        return self._academic_year_id

    @property
    def name(self) -> str:
        return self._name

    @property
    def sequence_ids(self) -> List[str]:
        return list(self._sequence_ids)

    def add_sequence(self, sequence_id: str) -> None:
        if sequence_id not in self._sequence_ids:
            self._sequence_ids.append(sequence_id)
            self.touch()


class Sequence(AbstractEntity):
    """The smallest graded period of a term."""

    def __init__(self, term_id: str, name: str, **kwargs):
        super().__init__(**kwargs)
        self._term_id = term_id
        self._name = name

    @property
    def term_id(self) -> str:
        return self._term_id

    @property
    def name(self) -> str:
        return self._name


@dataclass(frozen=True)
class CurriculumEntry:
    """A subject taught to a class, with its coefficient."""
    subject_id: str
    coefficient: float
    weekly_hours: float = 0.0

    def __post_init__(self):
        if not self.subject_id:
            raise ValidationError("Curriculum entry requires a subject id")
        if not is_number(self.coefficient) or self.coefficient <= 0:
            raise ValidationError(
                f"Coefficient for subject {self.subject_id} must be strictly positive",
                details={"coefficient": self.coefficient}
            )


@dataclass(frozen=True)
class SequenceKey:
    """Coordinate of one student's sequence within a year."""
    student_id: str
    academic_year_id: str
    term_id: str
    sequence_id: str

    def subject(self, subject_id: str) -> "SubjectKey":
        return SubjectKey(self.student_id, self.academic_year_id, self.term_id,
                          self.sequence_id, subject_id)


@dataclass(frozen=True)
class SubjectKey:
    """Coordinate of one student's subject record within a sequence."""
    student_id: str
    academic_year_id: str
    term_id: str
    sequence_id: str
    subject_id: str

    @property
    def sequence_key(self) -> SequenceKey:
        return SequenceKey(self.student_id, self.academic_year_id, self.term_id, self.sequence_id)

    def stream_id(self) -> str:
        """Name of the durable ledger stream holding this coordinate's history."""
        return "/".join((self.student_id, self.academic_year_id, self.term_id,
                         self.sequence_id, self.subject_id))


def is_number(value: Any) -> bool:
    """True for finite real numbers, excluding booleans."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def validate_mark(value: Any) -> float:
    """Return the mark as a float, or raise ValidationError if it is not in [0, 20]."""
    if not is_number(value) or not MIN_MARK <= value <= MAX_MARK:
        raise ValidationError(
            f"Mark must be a number between {MIN_MARK:g} and {MAX_MARK:g}, got {value!r}",
            error_code="INVALID_MARK",
            details={"mark": value}
        )
    return float(value)


def validate_absence_count(value: Any) -> int:
    """Return the count as an int; integral floats such as ``3.0`` are accepted."""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(
            f"Absence count must be a non-negative integer, got {value!r}",
            error_code="INVALID_ABSENCES",
            details={"absences": value}
        )
    return value


def validate_coordinate(key: Any) -> None:
    """Raise ValidationError unless every component of a key is a non-empty string."""
    parts = astuple(key)
    if not all(isinstance(part, str) and part for part in parts):
        raise ValidationError("Malformed coordinate: every component is required",
                              error_code="MALFORMED_COORDINATE",
                              details={"coordinate": "/".join(str(part) for part in parts)})


def validate_editor_id(editor_id: Any) -> str:
    if not isinstance(editor_id, str) or not editor_id.strip():
        raise ValidationError("Every change requires an editor id", error_code="MISSING_EDITOR")
    return editor_id


@dataclass(frozen=True)
class MarkChange:
    """Immutable entry of a subject's mark history."""
    previous_mark: Optional[float]
    new_mark: float
    editor_id: str
    timestamp: datetime
    prev_hash: str = GENESIS_HASH
    hash: str = ""

    @classmethod
    def create(cls, previous_mark: Optional[float], new_mark: float, editor_id: str,
               prev_hash: str, timestamp: Optional[datetime] = None) -> "MarkChange":
        timestamp = timestamp or datetime.now(timezone.utc)
        payload = {
            "previous_mark": previous_mark,
            "new_mark": new_mark,
            "editor_id": editor_id,
            "timestamp": timestamp.isoformat(),
        }
        return cls(previous_mark, new_mark, editor_id, timestamp, prev_hash,
                   compute_entry_hash(payload, prev_hash))

    def payload(self) -> Dict[str, Any]:
        return {
            "previous_mark": self.previous_mark,
            "new_mark": self.new_mark,
            "editor_id": self.editor_id,
            "timestamp": self.timestamp.isoformat(),
        }

    def to_dict(self) -> Dict[str, Any]:
        data = self.payload()
        data.update({"prev_hash": self.prev_hash, "hash": self.hash})
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MarkChange":
        """Rebuild a journaled entry, keeping its stored hashes."""
        return cls(data["previous_mark"], data["new_mark"], data["editor_id"],
                   datetime.fromisoformat(data["timestamp"]),
                   data.get("prev_hash", GENESIS_HASH), data.get("hash", ""))


@dataclass(frozen=True)
class AbsenceChange:
    """Immutable entry of a sequence's absence history."""
    previous: int
    new: int
    editor_id: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "previous": self.previous,
            "new": self.new,
            "editor_id": self.editor_id,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AbsenceChange":
        return cls(data["previous"], data["new"], data["editor_id"],
                   datetime.fromisoformat(data["timestamp"]))


class SubjectRecord:
    """Marks of one student for one subject in one sequence.

    ``current_mark`` and ``modified`` are only changed together, under ``lock``, by the
    mark ledger.
    """

    def __init__(self, subject_id: str, coefficient: float):
        if not is_number(coefficient) or coefficient <= 0:
            raise ValidationError(f"Coefficient for subject {subject_id} must be strictly positive")
        self._subject_id = subject_id
        self._coefficient = float(coefficient)
        self._current_mark: Optional[float] = None
        self._modified: List[MarkChange] = []
        self._rank: Optional[int] = None
        self.lock = threading.RLock()

    @property
    def subject_id(self) -> str:
        return self._subject_id

    @property
    def coefficient(self) -> float:
        return self._coefficient

    @property
    def current_mark(self) -> Optional[float]:
        return self._current_mark

    @property
    def has_mark(self) -> bool:
        return self._current_mark is not None

    @property
    def modified(self) -> List[MarkChange]:
        return list(self._modified)

    @property
    def rank(self) -> Optional[int]:
        return self._rank

    @property
    def last_hash(self) -> str:
        return self._modified[-1].hash if self._modified else GENESIS_HASH

    def apply_change(self, change: MarkChange) -> None:
        """Append a history entry and move the current mark. Caller holds ``lock``."""
        self._modified.append(change)
        self._current_mark = change.new_mark

    def set_rank(self, rank: Optional[int]) -> None:
        self._rank = rank

    def snapshot(self) -> "SubjectRecord":
        with self.lock:
            clone = SubjectRecord(self._subject_id, self._coefficient)
            clone._current_mark = self._current_mark
            clone._modified = list(self._modified)
            clone._rank = self._rank
        return clone

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subject_id": self._subject_id,
            "coefficient": self._coefficient,
            "current_mark": self._current_mark,
            "rank": self._rank,
            "modified": [change.to_dict() for change in self._modified],
        }


class SequenceRecord:
    """One student's subjects and absences for a sequence."""

    def __init__(self, sequence_id: str, subjects: Optional[List[SubjectRecord]] = None):
        self._sequence_id = sequence_id
        self._subjects: Dict[str, SubjectRecord] = {}
        for subject in subjects or []:
            self._subjects[subject.subject_id] = subject
        self._absences = 0
        self._absence_history: List[AbsenceChange] = []
        self._average: Optional[float] = None
        self._rank: Optional[int] = None
        self.lock = threading.RLock()

    @property
    def sequence_id(self) -> str:
        return self._sequence_id

    @property
    def subjects(self) -> List[SubjectRecord]:
        return list(self._subjects.values())

    @property
    def absences(self) -> int:
        return self._absences

    @property
    def absence_history(self) -> List[AbsenceChange]:
        return list(self._absence_history)

    @property
    def average(self) -> Optional[float]:
        return self._average

    @property
    def rank(self) -> Optional[int]:
        return self._rank

    def get_subject(self, subject_id: str) -> SubjectRecord:
        try:
            return self._subjects[subject_id]
        except KeyError:
            raise NotFoundError(f"Subject {subject_id} not found in sequence {self._sequence_id}")

    def has_subject(self, subject_id: str) -> bool:
        return subject_id in self._subjects

    def add_subject(self, subject: SubjectRecord) -> None:
        self._subjects.setdefault(subject.subject_id, subject)

    def apply_absence_change(self, change: AbsenceChange) -> None:
        """Record an absence transition. Caller holds ``lock``."""
        self._absence_history.append(change)
        self._absences = change.new

    def set_average(self, average: Optional[float]) -> None:
        self._average = average

    def set_rank(self, rank: Optional[int]) -> None:
        self._rank = rank

    def snapshot(self) -> "SequenceRecord":
        clone = SequenceRecord(self._sequence_id, [s.snapshot() for s in self._subjects.values()])
        with self.lock:
            clone._absences = self._absences
            clone._absence_history = list(self._absence_history)
        clone._average = self._average
        clone._rank = self._rank
        return clone

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sequence_id": self._sequence_id,
            "absences": self._absences,
            "average": self._average,
            "rank": self._rank,
            "subjects": [subject.to_dict() for subject in self._subjects.values()],
        }


class TermRecord:
    """One student's sequences for a term, with derived term results."""

    def __init__(self, term_id: str, sequences: Optional[List[SequenceRecord]] = None):
        self._term_id = term_id
        self._sequences: Dict[str, SequenceRecord] = {}
        for sequence in sequences or []:
            self._sequences[sequence.sequence_id] = sequence
        self._average: Optional[float] = None
        self._rank: Optional[int] = None
        self._discipline = DisciplineRating.NOT_AVAILABLE

    @property
    def term_id(self) -> str:
        return self._term_id

    @property
    def sequences(self) -> List[SequenceRecord]:
        return list(self._sequences.values())

    @property
    def average(self) -> Optional[float]:
        return self._average

    @property
    def rank(self) -> Optional[int]:
        return self._rank

    @property
    def discipline(self) -> DisciplineRating:
        return self._discipline

    def get_sequence(self, sequence_id: str) -> SequenceRecord:
        try:
            return self._sequences[sequence_id]
        except KeyError:
            raise NotFoundError(f"Sequence {sequence_id} not found in term {self._term_id}")

    def add_sequence(self, sequence: SequenceRecord) -> None:
        self._sequences.setdefault(sequence.sequence_id, sequence)

    def absence_total(self) -> int:
        return sum(sequence.absences for sequence in self._sequences.values())

    def set_average(self, average: Optional[float]) -> None:
        self._average = average

    def set_rank(self, rank: Optional[int]) -> None:
        self._rank = rank

    def set_discipline(self, rating: DisciplineRating) -> None:
        self._discipline = rating

    def snapshot(self) -> "TermRecord":
        clone = TermRecord(self._term_id, [s.snapshot() for s in self._sequences.values()])
        clone._average = self._average
        clone._rank = self._rank
        clone._discipline = self._discipline
        return clone

    def to_dict(self) -> Dict[str, Any]:
        return {
            "term_id": self._term_id,
            "average": self._average,
            "rank": self._rank,
            "discipline": self._discipline.value,
            "sequences": [sequence.to_dict() for sequence in self._sequences.values()],
        }


class StudentAcademicRecord(AbstractEntity):
    """A student's full record for one academic year in one class."""

    def __init__(self, student_id: str, class_id: str, academic_year_id: str,
                 terms: Optional[List[TermRecord]] = None, **kwargs):
        super().__init__(**kwargs)
        self._student_id = student_id
        self._class_id = class_id
        self._academic_year_id = academic_year_id
        self._terms: Dict[str, TermRecord] = {}
        for term in terms or []:
            self._terms[term.term_id] = term
        self._status = RecordStatus.ACTIVE
        self._has_completed = False
        self._has_repeated = False

    @property
    def student_id(self) -> str:
        return self._student_id

    @property
    def class_id(self) -> str:
        return self._class_id

    @property
    def academic_year_id(self) -> str:
        return self._academic_year_id

    @property
    def terms(self) -> List[TermRecord]:
        return list(self._terms.values())

    @property
    def status(self) -> RecordStatus:
        return self._status

    @property
    def is_active(self) -> bool:
        return self._status == RecordStatus.ACTIVE

    @property
    def has_completed(self) -> bool:
        return self._has_completed

    @property
    def has_repeated(self) -> bool:
        return self._has_repeated

    def get_term(self, term_id: str) -> TermRecord:
        try:
            return self._terms[term_id]
        except KeyError:
            raise NotFoundError(f"Term {term_id} not found for student {self._student_id}")

    def add_term(self, term: TermRecord) -> None:
        self._terms.setdefault(term.term_id, term)

    def archive(self) -> None:
        self._status = RecordStatus.ARCHIVED
        self.touch()

    def reactivate(self) -> None:
        self._status = RecordStatus.ACTIVE
        self.touch()

    def set_completed(self, value: bool) -> None:
        self._has_completed = value
        self.touch()

    def set_repeated(self, value: bool) -> None:
        self._has_repeated = value
        self.touch()

    def snapshot(self) -> "StudentAcademicRecord":
        """Copy of the tree; each subject and sequence is copied under its own lock."""
        clone = copy.copy(self)
        clone._terms = {term_id: term.snapshot() for term_id, term in self._terms.items()}
        return clone

    def to_dict(self) -> Dict[str, Any]:
        base_dict = super().to_dict()
        base_dict.update({
            "student_id": self._student_id,
            "class_id": self._class_id,
            "academic_year_id": self._academic_year_id,
            "status": self._status.value,
            "has_completed": self._has_completed,
            "has_repeated": self._has_repeated,
            "terms": [term.to_dict() for term in self._terms.values()],
        })
        return base_dict


@dataclass(frozen=True)
class DisciplineRule:
    """A rating granted when the average is high enough and absences low enough.

    ``None`` bounds are not checked.
    """
    rating: DisciplineRating
    min_average: Optional[float] = None
    max_absences: Optional[int] = None

    def matches(self, average: Optional[float], absence_total: int) -> bool:
        if self.min_average is not None:
            if average is None or average < self.min_average:
                return False
        if self.max_absences is not None and absence_total > self.max_absences:
            return False
        return True


@dataclass(frozen=True)
class ThresholdTable:
    """Ordered discipline rules; the first matching rule wins."""
    rules: tuple
    fallback: DisciplineRating = DisciplineRating.CRITICAL

    @classmethod
    def from_config(cls, config: List[Dict[str, Any]],
                    fallback: str = DisciplineRating.CRITICAL.value) -> "ThresholdTable":
        try:
            rules = tuple(
                DisciplineRule(
                    rating=DisciplineRating(item["rating"]),
                    min_average=item.get("min_average"),
                    max_absences=item.get("max_absences"),
                )
                for item in config
            )
            return cls(rules=rules, fallback=DisciplineRating(fallback))
        except (KeyError, ValueError, TypeError) as e:
            raise ValidationError(f"Invalid discipline threshold table: {e}")
