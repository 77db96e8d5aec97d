"""
In-memory implementations of the roster, calendar and settings collaborators.
"""

import threading
from collections import defaultdict
from typing import Any, Dict, List, Optional

from ..core.entities import AcademicYear, Term, Sequence, CurriculumEntry, ThresholdTable
from ..core.enums import MentionSystem, TermAveragePolicy
from ..core.exceptions import NotFoundError, ValidationError, ConfigurationError
from ..core.interfaces import ClassRoster, AcademicCalendar, SettingsProvider


class InMemoryClassRoster(ClassRoster):
    """Class membership and curriculum held in memory."""

    def __init__(self):
        self._classes: Dict[str, List[str]] = {}
        self._curricula: Dict[tuple, List[CurriculumEntry]] = defaultdict(list)
        self._lock = threading.RLock()

    def add_class(self, class_id: str) -> None:
        with self._lock:
            self._classes.setdefault(class_id, [])

    def class_exists(self, class_id: str) -> bool:
        with self._lock:
            return class_id in self._classes

    def assign_student(self, class_id: str, student_id: str) -> None:
        with self._lock:
            students = self._require_class(class_id)
            if student_id not in students:
                students.append(student_id)

    def get_students(self, class_id: str) -> List[str]:
        with self._lock:
            return list(self._require_class(class_id))

    def set_subject(self, class_id: str, academic_year_id: str, entry: CurriculumEntry) -> None:
        """Add a subject to a class curriculum, replacing an existing entry for it."""
        with self._lock:
            self._require_class(class_id)
            entries = self._curricula[(class_id, academic_year_id)]
            entries[:] = [e for e in entries if e.subject_id != entry.subject_id]
            entries.append(entry)

    def get_curriculum(self, class_id: str, academic_year_id: str) -> List[CurriculumEntry]:
        with self._lock:
            self._require_class(class_id)
            return list(self._curricula.get((class_id, academic_year_id), []))

    def _require_class(self, class_id: str) -> List[str]:
        if class_id not in self._classes:
            raise NotFoundError(f"Class {class_id} not found")
        return self._classes[class_id]


class InMemoryAcademicCalendar(AcademicCalendar):
    """Academic years, terms and sequences held in memory."""

    def __init__(self):
        self._years: Dict[str, AcademicYear] = {}
        self._terms: Dict[str, Term] = {}
        self._sequences: Dict[str, Sequence] = {}
        self._lock = threading.RLock()

    def create_year(self, label: str, is_current: bool = False,
                    year_id: Optional[str] = None) -> AcademicYear:
        with self._lock:
            if any(year.label == label for year in self._years.values()):
                raise ValidationError(f"Academic year {label} already exists")
            year = AcademicYear(label, entity_id=year_id)
            self._years[year.id] = year
            if is_current:
                self.set_current_year(year.id)
            return year

    def set_current_year(self, academic_year_id: str) -> None:
        """Make one year current and clear the flag on all others."""
        with self._lock:
            target = self.get_year(academic_year_id)
            for year in self._years.values():
                if year.is_current and year is not target:
                    year.set_current(False)
            target.set_current(True)

    def add_term(self, academic_year_id: str, name: str, term_id: Optional[str] = None) -> Term:
        with self._lock:
            year = self.get_year(academic_year_id)
            term = Term(year.id, name, entity_id=term_id)
            self._terms[term.id] = term
            year.add_term(term.id)
            return term

    def add_sequence(self, term_id: str, name: str, sequence_id: Optional[str] = None) -> Sequence:
        with self._lock:
            term = self.get_term(term_id)
            sequence = Sequence(term.id, name, entity_id=sequence_id)
            self._sequences[sequence.id] = sequence
            term.add_sequence(sequence.id)
            return sequence

    def get_year(self, academic_year_id: str) -> AcademicYear:
        with self._lock:
            try:
                return self._years[academic_year_id]
            except KeyError:
                raise NotFoundError(f"Academic year {academic_year_id} not found")

    def get_current_year(self) -> Optional[AcademicYear]:
        with self._lock:
            return next((year for year in self._years.values() if year.is_current), None)

    def get_term(self, term_id: str) -> Term:
        with self._lock:
            try:
                return self._terms[term_id]
            except KeyError:
                raise NotFoundError(f"Term {term_id} not found")

    def get_terms(self, academic_year_id: str) -> List[Term]:
        with self._lock:
            return [self._terms[term_id] for term_id in self.get_year(academic_year_id).term_ids]

    def get_sequences(self, term_id: str) -> List[Sequence]:
        with self._lock:
            return [self._sequences[seq_id] for seq_id in self.get_term(term_id).sequence_ids]


class ConfigSettingsProvider(SettingsProvider):
    """Settings read from the platform configuration dictionary."""

    def __init__(self, config: Dict[str, Any]):
        try:
            self._thresholds = ThresholdTable.from_config(
                config["discipline_thresholds"],
                fallback=config.get("discipline_fallback", "critical")
            )
            self._pass_mark = float(config["pass_mark"])
            self._mention_system = MentionSystem(config["mention_system"])
            self._term_average_policy = TermAveragePolicy(config["term_average_policy"])
        except (KeyError, ValueError, TypeError, ValidationError) as e:
            raise ConfigurationError(f"Invalid grading settings: {e}")

    def get_discipline_thresholds(self) -> ThresholdTable:
        return self._thresholds

    def get_pass_mark(self) -> float:
        return self._pass_mark

    def get_mention_system(self) -> MentionSystem:
        return self._mention_system

    def get_term_average_policy(self) -> TermAveragePolicy:
        return self._term_average_policy
