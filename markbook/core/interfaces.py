"""
Interfaces for the collaborators the engine consumes: class roster, academic calendar,
settings and the durable ledger.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from .entities import AcademicYear, Term, Sequence, CurriculumEntry
from .enums import LedgerEntryType, MentionSystem, TermAveragePolicy


class ClassRoster(ABC):
    """Class membership and per-class curriculum."""

    @abstractmethod
    def class_exists(self, class_id: str) -> bool:
        pass

    @abstractmethod
    def get_students(self, class_id: str) -> List[str]:
        """Get the student ids assigned to a class."""
        pass

    @abstractmethod
    def get_curriculum(self, class_id: str, academic_year_id: str) -> List[CurriculumEntry]:
        """Get the subjects (with coefficients) taught to a class for a year."""
        pass


class AcademicCalendar(ABC):
    """Academic years, their terms and sequences."""

    @abstractmethod
    def get_year(self, academic_year_id: str) -> AcademicYear:
        pass

    @abstractmethod
    def get_current_year(self) -> Optional[AcademicYear]:
        pass

    @abstractmethod
    def get_term(self, term_id: str) -> Term:
        pass

    @abstractmethod
    def get_terms(self, academic_year_id: str) -> List[Term]:
        """Get the terms of a year, in order."""
        pass

    @abstractmethod
    def get_sequences(self, term_id: str) -> List[Sequence]:
        """Get the sequences of a term, in order."""
        pass


class SettingsProvider(ABC):
    """School-level grading settings."""

    @abstractmethod
    def get_discipline_thresholds(self) -> Any:
        """Get the ThresholdTable used by the discipline evaluator."""
        pass

    @abstractmethod
    def get_pass_mark(self) -> float:
        pass

    @abstractmethod
    def get_mention_system(self) -> MentionSystem:
        pass

    @abstractmethod
    def get_term_average_policy(self) -> TermAveragePolicy:
        pass


class LedgerStore(ABC):
    """Append-only durable journal of mark and absence changes."""

    @abstractmethod
    def append_entry(self, stream_id: str, entry_type: LedgerEntryType, data: Dict[str, Any]) -> int:
        """Append an entry to a stream and return its position (1-based)."""
        pass

    @abstractmethod
    def get_entries(self, stream_id: str, from_version: int = 0) -> List[Dict[str, Any]]:
        """Get the entries of a stream after ``from_version``, in append order."""
        pass

    @abstractmethod
    def get_all_streams(self) -> List[str]:
        pass

    def get_stream_version(self, stream_id: str) -> int:
        """Get the number of entries in a stream."""
        return len(self.get_entries(stream_id))
