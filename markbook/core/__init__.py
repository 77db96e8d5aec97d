"""
Core module containing the record model, collaborator interfaces and errors.
"""

from .entities import *
from .interfaces import *
from .exceptions import *
from .enums import *

__all__ = [
    # Entities
    "AbstractEntity",
    "AcademicYear",
    "Term",
    "Sequence",
    "CurriculumEntry",
    "SequenceKey",
    "SubjectKey",
    "MarkChange",
    "AbsenceChange",
    "SubjectRecord",
    "SequenceRecord",
    "TermRecord",
    "StudentAcademicRecord",
    "DisciplineRule",
    "ThresholdTable",

    # Interfaces
    "ClassRoster",
    "AcademicCalendar",
    "SettingsProvider",
    "LedgerStore",

    # Enums
    "RecordStatus",
    "DisciplineRating",
    "TermAveragePolicy",
    "MentionSystem",
    "RankScope",
    "LedgerEntryType",

    # Exceptions
    "MarkbookException",
    "ValidationError",
    "NotFoundError",
    "ConcurrencyError",
    "PersistenceError",
    "ConfigurationError",
]
