"""
Enumerations and constants for the Markbook engine.
"""

from enum import Enum


MIN_MARK = 0.0
MAX_MARK = 20.0

# Pseudo subject id used by grade-entry screens to edit a sequence's absences.
ABSENCES_SUBJECT_ID = "absences"


class RecordStatus(Enum):
    """Lifecycle status of a student academic record."""
    ACTIVE = "active"
    ARCHIVED = "archived"


class DisciplineRating(Enum):
    """Qualitative conduct rating derived for a term."""
    EXCELLENT = "excellent"
    GOOD = "good"
    WARNING = "warning"
    CRITICAL = "critical"
    NOT_AVAILABLE = "not_available"


class TermAveragePolicy(Enum):
    """How sequence averages are combined into a term average."""
    EQUAL = "equal"
    WEIGHTED = "weighted"


class MentionSystem(Enum):
    """Grade mention tables."""
    FRENCH = "french"
    ENGLISH = "english"


class RankScope(Enum):
    """Level of the record tree a rank batch targets."""
    SUBJECT = "subject"
    SEQUENCE = "sequence"
    TERM = "term"


class LedgerEntryType(Enum):
    """Kinds of entries written to the durable ledger."""
    MARK_CHANGE = "mark_change"
    ABSENCE_CHANGE = "absence_change"
