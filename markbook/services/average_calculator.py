"""
Average calculation over the record tree.

All functions are pure: they read the records they are given and return values at full
precision. Rounding happens only in ``round_for_display``.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from ..core.entities import SequenceRecord, TermRecord, StudentAcademicRecord
from ..core.enums import MentionSystem, TermAveragePolicy

DISPLAY_PRECISION = 2


@dataclass(frozen=True)
class Mention:
    """A grade band on the 0-20 scale."""
    min_average: float
    label: str
    label_en: str


FRENCH_MENTIONS: Tuple[Mention, ...] = (
    Mention(18.0, "Excellent", "Excellent"),
    Mention(16.0, "Très Bien", "Very Good"),
    Mention(14.0, "Bien", "Good"),
    Mention(12.0, "Assez Bien", "Fairly Good"),
    Mention(10.0, "Passable", "Fair"),
    Mention(0.0, "Insuffisant", "Insufficient"),
)

ENGLISH_MENTIONS: Tuple[Mention, ...] = (
    Mention(18.0, "Excellence", "Excellence"),
    Mention(16.0, "Distinction", "Distinction"),
    Mention(14.0, "Mérite", "Merit"),
    Mention(12.0, "Satisfaisant", "Satisfactory"),
    Mention(10.0, "Passable", "Pass"),
    Mention(0.0, "Échec", "Fail"),
)

OVERALL_STATUS_BANDS: Tuple[Tuple[float, str], ...] = (
    (16.0, "Excellent"),
    (14.0, "Very Good"),
    (12.0, "Good"),
    (10.0, "Average"),
)


def weighted_average(pairs: Iterable[Tuple[float, float]]) -> Optional[float]:
    """Weighted mean of ``(value, weight)`` pairs, or None when there are none."""
    numerator = 0.0
    denominator = 0.0
    for value, weight in pairs:
        numerator += value * weight
        denominator += weight
    if denominator == 0:
        return None
    return numerator / denominator


def sequence_weight(sequence: SequenceRecord) -> float:
    """Total coefficient of the subjects that carry a mark."""
    return sum(subject.coefficient for subject in sequence.subjects if subject.has_mark)


def compute_sequence_average(sequence: SequenceRecord) -> Optional[float]:
    """Coefficient-weighted mean of the marked subjects of a sequence.

    Unmarked subjects are left out of both numerator and denominator. A sequence without
    any mark has no average (None), which is different from an average of zero.
    """
    return weighted_average(
        (subject.current_mark, subject.coefficient)
        for subject in sequence.subjects
        if subject.has_mark
    )


def compute_term_average(term: TermRecord,
                         policy: TermAveragePolicy = TermAveragePolicy.EQUAL) -> Optional[float]:
    """Combine the sequence averages of a term.

    EQUAL gives each sequence with data the same weight. WEIGHTED weights each sequence by
    the total coefficient of its marked subjects.
    """
    pairs = []
    for sequence in term.sequences:
        average = compute_sequence_average(sequence)
        if average is None:
            continue
        weight = sequence_weight(sequence) if policy == TermAveragePolicy.WEIGHTED else 1.0
        pairs.append((average, weight))
    return weighted_average(pairs)


def compute_year_average(record: StudentAcademicRecord,
                         policy: TermAveragePolicy = TermAveragePolicy.EQUAL) -> Optional[float]:
    """Mean of the term averages that have a value."""
    averages = [compute_term_average(term, policy) for term in record.terms]
    return weighted_average((average, 1.0) for average in averages if average is not None)


def round_for_display(value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    return round(value, DISPLAY_PRECISION)


def mention(average: Optional[float], system: MentionSystem = MentionSystem.FRENCH) -> Optional[Mention]:
    if average is None:
        return None
    table = ENGLISH_MENTIONS if system == MentionSystem.ENGLISH else FRENCH_MENTIONS
    for band in table:
        if average >= band.min_average:
            return band
    return None


def overall_status(average: Optional[float]) -> str:
    if average is None:
        return "Not Available"
    for threshold, label in OVERALL_STATUS_BANDS:
        if average >= threshold:
            return label
    return "Below Average"


def failing_subjects(record: StudentAcademicRecord, pass_mark: float) -> List[str]:
    """Subject ids with at least one recorded mark below the pass mark."""
    failing = []
    for term in record.terms:
        for sequence in term.sequences:
            for subject in sequence.subjects:
                if subject.has_mark and subject.current_mark < pass_mark and subject.subject_id not in failing:
                    failing.append(subject.subject_id)
    return failing


def has_failing_subjects(record: StudentAcademicRecord, pass_mark: float) -> bool:
    return bool(failing_subjects(record, pass_mark))
