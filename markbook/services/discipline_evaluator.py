"""
Discipline rating derived from a term's average and absence total.
"""

from typing import Optional

from ..core.entities import ThresholdTable, DisciplineRule, is_number
from ..core.enums import DisciplineRating
from ..core.exceptions import ValidationError


DEFAULT_THRESHOLDS = ThresholdTable(
    rules=(
        DisciplineRule(DisciplineRating.EXCELLENT, min_average=14.0, max_absences=2),
        DisciplineRule(DisciplineRating.GOOD, min_average=10.0, max_absences=6),
        DisciplineRule(DisciplineRating.WARNING, max_absences=12),
    ),
    fallback=DisciplineRating.CRITICAL,
)


class DisciplineEvaluator:
    """Deterministic mapping of (average, absences, thresholds) to a rating."""

    def evaluate(self, average: Optional[float], absence_total: int,
                 threshold_table: ThresholdTable) -> DisciplineRating:
        if average is not None and not is_number(average):
            raise ValidationError(f"Average must be a number, got {average!r}")
        if isinstance(absence_total, bool) or not isinstance(absence_total, int) or absence_total < 0:
            raise ValidationError(f"Absence total must be a non-negative integer, got {absence_total!r}")

        for rule in threshold_table.rules:
            if rule.matches(average, absence_total):
                return rule.rating
        return threshold_table.fallback
