"""
Services module containing the grading engine components.
"""

from .absence_tracker import AbsenceTracker
from .academic_service import AcademicService, BulkResult
from .concurrency_manager import ConcurrencyManager, LockType
from .discipline_evaluator import DisciplineEvaluator
from .mark_ledger import MarkLedger
from .rank_engine import RankEngine, RankResult

__all__ = [
    "AbsenceTracker",
    "AcademicService",
    "BulkResult",
    "ConcurrencyManager",
    "LockType",
    "DisciplineEvaluator",
    "MarkLedger",
    "RankEngine",
    "RankResult",
]
