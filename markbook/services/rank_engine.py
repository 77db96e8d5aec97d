"""
Rank engine: explicit, class-wide rank batches.

A batch reads a snapshot of every active student's value at one coordinate, computes
competition ranks (ties share a rank, the next value skips: 18, 18, 15, 10 -> 1, 1, 3, 4)
and writes them back in one atomic step. Students without a value get no rank. Only one
batch may run per coordinate at a time; distinct coordinates run in parallel.
"""

import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..app_logger import get_logger
from ..core.enums import RankScope, TermAveragePolicy
from ..core.exceptions import ConcurrencyError, NotFoundError
from ..persistence.record_store import RecordStore, DerivedBatch
from .average_calculator import (
    compute_sequence_average, compute_term_average, compute_year_average
)
from .concurrency_manager import ConcurrencyManager, LockType

logger = get_logger("rank_engine")


@dataclass
class RankResult:
    """Outcome of a rank batch."""
    scope: RankScope
    updated: int
    ranks: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"scope": self.scope.value, "updated": self.updated, "ranks": dict(self.ranks)}


def competition_ranks(scores: List[Tuple[str, float]]) -> Dict[str, int]:
    """Rank ``(student_id, score)`` pairs, highest score first, with shared ties."""
    ordered = sorted(scores, key=lambda item: item[1], reverse=True)
    ranks: Dict[str, int] = {}
    previous_score: Optional[float] = None
    rank = 0
    for position, (student_id, score) in enumerate(ordered, 1):
        if score != previous_score:
            rank = position
            previous_score = score
        ranks[student_id] = rank
    return ranks


class RankEngine:
    """Computes and stores subject, sequence and term ranks for a class."""

    def __init__(self, record_store: RecordStore, concurrency_manager: ConcurrencyManager,
                 lock_timeout: Optional[float] = None):
        self._store = record_store
        self._concurrency = concurrency_manager
        self._lock_timeout = lock_timeout

    def calculate_rank(self, class_id: str, academic_year_id: str, term_id: str,
                       sequence_id: str, subject_id: str) -> RankResult:
        """Rank a class on one subject of one sequence."""
        resource_id = self._resource_id(RankScope.SUBJECT, class_id, academic_year_id,
                                        term_id, sequence_id, subject_id)
        with self._batch_lock(resource_id) as lock_id:
            rows = []
            for key, subject in self._store.subjects_at(class_id, academic_year_id, term_id,
                                                        sequence_id, subject_id):
                with subject.lock:
                    rows.append((key.student_id, subject, subject.current_mark))

            return self._commit(RankScope.SUBJECT, resource_id, lock_id, rows)

    def calculate_sequence_rank(self, class_id: str, academic_year_id: str, term_id: str,
                                sequence_id: str) -> RankResult:
        """Rank a class on its sequence averages, storing the averages with the ranks."""
        resource_id = self._resource_id(RankScope.SEQUENCE, class_id, academic_year_id,
                                        term_id, sequence_id)
        with self._batch_lock(resource_id) as lock_id:
            rows = []
            for key, sequence in self._store.sequences_at(class_id, academic_year_id,
                                                          term_id, sequence_id):
                average = compute_sequence_average(sequence.snapshot())
                rows.append((key.student_id, sequence, average))

            return self._commit(RankScope.SEQUENCE, resource_id, lock_id, rows, store_averages=True)

    def calculate_term_rank(self, class_id: str, academic_year_id: str, term_id: str,
                            policy: TermAveragePolicy = TermAveragePolicy.EQUAL) -> RankResult:
        """Rank a class on its term averages, storing the averages with the ranks."""
        resource_id = self._resource_id(RankScope.TERM, class_id, academic_year_id, term_id)
        with self._batch_lock(resource_id) as lock_id:
            rows = []
            for record in self._store.records_for_class(class_id, academic_year_id):
                try:
                    term = record.get_term(term_id)
                except NotFoundError:
                    continue
                average = compute_term_average(term.snapshot(), policy)
                rows.append((record.student_id, term, average))

            return self._commit(RankScope.TERM, resource_id, lock_id, rows, store_averages=True)

    def class_rankings(self, class_id: str, academic_year_id: str, term_id: Optional[str] = None,
                       policy: TermAveragePolicy = TermAveragePolicy.EQUAL) -> List[Dict[str, Any]]:
        """Read-only ranking of a class on term or year averages; nothing is stored."""
        scored = []
        unranked = []
        for record in self._store.records_for_class(class_id, academic_year_id):
            snapshot = self._store.snapshot(record.student_id, academic_year_id)
            if term_id is not None:
                try:
                    average = compute_term_average(snapshot.get_term(term_id), policy)
                except NotFoundError:
                    continue
            else:
                average = compute_year_average(snapshot, policy)
            if average is None:
                unranked.append({"student_id": record.student_id, "average": None, "rank": None})
            else:
                scored.append((record.student_id, average))

        ranks = competition_ranks(scored)
        averages = dict(scored)
        rankings = [
            {"student_id": student_id, "average": averages[student_id], "rank": rank}
            for student_id, rank in sorted(ranks.items(), key=lambda item: item[1])
        ]
        return rankings + unranked

    def _commit(self, scope: RankScope, resource_id: str, lock_id: str,
                rows: List[Tuple[str, Any, Optional[float]]],
                store_averages: bool = False) -> RankResult:
        scored = [(student_id, value) for student_id, _, value in rows if value is not None]
        if not scored:
            logger.info("Rank batch %s: no values, nothing updated", resource_id)
            return RankResult(scope=scope, updated=0)

        ranks = competition_ranks(scored)
        batch = DerivedBatch(ranks=[(target, ranks.get(student_id)) for student_id, target, _ in rows])
        if store_averages:
            batch.averages = [(target, value) for _, target, value in rows]
        if not self._concurrency.holds_lock(lock_id):
            logger.warning("Rank batch %s outlived its lock; results discarded", resource_id)
            raise ConcurrencyError(f"Lock on {resource_id} expired before the batch completed",
                                   error_code="LOCK_EXPIRED", details={"resource_id": resource_id})
        self._store.apply_batch(batch)

        logger.info("Rank batch %s: ranked %d of %d students", resource_id, len(ranks), len(rows))
        return RankResult(scope=scope, updated=len(ranks), ranks=ranks)

    def _batch_lock(self, resource_id: str):
        return self._concurrency.lock(resource_id, LockType.EXCLUSIVE,
                                      holder_id=str(uuid.uuid4()), timeout=self._lock_timeout)

    @staticmethod
    def _resource_id(scope: RankScope, *parts: str) -> str:
        return f"rank:{scope.value}:" + "/".join(parts)
