"""
Academic service: the operations exposed to callers.

Wires the record store, mark ledger, absence tracker, rank engine and discipline
evaluator to the roster, calendar and settings collaborators.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from ..app_logger import get_logger
from ..core.entities import (
    StudentAcademicRecord, TermRecord, SequenceRecord, SubjectRecord,
    SubjectKey, SequenceKey, MarkChange
)
from ..core.enums import DisciplineRating
from ..core.exceptions import MarkbookException, NotFoundError, ValidationError
from ..core.interfaces import ClassRoster, AcademicCalendar, SettingsProvider
from ..persistence.record_store import RecordStore, DerivedBatch
from .absence_tracker import AbsenceTracker
from .average_calculator import (
    compute_sequence_average, compute_term_average, compute_year_average, has_failing_subjects,
    failing_subjects, mention, overall_status, round_for_display
)
from .discipline_evaluator import DisciplineEvaluator
from .mark_ledger import MarkLedger
from .rank_engine import RankEngine, RankResult

logger = get_logger("academic_service")


@dataclass
class BulkResult:
    """Outcome of a bulk mark update; failed items do not stop the others."""
    processed: int = 0
    failed: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"processed": self.processed, "failed_count": len(self.failed), "failed": list(self.failed)}


class AcademicService:
    """Facade over the grading engine."""

    def __init__(self, record_store: RecordStore, mark_ledger: MarkLedger,
                 absence_tracker: AbsenceTracker, rank_engine: RankEngine,
                 discipline_evaluator: DisciplineEvaluator, roster: ClassRoster,
                 calendar: AcademicCalendar, settings: SettingsProvider):
        self._store = record_store
        self._ledger = mark_ledger
        self._absences = absence_tracker
        self._ranks = rank_engine
        self._discipline = discipline_evaluator
        self._roster = roster
        self._calendar = calendar
        self._settings = settings

    def enroll_student(self, student_id: str, class_id: str, academic_year_id: str,
                       repeating: bool = False) -> StudentAcademicRecord:
        """Create a student's record for a year from the calendar and class curriculum.

        ``repeating`` flags a student enrolled again in the class of a previous year.
        """
        self._require_class(class_id)
        if student_id not in self._roster.get_students(class_id):
            raise ValidationError(f"Student {student_id} is not assigned to class {class_id}")

        curriculum = self._roster.get_curriculum(class_id, academic_year_id)
        terms = []
        for term in self._calendar.get_terms(academic_year_id):
            sequences = [
                SequenceRecord(sequence.id, [SubjectRecord(entry.subject_id, entry.coefficient)
                                             for entry in curriculum])
                for sequence in self._calendar.get_sequences(term.id)
            ]
            terms.append(TermRecord(term.id, sequences))

        record = StudentAcademicRecord(student_id, class_id, academic_year_id, terms)
        if repeating:
            record.set_repeated(True)
        self._store.add_record(record)
        self._restore(student_id, academic_year_id)
        return self._store.snapshot(student_id, academic_year_id)

    def enroll_class(self, class_id: str, academic_year_id: str) -> List[StudentAcademicRecord]:
        """Create records for every student of a class that does not have one yet."""
        created = []
        for student_id in self._roster.get_students(class_id):
            if not self._store.has_record(student_id, academic_year_id):
                created.append(self.enroll_student(student_id, class_id, academic_year_id))
        return created

    def sync_curriculum(self, class_id: str, academic_year_id: str) -> int:
        """Add subjects introduced to the curriculum after enrolment; existing ones are kept."""
        self._require_class(class_id)
        curriculum = self._roster.get_curriculum(class_id, academic_year_id)
        added = 0
        for record in self._store.records_for_class(class_id, academic_year_id):
            for seq_key in self._store.sequence_keys_for(record.student_id, academic_year_id):
                for entry in curriculum:
                    if self._store.add_subject(seq_key, SubjectRecord(entry.subject_id, entry.coefficient)):
                        self._ledger.restore(seq_key.subject(entry.subject_id))
                        added += 1
        logger.info("Synchronized curriculum of class %s (%s): %d subject records added",
                    class_id, academic_year_id, added)
        return added

    def archive_record(self, student_id: str, academic_year_id: str) -> StudentAcademicRecord:
        self._store.get_record(student_id, academic_year_id).archive()
        logger.info("Archived record of student %s for %s", student_id, academic_year_id)
        return self._store.snapshot(student_id, academic_year_id)

    def reactivate_record(self, student_id: str, academic_year_id: str) -> StudentAcademicRecord:
        self._store.get_record(student_id, academic_year_id).reactivate()
        return self._store.snapshot(student_id, academic_year_id)

    def get_student_record(self, student_id: str, academic_year_id: str) -> StudentAcademicRecord:
        return self._store.snapshot(student_id, academic_year_id)

    def record_mark(self, student_id: str, term_id: str, sequence_id: str, subject_id: str,
                    mark: Any, editor_id: str,
                    academic_year_id: Optional[str] = None) -> Union[SubjectRecord, SequenceRecord]:
        year_id = self._resolve_year(term_id, academic_year_id)
        key = SubjectKey(student_id, year_id, term_id, sequence_id, subject_id)
        return self._ledger.record_mark(key, mark, editor_id)

    def record_absence(self, student_id: str, term_id: str, sequence_id: str, count: Any,
                       editor_id: str, academic_year_id: Optional[str] = None) -> SequenceRecord:
        year_id = self._resolve_year(term_id, academic_year_id)
        key = SequenceKey(student_id, year_id, term_id, sequence_id)
        return self._absences.set_absences(key, count, editor_id)

    def bulk_record_marks(self, updates: List[Dict[str, Any]], editor_id: str) -> BulkResult:
        """Apply many mark edits; each one succeeds or fails on its own."""
        result = BulkResult()
        for index, update in enumerate(updates):
            try:
                self.record_mark(
                    update["student_id"], update["term_id"], update["sequence_id"],
                    update["subject_id"], update.get("mark"), editor_id,
                    academic_year_id=update.get("academic_year_id")
                )
                result.processed += 1
            except KeyError as e:
                result.failed.append({"index": index, "error": f"Missing field {e}"})
            except MarkbookException as e:
                result.failed.append({"index": index, "error": e.message})
        logger.info("Bulk mark update by %s: %d processed, %d failed",
                    editor_id, result.processed, len(result.failed))
        return result

    def mark_history(self, student_id: str, academic_year_id: str, term_id: str,
                     sequence_id: str, subject_id: str) -> List[MarkChange]:
        return self._ledger.history(SubjectKey(student_id, academic_year_id, term_id,
                                               sequence_id, subject_id))

    def verify_history(self, student_id: str, academic_year_id: str, term_id: str,
                       sequence_id: str, subject_id: str) -> bool:
        return self._ledger.verify_history(SubjectKey(student_id, academic_year_id, term_id,
                                                      sequence_id, subject_id))

    def calculate_rank(self, class_id: str, academic_year_id: str, term_id: str,
                       sequence_id: str, subject_id: str) -> RankResult:
        self._require_period(class_id, academic_year_id, term_id, sequence_id, subject_id)
        return self._ranks.calculate_rank(class_id, academic_year_id, term_id, sequence_id, subject_id)

    def calculate_sequence_rank(self, class_id: str, academic_year_id: str, term_id: str,
                                sequence_id: str) -> RankResult:
        self._require_period(class_id, academic_year_id, term_id, sequence_id)
        return self._ranks.calculate_sequence_rank(class_id, academic_year_id, term_id, sequence_id)

    def calculate_term_rank(self, class_id: str, academic_year_id: str, term_id: str) -> RankResult:
        self._require_period(class_id, academic_year_id, term_id)
        return self._ranks.calculate_term_rank(class_id, academic_year_id, term_id,
                                               self._settings.get_term_average_policy())

    def calculate_averages(self, student_id: str, academic_year_id: str) -> StudentAcademicRecord:
        """Store the current sequence and term averages of one student."""
        record = self._store.get_record(student_id, academic_year_id)
        snapshot = self._store.snapshot(student_id, academic_year_id)
        policy = self._settings.get_term_average_policy()

        batch = DerivedBatch()
        for term, term_copy in zip(record.terms, snapshot.terms):
            for sequence, sequence_copy in zip(term.sequences, term_copy.sequences):
                batch.averages.append((sequence, compute_sequence_average(sequence_copy)))
            batch.averages.append((term, compute_term_average(term_copy, policy)))
        self._store.apply_batch(batch)
        return self._store.snapshot(student_id, academic_year_id)

    def evaluate_discipline(self, student_id: str, academic_year_id: str,
                            term_id: str) -> DisciplineRating:
        """Derive and store the discipline rating of one student's term."""
        term = self._store.get_record(student_id, academic_year_id).get_term(term_id)
        term_copy = term.snapshot()
        average = compute_term_average(term_copy, self._settings.get_term_average_policy())
        rating = self._discipline.evaluate(average, term_copy.absence_total(),
                                           self._settings.get_discipline_thresholds())
        self._store.apply_batch(DerivedBatch(disciplines=[(term, rating)]))
        return rating

    def check_year_completion(self, student_id: str, academic_year_id: str) -> bool:
        """A year is completed when every term average passes and no subject fails."""
        record = self._store.get_record(student_id, academic_year_id)
        snapshot = self._store.snapshot(student_id, academic_year_id)
        pass_mark = self._settings.get_pass_mark()
        policy = self._settings.get_term_average_policy()

        averages = [compute_term_average(term, policy) for term in snapshot.terms]
        completed = (
            bool(averages)
            and all(average is not None and average >= pass_mark for average in averages)
            and not has_failing_subjects(snapshot, pass_mark)
        )
        record.set_completed(completed)
        return completed

    def class_rankings(self, class_id: str, academic_year_id: str,
                       term_id: Optional[str] = None) -> List[Dict[str, Any]]:
        self._require_class(class_id)
        rankings = self._ranks.class_rankings(class_id, academic_year_id, term_id,
                                              self._settings.get_term_average_policy())
        for row in rankings:
            row["average"] = round_for_display(row["average"])
        return rankings

    def students_at_risk(self, class_id: str, academic_year_id: str,
                         threshold: Optional[float] = None) -> List[Dict[str, Any]]:
        """Students with a term average below the threshold or a failing subject."""
        self._require_class(class_id)
        threshold = self._settings.get_pass_mark() if threshold is None else threshold
        policy = self._settings.get_term_average_policy()

        at_risk = []
        for record in self._store.records_for_class(class_id, academic_year_id):
            snapshot = self._store.snapshot(record.student_id, academic_year_id)
            low_terms = []
            for term in snapshot.terms:
                average = compute_term_average(term, policy)
                if average is not None and average < threshold:
                    low_terms.append({"term_id": term.term_id, "average": round_for_display(average)})
            failing = failing_subjects(snapshot, threshold)
            if low_terms or failing:
                at_risk.append({
                    "student_id": record.student_id,
                    "low_terms": low_terms,
                    "failing_subjects": failing,
                })
        return at_risk

    def report_card(self, student_id: str, academic_year_id: str,
                    term_id: Optional[str] = None) -> Dict[str, Any]:
        """Display-ready view of a record: averages rounded, mentions resolved."""
        snapshot = self._store.snapshot(student_id, academic_year_id)
        year = self._calendar.get_year(academic_year_id)
        system = self._settings.get_mention_system()
        policy = self._settings.get_term_average_policy()

        terms = snapshot.terms if term_id is None else [snapshot.get_term(term_id)]
        term_names = {term.id: term.name for term in self._calendar.get_terms(academic_year_id)}

        term_cards = []
        for term in terms:
            sequence_names = {seq.id: seq.name for seq in self._calendar.get_sequences(term.term_id)}
            term_average = compute_term_average(term, policy)
            term_cards.append({
                "term_id": term.term_id,
                "name": term_names.get(term.term_id, term.term_id),
                "average": round_for_display(term_average),
                "mention": self._mention_label(term_average, system),
                "rank": term.rank,
                "discipline": term.discipline.value,
                "absences": term.absence_total(),
                "sequences": [
                    {
                        "sequence_id": sequence.sequence_id,
                        "name": sequence_names.get(sequence.sequence_id, sequence.sequence_id),
                        "average": round_for_display(compute_sequence_average(sequence)),
                        "rank": sequence.rank,
                        "absences": sequence.absences,
                        "subjects": [
                            {
                                "subject_id": subject.subject_id,
                                "coefficient": subject.coefficient,
                                "mark": subject.current_mark,
                                "rank": subject.rank,
                                "mention": self._mention_label(subject.current_mark, system),
                            }
                            for subject in sequence.subjects
                        ],
                    }
                    for sequence in term.sequences
                ],
            })

        overall = compute_year_average(snapshot, policy)
        return {
            "student_id": snapshot.student_id,
            "class_id": snapshot.class_id,
            "academic_year": year.label,
            "status": snapshot.status.value,
            "overall_average": round_for_display(overall),
            "overall_status": overall_status(overall),
            "has_completed": snapshot.has_completed,
            "terms": term_cards,
        }

    def _require_class(self, class_id: str) -> None:
        if not self._roster.class_exists(class_id):
            raise NotFoundError(f"Class {class_id} not found")

    def _require_period(self, class_id: str, academic_year_id: str, term_id: str,
                        sequence_id: Optional[str] = None, subject_id: Optional[str] = None) -> None:
        """Raise NotFoundError unless the rank coordinate exists for the class."""
        self._require_class(class_id)
        self._calendar.get_year(academic_year_id)
        term = self._calendar.get_term(term_id)
        if term.academic_year_id != academic_year_id:
            raise NotFoundError(f"Term {term_id} not found in academic year {academic_year_id}")
        if sequence_id is not None and sequence_id not in term.sequence_ids:
            raise NotFoundError(f"Sequence {sequence_id} not found in term {term_id}")
        if subject_id is not None:
            curriculum = self._roster.get_curriculum(class_id, academic_year_id)
            if subject_id not in {entry.subject_id for entry in curriculum}:
                raise NotFoundError(f"Subject {subject_id} is not taught to class {class_id}")

    def _resolve_year(self, term_id: str, academic_year_id: Optional[str]) -> str:
        # An empty term is left for the coordinate check to reject.
        if academic_year_id or not term_id:
            return academic_year_id or ""
        return self._calendar.get_term(term_id).academic_year_id

    def _restore(self, student_id: str, academic_year_id: str) -> None:
        """Rebuild mark and absence history of a new record from the journal."""
        for seq_key in self._store.sequence_keys_for(student_id, academic_year_id):
            self._absences.restore(seq_key)
            for subject in self._store.get_sequence(seq_key).subjects:
                self._ledger.restore(seq_key.subject(subject.subject_id))

    @staticmethod
    def _mention_label(average: Optional[float], system) -> Optional[str]:
        band = mention(average, system)
        return band.label if band else None
