"""
Main entry point for the Markbook platform.
"""

import copy
import json
import threading
import time
from typing import Any, Dict, Optional

from .app_logger import setup_logging, get_logger
from .core.entities import CurriculumEntry
from .core.exceptions import ConfigurationError, MarkbookException
from .persistence import (
    LedgerStoreFactory, RecordStore,
    InMemoryClassRoster, InMemoryAcademicCalendar, ConfigSettingsProvider
)
from .services import (
    AbsenceTracker, AcademicService, ConcurrencyManager, DisciplineEvaluator,
    MarkLedger, RankEngine
)
from .services.discipline_evaluator import DEFAULT_THRESHOLDS
from .api.rest_api import MarkbookRestAPI

logger = get_logger("platform")


DEFAULT_CONFIG: Dict[str, Any] = {
    "ledger_store_type": "memory",
    "ledger_store_config": {},
    "rank_lock_timeout": 300.0,
    "pass_mark": 10.0,
    "mention_system": "french",
    "term_average_policy": "equal",
    "discipline_thresholds": [
        {"rating": rule.rating.value, "min_average": rule.min_average, "max_absences": rule.max_absences}
        for rule in DEFAULT_THRESHOLDS.rules
    ],
    "discipline_fallback": DEFAULT_THRESHOLDS.fallback.value,
    "log_level": "INFO",
}


def load_config(config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Merge a user configuration over the defaults."""
    merged = copy.deepcopy(DEFAULT_CONFIG)
    for key, value in (config or {}).items():
        if key not in DEFAULT_CONFIG:
            raise ConfigurationError(f"Unknown configuration key: {key}")
        merged[key] = value

    timeout = merged["rank_lock_timeout"]
    if timeout is not None and (not isinstance(timeout, (int, float)) or timeout <= 0):
        raise ConfigurationError(f"rank_lock_timeout must be a positive number, got {timeout!r}")
    if not isinstance(merged["ledger_store_config"], dict):
        raise ConfigurationError("ledger_store_config must be an object")
    return merged


class MarkbookPlatform:
    """Main platform class that wires the engine's components together."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self._config = load_config(config)
        self._rest_thread = None
        self._running = False

        self._initialize_platform()

    def _initialize_platform(self):
        setup_logging(self._config["log_level"])
        logger.info("Initializing Markbook platform...")

        store_type = self._config["ledger_store_type"]
        try:
            self._ledger_store = LedgerStoreFactory.create_ledger_store(
                store_type, **self._config["ledger_store_config"]
            )
        except (ValueError, TypeError) as e:
            raise ConfigurationError(f"Cannot create ledger store {store_type!r}: {e}")
        logger.info("Ledger store initialized: %s", store_type)

        self.settings = ConfigSettingsProvider(self._config)
        self.roster = InMemoryClassRoster()
        self.calendar = InMemoryAcademicCalendar()
        self.record_store = RecordStore()
        self._concurrency_manager = ConcurrencyManager(default_timeout=self._config["rank_lock_timeout"])

        absence_tracker = AbsenceTracker(self.record_store, self._ledger_store)
        self.service = AcademicService(
            record_store=self.record_store,
            mark_ledger=MarkLedger(self.record_store, self._ledger_store, absence_tracker),
            absence_tracker=absence_tracker,
            rank_engine=RankEngine(self.record_store, self._concurrency_manager),
            discipline_evaluator=DisciplineEvaluator(),
            roster=self.roster,
            calendar=self.calendar,
            settings=self.settings,
        )
        self._rest_app = MarkbookRestAPI(self.service)
        logger.info("Markbook platform initialized")

    @property
    def app(self):
        """The FastAPI application."""
        return self._rest_app.app

    def start_rest_server(self, host: str = "0.0.0.0", port: int = 8000):
        """Start the REST server in a background thread."""
        if self._running:
            logger.warning("REST server already running")
            return

        import uvicorn

        def run_server():
            uvicorn.run(self._rest_app.app, host=host, port=port,
                        log_level=self._config["log_level"].lower())

        self._rest_thread = threading.Thread(target=run_server, daemon=True)
        self._rest_thread.start()
        self._running = True

        logger.info("REST API: http://localhost:%d", port)
        logger.info("API Docs: http://localhost:%d/docs", port)

    def create_sample_data(self) -> Dict[str, Any]:
        """Create a year with two terms, one class and three enrolled students."""
        year = self.calendar.create_year("2024-2025", is_current=True, year_id="2024-2025")
        sequences = {}
        for term_number in (1, 2):
            term = self.calendar.add_term(year.id, f"Term {term_number}", term_id=f"T{term_number}")
            for offset in (1, 2):
                sequence_number = (term_number - 1) * 2 + offset
                sequence = self.calendar.add_sequence(term.id, f"Sequence {sequence_number}",
                                                      sequence_id=f"S{sequence_number}")
                sequences.setdefault(term.id, []).append(sequence.id)

        self.roster.add_class("F1A")
        for subject_id, coefficient in (("math", 4), ("french", 3), ("history", 2)):
            self.roster.set_subject("F1A", year.id, CurriculumEntry(subject_id, coefficient))
        students = ["alice", "bob", "carol"]
        for student_id in students:
            self.roster.assign_student("F1A", student_id)
        self.service.enroll_class("F1A", year.id)

        logger.info("Sample data created: class F1A with %d students", len(students))
        return {"academic_year_id": year.id, "class_id": "F1A", "students": students,
                "sequences": sequences}

    def run_demo(self):
        """Record a few marks, rank the class and print a report card."""
        logger.info("Running Markbook demonstration...")
        sample = self.create_sample_data()
        year_id = sample["academic_year_id"]

        marks = {
            "alice": {"math": 16, "french": 14, "history": 12},
            "bob": {"math": 16, "french": 11},
            "carol": {"math": 9, "french": 8, "history": 10},
        }
        for student_id, subjects in marks.items():
            for subject_id, mark in subjects.items():
                self.service.record_mark(student_id, "T1", "S1", subject_id, mark, "teacher-1")
        self.service.record_absence("carol", "T1", "S1", 7, "supervisor-1")

        result = self.service.calculate_rank("F1A", year_id, "T1", "S1", "math")
        logger.info("Math ranks: %s", result.ranks)
        result = self.service.calculate_sequence_rank("F1A", year_id, "T1", "S1")
        logger.info("Sequence ranks: %s", result.ranks)
        for student_id in marks:
            rating = self.service.evaluate_discipline(student_id, year_id, "T1")
            logger.info("Discipline of %s: %s", student_id, rating.value)

        card = self.service.report_card("alice", year_id, "T1")
        print(json.dumps(card, indent=2, ensure_ascii=False))
        print(json.dumps(self.service.students_at_risk("F1A", year_id), indent=2))
        logger.info("Demo completed")


def main():
    """Main entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="Markbook Academic Records Platform")
    parser.add_argument("--rest-port", type=int, default=8000, help="REST server port")
    parser.add_argument("--demo", action="store_true", help="Run demo mode")
    parser.add_argument("--config", type=str, help="Configuration file path")
    parser.add_argument("--sample-data", action="store_true",
                        help="Create the sample class before serving")

    args = parser.parse_args()

    config = {}
    if args.config:
        with open(args.config, 'r') as f:
            config = json.load(f)

    try:
        platform = MarkbookPlatform(config)
    except MarkbookException as e:
        parser.error(e.message)

    try:
        if args.demo:
            platform.run_demo()
        else:
            if args.sample_data:
                platform.create_sample_data()
            platform.start_rest_server(port=args.rest_port)

            print("\nPlatform is running. Press Ctrl+C to stop.")
            while True:
                time.sleep(1)

    except KeyboardInterrupt:
        print("\nShutting down...")


if __name__ == "__main__":
    main()
