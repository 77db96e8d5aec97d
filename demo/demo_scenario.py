#!/usr/bin/env python3
"""
Demo scenario for the Markbook platform.
"""

import sys
import os
import json
import threading

# Add the project root to the Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from markbook.main import MarkbookPlatform
from markbook.core.exceptions import ConcurrencyError, ValidationError
from markbook.services import LockType


def run_demo():
    """Walk through mark entry, ranking, discipline and reporting."""
    print("=" * 60)
    print("MARKBOOK ACADEMIC RECORDS - DEMO")
    print("=" * 60)

    config = {
        "ledger_store_type": "file",
        "ledger_store_config": {"base_path": "demo_ledger"},
        "log_level": "WARNING",
    }
    platform = MarkbookPlatform(config)

    print("\n1. Creating sample data...")
    sample = platform.create_sample_data()
    year_id = sample["academic_year_id"]
    print(f"  ✓ Class {sample['class_id']} with students {', '.join(sample['students'])}")

    print("\n2. Recording marks...")
    demonstrate_mark_entry(platform, year_id)

    print("\n3. Rejected edits...")
    demonstrate_validation(platform)

    print("\n4. Concurrent mark entry and ranking...")
    demonstrate_concurrency(platform, year_id)

    print("\n5. Ranks, averages and discipline...")
    demonstrate_ranking(platform, year_id)

    print("\n6. Mark history...")
    demonstrate_history(platform, year_id)

    print("\n7. Reports...")
    demonstrate_reports(platform, year_id)

    print("\n" + "=" * 60)
    print("DEMO COMPLETED")
    print("=" * 60)


def demonstrate_mark_entry(platform, year_id):
    service = platform.service
    marks = [
        ("alice", "math", 16), ("alice", "french", 14), ("alice", "history", 12),
        ("bob", "math", 16), ("bob", "french", 11),
        ("carol", "math", 9), ("carol", "french", 8), ("carol", "history", 10),
    ]
    for student_id, subject_id, mark in marks:
        service.record_mark(student_id, "T1", "S1", subject_id, mark, "teacher-1")
    print(f"  ✓ {len(marks)} marks recorded in sequence S1")

    # Correction of an earlier entry
    subject = service.record_mark("carol", "T1", "S1", "math", 11, "teacher-2")
    print(f"  ✓ carol math corrected to {subject.current_mark} ({len(subject.modified)} history entries)")

    sequence = service.record_mark("carol", "T1", "S1", "absences", 7, "supervisor-1")
    print(f"  ✓ carol absences in S1: {sequence.absences}")


def demonstrate_validation(platform):
    service = platform.service
    for mark, editor in ((25, "teacher-1"), (-1, "teacher-1"), (12, "")):
        try:
            service.record_mark("alice", "T1", "S2", "math", mark, editor)
        except ValidationError as e:
            print(f"  ✗ rejected mark {mark!r} by {editor!r}: {e.message}")


def demonstrate_concurrency(platform, year_id):
    service = platform.service

    def enter(subject_id, mark):
        service.record_mark("bob", "T1", "S2", subject_id, mark, "teacher-3")

    threads = [threading.Thread(target=enter, args=(subject_id, mark))
               for subject_id, mark in (("math", 13), ("french", 15), ("history", 9))]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    record = service.get_student_record("bob", year_id)
    marks = {s.subject_id: s.current_mark for s in record.get_term("T1").get_sequence("S2").subjects}
    print(f"  ✓ Parallel entries on distinct subjects all applied: {marks}")

    # A rank batch already running on a tuple rejects a second one
    manager = platform._concurrency_manager
    with manager.lock(f"rank:subject:F1A/{year_id}/T1/S1/math", LockType.EXCLUSIVE, holder_id="demo"):
        try:
            service.calculate_rank("F1A", year_id, "T1", "S1", "math")
        except ConcurrencyError as e:
            print(f"  ✗ second rank batch rejected: {e.message}")


def demonstrate_ranking(platform, year_id):
    service = platform.service
    for subject_id in ("math", "french", "history"):
        result = service.calculate_rank("F1A", year_id, "T1", "S1", subject_id)
        print(f"  {subject_id} ranks: {result.ranks}")

    result = service.calculate_sequence_rank("F1A", year_id, "T1", "S1")
    print(f"  sequence S1 ranks: {result.ranks}")
    result = service.calculate_term_rank("F1A", year_id, "T1")
    print(f"  term T1 ranks: {result.ranks}")

    for student_id in ("alice", "bob", "carol"):
        rating = service.evaluate_discipline(student_id, year_id, "T1")
        print(f"  discipline of {student_id}: {rating.value}")


def demonstrate_history(platform, year_id):
    service = platform.service
    for change in service.mark_history("carol", year_id, "T1", "S1", "math"):
        print(f"  {change.timestamp.isoformat()} {change.editor_id}: "
              f"{change.previous_mark} -> {change.new_mark}")
    verified = service.verify_history("carol", year_id, "T1", "S1", "math")
    print(f"  ✓ history verified: {verified}")


def demonstrate_reports(platform, year_id):
    service = platform.service
    print("  Class rankings (T1):")
    for row in service.class_rankings("F1A", year_id, "T1"):
        print(f"    {row['rank']}. {row['student_id']} ({row['average']})")

    print("  Students at risk:")
    for row in service.students_at_risk("F1A", year_id):
        print(f"    {row['student_id']}: {row['failing_subjects']} {row['low_terms']}")

    card = service.report_card("alice", year_id, "T1")
    print("  Report card of alice:")
    print(json.dumps(card, indent=2, ensure_ascii=False))


if __name__ == "__main__":
    run_demo()
