# tests/conftest.py
import pytest
from fastapi.testclient import TestClient

from markbook.core.entities import CurriculumEntry
from markbook.main import MarkbookPlatform

YEAR = "2024-2025"
CLASS = "F1A"
STUDENTS = ["alice", "bob", "carol", "dave"]
CURRICULUM = {"math": 4, "french": 3, "history": 2}


def build_platform(config=None):
    """A platform with one year (T1: S1, S2; T2: S3, S4) and one enrolled class."""
    platform = MarkbookPlatform(dict({"log_level": "WARNING"}, **(config or {})))

    calendar = platform.calendar
    calendar.create_year(YEAR, is_current=True, year_id=YEAR)
    calendar.add_term(YEAR, "Term 1", term_id="T1")
    calendar.add_term(YEAR, "Term 2", term_id="T2")
    calendar.add_sequence("T1", "Sequence 1", sequence_id="S1")
    calendar.add_sequence("T1", "Sequence 2", sequence_id="S2")
    calendar.add_sequence("T2", "Sequence 3", sequence_id="S3")
    calendar.add_sequence("T2", "Sequence 4", sequence_id="S4")

    roster = platform.roster
    roster.add_class(CLASS)
    for subject_id, coefficient in CURRICULUM.items():
        roster.set_subject(CLASS, YEAR, CurriculumEntry(subject_id, coefficient))
    for student_id in STUDENTS:
        roster.assign_student(CLASS, student_id)

    platform.service.enroll_class(CLASS, YEAR)
    return platform


@pytest.fixture
def platform():
    return build_platform()


@pytest.fixture
def service(platform):
    return platform.service


@pytest.fixture
def client(platform):
    return TestClient(platform.app)


def enter_marks(service, marks, term_id="T1", sequence_id="S1", editor_id="teacher-1"):
    """Record ``{student_id: {subject_id: mark}}``."""
    for student_id, subjects in marks.items():
        for subject_id, mark in subjects.items():
            service.record_mark(student_id, term_id, sequence_id, subject_id, mark, editor_id)
