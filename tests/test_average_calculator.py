import pytest

from markbook.core.audit import GENESIS_HASH
from markbook.core.entities import MarkChange, SequenceRecord, SubjectRecord, TermRecord
from markbook.core.enums import MentionSystem, TermAveragePolicy
from markbook.services.average_calculator import (
    compute_sequence_average, compute_term_average, weighted_average,
    mention, overall_status, round_for_display
)


def subject(subject_id, coefficient, mark=None):
    record = SubjectRecord(subject_id, coefficient)
    if mark is not None:
        record.apply_change(MarkChange.create(None, float(mark), "teacher-1", GENESIS_HASH))
    return record


def test_weighted_average_of_nothing_is_none():
    assert weighted_average([]) is None


def test_unmarked_subject_is_left_out():
    sequence = SequenceRecord("S1", [subject("A", 2, 10), subject("B", 3)])
    assert compute_sequence_average(sequence) == pytest.approx(10.0)


def test_coefficient_weights_the_mark():
    assert compute_sequence_average(SequenceRecord("S1", [subject("math", 4, 16)])) == pytest.approx(16.0)

    sequence = SequenceRecord("S1", [subject("math", 4, 16), subject("history", 2, 10)])
    # (16 * 4 + 10 * 2) / 6
    assert compute_sequence_average(sequence) == pytest.approx(14.0)


def test_sequence_without_marks_has_no_average():
    sequence = SequenceRecord("S1", [subject("A", 2), subject("B", 3)])
    assert compute_sequence_average(sequence) is None


def test_zero_mark_is_a_mark():
    sequence = SequenceRecord("S1", [subject("A", 1, 0), subject("B", 1)])
    assert compute_sequence_average(sequence) == 0.0


def test_term_average_equal_policy():
    term = TermRecord("T1", [
        SequenceRecord("S1", [subject("math", 4, 12)]),
        SequenceRecord("S2", [subject("math", 4, 16), subject("french", 1, 16)]),
        SequenceRecord("S3", [subject("math", 4)]),
    ])
    assert compute_term_average(term, TermAveragePolicy.EQUAL) == pytest.approx(14.0)


def test_term_average_weighted_policy():
    term = TermRecord("T1", [
        SequenceRecord("S1", [subject("math", 4, 12)]),
        SequenceRecord("S2", [subject("math", 4, 16), subject("french", 4, 16)]),
    ])
    # sequence weights 4 and 8
    assert compute_term_average(term, TermAveragePolicy.WEIGHTED) == pytest.approx((12 * 4 + 16 * 8) / 12)


def test_term_without_any_mark_has_no_average():
    term = TermRecord("T1", [SequenceRecord("S1", [subject("math", 4)])])
    assert compute_term_average(term) is None


def test_round_for_display():
    assert round_for_display(13.456) == 13.46
    assert round_for_display(None) is None


@pytest.mark.parametrize("average, label", [
    (19.0, "Excellent"),
    (16.0, "Très Bien"),
    (15.99, "Bien"),
    (12.5, "Assez Bien"),
    (10.0, "Passable"),
    (3.0, "Insuffisant"),
])
def test_french_mentions(average, label):
    assert mention(average, MentionSystem.FRENCH).label == label


def test_english_mentions():
    assert mention(17.0, MentionSystem.ENGLISH).label_en == "Distinction"
    assert mention(9.5, MentionSystem.ENGLISH).label_en == "Fail"
    assert mention(None, MentionSystem.ENGLISH) is None


@pytest.mark.parametrize("average, status", [
    (16.0, "Excellent"),
    (14.5, "Very Good"),
    (12.0, "Good"),
    (10.0, "Average"),
    (9.99, "Below Average"),
    (None, "Not Available"),
])
def test_overall_status(average, status):
    assert overall_status(average) == status
