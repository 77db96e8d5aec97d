import threading
import time

import pytest

from markbook.core.enums import RankScope
from markbook.core.exceptions import ConcurrencyError, NotFoundError
from markbook.services import ConcurrencyManager, LockType, RankEngine
from markbook.services.rank_engine import competition_ranks
from tests.conftest import CLASS, YEAR, enter_marks


def subject_rank(service, student_id, subject_id="math", term_id="T1", sequence_id="S1"):
    record = service.get_student_record(student_id, YEAR)
    return record.get_term(term_id).get_sequence(sequence_id).get_subject(subject_id).rank


def test_competition_ranking_shares_ties():
    ranks = competition_ranks([("a", 18.0), ("b", 18.0), ("c", 15.0), ("d", 10.0)])
    assert ranks == {"a": 1, "b": 1, "c": 3, "d": 4}


def test_competition_ranking_three_way_tie():
    ranks = competition_ranks([("a", 12.0), ("b", 14.0), ("c", 12.0), ("d", 12.0), ("e", 9.0)])
    assert ranks == {"b": 1, "a": 2, "c": 2, "d": 2, "e": 5}


def test_calculate_rank_stores_subject_ranks(service):
    enter_marks(service, {"alice": {"math": 18}, "bob": {"math": 18},
                          "carol": {"math": 15}, "dave": {"math": 10}})

    result = service.calculate_rank(CLASS, YEAR, "T1", "S1", "math")

    assert result.scope == RankScope.SUBJECT
    assert result.updated == 4
    assert [subject_rank(service, s) for s in ("alice", "bob", "carol", "dave")] == [1, 1, 3, 4]


def test_students_without_marks_get_no_rank(service):
    enter_marks(service, {"alice": {"math": 9}, "bob": {"math": 14}, "carol": {"math": 11}})

    result = service.calculate_rank(CLASS, YEAR, "T1", "S1", "math")

    assert result.updated == 3
    assert subject_rank(service, "dave") is None
    assert result.to_dict()["ranks"] == {"bob": 1, "carol": 2, "alice": 3}


def test_calculate_rank_is_idempotent(service):
    enter_marks(service, {"alice": {"math": 12}, "bob": {"math": 16}, "carol": {"math": 12}})

    first = service.calculate_rank(CLASS, YEAR, "T1", "S1", "math")
    second = service.calculate_rank(CLASS, YEAR, "T1", "S1", "math")

    assert first.ranks == second.ranks
    assert first.updated == second.updated == 3
    assert [subject_rank(service, s) for s in ("alice", "bob", "carol")] == [2, 1, 2]


def test_rank_follows_mark_changes_only_when_recalculated(service):
    enter_marks(service, {"alice": {"math": 12}, "bob": {"math": 16}})
    service.calculate_rank(CLASS, YEAR, "T1", "S1", "math")

    service.record_mark("alice", "T1", "S1", "math", 19, "teacher-1")
    assert subject_rank(service, "alice") == 2

    service.calculate_rank(CLASS, YEAR, "T1", "S1", "math")
    assert subject_rank(service, "alice") == 1
    assert subject_rank(service, "bob") == 2


def test_no_marks_updates_nothing(service):
    result = service.calculate_rank(CLASS, YEAR, "T1", "S1", "math")

    assert result.updated == 0
    assert result.ranks == {}
    assert all(subject_rank(service, s) is None for s in ("alice", "bob", "carol", "dave"))


def test_archived_students_are_not_ranked(service):
    enter_marks(service, {"alice": {"math": 18}, "bob": {"math": 12}})
    service.archive_record("alice", YEAR)

    result = service.calculate_rank(CLASS, YEAR, "T1", "S1", "math")

    assert result.ranks == {"bob": 1}


def test_unknown_class(service):
    with pytest.raises(NotFoundError):
        service.calculate_rank("F9Z", YEAR, "T1", "S1", "math")


@pytest.mark.parametrize("year_id, term_id, sequence_id, subject_id", [
    (YEAR, "T1", "S1", "physics"),
    (YEAR, "T9", "S9", "math"),
    (YEAR, "T1", "S9", "math"),
    (YEAR, "T1", "S3", "math"),
    ("1999-2000", "T1", "S1", "math"),
])
def test_unknown_subject_coordinate(service, year_id, term_id, sequence_id, subject_id):
    enter_marks(service, {"alice": {"math": 14}})
    with pytest.raises(NotFoundError):
        service.calculate_rank(CLASS, year_id, term_id, sequence_id, subject_id)


@pytest.mark.parametrize("year_id, term_id, sequence_id", [
    (YEAR, "T9", "S1"),
    (YEAR, "T1", "S4"),
    ("1999-2000", "T1", "S1"),
])
def test_unknown_sequence_coordinate(service, year_id, term_id, sequence_id):
    with pytest.raises(NotFoundError):
        service.calculate_sequence_rank(CLASS, year_id, term_id, sequence_id)


def test_unknown_term_coordinate(platform, service):
    platform.calendar.create_year("2025-2026", year_id="2025-2026")
    platform.calendar.add_term("2025-2026", "Term 1", term_id="N1")

    with pytest.raises(NotFoundError):
        service.calculate_term_rank(CLASS, YEAR, "T9")
    with pytest.raises(NotFoundError):
        service.calculate_term_rank(CLASS, "1999-2000", "T1")
    with pytest.raises(NotFoundError):
        service.calculate_term_rank(CLASS, YEAR, "N1")


def test_batch_outliving_its_lock_is_discarded(platform, service, monkeypatch):
    enter_marks(service, {"alice": {"math": 18}, "bob": {"math": 12}})
    store = platform.record_store
    engine = RankEngine(store, ConcurrencyManager(), lock_timeout=0.01)
    subjects_at = store.subjects_at

    def slow_subjects_at(*args):
        time.sleep(0.05)
        return subjects_at(*args)

    monkeypatch.setattr(store, "subjects_at", slow_subjects_at)

    with pytest.raises(ConcurrencyError) as excinfo:
        engine.calculate_rank(CLASS, YEAR, "T1", "S1", "math")
    assert excinfo.value.error_code == "LOCK_EXPIRED"
    assert subject_rank(service, "alice") is None
    assert subject_rank(service, "bob") is None


def test_sequence_rank_stores_averages(service):
    enter_marks(service, {
        "alice": {"math": 16, "history": 10},  # (64 + 20) / 6 = 14
        "bob": {"math": 12, "french": 12},     # 12
        "carol": {"french": 15},               # 15
    })

    result = service.calculate_sequence_rank(CLASS, YEAR, "T1", "S1")

    assert result.scope == RankScope.SEQUENCE
    assert result.ranks == {"carol": 1, "alice": 2, "bob": 3}
    sequence = service.get_student_record("alice", YEAR).get_term("T1").get_sequence("S1")
    assert sequence.average == pytest.approx(14.0)
    assert sequence.rank == 2
    dave = service.get_student_record("dave", YEAR).get_term("T1").get_sequence("S1")
    assert dave.average is None and dave.rank is None


def test_term_rank_uses_sequence_averages(service):
    enter_marks(service, {"alice": {"math": 10}, "bob": {"math": 14}})
    enter_marks(service, {"alice": {"math": 18}, "bob": {"math": 13}}, sequence_id="S2")

    result = service.calculate_term_rank(CLASS, YEAR, "T1")

    # alice (10 + 18) / 2 = 14, bob (14 + 13) / 2 = 13.5
    assert result.ranks == {"alice": 1, "bob": 2}
    term = service.get_student_record("bob", YEAR).get_term("T1")
    assert term.average == pytest.approx(13.5)
    assert term.rank == 2


def test_running_batch_rejects_a_second_one_on_the_same_tuple(platform, service):
    enter_marks(service, {"alice": {"math": 18}})
    manager = platform._concurrency_manager

    with manager.lock(f"rank:subject:{CLASS}/{YEAR}/T1/S1/math", LockType.EXCLUSIVE, "other-batch"):
        with pytest.raises(ConcurrencyError):
            service.calculate_rank(CLASS, YEAR, "T1", "S1", "math")
        # A different tuple is not blocked
        assert service.calculate_rank(CLASS, YEAR, "T1", "S1", "french").updated == 0

    assert subject_rank(service, "alice") is None
    assert service.calculate_rank(CLASS, YEAR, "T1", "S1", "math").updated == 1


def test_concurrent_batches_on_the_same_tuple(service):
    enter_marks(service, {"alice": {"math": 18}, "bob": {"math": 15}})
    outcomes = []
    lock = threading.Lock()
    barrier = threading.Barrier(8)

    def run():
        barrier.wait()
        try:
            result = service.calculate_rank(CLASS, YEAR, "T1", "S1", "math")
            outcome = result.ranks
        except ConcurrencyError:
            outcome = "rejected"
        with lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=run) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(outcomes) == 8
    assert any(o != "rejected" for o in outcomes)
    assert all(o == "rejected" or o == {"alice": 1, "bob": 2} for o in outcomes)
    assert subject_rank(service, "alice") == 1


def test_class_rankings_on_term(service):
    enter_marks(service, {"alice": {"math": 12}, "bob": {"math": 15.333}, "carol": {"math": 12}})

    rankings = service.class_rankings(CLASS, YEAR, "T1")

    assert rankings == [
        {"student_id": "bob", "average": 15.33, "rank": 1},
        {"student_id": "alice", "average": 12.0, "rank": 2},
        {"student_id": "carol", "average": 12.0, "rank": 2},
        {"student_id": "dave", "average": None, "rank": None},
    ]
    # Read-only
    assert service.get_student_record("bob", YEAR).get_term("T1").rank is None


def test_class_rankings_on_year(service):
    enter_marks(service, {"alice": {"math": 10}, "bob": {"math": 14}})
    enter_marks(service, {"alice": {"math": 20}}, term_id="T2", sequence_id="S3")

    rankings = service.class_rankings(CLASS, YEAR)

    assert [(r["student_id"], r["rank"]) for r in rankings[:2]] == [("alice", 1), ("bob", 2)]
    assert rankings[0]["average"] == 15.0
