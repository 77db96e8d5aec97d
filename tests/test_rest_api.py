from markbook.services import LockType
from tests.conftest import CLASS, YEAR, enter_marks


def mark_body(**overrides):
    body = {"student_id": "alice", "term_id": "T1", "sequence_id": "S1",
            "subject_id": "math", "mark": 14, "editor_id": "teacher-1"}
    body.update(overrides)
    return body


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "healthy"


def test_record_mark(client):
    r = client.put("/marks", json=mark_body())
    assert r.status_code == 200
    body = r.json()
    assert body["current_mark"] == 14.0
    assert body["modified"][0]["previous_mark"] is None


def test_record_mark_errors(client):
    assert client.put("/marks", json=mark_body(mark=25)).status_code == 400
    assert client.put("/marks", json=mark_body(editor_id="  ")).status_code == 400
    assert client.put("/marks", json=mark_body(student_id="zoe")).status_code == 404
    assert client.put("/marks", json=mark_body(subject_id="physics")).status_code == 404
    # Missing field
    assert client.put("/marks", json={"student_id": "alice"}).status_code == 422


def test_bulk_marks(client):
    r = client.post("/marks/bulk", json={"editor_id": "teacher-1", "updates": [
        {"student_id": "alice", "term_id": "T1", "sequence_id": "S1", "subject_id": "math", "mark": 12},
        {"student_id": "bob", "term_id": "T1", "sequence_id": "S1", "subject_id": "math", "mark": 21},
    ]})
    assert r.status_code == 200
    assert r.json()["processed"] == 1
    assert r.json()["failed"][0]["index"] == 1


def test_absences(client):
    r = client.put("/absences", json={"student_id": "alice", "term_id": "T1", "sequence_id": "S1",
                                      "count": 3, "editor_id": "supervisor-1"})
    assert r.status_code == 200
    assert r.json()["absences"] == 3

    r = client.put("/absences", json={"student_id": "alice", "term_id": "T1", "sequence_id": "S1",
                                      "count": -1, "editor_id": "supervisor-1"})
    assert r.status_code == 400


def test_absences_through_marks_route(client):
    r = client.put("/marks", json=mark_body(subject_id="absences", mark=3, editor_id="supervisor-1"))
    assert r.status_code == 200
    assert r.json()["absences"] == 3

    r = client.put("/marks", json=mark_body(subject_id="absences", mark=3.5, editor_id="supervisor-1"))
    assert r.status_code == 400

    r = client.post("/marks/bulk", json={"editor_id": "supervisor-1", "updates": [
        {"student_id": "bob", "term_id": "T1", "sequence_id": "S2", "subject_id": "absences", "mark": 2},
    ]})
    assert r.json()["processed"] == 1
    r = client.get(f"/records/bob/{YEAR}")
    sequences = r.json()["terms"][0]["sequences"]
    assert [s["absences"] for s in sequences if s["sequence_id"] == "S2"] == [2]


def test_records(client, platform):
    r = client.get(f"/records/alice/{YEAR}")
    assert r.status_code == 200
    assert r.json()["class_id"] == CLASS
    assert client.get(f"/records/zoe/{YEAR}").status_code == 404

    platform.roster.assign_student(CLASS, "zoe")
    r = client.post("/records", json={"student_id": "zoe", "class_id": CLASS, "academic_year_id": YEAR,
                                     "repeating": True})
    assert r.status_code == 201
    assert r.json()["has_repeated"] is True
    assert client.post("/records", json={"student_id": "zoe", "class_id": CLASS,
                                         "academic_year_id": YEAR}).status_code == 400


def test_archive_and_reactivate(client):
    assert client.post(f"/records/alice/{YEAR}/archive").json()["status"] == "archived"
    assert client.put("/marks", json=mark_body()).status_code == 400
    assert client.post(f"/records/alice/{YEAR}/reactivate").json()["status"] == "active"
    assert client.put("/marks", json=mark_body()).status_code == 200


def test_rank_routes(client, service):
    enter_marks(service, {"alice": {"math": 18}, "bob": {"math": 18}, "carol": {"math": 15}})
    base = {"class_id": CLASS, "academic_year_id": YEAR, "term_id": "T1"}

    r = client.put("/ranks/subject", json=dict(base, sequence_id="S1", subject_id="math"))
    assert r.status_code == 200
    assert r.json() == {"scope": "subject", "updated": 3, "ranks": {"alice": 1, "bob": 1, "carol": 3}}

    r = client.put("/ranks/sequence", json=dict(base, sequence_id="S1"))
    assert r.json()["updated"] == 3
    r = client.put("/ranks/term", json=base)
    assert r.json()["scope"] == "term"

    r = client.put("/ranks/term", json=dict(base, class_id="F9Z"))
    assert r.status_code == 404
    r = client.put("/ranks/subject", json=dict(base, sequence_id="S1", subject_id="nosuch"))
    assert r.status_code == 404
    r = client.put("/ranks/sequence", json=dict(base, term_id="T9", sequence_id="S9"))
    assert r.status_code == 404


def test_rank_conflict(client, platform):
    manager = platform._concurrency_manager
    with manager.lock(f"rank:term:{CLASS}/{YEAR}/T1", LockType.EXCLUSIVE, "other-batch"):
        r = client.put("/ranks/term", json={"class_id": CLASS, "academic_year_id": YEAR, "term_id": "T1"})
    assert r.status_code == 409


def test_history(client):
    client.put("/marks", json=mark_body(mark=11))
    client.put("/marks", json=mark_body(mark=13))

    r = client.get(f"/records/alice/{YEAR}/history",
                   params={"term_id": "T1", "sequence_id": "S1", "subject_id": "math"})
    assert r.status_code == 200
    assert [c["new_mark"] for c in r.json()["history"]] == [11.0, 13.0]
    assert r.json()["verified"] is True


def test_derived_value_routes(client, service):
    enter_marks(service, {"alice": {"math": 16}, "bob": {"math": 8}})

    r = client.post(f"/records/alice/{YEAR}/averages")
    assert r.json()["terms"][0]["average"] == 16.0

    r = client.put("/discipline", json={"student_id": "alice", "academic_year_id": YEAR, "term_id": "T1"})
    assert r.json()["discipline"] == "excellent"

    r = client.post(f"/records/alice/{YEAR}/completion")
    assert r.json()["has_completed"] is False

    r = client.get(f"/records/alice/{YEAR}/report-card", params={"term_id": "T1"})
    assert r.json()["terms"][0]["mention"] == "Très Bien"


def test_class_routes(client, service):
    enter_marks(service, {"alice": {"math": 16}, "bob": {"math": 8}})

    r = client.get(f"/classes/{CLASS}/rankings", params={"academic_year_id": YEAR, "term_id": "T1"})
    assert [row["student_id"] for row in r.json()[:2]] == ["alice", "bob"]

    r = client.get(f"/classes/{CLASS}/at-risk", params={"academic_year_id": YEAR})
    assert [row["student_id"] for row in r.json()] == ["bob"]

    r = client.post(f"/classes/{CLASS}/curriculum-sync", params={"academic_year_id": YEAR})
    assert r.json()["subjects_added"] == 0

    assert client.get("/classes/F9Z/rankings", params={"academic_year_id": YEAR}).status_code == 404
