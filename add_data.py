"""
Script to enter sample marks into a running Markbook server via the REST API.
Start the server with its sample class before executing this script.

Usage:
    python -m markbook.main --rest-port 8000 --sample-data
    python add_data.py
"""

import requests
import json
import sys
import os


def _console_supports_utf8() -> bool:
    enc = getattr(sys.stdout, "encoding", None)
    return enc is not None and "utf" in enc.lower()


_OK_CHAR = "✓" if _console_supports_utf8() else "[OK]"
_FAIL_CHAR = "✗" if _console_supports_utf8() else "[FAIL]"

YEAR_ID = "2024-2025"
CLASS_ID = "F1A"
EDITOR_ID = "teacher-1"


def _detect_base_url() -> str:
    """Determine a reachable BASE_URL.

    Priority: environment variable `MARKBOOK_BASE_URL`, then common local ports.
    If nothing responds, fall back to http://127.0.0.1:8000.
    """
    env = os.environ.get("MARKBOOK_BASE_URL")
    if env:
        return env

    candidates = [
        "http://127.0.0.1:8000",
        "http://127.0.0.1:8888",
        "http://localhost:8000",
        "http://localhost:8888",
    ]

    for c in candidates:
        try:
            resp = requests.get(f"{c}/health", timeout=0.5)
            if resp.status_code == 200:
                return c
        except requests.exceptions.RequestException:
            continue

    return candidates[0]


BASE_URL = _detect_base_url()


def check_server():
    """Check if the server is running."""
    try:
        response = requests.get(f"{BASE_URL}/health", timeout=2)
        if response.status_code == 200:
            print(f"{_OK_CHAR} Server is running")
            return True
    except requests.exceptions.RequestException:
        pass
    print(f"{_FAIL_CHAR} Server is not running!")
    print("\nPlease start the server first:")
    print("  python -m markbook.main --rest-port 8000 --sample-data")
    return False


def record_mark(student_id, term_id, sequence_id, subject_id, mark):
    """Record one mark."""
    data = {
        "student_id": student_id,
        "academic_year_id": YEAR_ID,
        "term_id": term_id,
        "sequence_id": sequence_id,
        "subject_id": subject_id,
        "mark": mark,
        "editor_id": EDITOR_ID,
    }
    try:
        response = requests.put(f"{BASE_URL}/marks", json=data)
        if response.status_code == 200:
            print(f"{_OK_CHAR} {student_id} {sequence_id} {subject_id}: {mark}")
            return response.json()
        print(f"{_FAIL_CHAR} Failed to record mark: {response.text}")
    except requests.exceptions.RequestException as e:
        print(f"{_FAIL_CHAR} Error recording mark: {e}")
    return None


def bulk_record_marks(updates):
    """Record many marks in one request."""
    try:
        response = requests.post(f"{BASE_URL}/marks/bulk",
                                 json={"editor_id": EDITOR_ID, "updates": updates})
        if response.status_code == 200:
            result = response.json()
            print(f"{_OK_CHAR} Bulk update: {result['processed']} processed, "
                  f"{result['failed_count']} failed")
            return result
        print(f"{_FAIL_CHAR} Bulk update failed: {response.text}")
    except requests.exceptions.RequestException as e:
        print(f"{_FAIL_CHAR} Error in bulk update: {e}")
    return None


def record_absence(student_id, term_id, sequence_id, count):
    data = {
        "student_id": student_id,
        "academic_year_id": YEAR_ID,
        "term_id": term_id,
        "sequence_id": sequence_id,
        "count": count,
        "editor_id": "supervisor-1",
    }
    response = requests.put(f"{BASE_URL}/absences", json=data)
    if response.status_code == 200:
        print(f"{_OK_CHAR} {student_id} {sequence_id}: {count} absences")
    else:
        print(f"{_FAIL_CHAR} Failed to record absences: {response.text}")


def calculate_ranks(term_id, sequence_id, subjects):
    """Rank the class on each subject, then on the sequence and the term."""
    base = {"class_id": CLASS_ID, "academic_year_id": YEAR_ID, "term_id": term_id}
    for subject_id in subjects:
        response = requests.put(f"{BASE_URL}/ranks/subject",
                                json=dict(base, sequence_id=sequence_id, subject_id=subject_id))
        print(f"  {subject_id}: {response.json()}")
    response = requests.put(f"{BASE_URL}/ranks/sequence", json=dict(base, sequence_id=sequence_id))
    print(f"  sequence {sequence_id}: {response.json()}")
    response = requests.put(f"{BASE_URL}/ranks/term", json=base)
    print(f"  term {term_id}: {response.json()}")


def show_rankings(term_id):
    response = requests.get(f"{BASE_URL}/classes/{CLASS_ID}/rankings",
                            params={"academic_year_id": YEAR_ID, "term_id": term_id})
    print("\n=== Class rankings ===")
    for row in response.json():
        print(f"  {row['rank']}. {row['student_id']} ({row['average']})")


def show_report_card(student_id, term_id):
    response = requests.get(f"{BASE_URL}/records/{student_id}/{YEAR_ID}/report-card",
                            params={"term_id": term_id})
    print(f"\n=== Report card of {student_id} ===")
    print(json.dumps(response.json(), indent=2, ensure_ascii=False))


def main():
    """Main function to enter sample marks."""
    print("=" * 60)
    print("Markbook - Add Sample Marks")
    print("=" * 60)

    if not check_server():
        sys.exit(1)

    print("\nRecording marks...")
    record_mark("alice", "T1", "S1", "math", 16)
    record_mark("bob", "T1", "S1", "math", 16)
    record_mark("carol", "T1", "S1", "math", 9)
    # Correction: entered twice, both kept in the history
    record_mark("carol", "T1", "S1", "math", 11)

    bulk_record_marks([
        {"student_id": "alice", "academic_year_id": YEAR_ID, "term_id": "T1", "sequence_id": "S1",
         "subject_id": "french", "mark": 14},
        {"student_id": "bob", "academic_year_id": YEAR_ID, "term_id": "T1", "sequence_id": "S1",
         "subject_id": "french", "mark": 11},
        {"student_id": "carol", "academic_year_id": YEAR_ID, "term_id": "T1", "sequence_id": "S1",
         "subject_id": "french", "mark": 8},
        {"student_id": "alice", "academic_year_id": YEAR_ID, "term_id": "T1", "sequence_id": "S1",
         "subject_id": "history", "mark": 12},
    ])

    print("\nRecording absences...")
    record_absence("carol", "T1", "S1", 7)

    print("\nCalculating ranks...")
    calculate_ranks("T1", "S1", ["math", "french", "history"])

    show_rankings("T1")
    show_report_card("alice", "T1")

    print("\n" + "=" * 60)
    print(f"{_OK_CHAR} Sample marks added successfully!")
    print("=" * 60)
    print("\nYou can now:")
    print(f"  - View API docs: {BASE_URL}/docs")
    print(f"  - Get a record: curl {BASE_URL}/records/alice/{YEAR_ID}")
    print(f"  - Students at risk: curl '{BASE_URL}/classes/{CLASS_ID}/at-risk?academic_year_id={YEAR_ID}'")
    print()


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        print(f"\n\n{_FAIL_CHAR} Interrupted by user")
        sys.exit(1)
