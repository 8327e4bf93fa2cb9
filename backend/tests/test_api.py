"""API tests using FastAPI TestClient."""
import pytest
from fastapi.testclient import TestClient

from anagram.api.auth import _create_token

ASSIGNMENT = {
    "title": "Week 3",
    "description": "Short racks",
    "totalQuestions": 2,
    "optionSets": [{"label": "warm-up", "numQuestions": 2, "spec": {"total": 8, "operators": 1}}],
}


@pytest.fixture(scope="module")
def client():
    from anagram.main import app
    from anagram.persistence.db import init_db
    init_db()
    return TestClient(app)


@pytest.fixture(scope="module")
def admin_headers():
    return {"Authorization": f"Bearer {_create_token('admin-1', 'admin', 'head-tutor')}"}


@pytest.fixture(scope="module")
def student_headers():
    return {"Authorization": f"Bearer {_create_token('s1', 'student')}"}


@pytest.fixture
def assignment_id(client, admin_headers):
    resp = client.post("/assignments", json=ASSIGNMENT, headers=admin_headers)
    assert resp.status_code == 201
    aid = resp.json()["id"]
    client.post(f"/assignments/{aid}/assign", json={"studentIds": ["s1"]}, headers=admin_headers)
    return aid


# ------------------------------------------------------------------
# Health and auth
# ------------------------------------------------------------------
def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_whoami(client, admin_headers):
    resp = client.get("/auth/me", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json() == {"id": "admin-1", "username": "head-tutor", "role": "admin"}


def test_missing_or_bad_token_rejected(client):
    assert client.get("/auth/me").status_code == 401
    assert client.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"}).status_code == 401
    assert client.get("/assignments").status_code == 401


# ------------------------------------------------------------------
# Puzzles
# ------------------------------------------------------------------
def test_generate_puzzle(client):
    resp = client.post(
        "/puzzles/generate",
        json={"total": 10, "operators": 2, "operator_symbols": {"+": 1, "*": 1}, "heavy": 1, "seed": 7},
    )
    assert resp.status_code == 200
    data = resp.json()
    assert len(data["elements"]) == 10
    assert sorted(data["solutionDisplay"]) == sorted(data["elements"])
    assert data["sampleEquation"] == "".join(data["solutionTokens"])
    assert data["points"] > 0


def test_generate_rejects_inconsistent_spec(client):
    resp = client.post("/puzzles/generate", json={"total": 10, "operators": 2, "equals": 2})
    assert resp.status_code == 400
    assert resp.json()["detail"]["error"] == "ConfigurationError"


def test_solve(client):
    resp = client.post("/puzzles/solve", json={"elements": ["1", "+", "2", "=", "3"], "limit": 50})
    assert resp.status_code == 200
    data = resp.json()
    assert data["solvable"] is True
    assert {s["equation"] for s in data["solutions"]} == {"1+2=3", "2+1=3", "3=1+2", "3=2+1"}


def test_solve_with_locks_and_unknown_tiles(client):
    resp = client.post(
        "/puzzles/solve",
        json={"elements": ["1", "+", "2", "=", "3"], "locked_positions": [{"index": 0, "value": "3"}]},
    )
    assert {s["equation"] for s in resp.json()["solutions"]} == {"3=1+2", "3=2+1"}
    assert client.post("/puzzles/solve", json={"elements": ["1", "%", "2"]}).status_code == 400


def test_solve_rejects_oversized_racks(client):
    rack = ["1", "2", "3", "4", "5", "6", "7", "8", "9", "1", "2", "3", "+", "-", "×", "÷"]
    assert client.post("/puzzles/solve", json={"elements": rack}).status_code == 422
    assert client.post("/puzzles/check", json={"elements": rack, "answer": []}).status_code == 422
    resp = client.post("/puzzles/solve", json={"elements": ["1", "+", "2", "=", "3"]})
    assert resp.json()["exhausted"] is False


def test_check_answer(client):
    answer = [
        {"display": "3"},
        {"display": "+/-", "value": "-"},
        {"display": "2"},
        {"display": "="},
        {"display": "?", "value": "1"},
    ]
    resp = client.post("/puzzles/check", json={"elements": ["3", "+/-", "2", "=", "?"], "answer": answer})
    assert resp.status_code == 200
    assert resp.json() == {"valid": True, "equation": "3-2=1", "reason": None}


def test_validate_equation(client):
    assert client.get("/puzzles/validate", params={"equation": "2+3×4=14"}).json()["valid"] is True
    assert client.get("/puzzles/validate", params={"equation": "2+3×4=20"}).json()["valid"] is False
    assert client.get("/puzzles/validate", params={"equation": " "}).status_code == 400


# ------------------------------------------------------------------
# Assignments
# ------------------------------------------------------------------
def test_students_cannot_create_assignments(client, student_headers):
    resp = client.post("/assignments", json=ASSIGNMENT, headers=student_headers)
    assert resp.status_code == 403


def test_invalid_option_set_rejected(client, admin_headers):
    body = dict(ASSIGNMENT, optionSets=[{"numQuestions": 1, "spec": {"total": 7, "operators": 1}}])
    resp = client.post("/assignments", json=body, headers=admin_headers)
    assert resp.status_code == 400
    assert "Option set 1" in resp.json()["detail"]["message"]


def test_unknown_assignment_is_404(client, admin_headers):
    assert client.get("/assignments/nope", headers=admin_headers).status_code == 404


def test_student_flow(client, admin_headers, student_headers, assignment_id):
    base = f"/assignments/{assignment_id}/students/s1"

    progress = client.get(base, headers=student_headers).json()
    assert progress["status"] == "todo"
    assert progress["progressPercentage"] == 0

    assert client.get(f"{base}/current-question", headers=student_headers).status_code == 409
    assert client.patch(f"{base}/start", headers=student_headers).json()["status"] == "inprogress"

    question = client.get(f"{base}/current-question", headers=student_headers).json()
    assert question["questionNumber"] == 1
    assert question["persisted"] is True
    assert len(question["puzzle"]["elements"]) == 8

    # A second writer for the same question gets the stored puzzle back
    rival = client.patch(
        f"{base}/current-question",
        json={"elements": ["1", "+", "1", "=", "2"], "solutionTokens": ["1", "+", "1", "=", "2"]},
        headers=student_headers,
    ).json()
    assert rival["puzzle"]["elements"] == question["puzzle"]["elements"]

    info = client.get(f"{base}/current-set", headers=student_headers).json()
    assert info["currentOptionSetIndex"] == 0
    assert info["currentPuzzle"]["elements"] == question["puzzle"]["elements"]

    first = client.post(f"{base}/answers", json={"questionNumber": 1, "answerText": "1+1=2"}, headers=student_headers)
    assert first.status_code == 200
    assert first.json()["progressPercentage"] == 50
    duplicate = client.post(f"{base}/answers", json={"questionNumber": 1}, headers=student_headers)
    assert duplicate.status_code == 409
    assert duplicate.json()["detail"]["error"] == "OutOfSequenceAnswer"

    second = client.post(
        f"{base}/answers",
        json={"questionNumber": 2, "answerText": "2+2=4", "lockedPositions": [{"index": 0, "value": "2"}]},
        headers=student_headers,
    )
    assert second.json()["status"] == "complete"

    answers = client.get(f"{base}/answers", headers=student_headers).json()
    assert [a["questionNumber"] for a in answers["answers"]] == [1, 2]
    assert answers["answers"][1]["lockedPositions"] == [{"index": 0, "value": "2"}]

    assert client.patch(f"{base}/status", json={"status": "done"}, headers=student_headers).status_code == 403
    assert client.patch(f"{base}/status", json={"status": "todo"}, headers=admin_headers).status_code == 400
    done = client.patch(f"{base}/status", json={"status": "done"}, headers=admin_headers)
    assert done.status_code == 200
    assert done.json()["status"] == "done"

    stats = client.get(f"/assignments/{assignment_id}/statistics", headers=admin_headers).json()
    assert stats["totalStudents"] == 1
    assert stats["completionRate"] == 100


def test_other_students_are_kept_out(client, assignment_id):
    intruder = {"Authorization": f"Bearer {_create_token('s2', 'student')}"}
    resp = client.get(f"/assignments/{assignment_id}/students/s1", headers=intruder)
    assert resp.status_code == 403


def test_student_assignment_list(client, student_headers, assignment_id):
    resp = client.get("/assignments/students/s1/assignments", headers=student_headers)
    assert resp.status_code == 200
    assert assignment_id in [v["assignment"]["id"] for v in resp.json()]


def test_delete_assignment(client, admin_headers, student_headers, assignment_id):
    assert client.delete(f"/assignments/{assignment_id}", headers=student_headers).status_code == 403
    assert client.delete(f"/assignments/{assignment_id}", headers=admin_headers).status_code == 204
    assert client.get(f"/assignments/{assignment_id}", headers=admin_headers).status_code == 404


def test_students_do_not_see_the_solution(client, admin_headers, student_headers, assignment_id):
    base = f"/assignments/{assignment_id}/students/s1"
    client.patch(f"{base}/start", headers=student_headers)

    hidden = client.get(f"{base}/current-question", headers=student_headers).json()["puzzle"]
    assert hidden["elements"]
    for key in ("solutionTokens", "solutionDisplay", "sampleEquation"):
        assert key not in hidden
    current = client.get(f"{base}/current-set", headers=student_headers).json()["currentPuzzle"]
    assert "solutionTokens" not in current

    shown = client.get(f"{base}/current-question", headers=admin_headers).json()["puzzle"]
    assert shown["elements"] == hidden["elements"]
    assert sorted(shown["solutionDisplay"]) == sorted(shown["elements"])
    assert shown["sampleEquation"] == "".join(shown["solutionTokens"])
