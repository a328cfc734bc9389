"""Integration tests for the student-facing evaluator endpoints."""

import threading
import uuid
from unittest.mock import patch

from fastapi.testclient import TestClient
from sqlalchemy import event
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from conftest import auth, engine, make_token
from skill_evaluator.db.models import EvaluatorAnswer, EvaluatorAttempt, EvaluatorQuestion
from skill_evaluator.services import attempts as attempt_service
from skill_evaluator.services.learning_resources import add_resource
from skill_evaluator.services.reporting import MAX_RECOMMENDED_RESOURCES

# ── Helpers ────────────────────────────────────────────────────────────────────


def _start(client: TestClient, headers: dict, concept: str = "python") -> dict:
    resp = client.post(f"/api/evaluator/start/{concept}", headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


def _answers(db: Session, attempt_id: str, correct_per_tier: dict[str, int]) -> list[dict]:
    """Answer every question; the first N per tier correctly."""
    questions = (
        db.query(EvaluatorQuestion)
        .filter(EvaluatorQuestion.attempt_id == uuid.UUID(attempt_id))
        .order_by(EvaluatorQuestion.position)
        .all()
    )
    seen: dict[str, int] = {}
    out = []
    for q in questions:
        idx = seen.get(q.difficulty.value, 0)
        seen[q.difficulty.value] = idx + 1
        right = idx < correct_per_tier.get(q.difficulty.value, 0)
        out.append(
            {
                "question_id": str(q.id),
                "user_answer": q.correct_answer if right else q.options[1],
                "time_spent": 12.5,
            }
        )
    return out


def _active_count(db: Session) -> int:
    db.expire_all()
    return db.query(EvaluatorAttempt).filter(EvaluatorAttempt.completed.is_(False)).count()


# ── Auth ───────────────────────────────────────────────────────────────────────


class TestAuth:
    def test_start_requires_token(self, client: TestClient):
        assert client.post("/api/evaluator/start/python").status_code == 401

    def test_garbage_token_rejected(self, client: TestClient):
        resp = client.get("/api/evaluator/current", headers=auth("not-a-jwt"))
        assert resp.status_code == 401


# ── Start ──────────────────────────────────────────────────────────────────────


class TestStart:
    def test_start_returns_thirty_questions_without_answers(
        self, client: TestClient, student_headers: dict
    ):
        data = _start(client, student_headers)
        assert data["concept"] == "python"
        assert data["total_questions"] == 30
        assert data["time_limit_minutes"] == 45
        assert len(data["questions"]) == 30
        assert [q["position"] for q in data["questions"]] == list(range(30))
        for q in data["questions"]:
            assert "correct_answer" not in q
            assert "explanation" not in q
        tiers = [q["difficulty"] for q in data["questions"]]
        assert tiers.count("EASY") == tiers.count("MEDIUM") == tiers.count("HARD") == 10

    def test_restart_leaves_exactly_one_active_attempt(
        self, client: TestClient, db: Session, student_headers: dict
    ):
        first = _start(client, student_headers)
        second = _start(client, student_headers)
        assert first["attempt_id"] != second["attempt_id"]
        assert _active_count(db) == 1
        assert db.get(EvaluatorAttempt, uuid.UUID(first["attempt_id"])) is None
        # the replaced attempt's questions are gone with it
        assert db.query(EvaluatorQuestion).count() == 30

    def test_active_attempts_are_per_concept(self, client: TestClient, db: Session, student_headers: dict):
        _start(client, student_headers, "python")
        _start(client, student_headers, "sql")
        assert _active_count(db) == 2

    def test_unknown_concept_is_400(self, client: TestClient, db: Session, student_headers: dict):
        resp = client.post("/api/evaluator/start/cobol", headers=student_headers)
        assert resp.status_code == 400
        body = resp.json()
        assert body == {
            "success": False,
            "error_code": "INVALID_CONCEPT",
            "message": body["message"],
            "details": None,
        }
        assert "Available concepts" in body["message"]

    def test_not_json_batch_fails_and_persists_nothing(
        self, client: TestClient, db: Session, backend, student_headers: dict
    ):
        backend.question_reply = lambda tier, count: "not json"
        resp = client.post("/api/evaluator/start/python", headers=student_headers)
        assert resp.status_code == 502
        assert resp.json()["error_code"] == "TEST_GENERATION_FAILED"
        assert db.query(EvaluatorAttempt).count() == 0
        assert db.query(EvaluatorQuestion).count() == 0

    def test_failed_restart_keeps_previous_attempt(
        self, client: TestClient, db: Session, backend, student_headers: dict
    ):
        first = _start(client, student_headers)
        backend.question_reply = lambda tier, count: "[]"
        resp = client.post("/api/evaluator/start/python", headers=student_headers)
        assert resp.status_code == 502
        current = client.get("/api/evaluator/current", headers=student_headers)
        assert current.status_code == 200
        assert current.json()["attempt_id"] == first["attempt_id"]


# ── Current ────────────────────────────────────────────────────────────────────


class TestCurrent:
    def test_no_active_attempt_is_404(self, client: TestClient, student_headers: dict):
        resp = client.get("/api/evaluator/current", headers=student_headers)
        assert resp.status_code == 404
        assert resp.json()["error_code"] == "NOT_FOUND"

    def test_current_returns_newest_active(self, client: TestClient, student_headers: dict):
        _start(client, student_headers, "python")
        newest = _start(client, student_headers, "git")
        resp = client.get("/api/evaluator/current", headers=student_headers)
        assert resp.status_code == 200
        data = resp.json()
        assert data["attempt_id"] == newest["attempt_id"]
        assert all("correct_answer" not in q for q in data["questions"])


# ── Submit ─────────────────────────────────────────────────────────────────────


class TestSubmit:
    def test_submit_scores_and_completes(self, client: TestClient, db: Session, student_headers: dict):
        started = _start(client, student_headers)
        answers = _answers(db, started["attempt_id"], {"EASY": 6, "MEDIUM": 4, "HARD": 2})
        resp = client.post(
            f"/api/evaluator/submit/{started['attempt_id']}",
            json={"answers": answers},
            headers=student_headers,
        )
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["scores"] == {"easy": 6, "medium": 4, "hard": 2, "total": 12}
        assert data["percentage"] == 40
        assert data["performance"] == "NEEDS_IMPROVEMENT"
        assert "Don't worry!" in data["message"]
        assert set(data["weak_areas"]) == {"loops", "functions"}
        assert data["recommendations"]["resources"][0]["title"] == "Python Loops Deep Dive"

        db.expire_all()
        attempt = db.get(EvaluatorAttempt, uuid.UUID(started["attempt_id"]))
        assert attempt.completed is True
        assert attempt.active_slot is None
        assert attempt.completed_at is not None
        assert db.query(EvaluatorAnswer).count() == 30
        assert _active_count(db) == 0

    def test_resubmit_is_409_and_scores_unchanged(
        self, client: TestClient, db: Session, student_headers: dict
    ):
        started = _start(client, student_headers)
        url = f"/api/evaluator/submit/{started['attempt_id']}"
        first = _answers(db, started["attempt_id"], {"EASY": 10, "MEDIUM": 10, "HARD": 10})
        assert client.post(url, json={"answers": first}, headers=student_headers).status_code == 200

        second = _answers(db, started["attempt_id"], {})
        resp = client.post(url, json={"answers": second}, headers=student_headers)
        assert resp.status_code == 409
        assert resp.json()["error_code"] == "ALREADY_COMPLETED"

        db.expire_all()
        attempt = db.get(EvaluatorAttempt, uuid.UUID(started["attempt_id"]))
        assert attempt.total_score == 30
        assert attempt.percentage == 100
        assert db.query(EvaluatorAnswer).count() == 30

    def test_other_users_attempt_is_404(self, client: TestClient, student_headers: dict):
        started = _start(client, student_headers)
        intruder = auth(make_token())
        resp = client.post(
            f"/api/evaluator/submit/{started['attempt_id']}",
            json={"answers": []},
            headers=intruder,
        )
        assert resp.status_code == 404

    def test_missing_attempt_is_404(self, client: TestClient, student_headers: dict):
        resp = client.post(
            f"/api/evaluator/submit/{uuid.uuid4()}", json={"answers": []}, headers=student_headers
        )
        assert resp.status_code == 404

    def test_malformed_answers_are_422_and_attempt_stays_active(
        self, client: TestClient, db: Session, student_headers: dict
    ):
        started = _start(client, student_headers)
        url = f"/api/evaluator/submit/{started['attempt_id']}"
        for body in (
            {"answers": "A"},
            {"answers": [{"user_answer": "x"}]},
            {"answers": [{"question_id": "q", "user_answer": "x", "time_spent": -1}]},
            {},
        ):
            assert client.post(url, json=body, headers=student_headers).status_code == 422
        assert _active_count(db) == 1

    def test_unknown_question_ids_are_ignored(self, client: TestClient, db: Session, student_headers: dict):
        started = _start(client, student_headers)
        answers = _answers(db, started["attempt_id"], {"EASY": 1})[:1]
        answers.append({"question_id": str(uuid.uuid4()), "user_answer": "anything"})
        resp = client.post(
            f"/api/evaluator/submit/{started['attempt_id']}",
            json={"answers": answers},
            headers=student_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["scores"]["total"] == 1
        assert db.query(EvaluatorAnswer).count() == 1

    def test_empty_resource_reply_falls_back(
        self, client: TestClient, db: Session, backend, student_headers: dict
    ):
        started = _start(client, student_headers)
        backend.resources_reply = ""
        resp = client.post(
            f"/api/evaluator/submit/{started['attempt_id']}",
            json={"answers": _answers(db, started["attempt_id"], {"EASY": 3})},
            headers=student_headers,
        )
        assert resp.status_code == 200
        resources = resp.json()["recommendations"]["resources"]
        assert len(resources) == 1
        assert resources[0]["title"] == "Python Fundamentals Review"


# ── Results ────────────────────────────────────────────────────────────────────


def _complete(client: TestClient, db: Session, headers: dict, concept: str = "python", easy: int = 6) -> str:
    started = _start(client, headers, concept)
    resp = client.post(
        f"/api/evaluator/submit/{started['attempt_id']}",
        json={"answers": _answers(db, started["attempt_id"], {"EASY": easy, "MEDIUM": 4, "HARD": 2})},
        headers=headers,
    )
    assert resp.status_code == 200, resp.text
    return started["attempt_id"]




def _duplicate_slot() -> IntegrityError:
    return IntegrityError(
        "INSERT INTO evaluator_attempts", {}, Exception("UNIQUE constraint failed")
    )


def _add_python_resource(db: Session, title: str, sub_concept: str | None = None):
    return add_resource(
        db,
        concept="python",
        title=title,
        resource_type="ARTICLE",
        url=f"https://example.com/{title.lower().replace(' ', '-')}",
        difficulty="BEGINNER",
        sub_concept=sub_concept,
    )


class TestStartConflicts:
    def test_slot_taken_once_is_retried(self, client: TestClient, db: Session, student_headers: dict):
        real_replace = attempt_service._replace_active
        calls = []

        def flaky(*args, **kwargs):
            calls.append(args)
            if len(calls) == 1:
                raise _duplicate_slot()
            return real_replace(*args, **kwargs)

        with patch.object(attempt_service, "_replace_active", side_effect=flaky):
            started = _start(client, student_headers)

        assert len(calls) == 2
        assert _active_count(db) == 1
        active = db.query(EvaluatorAttempt).filter(EvaluatorAttempt.completed.is_(False)).one()
        assert str(active.id) == started["attempt_id"]

    def test_slot_taken_twice_is_409(self, client: TestClient, db: Session, student_headers: dict):
        previous = _start(client, student_headers)
        with patch.object(
            attempt_service, "_replace_active", side_effect=_duplicate_slot()
        ) as replace:
            resp = client.post("/api/evaluator/start/python", headers=student_headers)

        assert replace.call_count == 2
        assert resp.status_code == 409
        assert resp.json()["error_code"] == "ATTEMPT_CONFLICT"
        db.expire_all()
        assert db.query(EvaluatorAttempt).count() == 1
        assert db.query(EvaluatorQuestion).count() == 30
        assert str(db.query(EvaluatorAttempt).one().id) == previous["attempt_id"]

    def test_slot_taken_twice_on_first_start_leaves_no_row(
        self, client: TestClient, db: Session, student_headers: dict
    ):
        with patch.object(attempt_service, "_replace_active", side_effect=_duplicate_slot()):
            resp = client.post("/api/evaluator/start/python", headers=student_headers)
        assert resp.status_code == 409
        assert db.query(EvaluatorAttempt).count() == 0


class TestStoredResult:
    def test_stored_result_has_review_and_no_generation(
        self, client: TestClient, db: Session, backend, student_headers: dict
    ):
        attempt_id = _complete(client, db, student_headers)
        prompts_before = len(backend.prompts)

        resp = client.get(f"/api/evaluator/results/{attempt_id}", headers=student_headers)
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert len(backend.prompts) == prompts_before
        assert data["total_score"] == 12
        assert data["performance"] == "NEEDS_IMPROVEMENT"
        assert len(data["review"]) == 30
        first = data["review"][0]
        assert first["is_correct"] is True
        assert first["user_answer"] == first["correct_answer"]
        assert first["time_spent"] == 12.5
        assert data["recommended_resources"] == []
        assert "study_recommendations" not in data
        assert "personalized_resources" not in data

    def test_resources_per_weak_area_fall_back_to_concept(
        self, client: TestClient, db: Session, student_headers: dict
    ):
        _add_python_resource(db, "Loop Patterns", sub_concept="Loops")
        _add_python_resource(db, "Python Overview")
        add_resource(
            db,
            concept="sql",
            title="Joins Explained",
            resource_type="VIDEO",
            url="https://example.com/joins",
            difficulty="BEGINNER",
        )
        attempt_id = _complete(client, db, student_headers)

        data = client.get(f"/api/evaluator/results/{attempt_id}", headers=student_headers).json()
        assert set(data["weak_areas"]) == {"loops", "functions"}
        titles = [r["title"] for r in data["recommended_resources"]]
        # "loops" matches its own resource; "functions" has none and falls back
        assert sorted(titles) == ["Loop Patterns", "Python Overview"]
        assert len(titles) == len(set(titles))

    def test_resources_are_capped(self, client: TestClient, db: Session, student_headers: dict):
        for i in range(MAX_RECOMMENDED_RESOURCES + 3):
            _add_python_resource(db, f"Python Guide {i}")
        attempt_id = _complete(client, db, student_headers)

        data = client.get(f"/api/evaluator/results/{attempt_id}", headers=student_headers).json()
        assert len(data["recommended_resources"]) == MAX_RECOMMENDED_RESOURCES

    def test_perfect_score_has_no_resources(self, client: TestClient, db: Session, student_headers: dict):
        _add_python_resource(db, "Python Overview")
        started = _start(client, student_headers)
        answers = _answers(db, started["attempt_id"], {"EASY": 10, "MEDIUM": 10, "HARD": 10})
        client.post(
            f"/api/evaluator/submit/{started['attempt_id']}",
            json={"answers": answers},
            headers=student_headers,
        )
        data = client.get(
            f"/api/evaluator/results/{started['attempt_id']}", headers=student_headers
        ).json()
        assert data["weak_areas"] == []
        assert data["recommended_resources"] == []

    def test_list_results_only_completed_newest_first(
        self, client: TestClient, db: Session, student_headers: dict
    ):
        older = _complete(client, db, student_headers, "python")
        newer = _complete(client, db, student_headers, "sql")
        _start(client, student_headers, "git")
        resp = client.get("/api/evaluator/results", headers=student_headers)
        assert resp.status_code == 200
        assert [r["attempt_id"] for r in resp.json()] == [newer, older]

    def test_active_attempt_has_no_result(self, client: TestClient, student_headers: dict):
        started = _start(client, student_headers)
        resp = client.get(f"/api/evaluator/results/{started['attempt_id']}", headers=student_headers)
        assert resp.status_code == 404

    def test_result_of_other_user_is_404(self, client: TestClient, db: Session, student_headers: dict):
        attempt_id = _complete(client, db, student_headers)
        resp = client.get(f"/api/evaluator/results/{attempt_id}", headers=auth(make_token()))
        assert resp.status_code == 404


class TestAnalysis:
    def test_analysis_generates_advice(self, client: TestClient, db: Session, backend, student_headers: dict):
        attempt_id = _complete(client, db, student_headers)
        prompts_before = len(backend.prompts)

        resp = client.get(f"/api/evaluator/analysis/{attempt_id}", headers=student_headers)
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert len(backend.prompts) == prompts_before + 2
        assert data["total_score"] == 12
        assert len(data["review"]) == 30
        assert data["review"][0]["time_spent"] == 12.5
        assert data["study_recommendations"]["priority_areas"][0]["area"] == "loops"
        assert data["personalized_resources"]["resources"]

    def test_analysis_without_study_recommendations(
        self, client: TestClient, db: Session, backend, student_headers: dict
    ):
        attempt_id = _complete(client, db, student_headers)
        backend.study_reply = ""
        resp = client.get(f"/api/evaluator/analysis/{attempt_id}", headers=student_headers)
        assert resp.status_code == 200
        assert resp.json()["study_recommendations"] is None

    def test_analysis_of_active_attempt_is_404(self, client: TestClient, backend, student_headers: dict):
        started = _start(client, student_headers)
        prompts_before = len(backend.prompts)
        resp = client.get(f"/api/evaluator/analysis/{started['attempt_id']}", headers=student_headers)
        assert resp.status_code == 404
        assert resp.json()["error_code"] == "NOT_FOUND"
        assert len(backend.prompts) == prompts_before

    def test_analysis_of_other_user_is_404(self, client: TestClient, db: Session, student_headers: dict):
        attempt_id = _complete(client, db, student_headers)
        resp = client.get(f"/api/evaluator/analysis/{attempt_id}", headers=auth(make_token()))
        assert resp.status_code == 404


class TestEventLoop:
    def test_db_statements_never_run_on_the_loop_thread(
        self, client: TestClient, db: Session, backend, student_headers: dict
    ):
        loop_threads: set[int] = set()
        db_threads: set[int] = set()
        scripted = backend.complete

        async def complete(prompt, **kwargs):
            loop_threads.add(threading.get_ident())
            return await scripted(prompt, **kwargs)

        def record(*args):
            db_threads.add(threading.get_ident())

        backend.complete = complete
        event.listen(engine, "before_cursor_execute", record)
        try:
            started = client.post("/api/evaluator/start/python", headers=student_headers)
            attempt_id = started.json()["attempt_id"]
        finally:
            event.remove(engine, "before_cursor_execute", record)

        answers = _answers(db, attempt_id, {"EASY": 3})
        event.listen(engine, "before_cursor_execute", record)
        try:
            submitted = client.post(
                f"/api/evaluator/submit/{attempt_id}",
                json={"answers": answers},
                headers=student_headers,
            )
            analysed = client.get(f"/api/evaluator/analysis/{attempt_id}", headers=student_headers)
        finally:
            event.remove(engine, "before_cursor_execute", record)

        assert started.status_code == 201
        assert submitted.status_code == 200
        assert analysed.status_code == 200
        assert loop_threads and db_threads
        assert not loop_threads & db_threads
