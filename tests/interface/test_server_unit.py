from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from memora.application.review_service import ReviewQueueService
from memora.consts import VERSION
from memora.domain.result import ConcurrencyConflictError, Result
from memora.domain.srs.policy import Sm2Policy
from memora.server import app, create_app

client = TestClient(app)


def parse(ts: str) -> datetime:
    return datetime.fromisoformat(ts.replace("Z", "+00:00"))


@pytest.fixture
def api(service):
    return TestClient(create_app(service))


@pytest.fixture
def created(api):
    response = api.post("/schedules", json={"student_id": "alice", "item_id": "item-1"})
    assert response.status_code == 201
    return response.json()


def test_health_check():
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["version"] == VERSION


def test_get_version():
    response = client.get("/version")
    assert response.status_code == 200
    assert response.json() == {"version": VERSION}


# --- Schedules ---


def test_create_schedule(created):
    assert created["id"].startswith("rs_")
    assert created["interval_days"] == 1
    assert created["ease_factor"] == 2.5
    assert created["review_count"] == 0
    assert created["difficulty_level"] == "beginner"
    assert created["version"] == 1


def test_create_schedule_is_idempotent(api, created):
    again = api.post("/schedules", json={"student_id": "alice", "item_id": "item-1"})
    assert again.status_code == 201
    assert again.json()["id"] == created["id"]


def test_create_schedule_validates_body(api):
    response = api.post("/schedules", json={"student_id": "", "item_id": "item-1"})
    assert response.status_code == 422


def test_get_schedule(api, created):
    response = api.get(f"/schedules/{created['id']}")
    assert response.status_code == 200
    assert response.json()["item_id"] == "item-1"

    assert api.get("/schedules/rs_missing").status_code == 404


# --- Reviews ---


def test_submit_review(api, created, clock):
    clock.set(parse(created["next_review_at"]))

    response = api.post(
        f"/schedules/{created['id']}/reviews",
        json={"student_id": "alice", "feedback": "GOOD", "response_time": 20},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["previous_interval"] == 1
    assert data["new_interval"] == 3
    assert data["review_count"] == 1
    assert parse(data["next_review_at"]) == clock.now() + timedelta(days=3)


def test_submit_review_errors(api, created):
    url = f"/schedules/{created['id']}/reviews"

    forbidden = api.post(url, json={"student_id": "mallory", "feedback": "GOOD"})
    assert forbidden.status_code == 403

    invalid = api.post(url, json={"student_id": "alice", "feedback": "PERFECT"})
    assert invalid.status_code == 400
    assert "expected one of" in invalid.json()["detail"]

    missing = api.post(
        "/schedules/rs_missing/reviews", json={"student_id": "alice", "feedback": "GOOD"}
    )
    assert missing.status_code == 404


def test_postpone(api, created):
    response = api.post(
        f"/schedules/{created['id']}/postpone", json={"student_id": "alice", "hours": 6}
    )
    assert response.status_code == 200
    moved = parse(response.json()["next_review_at"])
    assert moved == parse(created["next_review_at"]) + timedelta(hours=6)

    negative = api.post(
        f"/schedules/{created['id']}/postpone", json={"student_id": "alice", "hours": -1}
    )
    assert negative.status_code == 422


def test_advance(api, created, clock):
    response = api.post(
        f"/schedules/{created['id']}/advance", json={"student_id": "alice", "hours": 6}
    )
    assert response.status_code == 200
    moved = parse(response.json()["next_review_at"])
    assert moved == parse(created["next_review_at"]) - timedelta(hours=6)

    past_now = api.post(
        f"/schedules/{created['id']}/advance", json={"student_id": "alice", "hours": 100}
    )
    assert parse(past_now.json()["next_review_at"]) == clock.now()


def test_update_schedule(api, created):
    response = api.patch(
        f"/schedules/{created['id']}",
        json={"student_id": "alice", "interval_days": 7, "ease_factor": 2.0},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["previous_interval"] == 1
    assert data["new_interval"] == 7
    assert data["new_ease_factor"] == 2.0
    assert data["updated_fields"] == ["interval", "ease_factor"]
    assert api.get(f"/schedules/{created['id']}").json()["version"] == 2


def test_update_schedule_errors(api, created):
    url = f"/schedules/{created['id']}"

    assert api.patch(url, json={"student_id": "alice"}).status_code == 400
    assert api.patch(url, json={"student_id": "alice", "interval_days": 31}).status_code == 400
    assert api.patch(url, json={"student_id": "mallory", "interval_days": 3}).status_code == 403
    missing = api.patch("/schedules/rs_missing", json={"student_id": "alice", "interval_days": 3})
    assert missing.status_code == 404
    assert api.patch(url, json={"student_id": "alice", "postpone_hours": -2}).status_code == 422


# --- Student views ---


def test_today_and_overdue_reviews(api, created, clock):
    assert api.get("/students/alice/reviews/today").json() == []

    clock.set(parse(created["next_review_at"]) + timedelta(hours=2))
    today = api.get("/students/alice/reviews/today").json()
    assert [item["schedule_id"] for item in today] == [created["id"]]
    assert today[0]["priority"] == "high"
    assert today[0]["is_overdue"] is True

    overdue = api.get("/students/alice/reviews/overdue").json()
    assert overdue[0]["minutes_until_due"] == -120


def test_statistics(api, created, clock):
    clock.set(parse(created["next_review_at"]))
    api.post(
        f"/schedules/{created['id']}/reviews",
        json={"student_id": "alice", "feedback": "AGAIN", "response_time": 60},
    )

    response = api.get("/students/alice/statistics")
    assert response.status_code == 200
    data = response.json()
    assert data["total_scheduled"] == 1
    assert data["completed_today"] == 1
    assert data["average_retention"] == 0
    assert data["total_time_spent"] == 1.0


def test_unexpected_service_failure_maps_to_500():
    service = MagicMock()
    service.get_review_statistics = AsyncMock(
        return_value=Result.fail(
            "Failed to get review statistics: boom", cause=RuntimeError("boom")
        )
    )
    response = TestClient(create_app(service)).get("/students/alice/statistics")

    assert response.status_code == 500
    assert "boom" in response.json()["detail"]


def test_review_processing_error_maps_to_500(schedule_repo, record_repo, clock):
    class BrokenPolicy(Sm2Policy):
        def calculate_next_interval(self, current_state, feedback):
            raise RuntimeError("boom")

    service = ReviewQueueService(schedule_repo, record_repo, BrokenPolicy(), clock)
    api = TestClient(create_app(service))
    created = api.post("/schedules", json={"student_id": "alice", "item_id": "item-1"}).json()
    clock.set(parse(created["next_review_at"]))

    response = api.post(
        f"/schedules/{created['id']}/reviews", json={"student_id": "alice", "feedback": "GOOD"}
    )

    assert response.status_code == 500
    assert response.json()["detail"] == "Review processing failed: boom"


def test_concurrency_conflict_maps_to_409():
    service = MagicMock()
    service.update_schedule = AsyncMock(
        return_value=Result.fail(
            "schedule was modified concurrently",
            cause=ConcurrencyConflictError("schedule was modified concurrently"),
        )
    )
    response = TestClient(create_app(service)).patch(
        "/schedules/rs_1", json={"student_id": "alice", "interval_days": 3}
    )

    assert response.status_code == 409
