"""
Integration tests for the workouts API: schedule, streak and completions.

Run with: pytest tests/test_workouts_api.py -v
"""
from datetime import date
from unittest.mock import patch
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from main import app
from core.security import create_access_token
from models import SetLog, WorkoutCompletion

client = TestClient(app)

MONDAY = date(2024, 1, 8)


@pytest.fixture
def enrolled(test_client, mwf_program, make_enrollment):
    return make_enrollment(test_client, mwf_program, start_date=date(2024, 1, 1), duration_weeks=2)


def completion_body(workout_id, scheduled_date=MONDAY, sets=(), **extra):
    body = {
        "workoutId": str(workout_id),
        "scheduledDate": scheduled_date.isoformat(),
        "sets": list(sets),
    }
    body.update(extra)
    return body


class TestAuthRequired:
    """Every endpoint rejects calls without a verified client identity."""

    @pytest.mark.parametrize("method,path", [
        ("get", "/v1/workouts/schedule"),
        ("get", "/v1/workouts/streak"),
        ("get", "/v1/workouts/streak/state"),
        ("get", "/v1/workouts/complete"),
        ("post", "/v1/workouts/complete"),
        ("post", f"/v1/workouts/completions/{uuid4()}/sets"),
        ("get", "/v1/progress/tonnage"),
        ("get", "/v1/dashboard"),
    ])
    def test_missing_token_is_401(self, method, path):
        response = getattr(client, method)(path)
        assert response.status_code == 401, f"Expected 401, got {response.status_code}"

    def test_invalid_token_is_401(self):
        response = client.get("/v1/workouts/streak", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401
        assert response.json()["error_code"] == "UNAUTHORIZED"

    def test_unknown_client_is_401(self):
        token = create_access_token({"sub": str(uuid4())})
        response = client.get("/v1/workouts/streak", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_non_uuid_subject_is_401(self):
        token = create_access_token({"sub": "client-42"})
        response = client.get("/v1/workouts/streak", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_blocked_client_is_403(self, make_client):
        blocked = make_client(is_blocked=True)
        token = create_access_token({"sub": str(blocked.id)})
        response = client.get("/v1/workouts/streak", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 403
        assert response.json()["error_code"] == "FORBIDDEN"


class TestGetSchedule:
    def test_empty_schedule(self, test_client, auth_headers):
        response = client.get("/v1/workouts/schedule", headers=auth_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["scheduleByDay"] == {}
        assert data["scheduleByWeekAndDay"] == {}
        assert data["completionsByDate"] == {}
        assert data["programStartDate"] is None
        assert data["maxWeek"] == 1

    @patch("routers.workouts.local_today", return_value=date(2024, 1, 10))
    def test_schedule_grid(self, _today, enrolled, auth_headers, mwf_program, workout_named):
        response = client.get("/v1/workouts/schedule", headers=auth_headers)
        assert response.status_code == 200
        data = response.json()

        assert sorted(data["scheduleByDay"].keys()) == ["1", "3", "5"]
        assert sorted(data["scheduleByWeekAndDay"].keys()) == ["1", "2"]
        assert data["scheduleByDay"] == data["scheduleByWeekAndDay"]["1"]
        assert data["maxWeek"] == 2
        assert data["programStartDate"] == "2024-01-01"

        monday = data["scheduleByDay"]["1"]
        assert monday["workoutId"] == str(workout_named(mwf_program, "W1 Mon").id)
        assert monday["programName"] == "MWF Strength"
        assert monday["enrollmentId"] == str(enrolled.id)
        assert monday["finisher"] is None
        assert monday["finishers"] == []

    @patch("routers.workouts.local_today", return_value=date(2024, 1, 10))
    def test_schedule_includes_recent_completions(self, _today, enrolled, auth_headers, mwf_program, workout_named):
        mon = workout_named(mwf_program, "W1 Mon")
        client.post(
            "/v1/workouts/complete",
            json=completion_body(mon.id, enrollmentId=str(enrolled.id)),
            headers=auth_headers,
        )

        data = client.get("/v1/workouts/schedule", headers=auth_headers).json()
        assert data["completionsByDate"] == {"2024-01-08": str(mon.id)}


class TestGetStreak:
    def test_no_schedule_no_completions(self, test_client, auth_headers):
        response = client.get("/v1/workouts/streak", headers=auth_headers)
        assert response.status_code == 200
        assert response.json() == {"streak": 0, "scheduledDays": [1, 2, 3, 4, 5]}

    def test_streak_from_completions(self, enrolled, auth_headers, mwf_program, workout_named):
        with patch("routers.workouts.local_today", return_value=date(2024, 1, 4)):
            for name, day in (("W1 Mon", date(2024, 1, 1)), ("W1 Wed", date(2024, 1, 3))):
                response = client.post(
                    "/v1/workouts/complete",
                    json=completion_body(workout_named(mwf_program, name).id, day),
                    headers=auth_headers,
                )
                assert response.status_code == 200

            response = client.get("/v1/workouts/streak?tz=UTC", headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == {"streak": 2, "scheduledDays": [1, 3, 5]}

    def test_unsupported_timezone_is_not_an_error(self, test_client, auth_headers):
        response = client.get("/v1/workouts/streak?tz=Not/AZone", headers=auth_headers)
        assert response.status_code == 200

    def test_persistence_failure_is_generic_500(self, test_client, auth_headers):
        error = OperationalError("SELECT", {}, Exception("connection reset by peer"))
        with patch("routers.workouts.get_client_streak", side_effect=error):
            response = client.get("/v1/workouts/streak", headers=auth_headers)

        assert response.status_code == 500
        assert response.json()["detail"] == "Failed to calculate streak"
        assert "connection reset" not in response.text


class TestStreakState:
    def test_null_before_any_completion(self, test_client, auth_headers):
        response = client.get("/v1/workouts/streak/state", headers=auth_headers)
        assert response.status_code == 200
        assert response.json() == {"streak": None}

    @patch("routers.workouts.local_today", return_value=date(2024, 1, 9))
    def test_state_after_completion(self, _today, test_client, auth_headers, mwf_program, workout_named):
        client.post(
            "/v1/workouts/complete",
            json=completion_body(workout_named(mwf_program, "W1 Mon").id),
            headers=auth_headers,
        )

        response = client.get("/v1/workouts/streak/state", headers=auth_headers)
        assert response.status_code == 200
        assert response.json() == {
            "streak": {"currentStreak": 1, "longestStreak": 1, "lastWorkoutDate": "2024-01-08"}
        }


class TestCompleteWorkout:
    def test_records_completion(self, test_client, auth_headers, mwf_program, workout_named, exercise, db_session):
        sets = [
            {"exercise_id": str(exercise.id), "set_number": 1, "weight_kg": 100, "reps_completed": 5},
            {"exercise_id": str(exercise.id), "set_number": 2, "weight_kg": 100},
        ]
        response = client.post(
            "/v1/workouts/complete",
            json=completion_body(workout_named(mwf_program, "W1 Mon").id, sets=sets),
            headers=auth_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["setsWritten"] is True
        completion_id = data["completionId"]

        db_session.expire_all()
        assert db_session.query(WorkoutCompletion).count() == 1
        assert db_session.query(SetLog).count() == 2
        assert str(db_session.query(WorkoutCompletion.id).scalar()) == completion_id

    def test_duplicate_submission_returns_same_completion(self, test_client, auth_headers, mwf_program, workout_named, db_session):
        body = completion_body(workout_named(mwf_program, "W1 Mon").id)
        first = client.post("/v1/workouts/complete", json=body, headers=auth_headers).json()
        second = client.post("/v1/workouts/complete", json=body, headers=auth_headers).json()

        assert first["completionId"] == second["completionId"]
        db_session.expire_all()
        assert db_session.query(WorkoutCompletion).count() == 1

    @pytest.mark.parametrize("body", [
        {"scheduledDate": "2024-01-08", "sets": []},
        {"workoutId": str(uuid4()), "sets": []},
        {"workoutId": "not-a-uuid", "scheduledDate": "2024-01-08"},
        {"workoutId": str(uuid4()), "scheduledDate": "08/01/2024"},
        {"workoutId": str(uuid4()), "scheduledDate": "2024-01-08", "sets": [{"set_number": 1}]},
        {"workoutId": str(uuid4()), "scheduledDate": "2024-01-08",
         "sets": [{"exercise_id": str(uuid4()), "set_number": 1, "weight_kg": -5}]},
    ])
    def test_malformed_body_is_400(self, test_client, auth_headers, body, db_session):
        response = client.post("/v1/workouts/complete", json=body, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "Missing required fields"
        assert db_session.query(WorkoutCompletion).count() == 0

    def test_duplicate_set_numbers_are_400(self, test_client, auth_headers, mwf_program, workout_named, exercise):
        sets = [
            {"exercise_id": str(exercise.id), "set_number": 1, "weight_kg": 100, "reps_completed": 5},
            {"exercise_id": str(exercise.id), "set_number": 1, "weight_kg": 100, "reps_completed": 5},
        ]
        response = client.post(
            "/v1/workouts/complete",
            json=completion_body(workout_named(mwf_program, "W1 Mon").id, sets=sets),
            headers=auth_headers,
        )
        assert response.status_code == 400

    def test_unknown_workout_is_404(self, test_client, auth_headers):
        response = client.post("/v1/workouts/complete", json=completion_body(uuid4()), headers=auth_headers)
        assert response.status_code == 404
        assert response.json()["error_code"] == "NOT_FOUND"

    def test_foreign_enrollment_is_404(self, test_client, auth_headers, make_client, mwf_program, make_enrollment, workout_named):
        foreign = make_enrollment(make_client(), mwf_program)
        response = client.post(
            "/v1/workouts/complete",
            json=completion_body(workout_named(mwf_program, "W1 Mon").id, enrollmentId=str(foreign.id)),
            headers=auth_headers,
        )
        assert response.status_code == 404

    def test_persistence_failure_is_generic_500(self, test_client, auth_headers, mwf_program, workout_named):
        error = OperationalError("INSERT INTO workout_completion", {}, Exception("could not connect to server"))
        with patch("routers.workouts.record_completion", side_effect=error):
            response = client.post(
                "/v1/workouts/complete",
                json=completion_body(workout_named(mwf_program, "W1 Mon").id),
                headers=auth_headers,
            )

        assert response.status_code == 500
        assert response.json() == {
            "detail": "Failed to save workout completion",
            "error_code": "PERSISTENCE_ERROR",
        }

    def test_partial_write_reports_sets_not_written(self, test_client, auth_headers, mwf_program, workout_named, exercise):
        error = OperationalError("INSERT INTO set_log", {}, Exception("disk full"))
        sets = [{"exercise_id": str(exercise.id), "set_number": 1, "weight_kg": 60, "reps_completed": 8}]
        with patch("services.completion_sink._replace_sets", side_effect=error):
            response = client.post(
                "/v1/workouts/complete",
                json=completion_body(workout_named(mwf_program, "W1 Mon").id, sets=sets),
                headers=auth_headers,
            )

        assert response.status_code == 200
        assert response.json()["setsWritten"] is False


class TestListCompletions:
    def test_lists_in_range(self, test_client, auth_headers, mwf_program, workout_named, exercise):
        sets = [{"exercise_id": str(exercise.id), "set_number": 1, "weight_kg": 60, "reps_completed": 8}]
        for name, day in (("W1 Mon", date(2024, 1, 1)), ("W1 Wed", date(2024, 1, 3)), ("W1 Fri", date(2024, 1, 5))):
            client.post(
                "/v1/workouts/complete",
                json=completion_body(workout_named(mwf_program, name).id, day, sets=sets),
                headers=auth_headers,
            )

        response = client.get(
            "/v1/workouts/complete?startDate=2024-01-02&endDate=2024-01-05",
            headers=auth_headers,
        )
        assert response.status_code == 200
        completions = response.json()["completions"]
        assert [c["scheduled_date"] for c in completions] == ["2024-01-05", "2024-01-03"]
        assert completions[0]["sets_status"] == "written"
        assert completions[0]["set_logs"][0]["weight_kg"] == 60

    def test_only_own_completions(self, test_client, auth_headers, make_client, mwf_program, workout_named):
        other = make_client()
        other_headers = {"Authorization": f"Bearer {create_access_token({'sub': str(other.id)})}"}
        client.post(
            "/v1/workouts/complete",
            json=completion_body(workout_named(mwf_program, "W1 Mon").id),
            headers=other_headers,
        )

        response = client.get("/v1/workouts/complete", headers=auth_headers)
        assert response.json() == {"completions": []}


class TestCorrectSets:
    def test_corrects_existing_sets(self, test_client, auth_headers, mwf_program, workout_named, exercise):
        sets = [{"exercise_id": str(exercise.id), "set_number": 1, "weight_kg": 60, "reps_completed": 8}]
        created = client.post(
            "/v1/workouts/complete",
            json=completion_body(workout_named(mwf_program, "W1 Mon").id, sets=sets),
            headers=auth_headers,
        ).json()

        response = client.post(
            f"/v1/workouts/completions/{created['completionId']}/sets",
            json={"sets": [
                {"exercise_id": str(exercise.id), "set_number": 1, "weight_kg": 65, "reps_completed": 8},
                {"exercise_id": str(exercise.id), "set_number": 2, "weight_kg": 65, "reps_completed": 8},
            ]},
            headers=auth_headers,
        )
        assert response.status_code == 200
        assert response.json() == {"success": True, "updated": 1}

    def test_unknown_completion_is_404(self, test_client, auth_headers, exercise):
        response = client.post(
            f"/v1/workouts/completions/{uuid4()}/sets",
            json={"sets": [{"exercise_id": str(exercise.id), "set_number": 1, "weight_kg": 65}]},
            headers=auth_headers,
        )
        assert response.status_code == 404

    def test_missing_sets_is_400(self, test_client, auth_headers):
        response = client.post(f"/v1/workouts/completions/{uuid4()}/sets", json={}, headers=auth_headers)
        assert response.status_code == 400


class TestResponseHeaders:
    def test_client_metrics_are_not_cacheable(self, test_client, auth_headers):
        response = client.get("/v1/workouts/streak", headers=auth_headers)
        assert response.headers["Cache-Control"] == "private, no-store"
        assert response.headers["X-Content-Type-Options"] == "nosniff"

    def test_ping(self):
        assert client.get("/ping").json() == {"pong": True}

    def test_health(self):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
