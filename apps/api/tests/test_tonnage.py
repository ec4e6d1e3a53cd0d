"""
Tests for tonnage aggregation: weight x reps summed over sets whose
completion's scheduled date falls inside the window.
"""
from datetime import date, datetime, timezone
from types import SimpleNamespace

import pytest

from models import SetLog, WorkoutCompletion
from services.time_window import TimeWindow, resolve_time_window
from services.tonnage import calculate_tonnage, fetch_tonnage, set_volume


def s(weight, reps):
    return SimpleNamespace(weight_kg=weight, reps_completed=reps)


class TestCalculateTonnage:
    def test_empty_is_zero(self):
        assert calculate_tonnage([]) == 0

    def test_sums_weight_times_reps(self):
        assert calculate_tonnage([s(100, 5), s(80, 8), s(60, 10)]) == 500 + 640 + 600

    @pytest.mark.parametrize("weight,reps", [(None, 5), (100, None), (None, None)])
    def test_missing_values_count_as_zero(self, weight, reps):
        assert set_volume(weight, reps) == 0
        assert calculate_tonnage([s(weight, reps), s(20, 10)]) == 200

    def test_rounds_to_nearest_whole(self):
        assert calculate_tonnage([s(22.5, 3)]) == 68  # 67.5
        assert calculate_tonnage([s(10.3, 3)]) == 31


class TestFetchTonnage:
    @pytest.fixture
    def log_sets(self, db_session, test_client, mwf_program, exercise):
        workouts = iter(mwf_program.workouts)

        def _log(scheduled_date, *sets):
            completion = WorkoutCompletion(
                client_id=test_client.id,
                workout_id=next(workouts).id,
                scheduled_date=scheduled_date,
                completed_at=datetime(2024, 1, 1),
                sets_status="written",
            )
            db_session.add(completion)
            db_session.flush()
            for number, (weight, reps) in enumerate(sets, start=1):
                db_session.add(SetLog(
                    completion_id=completion.id,
                    exercise_id=exercise.id,
                    set_number=number,
                    weight_kg=weight,
                    reps_completed=reps,
                ))
            db_session.commit()
            return completion
        return _log

    def window(self, start, end, period="week"):
        return TimeWindow(start=start, end=end, timezone="UTC", period=period)

    def test_no_completions_is_zero(self, db_session, test_client):
        assert fetch_tonnage(db_session, test_client.id, self.window(date(2024, 1, 8), date(2024, 1, 10))) == 0

    def test_only_sets_inside_window_count(self, db_session, test_client, log_sets):
        log_sets(date(2024, 1, 7), (100, 10))            # Sunday before the window
        log_sets(date(2024, 1, 8), (100, 5), (100, 5))   # 1000
        log_sets(date(2024, 1, 10), (50, 10))            # 500
        log_sets(date(2024, 1, 11), (200, 10))           # after today

        window = self.window(date(2024, 1, 8), date(2024, 1, 10))
        assert fetch_tonnage(db_session, test_client.id, window) == 1500

    def test_other_clients_do_not_count(self, db_session, make_client, log_sets, mwf_program, exercise):
        log_sets(date(2024, 1, 8), (100, 5))
        other = make_client()
        completion = WorkoutCompletion(
            client_id=other.id, workout_id=mwf_program.workouts[-1].id,
            scheduled_date=date(2024, 1, 8), completed_at=datetime(2024, 1, 8),
        )
        db_session.add(completion)
        db_session.flush()
        db_session.add(SetLog(completion_id=completion.id, exercise_id=exercise.id,
                              set_number=1, weight_kg=500, reps_completed=5))
        db_session.commit()

        window = self.window(date(2024, 1, 8), date(2024, 1, 8), "day")
        assert fetch_tonnage(db_session, other.id, window) == 2500

    def test_day_window_follows_client_timezone(self, db_session, test_client, log_sets):
        log_sets(date(2024, 1, 10), (100, 10))
        # 20:00 UTC on the 9th: the 10th in Adelaide, still the 9th in New York
        instant = datetime(2024, 1, 9, 20, 0, tzinfo=timezone.utc)

        adelaide = resolve_time_window("Australia/Adelaide", "day", now=instant)
        new_york = resolve_time_window("America/New_York", "day", now=instant)
        assert fetch_tonnage(db_session, test_client.id, adelaide) == 1000
        assert fetch_tonnage(db_session, test_client.id, new_york) == 0
