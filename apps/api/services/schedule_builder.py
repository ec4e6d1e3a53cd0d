"""
Schedule Builder

Projects a client's active program enrollments into a
week -> day-of-week -> workout grid.

Workout definitions come in two shapes, told apart only by parent_workout_id
in the database. They are classified into PrimaryWorkout / FinisherWorkout
first, and only primaries are ever placed on the grid; finishers ride along
on their parent's cell.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Union
from uuid import UUID

from sqlalchemy.orm import Session, selectinload

from core.config import settings
from models import ProgramEnrollment, Program, WorkoutCompletion

logger = logging.getLogger(__name__)

DEFAULT_WEEK = 1


@dataclass(frozen=True)
class PrimaryWorkout:
    id: UUID
    name: str
    program_name: str
    week_number: int
    day_of_week: Optional[int]
    order_index: int = 0
    enrollment_id: Optional[UUID] = None


@dataclass(frozen=True)
class FinisherWorkout:
    id: UUID
    name: str
    parent_id: UUID
    order_index: int = 0


WorkoutVariant = Union[PrimaryWorkout, FinisherWorkout]


@dataclass
class ScheduledWorkout:
    """A primary workout placed on the grid, with its finishers."""
    workout_id: UUID
    name: str
    program_name: str
    week_number: int
    day_of_week: int
    enrollment_id: Optional[UUID] = None
    finishers: List[FinisherWorkout] = field(default_factory=list)

    @property
    def finisher(self) -> Optional[FinisherWorkout]:
        # Single-finisher consumers only ever see the first one
        return self.finishers[0] if self.finishers else None

    def to_dict(self) -> Dict:
        def finisher_dict(f: FinisherWorkout) -> Dict:
            return {"workoutId": str(f.id), "name": f.name}

        return {
            "workoutId": str(self.workout_id),
            "workoutName": self.name,
            "programName": self.program_name,
            "weekNumber": self.week_number,
            "dayOfWeek": self.day_of_week,
            "enrollmentId": str(self.enrollment_id) if self.enrollment_id else None,
            "finisher": finisher_dict(self.finisher) if self.finisher else None,
            "finishers": [finisher_dict(f) for f in self.finishers],
        }


@dataclass
class Schedule:
    by_week_and_day: Dict[int, Dict[int, ScheduledWorkout]] = field(default_factory=dict)
    max_week: int = DEFAULT_WEEK

    @property
    def by_day(self) -> Dict[int, ScheduledWorkout]:
        """Week 1 slice, for consumers that only understand a single week."""
        return self.by_week_and_day.get(DEFAULT_WEEK, {})

    @property
    def scheduled_days(self) -> List[int]:
        return sorted(self.by_day.keys())

    def to_dict(self) -> Dict:
        return {
            "scheduleByDay": {day: w.to_dict() for day, w in sorted(self.by_day.items())},
            "scheduleByWeekAndDay": {
                week: {day: w.to_dict() for day, w in sorted(days.items())}
                for week, days in sorted(self.by_week_and_day.items())
            },
            "maxWeek": self.max_week,
        }


@dataclass
class StackedSchedule:
    """Like Schedule, but a cell lists the workouts of every enrolled program."""
    by_week_and_day: Dict[int, Dict[int, List[ScheduledWorkout]]] = field(default_factory=dict)
    max_week: int = DEFAULT_WEEK

    @property
    def by_day(self) -> Dict[int, List[ScheduledWorkout]]:
        return self.by_week_and_day.get(DEFAULT_WEEK, {})

    def to_dict(self) -> Dict:
        def cells(days: Dict[int, List[ScheduledWorkout]]) -> Dict:
            return {day: [w.to_dict() for w in workouts] for day, workouts in sorted(days.items())}

        return {
            "scheduleByDay": cells(self.by_day),
            "scheduleByWeekAndDay": {week: cells(days) for week, days in sorted(self.by_week_and_day.items())},
            "maxWeek": self.max_week,
        }


@dataclass
class EnrollmentWorkouts:
    """Workout definitions of one active enrollment, with its program's name."""
    enrollment_id: Optional[UUID]
    program_name: str
    definitions: List = field(default_factory=list)
    start_date: Optional[date] = None


def classify_definition(definition, program_name: str = "", enrollment_id: Optional[UUID] = None) -> WorkoutVariant:
    """Turn a workout definition row into PrimaryWorkout or FinisherWorkout."""
    order_index = definition.order_index or 0
    if definition.parent_workout_id is not None:
        return FinisherWorkout(
            id=definition.id,
            name=definition.name,
            parent_id=definition.parent_workout_id,
            order_index=order_index,
        )
    return PrimaryWorkout(
        id=definition.id,
        name=definition.name,
        program_name=program_name,
        week_number=definition.week_number or DEFAULT_WEEK,
        day_of_week=definition.day_of_week,
        order_index=order_index,
        enrollment_id=enrollment_id,
    )


def _grid_workouts(enrollments: Iterable[EnrollmentWorkouts]) -> List[ScheduledWorkout]:
    """
    Every primary with a day_of_week, as a grid entry carrying its finishers.

    Enrollments keep the order given, definitions within one are taken by
    order_index. Primaries without a day_of_week are ad-hoc and left out.
    """
    primaries: List[PrimaryWorkout] = []
    finishers_by_parent: Dict[UUID, List[FinisherWorkout]] = defaultdict(list)

    for enrollment in enrollments:
        definitions = sorted(enrollment.definitions, key=lambda d: d.order_index or 0)
        for definition in definitions:
            variant = classify_definition(definition, enrollment.program_name, enrollment.enrollment_id)
            if isinstance(variant, FinisherWorkout):
                finishers_by_parent[variant.parent_id].append(variant)
            else:
                primaries.append(variant)

    return [
        ScheduledWorkout(
            workout_id=primary.id,
            name=primary.name,
            program_name=primary.program_name,
            week_number=primary.week_number,
            day_of_week=primary.day_of_week,
            enrollment_id=primary.enrollment_id,
            finishers=sorted(finishers_by_parent.get(primary.id, []), key=lambda f: f.order_index),
        )
        for primary in primaries
        if primary.day_of_week is not None
    ]


def build_schedule(enrollments: Iterable[EnrollmentWorkouts]) -> Schedule:
    """
    Build the week/day grid for a set of active enrollments, one workout per cell.

    When two primaries claim the same (week, day) cell the first one wins.
    """
    schedule = Schedule()
    for workout in _grid_workouts(enrollments):
        week_cells = schedule.by_week_and_day.setdefault(workout.week_number, {})
        occupant = week_cells.get(workout.day_of_week)
        if occupant is not None:
            logger.warning(
                f"Schedule cell week {workout.week_number} day {workout.day_of_week} already holds "
                f"{occupant.workout_id}; dropping {workout.workout_id}"
            )
            continue

        week_cells[workout.day_of_week] = workout
        schedule.max_week = max(schedule.max_week, workout.week_number)

    return schedule


def build_stacked_schedule(enrollments: Iterable[EnrollmentWorkouts]) -> StackedSchedule:
    """Week/day grid holding every enrolled program's workout for each cell."""
    schedule = StackedSchedule()
    for workout in _grid_workouts(enrollments):
        week_cells = schedule.by_week_and_day.setdefault(workout.week_number, {})
        week_cells.setdefault(workout.day_of_week, []).append(workout)
        schedule.max_week = max(schedule.max_week, workout.week_number)
    return schedule


# =============================================================================
# PERSISTENCE
# =============================================================================

def enrollment_end_date(enrollment: ProgramEnrollment) -> Optional[date]:
    """Last calendar day of a date-bounded enrollment, None when open-ended."""
    if not enrollment.duration_weeks:
        return None
    return enrollment.start_date + timedelta(days=enrollment.duration_weeks * 7 - 1)


def is_enrollment_current(enrollment: ProgramEnrollment, today: date) -> bool:
    if not enrollment.is_active:
        return False
    if enrollment.start_date and today < enrollment.start_date:
        return False
    end = enrollment_end_date(enrollment)
    return end is None or today <= end


def fetch_active_enrollments(db: Session, client_id: UUID, today: date) -> List[ProgramEnrollment]:
    """
    Active enrollments for a client whose date range covers today.

    Ordered by start date so "the first active enrollment" is stable.
    Programs and their workouts are eager-loaded, workouts by order_index.
    """
    enrollments = (
        db.query(ProgramEnrollment)
        .options(selectinload(ProgramEnrollment.program).selectinload(Program.workouts))
        .filter(
            ProgramEnrollment.client_id == client_id,
            ProgramEnrollment.is_active == True,
        )
        .order_by(ProgramEnrollment.start_date, ProgramEnrollment.created_at, ProgramEnrollment.id)
        .all()
    )
    return [e for e in enrollments if is_enrollment_current(e, today)]


def to_enrollment_workouts(enrollments: Iterable[ProgramEnrollment]) -> List[EnrollmentWorkouts]:
    return [
        EnrollmentWorkouts(
            enrollment_id=e.id,
            program_name=e.program.name if e.program else "",
            definitions=list(e.program.workouts) if e.program else [],
            start_date=e.start_date,
        )
        for e in enrollments
    ]


def build_client_schedule(db: Session, client_id: UUID, today: date) -> Schedule:
    return build_schedule(to_enrollment_workouts(fetch_active_enrollments(db, client_id, today)))


def fetch_completions_by_date(
    db: Session,
    client_id: UUID,
    today: date,
    enrollment_ids: Optional[List[UUID]] = None,
    lookback_days: Optional[int] = None,
) -> Dict[str, str]:
    """
    ISO scheduled date -> completed workout id over the lookback window.

    Restricted to the given enrollments when any are passed. With several
    completions on one date the most recently completed one is reported.
    """
    if lookback_days is None:
        lookback_days = settings.COMPLETION_LOOKBACK_DAYS
    since = today - timedelta(days=lookback_days)

    query = db.query(
        WorkoutCompletion.scheduled_date,
        WorkoutCompletion.workout_id,
    ).filter(
        WorkoutCompletion.client_id == client_id,
        WorkoutCompletion.scheduled_date >= since,
    )
    if enrollment_ids:
        query = query.filter(WorkoutCompletion.enrollment_id.in_(enrollment_ids))

    rows = query.order_by(WorkoutCompletion.scheduled_date, WorkoutCompletion.completed_at).all()
    return {scheduled_date.isoformat(): str(workout_id) for scheduled_date, workout_id in rows}


def get_schedule_view(db: Session, client_id: UUID, today: date) -> Dict:
    """Schedule grid plus recent completions and program start, as served to the client app."""
    enrollments = fetch_active_enrollments(db, client_id, today)
    schedule = build_schedule(to_enrollment_workouts(enrollments))

    view = schedule.to_dict()
    view["completionsByDate"] = fetch_completions_by_date(
        db, client_id, today, enrollment_ids=[e.id for e in enrollments]
    )
    start_dates = [e.start_date for e in enrollments if e.start_date]
    view["programStartDate"] = min(start_dates).isoformat() if start_dates else None
    return view
