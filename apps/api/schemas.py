from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime, date
from uuid import UUID
from typing import Optional, List, Dict


class SetLogInput(BaseModel):
    """One performed set as submitted by the client app"""
    exercise_id: UUID
    set_number: int = Field(ge=1)
    weight_kg: Optional[float] = Field(default=None, ge=0)
    reps_completed: Optional[int] = Field(default=None, ge=0)


class CompletionCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    workout_id: UUID = Field(alias="workoutId")
    enrollment_id: Optional[UUID] = Field(default=None, alias="enrollmentId")
    scheduled_date: date = Field(alias="scheduledDate")  # Client-local calendar date
    completed_at: Optional[datetime] = Field(default=None, alias="completedAt")
    sets: List[SetLogInput] = []


class CompletionCreateResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    completion_id: UUID = Field(alias="completionId")
    sets_written: bool = Field(alias="setsWritten")


class SetCorrection(BaseModel):
    sets: List[SetLogInput]


class SetCorrectionResponse(BaseModel):
    success: bool = True
    updated: int


class SetLogResponse(BaseModel):
    id: UUID
    exercise_id: UUID
    set_number: int
    weight_kg: Optional[float] = None
    reps_completed: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class CompletionResponse(BaseModel):
    id: UUID
    workout_id: UUID
    enrollment_id: Optional[UUID] = None
    scheduled_date: date
    completed_at: datetime
    sets_status: str
    set_logs: List[SetLogResponse] = []

    model_config = ConfigDict(from_attributes=True)


class CompletionListResponse(BaseModel):
    completions: List[CompletionResponse]


class StreakResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    streak: int
    scheduled_days: List[int] = Field(alias="scheduledDays")


class StreakStateResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    current_streak: int = Field(alias="currentStreak")
    longest_streak: int = Field(alias="longestStreak")
    last_workout_date: Optional[date] = Field(default=None, alias="lastWorkoutDate")


class StreakStateEnvelope(BaseModel):
    streak: Optional[StreakStateResponse] = None


class TonnageResponse(BaseModel):
    tonnage: int


class ProgressionPointResponse(BaseModel):
    """Heaviest set of one session date"""
    date: date
    weight: float
    reps: int


class ProgressionResponse(BaseModel):
    progression: List[ProgressionPointResponse]


class ExerciseResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str


class ExerciseListResponse(BaseModel):
    exercises: List[ExerciseResponse]


class FinisherResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    workout_id: str = Field(alias="workoutId")
    name: str


class ScheduledWorkoutResponse(BaseModel):
    """A primary workout on the grid with its finishers"""
    model_config = ConfigDict(populate_by_name=True)

    workout_id: str = Field(alias="workoutId")
    workout_name: str = Field(alias="workoutName")
    program_name: str = Field(alias="programName")
    week_number: int = Field(alias="weekNumber")
    day_of_week: int = Field(alias="dayOfWeek")
    enrollment_id: Optional[str] = Field(default=None, alias="enrollmentId")
    finisher: Optional[FinisherResponse] = None
    finishers: List[FinisherResponse] = []


class ScheduleResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    schedule_by_day: Dict[int, ScheduledWorkoutResponse] = Field(alias="scheduleByDay")
    schedule_by_week_and_day: Dict[int, Dict[int, ScheduledWorkoutResponse]] = Field(alias="scheduleByWeekAndDay")
    completions_by_date: Dict[str, str] = Field(alias="completionsByDate")
    program_start_date: Optional[date] = Field(default=None, alias="programStartDate")
    max_week: int = Field(alias="maxWeek")


class DashboardResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    first_name: str = Field(alias="firstName")
    schedule_by_day: Dict[int, List[ScheduledWorkoutResponse]] = Field(alias="scheduleByDay")
    schedule_by_week_and_day: Dict[int, Dict[int, List[ScheduledWorkoutResponse]]] = Field(alias="scheduleByWeekAndDay")
    program_count: int = Field(alias="programCount")
    completed_workouts: List[str] = Field(alias="completedWorkouts")
    calendar_completions: Dict[str, bool] = Field(alias="calendarCompletions")
    program_start_date: Optional[date] = Field(default=None, alias="programStartDate")
    max_week: int = Field(alias="maxWeek")
