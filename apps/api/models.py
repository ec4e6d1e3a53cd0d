from sqlalchemy import Column, Integer, Boolean, CheckConstraint, Float, Date, DateTime, ForeignKey, Text, Index, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from core.database import Base
import uuid


class Client(Base):
    """
    A person on the platform: a coached client, a trainer or an admin.

    Identity (login, passwords, sessions) lives in the external identity
    layer; this row is what a verified token's `sub` resolves to.
    """
    __tablename__ = "client"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    email = Column(Text, unique=True, nullable=True)
    display_name = Column(Text, nullable=True)
    role = Column(Text, default="client", nullable=False)  # 'client', 'trainer', 'admin'
    timezone = Column(Text, nullable=True)  # IANA timezone, e.g. "Australia/Adelaide"

    # Hard block a user from accessing the product (admin-only action).
    is_blocked = Column(Boolean, default=False, nullable=False)

    enrollments = relationship("ProgramEnrollment", back_populates="client", lazy="dynamic")


# =============================================================================
# PROGRAM AUTHORING (read-only to the adherence engine)
# =============================================================================

class Program(Base):
    """A training program authored by a trainer."""
    __tablename__ = "program"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    category = Column(Text, default="strength", nullable=False)  # 'strength', 'hypertrophy', 'hybrid', ...
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    workouts = relationship(
        "WorkoutDefinition",
        back_populates="program",
        order_by="WorkoutDefinition.order_index",
    )


class WorkoutDefinition(Base):
    """
    One workout inside a program.

    Primary workouts (no parent) occupy a (week_number, day_of_week) cell.
    Finishers carry parent_workout_id and are attached to that primary.
    """
    __tablename__ = "workout_definition"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    program_id = Column(Uuid, ForeignKey("program.id"), nullable=False)  # Index in __table_args__
    name = Column(Text, nullable=False)

    # Scheduling
    week_number = Column(Integer, nullable=True)  # NULL is read as week 1
    day_of_week = Column(Integer, nullable=True)  # 0=Sunday, 6=Saturday, NULL = unscheduled
    order_index = Column(Integer, default=0, nullable=False)

    parent_workout_id = Column(Uuid, ForeignKey("workout_definition.id"), nullable=True)

    program = relationship("Program", back_populates="workouts")

    __table_args__ = (
        Index("ix_workout_definition_program_id", "program_id"),
        Index("ix_workout_definition_parent", "parent_workout_id"),
        CheckConstraint(
            "day_of_week IS NULL OR (day_of_week >= 0 AND day_of_week <= 6)",
            name="ck_workout_definition_day_of_week",
        ),
    )


class Exercise(Base):
    """Exercise catalog entry referenced by set logs."""
    __tablename__ = "exercise"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)


class ProgramEnrollment(Base):
    """
    A client's assignment to a program.

    Several enrollments may be active at once. duration_weeks = NULL means
    open-ended.
    """
    __tablename__ = "program_enrollment"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    client_id = Column(Uuid, ForeignKey("client.id"), nullable=False)
    program_id = Column(Uuid, ForeignKey("program.id"), nullable=False)
    start_date = Column(Date, nullable=False)
    duration_weeks = Column(Integer, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    client = relationship("Client", back_populates="enrollments")
    program = relationship("Program")

    __table_args__ = (
        Index("ix_program_enrollment_client_active", "client_id", "is_active"),
    )


# =============================================================================
# ADHERENCE RECORDS (written by the completion sink)
# =============================================================================

class WorkoutCompletion(Base):
    """
    A client completed a workout that was due on scheduled_date.

    One row per (client, workout, scheduled_date); resubmissions update it.
    sets_status tracks the second phase of the write (the set logs), which
    is not in the same transaction as this row.
    """
    __tablename__ = "workout_completion"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    client_id = Column(Uuid, ForeignKey("client.id"), nullable=False)
    workout_id = Column(Uuid, ForeignKey("workout_definition.id"), nullable=False)
    enrollment_id = Column(Uuid, ForeignKey("program_enrollment.id"), nullable=True)

    scheduled_date = Column(Date, nullable=False)  # Calendar date the workout was due (client's local date)
    completed_at = Column(DateTime(timezone=True), nullable=False)

    sets_status = Column(Text, default="pending", nullable=False)  # 'pending', 'written', 'failed'

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    set_logs = relationship("SetLog", back_populates="completion", order_by="SetLog.set_number")

    __table_args__ = (
        UniqueConstraint("client_id", "workout_id", "scheduled_date", name="uq_workout_completion_client_workout_date"),
        Index("ix_workout_completion_client_date", "client_id", "scheduled_date"),
        Index("ix_workout_completion_sets_status", "sets_status"),
    )


class SetLog(Base):
    """A single performed set: weight x reps for one exercise."""
    __tablename__ = "set_log"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    completion_id = Column(Uuid, ForeignKey("workout_completion.id", ondelete="CASCADE"), nullable=False)
    exercise_id = Column(Uuid, ForeignKey("exercise.id"), nullable=False)
    set_number = Column(Integer, nullable=False)
    weight_kg = Column(Float, nullable=True)
    reps_completed = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    completion = relationship("WorkoutCompletion", back_populates="set_logs")

    __table_args__ = (
        UniqueConstraint("completion_id", "exercise_id", "set_number", name="uq_set_log_completion_exercise_set"),
        Index("ix_set_log_completion_id", "completion_id"),
    )


class ClientStreak(Base):
    """
    Materialized streak for a client.

    Always written from a full recomputation (see services.streak_calculator),
    so it can be dropped and rebuilt at any time.
    """
    __tablename__ = "client_streak"

    client_id = Column(Uuid, ForeignKey("client.id"), primary_key=True)
    current_streak = Column(Integer, default=0, nullable=False)
    longest_streak = Column(Integer, default=0, nullable=False)
    last_workout_date = Column(Date, nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
