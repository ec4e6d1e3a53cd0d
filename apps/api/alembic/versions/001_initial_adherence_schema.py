"""initial adherence schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'client',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('email', sa.Text(), nullable=True),
        sa.Column('display_name', sa.Text(), nullable=True),
        sa.Column('role', sa.Text(), nullable=False, server_default='client'),
        sa.Column('timezone', sa.Text(), nullable=True),
        sa.Column('is_blocked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.UniqueConstraint('email', name='uq_client_email'),
    )

    op.create_table(
        'program',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('category', sa.Text(), nullable=False, server_default='strength'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'exercise',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.Text(), nullable=False),
    )

    op.create_table(
        'workout_definition',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('program_id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('week_number', sa.Integer(), nullable=True),
        sa.Column('day_of_week', sa.Integer(), nullable=True),
        sa.Column('order_index', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('parent_workout_id', sa.Uuid(), nullable=True),
        sa.ForeignKeyConstraint(['program_id'], ['program.id']),
        sa.ForeignKeyConstraint(['parent_workout_id'], ['workout_definition.id']),
        sa.CheckConstraint(
            'day_of_week IS NULL OR (day_of_week >= 0 AND day_of_week <= 6)',
            name='ck_workout_definition_day_of_week',
        ),
    )
    op.create_index('ix_workout_definition_program_id', 'workout_definition', ['program_id'])
    op.create_index('ix_workout_definition_parent', 'workout_definition', ['parent_workout_id'])

    op.create_table(
        'program_enrollment',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('client_id', sa.Uuid(), nullable=False),
        sa.Column('program_id', sa.Uuid(), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('duration_weeks', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['client_id'], ['client.id']),
        sa.ForeignKeyConstraint(['program_id'], ['program.id']),
    )
    op.create_index('ix_program_enrollment_client_active', 'program_enrollment', ['client_id', 'is_active'])

    op.create_table(
        'workout_completion',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('client_id', sa.Uuid(), nullable=False),
        sa.Column('workout_id', sa.Uuid(), nullable=False),
        sa.Column('enrollment_id', sa.Uuid(), nullable=True),
        sa.Column('scheduled_date', sa.Date(), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('sets_status', sa.Text(), nullable=False, server_default='pending'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['client_id'], ['client.id']),
        sa.ForeignKeyConstraint(['workout_id'], ['workout_definition.id']),
        sa.ForeignKeyConstraint(['enrollment_id'], ['program_enrollment.id']),
        sa.UniqueConstraint('client_id', 'workout_id', 'scheduled_date', name='uq_workout_completion_client_workout_date'),
    )
    op.create_index('ix_workout_completion_client_date', 'workout_completion', ['client_id', 'scheduled_date'])
    op.create_index('ix_workout_completion_sets_status', 'workout_completion', ['sets_status'])

    op.create_table(
        'set_log',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('completion_id', sa.Uuid(), nullable=False),
        sa.Column('exercise_id', sa.Uuid(), nullable=False),
        sa.Column('set_number', sa.Integer(), nullable=False),
        sa.Column('weight_kg', sa.Float(), nullable=True),
        sa.Column('reps_completed', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['completion_id'], ['workout_completion.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['exercise_id'], ['exercise.id']),
        sa.UniqueConstraint('completion_id', 'exercise_id', 'set_number', name='uq_set_log_completion_exercise_set'),
    )
    op.create_index('ix_set_log_completion_id', 'set_log', ['completion_id'])

    op.create_table(
        'client_streak',
        sa.Column('client_id', sa.Uuid(), primary_key=True),
        sa.Column('current_streak', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('longest_streak', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_workout_date', sa.Date(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['client_id'], ['client.id']),
    )


def downgrade() -> None:
    op.drop_table('client_streak')
    op.drop_index('ix_set_log_completion_id', table_name='set_log')
    op.drop_table('set_log')
    op.drop_index('ix_workout_completion_sets_status', table_name='workout_completion')
    op.drop_index('ix_workout_completion_client_date', table_name='workout_completion')
    op.drop_table('workout_completion')
    op.drop_index('ix_program_enrollment_client_active', table_name='program_enrollment')
    op.drop_table('program_enrollment')
    op.drop_index('ix_workout_definition_parent', table_name='workout_definition')
    op.drop_index('ix_workout_definition_program_id', table_name='workout_definition')
    op.drop_table('workout_definition')
    op.drop_table('exercise')
    op.drop_table('program')
    op.drop_table('client')
