"""Начальная схема: пользователи, участия, отметки о выполнении, события завершения

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("username", sa.String(length=100), nullable=True),
        sa.Column("timezone", sa.String(length=50), nullable=False, server_default="UTC"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("reward_units", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.CheckConstraint("reward_units >= 0", name=op.f("ck_users_reward_units_non_negative")),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_users")),
    )
    op.create_index(op.f("ix_users_id"), "users", ["id"])
    op.create_index(op.f("ix_users_username"), "users", ["username"])

    op.create_table(
        "habit_enrollments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("habit_id", sa.String(length=100), nullable=False),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("is_completed", sa.Boolean(), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("streak", sa.Integer(), nullable=False),
        sa.Column("longest_streak", sa.Integer(), nullable=False),
        sa.Column("total_completed_tasks", sa.Integer(), nullable=False),
        sa.Column("last_completed_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("progress_percentage", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint(
            "progress_percentage >= 0 AND progress_percentage <= 100",
            name=op.f("ck_habit_enrollments_progress_percentage_range"),
        ),
        sa.CheckConstraint(
            "streak >= 0 AND longest_streak >= 0 AND total_completed_tasks >= 0",
            name=op.f("ck_habit_enrollments_counters_non_negative"),
        ),
        sa.CheckConstraint(
            "NOT is_completed OR (NOT is_active AND completed_at IS NOT NULL)",
            name=op.f("ck_habit_enrollments_completed_is_terminal"),
        ),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.id"],
            name=op.f("fk_habit_enrollments_user_id_users"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_habit_enrollments")),
    )
    op.create_index(op.f("ix_habit_enrollments_id"), "habit_enrollments", ["id"])
    op.create_index(op.f("ix_habit_enrollments_user_id"), "habit_enrollments", ["user_id"])
    op.create_index(op.f("ix_habit_enrollments_habit_id"), "habit_enrollments", ["habit_id"])
    op.create_index(
        "ix_habit_enrollments_user_habit_active",
        "habit_enrollments",
        ["user_id", "habit_id", "is_active"],
    )
    # Не более одного активного участия на пару (пользователь, привычка)
    op.create_index(
        "uq_habit_enrollments_active_user_habit",
        "habit_enrollments",
        ["user_id", "habit_id"],
        unique=True,
        postgresql_where=sa.text("is_active"),
    )

    op.create_table(
        "completion_records",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("enrollment_id", sa.Integer(), nullable=False),
        sa.Column("day", sa.Integer(), nullable=False),
        sa.Column("task_id", sa.String(length=100), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completion_time", sa.Integer(), nullable=True),
        sa.Column("notes", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("rating", sa.SmallInteger(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("day >= 1", name=op.f("ck_completion_records_day_positive")),
        sa.CheckConstraint(
            "rating IS NULL OR (rating >= 1 AND rating <= 5)",
            name=op.f("ck_completion_records_rating_range"),
        ),
        sa.CheckConstraint(
            "completion_time IS NULL OR completion_time >= 0",
            name=op.f("ck_completion_records_completion_time_non_negative"),
        ),
        sa.ForeignKeyConstraint(
            ["enrollment_id"],
            ["habit_enrollments.id"],
            name=op.f("fk_completion_records_enrollment_id_habit_enrollments"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_completion_records")),
        sa.UniqueConstraint("enrollment_id", "day", "task_id", name="uq_completion_record_day_task"),
    )
    op.create_index(op.f("ix_completion_records_id"), "completion_records", ["id"])
    op.create_index(op.f("ix_completion_records_enrollment_id"), "completion_records", ["enrollment_id"])

    op.create_table(
        "completion_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("enrollment_id", sa.Integer(), nullable=False),
        sa.Column("habit_id", sa.String(length=100), nullable=False),
        sa.Column("reward_granted", sa.Boolean(), nullable=False),
        sa.Column("roster_synced", sa.Boolean(), nullable=False),
        sa.Column("dispatched_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.id"],
            name=op.f("fk_completion_events_user_id_users"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["enrollment_id"],
            ["habit_enrollments.id"],
            name=op.f("fk_completion_events_enrollment_id_habit_enrollments"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_completion_events")),
        sa.UniqueConstraint("enrollment_id", name=op.f("uq_completion_events_enrollment_id")),
    )
    op.create_index(op.f("ix_completion_events_id"), "completion_events", ["id"])
    op.create_index(op.f("ix_completion_events_user_id"), "completion_events", ["user_id"])
    op.create_index(op.f("ix_completion_events_reward_granted"), "completion_events", ["reward_granted"])
    op.create_index(op.f("ix_completion_events_roster_synced"), "completion_events", ["roster_synced"])


def downgrade() -> None:
    op.drop_table("completion_events")
    op.drop_table("completion_records")
    op.drop_index("uq_habit_enrollments_active_user_habit", table_name="habit_enrollments")
    op.drop_index("ix_habit_enrollments_user_habit_active", table_name="habit_enrollments")
    op.drop_table("habit_enrollments")
    op.drop_table("users")
