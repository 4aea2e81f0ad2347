"""Initial gate attendance schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 00:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

json_type = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    op.create_table(
        "employees",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("badge_code", sa.String(length=64), nullable=False),
        sa.Column("employee_code", sa.String(length=64), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("gender", sa.String(length=32), nullable=False, server_default=""),
        sa.Column("department", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("designation", sa.String(length=255), nullable=False, server_default="Associate"),
        sa.Column("date_of_joining", sa.Date(), nullable=True),
        sa.Column("added_via", sa.String(length=16), nullable=False, server_default="manual"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    )
    op.create_index("ix_employees_badge_code", "employees", ["badge_code"], unique=True)
    op.create_index("ix_employees_department", "employees", ["department"], unique=False)

    op.create_table(
        "roster_assignments",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("shift_name", sa.String(length=16), nullable=False, server_default="General"),
        sa.Column("week_off", sa.String(length=16), nullable=False, server_default="Sunday"),
        sa.Column("effective_date", sa.Date(), nullable=True),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("employee_id", name="uq_roster_assignments_employee_id"),
    )

    op.create_table(
        "attendance_sessions",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("badge_code", sa.String(length=64), nullable=False),
        sa.Column("shift_name", sa.String(length=32), nullable=False),
        sa.Column("department", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("work_date", sa.Date(), nullable=False),
        sa.Column("gate_in_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("gate_out_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_week_off_entry", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_overtime", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_attendance_sessions_employee_id", "attendance_sessions", ["employee_id"], unique=False)
    op.create_index("ix_attendance_sessions_work_date", "attendance_sessions", ["work_date"], unique=False)
    op.create_index(
        "ix_attendance_sessions_employee_work_date",
        "attendance_sessions",
        ["employee_id", "work_date"],
        unique=False,
    )

    op.create_table(
        "open_sessions",
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("session_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["session_id"], ["attendance_sessions.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("employee_id", name="pk_open_sessions"),
        sa.UniqueConstraint("session_id", name="uq_open_sessions_session_id"),
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column(
            "ts_utc",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column("actor_type", sa.String(length=16), nullable=False),
        sa.Column("actor_id", sa.String(length=255), nullable=False),
        sa.Column("action", sa.String(length=255), nullable=False),
        sa.Column("entity_type", sa.String(length=255), nullable=True),
        sa.Column("entity_id", sa.String(length=255), nullable=True),
        sa.Column("ip", sa.String(length=128), nullable=True),
        sa.Column("user_agent", sa.String(length=1024), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("details", json_type, nullable=False),
    )
    op.create_index("ix_audit_logs_ts_utc", "audit_logs", ["ts_utc"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_audit_logs_ts_utc", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_table("open_sessions")
    op.drop_index("ix_attendance_sessions_employee_work_date", table_name="attendance_sessions")
    op.drop_index("ix_attendance_sessions_work_date", table_name="attendance_sessions")
    op.drop_index("ix_attendance_sessions_employee_id", table_name="attendance_sessions")
    op.drop_table("attendance_sessions")
    op.drop_table("roster_assignments")
    op.drop_index("ix_employees_department", table_name="employees")
    op.drop_index("ix_employees_badge_code", table_name="employees")
    op.drop_table("employees")
