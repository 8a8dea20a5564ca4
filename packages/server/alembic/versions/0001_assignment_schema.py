"""Assignment and access schema: users, projects, sections, tasks, members, assignments, activity.

Revision ID: 0001_assignment_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "0001_assignment_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

UUID = postgresql.UUID(as_uuid=True)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    ]


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    # -----------------------------------------------------------------------
    # 1. Directory and content tables (read-only for this service)
    # -----------------------------------------------------------------------

    op.create_table(
        "users",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("first_name", sa.Text(), nullable=True),
        sa.Column("last_name", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "projects",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id"), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_projects_user_id", "projects", ["user_id"])

    op.create_table(
        "sections",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("project_id", UUID, sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_sections_project_id", "sections", ["project_id"])

    op.create_table(
        "tasks",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("project_id", UUID, sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("section_id", UUID, sa.ForeignKey("sections.id", ondelete="SET NULL"), nullable=True),
        sa.Column("parent_id", UUID, sa.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=True),
        sa.Column("title", sa.Text(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_tasks_project_id", "tasks", ["project_id"])
    op.create_index("ix_tasks_section_id", "tasks", ["section_id"])

    # -----------------------------------------------------------------------
    # 2. Membership and assignments
    # -----------------------------------------------------------------------

    op.create_table(
        "project_members",
        sa.Column("project_id", UUID, sa.ForeignKey("projects.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("role", sa.Text(), nullable=False, server_default="MEMBER"),
        sa.Column("added_by", UUID, sa.ForeignKey("users.id"), nullable=True),
        sa.Column("added_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_project_members_user_id", "project_members", ["user_id"])

    op.create_table(
        "assignments",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("target_type", sa.Text(), nullable=False),
        sa.Column("target_id", UUID, nullable=False),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=True),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("invited_email", sa.Text(), nullable=True),
        sa.Column("assigned_by", UUID, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("role", sa.Text(), nullable=False, server_default="MEMBER"),
        sa.Column("status", sa.Text(), nullable=False, server_default="ACTIVE"),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("(user_id IS NULL) <> (email IS NULL)", name="ck_assignments_user_xor_email"),
        sa.CheckConstraint("status <> 'PENDING' OR email IS NOT NULL", name="ck_assignments_pending_email"),
        sa.CheckConstraint("status <> 'ACTIVE' OR user_id IS NOT NULL", name="ck_assignments_active_user"),
        sa.CheckConstraint(
            "target_type IN ('PROJECT', 'SECTION', 'TASK')", name="ck_assignments_target_type"
        ),
        sa.CheckConstraint(
            "status IN ('PENDING', 'ACTIVE', 'EXPIRED', 'CANCELLED')", name="ck_assignments_status"
        ),
    )
    op.create_index("ix_assignments_id", "assignments", ["id"])
    op.create_index("ix_assignments_target", "assignments", ["target_type", "target_id"])
    op.create_index("ix_assignments_user_id", "assignments", ["user_id"])
    op.create_index("ix_assignments_email", "assignments", ["email"])

    # Storage-level guards behind the service's duplicate checks.
    op.create_index(
        "uq_assignments_active_user",
        "assignments",
        ["target_type", "target_id", "user_id"],
        unique=True,
        postgresql_where=sa.text("status = 'ACTIVE'"),
    )
    op.create_index(
        "uq_assignments_pending_email",
        "assignments",
        ["target_type", "target_id", "email"],
        unique=True,
        postgresql_where=sa.text("status = 'PENDING'"),
    )
    op.create_index(
        "uq_assignments_task_single_active",
        "assignments",
        ["target_id"],
        unique=True,
        postgresql_where=sa.text("target_type = 'TASK' AND status = 'ACTIVE'"),
    )

    # -----------------------------------------------------------------------
    # 3. Activity
    # -----------------------------------------------------------------------

    op.create_table(
        "activities",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("project_id", UUID, sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=True),
        sa.Column("target_type", sa.Text(), nullable=False),
        sa.Column("target_id", UUID, nullable=False),
        sa.Column("actor_id", UUID, sa.ForeignKey("users.id"), nullable=True),
        sa.Column("action", sa.Text(), nullable=False),
        sa.Column("old_value", sa.Text(), nullable=True),
        sa.Column("new_value", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("payload", postgresql.JSONB(), nullable=False, server_default="{}"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_activities_project_id", "activities", ["project_id"])
    op.create_index("ix_activities_target_id", "activities", ["target_id"])


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    op.drop_table("activities")
    op.drop_index("uq_assignments_task_single_active", table_name="assignments")
    op.drop_index("uq_assignments_pending_email", table_name="assignments")
    op.drop_index("uq_assignments_active_user", table_name="assignments")
    op.drop_table("assignments")
    op.drop_table("project_members")
    op.drop_table("tasks")
    op.drop_table("sections")
    op.drop_table("projects")
    op.drop_table("users")
