"""Unified assignment / invitation table.

A row grants access to a PROJECT, SECTION or TASK either to a known user
(``user_id``) or to an email address without an account (``email``), never
both. The partial unique indexes below are the storage-level guard for the
duplicate checks done in the service layer.
"""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import UUIDMixin, utcnow

_ACTIVE = sa.text("status = 'ACTIVE'")
_PENDING = sa.text("status = 'PENDING'")
_TASK_ACTIVE = sa.text("target_type = 'TASK' AND status = 'ACTIVE'")


class Assignment(UUIDMixin, SQLModel, table=True):
    __tablename__ = "assignments"
    __table_args__ = (
        sa.CheckConstraint(
            "(user_id IS NULL) <> (email IS NULL)", name="ck_assignments_user_xor_email"
        ),
        sa.CheckConstraint(
            "status <> 'PENDING' OR email IS NOT NULL", name="ck_assignments_pending_email"
        ),
        sa.CheckConstraint(
            "status <> 'ACTIVE' OR user_id IS NOT NULL", name="ck_assignments_active_user"
        ),
        sa.Index(
            "uq_assignments_active_user",
            "target_type", "target_id", "user_id",
            unique=True, postgresql_where=_ACTIVE, sqlite_where=_ACTIVE,
        ),
        sa.Index(
            "uq_assignments_pending_email",
            "target_type", "target_id", "email",
            unique=True, postgresql_where=_PENDING, sqlite_where=_PENDING,
        ),
        sa.Index(
            "uq_assignments_task_single_active",
            "target_id",
            unique=True, postgresql_where=_TASK_ACTIVE, sqlite_where=_TASK_ACTIVE,
        ),
        sa.Index("ix_assignments_target", "target_type", "target_id"),
    )

    target_type: str = Field(nullable=False)  # PROJECT | SECTION | TASK
    target_id: uuid.UUID = Field(nullable=False)
    user_id: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id", index=True)
    email: Optional[str] = Field(default=None, index=True)
    invited_email: Optional[str] = None  # survives acceptance for audit
    assigned_by: uuid.UUID = Field(foreign_key="users.id", nullable=False)
    role: str = Field(nullable=False, default="MEMBER")
    status: str = Field(nullable=False, default="ACTIVE")  # PENDING | ACTIVE | EXPIRED | CANCELLED
    message: Optional[str] = None
    assigned_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
    expires_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    accepted_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))

    @property
    def is_invitation(self) -> bool:
        return self.invited_email is not None
