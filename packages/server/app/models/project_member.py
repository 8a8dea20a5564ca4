"""Legacy project membership (join table). The project owner is never stored here."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import utcnow


class ProjectMember(SQLModel, table=True):
    __tablename__ = "project_members"

    project_id: uuid.UUID = Field(foreign_key="projects.id", primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="users.id", primary_key=True, index=True)
    role: str = Field(nullable=False, default="MEMBER")  # OWNER | MEMBER | VIEWER
    added_by: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id")
    added_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
