"""Activity log (written in the same transaction as the change it describes)."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import UUIDMixin, utcnow


class Activity(UUIDMixin, SQLModel, table=True):
    __tablename__ = "activities"

    project_id: Optional[uuid.UUID] = Field(default=None, foreign_key="projects.id", index=True)
    target_type: str = Field(nullable=False)  # PROJECT | SECTION | TASK
    target_id: uuid.UUID = Field(nullable=False, index=True)
    actor_id: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id")
    action: str = Field(nullable=False)  # ASSIGNED | REASSIGNED | UNASSIGNED | INVITED | ...
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    description: str = Field(nullable=False, default="")
    payload: dict = Field(default_factory=dict, sa_type=sa.JSON, nullable=False)
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
