"""Task model."""

from typing import Optional
import uuid

from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Task(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "tasks"

    project_id: uuid.UUID = Field(foreign_key="projects.id", nullable=False, index=True)
    section_id: Optional[uuid.UUID] = Field(default=None, foreign_key="sections.id", index=True)
    parent_id: Optional[uuid.UUID] = Field(default=None, foreign_key="tasks.id")  # subtask
    title: str = Field(nullable=False)
