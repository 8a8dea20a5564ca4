"""Project and Section models (content owned elsewhere; ids and ownership read here)."""

import uuid

from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Project(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "projects"

    name: str = Field(nullable=False)
    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)  # owner


class Section(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "sections"

    project_id: uuid.UUID = Field(foreign_key="projects.id", nullable=False, index=True)
    name: str = Field(nullable=False)
