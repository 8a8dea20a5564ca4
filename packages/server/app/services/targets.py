"""
Target resolution: which project owns a PROJECT/SECTION/TASK target, and how
to name it in emails and activity text.

All target-type branching lives here, behind one lookup table, so the
assignment and invitation services never switch on the target type.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFound, ValidationFailed
from app.models.project import Project, Section
from app.models.task import Task
from planwise_shared.schemas.common import TargetType


@dataclass(frozen=True)
class Target:
    """A loaded assignment target and the project that contains it."""

    type: TargetType
    id: uuid.UUID
    name: str
    project_id: uuid.UUID
    project_name: str
    section_id: Optional[uuid.UUID] = None

    @property
    def label(self) -> str:
        """Display label, e.g. ``Website / Launch checklist``."""
        if self.type == TargetType.PROJECT:
            return self.project_name
        return f"{self.project_name} / {self.name}"


async def _load_project(session: AsyncSession, target_id: uuid.UUID) -> Optional[Target]:
    project = await session.get(Project, target_id)
    if not project:
        return None
    return Target(TargetType.PROJECT, project.id, project.name, project.id, project.name)


async def _load_section(session: AsyncSession, target_id: uuid.UUID) -> Optional[Target]:
    section = await session.get(Section, target_id)
    if not section:
        return None
    project = await session.get(Project, section.project_id)
    if not project:
        return None
    return Target(
        TargetType.SECTION, section.id, section.name, project.id, project.name, section_id=section.id
    )


async def _load_task(session: AsyncSession, target_id: uuid.UUID) -> Optional[Target]:
    task = await session.get(Task, target_id)
    if not task:
        return None
    project = await session.get(Project, task.project_id)
    if not project:
        return None
    return Target(
        TargetType.TASK, task.id, task.title, project.id, project.name, section_id=task.section_id
    )


_LOADERS: dict[TargetType, Callable[[AsyncSession, uuid.UUID], Awaitable[Optional[Target]]]] = {
    TargetType.PROJECT: _load_project,
    TargetType.SECTION: _load_section,
    TargetType.TASK: _load_task,
}


def parse_target_type(value: TargetType | str) -> TargetType:
    try:
        return TargetType(value)
    except ValueError:
        raise ValidationFailed(f"target_type must be one of PROJECT, SECTION or TASK (got {value!r})")


async def load_target(
    session: AsyncSession, target_type: TargetType | str, target_id: uuid.UUID
) -> Target:
    """Load a target with its owning project. Raises NotFound when either is missing."""
    kind = parse_target_type(target_type)
    target = await _LOADERS[kind](session, target_id)
    if target is None:
        raise NotFound(f"{kind.value.title()} not found")
    return target


async def owner_project_of(
    session: AsyncSession, target_type: TargetType | str, target_id: uuid.UUID
) -> uuid.UUID:
    """Id of the project that contains the target."""
    return (await load_target(session, target_type, target_id)).project_id


async def target_label(
    session: AsyncSession, target_type: TargetType | str, target_id: uuid.UUID
) -> str:
    """Best-effort display label; never raises for a vanished target."""
    try:
        return (await load_target(session, target_type, target_id)).label
    except NotFound:
        return f"Unknown {TargetType(target_type).value.lower()}"
