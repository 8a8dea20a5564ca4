"""
Access resolver: folds ownership, membership and assignment facts for one
(user, project) pair into a single access level, a permission set and the
sections/tasks the user may see.

Precedence (first match wins):
    OWNER > TASK_ASSIGNED > SECTION_ASSIGNED > PROJECT_ASSIGNED > PROJECT_MEMBER

Assignment-based levels only count grants whose target belongs to the
queried project; an assignment elsewhere never leaks into this project.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Callable, Optional, Union

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.config import Settings, get_settings
from app.core.errors import Forbidden, NotFound
from app.models.assignments import Assignment
from app.models.project import Project, Section
from app.models.project_member import ProjectMember
from app.models.task import Task
from planwise_shared.schemas.access import (
    PERMISSION_NAMES,
    AccessibleProject,
    Permissions,
    ProjectAccess,
    VisibleContent,
)
from planwise_shared.schemas.common import (
    ACCESS_PRECEDENCE,
    AccessLevel,
    AssignmentStatus,
    MemberRole,
    TargetType,
)

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Facts
# ---------------------------------------------------------------------------


@dataclass
class _Facts:
    is_owner: bool = False
    member_role: Optional[str] = None
    project_role: Optional[str] = None
    section_ids: list[uuid.UUID] = field(default_factory=list)
    task_ids: list[uuid.UUID] = field(default_factory=list)
    collaborator_role: str = "COLLABORATOR"

    @property
    def is_collaborator(self) -> bool:
        return self.project_role == self.collaborator_role

    @property
    def can_write_as_member(self) -> bool:
        return self.member_role != MemberRole.VIEWER.value

    @property
    def is_member_owner(self) -> bool:
        return self.member_role == MemberRole.OWNER.value


async def _active_scoped_targets(
    session: AsyncSession,
    user_id: uuid.UUID,
    project_id: uuid.UUID,
    target_type: TargetType,
    model: type[Section] | type[Task],
) -> list[uuid.UUID]:
    """ACTIVE section/task grants of the user whose target lives in ``project_id``."""
    result = await session.execute(
        select(Assignment.target_id)
        .join(model, model.id == Assignment.target_id)
        .where(
            Assignment.target_type == target_type.value,
            Assignment.user_id == user_id,
            Assignment.status == AssignmentStatus.ACTIVE.value,
            model.project_id == project_id,
        )
        .order_by(Assignment.assigned_at)
    )
    return [row[0] for row in result.all()]


async def _collect_facts(
    session: AsyncSession, user_id: uuid.UUID, project: Project, settings: Settings
) -> _Facts:
    facts = _Facts(
        is_owner=project.user_id == user_id,
        collaborator_role=settings.collaborator_role,
    )
    facts.task_ids = await _active_scoped_targets(
        session, user_id, project.id, TargetType.TASK, Task
    )
    facts.section_ids = await _active_scoped_targets(
        session, user_id, project.id, TargetType.SECTION, Section
    )

    result = await session.execute(
        select(Assignment.role).where(
            Assignment.target_type == TargetType.PROJECT.value,
            Assignment.target_id == project.id,
            Assignment.user_id == user_id,
            Assignment.status == AssignmentStatus.ACTIVE.value,
        )
    )
    facts.project_role = result.scalars().first()

    membership = await session.get(ProjectMember, (project.id, user_id))
    facts.member_role = membership.role if membership else None
    return facts


LEVEL_MATCHERS: dict[AccessLevel, Callable[[_Facts], bool]] = {
    AccessLevel.OWNER: lambda f: f.is_owner,
    AccessLevel.TASK_ASSIGNED: lambda f: bool(f.task_ids),
    AccessLevel.SECTION_ASSIGNED: lambda f: bool(f.section_ids),
    AccessLevel.PROJECT_ASSIGNED: lambda f: f.project_role is not None,
    AccessLevel.PROJECT_MEMBER: lambda f: f.member_role is not None,
    AccessLevel.NO_ACCESS: lambda f: True,
}


def _level_for(facts: _Facts) -> AccessLevel:
    return next(level for level in ACCESS_PRECEDENCE if LEVEL_MATCHERS[level](facts))


# ---------------------------------------------------------------------------
# Permission matrix
# ---------------------------------------------------------------------------

Rule = Union[bool, Callable[[_Facts], bool]]

_VIEW_ONLY: dict[str, Rule] = {"view": True}

PERMISSION_MATRIX: dict[AccessLevel, dict[str, Rule]] = {
    AccessLevel.OWNER: {name: True for name in PERMISSION_NAMES},
    AccessLevel.PROJECT_MEMBER: {
        "view": True,
        "edit": lambda f: f.can_write_as_member,
        "view_all_sections": True,
        "view_all_tasks": True,
        "create_task": lambda f: f.can_write_as_member,
        "create_section": lambda f: f.can_write_as_member,
        "assign_tasks": lambda f: f.is_member_owner,
        "view_settings": True,
    },
    AccessLevel.PROJECT_ASSIGNED: {
        "view": True,
        "edit": lambda f: f.is_collaborator,
        "view_all_sections": True,
        "view_all_tasks": True,
        "create_task": lambda f: f.is_collaborator,
        "create_section": lambda f: f.is_collaborator,
    },
    AccessLevel.SECTION_ASSIGNED: _VIEW_ONLY,
    AccessLevel.TASK_ASSIGNED: _VIEW_ONLY,
    AccessLevel.NO_ACCESS: {},
}


def permissions_for(level: AccessLevel, facts: _Facts) -> Permissions:
    rules = PERMISSION_MATRIX[level]
    granted = {}
    for name in PERMISSION_NAMES:
        rule = rules.get(name, False)
        granted[name] = rule(facts) if callable(rule) else bool(rule)
    return Permissions(**granted)


# ---------------------------------------------------------------------------
# Visible content
# ---------------------------------------------------------------------------


async def _visible_content(
    session: AsyncSession, project_id: uuid.UUID, level: AccessLevel, facts: _Facts
) -> VisibleContent:
    if level in (AccessLevel.OWNER, AccessLevel.PROJECT_MEMBER, AccessLevel.PROJECT_ASSIGNED):
        sections = await session.execute(
            select(Section.id).where(Section.project_id == project_id).order_by(Section.created_at)
        )
        tasks = await session.execute(
            select(Task.id).where(Task.project_id == project_id).order_by(Task.created_at)
        )
        return VisibleContent(
            section_ids=[row[0] for row in sections.all()],
            task_ids=[row[0] for row in tasks.all()],
        )

    if level == AccessLevel.SECTION_ASSIGNED:
        tasks = await session.execute(
            select(Task.id)
            .where(Task.project_id == project_id, Task.section_id.in_(facts.section_ids))
            .order_by(Task.created_at)
        )
        return VisibleContent(
            section_ids=list(facts.section_ids),
            task_ids=[row[0] for row in tasks.all()],
        )

    if level == AccessLevel.TASK_ASSIGNED:
        sections = await session.execute(
            select(Task.section_id)
            .where(Task.id.in_(facts.task_ids), Task.section_id.is_not(None))
            .distinct()
        )
        return VisibleContent(
            section_ids=[row[0] for row in sections.all()],
            task_ids=list(facts.task_ids),
        )

    return VisibleContent()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def resolve_access(
    session: AsyncSession,
    user_id: uuid.UUID,
    project_id: uuid.UUID,
    settings: Optional[Settings] = None,
) -> ProjectAccess:
    """Resolve what ``user_id`` may do on ``project_id``. Unknown projects yield NO_ACCESS."""
    settings = settings or get_settings()
    project = await session.get(Project, project_id)
    if not project:
        return ProjectAccess(project_id=project_id, user_id=user_id)

    facts = await _collect_facts(session, user_id, project, settings)
    level = _level_for(facts)
    if level == AccessLevel.NO_ACCESS:
        return ProjectAccess(project_id=project_id, user_id=user_id)

    access = ProjectAccess(
        project_id=project_id,
        user_id=user_id,
        access_level=level,
        is_project_owner=facts.is_owner,
        member_role=facts.member_role,
        project_role=facts.project_role,
        section_assignments=facts.section_ids,
        task_assignments=facts.task_ids,
        permissions=permissions_for(level, facts),
        visible_content=await _visible_content(session, project_id, level, facts),
    )
    log.debug(
        "access.resolved",
        project_id=str(project_id),
        user_id=str(user_id),
        access_level=level.value,
    )
    return access


async def has_project_access(
    session: AsyncSession, user_id: uuid.UUID, project_id: uuid.UUID
) -> bool:
    return (await resolve_access(session, user_id, project_id)).has_access


async def require_permission(
    session: AsyncSession,
    user_id: uuid.UUID,
    project_id: uuid.UUID,
    permission: str,
    settings: Optional[Settings] = None,
) -> ProjectAccess:
    """Resolve access and fail unless ``permission`` is granted."""
    if permission not in PERMISSION_NAMES:
        raise ValueError(f"Unknown permission: {permission}")
    project = await session.get(Project, project_id)
    if not project:
        raise NotFound("Project not found")
    access = await resolve_access(session, user_id, project_id, settings)
    if not getattr(access.permissions, permission):
        log.info(
            "access.denied",
            project_id=str(project_id),
            user_id=str(user_id),
            permission=permission,
            access_level=access.access_level.value,
        )
        raise Forbidden(f"Missing permission '{permission}' on this project")
    return access


async def list_accessible_projects(
    session: AsyncSession, user_id: uuid.UUID, settings: Optional[Settings] = None
) -> list[AccessibleProject]:
    """Every project the user owns, belongs to, or holds an active grant in."""
    active = (
        Assignment.user_id == user_id,
        Assignment.status == AssignmentStatus.ACTIVE.value,
    )
    owned = select(Project.id).where(Project.user_id == user_id)
    member_of = select(ProjectMember.project_id).where(ProjectMember.user_id == user_id)
    project_grants = select(Assignment.target_id).where(
        Assignment.target_type == TargetType.PROJECT.value, *active
    )
    section_grants = (
        select(Section.project_id)
        .join(Assignment, Assignment.target_id == Section.id)
        .where(Assignment.target_type == TargetType.SECTION.value, *active)
    )
    task_grants = (
        select(Task.project_id)
        .join(Assignment, Assignment.target_id == Task.id)
        .where(Assignment.target_type == TargetType.TASK.value, *active)
    )

    project_ids: set[uuid.UUID] = set()
    for stmt in (owned, member_of, project_grants, section_grants, task_grants):
        result = await session.execute(stmt)
        project_ids.update(row[0] for row in result.all())
    if not project_ids:
        return []

    result = await session.execute(
        select(Project).where(Project.id.in_(project_ids)).order_by(Project.name)
    )
    accessible = []
    for project in result.scalars().all():
        access = await resolve_access(session, user_id, project.id, settings)
        if access.has_access:
            accessible.append(
                AccessibleProject(
                    id=project.id, name=project.name, owner_id=project.user_id, access=access
                )
            )
    return accessible
