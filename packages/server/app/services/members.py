"""
Project membership (the legacy join table next to assignments).

The owner is never stored in ``project_members`` but is always listed first
as an implicit OWNER.
"""

from __future__ import annotations

import uuid
from typing import Sequence

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.config import Settings
from app.core.errors import Conflict, Forbidden, NotFound, ValidationFailed
from app.models.base import as_utc
from app.models.project import Project
from app.models.project_member import ProjectMember
from app.models.user import User
from app.services.access import require_permission, resolve_access
from app.services.activity import record_activity
from app.services.targets import Target
from app.services.users import display_name, get_users
from planwise_shared.schemas.common import ActivityAction, MemberRole, TargetType
from planwise_shared.schemas.projects import ProjectMemberAddResult, ProjectMemberRead

log = structlog.get_logger()


async def _get_project_or_404(session: AsyncSession, project_id: uuid.UUID) -> Project:
    project = await session.get(Project, project_id)
    if not project:
        raise NotFound("Project not found")
    return project


async def _require_member_manager(
    session: AsyncSession, acting_user_id: uuid.UUID, project_id: uuid.UUID
) -> None:
    access = await resolve_access(session, acting_user_id, project_id)
    if access.permissions.manage_members or access.member_role == MemberRole.OWNER.value:
        return
    raise Forbidden("You cannot manage members of this project")


async def list_members(
    session: AsyncSession, acting_user_id: uuid.UUID, project_id: uuid.UUID
) -> list[ProjectMemberRead]:
    project = await _get_project_or_404(session, project_id)
    await require_permission(session, acting_user_id, project_id, "view")

    owner = await session.get(User, project.user_id)
    members = [
        ProjectMemberRead(
            user_id=project.user_id,
            project_id=project.id,
            display_name=owner.display_name if owner else str(project.user_id),
            email=owner.email if owner else None,
            role=MemberRole.OWNER,
            added_at=as_utc(project.created_at),
            is_owner=True,
        )
    ]

    result = await session.execute(
        select(ProjectMember, User)
        .join(User, User.id == ProjectMember.user_id)
        .where(ProjectMember.project_id == project_id)
        .order_by(ProjectMember.added_at)
    )
    for membership, user in result.all():
        members.append(
            ProjectMemberRead(
                user_id=user.id,
                project_id=project_id,
                display_name=user.display_name,
                email=user.email,
                role=membership.role,
                added_by=membership.added_by,
                added_at=as_utc(membership.added_at),
            )
        )
    return members


async def add_members(
    session: AsyncSession,
    acting_user_id: uuid.UUID,
    project_id: uuid.UUID,
    user_ids: Sequence[uuid.UUID],
    role: MemberRole = MemberRole.MEMBER,
) -> ProjectMemberAddResult:
    """Add users as members. Users who already belong to the project are skipped."""
    project = await _get_project_or_404(session, project_id)
    await _require_member_manager(session, acting_user_id, project_id)

    wanted = list(dict.fromkeys(user_ids))
    if not wanted:
        raise ValidationFailed("At least one user id is required")
    users = await get_users(session, wanted)
    missing = [str(uid) for uid in wanted if uid not in users]
    if missing:
        raise NotFound(f"Users not found: {', '.join(missing)}")

    result = await session.execute(
        select(ProjectMember.user_id).where(
            ProjectMember.project_id == project_id,
            ProjectMember.user_id.in_(wanted),
        )
    )
    already = {row[0] for row in result.all()}
    already.add(project.user_id)
    to_add = [uid for uid in wanted if uid not in already]
    if not to_add:
        raise Conflict("All selected users are already members of this project")

    actor_name = await display_name(session, acting_user_id)
    for uid in to_add:
        session.add(
            ProjectMember(
                project_id=project_id,
                user_id=uid,
                role=MemberRole(role).value,
                added_by=acting_user_id,
            )
        )
        await record_activity(
            session,
            action=ActivityAction.MEMBER_ADDED,
            target_type=TargetType.PROJECT,
            target_id=project_id,
            project_id=project_id,
            actor_id=acting_user_id,
            actor_name=actor_name,
            target_label=project.name,
            new_value=users[uid].display_name,
            payload={"user_id": str(uid), "role": MemberRole(role).value},
        )
    await session.flush()
    log.info("members.added", project_id=str(project_id), count=len(to_add))
    return ProjectMemberAddResult(added=to_add, added_count=len(to_add))


async def remove_member(
    session: AsyncSession,
    acting_user_id: uuid.UUID,
    project_id: uuid.UUID,
    user_id: uuid.UUID,
) -> None:
    project = await _get_project_or_404(session, project_id)
    await _require_member_manager(session, acting_user_id, project_id)

    if user_id == project.user_id:
        raise ValidationFailed("The project owner cannot be removed")
    membership = await session.get(ProjectMember, (project_id, user_id))
    if not membership:
        raise NotFound("User is not a member of this project")

    await session.delete(membership)
    await record_activity(
        session,
        action=ActivityAction.MEMBER_REMOVED,
        target_type=TargetType.PROJECT,
        target_id=project_id,
        project_id=project_id,
        actor_id=acting_user_id,
        actor_name=await display_name(session, acting_user_id),
        target_label=project.name,
        old_value=await display_name(session, user_id),
        payload={"user_id": str(user_id)},
    )
    await session.flush()
    log.info("members.removed", project_id=str(project_id), user_id=str(user_id))


async def ensure_project_member(
    session: AsyncSession,
    target: Target,
    user_id: uuid.UUID,
    *,
    acting_user_id: uuid.UUID,
    settings: Settings,
) -> bool:
    """Give a task assignee a membership row if they have no standing in the project."""
    project = await session.get(Project, target.project_id)
    if project.user_id == user_id:
        return False
    if await session.get(ProjectMember, (target.project_id, user_id)):
        return False

    session.add(
        ProjectMember(
            project_id=target.project_id,
            user_id=user_id,
            role=settings.auto_member_role,
            added_by=acting_user_id,
        )
    )
    await record_activity(
        session,
        action=ActivityAction.MEMBER_ADDED,
        target_type=TargetType.PROJECT,
        target_id=target.project_id,
        project_id=target.project_id,
        actor_id=acting_user_id,
        actor_name=await display_name(session, acting_user_id),
        target_label=target.project_name,
        new_value=await display_name(session, user_id),
        payload={"user_id": str(user_id), "reason": "task_assignment"},
    )
    log.info("member.auto_added", project_id=str(target.project_id), user_id=str(user_id))
    return True
