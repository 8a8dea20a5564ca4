"""
Single-assignee enforcement for tasks.

A task has at most one active assignee. Assigning replaces whoever held the
task (delete-then-insert inside the caller's transaction); unassigning clears
every user grant and cancels pending invitations for the task.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.config import Settings, get_settings
from app.core.dispatch import AfterCommit
from app.core.errors import Conflict
from app.integrations.notify import publish_notification
from app.models.assignments import Assignment
from app.services.access import require_permission
from app.services.activity import record_activity
from app.services.assignments import (
    ACTIVE,
    PENDING,
    clear_task_grants,
    expire_due,
    to_read,
)
from app.services.members import ensure_project_member
from app.services.targets import load_target
from app.services.users import display_name, get_user_or_404
from planwise_shared.schemas.assignments import TaskAssignmentRead
from planwise_shared.schemas.common import ActivityAction, TargetType

log = structlog.get_logger()


async def _current_rows(session: AsyncSession, task_id: uuid.UUID) -> list[Assignment]:
    result = await session.execute(
        select(Assignment)
        .where(
            Assignment.target_type == TargetType.TASK.value,
            Assignment.target_id == task_id,
            Assignment.status.in_([ACTIVE, PENDING]),
        )
        .order_by(Assignment.assigned_at)
    )
    return list(result.scalars().all())


async def assign_task(
    session: AsyncSession,
    task_id: uuid.UUID,
    assignee_id: uuid.UUID,
    acting_user_id: uuid.UUID,
    *,
    settings: Optional[Settings] = None,
    after_commit: Optional[AfterCommit] = None,
) -> TaskAssignmentRead:
    """Make ``assignee_id`` the only assignee of the task."""
    settings = settings or get_settings()
    target = await load_target(session, TargetType.TASK, task_id)
    await require_permission(session, acting_user_id, target.project_id, "assign_tasks", settings)
    assignee = await get_user_or_404(session, assignee_id)

    for row in await _current_rows(session, task_id):
        if row.status == ACTIVE and row.user_id == assignee_id:
            log.info("task.assign_unchanged", task_id=str(task_id), user_id=str(assignee_id))
            return TaskAssignmentRead(task_id=task_id, assignment=await to_read(session, row))

    previous = await clear_task_grants(session, task_id)
    row = Assignment(
        target_type=TargetType.TASK.value,
        target_id=task_id,
        user_id=assignee_id,
        assigned_by=acting_user_id,
        role=settings.default_scoped_assignment_role,
        status=ACTIVE,
    )
    session.add(row)
    try:
        await session.flush()
    except IntegrityError:
        log.info("task.assign_conflict", task_id=str(task_id), user_id=str(assignee_id))
        raise Conflict("The task was assigned concurrently; try again")
    await ensure_project_member(
        session, target, assignee_id, acting_user_id=acting_user_id, settings=settings
    )

    actor_name = await display_name(session, acting_user_id)
    await record_activity(
        session,
        action=ActivityAction.REASSIGNED if previous else ActivityAction.ASSIGNED,
        target_type=TargetType.TASK,
        target_id=task_id,
        project_id=target.project_id,
        actor_id=acting_user_id,
        actor_name=actor_name,
        target_label=target.label,
        old_value=await display_name(session, previous),
        new_value=assignee.display_name,
        payload={"assignment_id": str(row.id), "user_id": str(assignee_id)},
    )
    await session.flush()
    log.info(
        "task.assigned",
        task_id=str(task_id),
        user_id=str(assignee_id),
        previous_user_id=str(previous) if previous else None,
    )

    if after_commit is not None:
        after_commit.add(
            "notify.task_assigned",
            publish_notification,
            assignee_id,
            "task.assigned",
            {
                "task_id": str(task_id),
                "project_id": str(target.project_id),
                "assigned_by": str(acting_user_id),
            },
            settings,
        )
    return TaskAssignmentRead(task_id=task_id, assignment=await to_read(session, row))


async def unassign_task(
    session: AsyncSession,
    task_id: uuid.UUID,
    acting_user_id: uuid.UUID,
) -> None:
    """Remove the task's assignee and cancel any pending invitation for it."""
    target = await load_target(session, TargetType.TASK, task_id)
    await require_permission(session, acting_user_id, target.project_id, "assign_tasks")

    previous = await clear_task_grants(session, task_id)
    if previous is None:
        return

    await record_activity(
        session,
        action=ActivityAction.UNASSIGNED,
        target_type=TargetType.TASK,
        target_id=task_id,
        project_id=target.project_id,
        actor_id=acting_user_id,
        actor_name=await display_name(session, acting_user_id),
        target_label=target.label,
        old_value=await display_name(session, previous),
        payload={"user_id": str(previous)},
    )
    await session.flush()
    log.info("task.unassigned", task_id=str(task_id), previous_user_id=str(previous))


async def get_task_assignment(
    session: AsyncSession,
    task_id: uuid.UUID,
    acting_user_id: uuid.UUID,
) -> TaskAssignmentRead:
    """The task's active assignee, else its pending invitation, else nothing."""
    target = await load_target(session, TargetType.TASK, task_id)
    await require_permission(session, acting_user_id, target.project_id, "view")

    rows = await _current_rows(session, task_id)
    await expire_due(session, rows)
    current = next((r for r in rows if r.status == ACTIVE), None)
    if current is None:
        current = next((r for r in rows if r.status == PENDING), None)
    return TaskAssignmentRead(
        task_id=task_id,
        assignment=await to_read(session, current) if current else None,
    )
