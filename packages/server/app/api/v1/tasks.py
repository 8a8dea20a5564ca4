"""
Task assignee endpoints (one active assignee per task).
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import get_current_user_id
from app.core.config import Settings, get_settings
from app.core.database import get_session
from app.core.dispatch import AfterCommit, get_after_commit
from app.services import task_assignee
from planwise_shared.schemas.assignments import TaskAssign, TaskAssignmentRead

router = APIRouter()


@router.get("/{task_id}/assignee", response_model=TaskAssignmentRead)
async def get_assignee(
    task_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    result = await task_assignee.get_task_assignment(session, task_id, user_id)
    await session.commit()
    return result


@router.post("/{task_id}/assignee", response_model=TaskAssignmentRead)
async def assign(
    task_id: uuid.UUID,
    body: TaskAssign,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
    after_commit: AfterCommit = Depends(get_after_commit),
):
    """Assign the task, replacing any current assignee."""
    result = await task_assignee.assign_task(
        session, task_id, body.assignee_id, user_id, settings=settings, after_commit=after_commit
    )
    await session.commit()
    await after_commit.run()
    return result


@router.delete("/{task_id}/assignee", status_code=status.HTTP_204_NO_CONTENT)
async def unassign(
    task_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    await task_assignee.unassign_task(session, task_id, user_id)
    await session.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
