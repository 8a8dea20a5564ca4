"""
Assignment endpoints: list, batch-create and remove grants on a target.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import get_current_user_id
from app.core.config import Settings, get_settings
from app.core.database import get_session
from app.core.dispatch import AfterCommit, get_after_commit
from app.services import assignments as assignment_service
from planwise_shared.schemas.assignments import (
    AssignmentBatchResult,
    AssignmentCreate,
    AssignmentList,
)
from planwise_shared.schemas.common import AssignmentKind, TargetType

router = APIRouter()


@router.get("", response_model=AssignmentList)
async def list_assignments(
    target_type: TargetType = Query(...),
    target_id: uuid.UUID = Query(...),
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    result = await assignment_service.list_assignments(session, user_id, target_type, target_id)
    await session.commit()
    return result


@router.post("", response_model=AssignmentBatchResult)
async def create_assignments(
    body: AssignmentCreate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
    after_commit: AfterCommit = Depends(get_after_commit),
):
    """Assign users and invite emails. Candidates succeed or fail independently."""
    result = await assignment_service.create_assignments(
        session,
        user_id,
        target_type=body.target_type,
        target_id=body.target_id,
        user_ids=body.user_ids,
        emails=body.emails,
        message=body.message,
        role=body.role,
        settings=settings,
        after_commit=after_commit,
    )
    await session.commit()
    await after_commit.run()
    return result


@router.delete("/{assignment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_assignment(
    assignment_id: uuid.UUID,
    kind: AssignmentKind = Query(...),
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    await assignment_service.remove_assignment(session, user_id, assignment_id, kind)
    await session.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
