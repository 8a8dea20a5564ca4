"""
Invitation endpoints: view, accept and reject email invitations.

Viewing needs no session so the invite link works before sign-up; accepting
and rejecting do.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import get_current_user_id
from app.core.config import Settings, get_settings
from app.core.database import get_session
from app.core.dispatch import AfterCommit, get_after_commit
from app.services import invitations as invitation_service
from planwise_shared.schemas.assignments import (
    AssignmentRead,
    InvitationAcceptResult,
    InvitationRead,
)

router = APIRouter()


@router.get("/{invitation_id}", response_model=InvitationRead)
async def get_invitation(
    invitation_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
):
    result = await invitation_service.get_invitation(session, invitation_id)
    await session.commit()
    return result


@router.post("/{invitation_id}/accept", response_model=InvitationAcceptResult)
async def accept_invitation(
    invitation_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
    after_commit: AfterCommit = Depends(get_after_commit),
):
    result = await invitation_service.accept_invitation(
        session, invitation_id, user_id, settings=settings, after_commit=after_commit
    )
    await session.commit()
    await after_commit.run()
    return result


@router.post("/{invitation_id}/reject", response_model=AssignmentRead)
async def reject_invitation(
    invitation_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    result = await invitation_service.reject_invitation(session, invitation_id, user_id)
    await session.commit()
    return result
