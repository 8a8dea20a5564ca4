"""
Project endpoints: resolved access, accessible projects, membership.
"""

from __future__ import annotations

import uuid
from typing import List

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import get_current_user_id
from app.core.database import get_session
from app.services import access as access_service
from app.services import members as members_service
from planwise_shared.schemas.access import AccessibleProject, ProjectAccess
from planwise_shared.schemas.projects import (
    ProjectMemberAdd,
    ProjectMemberAddResult,
    ProjectMemberRead,
)

router = APIRouter()


# ---------------------------------------------------------------------------
# Access
# ---------------------------------------------------------------------------


@router.get("/accessible", response_model=List[AccessibleProject])
async def list_accessible_projects(
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    """Every project the caller can see, with the resolved access for each."""
    return await access_service.list_accessible_projects(session, user_id)


@router.get("/{project_id}/access", response_model=ProjectAccess)
async def get_project_access(
    project_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    """The caller's access level, permissions and visible content on a project."""
    return await access_service.resolve_access(session, user_id, project_id)


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------


@router.get("/{project_id}/members", response_model=List[ProjectMemberRead])
async def list_members(
    project_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    return await members_service.list_members(session, user_id, project_id)


@router.post(
    "/{project_id}/members",
    response_model=ProjectMemberAddResult,
    status_code=status.HTTP_201_CREATED,
)
async def add_members(
    project_id: uuid.UUID,
    body: ProjectMemberAdd,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    result = await members_service.add_members(
        session, user_id, project_id, body.user_ids, role=body.role
    )
    await session.commit()
    return result


@router.delete("/{project_id}/members/{member_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_member(
    project_id: uuid.UUID,
    member_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    await members_service.remove_member(session, user_id, project_id, member_id)
    await session.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
