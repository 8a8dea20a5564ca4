"""
Invitation lifecycle: email-addressed assignments waiting for an account.

    PENDING --accept--> ACTIVE
    PENDING --expires_at passed (checked on read)--> EXPIRED
    PENDING --reject by invitee or assigner--> CANCELLED

Accepting binds the invitation row to the accepting user, so the accepted
row itself is the grant. ``invited_email`` keeps the address it was sent to.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings, get_settings
from app.core.dispatch import AfterCommit
from app.core.errors import Conflict, Expired, Forbidden, NotFound
from app.integrations import mailer
from app.integrations.notify import publish_notification
from app.models.assignments import Assignment
from app.models.base import as_utc, utcnow
from app.services.activity import record_activity
from app.services.assignments import (
    ACTIVE,
    PENDING,
    clear_task_grants,
    expire_and_fail,
    expire_if_due,
    find_active_user_grant,
    to_read,
    transition,
)
from app.services.members import ensure_project_member
from app.services.targets import load_target, target_label
from app.services.users import emails_match, get_user_or_404, get_users, summarize
from planwise_shared.schemas.assignments import (
    AssignmentRead,
    InvitationAcceptResult,
    InvitationRead,
)
from planwise_shared.schemas.common import ActivityAction, AssignmentStatus, TargetType

log = structlog.get_logger()


async def _get_invitation_row(session: AsyncSession, invitation_id: uuid.UUID) -> Assignment:
    row = await session.get(Assignment, invitation_id)
    if not row or not row.is_invitation:
        raise NotFound("Invitation not found")
    return row


async def _describe_target(
    session: AsyncSession, row: Assignment
) -> tuple[Optional[uuid.UUID], Optional[str], str]:
    """(project id, project name, label) of the row's target; tolerates a deleted target."""
    try:
        target = await load_target(session, row.target_type, row.target_id)
    except NotFound:
        return None, None, await target_label(session, row.target_type, row.target_id)
    return target.project_id, target.project_name, target.label


async def get_invitation(session: AsyncSession, invitation_id: uuid.UUID) -> InvitationRead:
    """Invitation details for the accept/decline screen. Lapsed invitations read as EXPIRED."""
    row = await _get_invitation_row(session, invitation_id)
    if expire_if_due(row):
        await session.flush()

    _, project_name, name = await _describe_target(session, row)

    users = await get_users(session, [row.assigned_by])
    return InvitationRead(
        id=row.id,
        target_type=row.target_type,
        target_id=row.target_id,
        target_name=name,
        project_name=project_name,
        email=row.email or row.invited_email,
        role=row.role,
        status=row.status,
        assigned_by=row.assigned_by,
        assigner=summarize(users.get(row.assigned_by)),
        assigned_at=as_utc(row.assigned_at),
        expires_at=as_utc(row.expires_at),
        message=row.message,
    )


async def accept_invitation(
    session: AsyncSession,
    invitation_id: uuid.UUID,
    user_id: uuid.UUID,
    *,
    settings: Optional[Settings] = None,
    after_commit: Optional[AfterCommit] = None,
) -> InvitationAcceptResult:
    """Turn a pending invitation into an active grant for ``user_id``.

    Retrying an accept that already went through returns the existing grant
    with ``created=False``. A lapsed invitation is stored as EXPIRED (this
    commits) and the call fails with ``Expired``.
    """
    settings = settings or get_settings()
    row = await _get_invitation_row(session, invitation_id)
    user = await get_user_or_404(session, user_id)

    if row.status == ACTIVE and row.user_id == user_id:
        read = await to_read(session, row)
        log.info("invitation.accept_repeated", invitation_id=str(invitation_id))
        return InvitationAcceptResult(invitation=read, grant=read, created=False)

    if expire_if_due(row):
        await expire_and_fail(session)
    if row.status == AssignmentStatus.EXPIRED.value:
        raise Expired("This invitation has expired")
    if row.status != PENDING:
        raise Conflict(f"Invitation is already {row.status.lower()}")
    if not emails_match(user.email, row.email):
        raise Forbidden("This invitation was sent to a different email address")

    target = await load_target(session, row.target_type, row.target_id)
    inviter_id = row.assigned_by
    folded = False
    if target.type == TargetType.TASK:
        await clear_task_grants(session, target.id, keep_id=row.id)
        await ensure_project_member(
            session, target, user_id, acting_user_id=inviter_id, settings=settings
        )
    else:
        existing = await find_active_user_grant(session, target.type, target.id, user_id)
        if existing is not None:
            # The standing grant's role and assigner survive the fold.
            row.role = existing.role
            row.assigned_by = existing.assigned_by
            await session.delete(existing)
            await session.flush()
            folded = True

    invited_email = row.email
    row.user_id = user_id
    row.email = None
    row.invited_email = invited_email
    transition(row, AssignmentStatus.ACTIVE)
    row.accepted_at = utcnow()
    await session.flush()

    await record_activity(
        session,
        action=ActivityAction.INVITATION_ACCEPTED,
        target_type=target.type,
        target_id=target.id,
        project_id=target.project_id,
        actor_id=user_id,
        actor_name=user.display_name,
        target_label=target.label,
        new_value=user.display_name,
        payload={"assignment_id": str(row.id), "email": invited_email, "folded": folded},
    )
    await session.flush()

    read = await to_read(session, row)
    log.info(
        "invitation.accepted",
        invitation_id=str(invitation_id),
        user_id=str(user_id),
        target_type=target.type.value,
        folded=folded,
    )

    inviter = (await get_users(session, [inviter_id])).get(inviter_id)
    if after_commit is not None and inviter is not None:
        after_commit.add(
            "mail.invitation_accepted",
            mailer.deliver,
            mailer.acceptance_email(
                to=inviter.email,
                invitee_name=user.display_name,
                target_label=target.label,
            ),
            settings,
        )
        after_commit.add(
            "notify.invitation_accepted",
            publish_notification,
            inviter_id,
            "invitation.accepted",
            {"assignment_id": str(row.id), "user_id": str(user_id)},
            settings,
        )
    return InvitationAcceptResult(invitation=read, grant=read, created=True)


async def reject_invitation(
    session: AsyncSession,
    invitation_id: uuid.UUID,
    user_id: uuid.UUID,
) -> AssignmentRead:
    """Decline (invitee) or withdraw (original assigner) a pending invitation."""
    row = await _get_invitation_row(session, invitation_id)
    user = await get_user_or_404(session, user_id)

    is_invitee = emails_match(user.email, row.email or row.invited_email)
    if not is_invitee and row.assigned_by != user_id:
        raise Forbidden("Only the invitee or the person who sent the invitation can reject it")

    if expire_if_due(row):
        await expire_and_fail(session)
    if row.status != PENDING:
        raise Conflict(f"Invitation is already {row.status.lower()}")

    transition(row, AssignmentStatus.CANCELLED)
    project_id, _, label = await _describe_target(session, row)
    await record_activity(
        session,
        action=ActivityAction.INVITATION_REJECTED,
        target_type=row.target_type,
        target_id=row.target_id,
        project_id=project_id,
        actor_id=user_id,
        actor_name=user.display_name,
        target_label=label,
        old_value=row.email,
        payload={"assignment_id": str(row.id), "by_invitee": is_invitee},
    )
    await session.flush()
    log.info("invitation.rejected", invitation_id=str(invitation_id), by_invitee=is_invitee)
    return await to_read(session, row)
