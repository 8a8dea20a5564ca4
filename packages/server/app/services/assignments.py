"""
Assignment service layer: the unified grant store.

Handles:
- Batch creation for known users (ACTIVE) and email addresses (PENDING)
- Per-candidate transactions with partial success
- Lazy expiry of pending invitations on read
- Task replacement (one active assignee per task)
- Listing and removal of assignments
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from typing import Iterable, Optional, Sequence

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.config import Settings, get_settings
from app.core.dispatch import AfterCommit
from app.core.errors import Conflict, Expired, Forbidden, NotFound, ServiceError, ValidationFailed
from app.integrations import mailer
from app.integrations.notify import publish_notification
from app.models.assignments import Assignment
from app.models.base import as_utc, utcnow
from app.models.user import User
from app.services.access import require_permission, resolve_access
from app.services.activity import record_activity
from app.services.members import ensure_project_member
from app.services.targets import Target, load_target, parse_target_type
from app.services.users import (
    display_name,
    find_user_by_email,
    get_user_or_404,
    get_users,
    normalize_email,
    summarize,
)
from planwise_shared.schemas.assignments import (
    AssignmentBatchResult,
    AssignmentList,
    AssignmentRead,
    CandidateError,
)
from planwise_shared.schemas.common import (
    ASSIGNMENT_TRANSITIONS,
    ActivityAction,
    AssignmentKind,
    AssignmentStatus,
    TargetType,
)

log = structlog.get_logger()

ACTIVE = AssignmentStatus.ACTIVE.value
PENDING = AssignmentStatus.PENDING.value


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _read(row: Assignment, users: dict[uuid.UUID, User]) -> AssignmentRead:
    return AssignmentRead(
        id=row.id,
        target_type=row.target_type,
        target_id=row.target_id,
        user_id=row.user_id,
        email=row.email,
        invited_email=row.invited_email,
        assigned_by=row.assigned_by,
        role=row.role,
        status=row.status,
        assigned_at=as_utc(row.assigned_at),
        expires_at=as_utc(row.expires_at),
        accepted_at=as_utc(row.accepted_at),
        message=row.message,
        user=summarize(users.get(row.user_id)) if row.user_id else None,
        assigner=summarize(users.get(row.assigned_by)),
    )


async def to_read(session: AsyncSession, row: Assignment) -> AssignmentRead:
    """Convert an Assignment row to an AssignmentRead with user summaries."""
    users = await get_users(session, [row.user_id, row.assigned_by])
    return _read(row, users)


async def to_read_many(session: AsyncSession, rows: Sequence[Assignment]) -> list[AssignmentRead]:
    ids: set[Optional[uuid.UUID]] = set()
    for row in rows:
        ids.update((row.user_id, row.assigned_by))
    users = await get_users(session, ids)
    return [_read(row, users) for row in rows]


def default_role(target_type: TargetType, settings: Settings) -> str:
    if target_type == TargetType.PROJECT:
        return settings.default_project_assignment_role
    return settings.default_scoped_assignment_role


def transition(row: Assignment, to_status: AssignmentStatus) -> None:
    """Move a row to ``to_status``. Raises Conflict when the move is not allowed."""
    current = AssignmentStatus(row.status)
    allowed = ASSIGNMENT_TRANSITIONS.get(current, [])
    if to_status not in allowed:
        raise Conflict(
            f"Cannot move assignment from '{current.value}' to '{to_status.value}'"
        )
    row.status = to_status.value


def expire_if_due(row: Assignment, now: Optional[datetime] = None) -> bool:
    """Flip a lapsed PENDING row to EXPIRED in memory. Returns True when it flipped."""
    if row.status != PENDING or row.expires_at is None:
        return False
    now = now or utcnow()
    if as_utc(row.expires_at) >= now:
        return False
    transition(row, AssignmentStatus.EXPIRED)
    log.info("invitation.expired", assignment_id=str(row.id), email=row.email)
    return True


async def expire_and_fail(session: AsyncSession) -> None:
    """Persist an EXPIRED flip before refusing the request."""
    await session.commit()
    raise Expired("This invitation has expired")


async def expire_due(session: AsyncSession, rows: Iterable[Assignment]) -> int:
    now = utcnow()
    flipped = sum(1 for row in rows if expire_if_due(row, now))
    if flipped:
        await session.flush()
    return flipped


async def get_assignment_or_404(session: AsyncSession, assignment_id: uuid.UUID) -> Assignment:
    row = await session.get(Assignment, assignment_id)
    if not row:
        raise NotFound("Assignment not found")
    return row


async def find_active_user_grant(
    session: AsyncSession, target_type: TargetType | str, target_id: uuid.UUID, user_id: uuid.UUID
) -> Optional[Assignment]:
    result = await session.execute(
        select(Assignment).where(
            Assignment.target_type == TargetType(target_type).value,
            Assignment.target_id == target_id,
            Assignment.user_id == user_id,
            Assignment.status == ACTIVE,
        )
    )
    return result.scalars().first()


async def find_pending_invitation(
    session: AsyncSession, target_type: TargetType | str, target_id: uuid.UUID, email: str
) -> Optional[Assignment]:
    result = await session.execute(
        select(Assignment).where(
            Assignment.target_type == TargetType(target_type).value,
            Assignment.target_id == target_id,
            Assignment.email == email,
            Assignment.status == PENDING,
        )
    )
    return result.scalars().first()


async def clear_task_grants(
    session: AsyncSession, task_id: uuid.UUID, *, keep_id: Optional[uuid.UUID] = None
) -> Optional[uuid.UUID]:
    """Remove every grant on a task except ``keep_id``.

    User rows are deleted, pending email rows are cancelled. Flushes before
    returning so a following insert or status flip cannot collide with the
    single-active-assignee index. Returns the previous active assignee, if any.
    """
    result = await session.execute(
        select(Assignment).where(
            Assignment.target_type == TargetType.TASK.value,
            Assignment.target_id == task_id,
        )
    )
    previous: Optional[uuid.UUID] = None
    for row in result.scalars().all():
        if row.id == keep_id:
            continue
        if row.user_id is not None:
            if row.status == ACTIVE:
                previous = row.user_id
            await session.delete(row)
        elif row.status == PENDING:
            transition(row, AssignmentStatus.CANCELLED)
    await session.flush()
    return previous


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


async def _assign_user(
    session: AsyncSession,
    target: Target,
    user_id: uuid.UUID,
    *,
    acting_user_id: uuid.UUID,
    actor_name: Optional[str],
    label: str,
    role: str,
    message: Optional[str],
    settings: Settings,
) -> Assignment:
    user = await get_user_or_404(session, user_id)
    if await find_active_user_grant(session, target.type, target.id, user_id):
        raise Conflict(f"{user.display_name} is already assigned to this {target.type.value.lower()}")

    previous = None
    if target.type == TargetType.TASK:
        previous = await clear_task_grants(session, target.id)

    row = Assignment(
        target_type=target.type.value,
        target_id=target.id,
        user_id=user_id,
        assigned_by=acting_user_id,
        role=role,
        status=ACTIVE,
        message=message,
    )
    session.add(row)
    await session.flush()
    if target.type == TargetType.TASK:
        await ensure_project_member(
            session, target, user_id, acting_user_id=acting_user_id, settings=settings
        )

    action = ActivityAction.REASSIGNED if previous else ActivityAction.ASSIGNED
    await record_activity(
        session,
        action=action,
        target_type=target.type,
        target_id=target.id,
        project_id=target.project_id,
        actor_id=acting_user_id,
        actor_name=actor_name,
        target_label=label,
        old_value=await display_name(session, previous),
        new_value=user.display_name,
        payload={"assignment_id": str(row.id), "user_id": str(user_id)},
    )
    await session.flush()
    return row


async def _invite_email(
    session: AsyncSession,
    target: Target,
    raw_email: str,
    *,
    acting_user_id: uuid.UUID,
    actor_name: Optional[str],
    label: str,
    role: str,
    message: Optional[str],
    settings: Settings,
) -> Assignment:
    email = normalize_email(raw_email)
    if await find_user_by_email(session, email):
        raise Conflict(f"{email} already has an account; assign the user instead")

    existing = await find_pending_invitation(session, target.type, target.id, email)
    if existing is not None:
        if not expire_if_due(existing):
            raise Conflict(f"{email} already has a pending invitation")
        await session.flush()

    previous = None
    if target.type == TargetType.TASK:
        previous = await clear_task_grants(session, target.id)

    row = Assignment(
        target_type=target.type.value,
        target_id=target.id,
        email=email,
        invited_email=email,
        assigned_by=acting_user_id,
        role=role,
        status=PENDING,
        message=message,
        expires_at=utcnow() + timedelta(days=settings.invitation_ttl_days),
    )
    session.add(row)
    await session.flush()

    if target.type == TargetType.TASK:
        action = ActivityAction.REASSIGNED if previous else ActivityAction.ASSIGNED
    else:
        action = ActivityAction.INVITED
    await record_activity(
        session,
        action=action,
        target_type=target.type,
        target_id=target.id,
        project_id=target.project_id,
        actor_id=acting_user_id,
        actor_name=actor_name,
        target_label=label,
        old_value=await display_name(session, previous),
        new_value=email,
        payload={"assignment_id": str(row.id), "email": email},
    )
    await session.flush()
    return row


def _dedupe(values: Iterable) -> list:
    seen = set()
    out = []
    for value in values:
        key = value.strip().lower() if isinstance(value, str) else value
        if key in seen:
            continue
        seen.add(key)
        out.append(value)
    return out


async def create_assignments(
    session: AsyncSession,
    acting_user_id: uuid.UUID,
    *,
    target_type: TargetType | str,
    target_id: uuid.UUID,
    user_ids: Sequence[uuid.UUID] = (),
    emails: Sequence[str] = (),
    message: Optional[str] = None,
    role: Optional[str] = None,
    settings: Optional[Settings] = None,
    after_commit: Optional[AfterCommit] = None,
) -> AssignmentBatchResult:
    """Assign a target to users and/or invite email addresses.

    Request-level problems (bad target type, no candidates, several
    candidates for a task, missing target, missing ``assign_tasks``) raise.
    Each candidate is then committed on its own; a failing candidate is
    rolled back and reported in ``errors`` while the rest go through.
    Invitation emails and assignment notifications are queued on
    ``after_commit`` only once their candidate has committed.
    """
    settings = settings or get_settings()
    kind = parse_target_type(target_type)
    user_ids = _dedupe(user_ids)
    emails = _dedupe(emails)

    if not user_ids and not emails:
        raise ValidationFailed("At least one user id or email is required")
    if kind == TargetType.TASK and len(user_ids) + len(emails) > 1:
        raise ValidationFailed("A task can only be assigned to one person")

    target = await load_target(session, kind, target_id)
    await require_permission(session, acting_user_id, target.project_id, "assign_tasks", settings)

    role = role or default_role(kind, settings)
    actor_name = await display_name(session, acting_user_id)
    label = target.label
    project_id = target.project_id

    result = AssignmentBatchResult()
    candidates = [(AssignmentKind.USER, uid) for uid in user_ids]
    candidates += [(AssignmentKind.EMAIL, email) for email in emails]

    for candidate_kind, candidate in candidates:
        try:
            if candidate_kind == AssignmentKind.USER:
                row = await _assign_user(
                    session, target, candidate,
                    acting_user_id=acting_user_id, actor_name=actor_name,
                    label=label, role=role, message=message, settings=settings,
                )
            else:
                row = await _invite_email(
                    session, target, candidate,
                    acting_user_id=acting_user_id, actor_name=actor_name,
                    label=label, role=role, message=message, settings=settings,
                )
            await session.commit()
        except ServiceError as exc:
            await session.rollback()
            result.errors.append(CandidateError(candidate=str(candidate), code=exc.code, message=exc.message))
            log.info("assignment.candidate_rejected", candidate=str(candidate), code=exc.code)
            continue
        except IntegrityError:
            await session.rollback()
            result.errors.append(
                CandidateError(
                    candidate=str(candidate),
                    code=Conflict.code,
                    message="A matching assignment was created concurrently",
                )
            )
            log.info("assignment.candidate_conflict", candidate=str(candidate))
            continue

        read = await to_read(session, row)
        result.created.append(read)
        log.info(
            "assignment.created",
            assignment_id=str(read.id),
            target_type=kind.value,
            target_id=str(target_id),
            status=read.status.value,
        )

        if after_commit is None:
            continue
        if candidate_kind == AssignmentKind.USER:
            after_commit.add(
                "notify.assignment",
                publish_notification,
                read.user_id,
                "assignment.created",
                {
                    "assignment_id": str(read.id),
                    "target_type": kind.value,
                    "target_id": str(target_id),
                    "project_id": str(project_id),
                    "assigned_by": str(acting_user_id),
                },
                settings,
            )
        else:
            email = mailer.invitation_email(
                to=read.email,
                invitation_id=read.id,
                inviter_name=actor_name or "A Planwise user",
                target_label=label,
                target_type=kind.value,
                message=message,
                expires_at=read.expires_at,
                settings=settings,
            )
            after_commit.add("mail.invitation", mailer.deliver, email, settings)

    return result


# ---------------------------------------------------------------------------
# List / remove
# ---------------------------------------------------------------------------


async def list_assignments(
    session: AsyncSession,
    acting_user_id: uuid.UUID,
    target_type: TargetType | str,
    target_id: uuid.UUID,
) -> AssignmentList:
    """Active user grants and pending invitations for a target (lapsed invitations are expired first)."""
    target = await load_target(session, target_type, target_id)
    await require_permission(session, acting_user_id, target.project_id, "view")

    result = await session.execute(
        select(Assignment)
        .where(
            Assignment.target_type == target.type.value,
            Assignment.target_id == target.id,
            Assignment.status.in_([ACTIVE, PENDING]),
        )
        .order_by(Assignment.assigned_at)
    )
    rows = list(result.scalars().all())
    await expire_due(session, rows)

    active = [r for r in rows if r.status == ACTIVE]
    pending = [r for r in rows if r.status == PENDING]
    return AssignmentList(
        active_users=await to_read_many(session, active),
        pending_emails=await to_read_many(session, pending),
        total=len(active) + len(pending),
    )


async def remove_assignment(
    session: AsyncSession,
    acting_user_id: uuid.UUID,
    assignment_id: uuid.UUID,
    kind: AssignmentKind | str,
) -> None:
    """Remove a user grant (hard delete) or cancel an email invitation.

    Allowed for the original assigner and for anyone who can manage members
    or assign tasks on the owning project.
    """
    kind = AssignmentKind(kind)
    row = await get_assignment_or_404(session, assignment_id)
    row_kind = AssignmentKind.USER if row.user_id is not None else AssignmentKind.EMAIL
    if row_kind != kind:
        raise ValidationFailed(f"Assignment is not a {kind.value} assignment")

    target = await load_target(session, row.target_type, row.target_id)
    if row.assigned_by != acting_user_id:
        access = await resolve_access(session, acting_user_id, target.project_id)
        if not (access.permissions.manage_members or access.permissions.assign_tasks):
            raise Forbidden("Only the assigner or a project manager can remove this assignment")

    if kind == AssignmentKind.EMAIL:
        if expire_if_due(row):
            await expire_and_fail(session)
        if row.status != PENDING:
            raise Conflict(f"Invitation is already {row.status.lower()}")
        transition(row, AssignmentStatus.CANCELLED)
        old_value = row.email
    else:
        old_value = await display_name(session, row.user_id)
        await session.delete(row)

    await record_activity(
        session,
        action=ActivityAction.ASSIGNMENT_REMOVED,
        target_type=target.type,
        target_id=target.id,
        project_id=target.project_id,
        actor_id=acting_user_id,
        actor_name=await display_name(session, acting_user_id),
        target_label=target.label,
        old_value=old_value,
        payload={"assignment_id": str(assignment_id), "kind": kind.value},
    )
    await session.flush()
    log.info("assignment.removed", assignment_id=str(assignment_id), kind=kind.value)
