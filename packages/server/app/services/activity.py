"""
Activity recorder. Rows are added to the caller's session so they commit (or
roll back) together with the change they describe.
"""

from __future__ import annotations

import uuid
from typing import Any, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.activity import Activity
from planwise_shared.schemas.common import ActivityAction, TargetType

log = structlog.get_logger()


_TEMPLATES: dict[ActivityAction, str] = {
    ActivityAction.ASSIGNED: "{actor} assigned {new} to {target}",
    ActivityAction.REASSIGNED: "{actor} reassigned {target} from {old} to {new}",
    ActivityAction.UNASSIGNED: "{actor} unassigned {old} from {target}",
    ActivityAction.INVITED: "{actor} invited {new} to {target}",
    ActivityAction.INVITATION_ACCEPTED: "{actor} accepted the invitation to {target}",
    ActivityAction.INVITATION_REJECTED: "{actor} declined the invitation to {target}",
    ActivityAction.ASSIGNMENT_REMOVED: "{actor} removed {old} from {target}",
    ActivityAction.MEMBER_ADDED: "{actor} added {new} to {target}",
    ActivityAction.MEMBER_REMOVED: "{actor} removed {old} from {target}",
}


def describe(
    action: ActivityAction,
    *,
    actor: Optional[str],
    target: str,
    old: Optional[str] = None,
    new: Optional[str] = None,
) -> str:
    return _TEMPLATES[action].format(
        actor=actor or "Someone",
        target=target,
        old=old or "nobody",
        new=new or "nobody",
    )


async def record_activity(
    session: AsyncSession,
    *,
    action: ActivityAction,
    target_type: TargetType | str,
    target_id: uuid.UUID,
    project_id: Optional[uuid.UUID],
    actor_id: Optional[uuid.UUID],
    actor_name: Optional[str] = None,
    target_label: str = "",
    old_value: Optional[str] = None,
    new_value: Optional[str] = None,
    payload: Optional[dict[str, Any]] = None,
) -> Activity:
    activity = Activity(
        project_id=project_id,
        target_type=TargetType(target_type).value,
        target_id=target_id,
        actor_id=actor_id,
        action=action.value,
        old_value=old_value,
        new_value=new_value,
        description=describe(
            action, actor=actor_name, target=target_label, old=old_value, new=new_value
        ),
        payload=payload or {},
    )
    session.add(activity)
    log.debug(
        "activity.recorded",
        action=action.value,
        target_type=activity.target_type,
        target_id=str(target_id),
    )
    return activity
