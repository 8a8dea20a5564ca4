"""
In-app notification trigger points, published on Redis pub/sub.

Delivery (push, inbox, email digests) belongs to the notification service
listening on ``pw:notifications:<user_id>``; this side only publishes.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

import structlog

from app.core.config import Settings, get_settings
from app.core.redis import get_redis

log = structlog.get_logger()

CHANNEL_PREFIX = "pw:notifications:"


def channel_for(user_id: uuid.UUID) -> str:
    return f"{CHANNEL_PREFIX}{user_id}"


async def publish_notification(
    user_id: uuid.UUID,
    kind: str,
    payload: dict[str, Any],
    settings: Optional[Settings] = None,
) -> bool:
    """Publish one notification. Returns False when notifications are disabled."""
    settings = settings or get_settings()
    if not settings.notifications_enabled:
        return False

    message = {
        "type": kind,
        "user_id": str(user_id),
        "payload": payload,
        "created_at": datetime.now(timezone.utc).isoformat(),
    }
    redis = await get_redis()
    receivers = await redis.publish(channel_for(user_id), json.dumps(message, default=str))
    log.info("notification.published", kind=kind, user_id=str(user_id), receivers=receivers)
    return True
