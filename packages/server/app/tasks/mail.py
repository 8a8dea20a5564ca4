"""
ARQ background task: deliver queued invitation and acceptance emails.

Run with ``arq app.tasks.mail.WorkerSettings`` when ``PW_MAIL_DELIVERY=queue``.
"""

from __future__ import annotations

import structlog
from arq.connections import RedisSettings

from app.core.config import get_settings
from app.core.logging import configure_logging
from app.integrations.mailer import OutboundEmail, get_mailer

log = structlog.get_logger()


async def send_email(ctx: dict, payload: dict) -> bool:
    """Send one queued message through the configured transport."""
    message = OutboundEmail.from_payload(payload)
    await get_mailer().send(message)
    log.info("mail.worker_sent", to=message.to, job_try=ctx.get("job_try"))
    return True


async def startup(ctx: dict) -> None:
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format)
    log.info("mail.worker_started", backend=settings.mail_backend)


# ARQ worker settings
class WorkerSettings:
    """ARQ worker configuration."""

    functions = [send_email]
    on_startup = startup
    max_tries = 5
    redis_settings = RedisSettings.from_dsn(get_settings().redis_url)
