"""
Outbound email for invitations and acceptance notices.

Two transports:
- ``log``: writes the message to the structured log (development, tests)
- ``smtp``: plain SMTP with optional STARTTLS, run in a worker thread

Delivery is either inline (the after-commit job sends directly) or queued to
the ARQ worker (``app.tasks.mail``). Callers only ever run this after the
owning transaction has committed; failures propagate to the after-commit
collector, which logs them.
"""

from __future__ import annotations

import asyncio
import smtplib
import ssl
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime
from email.message import EmailMessage
from email.utils import parseaddr
from typing import Optional, Protocol

import structlog
from arq import create_pool
from arq.connections import ArqRedis, RedisSettings

from app.core.config import Settings, get_settings

log = structlog.get_logger()


@dataclass(frozen=True)
class OutboundEmail:
    to: str
    subject: str
    text: str
    html: Optional[str] = None

    def to_payload(self) -> dict:
        return asdict(self)

    @classmethod
    def from_payload(cls, payload: dict) -> "OutboundEmail":
        return cls(**payload)


class Mailer(Protocol):
    async def send(self, message: OutboundEmail) -> None: ...


class LogMailer:
    """Records messages in the log instead of sending them."""

    def __init__(self) -> None:
        self.sent: list[OutboundEmail] = []

    async def send(self, message: OutboundEmail) -> None:
        self.sent.append(message)
        log.info("mail.logged", to=message.to, subject=message.subject)


class SMTPMailer:
    def __init__(self, settings: Settings):
        self.host = settings.smtp_host
        self.port = settings.smtp_port
        self.username = settings.smtp_username
        self.password = settings.smtp_password
        self.use_tls = settings.smtp_use_tls
        self.sender = settings.mail_from

    def _build(self, message: OutboundEmail) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = message.to
        msg["Subject"] = message.subject
        msg.set_content(message.text)
        if message.html:
            msg.add_alternative(message.html, subtype="html")
        return msg

    def _send_sync(self, message: OutboundEmail) -> None:
        msg = self._build(message)
        with smtplib.SMTP(self.host, self.port, timeout=30) as server:
            if self.use_tls:
                server.starttls(context=ssl.create_default_context())
            if self.username and self.password:
                server.login(self.username, self.password)
            server.send_message(msg, from_addr=parseaddr(self.sender)[1], to_addrs=[message.to])

    async def send(self, message: OutboundEmail) -> None:
        if not self.host:
            raise RuntimeError("SMTP is not configured (PW_SMTP_HOST is empty)")
        await asyncio.to_thread(self._send_sync, message)
        log.info("mail.sent", to=message.to, subject=message.subject, transport="smtp")


_mailer: Optional[Mailer] = None
_arq_pool: Optional[ArqRedis] = None


def get_mailer(settings: Optional[Settings] = None) -> Mailer:
    """Process-wide mailer for the configured backend."""
    global _mailer
    if _mailer is None:
        settings = settings or get_settings()
        _mailer = SMTPMailer(settings) if settings.mail_backend == "smtp" else LogMailer()
    return _mailer


def set_mailer(mailer: Optional[Mailer]) -> None:
    """Swap the process-wide mailer (tests); ``None`` resets to the configured backend."""
    global _mailer
    _mailer = mailer


async def _get_arq_pool(settings: Settings) -> ArqRedis:
    global _arq_pool
    if _arq_pool is None:
        _arq_pool = await create_pool(RedisSettings.from_dsn(settings.redis_url))
    return _arq_pool


async def deliver(message: OutboundEmail, settings: Optional[Settings] = None) -> None:
    """Send now, or hand the message to the ARQ worker when queued delivery is on."""
    settings = settings or get_settings()
    if settings.mail_delivery == "queue":
        pool = await _get_arq_pool(settings)
        await pool.enqueue_job("send_email", message.to_payload())
        log.info("mail.queued", to=message.to, subject=message.subject)
        return
    await get_mailer(settings).send(message)


# ---------------------------------------------------------------------------
# Message builders
# ---------------------------------------------------------------------------


def invitation_email(
    *,
    to: str,
    invitation_id: uuid.UUID,
    inviter_name: str,
    target_label: str,
    target_type: str,
    message: Optional[str] = None,
    expires_at: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> OutboundEmail:
    settings = settings or get_settings()
    link = f"{settings.app_base_url.rstrip('/')}/invitations/{invitation_id}"
    lines = [
        f"{inviter_name} invited you to the {target_type.lower()} \"{target_label}\" on Planwise.",
        "",
    ]
    if message:
        lines += [f"Message from {inviter_name}:", message, ""]
    lines.append(f"Accept or decline the invitation: {link}")
    if expires_at:
        lines.append(f"The invitation expires on {expires_at:%Y-%m-%d}.")
    return OutboundEmail(
        to=to,
        subject=f"{inviter_name} invited you to {target_label}",
        text="\n".join(lines),
    )


def acceptance_email(
    *,
    to: str,
    invitee_name: str,
    target_label: str,
) -> OutboundEmail:
    return OutboundEmail(
        to=to,
        subject=f"{invitee_name} accepted your invitation",
        text=f"{invitee_name} accepted your invitation to \"{target_label}\" on Planwise.",
    )
