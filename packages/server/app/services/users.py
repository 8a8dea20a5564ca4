"""
User directory lookups used by the assignment services.
"""

from __future__ import annotations

import uuid
from typing import Iterable, Optional

from email_validator import EmailNotValidError, validate_email
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.errors import NotFound, ValidationFailed
from app.models.user import User
from planwise_shared.schemas.assignments import UserSummary


def normalize_email(raw: str) -> str:
    """Syntactically validate an address and return its canonical lower-cased form."""
    candidate = (raw or "").strip()
    if not candidate:
        raise ValidationFailed("Email address is required")
    try:
        info = validate_email(candidate, check_deliverability=False)
    except EmailNotValidError as exc:
        raise ValidationFailed(f"Invalid email address: {candidate} ({exc})")
    return info.normalized.lower()


def emails_match(a: Optional[str], b: Optional[str]) -> bool:
    if not a or not b:
        return False
    return a.strip().lower() == b.strip().lower()


async def get_user_or_404(session: AsyncSession, user_id: uuid.UUID) -> User:
    user = await session.get(User, user_id)
    if not user:
        raise NotFound(f"User not found: {user_id}")
    return user


async def find_user_by_email(session: AsyncSession, email: str) -> Optional[User]:
    result = await session.execute(select(User).where(User.email == email.strip().lower()))
    return result.scalar_one_or_none()


async def get_users(session: AsyncSession, user_ids: Iterable[uuid.UUID]) -> dict[uuid.UUID, User]:
    ids = {uid for uid in user_ids if uid is not None}
    if not ids:
        return {}
    result = await session.execute(select(User).where(User.id.in_(ids)))
    return {u.id: u for u in result.scalars().all()}


async def display_name(session: AsyncSession, user_id: Optional[uuid.UUID]) -> Optional[str]:
    if user_id is None:
        return None
    user = await session.get(User, user_id)
    return user.display_name if user else None


def summarize(user: Optional[User]) -> Optional[UserSummary]:
    if user is None:
        return None
    return UserSummary(
        id=user.id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        display_name=user.display_name,
    )
