"""
Shared fixtures: a throwaway SQLite database per test and small factories
for users, projects, sections and tasks.
"""

import os

os.environ.setdefault("PW_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("PW_LOG_FORMAT", "console")
os.environ.setdefault("PW_NOTIFICATIONS_ENABLED", "false")
os.environ.setdefault("PW_SECRET_KEY", "test-secret-key-with-enough-length-for-hs256")

from datetime import timedelta  # noqa: E402
from typing import Optional  # noqa: E402

import pytest  # noqa: E402
from sqlmodel import select  # noqa: E402

from app.core.config import Settings  # noqa: E402
from app.core.database import build_engine, build_session_factory, init_db  # noqa: E402
from app.integrations import mailer  # noqa: E402
from app.models.activity import Activity  # noqa: E402
from app.models.assignments import Assignment  # noqa: E402
from app.models.base import utcnow  # noqa: E402
from app.models.project import Project, Section  # noqa: E402
from app.models.project_member import ProjectMember  # noqa: E402
from app.models.task import Task  # noqa: E402
from app.models.user import User  # noqa: E402


@pytest.fixture
def settings() -> Settings:
    return Settings(
        notifications_enabled=False,
        mail_backend="log",
        mail_delivery="inline",
        invitation_ttl_days=30,
    )


@pytest.fixture
async def engine(tmp_path):
    eng = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'planwise.db'}")
    await init_db(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
def outbox():
    """Capture outbound email for the duration of a test."""
    box = mailer.LogMailer()
    mailer.set_mailer(box)
    yield box.sent
    mailer.set_mailer(None)


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


@pytest.fixture
def persist(session_factory):
    """Store a row through its own session so the test's session starts clean."""

    async def _persist(obj):
        async with session_factory() as s:
            s.add(obj)
            await s.commit()
        return obj

    return _persist


@pytest.fixture
def make_user(persist):
    async def _make(email: str, first_name: Optional[str] = None, last_name: Optional[str] = None) -> User:
        return await persist(User(email=email.lower(), first_name=first_name, last_name=last_name))

    return _make


@pytest.fixture
def make_project(persist):
    async def _make(owner: User, name: str = "Website") -> Project:
        return await persist(Project(name=name, user_id=owner.id))

    return _make


@pytest.fixture
def make_section(persist):
    async def _make(project: Project, name: str = "Backlog") -> Section:
        return await persist(Section(project_id=project.id, name=name))

    return _make


@pytest.fixture
def make_task(persist):
    async def _make(
        project: Project, title: str = "Write copy", section: Optional[Section] = None
    ) -> Task:
        return await persist(
            Task(project_id=project.id, title=title, section_id=section.id if section else None)
        )

    return _make


@pytest.fixture
def add_member(persist):
    async def _add(project: Project, user: User, role: str = "MEMBER") -> ProjectMember:
        return await persist(ProjectMember(project_id=project.id, user_id=user.id, role=role))

    return _add


@pytest.fixture
async def owner(make_user):
    return await make_user("owner@example.com", "Olivia", "Owner")


@pytest.fixture
async def project(make_project, owner):
    return await make_project(owner, "Website")


@pytest.fixture
async def section(make_section, project):
    return await make_section(project, "Launch")


@pytest.fixture
async def task(make_task, project, section):
    return await make_task(project, "Write copy", section)


@pytest.fixture
def grant(persist):
    """Insert an ACTIVE assignment row directly."""

    async def _grant(target_type: str, target_id, user: User, assigner: User, role: str = "MEMBER") -> Assignment:
        return await persist(
            Assignment(
                target_type=target_type,
                target_id=target_id,
                user_id=user.id,
                assigned_by=assigner.id,
                role=role,
                status="ACTIVE",
            )
        )

    return _grant


# ---------------------------------------------------------------------------
# Inspection helpers (fresh sessions, never the identity map under test)
# ---------------------------------------------------------------------------


@pytest.fixture
def assignment_rows(session_factory):
    async def _rows(target_id) -> list[Assignment]:
        async with session_factory() as s:
            result = await s.execute(
                select(Assignment)
                .where(Assignment.target_id == target_id)
                .order_by(Assignment.assigned_at)
            )
            return list(result.scalars().all())

    return _rows


@pytest.fixture
def activity_rows(session_factory):
    async def _rows(target_id) -> list[Activity]:
        async with session_factory() as s:
            result = await s.execute(
                select(Activity).where(Activity.target_id == target_id).order_by(Activity.created_at)
            )
            return list(result.scalars().all())

    return _rows


@pytest.fixture
def memberships(session_factory):
    async def _rows(project_id) -> dict:
        async with session_factory() as s:
            result = await s.execute(select(ProjectMember).where(ProjectMember.project_id == project_id))
            return {m.user_id: m.role for m in result.scalars().all()}

    return _rows


@pytest.fixture
def age_invitation(session_factory, session):
    """Move an invitation's expiry into the past and drop the test session's cached copy."""

    async def _age(assignment_id, days: int = 1) -> None:
        async with session_factory() as s:
            row = await s.get(Assignment, assignment_id)
            row.expires_at = utcnow() - timedelta(days=days)
            await s.commit()
        session.expire_all()

    return _age
