"""
Tests for the invitation lifecycle.

Covers:
- Invitation -> registration -> acceptance materializes a grant
- Lazy expiry on get and accept
- Idempotent acceptance, email mismatch, terminal states
- Folding an existing grant, task replacement on accept
- Rejection by invitee or assigner
- Status transition table
"""

from __future__ import annotations

import uuid

import pytest

from app.core.dispatch import AfterCommit
from app.core.errors import Conflict, Expired, Forbidden, NotFound
from app.services.access import resolve_access
from app.services.assignments import create_assignments, list_assignments
from app.services.invitations import accept_invitation, get_invitation, reject_invitation
from planwise_shared.schemas.common import (
    ASSIGNMENT_TRANSITIONS,
    AccessLevel,
    AssignmentStatus,
)


async def _invite(session, owner, target_type, target_id, email, settings):
    result = await create_assignments(
        session, owner.id, target_type=target_type, target_id=target_id,
        emails=[email], settings=settings,
    )
    assert result.errors == []
    return result.created[0]


# ---------------------------------------------------------------------------
# Unit tests: status transitions
# ---------------------------------------------------------------------------


class TestStatusTransitions:
    def test_only_pending_moves(self):
        assert set(ASSIGNMENT_TRANSITIONS[AssignmentStatus.PENDING]) == {
            AssignmentStatus.ACTIVE,
            AssignmentStatus.EXPIRED,
            AssignmentStatus.CANCELLED,
        }
        for status in (AssignmentStatus.ACTIVE, AssignmentStatus.EXPIRED, AssignmentStatus.CANCELLED):
            assert ASSIGNMENT_TRANSITIONS[status] == []


# ---------------------------------------------------------------------------
# Get
# ---------------------------------------------------------------------------


class TestGetInvitation:
    @pytest.mark.asyncio
    async def test_details(self, session, owner, project, section, settings):
        invitation = await _invite(session, owner, "SECTION", section.id, "alice@example.com", settings)
        details = await get_invitation(session, invitation.id)
        assert details.status == AssignmentStatus.PENDING
        assert details.target_name == "Website / Launch"
        assert details.project_name == "Website"
        assert details.assigner.display_name == "Olivia Owner"

    @pytest.mark.asyncio
    async def test_overdue_reads_as_expired(
        self, session, owner, project, age_invitation, assignment_rows, settings
    ):
        invitation = await _invite(session, owner, "PROJECT", project.id, "alice@example.com", settings)
        await age_invitation(invitation.id)

        details = await get_invitation(session, invitation.id)
        await session.commit()
        assert details.status == AssignmentStatus.EXPIRED
        assert [r.status for r in await assignment_rows(project.id)] == ["EXPIRED"]

    @pytest.mark.asyncio
    async def test_user_assignment_is_not_an_invitation(self, session, grant, owner, project, make_user):
        bob = await make_user("bob@example.com")
        row = await grant("PROJECT", project.id, bob, owner)
        with pytest.raises(NotFound):
            await get_invitation(session, row.id)

    @pytest.mark.asyncio
    async def test_unknown_id(self, session):
        with pytest.raises(NotFound):
            await get_invitation(session, uuid.uuid4())


# ---------------------------------------------------------------------------
# Accept
# ---------------------------------------------------------------------------


class TestAcceptInvitation:
    @pytest.mark.asyncio
    async def test_invite_register_accept(
        self, session, make_user, owner, project, section, assignment_rows, settings
    ):
        invitation = await _invite(session, owner, "SECTION", section.id, "alice@example.com", settings)
        listing = await list_assignments(session, owner.id, "SECTION", section.id)
        assert [a.email for a in listing.pending_emails] == ["alice@example.com"]

        alice = await make_user("alice@example.com", "Alice")
        result = await accept_invitation(session, invitation.id, alice.id, settings=settings)
        await session.commit()

        assert result.created is True
        assert result.grant.user_id == alice.id
        assert result.grant.status == AssignmentStatus.ACTIVE
        assert result.grant.invited_email == "alice@example.com"
        assert result.grant.accepted_at is not None

        rows = await assignment_rows(section.id)
        assert [(r.id, r.status, r.user_id, r.email) for r in rows] == [
            (invitation.id, "ACTIVE", alice.id, None)
        ]
        access = await resolve_access(session, alice.id, project.id, settings)
        assert access.access_level == AccessLevel.SECTION_ASSIGNED

    @pytest.mark.asyncio
    async def test_email_match_is_case_insensitive(self, session, make_user, owner, project, settings):
        invitation = await _invite(session, owner, "PROJECT", project.id, "Alice@Example.com", settings)
        alice = await make_user("ALICE@example.com")
        result = await accept_invitation(session, invitation.id, alice.id, settings=settings)
        assert result.grant.user_id == alice.id

    @pytest.mark.asyncio
    async def test_accept_is_idempotent(self, session, make_user, owner, project, assignment_rows, settings):
        invitation = await _invite(session, owner, "PROJECT", project.id, "alice@example.com", settings)
        alice = await make_user("alice@example.com")
        first = await accept_invitation(session, invitation.id, alice.id, settings=settings)
        await session.commit()
        second = await accept_invitation(session, invitation.id, alice.id, settings=settings)

        assert second.created is False
        assert second.grant.id == first.grant.id
        assert len(await assignment_rows(project.id)) == 1

    @pytest.mark.asyncio
    async def test_overdue_accept_fails_and_persists_expiry(
        self, session, make_user, owner, project, age_invitation, assignment_rows, settings
    ):
        invitation = await _invite(session, owner, "PROJECT", project.id, "alice@example.com", settings)
        alice = await make_user("alice@example.com")
        await age_invitation(invitation.id)

        with pytest.raises(Expired):
            await accept_invitation(session, invitation.id, alice.id, settings=settings)
        assert [r.status for r in await assignment_rows(project.id)] == ["EXPIRED"]

        with pytest.raises(Expired):
            await accept_invitation(session, invitation.id, alice.id, settings=settings)

    @pytest.mark.asyncio
    async def test_wrong_email_is_forbidden(self, session, make_user, owner, project, settings):
        invitation = await _invite(session, owner, "PROJECT", project.id, "alice@example.com", settings)
        mallory = await make_user("mallory@example.com")
        with pytest.raises(Forbidden):
            await accept_invitation(session, invitation.id, mallory.id, settings=settings)

    @pytest.mark.asyncio
    async def test_cancelled_invitation_conflicts(self, session, make_user, owner, project, settings):
        invitation = await _invite(session, owner, "PROJECT", project.id, "alice@example.com", settings)
        alice = await make_user("alice@example.com")
        await reject_invitation(session, invitation.id, owner.id)
        await session.commit()
        with pytest.raises(Conflict):
            await accept_invitation(session, invitation.id, alice.id, settings=settings)

    @pytest.mark.asyncio
    async def test_existing_grant_is_folded(
        self, session, make_user, grant, owner, project, assignment_rows, settings
    ):
        invitation = await _invite(session, owner, "PROJECT", project.id, "alice@example.com", settings)
        alice = await make_user("alice@example.com")
        await grant("PROJECT", project.id, alice, owner, role="COLLABORATOR")

        result = await accept_invitation(session, invitation.id, alice.id, settings=settings)
        await session.commit()

        rows = await assignment_rows(project.id)
        assert [(r.id, r.user_id, r.status) for r in rows] == [(invitation.id, alice.id, "ACTIVE")]
        assert result.grant.id == invitation.id

    @pytest.mark.asyncio
    async def test_fold_keeps_stronger_standing_grant(
        self, session, make_user, grant, owner, project, assignment_rows, outbox, settings
    ):
        lead = await make_user("lead@example.com", "Lena", "Lead")
        created = await create_assignments(
            session, owner.id, target_type="PROJECT", target_id=project.id,
            emails=["alice@example.com"], role="MEMBER", settings=settings,
        )
        invitation = created.created[0]
        alice = await make_user("alice@example.com", "Alice")
        await grant("PROJECT", project.id, alice, lead, role="COLLABORATOR")

        after_commit = AfterCommit()
        result = await accept_invitation(
            session, invitation.id, alice.id, settings=settings, after_commit=after_commit
        )
        await session.commit()
        await after_commit.run()

        assert result.grant.role == "COLLABORATOR"
        assert result.grant.assigned_by == lead.id
        rows = await assignment_rows(project.id)
        assert [(r.id, r.role, r.assigned_by) for r in rows] == [(invitation.id, "COLLABORATOR", lead.id)]

        access = await resolve_access(session, alice.id, project.id, settings)
        assert access.access_level == AccessLevel.PROJECT_ASSIGNED
        assert access.permissions.edit is True

        # The person who sent the invitation still hears about the acceptance.
        assert [m.to for m in outbox] == ["owner@example.com"]

    @pytest.mark.asyncio
    async def test_task_accept_adds_project_membership(
        self, session, make_user, owner, project, task, memberships, settings
    ):
        invitation = await _invite(session, owner, "TASK", task.id, "alice@example.com", settings)
        alice = await make_user("alice@example.com")

        await accept_invitation(session, invitation.id, alice.id, settings=settings)
        await session.commit()

        assert await memberships(project.id) == {alice.id: "MEMBER"}

    @pytest.mark.asyncio
    async def test_task_accept_replaces_current_assignee(
        self, session, make_user, grant, owner, task, assignment_rows, settings
    ):
        bob = await make_user("bob@example.com")
        invitation = await _invite(session, owner, "TASK", task.id, "alice@example.com", settings)
        # bob picked the task up after the invitation went out
        await grant("TASK", task.id, bob, owner)
        alice = await make_user("alice@example.com")

        await accept_invitation(session, invitation.id, alice.id, settings=settings)
        await session.commit()

        active = [r for r in await assignment_rows(task.id) if r.status == "ACTIVE"]
        assert [(r.id, r.user_id) for r in active] == [(invitation.id, alice.id)]

    @pytest.mark.asyncio
    async def test_assigner_is_emailed_after_commit(self, session, make_user, owner, project, outbox, settings):
        invitation = await _invite(session, owner, "PROJECT", project.id, "alice@example.com", settings)
        alice = await make_user("alice@example.com", "Alice", "Liddell")
        after_commit = AfterCommit()

        await accept_invitation(session, invitation.id, alice.id, settings=settings, after_commit=after_commit)
        assert outbox == []
        await session.commit()
        await after_commit.run()

        assert [m.to for m in outbox] == ["owner@example.com"]
        assert "Alice Liddell" in outbox[0].subject


# ---------------------------------------------------------------------------
# Reject
# ---------------------------------------------------------------------------


class TestRejectInvitation:
    @pytest.mark.asyncio
    async def test_invitee_rejects(self, session, make_user, owner, project, activity_rows, settings):
        invitation = await _invite(session, owner, "PROJECT", project.id, "alice@example.com", settings)
        alice = await make_user("alice@example.com")
        result = await reject_invitation(session, invitation.id, alice.id)
        await session.commit()
        assert result.status == AssignmentStatus.CANCELLED
        assert "INVITATION_REJECTED" in [a.action for a in await activity_rows(project.id)]

    @pytest.mark.asyncio
    async def test_assigner_withdraws(self, session, owner, project, settings):
        invitation = await _invite(session, owner, "PROJECT", project.id, "alice@example.com", settings)
        result = await reject_invitation(session, invitation.id, owner.id)
        assert result.status == AssignmentStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_outsider_is_forbidden(self, session, make_user, owner, project, settings):
        invitation = await _invite(session, owner, "PROJECT", project.id, "alice@example.com", settings)
        eve = await make_user("eve@example.com")
        with pytest.raises(Forbidden):
            await reject_invitation(session, invitation.id, eve.id)

    @pytest.mark.asyncio
    async def test_terminal_invitation_conflicts(self, session, make_user, owner, project, settings):
        invitation = await _invite(session, owner, "PROJECT", project.id, "alice@example.com", settings)
        alice = await make_user("alice@example.com")
        await accept_invitation(session, invitation.id, alice.id, settings=settings)
        await session.commit()
        with pytest.raises(Conflict):
            await reject_invitation(session, invitation.id, alice.id)

    @pytest.mark.asyncio
    async def test_overdue_rejection_reports_expired(
        self, session, make_user, owner, project, age_invitation, settings
    ):
        invitation = await _invite(session, owner, "PROJECT", project.id, "alice@example.com", settings)
        alice = await make_user("alice@example.com")
        await age_invitation(invitation.id)
        with pytest.raises(Expired):
            await reject_invitation(session, invitation.id, alice.id)
