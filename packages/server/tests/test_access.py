"""
Tests for the access resolver.

Covers:
- Precedence between ownership, assignments and membership
- Permission matrix per level (member role, persisted project role)
- Visible content per level
- Cross-project isolation of assignment-based levels
- require_permission / has_project_access / list_accessible_projects
"""

from __future__ import annotations

import uuid

import pytest

from app.core.errors import Forbidden, NotFound
from app.services.access import (
    LEVEL_MATCHERS,
    PERMISSION_MATRIX,
    _Facts,
    _level_for,
    has_project_access,
    list_accessible_projects,
    require_permission,
    resolve_access,
)
from planwise_shared.schemas.access import PERMISSION_NAMES
from planwise_shared.schemas.common import ACCESS_PRECEDENCE, AccessLevel


# ---------------------------------------------------------------------------
# Unit tests: matrix shape
# ---------------------------------------------------------------------------


class TestPermissionMatrix:
    def test_every_level_has_a_row(self):
        assert set(PERMISSION_MATRIX) == set(AccessLevel)

    def test_rules_only_name_known_permissions(self):
        for rules in PERMISSION_MATRIX.values():
            assert set(rules) <= set(PERMISSION_NAMES)

    def test_precedence_order(self):
        assert ACCESS_PRECEDENCE[0] == AccessLevel.OWNER
        assert ACCESS_PRECEDENCE[-1] == AccessLevel.NO_ACCESS
        assert ACCESS_PRECEDENCE.index(AccessLevel.TASK_ASSIGNED) < ACCESS_PRECEDENCE.index(
            AccessLevel.PROJECT_MEMBER
        )

    def test_every_level_has_a_matcher(self):
        assert set(LEVEL_MATCHERS) == set(ACCESS_PRECEDENCE)

    def test_first_matching_level_wins(self):
        facts = _Facts(member_role="MEMBER", project_role="COLLABORATOR", section_ids=[uuid.uuid4()])
        assert _level_for(facts) == AccessLevel.SECTION_ASSIGNED
        facts.is_owner = True
        assert _level_for(facts) == AccessLevel.OWNER
        assert _level_for(_Facts()) == AccessLevel.NO_ACCESS


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


class TestResolveAccess:
    @pytest.mark.asyncio
    async def test_owner_gets_everything(self, session, owner, project, section, task, settings):
        access = await resolve_access(session, owner.id, project.id, settings)
        assert access.access_level == AccessLevel.OWNER
        assert access.is_project_owner
        assert all(access.permissions.model_dump().values())
        assert access.visible_content.section_ids == [section.id]
        assert access.visible_content.task_ids == [task.id]

    @pytest.mark.asyncio
    async def test_unknown_project_is_no_access(self, session, owner, settings):
        access = await resolve_access(session, owner.id, uuid.uuid4(), settings)
        assert access.access_level == AccessLevel.NO_ACCESS
        assert not any(access.permissions.model_dump().values())
        assert access.visible_content.section_ids == []
        assert access.visible_content.task_ids == []

    @pytest.mark.asyncio
    async def test_stranger_is_no_access(self, session, make_user, project, settings):
        stranger = await make_user("stranger@example.com")
        access = await resolve_access(session, stranger.id, project.id, settings)
        assert access.access_level == AccessLevel.NO_ACCESS
        assert not access.has_access

    @pytest.mark.asyncio
    async def test_member_roles(self, session, make_user, add_member, project, settings):
        member = await make_user("member@example.com")
        viewer = await make_user("viewer@example.com")
        lead = await make_user("lead@example.com")
        await add_member(project, member, "MEMBER")
        await add_member(project, viewer, "VIEWER")
        await add_member(project, lead, "OWNER")

        m = await resolve_access(session, member.id, project.id, settings)
        assert m.access_level == AccessLevel.PROJECT_MEMBER
        assert m.permissions.edit and m.permissions.create_task and m.permissions.create_section
        assert not m.permissions.assign_tasks
        assert m.permissions.view_settings and not m.permissions.edit_settings
        assert not m.permissions.manage_members

        v = await resolve_access(session, viewer.id, project.id, settings)
        assert v.permissions.view and v.permissions.view_all_tasks
        assert not v.permissions.edit and not v.permissions.create_task

        lead_access = await resolve_access(session, lead.id, project.id, settings)
        assert lead_access.permissions.assign_tasks
        assert not lead_access.permissions.delete_project

    @pytest.mark.asyncio
    async def test_project_assignment_reads_persisted_role(
        self, session, make_user, grant, owner, project, section, task, settings
    ):
        collaborator = await make_user("collab@example.com")
        reader = await make_user("reader@example.com")
        await grant("PROJECT", project.id, collaborator, owner, role="COLLABORATOR")
        await grant("PROJECT", project.id, reader, owner, role="VIEWER")

        c = await resolve_access(session, collaborator.id, project.id, settings)
        assert c.access_level == AccessLevel.PROJECT_ASSIGNED
        assert c.project_role == "COLLABORATOR"
        assert c.permissions.edit and c.permissions.create_task
        assert not c.permissions.view_settings
        assert c.visible_content.task_ids == [task.id]

        r = await resolve_access(session, reader.id, project.id, settings)
        assert r.access_level == AccessLevel.PROJECT_ASSIGNED
        assert r.permissions.view and r.permissions.view_all_sections
        assert not r.permissions.edit and not r.permissions.create_task

    @pytest.mark.asyncio
    async def test_collaborator_role_is_configurable(
        self, session, make_user, grant, owner, project
    ):
        from app.core.config import Settings

        editor = await make_user("editor@example.com")
        await grant("PROJECT", project.id, editor, owner, role="EDITOR")
        custom = Settings(collaborator_role="EDITOR", notifications_enabled=False)
        access = await resolve_access(session, editor.id, project.id, custom)
        assert access.permissions.edit

    @pytest.mark.asyncio
    async def test_section_assignment_sees_only_its_section(
        self, session, make_user, make_section, make_task, grant, owner, project, section, task, settings
    ):
        other_section = await make_section(project, "Later")
        hidden_task = await make_task(project, "Hidden", other_section)
        loose_task = await make_task(project, "Loose")
        user = await make_user("sectioner@example.com")
        await grant("SECTION", section.id, user, owner)

        access = await resolve_access(session, user.id, project.id, settings)
        assert access.access_level == AccessLevel.SECTION_ASSIGNED
        assert access.section_assignments == [section.id]
        assert access.visible_content.section_ids == [section.id]
        assert access.visible_content.task_ids == [task.id]
        assert hidden_task.id not in access.visible_content.task_ids
        assert loose_task.id not in access.visible_content.task_ids
        assert access.permissions.view
        assert not access.permissions.view_all_sections

    @pytest.mark.asyncio
    async def test_task_assignment_sees_task_and_its_section(
        self, session, make_user, make_task, grant, owner, project, section, task, settings
    ):
        await make_task(project, "Other")
        user = await make_user("tasker@example.com")
        await grant("TASK", task.id, user, owner)

        access = await resolve_access(session, user.id, project.id, settings)
        assert access.access_level == AccessLevel.TASK_ASSIGNED
        assert access.task_assignments == [task.id]
        assert access.visible_content.task_ids == [task.id]
        assert access.visible_content.section_ids == [section.id]

    @pytest.mark.asyncio
    async def test_task_assignment_outranks_membership(
        self, session, make_user, add_member, grant, owner, project, task, settings
    ):
        user = await make_user("both@example.com")
        await add_member(project, user, "MEMBER")
        await grant("TASK", task.id, user, owner)

        access = await resolve_access(session, user.id, project.id, settings)
        assert access.access_level == AccessLevel.TASK_ASSIGNED
        assert access.member_role == "MEMBER"
        assert not access.permissions.create_task

    @pytest.mark.asyncio
    async def test_owner_outranks_assignments(self, session, grant, owner, project, task, settings):
        await grant("TASK", task.id, owner, owner)
        access = await resolve_access(session, owner.id, project.id, settings)
        assert access.access_level == AccessLevel.OWNER

    @pytest.mark.asyncio
    async def test_assignment_in_other_project_does_not_leak(
        self, session, make_user, make_project, make_task, grant, owner, project, settings
    ):
        user = await make_user("elsewhere@example.com")
        other = await make_project(owner, "Other project")
        other_task = await make_task(other, "Elsewhere")
        await grant("TASK", other_task.id, user, owner)

        here = await resolve_access(session, user.id, project.id, settings)
        assert here.access_level == AccessLevel.NO_ACCESS
        there = await resolve_access(session, user.id, other.id, settings)
        assert there.access_level == AccessLevel.TASK_ASSIGNED

    @pytest.mark.asyncio
    async def test_section_assigned_cannot_create_task(
        self, session, make_user, grant, owner, project, section, settings
    ):
        user = await make_user("sectioner@example.com")
        await grant("SECTION", section.id, user, owner)

        access = await resolve_access(session, user.id, project.id, settings)
        assert access.permissions.create_task is False
        with pytest.raises(Forbidden):
            await require_permission(session, user.id, project.id, "create_task", settings)


# ---------------------------------------------------------------------------
# Helpers built on the resolver
# ---------------------------------------------------------------------------


class TestAccessHelpers:
    @pytest.mark.asyncio
    async def test_require_permission_unknown_project(self, session, owner):
        with pytest.raises(NotFound):
            await require_permission(session, owner.id, uuid.uuid4(), "view")

    @pytest.mark.asyncio
    async def test_require_permission_unknown_name(self, session, owner, project):
        with pytest.raises(ValueError):
            await require_permission(session, owner.id, project.id, "fly")

    @pytest.mark.asyncio
    async def test_has_project_access(self, session, make_user, owner, project):
        stranger = await make_user("stranger@example.com")
        assert await has_project_access(session, owner.id, project.id)
        assert not await has_project_access(session, stranger.id, project.id)

    @pytest.mark.asyncio
    async def test_list_accessible_projects(
        self, session, make_user, make_project, make_section, add_member, grant, owner, settings
    ):
        user = await make_user("multi@example.com")
        own = await make_project(user, "Alpha")
        membership = await make_project(owner, "Bravo")
        await add_member(membership, user)
        assigned = await make_project(owner, "Charlie")
        charlie_section = await make_section(assigned, "Ops")
        await grant("SECTION", charlie_section.id, user, owner)
        await make_project(owner, "Delta")

        projects = await list_accessible_projects(session, user.id, settings)
        assert [p.name for p in projects] == ["Alpha", "Bravo", "Charlie"]
        levels = {p.name: p.access.access_level for p in projects}
        assert levels == {
            "Alpha": AccessLevel.OWNER,
            "Bravo": AccessLevel.PROJECT_MEMBER,
            "Charlie": AccessLevel.SECTION_ASSIGNED,
        }
        assert projects[0].id == own.id
