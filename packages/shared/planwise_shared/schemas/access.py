"""Access-resolution schemas shared by the server and API clients."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field, UUID4

from .common import AccessLevel


class Permissions(BaseModel):
    """Boolean capability set a user holds on one project."""
    view: bool = False
    edit: bool = False
    view_all_sections: bool = False
    view_all_tasks: bool = False
    create_task: bool = False
    create_section: bool = False
    assign_tasks: bool = False
    manage_members: bool = False
    view_settings: bool = False
    edit_settings: bool = False
    delete_project: bool = False


PERMISSION_NAMES: list[str] = list(Permissions.model_fields)


class VisibleContent(BaseModel):
    section_ids: List[UUID4] = Field(default_factory=list)
    task_ids: List[UUID4] = Field(default_factory=list)


class ProjectAccess(BaseModel):
    """Resolved relationship between one user and one project."""
    project_id: UUID4
    user_id: UUID4
    access_level: AccessLevel = AccessLevel.NO_ACCESS
    is_project_owner: bool = False
    member_role: Optional[str] = None
    project_role: Optional[str] = None
    section_assignments: List[UUID4] = Field(default_factory=list)
    task_assignments: List[UUID4] = Field(default_factory=list)
    permissions: Permissions = Field(default_factory=Permissions)
    visible_content: VisibleContent = Field(default_factory=VisibleContent)

    @property
    def has_access(self) -> bool:
        return self.access_level != AccessLevel.NO_ACCESS


class AccessibleProject(BaseModel):
    id: UUID4
    name: str
    owner_id: UUID4
    access: ProjectAccess
