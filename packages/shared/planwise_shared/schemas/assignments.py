"""Assignment, invitation and task-assignee schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, UUID4, model_validator

from .common import AssignmentStatus, TargetType


# ---------------------------------------------------------------------------
# Summaries
# ---------------------------------------------------------------------------

class UserSummary(BaseModel):
    id: UUID4
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    display_name: str


class AssignmentRead(BaseModel):
    id: UUID4
    target_type: TargetType
    target_id: UUID4
    user_id: Optional[UUID4] = None
    email: Optional[str] = None
    invited_email: Optional[str] = None
    assigned_by: UUID4
    role: str
    status: AssignmentStatus
    assigned_at: datetime
    expires_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    message: Optional[str] = None
    user: Optional[UserSummary] = None
    assigner: Optional[UserSummary] = None

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Create / list / remove
# ---------------------------------------------------------------------------

class AssignmentCreate(BaseModel):
    """Request body for POST /assignments."""
    target_type: TargetType
    target_id: UUID4
    user_ids: List[UUID4] = Field(default_factory=list)
    emails: List[str] = Field(default_factory=list)
    message: Optional[str] = Field(default=None, max_length=2000)
    role: Optional[str] = Field(default=None, max_length=50)

    @model_validator(mode="after")
    def _require_candidate(self) -> "AssignmentCreate":
        if not self.user_ids and not self.emails:
            raise ValueError("At least one user id or email is required")
        return self


class CandidateError(BaseModel):
    """A single candidate that could not be assigned."""
    candidate: str
    code: str
    message: str


class AssignmentBatchResult(BaseModel):
    created: List[AssignmentRead] = Field(default_factory=list)
    errors: List[CandidateError] = Field(default_factory=list)


class AssignmentList(BaseModel):
    active_users: List[AssignmentRead] = Field(default_factory=list)
    pending_emails: List[AssignmentRead] = Field(default_factory=list)
    total: int = 0


# ---------------------------------------------------------------------------
# Invitations
# ---------------------------------------------------------------------------

class InvitationRead(BaseModel):
    """Invitation details rendered on the accept/reject screen."""
    id: UUID4
    target_type: TargetType
    target_id: UUID4
    target_name: str
    project_name: Optional[str] = None
    email: Optional[str] = None
    role: str
    status: AssignmentStatus
    assigned_by: UUID4
    assigner: Optional[UserSummary] = None
    assigned_at: datetime
    expires_at: Optional[datetime] = None
    message: Optional[str] = None


class InvitationAcceptResult(BaseModel):
    invitation: AssignmentRead
    grant: AssignmentRead
    created: bool = True


# ---------------------------------------------------------------------------
# Task assignee
# ---------------------------------------------------------------------------

class TaskAssign(BaseModel):
    """Request body for POST /tasks/{taskId}/assignee."""
    assignee_id: UUID4


class TaskAssignmentRead(BaseModel):
    task_id: UUID4
    assignment: Optional[AssignmentRead] = None
