from enum import Enum
from pydantic import BaseModel

class TargetType(str, Enum):
    PROJECT = "PROJECT"
    SECTION = "SECTION"
    TASK = "TASK"

class AssignmentStatus(str, Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"

# PENDING is the only non-terminal status; everything else is final for the row.
ASSIGNMENT_TRANSITIONS: dict["AssignmentStatus", list["AssignmentStatus"]] = {
    AssignmentStatus.PENDING: [
        AssignmentStatus.ACTIVE,
        AssignmentStatus.EXPIRED,
        AssignmentStatus.CANCELLED,
    ],
    AssignmentStatus.ACTIVE: [],
    AssignmentStatus.EXPIRED: [],
    AssignmentStatus.CANCELLED: [],
}

class AssignmentKind(str, Enum):
    USER = "user"
    EMAIL = "email"

class MemberRole(str, Enum):
    OWNER = "OWNER"
    MEMBER = "MEMBER"
    VIEWER = "VIEWER"

class AccessLevel(str, Enum):
    OWNER = "OWNER"
    TASK_ASSIGNED = "TASK_ASSIGNED"
    SECTION_ASSIGNED = "SECTION_ASSIGNED"
    PROJECT_ASSIGNED = "PROJECT_ASSIGNED"
    PROJECT_MEMBER = "PROJECT_MEMBER"
    NO_ACCESS = "NO_ACCESS"

# Most specific first; the resolver stops at the first level that matches.
ACCESS_PRECEDENCE: list["AccessLevel"] = [
    AccessLevel.OWNER,
    AccessLevel.TASK_ASSIGNED,
    AccessLevel.SECTION_ASSIGNED,
    AccessLevel.PROJECT_ASSIGNED,
    AccessLevel.PROJECT_MEMBER,
    AccessLevel.NO_ACCESS,
]

class ActivityAction(str, Enum):
    ASSIGNED = "ASSIGNED"
    REASSIGNED = "REASSIGNED"
    UNASSIGNED = "UNASSIGNED"
    INVITED = "INVITED"
    INVITATION_ACCEPTED = "INVITATION_ACCEPTED"
    INVITATION_REJECTED = "INVITATION_REJECTED"
    ASSIGNMENT_REMOVED = "ASSIGNMENT_REMOVED"
    MEMBER_ADDED = "MEMBER_ADDED"
    MEMBER_REMOVED = "MEMBER_REMOVED"

class ErrorBody(BaseModel):
    code: str
    message: str
    status: int

class ErrorResponse(BaseModel):
    error: ErrorBody
