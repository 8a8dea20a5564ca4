from typing import List, Optional
from pydantic import BaseModel, UUID4
from datetime import datetime
from .common import MemberRole


class ProjectMemberAdd(BaseModel):
    user_ids: List[UUID4]
    role: MemberRole = MemberRole.MEMBER


class ProjectMemberRead(BaseModel):
    user_id: UUID4
    project_id: UUID4
    display_name: str
    email: Optional[str] = None
    role: MemberRole
    added_by: Optional[UUID4] = None
    added_at: datetime
    is_owner: bool = False


class ProjectMemberAddResult(BaseModel):
    added: List[UUID4]
    added_count: int
