from typing import List, Optional
from pydantic import BaseModel, EmailStr, Field

from app.core.roles import Role


class InvitationCreate(BaseModel):
    """Invite emails to a tenant, or to one of its projects"""
    emails: List[EmailStr] = Field(..., min_length=1, max_length=100)
    role: Role = Role.MEMBER
    project_id: Optional[str] = None
