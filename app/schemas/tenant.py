"""
Tenant Schemas
Pydantic models for workspace and membership requests and responses
"""

from typing import Any, Dict, Optional
from pydantic import BaseModel, Field, field_validator

from app.core.roles import Role


class TenantCreate(BaseModel):
    """Create workspace request"""
    name: str = Field(..., min_length=1, max_length=255)
    settings: Optional[Dict[str, Any]] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v.strip():
            raise ValueError("Workspace name cannot be empty")
        return v.strip()


class TenantUpdate(BaseModel):
    """Update workspace request"""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    settings: Optional[Dict[str, Any]] = None


class TenantResponse(BaseModel):
    id: str
    name: str
    slug: str
    owner_id: str
    settings: Dict[str, Any]
    created_at: Optional[str] = None
    role: Optional[str] = None


class MemberAdd(BaseModel):
    user_id: str
    role: Role = Role.MEMBER


class MemberRoleUpdate(BaseModel):
    role: Role
