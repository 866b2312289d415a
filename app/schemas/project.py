"""
Project Schemas
"""

from typing import List, Optional
from pydantic import BaseModel, EmailStr, Field

from app.core.roles import Role
from app.models.project import ProjectLayout, ProjectStatus
from app.schemas.common import UTCDateTime


class InitialSection(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    color: Optional[str] = Field(None, max_length=20)


class InitialTask(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    section_name: Optional[str] = None


class ProjectCreate(BaseModel):
    """Create project request"""
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    color: Optional[str] = Field(None, pattern=r"^#[0-9a-fA-F]{6}$")
    icon: Optional[str] = Field(None, max_length=50)
    layout: ProjectLayout = ProjectLayout.BOARD
    due_date: Optional[UTCDateTime] = None
    sections: List[InitialSection] = []
    tasks: List[InitialTask] = []
    invite_emails: List[EmailStr] = []
    invite_role: Role = Role.MEMBER


class ProjectUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    color: Optional[str] = Field(None, pattern=r"^#[0-9a-fA-F]{6}$")
    icon: Optional[str] = Field(None, max_length=50)
    layout: Optional[ProjectLayout] = None


class ProjectStatusUpdate(BaseModel):
    status: ProjectStatus


class ProjectDueDateUpdate(BaseModel):
    due_date: Optional[UTCDateTime] = None


class TemplateClone(BaseModel):
    tenant_id: str
    name: str = Field(..., min_length=1, max_length=255)
