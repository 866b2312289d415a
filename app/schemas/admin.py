"""
Super Admin Schemas
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from app.models.project import ColumnType, ProjectLayout
from app.schemas.project import InitialSection, InitialTask


class TemplateColumn(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    type: ColumnType = ColumnType.TEXT
    width: Optional[int] = Field(None, ge=50, le=1000)
    visible: bool = True
    options: Optional[Dict[str, Any]] = None


class TemplateCreate(BaseModel):
    """Create global template request"""
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    color: Optional[str] = Field(None, pattern=r"^#[0-9a-fA-F]{6}$")
    icon: Optional[str] = Field(None, max_length=50)
    layout: ProjectLayout = ProjectLayout.LIST
    template_category: Optional[str] = Field(None, max_length=50)
    sections: List[InitialSection] = []
    columns: Optional[List[TemplateColumn]] = None
    tasks: List[InitialTask] = []


class TemplateUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    color: Optional[str] = Field(None, pattern=r"^#[0-9a-fA-F]{6}$")
    icon: Optional[str] = Field(None, max_length=50)
    layout: Optional[ProjectLayout] = None
    template_category: Optional[str] = Field(None, max_length=50)


class SuperAdminToggle(BaseModel):
    is_super_admin: bool
