"""
Section, Task, Comment and Column Schemas
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field

from app.models.project import ColumnType
from app.models.task import TaskPriority, TaskStatus, TaskType
from app.schemas.common import UTCDateTime


class SectionCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    color: Optional[str] = Field(None, max_length=20)
    position: Optional[int] = Field(None, ge=0)
    kanban_wip_limit: Optional[int] = Field(None, ge=1)


class SectionUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    color: Optional[str] = Field(None, max_length=20)
    position: Optional[int] = Field(None, ge=0)
    is_collapsed: Optional[bool] = None
    kanban_wip_limit: Optional[int] = Field(None, ge=1)


class SectionResponse(BaseModel):
    id: str
    project_id: str
    name: str
    color: Optional[str] = None
    position: int
    is_collapsed: bool
    kanban_wip_limit: Optional[int] = None
    task_count: Optional[int] = None


class TaskBase(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    description: Optional[str] = None
    type: Optional[TaskType] = None
    assignee_id: Optional[str] = None
    start_date: Optional[UTCDateTime] = None
    due_date: Optional[UTCDateTime] = None
    priority: Optional[TaskPriority] = None
    status: Optional[TaskStatus] = None
    tags: Optional[List[str]] = None
    custom_fields: Optional[Dict[str, Any]] = None


class TaskCreate(TaskBase):
    title: str = Field(..., min_length=1, max_length=500)
    section_id: Optional[str] = None
    parent_id: Optional[str] = None


class SubtaskCreate(TaskBase):
    title: str = Field(..., min_length=1, max_length=500)


class TaskUpdate(TaskBase):
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    name: Optional[str] = Field(None, min_length=1, max_length=500)
    completed: Optional[bool] = None


class TaskMove(BaseModel):
    """
    Fields left out keep their current value; an explicit ``parent_id`` of
    null turns a subtask into a root task
    """
    section_id: Optional[str] = None
    parent_id: Optional[str] = None
    order_index: Optional[float] = None


class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=10000)


class CommentResponse(BaseModel):
    id: str
    task_id: str
    user_id: str
    content: str
    author: Optional[str] = None
    avatar: Optional[str] = None
    created_at: Optional[str] = None


class ColumnCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    type: ColumnType = ColumnType.TEXT
    width: Optional[int] = Field(None, ge=40, le=1000)
    visible: bool = True
    options: Optional[Dict[str, Any]] = None


class ColumnUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    width: Optional[int] = Field(None, ge=40, le=1000)
    visible: Optional[bool] = None
    options: Optional[Dict[str, Any]] = None


class ColumnResponse(BaseModel):
    id: str
    project_id: str
    name: str
    type: str
    width: int
    position: int
    visible: bool
    options: Optional[Dict[str, Any]] = None
