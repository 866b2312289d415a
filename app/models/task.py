"""
Section and Task Models
Sections hold dense positions; tasks form a tree through ``parent_id``
and order siblings by a fractional ``order_index``.
"""

from enum import Enum

from sqlalchemy import Column, String, Text, DateTime, Boolean, Integer, Float, JSON, ForeignKey, Index
from datetime import datetime
import uuid

from app.db.database import Base


class TaskType(str, Enum):
    TASK = "TASK"
    MILESTONE = "MILESTONE"
    APPROVAL = "APPROVAL"


class TaskPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class TaskStatus(str, Enum):
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    IN_REVIEW = "IN_REVIEW"
    DONE = "DONE"


class Section(Base):
    """Ordered task grouping within a project"""
    __tablename__ = "sections"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    project_id = Column(String, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=False)
    color = Column(String(20))
    position = Column(Integer, nullable=False, default=0)
    is_collapsed = Column(Boolean, default=False, nullable=False)
    kanban_wip_limit = Column(Integer)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_section_project_position", "project_id", "position"),
    )


class Task(Base):
    """Task or subtask"""
    __tablename__ = "tasks"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    project_id = Column(String, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    section_id = Column(String, ForeignKey("sections.id", ondelete="SET NULL"))
    parent_id = Column(String, ForeignKey("tasks.id", ondelete="CASCADE"))

    # Depth from the root task (0) and sibling ordering key
    level = Column(Integer, nullable=False, default=0)
    order_index = Column(Float, nullable=False, default=0)

    title = Column(String(500), nullable=False)
    description = Column(Text)
    type = Column(String(20), default=TaskType.TASK.value, nullable=False)
    assignee_id = Column(String, ForeignKey("users.id", ondelete="SET NULL"))
    start_date = Column(DateTime)
    due_date = Column(DateTime)
    priority = Column(String(20))
    status = Column(String(20), default=TaskStatus.TODO.value, nullable=False)
    completed = Column(Boolean, default=False, nullable=False)
    completed_at = Column(DateTime)
    tags = Column(JSON, default=list)
    custom_fields = Column(JSON, default=dict)

    created_by = Column(String, ForeignKey("users.id", ondelete="SET NULL"))
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_task_project", "project_id"),
        Index("idx_task_siblings", "project_id", "section_id", "parent_id", "order_index"),
        Index("idx_task_parent", "parent_id"),
        Index("idx_task_assignee", "assignee_id"),
    )


class TaskComment(Base):
    """Comment on a task"""
    __tablename__ = "task_comments"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    task_id = Column(String, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    content = Column(Text, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_comment_task_created", "task_id", "created_at"),
    )
