"""
Project Models
Projects, project-level memberships, custom columns and the activity log
"""

from enum import Enum

from sqlalchemy import Column, String, Text, DateTime, Boolean, Integer, JSON, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid

from app.core.roles import Role
from app.db.database import Base


class ProjectLayout(str, Enum):
    LIST = "LIST"
    BOARD = "BOARD"
    TIMELINE = "TIMELINE"
    CALENDAR = "CALENDAR"


class ProjectStatus(str, Enum):
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"
    ARCHIVED = "ARCHIVED"


class ColumnType(str, Enum):
    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    SELECT = "select"
    USER = "user"
    CHECKBOX = "checkbox"


class Project(Base):
    """Project model; ``deleted_at`` set means the project sits in trash.

    Global templates are templates with no tenant.
    """
    __tablename__ = "projects"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String, ForeignKey("tenants.id", ondelete="CASCADE"))
    name = Column(String(255), nullable=False)
    description = Column(Text)
    color = Column(String(20), default="#4573D2")
    icon = Column(String(50))
    layout = Column(String(20), default=ProjectLayout.LIST.value, nullable=False)
    status = Column(String(20), default=ProjectStatus.ACTIVE.value, nullable=False)
    due_date = Column(DateTime)

    is_template = Column(Boolean, default=False, nullable=False)
    template_category = Column(String(50))
    template_id = Column(String, ForeignKey("projects.id", ondelete="SET NULL"))

    created_by = Column(String, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, onupdate=datetime.utcnow)

    # Soft delete
    deleted_at = Column(DateTime)
    deleted_by = Column(String)

    memberships = relationship("ProjectMembership", back_populates="project", passive_deletes=True)

    __table_args__ = (
        Index("idx_project_tenant", "tenant_id"),
        Index("idx_project_deleted", "deleted_at"),
        Index("idx_project_template", "is_template"),
    )


class ProjectMembership(Base):
    """Project-level role grant"""
    __tablename__ = "project_memberships"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    project_id = Column(String, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(50), nullable=False, default=Role.MEMBER.value)

    joined_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    project = relationship("Project", back_populates="memberships")

    __table_args__ = (
        UniqueConstraint("project_id", "user_id", name="uq_project_membership"),
        Index("idx_project_membership_user", "user_id"),
        Index("idx_project_membership_role", "project_id", "role"),
    )


class ProjectColumn(Base):
    """Custom column shown in the list layout; ``position`` is dense per project"""
    __tablename__ = "project_columns"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    project_id = Column(String, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=False)
    type = Column(String(20), nullable=False, default=ColumnType.TEXT.value)
    width = Column(Integer, default=150, nullable=False)
    position = Column(Integer, nullable=False, default=0)
    visible = Column(Boolean, default=True, nullable=False)
    options = Column(JSON)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_column_project_position", "project_id", "position"),
    )


class ProjectActivity(Base):
    """Append-only project activity log"""
    __tablename__ = "project_activities"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    project_id = Column(String, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String, ForeignKey("users.id", ondelete="SET NULL"))
    type = Column(String(50), nullable=False)
    description = Column(Text, nullable=False)
    details = Column(JSON, default=dict)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("idx_activity_project_created", "project_id", "created_at"),
    )
