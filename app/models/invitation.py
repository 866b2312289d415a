"""
Invitation Model
Token-keyed tenant or project invitations
"""

from enum import Enum

from sqlalchemy import Column, String, DateTime, ForeignKey, Index
from datetime import datetime
import uuid

from app.core.roles import Role
from app.db.database import Base


class InvitationStatus(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    EXPIRED = "EXPIRED"


class Invitation(Base):
    """Invitation; project-level when ``project_id`` is set, tenant-level otherwise"""
    __tablename__ = "invitations"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    project_id = Column(String, ForeignKey("projects.id", ondelete="CASCADE"))
    email = Column(String(255), nullable=False)
    role = Column(String(50), nullable=False, default=Role.MEMBER.value)
    token = Column(String(255), unique=True, nullable=False)
    invited_by = Column(String, ForeignKey("users.id", ondelete="SET NULL"))
    status = Column(String(20), nullable=False, default=InvitationStatus.PENDING.value)

    expires_at = Column(DateTime, nullable=False)
    accepted_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("idx_invitation_email_status", "email", "status"),
        Index("idx_invitation_tenant", "tenant_id"),
        Index("idx_invitation_project", "project_id"),
    )
