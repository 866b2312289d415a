"""
Tenant Models
Workspaces and their tenant-level memberships
"""

from sqlalchemy import Column, String, DateTime, JSON, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid

from app.core.roles import Role
from app.db.database import Base


class Tenant(Base):
    """Workspace (tenant) model"""
    __tablename__ = "tenants"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)
    slug = Column(String(255), unique=True, nullable=False, index=True)
    owner_id = Column(String, ForeignKey("users.id"), nullable=False)

    settings = Column(JSON, default=dict)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, onupdate=datetime.utcnow)

    memberships = relationship("TenantMembership", back_populates="tenant", passive_deletes=True)

    __table_args__ = (
        Index("idx_tenant_owner", "owner_id"),
    )


class TenantMembership(Base):
    """Tenant-level role grant; applies to every project in the tenant"""
    __tablename__ = "tenant_memberships"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(50), nullable=False, default=Role.MEMBER.value)

    joined_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    tenant = relationship("Tenant", back_populates="memberships")

    __table_args__ = (
        UniqueConstraint("tenant_id", "user_id", name="uq_tenant_membership"),
        Index("idx_tenant_membership_user", "user_id"),
        Index("idx_tenant_membership_role", "tenant_id", "role"),
    )
