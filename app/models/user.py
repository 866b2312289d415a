"""
User Model
Identity records referenced by memberships, tasks and comments
"""

from sqlalchemy import Column, String, DateTime, Boolean, Index
from datetime import datetime
import uuid

from app.db.database import Base


class User(Base):
    """Application user"""
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), unique=True, nullable=False)
    full_name = Column(String(255))
    avatar_url = Column(String(1024))

    # System-wide flag; bypasses membership checks
    is_super_admin = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_user_email", "email"),
    )
