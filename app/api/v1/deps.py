from typing import Optional
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.core.exceptions import AuthenticationError, ForbiddenError
from app.db.database import get_db
from app.models.user import User

logger = structlog.get_logger()
security = HTTPBearer(auto_error=False)


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    session: AsyncSession = Depends(get_db),
) -> User:
    """
    Get the authenticated user for the request
    """
    if not getattr(request.state, "is_authenticated", False):
        raise AuthenticationError("Not authenticated")

    user = await session.get(User, request.state.user_id)
    if not user:
        logger.warning("Token subject has no user record", user_id=request.state.user_id)
        raise AuthenticationError("User not found")

    return user


async def require_super_admin(
    current_user: User = Depends(get_current_user),
) -> User:
    """
    Require the system-wide super admin flag
    """
    if not current_user.is_super_admin:
        logger.warning("Super admin route refused", user_id=current_user.id)
        raise ForbiddenError("Super admin privileges required")
    return current_user
