"""
Invitation API Endpoints
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.api.v1.deps import get_current_user
from app.core.exceptions import InvitationExpiredError
from app.db.database import get_db
from app.models.user import User
from app.services.invitation_service import InvitationService

router = APIRouter()
logger = structlog.get_logger()


@router.get("/")
async def list_my_invitations(
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db)
):
    """
    Pending, unexpired invitations addressed to the caller's email
    """
    return await InvitationService(session).list_pending_for_user(current_user)


@router.get("/{token}")
async def get_invitation(
    token: str,
    session: AsyncSession = Depends(get_db)
):
    """
    Invitation details for the accept screen; no authentication required
    """
    return await InvitationService(session).get_invitation(token)


@router.post("/{token}/accept")
async def accept_invitation(
    token: str,
    request: Request,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db)
):
    """
    Accept an invitation

    The caller's email must match the invited address. Workspace invitations
    add a workspace membership; project invitations add a project membership.
    """
    try:
        return await InvitationService(session).accept_invitation(token, current_user)
    except InvitationExpiredError as e:
        # The request transaction rolls back on this error; the expiry gets its own
        async with request.app.state.db.transaction() as expiry_session:
            await InvitationService.mark_expired(expiry_session, e.invitation_id)
        logger.info("Invitation expired on accept", invitation_id=e.invitation_id, user_id=current_user.id)
        raise
