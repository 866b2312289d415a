"""
Invitation Service
Tenant and project invitations keyed by an opaque token
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional
import secrets

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.core.config import settings
from app.core.exceptions import BadRequestError, ForbiddenError, InvitationExpiredError, NotFoundError
from app.core.roles import ProjectScope, Role, RoleLike, TenantScope, parse_membership_role
from app.db.repository import Repository
from app.models.invitation import Invitation, InvitationStatus
from app.models.project import Project, ProjectMembership
from app.models.tenant import Tenant, TenantMembership
from app.models.user import User

logger = structlog.get_logger()


def serialize_invitation(
    invitation: Invitation,
    tenant: Optional[Tenant] = None,
    project: Optional[Project] = None,
    include_link: bool = False,
) -> Dict[str, Any]:
    data = {
        "id": invitation.id,
        "tenant_id": invitation.tenant_id,
        "project_id": invitation.project_id,
        "email": invitation.email,
        "role": invitation.role,
        "status": invitation.status,
        "invited_by": invitation.invited_by,
        "expires_at": invitation.expires_at.isoformat(),
        "accepted_at": invitation.accepted_at.isoformat() if invitation.accepted_at else None,
    }
    if tenant:
        data["tenant_name"] = tenant.name
    if project:
        data["project_name"] = project.name
    if include_link:
        data["invite_url"] = f"{settings.FRONTEND_URL.rstrip('/')}/invitations/{invitation.token}"
    return data


class InvitationService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.repo = Repository(session)

    async def create_invitations(
        self,
        tenant_id: str,
        emails: Iterable[str],
        invited_by: str,
        role: RoleLike = Role.MEMBER,
        project_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Invite each email to the tenant, or to the project when ``project_id``
        is set. Existing members are skipped and pending invitations get a
        fresh expiry.
        """
        if not tenant_id:
            raise BadRequestError("Global templates do not take invitations")
        invite_role = parse_membership_role(role)
        if invite_role == Role.OWNER:
            raise BadRequestError("Invitations cannot grant the OWNER role")

        scope = ProjectScope(project_id) if project_id else TenantScope(tenant_id)
        expires_at = datetime.utcnow() + timedelta(days=settings.INVITATION_EXPIRY_DAYS)

        sent: List[Dict[str, Any]] = []
        skipped: List[str] = []

        for raw_email in emails:
            email = raw_email.strip().lower()
            if not email:
                continue

            user = await self.repo.get_user_by_email(email)
            if user and await self.repo.find_membership(scope, user.id):
                skipped.append(email)
                continue

            invitation = await self._find_pending(tenant_id, project_id, email)
            if invitation:
                invitation.expires_at = expires_at
                invitation.role = invite_role.value
                invitation.invited_by = invited_by
            else:
                invitation = Invitation(
                    tenant_id=tenant_id,
                    project_id=project_id,
                    email=email,
                    role=invite_role.value,
                    token=secrets.token_urlsafe(32),
                    invited_by=invited_by,
                    status=InvitationStatus.PENDING.value,
                    expires_at=expires_at,
                )
                self.session.add(invitation)

            await self.session.flush()
            sent.append(serialize_invitation(invitation, include_link=True))

        logger.info(
            "Invitations sent",
            tenant_id=tenant_id,
            project_id=project_id,
            sent=len(sent),
            skipped=len(skipped),
        )
        return {"invitations": sent, "skipped": skipped}

    async def _find_pending(self, tenant_id: str, project_id: Optional[str], email: str) -> Optional[Invitation]:
        stmt = select(Invitation).where(
            Invitation.tenant_id == tenant_id,
            func.lower(Invitation.email) == email,
            Invitation.status == InvitationStatus.PENDING.value,
        )
        if project_id:
            stmt = stmt.where(Invitation.project_id == project_id)
        else:
            stmt = stmt.where(Invitation.project_id.is_(None))
        return await self.session.scalar(stmt)

    async def _get_by_token(self, token: str) -> Invitation:
        invitation = await self.session.scalar(select(Invitation).where(Invitation.token == token))
        if not invitation:
            raise NotFoundError("Invitation not found")
        return invitation

    async def get_invitation(self, token: str) -> Dict[str, Any]:
        """Public invitation details for the accept screen"""
        invitation = await self._get_by_token(token)
        tenant = await self.session.get(Tenant, invitation.tenant_id)
        project = await self.session.get(Project, invitation.project_id) if invitation.project_id else None

        data = serialize_invitation(invitation, tenant, project)
        data["is_expired"] = invitation.expires_at < datetime.utcnow()
        return data

    async def accept_invitation(self, token: str, user: User) -> Dict[str, Any]:
        """
        Accept an invitation as ``user``.

        Tenant invitations enrol the user in the tenant; project invitations
        enrol them in the project only. An expired invitation raises
        ``InvitationExpiredError`` without touching the session; see
        ``mark_expired``.
        """
        invitation = await self._get_by_token(token)

        if invitation.status == InvitationStatus.ACCEPTED.value:
            raise BadRequestError("Invitation has already been used")

        if invitation.status == InvitationStatus.EXPIRED.value or invitation.expires_at < datetime.utcnow():
            raise InvitationExpiredError(invitation.id)

        if invitation.email.lower() != user.email.lower():
            raise ForbiddenError("This invitation was sent to a different email address")

        if invitation.project_id:
            project = await self.session.get(Project, invitation.project_id)
            if not project or project.deleted_at is not None:
                raise NotFoundError("Project not found")
            if not await self.repo.find_membership(ProjectScope(project.id), user.id):
                self.session.add(
                    ProjectMembership(project_id=project.id, user_id=user.id, role=invitation.role)
                )
        elif not await self.repo.find_membership(TenantScope(invitation.tenant_id), user.id):
            self.session.add(
                TenantMembership(tenant_id=invitation.tenant_id, user_id=user.id, role=invitation.role)
            )

        invitation.status = InvitationStatus.ACCEPTED.value
        invitation.accepted_at = datetime.utcnow()
        await self.session.flush()

        logger.info(
            "Invitation accepted",
            invitation_id=invitation.id,
            user_id=user.id,
            tenant_id=invitation.tenant_id,
            project_id=invitation.project_id,
        )
        return serialize_invitation(invitation)

    async def list_pending_for_user(self, user: User) -> List[Dict[str, Any]]:
        result = await self.session.execute(
            select(Invitation, Tenant)
            .join(Tenant, Tenant.id == Invitation.tenant_id)
            .where(
                func.lower(Invitation.email) == user.email.lower(),
                Invitation.status == InvitationStatus.PENDING.value,
                Invitation.expires_at > datetime.utcnow(),
            )
            .order_by(Invitation.created_at.desc())
        )
        return [serialize_invitation(invitation, tenant) for invitation, tenant in result.all()]

    @staticmethod
    async def expire_stale(session: AsyncSession, now: Optional[datetime] = None) -> int:
        """Flip pending invitations past ``expires_at`` to EXPIRED"""
        result = await session.execute(
            update(Invitation)
            .where(
                Invitation.status == InvitationStatus.PENDING.value,
                Invitation.expires_at < (now or datetime.utcnow()),
            )
            .values(status=InvitationStatus.EXPIRED.value)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    @staticmethod
    async def mark_expired(session: AsyncSession, invitation_id: str) -> bool:
        """Flip one pending invitation to EXPIRED; False when it was no longer pending"""
        result = await session.execute(
            update(Invitation)
            .where(
                Invitation.id == invitation_id,
                Invitation.status == InvitationStatus.PENDING.value,
            )
            .values(status=InvitationStatus.EXPIRED.value)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0
