"""
Membership Service
Resolves a user's effective role for a tenant or project and manages
tenant and project memberships.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.core.config import settings
from app.core.exceptions import (
    BadRequestError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
)
from app.core.roles import (
    ProjectScope,
    Role,
    RoleLike,
    Scope,
    TenantScope,
    can_manage,
    has_minimum_role,
    parse_membership_role,
)
from app.db.repository import Membership, Repository
from app.models.invitation import Invitation, InvitationStatus
from app.models.project import Project, ProjectMembership
from app.models.tenant import Tenant, TenantMembership
from app.models.user import User

logger = structlog.get_logger()


@dataclass
class ResolvedAccess:
    """Outcome of a successful role resolution"""
    user_id: str
    role: Role
    scope: Scope
    tenant_id: Optional[str]
    tenant_role: Optional[Role] = None
    project: Optional[Project] = None
    tenant: Optional[Tenant] = None
    membership: Optional[Membership] = None

    @property
    def is_super_admin(self) -> bool:
        return self.role == Role.SUPER_ADMIN


class MembershipResolver:
    """
    Determines a user's effective role for a scope.

    Tenant scope: super admin, then the tenant membership.
    Project scope: trashed projects are absent, then super admin, then the
    tenant membership (it grants every project in the tenant at its own
    rank), then the project membership.
    """

    def __init__(self, session: AsyncSession, repository: Optional[Repository] = None):
        self.session = session
        self.repo = repository or Repository(session)

    async def resolve(self, user: User, scope: Scope, allow_deleted: bool = False) -> ResolvedAccess:
        if isinstance(scope, ProjectScope):
            return await self._resolve_project(user, scope, allow_deleted)
        if isinstance(scope, TenantScope):
            return await self._resolve_tenant(user, scope)
        raise BadRequestError("Tenant or project scope is required")

    async def resolve_role(self, user: User, scope: Scope) -> Role:
        access = await self.resolve(user, scope)
        return access.role

    async def require(
        self,
        user: User,
        scope: Scope,
        minimum: Role,
        allow_deleted: bool = False,
    ) -> ResolvedAccess:
        """Resolve and reject with Forbidden when the role ranks below ``minimum``"""
        access = await self.resolve(user, scope, allow_deleted=allow_deleted)
        if not has_minimum_role(access.role, minimum):
            logger.warning(
                "Insufficient role",
                user_id=user.id,
                role=access.role.value,
                required=minimum.value,
                tenant_id=access.tenant_id,
            )
            raise ForbiddenError(f"Access denied: requires {minimum.value} role or higher")
        return access

    async def _resolve_tenant(self, user: User, scope: TenantScope) -> ResolvedAccess:
        if not scope.tenant_id:
            raise BadRequestError("Tenant ID is required")

        tenant = await self.repo.find_tenant(scope.tenant_id)
        if not tenant:
            raise NotFoundError("Tenant not found")

        if user.is_super_admin:
            return ResolvedAccess(
                user_id=user.id,
                role=Role.SUPER_ADMIN,
                scope=scope,
                tenant_id=tenant.id,
                tenant_role=Role.SUPER_ADMIN,
                tenant=tenant,
            )

        membership = await self.repo.find_membership(scope, user.id)
        if not membership:
            raise ForbiddenError("You do not have access to this workspace")

        role = Role.parse(membership.role)
        return ResolvedAccess(
            user_id=user.id,
            role=role,
            scope=scope,
            tenant_id=tenant.id,
            tenant_role=role,
            tenant=tenant,
            membership=membership,
        )

    async def _resolve_project(self, user: User, scope: ProjectScope, allow_deleted: bool) -> ResolvedAccess:
        if not scope.project_id:
            raise BadRequestError("Project ID is required")

        project = await self.repo.find_project(scope.project_id)
        if not project:
            raise NotFoundError("Project not found")

        trashed = project.deleted_at is not None and not allow_deleted

        if user.is_super_admin and (not trashed or settings.SUPER_ADMIN_SEES_TRASHED_PROJECTS):
            return ResolvedAccess(
                user_id=user.id,
                role=Role.SUPER_ADMIN,
                scope=scope,
                tenant_id=project.tenant_id,
                tenant_role=Role.SUPER_ADMIN,
                project=project,
            )

        if trashed:
            raise NotFoundError("Project has been deleted")

        tenant_membership = None
        if project.tenant_id is not None:
            tenant_membership = await self.repo.find_membership(TenantScope(project.tenant_id), user.id)
        if tenant_membership:
            role = Role.parse(tenant_membership.role)
            return ResolvedAccess(
                user_id=user.id,
                role=role,
                scope=scope,
                tenant_id=project.tenant_id,
                tenant_role=role,
                project=project,
                membership=tenant_membership,
            )

        project_membership = await self.repo.find_membership(scope, user.id)
        if not project_membership:
            raise ForbiddenError("You do not have access to this project")

        return ResolvedAccess(
            user_id=user.id,
            role=Role.parse(project_membership.role),
            scope=scope,
            tenant_id=project.tenant_id,
            project=project,
            membership=project_membership,
        )


def serialize_member(membership: Membership, user: Optional[User], source: str) -> Dict[str, Any]:
    return {
        "id": membership.id,
        "user_id": membership.user_id,
        "role": membership.role,
        "source": source,
        "joined_at": membership.joined_at.isoformat() if membership.joined_at else None,
        "user": {
            "id": user.id,
            "email": user.email,
            "full_name": user.full_name,
            "avatar_url": user.avatar_url,
        } if user else None,
    }


class MembershipService:
    """Adds, re-roles and removes tenant and project members"""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.repo = Repository(session)

    async def list_tenant_members(self, tenant_id: str) -> List[Dict[str, Any]]:
        result = await self.session.execute(
            select(TenantMembership, User)
            .join(User, User.id == TenantMembership.user_id)
            .where(TenantMembership.tenant_id == tenant_id)
            .order_by(TenantMembership.joined_at.asc())
        )
        return [serialize_member(m, u, "tenant") for m, u in result.all()]

    async def list_project_members(self, project: Project) -> Dict[str, Any]:
        """
        Everyone with access to the project: direct members, tenant members
        (who reach every project in the tenant) and pending invitations.
        """
        project_rows = await self.session.execute(
            select(ProjectMembership, User)
            .join(User, User.id == ProjectMembership.user_id)
            .where(ProjectMembership.project_id == project.id)
            .order_by(ProjectMembership.joined_at.asc())
        )
        members = [serialize_member(m, u, "project") for m, u in project_rows.all()]
        seen = {member["user_id"] for member in members}

        for member in await self.list_tenant_members(project.tenant_id):
            if member["user_id"] not in seen:
                members.append(member)

        invitations = await self.session.execute(
            select(Invitation).where(
                Invitation.project_id == project.id,
                Invitation.status == InvitationStatus.PENDING.value,
                Invitation.expires_at > datetime.utcnow(),
            )
        )
        pending = [
            {
                "id": invitation.id,
                "email": invitation.email,
                "role": invitation.role,
                "expires_at": invitation.expires_at.isoformat(),
            }
            for invitation in invitations.scalars().all()
        ]

        return {"members": members, "pending_invitations": pending}

    async def add_member(
        self,
        scope: Scope,
        user_id: str,
        role: RoleLike,
        actor: Optional[ResolvedAccess] = None,
    ) -> Dict[str, Any]:
        """Create a membership; an actor can grant at most its own role"""
        new_role = parse_membership_role(role)

        if actor is not None and not has_minimum_role(actor.role, new_role):
            raise ForbiddenError(f"Cannot grant a role above your own ({actor.role.value})")

        user = await self.repo.get_user(user_id)
        if not user:
            raise NotFoundError("User not found")

        if await self.repo.find_membership(scope, user_id):
            raise ConflictError("User is already a member")

        if isinstance(scope, TenantScope):
            membership = TenantMembership(tenant_id=scope.tenant_id, user_id=user_id, role=new_role.value)
        else:
            membership = ProjectMembership(project_id=scope.project_id, user_id=user_id, role=new_role.value)

        self.session.add(membership)
        try:
            await self.session.flush()
        except IntegrityError:
            raise ConflictError("User is already a member")

        logger.info(
            "Member added",
            scope=type(scope).__name__,
            user_id=user_id,
            role=new_role.value,
            added_by=actor.user_id if actor else None,
        )
        return serialize_member(membership, user, "tenant" if isinstance(scope, TenantScope) else "project")

    async def update_member_role(
        self,
        scope: Scope,
        user_id: str,
        role: RoleLike,
        actor: Optional[ResolvedAccess] = None,
    ) -> Dict[str, Any]:
        new_role = parse_membership_role(role)
        membership = await self._get_membership(scope, user_id)

        if actor is not None:
            if actor.user_id == user_id:
                raise BadRequestError("Cannot change your own role")
            self._check_can_manage(actor, membership)
            if not has_minimum_role(actor.role, new_role):
                raise ForbiddenError(f"Cannot grant a role above your own ({actor.role.value})")

        if membership.role == Role.OWNER.value and new_role != Role.OWNER:
            await self._ensure_not_last_owner(scope)

        old_role = membership.role
        membership.role = new_role.value
        await self.session.flush()

        logger.info(
            "Member role updated",
            scope=type(scope).__name__,
            user_id=user_id,
            old_role=old_role,
            new_role=new_role.value,
        )
        user = await self.repo.get_user(user_id)
        return serialize_member(membership, user, "tenant" if isinstance(scope, TenantScope) else "project")

    async def remove_member(
        self,
        scope: Scope,
        user_id: str,
        actor: Optional[ResolvedAccess] = None,
    ) -> Dict[str, str]:
        """Remove a membership; members may always remove themselves (leave)"""
        membership = await self._get_membership(scope, user_id)

        if actor is not None and actor.user_id != user_id:
            self._check_can_manage(actor, membership)

        if membership.role == Role.OWNER.value:
            await self._ensure_not_last_owner(scope)

        await self.session.delete(membership)
        await self.session.flush()

        logger.info("Member removed", scope=type(scope).__name__, user_id=user_id)
        return {"message": "Member removed successfully"}

    async def _get_membership(self, scope: Scope, user_id: str) -> Membership:
        membership = await self.repo.find_membership(scope, user_id)
        if not membership:
            raise NotFoundError("Member not found")
        return membership

    def _check_can_manage(self, actor: ResolvedAccess, membership: Membership) -> None:
        if not can_manage(actor.role, membership.role):
            raise ForbiddenError("Insufficient permissions to manage this member")

    async def _ensure_not_last_owner(self, scope: Scope) -> None:
        owners = await self.repo.count_role_holders(scope, Role.OWNER.value)
        if owners <= 1:
            target = "workspace" if isinstance(scope, TenantScope) else "project"
            raise ConflictError(f"Cannot remove or demote the last owner of this {target}")
