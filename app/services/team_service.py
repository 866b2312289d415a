"""
Team Service
Teams inside a tenant; team roles are ADMIN and MEMBER and every team keeps
at least one ADMIN.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.core.exceptions import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from app.core.roles import Role, TeamRole, TenantScope, has_minimum_role
from app.db.repository import Repository
from app.models.team import Team, TeamMember
from app.models.user import User
from app.services.membership_service import ResolvedAccess

logger = structlog.get_logger()


def _parse_team_role(role: Optional[str]) -> TeamRole:
    if role is None:
        return TeamRole.MEMBER
    if isinstance(role, TeamRole):
        return role
    try:
        return TeamRole(str(role).upper())
    except ValueError:
        raise BadRequestError(f"Invalid role. Must be one of: {', '.join(r.value for r in TeamRole)}")


def serialize_team(team: Team, member_count: Optional[int] = None) -> Dict[str, Any]:
    data = {
        "id": team.id,
        "tenant_id": team.tenant_id,
        "name": team.name,
        "description": team.description,
        "created_by": team.created_by,
        "created_at": team.created_at.isoformat() if team.created_at else None,
    }
    if member_count is not None:
        data["member_count"] = member_count
    return data


class TeamService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.repo = Repository(session)

    async def get_team(self, team_id: str, tenant_id: Optional[str] = None) -> Team:
        team = await self.session.get(Team, team_id)
        if not team or (tenant_id and team.tenant_id != tenant_id):
            raise NotFoundError("Team not found")
        return team

    async def _team_member(self, team_id: str, user_id: str) -> Optional[TeamMember]:
        return await self.session.scalar(
            select(TeamMember).where(TeamMember.team_id == team_id, TeamMember.user_id == user_id)
        )

    async def _require_team_admin(self, team: Team, access: ResolvedAccess) -> None:
        """Team admins, and tenant admins and above, manage a team"""
        if has_minimum_role(access.role, Role.ADMIN):
            return
        membership = await self._team_member(team.id, access.user_id)
        if not membership or membership.role != TeamRole.ADMIN.value:
            raise ForbiddenError("Only team admins can manage this team")

    async def _ensure_not_last_admin(self, team_id: str) -> None:
        admins = await self.session.scalar(
            select(func.count(TeamMember.id)).where(
                TeamMember.team_id == team_id,
                TeamMember.role == TeamRole.ADMIN.value,
            )
        )
        if admins <= 1:
            raise ConflictError("Cannot remove or demote the last admin. Promote another member first.")

    async def list_teams(self, tenant_id: str) -> List[Dict[str, Any]]:
        counts = (
            select(TeamMember.team_id, func.count(TeamMember.id).label("members"))
            .group_by(TeamMember.team_id)
            .subquery()
        )
        result = await self.session.execute(
            select(Team, func.coalesce(counts.c.members, 0))
            .outerjoin(counts, counts.c.team_id == Team.id)
            .where(Team.tenant_id == tenant_id)
            .order_by(Team.name.asc())
        )
        return [serialize_team(team, count) for team, count in result.all()]

    async def create_team(
        self,
        tenant_id: str,
        creator: User,
        name: str,
        description: Optional[str] = None,
    ) -> Dict[str, Any]:
        if not name or not name.strip():
            raise BadRequestError("Team name is required")

        team = Team(tenant_id=tenant_id, name=name.strip(), description=description, created_by=creator.id)
        self.session.add(team)
        await self.session.flush()

        self.session.add(TeamMember(team_id=team.id, user_id=creator.id, role=TeamRole.ADMIN.value))
        await self.session.flush()

        logger.info("Team created", team_id=team.id, tenant_id=tenant_id, user_id=creator.id)
        return serialize_team(team, 1)

    async def get_team_detail(self, team: Team) -> Dict[str, Any]:
        result = await self.session.execute(
            select(TeamMember, User)
            .join(User, User.id == TeamMember.user_id)
            .where(TeamMember.team_id == team.id)
            .order_by(TeamMember.joined_at.asc())
        )
        members = [
            {
                "id": member.id,
                "user_id": member.user_id,
                "role": member.role,
                "email": user.email,
                "full_name": user.full_name,
                "avatar_url": user.avatar_url,
            }
            for member, user in result.all()
        ]
        data = serialize_team(team, len(members))
        data["members"] = members
        return data

    async def update_team(self, team: Team, access: ResolvedAccess, changes: Dict[str, Any]) -> Dict[str, Any]:
        await self._require_team_admin(team, access)
        if changes.get("name"):
            team.name = changes["name"].strip()
        if "description" in changes:
            team.description = changes["description"]
        await self.session.flush()
        return serialize_team(team)

    async def delete_team(self, team: Team, access: ResolvedAccess) -> Dict[str, str]:
        await self._require_team_admin(team, access)
        await self.session.delete(team)
        await self.session.flush()

        logger.info("Team deleted", team_id=team.id, user_id=access.user_id)
        return {"message": "Team deleted successfully"}

    async def add_member(
        self,
        team: Team,
        access: ResolvedAccess,
        user_id: str,
        role: Optional[str] = None,
    ) -> Dict[str, Any]:
        team_role = _parse_team_role(role)
        await self._require_team_admin(team, access)

        if not await self.repo.find_membership(TenantScope(team.tenant_id), user_id):
            raise BadRequestError("User is not part of this workspace")
        if await self._team_member(team.id, user_id):
            raise ConflictError("User is already a team member")

        member = TeamMember(team_id=team.id, user_id=user_id, role=team_role.value)
        self.session.add(member)
        await self.session.flush()

        logger.info("Team member added", team_id=team.id, user_id=user_id, role=team_role.value)
        return {"id": member.id, "team_id": team.id, "user_id": user_id, "role": member.role}

    async def update_member_role(
        self,
        team: Team,
        access: ResolvedAccess,
        user_id: str,
        role: str,
    ) -> Dict[str, Any]:
        team_role = _parse_team_role(role)
        await self._require_team_admin(team, access)

        member = await self._team_member(team.id, user_id)
        if not member:
            raise NotFoundError("Member not found")

        if member.role == TeamRole.ADMIN.value and team_role != TeamRole.ADMIN:
            await self._ensure_not_last_admin(team.id)

        member.role = team_role.value
        await self.session.flush()
        return {"id": member.id, "team_id": team.id, "user_id": user_id, "role": member.role}

    async def remove_member(self, team: Team, access: ResolvedAccess, user_id: str) -> Dict[str, str]:
        await self._require_team_admin(team, access)

        member = await self._team_member(team.id, user_id)
        if not member:
            raise NotFoundError("Member not found")

        if member.role == TeamRole.ADMIN.value:
            await self._ensure_not_last_admin(team.id)

        await self.session.delete(member)
        await self.session.flush()

        logger.info("Team member removed", team_id=team.id, user_id=user_id)
        return {"message": "Member removed successfully"}
