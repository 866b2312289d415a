"""
Team API Endpoints
Teams group members of a workspace
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.deps import get_current_user
from app.core.permissions import TenantRoleChecker
from app.core.roles import Role
from app.db.database import get_db
from app.models.user import User
from app.schemas.common import MessageResponse
from app.schemas.team import TeamCreate, TeamMemberAdd, TeamMemberRoleUpdate, TeamUpdate
from app.services.membership_service import ResolvedAccess
from app.services.team_service import TeamService

router = APIRouter()


@router.get("/{tenant_id}/teams")
async def list_teams(
    tenant_id: str,
    access: ResolvedAccess = Depends(TenantRoleChecker(Role.VIEWER)),
    session: AsyncSession = Depends(get_db)
):
    return await TeamService(session).list_teams(tenant_id)


@router.post("/{tenant_id}/teams", status_code=status.HTTP_201_CREATED)
async def create_team(
    tenant_id: str,
    team_data: TeamCreate,
    access: ResolvedAccess = Depends(TenantRoleChecker(Role.MEMBER)),
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db)
):
    """
    Create a team; the creator becomes its ADMIN
    """
    return await TeamService(session).create_team(tenant_id, current_user, team_data.name, team_data.description)


@router.get("/{tenant_id}/teams/{team_id}")
async def get_team(
    tenant_id: str,
    team_id: str,
    access: ResolvedAccess = Depends(TenantRoleChecker(Role.VIEWER)),
    session: AsyncSession = Depends(get_db)
):
    service = TeamService(session)
    team = await service.get_team(team_id, tenant_id)
    return await service.get_team_detail(team)


@router.patch("/{tenant_id}/teams/{team_id}")
async def update_team(
    tenant_id: str,
    team_id: str,
    team_data: TeamUpdate,
    access: ResolvedAccess = Depends(TenantRoleChecker(Role.MEMBER)),
    session: AsyncSession = Depends(get_db)
):
    service = TeamService(session)
    team = await service.get_team(team_id, tenant_id)
    return await service.update_team(team, access, team_data.model_dump(exclude_unset=True))


@router.delete("/{tenant_id}/teams/{team_id}", response_model=MessageResponse)
async def delete_team(
    tenant_id: str,
    team_id: str,
    access: ResolvedAccess = Depends(TenantRoleChecker(Role.MEMBER)),
    session: AsyncSession = Depends(get_db)
):
    service = TeamService(session)
    team = await service.get_team(team_id, tenant_id)
    return await service.delete_team(team, access)


@router.post("/{tenant_id}/teams/{team_id}/members", status_code=status.HTTP_201_CREATED)
async def add_team_member(
    tenant_id: str,
    team_id: str,
    member_data: TeamMemberAdd,
    access: ResolvedAccess = Depends(TenantRoleChecker(Role.MEMBER)),
    session: AsyncSession = Depends(get_db)
):
    """
    Add a workspace member to a team

    Requires team ADMIN, or workspace ADMIN or higher
    """
    service = TeamService(session)
    team = await service.get_team(team_id, tenant_id)
    return await service.add_member(team, access, member_data.user_id, member_data.role.value)


@router.patch("/{tenant_id}/teams/{team_id}/members/{user_id}")
async def update_team_member_role(
    tenant_id: str,
    team_id: str,
    user_id: str,
    role_data: TeamMemberRoleUpdate,
    access: ResolvedAccess = Depends(TenantRoleChecker(Role.MEMBER)),
    session: AsyncSession = Depends(get_db)
):
    service = TeamService(session)
    team = await service.get_team(team_id, tenant_id)
    return await service.update_member_role(team, access, user_id, role_data.role.value)


@router.delete("/{tenant_id}/teams/{team_id}/members/{user_id}", response_model=MessageResponse)
async def remove_team_member(
    tenant_id: str,
    team_id: str,
    user_id: str,
    access: ResolvedAccess = Depends(TenantRoleChecker(Role.MEMBER)),
    session: AsyncSession = Depends(get_db)
):
    service = TeamService(session)
    team = await service.get_team(team_id, tenant_id)
    return await service.remove_member(team, access, user_id)
