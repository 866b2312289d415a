"""
Project Member API Endpoints
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.permissions import ProjectRoleChecker
from app.core.roles import ProjectScope, Role
from app.db.database import get_db
from app.schemas.common import MessageResponse
from app.schemas.tenant import MemberAdd, MemberRoleUpdate
from app.services.membership_service import MembershipService, ResolvedAccess

router = APIRouter()


@router.get("/{project_id}/members")
async def list_project_members(
    access: ResolvedAccess = Depends(ProjectRoleChecker(Role.VIEWER)),
    session: AsyncSession = Depends(get_db)
):
    """
    Project members, workspace members with access, and pending invitations
    """
    return await MembershipService(session).list_project_members(access.project)


@router.post("/{project_id}/members", status_code=status.HTTP_201_CREATED)
async def add_project_member(
    project_id: str,
    member_data: MemberAdd,
    access: ResolvedAccess = Depends(ProjectRoleChecker(Role.ADMIN)),
    session: AsyncSession = Depends(get_db)
):
    return await MembershipService(session).add_member(
        ProjectScope(project_id), member_data.user_id, member_data.role, actor=access
    )


@router.patch("/{project_id}/members/{user_id}")
async def update_project_member_role(
    project_id: str,
    user_id: str,
    role_data: MemberRoleUpdate,
    access: ResolvedAccess = Depends(ProjectRoleChecker(Role.ADMIN)),
    session: AsyncSession = Depends(get_db)
):
    """
    Change a member's role

    The caller must outrank the member, and the last OWNER cannot be demoted
    """
    return await MembershipService(session).update_member_role(
        ProjectScope(project_id), user_id, role_data.role, actor=access
    )


@router.delete("/{project_id}/members/{user_id}", response_model=MessageResponse)
async def remove_project_member(
    project_id: str,
    user_id: str,
    access: ResolvedAccess = Depends(ProjectRoleChecker(Role.VIEWER)),
    session: AsyncSession = Depends(get_db)
):
    return await MembershipService(session).remove_member(ProjectScope(project_id), user_id, actor=access)
