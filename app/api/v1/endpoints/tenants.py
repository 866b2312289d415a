"""
Tenant API Endpoints
Workspaces, their members and their projects
"""

from typing import List
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.deps import get_current_user
from app.core.exceptions import BadRequestError
from app.core.permissions import TenantRoleChecker
from app.core.roles import Role, TenantScope
from app.db.database import get_db
from app.models.project import Project
from app.models.user import User
from app.schemas.common import MessageResponse
from app.schemas.invitation import InvitationCreate
from app.schemas.project import ProjectCreate
from app.schemas.tenant import MemberAdd, MemberRoleUpdate, TenantCreate, TenantResponse, TenantUpdate
from app.services.invitation_service import InvitationService
from app.services.membership_service import MembershipService, ResolvedAccess
from app.services.project_service import ProjectService
from app.services.tenant_service import TenantService, serialize_tenant

router = APIRouter()


@router.post("/", response_model=TenantResponse, status_code=status.HTTP_201_CREATED)
async def create_tenant(
    tenant_data: TenantCreate,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db)
):
    """
    Create a workspace; the caller becomes its OWNER
    """
    return await TenantService(session).create_tenant(current_user, tenant_data.name, tenant_data.settings)


@router.get("/", response_model=List[TenantResponse])
async def list_tenants(
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db)
):
    """
    Workspaces the caller belongs to, with the caller's role
    """
    return await TenantService(session).list_for_user(current_user)


@router.get("/{tenant_id}", response_model=TenantResponse)
async def get_tenant(access: ResolvedAccess = Depends(TenantRoleChecker(Role.VIEWER))):
    return serialize_tenant(access.tenant, access.role.value)


@router.patch("/{tenant_id}", response_model=TenantResponse)
async def update_tenant(
    tenant_data: TenantUpdate,
    access: ResolvedAccess = Depends(TenantRoleChecker(Role.ADMIN)),
    session: AsyncSession = Depends(get_db)
):
    """
    Update workspace name or settings

    Requires ADMIN or higher
    """
    return await TenantService(session).update_tenant(access.tenant, tenant_data.model_dump(exclude_unset=True))


@router.get("/{tenant_id}/members")
async def list_tenant_members(
    tenant_id: str,
    access: ResolvedAccess = Depends(TenantRoleChecker(Role.VIEWER)),
    session: AsyncSession = Depends(get_db)
):
    return await MembershipService(session).list_tenant_members(tenant_id)


@router.post("/{tenant_id}/members", status_code=status.HTTP_201_CREATED)
async def add_tenant_member(
    tenant_id: str,
    member_data: MemberAdd,
    access: ResolvedAccess = Depends(TenantRoleChecker(Role.ADMIN)),
    session: AsyncSession = Depends(get_db)
):
    return await MembershipService(session).add_member(
        TenantScope(tenant_id), member_data.user_id, member_data.role, actor=access
    )


@router.patch("/{tenant_id}/members/{user_id}")
async def update_tenant_member_role(
    tenant_id: str,
    user_id: str,
    role_data: MemberRoleUpdate,
    access: ResolvedAccess = Depends(TenantRoleChecker(Role.ADMIN)),
    session: AsyncSession = Depends(get_db)
):
    return await MembershipService(session).update_member_role(
        TenantScope(tenant_id), user_id, role_data.role, actor=access
    )


@router.delete("/{tenant_id}/members/{user_id}", response_model=MessageResponse)
async def remove_tenant_member(
    tenant_id: str,
    user_id: str,
    access: ResolvedAccess = Depends(TenantRoleChecker(Role.VIEWER)),
    session: AsyncSession = Depends(get_db)
):
    """
    Remove a member, or leave the workspace when ``user_id`` is the caller
    """
    return await MembershipService(session).remove_member(TenantScope(tenant_id), user_id, actor=access)


@router.get("/{tenant_id}/projects")
async def list_tenant_projects(
    tenant_id: str,
    access: ResolvedAccess = Depends(TenantRoleChecker(Role.VIEWER)),
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db)
):
    return await ProjectService(session).list_projects(current_user, tenant_id=tenant_id)


@router.post("/{tenant_id}/projects", status_code=status.HTTP_201_CREATED)
async def create_project(
    tenant_id: str,
    project_data: ProjectCreate,
    access: ResolvedAccess = Depends(TenantRoleChecker(Role.MEMBER)),
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db)
):
    """
    Create a project with its default columns and optional sections, tasks
    and invitations, all in one transaction

    Requires MEMBER or higher in the workspace
    """
    data = project_data.model_dump()
    data["sections"] = [s.model_dump() for s in project_data.sections]
    data["tasks"] = [t.model_dump() for t in project_data.tasks]
    return await ProjectService(session).create_project(current_user, tenant_id, data)


@router.post("/{tenant_id}/invitations", status_code=status.HTTP_201_CREATED)
async def create_invitations(
    tenant_id: str,
    invitation_data: InvitationCreate,
    access: ResolvedAccess = Depends(TenantRoleChecker(Role.ADMIN)),
    session: AsyncSession = Depends(get_db)
):
    """
    Invite people to the workspace, or to one of its projects

    Requires ADMIN or higher in the workspace
    """
    if invitation_data.project_id:
        project = await session.get(Project, invitation_data.project_id)
        if not project or project.tenant_id != tenant_id or project.deleted_at is not None:
            raise BadRequestError("Project does not belong to this workspace")

    return await InvitationService(session).create_invitations(
        tenant_id,
        invitation_data.emails,
        invited_by=access.user_id,
        role=invitation_data.role,
        project_id=invitation_data.project_id,
    )
