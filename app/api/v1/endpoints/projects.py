"""
Project API Endpoints
Project board, settings, status, trash and templates
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.deps import get_current_user
from app.core.permissions import ProjectRoleChecker
from app.core.roles import Role, TenantScope
from app.db.database import get_db
from app.models.user import User
from app.schemas.common import MessageResponse
from app.schemas.invitation import InvitationCreate
from app.schemas.project import ProjectDueDateUpdate, ProjectStatusUpdate, ProjectUpdate, TemplateClone
from app.services.invitation_service import InvitationService
from app.services.membership_service import MembershipResolver, ResolvedAccess
from app.services.project_service import ProjectService

router = APIRouter()


@router.get("/")
async def list_projects(
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db)
):
    """
    Projects the caller can open across all workspaces
    """
    return await ProjectService(session).list_projects(current_user)


@router.get("/trash")
async def list_trash(
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db)
):
    """
    Trashed projects the caller owns, with days left before permanent deletion
    """
    return await ProjectService(session).list_trash(current_user)


@router.get("/templates")
async def list_templates(
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db)
):
    return await ProjectService(session).list_templates()


@router.post("/templates/{template_id}/clone", status_code=status.HTTP_201_CREATED)
async def clone_template(
    template_id: str,
    clone_data: TemplateClone,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db)
):
    """
    Create a project in a workspace from a template

    Requires MEMBER or higher in the target workspace
    """
    await MembershipResolver(session).require(current_user, TenantScope(clone_data.tenant_id), Role.MEMBER)
    return await ProjectService(session).clone_template(
        current_user, template_id, clone_data.tenant_id, clone_data.name
    )


@router.get("/{project_id}")
async def get_project(
    access: ResolvedAccess = Depends(ProjectRoleChecker(Role.VIEWER)),
    session: AsyncSession = Depends(get_db)
):
    """
    Full project board: project, sections, nested tasks, columns and members
    """
    return await ProjectService(session).get_project_board(access)


@router.patch("/{project_id}")
async def update_project(
    project_data: ProjectUpdate,
    access: ResolvedAccess = Depends(ProjectRoleChecker(Role.ADMIN)),
    session: AsyncSession = Depends(get_db)
):
    return await ProjectService(session).update_project(access.project, project_data.model_dump(exclude_unset=True))


@router.patch("/{project_id}/status")
async def update_project_status(
    status_data: ProjectStatusUpdate,
    access: ResolvedAccess = Depends(ProjectRoleChecker(Role.ADMIN)),
    session: AsyncSession = Depends(get_db)
):
    return await ProjectService(session).update_status(access.project, status_data.status.value, access.user_id)


@router.patch("/{project_id}/due-date")
async def update_project_due_date(
    due_date_data: ProjectDueDateUpdate,
    access: ResolvedAccess = Depends(ProjectRoleChecker(Role.ADMIN)),
    session: AsyncSession = Depends(get_db)
):
    return await ProjectService(session).update_due_date(access.project, due_date_data.due_date, access.user_id)


@router.get("/{project_id}/activities")
async def list_project_activity(
    project_id: str,
    limit: Optional[int] = Query(None, ge=1),
    access: ResolvedAccess = Depends(ProjectRoleChecker(Role.VIEWER)),
    session: AsyncSession = Depends(get_db)
):
    return await ProjectService(session).list_activity(project_id, limit=limit)


@router.post("/{project_id}/invitations", status_code=status.HTTP_201_CREATED)
async def invite_to_project(
    project_id: str,
    invitation_data: InvitationCreate,
    access: ResolvedAccess = Depends(ProjectRoleChecker(Role.ADMIN)),
    session: AsyncSession = Depends(get_db)
):
    """
    Invite people to this project only

    Requires ADMIN or higher on the project
    """
    return await InvitationService(session).create_invitations(
        access.tenant_id,
        invitation_data.emails,
        invited_by=access.user_id,
        role=invitation_data.role,
        project_id=project_id,
    )


@router.post("/{project_id}/trash")
async def move_to_trash(
    access: ResolvedAccess = Depends(ProjectRoleChecker(Role.OWNER)),
    session: AsyncSession = Depends(get_db)
):
    """
    Move a project to trash; it is purged after the retention window

    Requires OWNER
    """
    return await ProjectService(session).move_to_trash(access.project, access.user_id)


@router.post("/{project_id}/restore")
async def restore_from_trash(
    project_id: str,
    access: ResolvedAccess = Depends(ProjectRoleChecker(Role.OWNER, allow_deleted=True)),
    session: AsyncSession = Depends(get_db)
):
    return await ProjectService(session).restore(project_id, access.user_id)


@router.delete("/{project_id}/permanent", response_model=MessageResponse)
async def permanent_delete(
    project_id: str,
    access: ResolvedAccess = Depends(ProjectRoleChecker(Role.OWNER, allow_deleted=True)),
    session: AsyncSession = Depends(get_db)
):
    """
    Permanently delete a project that is already in trash
    """
    return await ProjectService(session).permanent_delete(project_id)
