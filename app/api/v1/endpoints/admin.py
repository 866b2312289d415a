"""
Super Admin API Endpoints
System-wide dashboard, global templates, users and workspaces
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.deps import require_super_admin
from app.db.database import get_db
from app.models.user import User
from app.schemas.admin import SuperAdminToggle, TemplateCreate, TemplateUpdate
from app.schemas.common import MessageResponse
from app.services.admin_service import SuperAdminService

router = APIRouter()


# ============= Dashboard =============

@router.get("/dashboard")
async def admin_dashboard(
    admin_user: User = Depends(require_super_admin),
    session: AsyncSession = Depends(get_db)
):
    """
    System-wide counts and seven-day signups
    """
    return await SuperAdminService(session).dashboard_stats()


# ============= Global Templates =============

@router.get("/templates/global")
async def list_global_templates(
    category: Optional[str] = Query(None, max_length=50),
    admin_user: User = Depends(require_super_admin),
    session: AsyncSession = Depends(get_db)
):
    return await SuperAdminService(session).list_global_templates(category)


@router.post("/templates/global", status_code=status.HTTP_201_CREATED)
async def create_global_template(
    template_data: TemplateCreate,
    admin_user: User = Depends(require_super_admin),
    session: AsyncSession = Depends(get_db)
):
    """
    Create a template every workspace can clone

    Omitted columns default to the standard project columns
    """
    return await SuperAdminService(session).create_global_template(
        admin_user, template_data.model_dump(mode="json")
    )


@router.patch("/templates/global/{template_id}")
async def update_global_template(
    template_id: str,
    template_data: TemplateUpdate,
    admin_user: User = Depends(require_super_admin),
    session: AsyncSession = Depends(get_db)
):
    return await SuperAdminService(session).update_global_template(
        template_id, template_data.model_dump(mode="json", exclude_unset=True)
    )


@router.delete("/templates/global/{template_id}", response_model=MessageResponse)
async def delete_global_template(
    template_id: str,
    admin_user: User = Depends(require_super_admin),
    session: AsyncSession = Depends(get_db)
):
    return await SuperAdminService(session).delete_global_template(template_id, admin_user.id)


# ============= Users and Workspaces =============

@router.get("/users")
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    search: Optional[str] = Query(None, max_length=255),
    admin_user: User = Depends(require_super_admin),
    session: AsyncSession = Depends(get_db)
):
    return await SuperAdminService(session).list_users(page=page, limit=limit, search=search)


@router.patch("/users/{user_id}/super-admin")
async def toggle_super_admin(
    user_id: str,
    toggle: SuperAdminToggle,
    admin_user: User = Depends(require_super_admin),
    session: AsyncSession = Depends(get_db)
):
    """
    Grant or revoke super admin privileges

    Revoking your own privileges is refused
    """
    return await SuperAdminService(session).set_super_admin(admin_user, user_id, toggle.is_super_admin)


@router.get("/tenants")
async def list_tenants(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    search: Optional[str] = Query(None, max_length=255),
    admin_user: User = Depends(require_super_admin),
    session: AsyncSession = Depends(get_db)
):
    return await SuperAdminService(session).list_tenants(page=page, limit=limit, search=search)
