"""
Tenant Service
Workspace creation and settings; the creator is enrolled as OWNER
"""

from typing import Any, Dict, List, Optional
import re
import secrets

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.core.exceptions import BadRequestError
from app.core.roles import Role
from app.models.tenant import Tenant, TenantMembership
from app.models.user import User

logger = structlog.get_logger()


def slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or "workspace"


def serialize_tenant(tenant: Tenant, role: Optional[str] = None) -> Dict[str, Any]:
    data = {
        "id": tenant.id,
        "name": tenant.name,
        "slug": tenant.slug,
        "owner_id": tenant.owner_id,
        "settings": tenant.settings or {},
        "created_at": tenant.created_at.isoformat() if tenant.created_at else None,
    }
    if role is not None:
        data["role"] = role
    return data


class TenantService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def _unique_slug(self, name: str) -> str:
        base = slugify(name)
        slug = base
        while await self.session.scalar(select(Tenant.id).where(Tenant.slug == slug)):
            slug = f"{base}-{secrets.token_hex(3)}"
        return slug

    async def create_tenant(self, owner: User, name: str, settings: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if not name or not name.strip():
            raise BadRequestError("Workspace name is required")

        tenant = Tenant(
            name=name.strip(),
            slug=await self._unique_slug(name),
            owner_id=owner.id,
            settings=settings or {},
        )
        self.session.add(tenant)
        await self.session.flush()

        self.session.add(TenantMembership(tenant_id=tenant.id, user_id=owner.id, role=Role.OWNER.value))
        await self.session.flush()

        logger.info("Tenant created", tenant_id=tenant.id, owner_id=owner.id)
        return serialize_tenant(tenant, Role.OWNER.value)

    async def list_for_user(self, user: User) -> List[Dict[str, Any]]:
        if user.is_super_admin:
            result = await self.session.execute(select(Tenant).order_by(Tenant.name.asc()))
            return [serialize_tenant(t, Role.SUPER_ADMIN.value) for t in result.scalars().all()]

        result = await self.session.execute(
            select(Tenant, TenantMembership.role)
            .join(TenantMembership, TenantMembership.tenant_id == Tenant.id)
            .where(TenantMembership.user_id == user.id)
            .order_by(Tenant.name.asc())
        )
        return [serialize_tenant(tenant, role) for tenant, role in result.all()]

    async def update_tenant(self, tenant: Tenant, changes: Dict[str, Any]) -> Dict[str, Any]:
        if changes.get("name"):
            tenant.name = changes["name"].strip()
        if changes.get("settings") is not None:
            tenant.settings = {**(tenant.settings or {}), **changes["settings"]}
        await self.session.flush()

        logger.info("Tenant updated", tenant_id=tenant.id)
        return serialize_tenant(tenant)
