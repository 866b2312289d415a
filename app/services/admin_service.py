"""
Super Admin Service
System-wide statistics, global templates, user and workspace listings and
the super admin flag.
"""

from datetime import datetime, timedelta
from math import ceil
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.core.exceptions import BadRequestError, NotFoundError
from app.core.roles import Role
from app.models.invitation import Invitation, InvitationStatus
from app.models.project import Project, ProjectColumn, ProjectMembership
from app.models.task import Section, Task
from app.models.tenant import Tenant, TenantMembership
from app.models.user import User
from app.services.column_service import ColumnService
from app.services.project_service import _parse_layout, serialize_project
from app.services.section_service import SectionService
from app.services.task_service import TaskService, serialize_user
from app.services.tenant_service import serialize_tenant

logger = structlog.get_logger()

DEFAULT_TEMPLATE_CATEGORY = "CUSTOM"
TEMPLATE_FIELDS = ("name", "description", "color", "icon")


def _pagination(total: int, page: int, limit: int) -> Dict[str, int]:
    return {"total": total, "page": page, "limit": limit, "pages": ceil(total / limit) if limit else 0}


def _category(value: Optional[str]) -> str:
    return (value or DEFAULT_TEMPLATE_CATEGORY).strip().upper() or DEFAULT_TEMPLATE_CATEGORY


def _count_where(model, *criteria):
    return select(func.count()).select_from(model).where(*criteria).scalar_subquery()


class SuperAdminService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def _count(self, model, *criteria) -> int:
        result = await self.session.execute(select(func.count()).select_from(model).where(*criteria))
        return result.scalar() or 0

    async def dashboard_stats(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Entity counts, plus users and workspaces created in the last seven days"""
        since = (now or datetime.utcnow()) - timedelta(days=7)
        return {
            "total_users": await self._count(User),
            "total_tenants": await self._count(Tenant),
            "total_projects": await self._count(
                Project, Project.deleted_at.is_(None), Project.is_template.is_(False)
            ),
            "total_tasks": await self._count(Task),
            "global_templates": await self._count(
                Project,
                Project.is_template.is_(True),
                Project.tenant_id.is_(None),
                Project.deleted_at.is_(None),
            ),
            "pending_invitations": await self._count(
                Invitation, Invitation.status == InvitationStatus.PENDING.value
            ),
            "recent_users": await self._count(User, User.created_at >= since),
            "recent_tenants": await self._count(Tenant, Tenant.created_at >= since),
        }

    # Global templates

    async def _get_global_template(self, template_id: str) -> Project:
        template = await self.session.get(Project, template_id)
        if not template or template.deleted_at is not None:
            raise NotFoundError("Template not found")
        if not template.is_template or template.tenant_id is not None:
            raise BadRequestError("This is not a global template")
        return template

    async def _template_counts(self, template_id: str) -> Dict[str, int]:
        return {
            "sections": await self._count(Section, Section.project_id == template_id),
            "tasks": await self._count(Task, Task.project_id == template_id),
            "columns": await self._count(ProjectColumn, ProjectColumn.project_id == template_id),
        }

    async def list_global_templates(self, category: Optional[str] = None) -> List[Dict[str, Any]]:
        """Newest first; ``category`` of ``ALL`` or None lists every category"""
        stmt = (
            select(Project, User)
            .outerjoin(User, User.id == Project.created_by)
            .where(
                Project.is_template.is_(True),
                Project.tenant_id.is_(None),
                Project.deleted_at.is_(None),
            )
            .order_by(Project.created_at.desc())
        )
        if category and category.upper() != "ALL":
            stmt = stmt.where(Project.template_category == category.upper())

        result = await self.session.execute(stmt)
        templates = []
        for template, creator in result.all():
            data = serialize_project(template)
            data["creator"] = serialize_user(creator)
            data["counts"] = await self._template_counts(template.id)
            templates.append(data)
        return templates

    async def create_global_template(self, user: User, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create a tenantless template with its sections, columns and tasks.

        ``columns`` of None gives the default project columns; an empty list
        gives none. Tasks keep their submitted order.
        """
        name = (data.get("name") or "").strip()
        if not name:
            raise BadRequestError("Template name is required")

        template = Project(
            tenant_id=None,
            name=name,
            description=data.get("description"),
            color=data.get("color") or "#3b82f6",
            icon=data.get("icon"),
            layout=_parse_layout(data.get("layout") or "LIST"),
            is_template=True,
            template_category=_category(data.get("template_category")),
            created_by=user.id,
        )
        self.session.add(template)
        await self.session.flush()
        self.session.add(ProjectMembership(project_id=template.id, user_id=user.id, role=Role.OWNER.value))

        column_service = ColumnService(self.session)
        columns = data.get("columns")
        if columns is None:
            await column_service.create_default_columns(template.id)
        else:
            for column in columns:
                await column_service.create_column(
                    template.id,
                    column["name"],
                    type=column.get("type") or "text",
                    width=column.get("width"),
                    visible=column.get("visible", True),
                    options=column.get("options"),
                )

        section_service = SectionService(self.session)
        sections = [
            await section_service.create_section(template.id, section["name"], color=section.get("color"))
            for section in data.get("sections") or []
        ]

        task_service = TaskService(self.session)
        section_ids = {s["name"]: s["id"] for s in sections}
        for task in data.get("tasks") or []:
            await task_service.create_task(
                template.id,
                {"title": task["title"], "section_id": section_ids.get(task.get("section_name"))},
                created_by=user.id,
                append=True,
            )

        logger.info(
            "Global template created",
            template_id=template.id,
            user_id=user.id,
            category=template.template_category,
        )
        result = serialize_project(template)
        result["sections"] = sections
        result["columns"] = await column_service.list_columns(template.id)
        result["counts"] = await self._template_counts(template.id)
        return result

    async def update_global_template(self, template_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        template = await self._get_global_template(template_id)

        if "name" in changes and not (changes["name"] or "").strip():
            raise BadRequestError("Template name is required")
        for field_name in TEMPLATE_FIELDS:
            if field_name in changes:
                setattr(template, field_name, changes[field_name])
        if changes.get("layout"):
            template.layout = _parse_layout(changes["layout"])
        if "template_category" in changes:
            template.template_category = _category(changes["template_category"])
        await self.session.flush()

        logger.info("Global template updated", template_id=template.id, fields=sorted(changes))
        result = serialize_project(template)
        result["counts"] = await self._template_counts(template.id)
        return result

    async def delete_global_template(self, template_id: str, user_id: str) -> Dict[str, str]:
        """Soft delete; projects cloned earlier keep their template reference"""
        template = await self._get_global_template(template_id)
        template.deleted_at = datetime.utcnow()
        template.deleted_by = user_id
        await self.session.flush()

        logger.info("Global template deleted", template_id=template.id, user_id=user_id)
        return {"message": "Global template deleted successfully"}

    # Users and workspaces

    async def list_users(self, page: int = 1, limit: int = 50, search: Optional[str] = None) -> Dict[str, Any]:
        if page < 1 or limit < 1:
            raise BadRequestError("Page and limit must be positive")

        criteria = []
        if search:
            pattern = f"%{search.strip()}%"
            criteria.append(or_(User.email.ilike(pattern), User.full_name.ilike(pattern)))

        stmt = (
            select(
                User,
                _count_where(TenantMembership, TenantMembership.user_id == User.id).label("tenants"),
                _count_where(
                    Project, Project.created_by == User.id, Project.is_template.is_(False)
                ).label("projects"),
                _count_where(Task, Task.assignee_id == User.id).label("assigned_tasks"),
            )
            .where(*criteria)
            .order_by(User.created_at.desc(), User.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        result = await self.session.execute(stmt)

        users = []
        for user, tenants, projects, assigned_tasks in result.all():
            data = serialize_user(user)
            data["is_super_admin"] = user.is_super_admin
            data["created_at"] = user.created_at.isoformat() if user.created_at else None
            data["counts"] = {"tenants": tenants, "projects": projects, "assigned_tasks": assigned_tasks}
            users.append(data)

        total = await self._count(User, *criteria)
        return {"users": users, "pagination": _pagination(total, page, limit)}

    async def list_tenants(self, page: int = 1, limit: int = 50, search: Optional[str] = None) -> Dict[str, Any]:
        if page < 1 or limit < 1:
            raise BadRequestError("Page and limit must be positive")

        criteria = []
        if search:
            pattern = f"%{search.strip()}%"
            criteria.append(or_(Tenant.name.ilike(pattern), Tenant.slug.ilike(pattern)))

        stmt = (
            select(
                Tenant,
                User,
                _count_where(TenantMembership, TenantMembership.tenant_id == Tenant.id).label("members"),
                _count_where(
                    Project, Project.tenant_id == Tenant.id, Project.deleted_at.is_(None)
                ).label("projects"),
            )
            .outerjoin(User, User.id == Tenant.owner_id)
            .where(*criteria)
            .order_by(Tenant.created_at.desc(), Tenant.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        result = await self.session.execute(stmt)

        tenants = []
        for tenant, owner, members, projects in result.all():
            data = serialize_tenant(tenant)
            data["owner"] = serialize_user(owner)
            data["counts"] = {"members": members, "projects": projects}
            tenants.append(data)

        total = await self._count(Tenant, *criteria)
        return {"tenants": tenants, "pagination": _pagination(total, page, limit)}

    async def set_super_admin(self, actor: User, user_id: str, is_super_admin: bool) -> Dict[str, Any]:
        """Grant or revoke the super admin flag; nobody can revoke their own"""
        if user_id == actor.id and not is_super_admin:
            raise BadRequestError("You cannot revoke your own super admin privileges")

        user = await self.session.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")

        user.is_super_admin = is_super_admin
        await self.session.flush()

        logger.info(
            "Super admin privileges changed",
            user_id=user.id,
            actor_id=actor.id,
            is_super_admin=is_super_admin,
        )
        data = serialize_user(user)
        data["is_super_admin"] = user.is_super_admin
        return data
