"""
Project Service
Project lifecycle: creation, board reads, status and due date changes,
trash, restore, purge and cloning from templates.
"""

from datetime import datetime, timedelta
from math import ceil
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.core.config import settings
from app.core.exceptions import BadRequestError, NotFoundError
from app.core.roles import Role
from app.models.project import (
    Project,
    ProjectActivity,
    ProjectColumn,
    ProjectLayout,
    ProjectMembership,
    ProjectStatus,
)
from app.models.task import Section, Task
from app.models.tenant import TenantMembership
from app.models.user import User
from app.services.column_service import ColumnService
from app.services.invitation_service import InvitationService
from app.services.membership_service import MembershipService, ResolvedAccess
from app.services.section_service import SectionService
from app.services.task_service import TaskService, serialize_user

logger = structlog.get_logger()


class ActivityType:
    PROJECT_CREATED = "PROJECT_CREATED"
    PROJECT_UPDATED = "PROJECT_UPDATED"
    PROJECT_STATUS_CHANGED = "PROJECT_STATUS_CHANGED"
    PROJECT_DELETED = "PROJECT_DELETED"
    PROJECT_RESTORED = "PROJECT_RESTORED"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def serialize_project(project: Project, role: Optional[str] = None) -> Dict[str, Any]:
    data = {
        "id": project.id,
        "tenant_id": project.tenant_id,
        "name": project.name,
        "description": project.description,
        "color": project.color,
        "icon": project.icon,
        "layout": project.layout,
        "status": project.status,
        "due_date": _iso(project.due_date),
        "is_template": project.is_template,
        "template_category": project.template_category,
        "created_by": project.created_by,
        "created_at": _iso(project.created_at),
        "updated_at": _iso(project.updated_at),
        "deleted_at": _iso(project.deleted_at),
    }
    if role is not None:
        data["role"] = role
    return data


def _parse_layout(layout: Optional[str]) -> str:
    if layout is None:
        return ProjectLayout.BOARD.value
    try:
        return ProjectLayout(layout.upper()).value
    except ValueError:
        raise BadRequestError(
            f"Invalid layout. Must be one of: {', '.join(l.value for l in ProjectLayout)}"
        )


class ProjectService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def log_activity(
        self,
        project_id: str,
        user_id: Optional[str],
        type: str,
        description: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> ProjectActivity:
        activity = ProjectActivity(
            project_id=project_id,
            user_id=user_id,
            type=type,
            description=description,
            details=details or {},
        )
        self.session.add(activity)
        await self.session.flush()
        return activity

    async def create_project(self, user: User, tenant_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create a project with its owner membership, default columns and any
        initial sections, tasks and invitations.

        All rows are written in the caller's transaction; a failure in any
        step leaves nothing behind.
        """
        name = (data.get("name") or "").strip()
        if not name:
            raise BadRequestError("Project name is required")

        project = Project(
            tenant_id=tenant_id,
            name=name,
            description=data.get("description"),
            color=data.get("color") or "#4573D2",
            icon=data.get("icon"),
            layout=_parse_layout(data.get("layout")),
            due_date=data.get("due_date"),
            created_by=user.id,
        )
        self.session.add(project)
        await self.session.flush()

        self.session.add(ProjectMembership(project_id=project.id, user_id=user.id, role=Role.OWNER.value))
        await ColumnService(self.session).create_default_columns(project.id)

        sections = []
        section_service = SectionService(self.session)
        for section in data.get("sections") or []:
            sections.append(
                await section_service.create_section(project.id, section["name"], color=section.get("color"))
            )

        tasks = []
        task_service = TaskService(self.session)
        section_ids = {s["name"]: s["id"] for s in sections}
        for task in data.get("tasks") or []:
            tasks.append(
                await task_service.create_task(
                    project.id,
                    {"title": task["title"], "section_id": section_ids.get(task.get("section_name"))},
                    created_by=user.id,
                    append=True,
                )
            )

        invitations_sent = 0
        if data.get("invite_emails"):
            invited = await InvitationService(self.session).create_invitations(
                tenant_id,
                data["invite_emails"],
                invited_by=user.id,
                role=data.get("invite_role") or Role.MEMBER,
                project_id=project.id,
            )
            invitations_sent = len(invited["invitations"])

        await self.log_activity(project.id, user.id, ActivityType.PROJECT_CREATED, "created the project")

        logger.info(
            "Project created",
            project_id=project.id,
            tenant_id=tenant_id,
            user_id=user.id,
            sections=len(sections),
            tasks=len(tasks),
        )
        return {
            "project": serialize_project(project, Role.OWNER.value),
            "sections": sections,
            "tasks": tasks,
            "invitations_sent": invitations_sent,
        }

    async def list_projects(self, user: User, tenant_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Live (non-trashed, non-template) projects the user can open, with their role"""
        stmt = select(Project).where(Project.deleted_at.is_(None), Project.is_template.is_(False))
        if tenant_id:
            stmt = stmt.where(Project.tenant_id == tenant_id)

        tenant_roles: Dict[str, str] = {}
        project_roles: Dict[str, str] = {}

        if not user.is_super_admin:
            result = await self.session.execute(
                select(TenantMembership.tenant_id, TenantMembership.role).where(TenantMembership.user_id == user.id)
            )
            tenant_roles = dict(result.all())
            result = await self.session.execute(
                select(ProjectMembership.project_id, ProjectMembership.role).where(ProjectMembership.user_id == user.id)
            )
            project_roles = dict(result.all())

            stmt = stmt.where(
                or_(
                    Project.tenant_id.in_(list(tenant_roles)),
                    Project.id.in_(list(project_roles)),
                )
            )

        result = await self.session.execute(stmt.order_by(Project.created_at.desc()))

        projects = []
        for project in result.scalars().all():
            if user.is_super_admin:
                role = Role.SUPER_ADMIN.value
            else:
                role = tenant_roles.get(project.tenant_id) or project_roles.get(project.id)
            projects.append(serialize_project(project, role))
        return projects

    async def get_project_board(self, access: ResolvedAccess) -> Dict[str, Any]:
        """Project with its sections, nested tasks, columns and members"""
        project = access.project
        tasks = await TaskService(self.session).list_tasks(project.id, nested=True)

        return {
            "project": serialize_project(project, access.role.value),
            "sections": await SectionService(self.session).list_sections(project.id),
            "tasks": tasks["data"],
            "columns": await ColumnService(self.session).list_columns(project.id),
            **await MembershipService(self.session).list_project_members(project),
        }

    async def update_project(self, project: Project, changes: Dict[str, Any]) -> Dict[str, Any]:
        for field_name in ("name", "description", "color", "icon"):
            if changes.get(field_name) is not None:
                setattr(project, field_name, changes[field_name])
        if changes.get("layout") is not None:
            project.layout = _parse_layout(changes["layout"])

        await self.session.flush()
        return serialize_project(project)

    async def update_status(self, project: Project, status: str, user_id: str) -> Dict[str, Any]:
        try:
            new_status = ProjectStatus(status)
        except ValueError:
            raise BadRequestError(
                f"Invalid status. Must be one of: {', '.join(s.value for s in ProjectStatus)}"
            )

        old_status = project.status
        project.status = new_status.value
        await self.log_activity(
            project.id,
            user_id,
            ActivityType.PROJECT_STATUS_CHANGED,
            f"changed project status from {old_status} to {new_status.value}",
            {"old_status": old_status, "new_status": new_status.value},
        )

        logger.info("Project status changed", project_id=project.id, old_status=old_status, new_status=new_status.value)
        return serialize_project(project)

    async def update_due_date(self, project: Project, due_date: Optional[datetime], user_id: str) -> Dict[str, Any]:
        project.due_date = due_date
        description = (
            f"set project due date to {due_date.date().isoformat()}" if due_date else "removed project due date"
        )
        await self.log_activity(
            project.id,
            user_id,
            ActivityType.PROJECT_UPDATED,
            description,
            {"field": "due_date", "new_value": _iso(due_date)},
        )
        return serialize_project(project)

    async def move_to_trash(self, project: Project, user_id: str) -> Dict[str, Any]:
        project.deleted_at = datetime.utcnow()
        project.deleted_by = user_id
        await self.log_activity(project.id, user_id, ActivityType.PROJECT_DELETED, "moved project to trash")

        logger.info("Project moved to trash", project_id=project.id, user_id=user_id)
        return serialize_project(project)

    async def restore(self, project_id: str, user_id: str) -> Dict[str, Any]:
        """
        Bring a project back from trash.

        The update only matches a still-trashed row, so a purge that got there
        first leaves nothing to restore.
        """
        result = await self.session.execute(
            update(Project)
            .where(Project.id == project_id, Project.deleted_at.is_not(None))
            .values(deleted_at=None, deleted_by=None)
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount == 0:
            project = await self.session.get(Project, project_id)
            if not project:
                raise NotFoundError("Project not found")
            raise BadRequestError("Project is not in trash")

        await self.log_activity(project_id, user_id, ActivityType.PROJECT_RESTORED, "restored project from trash")
        project = await self.session.get(Project, project_id, populate_existing=True)

        logger.info("Project restored", project_id=project_id, user_id=user_id)
        return serialize_project(project)

    async def permanent_delete(self, project_id: str) -> Dict[str, str]:
        result = await self.session.execute(
            delete(Project)
            .where(Project.id == project_id, Project.deleted_at.is_not(None))
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount == 0:
            raise BadRequestError("Project must be in trash before permanent deletion")

        logger.info("Project permanently deleted", project_id=project_id)
        return {"message": "Project permanently deleted"}

    async def list_trash(self, user: User) -> List[Dict[str, Any]]:
        """Trashed projects the user owns, with days left before the purge"""
        stmt = select(Project).where(Project.deleted_at.is_not(None))

        if not user.is_super_admin:
            owned_projects = select(ProjectMembership.project_id).where(
                ProjectMembership.user_id == user.id,
                ProjectMembership.role == Role.OWNER.value,
            )
            admin_tenants = select(TenantMembership.tenant_id).where(
                TenantMembership.user_id == user.id,
                TenantMembership.role.in_([Role.OWNER.value, Role.ADMIN.value]),
            )
            stmt = stmt.where(or_(Project.id.in_(owned_projects), Project.tenant_id.in_(admin_tenants)))

        result = await self.session.execute(stmt.order_by(Project.deleted_at.desc()))

        now = datetime.utcnow()
        trashed = []
        for project in result.scalars().all():
            purge_at = project.deleted_at + timedelta(days=settings.TRASH_RETENTION_DAYS)
            days_left = ceil((purge_at - now).total_seconds() / 86400)
            data = serialize_project(project)
            data["auto_delete_date"] = purge_at.isoformat()
            data["days_until_permanent_deletion"] = max(0, days_left)
            trashed.append(data)
        return trashed

    @staticmethod
    async def purge_expired(session: AsyncSession, now: Optional[datetime] = None) -> int:
        """
        Hard-delete projects trashed longer than the retention window.

        Each delete re-checks ``deleted_at`` so a concurrent restore wins.
        """
        cutoff = (now or datetime.utcnow()) - timedelta(days=settings.TRASH_RETENTION_DAYS)

        result = await session.execute(
            select(Project.id).where(Project.deleted_at.is_not(None), Project.deleted_at <= cutoff)
        )
        purged = 0
        for project_id in result.scalars().all():
            deleted = await session.execute(
                delete(Project)
                .where(Project.id == project_id, Project.deleted_at <= cutoff)
                .execution_options(synchronize_session=False)
            )
            purged += deleted.rowcount

        logger.info("Purged trashed projects", purged=purged, cutoff=cutoff.isoformat())
        return purged

    async def list_activity(self, project_id: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        result = await self.session.execute(
            select(ProjectActivity, User)
            .outerjoin(User, User.id == ProjectActivity.user_id)
            .where(ProjectActivity.project_id == project_id)
            .order_by(ProjectActivity.created_at.desc())
            .limit(min(limit or settings.DEFAULT_PAGE_SIZE, settings.MAX_PAGE_SIZE))
        )
        return [
            {
                "id": activity.id,
                "type": activity.type,
                "description": activity.description,
                "details": activity.details or {},
                "user": serialize_user(user),
                "created_at": _iso(activity.created_at),
            }
            for activity, user in result.all()
        ]

    async def list_templates(self) -> List[Dict[str, Any]]:
        result = await self.session.execute(
            select(Project)
            .where(Project.is_template.is_(True), Project.deleted_at.is_(None))
            .order_by(Project.name.asc())
        )
        return [serialize_project(p) for p in result.scalars().all()]

    async def clone_template(self, user: User, template_id: str, tenant_id: str, name: str) -> Dict[str, Any]:
        """New project copying a template's columns, sections and task tree"""
        if not name or not name.strip():
            raise BadRequestError("Project name is required")

        template = await self.session.get(Project, template_id)
        if not template or not template.is_template or template.deleted_at is not None:
            raise NotFoundError("Template not found")

        project = Project(
            tenant_id=tenant_id,
            name=name.strip(),
            description=template.description,
            color=template.color,
            icon=template.icon,
            layout=template.layout,
            template_id=template.id,
            created_by=user.id,
        )
        self.session.add(project)
        await self.session.flush()
        self.session.add(ProjectMembership(project_id=project.id, user_id=user.id, role=Role.OWNER.value))

        columns = await self.session.execute(
            select(ProjectColumn).where(ProjectColumn.project_id == template.id).order_by(ProjectColumn.position)
        )
        for column in columns.scalars().all():
            self.session.add(
                ProjectColumn(
                    project_id=project.id,
                    name=column.name,
                    type=column.type,
                    width=column.width,
                    visible=column.visible,
                    position=column.position,
                    options=column.options,
                )
            )

        section_map: Dict[str, str] = {}
        sections = await self.session.execute(
            select(Section).where(Section.project_id == template.id).order_by(Section.position)
        )
        for section in sections.scalars().all():
            clone = Section(project_id=project.id, name=section.name, color=section.color, position=section.position)
            self.session.add(clone)
            await self.session.flush()
            section_map[section.id] = clone.id

        # Parents sort before their children by level
        task_map: Dict[str, str] = {}
        tasks = await self.session.execute(
            select(Task).where(Task.project_id == template.id).order_by(Task.level, Task.order_index)
        )
        for task in tasks.scalars().all():
            clone = Task(
                project_id=project.id,
                section_id=section_map.get(task.section_id),
                parent_id=task_map.get(task.parent_id),
                level=task.level,
                order_index=task.order_index,
                title=task.title,
                description=task.description,
                type=task.type,
                priority=task.priority,
                status=task.status,
                tags=list(task.tags or []),
                created_by=user.id,
            )
            self.session.add(clone)
            await self.session.flush()
            task_map[task.id] = clone.id

        await self.log_activity(
            project.id,
            user.id,
            ActivityType.PROJECT_CREATED,
            f'created project from template "{template.name}"',
            {"template_id": template.id, "template_name": template.name},
        )

        logger.info("Project cloned from template", project_id=project.id, template_id=template.id)
        return serialize_project(project, Role.OWNER.value)
