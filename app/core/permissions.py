"""
Role checker dependencies

Each checker resolves the caller's role for the scope named in the path
(directly, or through the section, task, comment or column it owns) and
rejects with Forbidden when it ranks below the checker's minimum.
"""

from typing import Optional
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.api.v1.deps import get_current_user
from app.core.exceptions import NotFoundError
from app.core.roles import ProjectScope, Role, TenantScope
from app.db.database import get_db
from app.models.project import ProjectColumn
from app.models.task import Section, Task, TaskComment
from app.models.user import User
from app.services.membership_service import MembershipResolver, ResolvedAccess

logger = structlog.get_logger()


class TenantRoleChecker:
    """
    Dependency requiring a minimum role on the ``tenant_id`` path parameter
    """

    def __init__(self, minimum: Role = Role.VIEWER):
        self.minimum = minimum

    async def __call__(
        self,
        tenant_id: str,
        user: User = Depends(get_current_user),
        session: AsyncSession = Depends(get_db),
    ) -> ResolvedAccess:
        return await MembershipResolver(session).require(user, TenantScope(tenant_id), self.minimum)


class ProjectRoleChecker:
    """
    Dependency requiring a minimum role on the ``project_id`` path parameter.

    ``allow_deleted`` lets trash operations reach projects already in trash.
    """

    def __init__(self, minimum: Role = Role.VIEWER, allow_deleted: bool = False):
        self.minimum = minimum
        self.allow_deleted = allow_deleted

    async def __call__(
        self,
        project_id: str,
        user: User = Depends(get_current_user),
        session: AsyncSession = Depends(get_db),
    ) -> ResolvedAccess:
        return await self.check(session, user, project_id)

    async def check(self, session: AsyncSession, user: User, project_id: Optional[str]) -> ResolvedAccess:
        return await MembershipResolver(session).require(
            user,
            ProjectScope(project_id),
            self.minimum,
            allow_deleted=self.allow_deleted,
        )


class SectionRoleChecker(ProjectRoleChecker):
    async def __call__(
        self,
        section_id: str,
        user: User = Depends(get_current_user),
        session: AsyncSession = Depends(get_db),
    ) -> ResolvedAccess:
        section = await session.get(Section, section_id)
        if not section:
            raise NotFoundError("Section not found")
        return await self.check(session, user, section.project_id)


class TaskRoleChecker(ProjectRoleChecker):
    async def __call__(
        self,
        task_id: str,
        user: User = Depends(get_current_user),
        session: AsyncSession = Depends(get_db),
    ) -> ResolvedAccess:
        task = await session.get(Task, task_id)
        if not task:
            raise NotFoundError("Task not found")
        return await self.check(session, user, task.project_id)


class CommentRoleChecker(ProjectRoleChecker):
    async def __call__(
        self,
        comment_id: str,
        user: User = Depends(get_current_user),
        session: AsyncSession = Depends(get_db),
    ) -> ResolvedAccess:
        comment = await session.get(TaskComment, comment_id)
        if not comment:
            raise NotFoundError("Comment not found")
        task = await session.get(Task, comment.task_id)
        return await self.check(session, user, task.project_id)


class ColumnRoleChecker(ProjectRoleChecker):
    async def __call__(
        self,
        column_id: str,
        user: User = Depends(get_current_user),
        session: AsyncSession = Depends(get_db),
    ) -> ResolvedAccess:
        column = await session.get(ProjectColumn, column_id)
        if not column:
            raise NotFoundError("Column not found")
        return await self.check(session, user, column.project_id)
