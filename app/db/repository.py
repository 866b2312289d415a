"""
Repository
Query helpers shared by the services: membership lookups, project loading,
task listing and bulk position shifts.
"""

from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Type, Union

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.core.roles import ProjectScope, Scope, TenantScope
from app.models.project import Project, ProjectMembership
from app.models.tenant import Tenant, TenantMembership
from app.models.task import Task
from app.models.user import User

logger = structlog.get_logger()

Membership = Union[TenantMembership, ProjectMembership]


@dataclass
class TaskFilters:
    section_id: Optional[str] = None
    assignee_id: Optional[str] = None
    priority: Optional[str] = None
    status: Optional[str] = None
    completed: Optional[bool] = None
    parent_id: Optional[str] = None
    root_only: bool = False
    search: Optional[str] = None


class Repository:
    """Thin persistence layer over a request-scoped session"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_user(self, user_id: str) -> Optional[User]:
        return await self.session.get(User, user_id)

    async def get_user_by_email(self, email: str) -> Optional[User]:
        result = await self.session.execute(
            select(User).where(func.lower(User.email) == email.lower())
        )
        return result.scalar_one_or_none()

    async def find_tenant(self, tenant_id: str) -> Optional[Tenant]:
        return await self.session.get(Tenant, tenant_id)

    async def find_project(self, project_id: str) -> Optional[Project]:
        """Load a project, trashed or not"""
        return await self.session.get(Project, project_id)

    async def find_membership(self, scope: Scope, user_id: str) -> Optional[Membership]:
        if isinstance(scope, TenantScope):
            stmt = select(TenantMembership).where(
                TenantMembership.tenant_id == scope.tenant_id,
                TenantMembership.user_id == user_id,
            )
        elif isinstance(scope, ProjectScope):
            stmt = select(ProjectMembership).where(
                ProjectMembership.project_id == scope.project_id,
                ProjectMembership.user_id == user_id,
            )
        else:
            raise TypeError(f"Unsupported scope: {scope!r}")

        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def count_role_holders(self, scope: Scope, role: str) -> int:
        """Number of memberships holding ``role`` within the scope"""
        if isinstance(scope, TenantScope):
            stmt = select(func.count(TenantMembership.id)).where(
                TenantMembership.tenant_id == scope.tenant_id,
                TenantMembership.role == role,
            )
        else:
            stmt = select(func.count(ProjectMembership.id)).where(
                ProjectMembership.project_id == scope.project_id,
                ProjectMembership.role == role,
            )
        result = await self.session.execute(stmt)
        return result.scalar_one()

    def _task_query(self, project_id: str, filters: Optional[TaskFilters]):
        stmt = select(Task).where(Task.project_id == project_id)
        if filters is None:
            return stmt

        if filters.section_id:
            stmt = stmt.where(Task.section_id == filters.section_id)
        if filters.assignee_id:
            stmt = stmt.where(Task.assignee_id == filters.assignee_id)
        if filters.priority:
            stmt = stmt.where(Task.priority == filters.priority)
        if filters.status:
            stmt = stmt.where(Task.status == filters.status)
        if filters.completed is not None:
            stmt = stmt.where(Task.completed == filters.completed)
        if filters.root_only:
            stmt = stmt.where(Task.parent_id.is_(None))
        elif filters.parent_id:
            stmt = stmt.where(Task.parent_id == filters.parent_id)
        if filters.search:
            pattern = f"%{filters.search.lower()}%"
            stmt = stmt.where(
                or_(
                    func.lower(Task.title).like(pattern),
                    func.lower(Task.description).like(pattern),
                )
            )
        return stmt

    async def list_tasks(
        self,
        project_id: str,
        filters: Optional[TaskFilters] = None,
        offset: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[Task]:
        """Tasks of a project in ascending ``order_index``"""
        stmt = self._task_query(project_id, filters).order_by(
            Task.order_index.asc(), Task.created_at.asc()
        )
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)

        result = await self.session.execute(stmt.execution_options(populate_existing=True))
        return list(result.scalars().all())

    async def count_tasks(self, project_id: str, filters: Optional[TaskFilters] = None) -> int:
        subquery = self._task_query(project_id, filters).subquery()
        result = await self.session.execute(select(func.count()).select_from(subquery))
        return result.scalar_one()

    async def shift_positions(
        self,
        model: Type[Any],
        predicate: Sequence[Any],
        delta: int,
    ) -> int:
        """
        Bulk ``position += delta`` for every row of ``model`` matching ``predicate``.

        Returns the number of shifted rows.
        """
        stmt = (
            update(model)
            .where(*predicate)
            .values(position=model.position + delta)
            .execution_options(synchronize_session="fetch")
        )
        result = await self.session.execute(stmt)

        logger.debug(
            "Shifted positions",
            table=model.__tablename__,
            delta=delta,
            rows=result.rowcount,
        )
        return result.rowcount
