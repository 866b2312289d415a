import os

os.environ.setdefault("SECRET_KEY", "stackflow-test-secret")
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["DEBUG"] = "false"

from datetime import datetime, timedelta, timezone
from typing import Optional
import uuid

import jwt
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.pool import StaticPool

from app.core.config import settings
from app.core.roles import Role
from app.db.database import Database
from app.main import create_app
from app.models.project import Project, ProjectMembership
from app.models.task import Section, Task
from app.models.tenant import Tenant, TenantMembership
from app.models.user import User


@pytest.fixture
async def db():
    database = Database("sqlite+aiosqlite://", poolclass=StaticPool)
    await database.create_all()
    yield database
    await database.dispose()


@pytest.fixture
async def session(db):
    async with db.session_factory() as session:
        yield session


class Factory:
    """Persists model rows for tests; every helper flushes so ids are set"""

    def __init__(self, session):
        self.session = session

    async def user(self, email: Optional[str] = None, full_name: str = "Test User", is_super_admin: bool = False) -> User:
        user = User(
            email=email or f"user-{uuid.uuid4().hex[:8]}@example.com",
            full_name=full_name,
            is_super_admin=is_super_admin,
        )
        self.session.add(user)
        await self.session.flush()
        return user

    async def tenant(self, owner: User, name: str = "Acme") -> Tenant:
        tenant = Tenant(name=name, slug=f"acme-{uuid.uuid4().hex[:8]}", owner_id=owner.id)
        self.session.add(tenant)
        await self.session.flush()
        await self.tenant_member(tenant, owner, Role.OWNER)
        return tenant

    async def tenant_member(self, tenant: Tenant, user: User, role: Role) -> TenantMembership:
        membership = TenantMembership(tenant_id=tenant.id, user_id=user.id, role=role.value)
        self.session.add(membership)
        await self.session.flush()
        return membership

    async def project(self, tenant: Tenant, creator: User, name: str = "Launch", owner: bool = True) -> Project:
        project = Project(tenant_id=tenant.id, name=name, created_by=creator.id)
        self.session.add(project)
        await self.session.flush()
        if owner:
            await self.project_member(project, creator, Role.OWNER)
        return project

    async def project_member(self, project: Project, user: User, role: Role) -> ProjectMembership:
        membership = ProjectMembership(project_id=project.id, user_id=user.id, role=role.value)
        self.session.add(membership)
        await self.session.flush()
        return membership

    async def section(self, project: Project, name: str = "To do", position: int = 0) -> Section:
        section = Section(project_id=project.id, name=name, position=position)
        self.session.add(section)
        await self.session.flush()
        return section

    async def task(
        self,
        project: Project,
        title: str = "Task",
        order_index: float = 0,
        section: Optional[Section] = None,
        parent: Optional[Task] = None,
    ) -> Task:
        task = Task(
            project_id=project.id,
            section_id=section.id if section else None,
            parent_id=parent.id if parent else None,
            level=parent.level + 1 if parent else 0,
            order_index=order_index,
            title=title,
        )
        self.session.add(task)
        await self.session.flush()
        return task


@pytest.fixture
def factory(session):
    return Factory(session)


def _token(user_id: str, expires_in: timedelta = timedelta(hours=1)) -> str:
    return jwt.encode(
        {"sub": user_id, "exp": datetime.now(timezone.utc) + expires_in},
        settings.SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM,
    )


def _headers(user: User) -> dict:
    return {"Authorization": f"Bearer {_token(user.id)}"}


@pytest.fixture
def make_token():
    return _token


@pytest.fixture
def auth_headers():
    return _headers


@pytest.fixture
async def client(db):
    app = create_app(database=db)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
