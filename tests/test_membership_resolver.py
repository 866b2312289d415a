import pytest
from datetime import datetime

from app.core.config import settings
from app.core.exceptions import BadRequestError, ForbiddenError, NotFoundError
from app.core.roles import ProjectScope, Role, TenantScope
from app.services.membership_service import MembershipResolver


@pytest.fixture
async def workspace(factory):
    owner = await factory.user(email="owner@example.com")
    tenant = await factory.tenant(owner)
    project = await factory.project(tenant, owner)
    return owner, tenant, project


async def test_tenant_member_resolves_to_membership_role(session, factory, workspace):
    _, tenant, _ = workspace
    member = await factory.user()
    await factory.tenant_member(tenant, member, Role.MEMBER)

    access = await MembershipResolver(session).resolve(member, TenantScope(tenant.id))

    assert access.role is Role.MEMBER
    assert access.tenant_id == tenant.id


async def test_outsider_is_forbidden(session, factory, workspace):
    _, tenant, project = workspace
    outsider = await factory.user()
    resolver = MembershipResolver(session)

    with pytest.raises(ForbiddenError):
        await resolver.resolve(outsider, TenantScope(tenant.id))
    with pytest.raises(ForbiddenError):
        await resolver.resolve(outsider, ProjectScope(project.id))


async def test_missing_scope_id_is_bad_request(session, workspace):
    owner, _, _ = workspace
    with pytest.raises(BadRequestError):
        await MembershipResolver(session).resolve(owner, TenantScope(None))
    with pytest.raises(BadRequestError):
        await MembershipResolver(session).resolve(owner, ProjectScope(""))


async def test_unknown_scope_is_not_found(session, workspace):
    owner, _, _ = workspace
    with pytest.raises(NotFoundError):
        await MembershipResolver(session).resolve(owner, TenantScope("does-not-exist"))
    with pytest.raises(NotFoundError):
        await MembershipResolver(session).resolve(owner, ProjectScope("does-not-exist"))


async def test_super_admin_bypasses_membership(session, factory, workspace):
    _, tenant, project = workspace
    admin = await factory.user(is_super_admin=True)
    resolver = MembershipResolver(session)

    assert (await resolver.resolve(admin, TenantScope(tenant.id))).role is Role.SUPER_ADMIN
    assert (await resolver.resolve(admin, ProjectScope(project.id))).role is Role.SUPER_ADMIN


async def test_tenant_role_takes_precedence_over_project_role(session, factory, workspace):
    _, tenant, project = workspace
    user = await factory.user()
    await factory.tenant_member(tenant, user, Role.VIEWER)
    await factory.project_member(project, user, Role.ADMIN)

    access = await MembershipResolver(session).resolve(user, ProjectScope(project.id))

    assert access.role is Role.VIEWER
    assert access.tenant_role is Role.VIEWER


async def test_project_membership_alone_grants_access(session, factory, workspace):
    _, _, project = workspace
    guest = await factory.user()
    await factory.project_member(project, guest, Role.MEMBER)

    access = await MembershipResolver(session).resolve(guest, ProjectScope(project.id))

    assert access.role is Role.MEMBER
    assert access.tenant_role is None
    assert access.project.id == project.id


async def test_trashed_project_is_not_found(session, factory, workspace):
    owner, _, project = workspace
    project.deleted_at = datetime.utcnow()
    await session.flush()

    with pytest.raises(NotFoundError):
        await MembershipResolver(session).resolve(owner, ProjectScope(project.id))

    access = await MembershipResolver(session).resolve(owner, ProjectScope(project.id), allow_deleted=True)
    assert access.role is Role.OWNER


async def test_super_admin_does_not_see_trashed_projects_by_default(session, factory, workspace, monkeypatch):
    _, _, project = workspace
    admin = await factory.user(is_super_admin=True)
    project.deleted_at = datetime.utcnow()
    await session.flush()

    with pytest.raises(NotFoundError):
        await MembershipResolver(session).resolve(admin, ProjectScope(project.id))

    monkeypatch.setattr(settings, "SUPER_ADMIN_SEES_TRASHED_PROJECTS", True)
    access = await MembershipResolver(session).resolve(admin, ProjectScope(project.id))
    assert access.role is Role.SUPER_ADMIN


async def test_require_enforces_minimum_role(session, factory, workspace):
    _, tenant, _ = workspace
    viewer = await factory.user()
    await factory.tenant_member(tenant, viewer, Role.VIEWER)
    resolver = MembershipResolver(session)

    assert (await resolver.require(viewer, TenantScope(tenant.id), Role.VIEWER)).role is Role.VIEWER
    with pytest.raises(ForbiddenError) as exc_info:
        await resolver.require(viewer, TenantScope(tenant.id), Role.MEMBER)
    assert "MEMBER" in exc_info.value.detail


async def test_resolve_role_returns_only_the_role(session, factory, workspace):
    _, tenant, project = workspace
    member = await factory.user()
    await factory.tenant_member(tenant, member, Role.ADMIN)

    assert await MembershipResolver(session).resolve_role(member, ProjectScope(project.id)) is Role.ADMIN
