from datetime import datetime, timedelta

import pytest
from sqlalchemy import func, select

from app.core.exceptions import BadRequestError, ForbiddenError, InvitationExpiredError, NotFoundError
from app.core.roles import ProjectScope, Role, TenantScope
from app.models.invitation import Invitation, InvitationStatus
from app.models.user import User
from app.services.invitation_service import InvitationService
from app.services.membership_service import MembershipResolver


@pytest.fixture
async def workspace(factory):
    owner = await factory.user(email="owner@example.com")
    tenant = await factory.tenant(owner)
    return owner, tenant


async def test_invite_skips_existing_members_and_refreshes_pending(session, factory, workspace):
    owner, tenant = workspace
    service = InvitationService(session)

    first = await service.create_invitations(tenant.id, ["new@example.com", "OWNER@example.com"], owner.id)
    again = await service.create_invitations(tenant.id, ["new@example.com"], owner.id, role="viewer")

    assert first["skipped"] == ["owner@example.com"]
    assert len(first["invitations"]) == 1
    assert again["invitations"][0]["id"] == first["invitations"][0]["id"]
    assert again["invitations"][0]["role"] == "VIEWER"
    assert again["invitations"][0]["invite_url"] == first["invitations"][0]["invite_url"]
    assert "/invitations/" in first["invitations"][0]["invite_url"]


async def test_owner_role_cannot_be_invited(session, workspace):
    owner, tenant = workspace
    with pytest.raises(BadRequestError):
        await InvitationService(session).create_invitations(tenant.id, ["x@example.com"], owner.id, role=Role.OWNER)


async def test_accept_tenant_invitation(session, factory, workspace):
    owner, tenant = workspace
    service = InvitationService(session)
    sent = await service.create_invitations(tenant.id, ["joiner@example.com"], owner.id, role=Role.ADMIN)
    token = (await session.get(Invitation, sent["invitations"][0]["id"])).token
    joiner = await factory.user(email="Joiner@example.com")

    pending = await service.list_pending_for_user(joiner)
    accepted = await service.accept_invitation(token, joiner)

    assert [p["tenant_name"] for p in pending] == [tenant.name]
    assert accepted["status"] == InvitationStatus.ACCEPTED.value
    access = await MembershipResolver(session).resolve(joiner, TenantScope(tenant.id))
    assert access.role is Role.ADMIN

    with pytest.raises(BadRequestError):
        await service.accept_invitation(token, joiner)


async def test_project_invitation_enrols_in_project_only(session, factory, workspace):
    owner, tenant = workspace
    project = await factory.project(tenant, owner)
    other = await factory.project(tenant, owner, "Other")
    service = InvitationService(session)
    sent = await service.create_invitations(
        tenant.id, ["guest@example.com"], owner.id, role=Role.MEMBER, project_id=project.id
    )
    token = (await session.get(Invitation, sent["invitations"][0]["id"])).token
    guest = await factory.user(email="guest@example.com")

    await service.accept_invitation(token, guest)

    resolver = MembershipResolver(session)
    assert (await resolver.resolve(guest, ProjectScope(project.id))).role is Role.MEMBER
    with pytest.raises(ForbiddenError):
        await resolver.resolve(guest, TenantScope(tenant.id))
    with pytest.raises(ForbiddenError):
        await resolver.resolve(guest, ProjectScope(other.id))


async def test_wrong_email_cannot_accept(session, factory, workspace):
    owner, tenant = workspace
    service = InvitationService(session)
    sent = await service.create_invitations(tenant.id, ["intended@example.com"], owner.id)
    token = (await session.get(Invitation, sent["invitations"][0]["id"])).token
    intruder = await factory.user(email="intruder@example.com")

    with pytest.raises(ForbiddenError):
        await service.accept_invitation(token, intruder)


async def test_expired_invitation_is_rejected_without_committing_the_callers_work(session, factory, workspace):
    owner, tenant = workspace
    service = InvitationService(session)
    sent = await service.create_invitations(tenant.id, ["late@example.com"], owner.id)
    invitation = await session.get(Invitation, sent["invitations"][0]["id"])
    invitation.expires_at = datetime.utcnow() - timedelta(minutes=1)
    late = await factory.user(email="late@example.com")
    await session.commit()
    invitation_id, token = invitation.id, invitation.token

    details = await service.get_invitation(token)
    assert details["is_expired"] is True

    await factory.user(email="bystander@example.com")
    with pytest.raises(InvitationExpiredError) as excinfo:
        await service.accept_invitation(token, late)
    assert excinfo.value.status_code == 400
    assert excinfo.value.invitation_id == invitation_id
    await session.rollback()

    bystanders = await session.scalar(select(func.count(User.id)).where(User.email == "bystander@example.com"))
    status = await session.scalar(select(Invitation.status).where(Invitation.id == invitation_id))
    assert bystanders == 0
    assert status == InvitationStatus.PENDING.value

    assert await InvitationService.mark_expired(session, invitation_id) is True
    assert await InvitationService.mark_expired(session, invitation_id) is False
    await session.commit()

    status = await session.scalar(select(Invitation.status).where(Invitation.id == invitation_id))
    assert status == InvitationStatus.EXPIRED.value
    with pytest.raises(InvitationExpiredError):
        await service.accept_invitation(token, late)


async def test_expire_stale_flips_pending_invitations(session, workspace):
    owner, tenant = workspace
    service = InvitationService(session)
    sent = await service.create_invitations(tenant.id, ["a@example.com", "b@example.com"], owner.id)
    stale = await session.get(Invitation, sent["invitations"][0]["id"])
    stale.expires_at = datetime.utcnow() - timedelta(days=1)
    await session.flush()

    assert await InvitationService.expire_stale(session) == 1


async def test_unknown_token_is_not_found(session):
    with pytest.raises(NotFoundError):
        await InvitationService(session).get_invitation("nope")
