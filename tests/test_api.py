from datetime import datetime, timedelta

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from app.core.config import settings
from app.core.roles import Role
from app.middleware.rate_limit import RateLimitMiddleware
from app.models.invitation import Invitation, InvitationStatus

API = settings.API_PREFIX


@pytest.fixture
async def people(session, factory):
    owner = await factory.user(email="owner@example.com", full_name="Olive Owner")
    viewer = await factory.user(email="viewer@example.com")
    await session.commit()
    return owner, viewer


async def create_workspace(client, auth_headers, owner, viewer=None):
    response = await client.post(f"{API}/tenants/", json={"name": "Acme Corp"}, headers=auth_headers(owner))
    assert response.status_code == 201
    tenant = response.json()

    if viewer is not None:
        response = await client.post(
            f"{API}/tenants/{tenant['id']}/members",
            json={"user_id": viewer.id, "role": "VIEWER"},
            headers=auth_headers(owner),
        )
        assert response.status_code == 201

    response = await client.post(
        f"{API}/tenants/{tenant['id']}/projects",
        json={"name": "Roadmap", "sections": [{"name": "Now"}, {"name": "Next"}]},
        headers=auth_headers(owner),
    )
    assert response.status_code == 201
    return tenant, response.json()


async def test_health_is_public(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"

    response = await client.get(f"{API}/health/live")
    assert response.json() == {"alive": True}


async def test_requests_without_valid_token_are_rejected(client, people, make_token):
    owner, _ = people

    assert (await client.get(f"{API}/tenants/")).status_code == 401

    expired = {"Authorization": f"Bearer {make_token(owner.id, timedelta(seconds=-30))}"}
    assert (await client.get(f"{API}/tenants/", headers=expired)).status_code == 401

    forged = {"Authorization": "Bearer not-a-jwt"}
    assert (await client.get(f"{API}/tenants/", headers=forged)).status_code == 401


async def test_workspace_and_project_lifecycle(client, people, auth_headers):
    owner, _ = people
    tenant, created = await create_workspace(client, auth_headers, owner)
    project_id = created["project"]["id"]
    headers = auth_headers(owner)

    tenants = (await client.get(f"{API}/tenants/", headers=headers)).json()
    assert [(t["id"], t["role"]) for t in tenants] == [(tenant["id"], Role.OWNER.value)]

    board = (await client.get(f"{API}/projects/{project_id}", headers=headers)).json()
    assert [s["name"] for s in board["sections"]] == ["Now", "Next"]
    assert len(board["columns"]) == 4
    assert board["project"]["role"] == "OWNER"

    response = await client.post(f"{API}/projects/{project_id}/trash", headers=headers)
    assert response.status_code == 200
    assert (await client.get(f"{API}/projects/{project_id}", headers=headers)).status_code == 404

    trash = (await client.get(f"{API}/projects/trash", headers=headers)).json()
    assert [p["id"] for p in trash] == [project_id]

    response = await client.post(f"{API}/projects/{project_id}/restore", headers=headers)
    assert response.status_code == 200
    assert (await client.get(f"{API}/projects/{project_id}", headers=headers)).status_code == 200


async def test_task_endpoints(client, people, auth_headers):
    owner, _ = people
    _, created = await create_workspace(client, auth_headers, owner)
    project_id = created["project"]["id"]
    section_id = created["sections"][0]["id"]
    headers = auth_headers(owner)

    response = await client.post(
        f"{API}/projects/{project_id}/tasks",
        json={"title": "Ship v1", "section_id": section_id, "priority": "HIGH"},
        headers=headers,
    )
    assert response.status_code == 201
    parent = response.json()
    assert parent["priority"] == "HIGH"

    response = await client.post(f"{API}/tasks/{parent['id']}/subtasks", json={"title": "Write docs"}, headers=headers)
    assert response.status_code == 201
    subtask = response.json()
    assert subtask["level"] == 1

    response = await client.post(f"{API}/tasks/{parent['id']}/duplicate", headers=headers)
    assert response.json()["title"] == "Ship v1 (Copy)"

    listing = (await client.get(f"{API}/projects/{project_id}/tasks?nested=true", headers=headers)).json()
    assert [t["title"] for t in listing["data"]] == ["Ship v1", "Ship v1 (Copy)"]
    assert listing["data"][0]["subtasks"][0]["id"] == subtask["id"]

    response = await client.post(
        f"{API}/tasks/{parent['id']}/move", json={"parent_id": subtask["id"]}, headers=headers
    )
    assert response.status_code == 400

    response = await client.post(f"{API}/tasks/{subtask['id']}/move", json={"parent_id": None}, headers=headers)
    assert response.status_code == 200
    assert response.json()["level"] == 0

    response = await client.post(
        f"{API}/tasks/{parent['id']}/comments", json={"content": "Looks good"}, headers=headers
    )
    assert response.status_code == 201
    assert response.json()["author"] == "Olive Owner"

    detail = (await client.get(f"{API}/tasks/{parent['id']}", headers=headers)).json()
    assert [c["content"] for c in detail["comments"]] == ["Looks good"]

    response = await client.delete(f"{API}/tasks/{parent['id']}", headers=headers)
    assert response.json()["deleted"] == 1


async def test_viewer_can_read_but_not_write(client, people, auth_headers):
    owner, viewer = people
    tenant, created = await create_workspace(client, auth_headers, owner, viewer)
    project_id = created["project"]["id"]
    headers = auth_headers(viewer)

    assert (await client.get(f"{API}/projects/{project_id}", headers=headers)).status_code == 200
    assert (await client.get(f"{API}/tenants/{tenant['id']}/members", headers=headers)).status_code == 200

    response = await client.post(f"{API}/projects/{project_id}/tasks", json={"title": "Nope"}, headers=headers)
    assert response.status_code == 403
    assert response.json()["detail"] == "Access denied: requires MEMBER role or higher"

    response = await client.post(f"{API}/projects/{project_id}/trash", headers=headers)
    assert response.status_code == 403


async def test_section_reorder_endpoint(client, people, auth_headers):
    owner, _ = people
    _, created = await create_workspace(client, auth_headers, owner)
    project_id = created["project"]["id"]
    ids = [s["id"] for s in created["sections"]]
    headers = auth_headers(owner)

    response = await client.put(
        f"{API}/projects/{project_id}/sections/reorder", json={"ids": list(reversed(ids))}, headers=headers
    )

    assert response.status_code == 200
    assert [s["name"] for s in response.json()] == ["Next", "Now"]


async def test_member_role_management_endpoints(client, people, auth_headers):
    owner, viewer = people
    tenant, _ = await create_workspace(client, auth_headers, owner, viewer)
    base = f"{API}/tenants/{tenant['id']}/members"

    response = await client.patch(f"{base}/{viewer.id}", json={"role": "ADMIN"}, headers=auth_headers(owner))
    assert response.status_code == 200
    assert response.json()["role"] == "ADMIN"

    response = await client.patch(f"{base}/{owner.id}", json={"role": "VIEWER"}, headers=auth_headers(viewer))
    assert response.status_code == 403

    response = await client.delete(f"{base}/{owner.id}", headers=auth_headers(owner))
    assert response.status_code == 409


async def test_invitation_accept_flow(client, session, factory, people, auth_headers):
    owner, _ = people
    tenant, _ = await create_workspace(client, auth_headers, owner)

    response = await client.post(
        f"{API}/tenants/{tenant['id']}/invitations",
        json={"emails": ["newbie@example.com"], "role": "MEMBER"},
        headers=auth_headers(owner),
    )
    assert response.status_code == 201
    invitation_id = response.json()["invitations"][0]["id"]

    token = (await session.get(Invitation, invitation_id)).token
    newbie = await factory.user(email="newbie@example.com")
    await session.commit()

    public = await client.get(f"{API}/invitations/{token}")
    assert public.status_code == 200
    assert public.json()["tenant_name"] == "Acme Corp"

    response = await client.post(f"{API}/invitations/{token}/accept", headers=auth_headers(newbie))
    assert response.status_code == 200

    tenants = (await client.get(f"{API}/tenants/", headers=auth_headers(newbie))).json()
    assert [t["role"] for t in tenants] == ["MEMBER"]


async def test_accepting_an_expired_invitation_records_the_expiry(client, session, factory, people, auth_headers):
    owner, _ = people
    tenant, _ = await create_workspace(client, auth_headers, owner)

    response = await client.post(
        f"{API}/tenants/{tenant['id']}/invitations",
        json={"emails": ["tardy@example.com"]},
        headers=auth_headers(owner),
    )
    invitation = await session.get(Invitation, response.json()["invitations"][0]["id"])
    invitation.expires_at = datetime.utcnow() - timedelta(hours=1)
    tardy = await factory.user(email="tardy@example.com")
    await session.commit()

    response = await client.post(f"{API}/invitations/{invitation.token}/accept", headers=auth_headers(tardy))
    assert response.status_code == 400
    assert response.json()["detail"] == "Invitation has expired"

    status = await session.scalar(select(Invitation.status).where(Invitation.id == invitation.id))
    assert status == InvitationStatus.EXPIRED.value
    tenants = (await client.get(f"{API}/tenants/", headers=auth_headers(tardy))).json()
    assert tenants == []


async def test_rate_limit_returns_429(monkeypatch):
    monkeypatch.setattr(settings, "RATE_LIMIT_ENABLED", True)
    app = FastAPI()
    app.add_middleware(RateLimitMiddleware, requests_limit=2, time_window=60)

    @app.get("/ping")
    async def ping():
        return {"pong": True}

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        assert (await ac.get("/ping")).status_code == 200
        assert (await ac.get("/ping")).status_code == 200
        blocked = await ac.get("/ping")

    assert blocked.status_code == 429
    assert "Retry-After" in blocked.headers
