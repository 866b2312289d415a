from fastapi import APIRouter

from app.api.v1.endpoints import (
    admin,
    health,
    tenants,
    teams,
    projects,
    members,
    sections,
    tasks,
    columns,
    invitations
)

api_router = APIRouter()

api_router.include_router(health.router, prefix="/health", tags=["Health"])
api_router.include_router(tenants.router, prefix="/tenants", tags=["Workspaces"])
api_router.include_router(teams.router, prefix="/tenants", tags=["Teams"])
api_router.include_router(projects.router, prefix="/projects", tags=["Projects"])
api_router.include_router(members.router, prefix="/projects", tags=["Project Members"])
api_router.include_router(sections.router, tags=["Sections"])
api_router.include_router(tasks.router, tags=["Tasks"])
api_router.include_router(columns.router, tags=["Columns"])
api_router.include_router(invitations.router, prefix="/invitations", tags=["Invitations"])
api_router.include_router(admin.router, prefix="/admin", tags=["Super Admin"])
