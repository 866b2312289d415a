"""
Section API Endpoints
"""

from typing import List
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.permissions import ProjectRoleChecker, SectionRoleChecker
from app.core.roles import Role
from app.db.database import get_db
from app.schemas.common import MessageResponse, ReorderRequest
from app.schemas.task import SectionCreate, SectionResponse, SectionUpdate
from app.services.membership_service import ResolvedAccess
from app.services.section_service import SectionService

router = APIRouter()


@router.get("/projects/{project_id}/sections", response_model=List[SectionResponse])
async def list_sections(
    project_id: str,
    access: ResolvedAccess = Depends(ProjectRoleChecker(Role.VIEWER)),
    session: AsyncSession = Depends(get_db)
):
    return await SectionService(session).list_sections(project_id)


@router.post("/projects/{project_id}/sections", response_model=SectionResponse, status_code=status.HTTP_201_CREATED)
async def create_section(
    project_id: str,
    section_data: SectionCreate,
    access: ResolvedAccess = Depends(ProjectRoleChecker(Role.MEMBER)),
    session: AsyncSession = Depends(get_db)
):
    """
    Append a section, or insert it at ``position``
    """
    return await SectionService(session).create_section(
        project_id,
        section_data.name,
        color=section_data.color,
        position=section_data.position,
        kanban_wip_limit=section_data.kanban_wip_limit,
    )


@router.put("/projects/{project_id}/sections/reorder", response_model=List[SectionResponse])
async def reorder_sections(
    project_id: str,
    reorder_data: ReorderRequest,
    access: ResolvedAccess = Depends(ProjectRoleChecker(Role.MEMBER)),
    session: AsyncSession = Depends(get_db)
):
    return await SectionService(session).reorder_sections(project_id, reorder_data.ids)


@router.patch("/sections/{section_id}", response_model=SectionResponse)
async def update_section(
    section_id: str,
    section_data: SectionUpdate,
    access: ResolvedAccess = Depends(SectionRoleChecker(Role.MEMBER)),
    session: AsyncSession = Depends(get_db)
):
    return await SectionService(session).update_section(section_id, section_data.model_dump(exclude_unset=True))


@router.delete("/sections/{section_id}", response_model=MessageResponse)
async def delete_section(
    section_id: str,
    access: ResolvedAccess = Depends(SectionRoleChecker(Role.MEMBER)),
    session: AsyncSession = Depends(get_db)
):
    """
    Delete a section; its tasks stay in the project without a section
    """
    return await SectionService(session).delete_section(section_id)
