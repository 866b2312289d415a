"""
Project Column API Endpoints
"""

from typing import List
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.permissions import ColumnRoleChecker, ProjectRoleChecker
from app.core.roles import Role
from app.db.database import get_db
from app.schemas.common import MessageResponse, ReorderRequest
from app.schemas.task import ColumnCreate, ColumnResponse, ColumnUpdate
from app.services.column_service import ColumnService
from app.services.membership_service import ResolvedAccess

router = APIRouter()


@router.get("/projects/{project_id}/columns", response_model=List[ColumnResponse])
async def list_columns(
    project_id: str,
    access: ResolvedAccess = Depends(ProjectRoleChecker(Role.VIEWER)),
    session: AsyncSession = Depends(get_db)
):
    return await ColumnService(session).list_columns(project_id)


@router.post("/projects/{project_id}/columns", response_model=ColumnResponse, status_code=status.HTTP_201_CREATED)
async def create_column(
    project_id: str,
    column_data: ColumnCreate,
    access: ResolvedAccess = Depends(ProjectRoleChecker(Role.ADMIN)),
    session: AsyncSession = Depends(get_db)
):
    return await ColumnService(session).create_column(
        project_id,
        column_data.name,
        type=column_data.type.value,
        width=column_data.width,
        visible=column_data.visible,
        options=column_data.options,
    )


@router.put("/projects/{project_id}/columns/reorder", response_model=List[ColumnResponse])
async def reorder_columns(
    project_id: str,
    reorder_data: ReorderRequest,
    access: ResolvedAccess = Depends(ProjectRoleChecker(Role.ADMIN)),
    session: AsyncSession = Depends(get_db)
):
    return await ColumnService(session).reorder_columns(project_id, reorder_data.ids)


@router.patch("/columns/{column_id}", response_model=ColumnResponse)
async def update_column(
    column_id: str,
    column_data: ColumnUpdate,
    access: ResolvedAccess = Depends(ColumnRoleChecker(Role.ADMIN)),
    session: AsyncSession = Depends(get_db)
):
    return await ColumnService(session).update_column(column_id, column_data.model_dump(exclude_unset=True))


@router.delete("/columns/{column_id}", response_model=MessageResponse)
async def delete_column(
    column_id: str,
    access: ResolvedAccess = Depends(ColumnRoleChecker(Role.ADMIN)),
    session: AsyncSession = Depends(get_db)
):
    return await ColumnService(session).delete_column(column_id)
