"""
Task API Endpoints
Tasks, subtasks, moves, duplication and comments
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.deps import get_current_user
from app.core.permissions import CommentRoleChecker, ProjectRoleChecker, TaskRoleChecker
from app.core.roles import Role
from app.db.database import get_db
from app.db.repository import TaskFilters
from app.models.user import User
from app.schemas.common import MessageResponse
from app.schemas.task import CommentCreate, CommentResponse, SubtaskCreate, TaskCreate, TaskMove, TaskUpdate
from app.services.comment_service import CommentService
from app.services.membership_service import ResolvedAccess
from app.services.task_service import TaskService

router = APIRouter()


@router.get("/projects/{project_id}/tasks")
async def list_tasks(
    project_id: str,
    section_id: Optional[str] = Query(None),
    assignee_id: Optional[str] = Query(None),
    priority: Optional[str] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
    completed: Optional[bool] = Query(None),
    parent_id: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    nested: bool = Query(False, description="Return root tasks with their subtasks nested"),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    access: ResolvedAccess = Depends(ProjectRoleChecker(Role.VIEWER)),
    session: AsyncSession = Depends(get_db)
):
    """
    List tasks in ascending order

    With ``nested`` the root level is paginated and every root carries its
    subtree
    """
    filters = TaskFilters(
        section_id=section_id,
        assignee_id=assignee_id,
        priority=priority,
        status=status_filter,
        completed=completed,
        parent_id=parent_id,
        search=search,
    )
    return await TaskService(session).list_tasks(project_id, filters, nested=nested, page=page, limit=limit)


@router.post("/projects/{project_id}/tasks", status_code=status.HTTP_201_CREATED)
async def create_task(
    project_id: str,
    task_data: TaskCreate,
    access: ResolvedAccess = Depends(ProjectRoleChecker(Role.MEMBER)),
    session: AsyncSession = Depends(get_db)
):
    return await TaskService(session).create_task(
        project_id, task_data.model_dump(exclude_none=True), created_by=access.user_id
    )


@router.get("/tasks/{task_id}")
async def get_task(
    task_id: str,
    access: ResolvedAccess = Depends(TaskRoleChecker(Role.VIEWER)),
    session: AsyncSession = Depends(get_db)
):
    """
    Task with its subtasks and comments
    """
    return await TaskService(session).get_task_detail(task_id)


@router.patch("/tasks/{task_id}")
async def update_task(
    task_id: str,
    task_data: TaskUpdate,
    access: ResolvedAccess = Depends(TaskRoleChecker(Role.MEMBER)),
    session: AsyncSession = Depends(get_db)
):
    return await TaskService(session).update_task(task_id, task_data.model_dump(exclude_unset=True))


@router.delete("/tasks/{task_id}")
async def delete_task(
    task_id: str,
    access: ResolvedAccess = Depends(TaskRoleChecker(Role.MEMBER)),
    session: AsyncSession = Depends(get_db)
):
    """
    Delete a task together with all of its subtasks
    """
    return await TaskService(session).delete_task(task_id)


@router.post("/tasks/{task_id}/move")
async def move_task(
    task_id: str,
    move_data: TaskMove,
    access: ResolvedAccess = Depends(TaskRoleChecker(Role.MEMBER)),
    session: AsyncSession = Depends(get_db)
):
    return await TaskService(session).move_task(task_id, move_data.model_dump(exclude_unset=True))


@router.post("/tasks/{task_id}/duplicate", status_code=status.HTTP_201_CREATED)
async def duplicate_task(
    task_id: str,
    access: ResolvedAccess = Depends(TaskRoleChecker(Role.MEMBER)),
    session: AsyncSession = Depends(get_db)
):
    return await TaskService(session).duplicate_task(task_id, created_by=access.user_id)


@router.post("/tasks/{task_id}/subtasks", status_code=status.HTTP_201_CREATED)
async def create_subtask(
    task_id: str,
    subtask_data: SubtaskCreate,
    access: ResolvedAccess = Depends(TaskRoleChecker(Role.MEMBER)),
    session: AsyncSession = Depends(get_db)
):
    return await TaskService(session).create_subtask(
        task_id, subtask_data.model_dump(exclude_none=True), created_by=access.user_id
    )


@router.get("/tasks/{task_id}/comments")
async def list_comments(
    task_id: str,
    access: ResolvedAccess = Depends(TaskRoleChecker(Role.VIEWER)),
    session: AsyncSession = Depends(get_db)
):
    return await CommentService(session).list_comments(task_id)


@router.post("/tasks/{task_id}/comments", response_model=CommentResponse, status_code=status.HTTP_201_CREATED)
async def add_comment(
    task_id: str,
    comment_data: CommentCreate,
    access: ResolvedAccess = Depends(TaskRoleChecker(Role.MEMBER)),
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db)
):
    return await CommentService(session).add_comment(task_id, current_user, comment_data.content)


@router.delete("/comments/{comment_id}", response_model=MessageResponse)
async def delete_comment(
    comment_id: str,
    access: ResolvedAccess = Depends(CommentRoleChecker(Role.VIEWER)),
    session: AsyncSession = Depends(get_db)
):
    """
    Delete a comment; authors delete their own, project admins delete any
    """
    return await CommentService(session).delete_comment(comment_id, access)
