"""
Task Service
Task CRUD plus the operations that touch the task tree: subtasks, moves
between sections and parents, and duplication.
"""

from datetime import datetime
from math import ceil
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.core.config import settings
from app.core.exceptions import BadRequestError, NotFoundError
from app.db.repository import Repository, TaskFilters
from app.models.task import Section, Task, TaskComment
from app.models.user import User
from app.services import ordering
from app.services.task_hierarchy import build_forest, build_hierarchy, descendant_ids, transform_task

logger = structlog.get_logger()

# Fields a caller may set directly on create/update
TASK_FIELDS = (
    "title",
    "description",
    "type",
    "assignee_id",
    "start_date",
    "due_date",
    "priority",
    "status",
    "tags",
    "custom_fields",
)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def serialize_user(user: Optional[User]) -> Optional[Dict[str, Any]]:
    if not user:
        return None
    return {
        "id": user.id,
        "email": user.email,
        "full_name": user.full_name,
        "avatar_url": user.avatar_url,
    }


def serialize_task(
    task: Task,
    assignee: Optional[User] = None,
    subtask_count: int = 0,
) -> Dict[str, Any]:
    return {
        "id": task.id,
        "project_id": task.project_id,
        "section_id": task.section_id,
        "parent_id": task.parent_id,
        "level": task.level,
        "order_index": task.order_index,
        "title": task.title,
        "description": task.description,
        "type": task.type,
        "assignee_id": task.assignee_id,
        "assignee": serialize_user(assignee),
        "start_date": _iso(task.start_date),
        "due_date": _iso(task.due_date),
        "priority": task.priority,
        "status": task.status,
        "completed": task.completed,
        "completed_at": _iso(task.completed_at),
        "tags": task.tags or [],
        "custom_fields": task.custom_fields or {},
        "subtask_count": subtask_count,
        "created_by": task.created_by,
        "created_at": _iso(task.created_at),
        "updated_at": _iso(task.updated_at),
    }


class TaskService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.repo = Repository(session)

    async def get_task(self, task_id: str) -> Task:
        task = await self.session.get(Task, task_id)
        if not task:
            raise NotFoundError("Task not found")
        return task

    async def serialize_many(self, tasks: Sequence[Task]) -> List[Dict[str, Any]]:
        """Serialize tasks with their assignees and direct subtask counts"""
        if not tasks:
            return []

        assignee_ids = {t.assignee_id for t in tasks if t.assignee_id}
        users: Dict[str, User] = {}
        if assignee_ids:
            result = await self.session.execute(select(User).where(User.id.in_(assignee_ids)))
            users = {u.id: u for u in result.scalars().all()}

        result = await self.session.execute(
            select(Task.parent_id, func.count(Task.id))
            .where(Task.parent_id.in_([t.id for t in tasks]))
            .group_by(Task.parent_id)
        )
        counts = dict(result.all())

        return [
            serialize_task(t, users.get(t.assignee_id), counts.get(t.id, 0))
            for t in tasks
        ]

    async def serialize(self, task: Task) -> Dict[str, Any]:
        serialized = await self.serialize_many([task])
        return transform_task(serialized[0])

    async def _check_section(self, project_id: str, section_id: Optional[str]) -> None:
        if section_id is None:
            return
        section = await self.session.get(Section, section_id)
        if not section or section.project_id != project_id:
            raise BadRequestError("Section does not belong to this project")

    async def _get_parent(self, project_id: str, parent_id: str) -> Task:
        parent = await self.session.get(Task, parent_id)
        if not parent:
            raise NotFoundError("Parent task not found")
        if parent.project_id != project_id:
            raise BadRequestError("Parent task belongs to another project")
        return parent

    async def create_task(
        self,
        project_id: str,
        data: Dict[str, Any],
        created_by: Optional[str] = None,
        append: bool = False,
    ) -> Dict[str, Any]:
        """
        Create a task.

        Root tasks go to the head of their section, or to its end with
        ``append``; subtasks are appended after their siblings and inherit
        the parent's section.
        """
        parent_id = data.get("parent_id")
        section_id = data.get("section_id")
        level = 0

        if parent_id:
            parent = await self._get_parent(project_id, parent_id)
            level = parent.level + 1
            section_id = parent.section_id
        else:
            await self._check_section(project_id, section_id)

        order_index = await ordering.position_for_new_task(
            self.session, project_id, section_id, parent_id, append=append
        )

        task = Task(
            project_id=project_id,
            section_id=section_id,
            parent_id=parent_id,
            level=level,
            order_index=order_index,
            created_by=created_by,
            **{k: data[k] for k in TASK_FIELDS if data.get(k) is not None},
        )
        if not task.title:
            raise BadRequestError("Task title is required")

        self.session.add(task)
        await self.session.flush()

        logger.info(
            "Task created",
            task_id=task.id,
            project_id=project_id,
            parent_id=parent_id,
            order_index=order_index,
        )
        return await self.serialize(task)

    async def create_subtask(
        self,
        parent_id: str,
        data: Dict[str, Any],
        created_by: Optional[str] = None,
    ) -> Dict[str, Any]:
        parent = await self.get_task(parent_id)
        return await self.create_task(parent.project_id, {**data, "parent_id": parent.id}, created_by)

    async def list_tasks(
        self,
        project_id: str,
        filters: Optional[TaskFilters] = None,
        nested: bool = False,
        page: int = 1,
        limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        List tasks, flat or as a tree.

        The nested form fetches every matching task, builds the tree and
        paginates its root level; the parent filter does not apply to it. A
        subtask that matches while its parent does not is listed as a root.
        """
        filters = filters or TaskFilters()
        limit = min(limit or settings.DEFAULT_TASK_PAGE_SIZE, settings.MAX_PAGE_SIZE)
        page = max(page, 1)
        offset = (page - 1) * limit

        if nested:
            filters.parent_id = None
            filters.root_only = False
            tasks = await self.repo.list_tasks(project_id, filters)
            serialized = await self.serialize_many(tasks)
            if filters == TaskFilters():
                tree = build_hierarchy(serialized, None)
            else:
                # Matches whose parent was filtered out surface as roots
                tree = build_forest(serialized)
            total = len(tree)
            data = [transform_task(node) for node in tree[offset:offset + limit]]
        else:
            total = await self.repo.count_tasks(project_id, filters)
            tasks = await self.repo.list_tasks(project_id, filters, offset=offset, limit=limit)
            data = [transform_task(node) for node in await self.serialize_many(tasks)]

        return {
            "data": data,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "total_pages": ceil(total / limit) if limit else 0,
            },
        }

    async def get_task_detail(self, task_id: str) -> Dict[str, Any]:
        """Task with its subtree and its comments (newest first)"""
        task = await self.get_task(task_id)

        project_tasks = await self.repo.list_tasks(task.project_id)
        serialized = await self.serialize_many(project_tasks)
        subtree = build_hierarchy(serialized, task.id)

        detail = await self.serialize(task)
        if subtree:
            detail["subtasks"] = [transform_task(node) for node in subtree]

        result = await self.session.execute(
            select(TaskComment, User)
            .join(User, User.id == TaskComment.user_id)
            .where(TaskComment.task_id == task.id)
            .order_by(TaskComment.created_at.desc())
        )
        detail["comments"] = [
            {
                "id": comment.id,
                "content": comment.content,
                "author": user.full_name or user.email,
                "avatar": user.avatar_url,
                "user_id": comment.user_id,
                "created_at": _iso(comment.created_at),
            }
            for comment, user in result.all()
        ]
        return detail

    async def update_task(self, task_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        """Update task fields; completing a task stamps ``completed_at``"""
        task = await self.get_task(task_id)

        if changes.get("name") and not changes.get("title"):
            changes = {**changes, "title": changes["name"]}

        for field_name in TASK_FIELDS:
            if field_name in changes:
                setattr(task, field_name, changes[field_name])

        if "completed" in changes and changes["completed"] is not None:
            if changes["completed"] and not task.completed:
                task.completed_at = datetime.utcnow()
            elif not changes["completed"]:
                task.completed_at = None
            task.completed = bool(changes["completed"])

        await self.session.flush()
        return await self.serialize(task)

    async def delete_task(self, task_id: str) -> Dict[str, Any]:
        """Delete a task and its whole subtree"""
        task = await self.get_task(task_id)

        project_tasks = await self.repo.list_tasks(task.project_id)
        ids = [task.id] + descendant_ids(
            [{"id": t.id, "parent_id": t.parent_id} for t in project_tasks], task.id
        )

        await self.session.execute(
            delete(Task).where(Task.id.in_(ids)).execution_options(synchronize_session="fetch")
        )

        logger.info("Task deleted", task_id=task_id, deleted=len(ids))
        return {"message": "Task deleted successfully", "deleted": len(ids)}

    async def move_task(
        self,
        task_id: str,
        changes: Dict[str, Any],
    ) -> Dict[str, Any]:
        """
        Move a task to another section and/or parent.

        ``changes`` may carry ``section_id``, ``parent_id`` (None makes the
        task a root task) and ``order_index``. A task cannot move below
        itself or one of its descendants, and a subtask cannot ask for a
        section other than its parent's. Levels and sections of the whole
        subtree follow the task.
        """
        task = await self.get_task(task_id)

        project_tasks = await self.repo.list_tasks(task.project_id)
        subtree = descendant_ids(
            [{"id": t.id, "parent_id": t.parent_id} for t in project_tasks], task.id
        )

        parent_id = changes["parent_id"] if "parent_id" in changes else task.parent_id
        section_id = changes["section_id"] if "section_id" in changes else task.section_id

        level = 0
        if parent_id:
            if parent_id == task.id or parent_id in subtree:
                raise BadRequestError("Cannot move a task under itself or one of its subtasks")
            parent = await self._get_parent(task.project_id, parent_id)
            level = parent.level + 1
            if "section_id" in changes and changes["section_id"] != parent.section_id:
                raise BadRequestError("A subtask stays in its parent's section")
            section_id = parent.section_id
        else:
            await self._check_section(task.project_id, section_id)

        order_index = changes.get("order_index")
        if order_index is None:
            order_index = await ordering.position_for_move(self.session, task, section_id, parent_id)

        level_delta = level - task.level
        task.parent_id = parent_id
        task.section_id = section_id
        task.level = level
        task.order_index = order_index

        by_id = {t.id: t for t in project_tasks}
        for descendant_id in subtree:
            descendant = by_id[descendant_id]
            descendant.level += level_delta
            descendant.section_id = section_id

        await self.session.flush()

        logger.info(
            "Task moved",
            task_id=task.id,
            section_id=section_id,
            parent_id=parent_id,
            order_index=order_index,
            subtree=len(subtree),
        )
        return await self.serialize(task)

    async def duplicate_task(self, task_id: str, created_by: Optional[str] = None) -> Dict[str, Any]:
        """Copy a task right after the original, without its subtasks"""
        original = await self.get_task(task_id)
        order_index = await ordering.position_for_duplicate(self.session, original)

        copy = Task(
            project_id=original.project_id,
            section_id=original.section_id,
            parent_id=original.parent_id,
            level=original.level,
            order_index=order_index,
            title=f"{original.title} (Copy)",
            description=original.description,
            type=original.type,
            assignee_id=original.assignee_id,
            start_date=original.start_date,
            due_date=original.due_date,
            priority=original.priority,
            status=original.status,
            tags=list(original.tags or []),
            custom_fields=dict(original.custom_fields or {}),
            created_by=created_by,
        )
        self.session.add(copy)
        await self.session.flush()

        logger.info("Task duplicated", task_id=original.id, copy_id=copy.id, order_index=order_index)
        return await self.serialize(copy)
