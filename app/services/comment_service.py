"""
Comment Service
"""

from typing import Any, Dict, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.core.exceptions import BadRequestError, ForbiddenError, NotFoundError
from app.core.roles import Role, has_minimum_role
from app.models.task import Task, TaskComment
from app.models.user import User
from app.services.membership_service import ResolvedAccess

logger = structlog.get_logger()


def serialize_comment(comment: TaskComment, user: User) -> Dict[str, Any]:
    return {
        "id": comment.id,
        "task_id": comment.task_id,
        "user_id": comment.user_id,
        "content": comment.content,
        "author": user.full_name or user.email,
        "avatar": user.avatar_url,
        "created_at": comment.created_at.isoformat() if comment.created_at else None,
    }


class CommentService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_comment(self, comment_id: str) -> TaskComment:
        comment = await self.session.get(TaskComment, comment_id)
        if not comment:
            raise NotFoundError("Comment not found")
        return comment

    async def list_comments(self, task_id: str) -> List[Dict[str, Any]]:
        result = await self.session.execute(
            select(TaskComment, User)
            .join(User, User.id == TaskComment.user_id)
            .where(TaskComment.task_id == task_id)
            .order_by(TaskComment.created_at.asc())
        )
        return [serialize_comment(c, u) for c, u in result.all()]

    async def add_comment(self, task_id: str, user: User, content: str) -> Dict[str, Any]:
        if not content or not content.strip():
            raise BadRequestError("Comment content is required")
        if not await self.session.get(Task, task_id):
            raise NotFoundError("Task not found")

        comment = TaskComment(task_id=task_id, user_id=user.id, content=content.strip())
        self.session.add(comment)
        await self.session.flush()

        logger.info("Comment added", task_id=task_id, comment_id=comment.id, user_id=user.id)
        return serialize_comment(comment, user)

    async def delete_comment(self, comment_id: str, access: ResolvedAccess) -> Dict[str, str]:
        """Authors delete their own comments; project admins delete any"""
        comment = await self.get_comment(comment_id)

        if comment.user_id != access.user_id and not has_minimum_role(access.role, Role.ADMIN):
            raise ForbiddenError("You can only delete your own comments or you must be a project admin")

        await self.session.delete(comment)
        await self.session.flush()

        logger.info("Comment deleted", comment_id=comment_id, user_id=access.user_id)
        return {"message": "Comment deleted successfully"}
