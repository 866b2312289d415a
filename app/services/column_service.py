"""
Custom Column Service
Project list-view columns; ``position`` is dense per project like sections
"""

from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.core.exceptions import BadRequestError, NotFoundError
from app.db.repository import Repository
from app.models.project import ColumnType, ProjectColumn
from app.services import ordering
from app.services.ordering import InsertKind

logger = structlog.get_logger()

# Columns every new project starts with
DEFAULT_COLUMNS = (
    {"name": "Assignee", "type": ColumnType.USER.value, "width": 200},
    {"name": "Due Date", "type": ColumnType.DATE.value, "width": 150},
    {
        "name": "Priority",
        "type": ColumnType.SELECT.value,
        "width": 120,
        "options": {"choices": ["High", "Medium", "Low"]},
    },
    {
        "name": "Status",
        "type": ColumnType.SELECT.value,
        "width": 150,
        "options": {"choices": ["On Track", "At Risk", "Off Track"]},
    },
)


def serialize_column(column: ProjectColumn) -> Dict[str, Any]:
    return {
        "id": column.id,
        "project_id": column.project_id,
        "name": column.name,
        "type": column.type,
        "width": column.width,
        "position": column.position,
        "visible": column.visible,
        "options": column.options,
    }


class ColumnService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.repo = Repository(session)

    async def get_column(self, column_id: str) -> ProjectColumn:
        column = await self.session.get(ProjectColumn, column_id)
        if not column:
            raise NotFoundError("Column not found")
        return column

    async def _ordered(self, project_id: str) -> List[ProjectColumn]:
        result = await self.session.execute(
            select(ProjectColumn)
            .where(ProjectColumn.project_id == project_id)
            .order_by(ProjectColumn.position.asc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def list_columns(self, project_id: str) -> List[Dict[str, Any]]:
        return [serialize_column(c) for c in await self._ordered(project_id)]

    async def create_column(
        self,
        project_id: str,
        name: str,
        type: str = ColumnType.TEXT.value,
        width: Optional[int] = None,
        visible: bool = True,
        options: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Append a column after the existing ones"""
        try:
            column_type = ColumnType(type)
        except ValueError:
            raise BadRequestError(f"Invalid column type: {type}")

        position = await ordering.next_dense_position(
            self.session, ProjectColumn, project_id, InsertKind.COLUMN_APPEND
        )
        column = ProjectColumn(
            project_id=project_id,
            name=name,
            type=column_type.value,
            width=width or 150,
            visible=visible,
            options=options,
            position=position,
        )
        self.session.add(column)
        await self.session.flush()

        logger.info("Column created", project_id=project_id, column_id=column.id, position=position)
        return serialize_column(column)

    async def create_default_columns(self, project_id: str) -> None:
        for column in DEFAULT_COLUMNS:
            await self.create_column(project_id, **column)

    async def update_column(self, column_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        column = await self.get_column(column_id)
        for field_name in ("name", "width", "visible", "options"):
            if field_name in changes:
                setattr(column, field_name, changes[field_name])
        await self.session.flush()
        return serialize_column(column)

    async def delete_column(self, column_id: str) -> Dict[str, str]:
        column = await self.get_column(column_id)
        project_id, old_position = column.project_id, column.position

        await self.session.delete(column)
        await self.session.flush()
        await ordering.close_gap(self.repo, ProjectColumn, project_id, old_position)

        logger.info("Column deleted", project_id=project_id, column_id=column_id)
        return {"message": "Column deleted successfully"}

    async def reorder_columns(self, project_id: str, column_ids: Sequence[str]) -> List[Dict[str, Any]]:
        if len(set(column_ids)) != len(column_ids):
            raise BadRequestError("Column ids must not repeat")

        current = await self._ordered(project_id)
        if set(column_ids) != {c.id for c in current}:
            raise BadRequestError("Column ids must list every column of the project exactly once")

        await ordering.assign_positions(self.session, ProjectColumn, column_ids)
        return await self.list_columns(project_id)
