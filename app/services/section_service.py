"""
Section Service
Sections keep a dense 0-based ``position`` per project
"""

from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.core.exceptions import BadRequestError, NotFoundError
from app.db.repository import Repository
from app.models.task import Section, Task
from app.services import ordering
from app.services.ordering import InsertKind

logger = structlog.get_logger()


def serialize_section(section: Section, task_count: Optional[int] = None) -> Dict[str, Any]:
    data = {
        "id": section.id,
        "project_id": section.project_id,
        "name": section.name,
        "color": section.color,
        "position": section.position,
        "is_collapsed": section.is_collapsed,
        "kanban_wip_limit": section.kanban_wip_limit,
        "created_at": section.created_at.isoformat() if section.created_at else None,
    }
    if task_count is not None:
        data["task_count"] = task_count
    return data


class SectionService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.repo = Repository(session)

    async def get_section(self, section_id: str) -> Section:
        section = await self.session.get(Section, section_id)
        if not section:
            raise NotFoundError("Section not found")
        return section

    async def _ordered(self, project_id: str) -> List[Section]:
        result = await self.session.execute(
            select(Section)
            .where(Section.project_id == project_id)
            .order_by(Section.position.asc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def list_sections(self, project_id: str) -> List[Dict[str, Any]]:
        """Sections in display order with their task counts"""
        sections = await self._ordered(project_id)

        counts = await self.session.execute(
            select(Task.section_id, func.count(Task.id))
            .where(Task.project_id == project_id, Task.section_id.is_not(None))
            .group_by(Task.section_id)
        )
        task_counts = dict(counts.all())

        return [serialize_section(s, task_counts.get(s.id, 0)) for s in sections]

    async def create_section(
        self,
        project_id: str,
        name: str,
        color: Optional[str] = None,
        position: Optional[int] = None,
        kanban_wip_limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Append a section, or insert it at ``position`` shifting later sections down"""
        if position is None:
            position = await ordering.next_dense_position(
                self.session, Section, project_id, InsertKind.SECTION_APPEND
            )
        else:
            if position < 0:
                raise BadRequestError("Position must be zero or greater")
            count = await ordering.count_positions(self.session, Section, project_id)
            position = min(position, count)
            await ordering.open_gap(self.repo, Section, project_id, position)

        section = Section(
            project_id=project_id,
            name=name,
            color=color,
            position=position,
            kanban_wip_limit=kanban_wip_limit,
        )
        self.session.add(section)
        await self.session.flush()

        logger.info("Section created", project_id=project_id, section_id=section.id, position=position)
        return serialize_section(section, 0)

    async def update_section(self, section_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        """Rename, recolor, collapse or move a section"""
        section = await self.get_section(section_id)
        changes = dict(changes)

        new_position = changes.pop("position", None)
        for field_name in ("name", "color", "is_collapsed", "kanban_wip_limit"):
            if field_name in changes:
                setattr(section, field_name, changes[field_name])

        if new_position is not None:
            await self.move_section(section, new_position)

        await self.session.flush()
        return serialize_section(section)

    async def move_section(self, section: Section, new_position: int) -> None:
        if new_position < 0:
            raise BadRequestError("Position must be zero or greater")

        count = await ordering.count_positions(self.session, Section, section.project_id)
        new_position = min(new_position, count - 1)
        old_position = section.position
        if new_position == old_position:
            return

        await ordering.shift_for_move(self.repo, Section, section.project_id, old_position, new_position)
        section.position = new_position
        await self.session.flush()

        logger.info(
            "Section moved",
            section_id=section.id,
            from_position=old_position,
            to_position=new_position,
        )

    async def delete_section(self, section_id: str) -> Dict[str, str]:
        """Delete a section; its tasks become sectionless"""
        section = await self.get_section(section_id)
        project_id, old_position = section.project_id, section.position

        await self.session.execute(
            update(Task)
            .where(Task.section_id == section_id)
            .values(section_id=None)
            .execution_options(synchronize_session="fetch")
        )
        await self.session.delete(section)
        await self.session.flush()
        await ordering.close_gap(self.repo, Section, project_id, old_position)

        logger.info("Section deleted", project_id=project_id, section_id=section_id)
        return {"message": "Section deleted successfully"}

    async def reorder_sections(self, project_id: str, section_ids: Sequence[str]) -> List[Dict[str, Any]]:
        """Assign ``position = index`` following a complete ordered id list"""
        if len(set(section_ids)) != len(section_ids):
            raise BadRequestError("Section ids must not repeat")

        current = await self._ordered(project_id)
        if set(section_ids) != {s.id for s in current}:
            raise BadRequestError("Section ids must list every section of the project exactly once")

        await ordering.assign_positions(self.session, Section, section_ids)

        logger.info("Sections reordered", project_id=project_id, count=len(section_ids))
        return [serialize_section(s) for s in await self._ordered(project_id)]
