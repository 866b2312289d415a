"""
Ordering Service

Two ordering policies live here:

* dense integer ``position`` for sections and custom columns (contiguous
  0..n-1 per project, maintained by bulk shifts);
* sparse float ``order_index`` for tasks, ordering siblings that share a
  project, section and parent without renumbering on insert.

Every order index assigned to a task goes through ``next_insert_position``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Sequence, Type, Union

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.core.config import settings
from app.core.exceptions import BadRequestError
from app.db.repository import Repository
from app.models.task import Task

logger = structlog.get_logger()

Number = Union[int, float]


class InsertKind(str, Enum):
    TASK_HEAD = "task_head"
    TASK_APPEND = "task_append"
    SUBTASK_APPEND = "subtask_append"
    DUPLICATE = "duplicate"
    MOVE_APPEND = "move_append"
    SECTION_APPEND = "section_append"
    COLUMN_APPEND = "column_append"


@dataclass
class InsertContext:
    """
    Inputs for ``next_insert_position``.

    ``existing`` holds the order indexes (or positions) already used in the
    destination group. ``original`` and ``next_sibling`` are only read for
    ``DUPLICATE``.
    """
    existing: Sequence[Number] = ()
    original: Optional[float] = None
    next_sibling: Optional[float] = None


def next_insert_position(kind: InsertKind, context: InsertContext) -> Number:
    """Order index or position for a new row of the given kind"""
    existing = list(context.existing)

    if kind == InsertKind.TASK_HEAD:
        return min(existing) - 1 if existing else 0

    if kind in (InsertKind.TASK_APPEND, InsertKind.SUBTASK_APPEND, InsertKind.MOVE_APPEND):
        return max(existing) + 1 if existing else 0

    if kind in (InsertKind.SECTION_APPEND, InsertKind.COLUMN_APPEND):
        return int(max(existing)) + 1 if existing else 0

    if kind == InsertKind.DUPLICATE:
        if context.original is None:
            raise BadRequestError("Duplicate position requires the original order index")
        candidate = context.original + 0.5
        if context.next_sibling is not None and candidate >= context.next_sibling:
            candidate = (context.original + context.next_sibling) / 2
        return candidate

    raise BadRequestError(f"Unknown insert kind: {kind}")


def gap_too_small(
    original: float,
    candidate: float,
    next_sibling: Optional[float],
    min_gap: Optional[float] = None,
) -> bool:
    """Whether a duplicate slot has lost the precision to stay distinct"""
    min_gap = settings.ORDER_INDEX_MIN_GAP if min_gap is None else min_gap
    if candidate - original < min_gap:
        return True
    return next_sibling is not None and next_sibling - candidate < min_gap


def sibling_predicate(project_id: str, section_id: Optional[str], parent_id: Optional[str]) -> List[Any]:
    """Filter for tasks ordered together: same project, section and parent"""
    return [
        Task.project_id == project_id,
        Task.section_id.is_(None) if section_id is None else Task.section_id == section_id,
        Task.parent_id.is_(None) if parent_id is None else Task.parent_id == parent_id,
    ]


async def sibling_order_indexes(
    session: AsyncSession,
    predicate: Sequence[Any],
    exclude_id: Optional[str] = None,
) -> List[float]:
    stmt = select(Task.order_index).where(*predicate)
    if exclude_id:
        stmt = stmt.where(Task.id != exclude_id)
    result = await session.execute(stmt.order_by(Task.order_index.asc()))
    return [value for value in result.scalars().all()]


async def position_for_new_task(
    session: AsyncSession,
    project_id: str,
    section_id: Optional[str],
    parent_id: Optional[str],
    append: bool = False,
) -> float:
    """
    Root tasks go to the head of their section, subtasks to the end of their
    parent. ``append`` puts a root task at the end of its section instead.
    """
    if parent_id:
        existing = await sibling_order_indexes(session, [Task.parent_id == parent_id])
        return next_insert_position(InsertKind.SUBTASK_APPEND, InsertContext(existing=existing))

    kind = InsertKind.TASK_APPEND if append else InsertKind.TASK_HEAD
    existing = await sibling_order_indexes(session, sibling_predicate(project_id, section_id, None))
    return next_insert_position(kind, InsertContext(existing=existing))


async def position_for_move(
    session: AsyncSession,
    task: Task,
    section_id: Optional[str],
    parent_id: Optional[str],
) -> float:
    """End of the destination sibling group, ignoring the moving task itself"""
    existing = await sibling_order_indexes(
        session,
        sibling_predicate(task.project_id, section_id, parent_id),
        exclude_id=task.id,
    )
    return next_insert_position(InsertKind.MOVE_APPEND, InsertContext(existing=existing))


async def position_for_duplicate(session: AsyncSession, original: Task) -> float:
    """
    Slot right after ``original``.

    When the slot is too close to a neighbour the sibling group is renumbered
    first and the slot recomputed.
    """
    predicate = sibling_predicate(original.project_id, original.section_id, original.parent_id)

    async def compute() -> tuple:
        result = await session.execute(
            select(func.min(Task.order_index)).where(
                *predicate, Task.order_index > original.order_index
            )
        )
        next_sibling = result.scalar_one_or_none()
        candidate = next_insert_position(
            InsertKind.DUPLICATE,
            InsertContext(original=original.order_index, next_sibling=next_sibling),
        )
        return candidate, next_sibling

    candidate, next_sibling = await compute()
    if gap_too_small(original.order_index, candidate, next_sibling):
        await rebalance_siblings(session, original.project_id, original.section_id, original.parent_id)
        await session.refresh(original)
        candidate, _ = await compute()
    return candidate


async def rebalance_siblings(
    session: AsyncSession,
    project_id: str,
    section_id: Optional[str],
    parent_id: Optional[str],
) -> int:
    """Renumber a sibling group to 0, 1, 2 ... keeping its current order"""
    result = await session.execute(
        select(Task.id)
        .where(*sibling_predicate(project_id, section_id, parent_id))
        .order_by(Task.order_index.asc(), Task.created_at.asc())
    )
    ids = list(result.scalars().all())

    for index, task_id in enumerate(ids):
        await session.execute(
            update(Task)
            .where(Task.id == task_id)
            .values(order_index=float(index))
            .execution_options(synchronize_session="fetch")
        )

    logger.info(
        "Rebalanced task order indexes",
        project_id=project_id,
        section_id=section_id,
        parent_id=parent_id,
        count=len(ids),
    )
    return len(ids)


# Dense positions (sections, custom columns)

async def next_dense_position(session: AsyncSession, model: Type[Any], project_id: str, kind: InsertKind) -> int:
    result = await session.execute(
        select(model.position).where(model.project_id == project_id)
    )
    existing = list(result.scalars().all())
    return next_insert_position(kind, InsertContext(existing=existing))


async def count_positions(session: AsyncSession, model: Type[Any], project_id: str) -> int:
    result = await session.execute(
        select(func.count()).select_from(model).where(model.project_id == project_id)
    )
    return result.scalar_one()


async def open_gap(repo: Repository, model: Type[Any], project_id: str, index: int) -> int:
    """Make room at ``index`` by shifting every later row up by one"""
    return await repo.shift_positions(
        model, [model.project_id == project_id, model.position >= index], 1
    )


async def close_gap(repo: Repository, model: Type[Any], project_id: str, old_index: int) -> int:
    """Close the hole left at ``old_index`` by shifting every later row down by one"""
    return await repo.shift_positions(
        model, [model.project_id == project_id, model.position > old_index], -1
    )


async def shift_for_move(
    repo: Repository,
    model: Type[Any],
    project_id: str,
    old_index: int,
    new_index: int,
) -> int:
    """Shift only the rows between the old and the new slot of a moving row"""
    if new_index < old_index:
        return await repo.shift_positions(
            model,
            [model.project_id == project_id, model.position >= new_index, model.position < old_index],
            1,
        )
    if new_index > old_index:
        return await repo.shift_positions(
            model,
            [model.project_id == project_id, model.position > old_index, model.position <= new_index],
            -1,
        )
    return 0


async def assign_positions(session: AsyncSession, model: Type[Any], ordered_ids: Sequence[str]) -> None:
    """Set ``position = index`` for every id in ``ordered_ids``"""
    for index, row_id in enumerate(ordered_ids):
        await session.execute(
            update(model)
            .where(model.id == row_id)
            .values(position=index)
            .execution_options(synchronize_session="fetch")
        )
