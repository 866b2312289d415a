import pytest
from sqlalchemy import select

from app.core.exceptions import BadRequestError
from app.models.task import Task
from app.services import ordering
from app.services.ordering import InsertContext, InsertKind, gap_too_small, next_insert_position


def test_root_task_goes_before_its_siblings():
    assert next_insert_position(InsertKind.TASK_HEAD, InsertContext(existing=[3.0, -2.0, 7.5])) == -3.0
    assert next_insert_position(InsertKind.TASK_HEAD, InsertContext()) == 0


def test_append_kinds_go_after_siblings():
    assert next_insert_position(InsertKind.SUBTASK_APPEND, InsertContext(existing=[0, 4.5])) == 5.5
    assert next_insert_position(InsertKind.MOVE_APPEND, InsertContext(existing=[])) == 0
    assert next_insert_position(InsertKind.TASK_APPEND, InsertContext(existing=[-1.0, 2.0])) == 3.0


def test_dense_append_is_integer():
    assert next_insert_position(InsertKind.SECTION_APPEND, InsertContext(existing=[0, 1, 2])) == 3
    assert next_insert_position(InsertKind.COLUMN_APPEND, InsertContext()) == 0


def test_duplicate_lands_half_a_step_after_the_original():
    assert next_insert_position(InsertKind.DUPLICATE, InsertContext(original=2.0)) == 2.5
    assert next_insert_position(InsertKind.DUPLICATE, InsertContext(original=2.0, next_sibling=5.0)) == 2.5


def test_duplicate_uses_midpoint_when_next_sibling_is_close():
    assert next_insert_position(InsertKind.DUPLICATE, InsertContext(original=1.0, next_sibling=1.5)) == 1.25
    assert next_insert_position(InsertKind.DUPLICATE, InsertContext(original=1.0, next_sibling=1.2)) == pytest.approx(1.1)


def test_duplicate_requires_original():
    with pytest.raises(BadRequestError):
        next_insert_position(InsertKind.DUPLICATE, InsertContext())


def test_gap_too_small():
    assert gap_too_small(1.0, 1.0 + 1e-9, None, min_gap=1e-6)
    assert gap_too_small(1.0, 1.5, 1.5 + 1e-9, min_gap=1e-6)
    assert not gap_too_small(1.0, 1.5, 2.0, min_gap=1e-6)


async def test_new_root_task_goes_to_head_of_its_section(session, factory):
    owner = await factory.user()
    tenant = await factory.tenant(owner)
    project = await factory.project(tenant, owner)
    section = await factory.section(project)
    await factory.task(project, order_index=0, section=section)
    await factory.task(project, order_index=-4, section=section)
    # Other sections do not count
    await factory.task(project, order_index=-100)

    position = await ordering.position_for_new_task(session, project.id, section.id, None)

    assert position == -5


async def test_subtask_appends_after_its_siblings(session, factory):
    owner = await factory.user()
    tenant = await factory.tenant(owner)
    project = await factory.project(tenant, owner)
    parent = await factory.task(project)
    await factory.task(project, order_index=0, parent=parent)
    await factory.task(project, order_index=3, parent=parent)

    assert await ordering.position_for_new_task(session, project.id, None, parent.id) == 4


async def test_duplicate_rebalances_when_gap_collapses(session, factory):
    owner = await factory.user()
    tenant = await factory.tenant(owner)
    project = await factory.project(tenant, owner)
    original = await factory.task(project, title="first", order_index=0)
    neighbour = await factory.task(project, title="second", order_index=1e-7)

    position = await ordering.position_for_duplicate(session, original)

    await session.refresh(neighbour)
    assert original.order_index == 0.0
    assert neighbour.order_index == 1.0
    assert position == 0.5


async def test_rebalance_keeps_order(session, factory):
    owner = await factory.user()
    tenant = await factory.tenant(owner)
    project = await factory.project(tenant, owner)
    for title, index in (("c", 9.0), ("a", -3.0), ("b", 0.25)):
        await factory.task(project, title=title, order_index=index)

    count = await ordering.rebalance_siblings(session, project.id, None, None)

    result = await session.execute(
        select(Task.title, Task.order_index).where(Task.project_id == project.id).order_by(Task.order_index)
    )
    assert count == 3
    assert [tuple(row) for row in result.all()] == [("a", 0.0), ("b", 1.0), ("c", 2.0)]
