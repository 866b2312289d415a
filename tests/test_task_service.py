import pytest
from sqlalchemy import select

from app.core.exceptions import BadRequestError, ForbiddenError, NotFoundError
from app.core.roles import ProjectScope, Role
from app.db.repository import TaskFilters
from app.models.task import Task
from app.services.comment_service import CommentService
from app.services.membership_service import MembershipResolver
from app.services.task_service import TaskService


@pytest.fixture
async def board(factory):
    owner = await factory.user(full_name="Grace Hopper")
    tenant = await factory.tenant(owner)
    project = await factory.project(tenant, owner)
    todo = await factory.section(project, "To do", 0)
    done = await factory.section(project, "Done", 1)
    return owner, project, todo, done


async def test_new_root_tasks_are_inserted_at_the_head(session, board):
    owner, project, todo, _ = board
    service = TaskService(session)

    first = await service.create_task(project.id, {"title": "first", "section_id": todo.id}, owner.id)
    second = await service.create_task(project.id, {"title": "second", "section_id": todo.id}, owner.id)

    assert second["order_index"] < first["order_index"]
    listing = await service.list_tasks(project.id, TaskFilters(section_id=todo.id))
    assert [t["title"] for t in listing["data"]] == ["second", "first"]


async def test_subtasks_append_and_inherit_section(session, board):
    owner, project, todo, _ = board
    service = TaskService(session)
    parent = await service.create_task(project.id, {"title": "parent", "section_id": todo.id}, owner.id)

    a = await service.create_subtask(parent["id"], {"title": "a"}, owner.id)
    b = await service.create_subtask(parent["id"], {"title": "b"}, owner.id)

    assert a["section_id"] == todo.id
    assert a["level"] == 1
    assert b["order_index"] > a["order_index"]

    detail = await service.get_task_detail(parent["id"])
    assert [s["title"] for s in detail["subtasks"]] == ["a", "b"]
    assert detail["subtask_count"] == 2
    assert detail["comments"] == []


async def test_section_from_another_project_is_rejected(session, factory, board):
    owner, project, _, _ = board
    other = await factory.project(await factory.tenant(owner, "Other"), owner)
    foreign = await factory.section(other)

    with pytest.raises(BadRequestError):
        await TaskService(session).create_task(project.id, {"title": "x", "section_id": foreign.id}, owner.id)


async def test_nested_listing_paginates_root_tasks(session, factory, board):
    owner, project, _, _ = board
    roots = [await factory.task(project, title=f"root {i}", order_index=i) for i in range(3)]
    await factory.task(project, title="child", order_index=0, parent=roots[0])

    page = await TaskService(session).list_tasks(project.id, nested=True, page=1, limit=2)

    assert [t["title"] for t in page["data"]] == ["root 0", "root 1"]
    assert page["data"][0]["subtasks"][0]["title"] == "child"
    assert page["pagination"] == {"page": 1, "limit": 2, "total": 3, "total_pages": 2}


async def test_nested_listing_keeps_matching_subtasks_of_unmatched_parents(session, factory, board):
    owner, project, todo, _ = board
    parent = await factory.task(project, title="parent", order_index=0, section=todo)
    child = await factory.task(project, title="child", order_index=0, section=todo, parent=parent)
    await factory.task(project, title="grandchild", order_index=0, section=todo, parent=child)
    child.status = "DONE"
    await session.flush()

    service = TaskService(session)
    flat = await service.list_tasks(project.id, TaskFilters(status="DONE"))
    nested = await service.list_tasks(project.id, TaskFilters(status="DONE"), nested=True)

    assert [t["title"] for t in flat["data"]] == ["child"]
    assert [t["title"] for t in nested["data"]] == ["child"]
    assert nested["data"][0]["parent_id"] == parent.id
    assert "subtasks" not in nested["data"][0]
    assert nested["pagination"]["total"] == 1


async def test_flat_listing_filters(session, factory, board):
    owner, project, todo, _ = board
    service = TaskService(session)
    await service.create_task(project.id, {"title": "Write report", "section_id": todo.id, "priority": "HIGH"})
    await service.create_task(project.id, {"title": "Review", "priority": "LOW"})

    high = await service.list_tasks(project.id, TaskFilters(priority="HIGH"))
    found = await service.list_tasks(project.id, TaskFilters(search="REPORT"))

    assert [t["title"] for t in high["data"]] == ["Write report"]
    assert [t["title"] for t in found["data"]] == ["Write report"]


async def test_update_task_completion_and_name_alias(session, board):
    owner, project, _, _ = board
    service = TaskService(session)
    task = await service.create_task(project.id, {"title": "old"}, owner.id)

    updated = await service.update_task(task["id"], {"name": "new", "completed": True})
    assert updated["title"] == "new"
    assert updated["name"] == "new"
    assert updated["completed"] is True
    assert updated["completed_at"] is not None

    reopened = await service.update_task(task["id"], {"completed": False})
    assert reopened["completed_at"] is None


async def test_delete_task_removes_subtree(session, factory, board):
    _, project, _, _ = board
    root = await factory.task(project, title="root")
    child = await factory.task(project, title="child", parent=root)
    await factory.task(project, title="grandchild", parent=child)
    keep = await factory.task(project, title="keep")

    result = await TaskService(session).delete_task(root.id)

    remaining = await session.execute(select(Task.id).where(Task.project_id == project.id))
    assert result["deleted"] == 3
    assert list(remaining.scalars().all()) == [keep.id]


async def test_move_task_under_new_parent_updates_subtree(session, factory, board):
    _, project, todo, done = board
    target = await factory.task(project, title="target", section=done)
    await factory.task(project, title="existing", order_index=7, section=done, parent=target)
    moving = await factory.task(project, title="moving", section=todo)
    child = await factory.task(project, title="child", section=todo, parent=moving)

    moved = await TaskService(session).move_task(moving.id, {"parent_id": target.id})

    await session.refresh(child)
    assert moved["parent_id"] == target.id
    assert moved["section_id"] == done.id
    assert moved["level"] == 1
    assert moved["order_index"] == 8
    assert child.level == 2
    assert child.section_id == done.id


async def test_move_task_to_root_of_another_section(session, factory, board):
    _, project, todo, done = board
    parent = await factory.task(project, title="parent", section=todo)
    sub = await factory.task(project, title="sub", section=todo, parent=parent)

    moved = await TaskService(session).move_task(sub.id, {"parent_id": None, "section_id": done.id, "order_index": 3.5})

    assert moved["parent_id"] is None
    assert moved["level"] == 0
    assert moved["section_id"] == done.id
    assert moved["order_index"] == 3.5


async def test_subtask_cannot_move_to_a_section_other_than_its_parents(session, factory, board):
    _, project, todo, done = board
    parent = await factory.task(project, title="parent", section=todo)
    child = await factory.task(project, title="child", section=todo, parent=parent)
    service = TaskService(session)

    with pytest.raises(BadRequestError):
        await service.move_task(child.id, {"section_id": done.id})

    stayed = await service.move_task(child.id, {"section_id": todo.id, "order_index": 2})
    assert stayed["section_id"] == todo.id
    assert stayed["parent_id"] == parent.id


async def test_move_task_under_its_descendant_is_rejected(session, factory, board):
    _, project, _, _ = board
    root = await factory.task(project, title="root")
    child = await factory.task(project, title="child", parent=root)
    grandchild = await factory.task(project, title="grandchild", parent=child)
    service = TaskService(session)

    with pytest.raises(BadRequestError):
        await service.move_task(root.id, {"parent_id": grandchild.id})
    with pytest.raises(BadRequestError):
        await service.move_task(root.id, {"parent_id": root.id})


async def test_duplicate_sits_between_original_and_next_sibling(session, factory, board):
    owner, project, todo, _ = board
    original = await factory.task(project, title="Plan", order_index=1, section=todo)
    await factory.task(project, title="Next", order_index=1.5, section=todo)

    copy = await TaskService(session).duplicate_task(original.id, owner.id)

    assert copy["title"] == "Plan (Copy)"
    assert copy["section_id"] == todo.id
    assert copy["order_index"] == 1.25

    listing = await TaskService(session).list_tasks(project.id, TaskFilters(section_id=todo.id))
    assert [t["title"] for t in listing["data"]] == ["Plan", "Plan (Copy)", "Next"]


async def test_unknown_task_is_not_found(session):
    with pytest.raises(NotFoundError):
        await TaskService(session).get_task("missing")


async def test_comments_are_deleted_by_author_or_admin(session, factory, board):
    owner, project, todo, _ = board
    writer = await factory.user()
    reader = await factory.user()
    await factory.project_member(project, writer, Role.MEMBER)
    await factory.project_member(project, reader, Role.MEMBER)
    task = await factory.task(project, section=todo)

    comments = CommentService(session)
    first = await comments.add_comment(task.id, writer, "  ship it  ")
    second = await comments.add_comment(task.id, writer, "one more")
    assert first["content"] == "ship it"
    assert {c["id"] for c in await comments.list_comments(task.id)} == {first["id"], second["id"]}

    with pytest.raises(BadRequestError):
        await comments.add_comment(task.id, writer, "   ")

    resolver = MembershipResolver(session)
    scope = ProjectScope(project.id)
    with pytest.raises(ForbiddenError):
        await comments.delete_comment(first["id"], await resolver.resolve(reader, scope))

    await comments.delete_comment(first["id"], await resolver.resolve(writer, scope))
    await comments.delete_comment(second["id"], await resolver.resolve(owner, scope))
    assert await comments.list_comments(task.id) == []
