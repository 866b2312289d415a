import pytest

from app.core.exceptions import BadRequestError
from app.services.task_hierarchy import (
    build_forest,
    build_hierarchy,
    descendant_ids,
    flatten_hierarchy,
    transform_task,
)


def node(id, parent_id=None, order_index=0, **extra):
    return {"id": id, "parent_id": parent_id, "order_index": order_index, "title": f"Task {id}", **extra}


@pytest.fixture
def tasks():
    return [
        node("b", order_index=2),
        node("a", order_index=1),
        node("a2", parent_id="a", order_index=5),
        node("a1", parent_id="a", order_index=-1),
        node("a1x", parent_id="a1", order_index=0),
        node("orphan", parent_id="missing"),
    ]


def test_build_hierarchy_orders_siblings_and_nests_children(tasks):
    tree = build_hierarchy(tasks)

    assert [n["id"] for n in tree] == ["a", "b"]
    assert [n["id"] for n in tree[0]["subtasks"]] == ["a1", "a2"]
    assert tree[0]["subtasks"][0]["subtasks"][0]["id"] == "a1x"


def test_leaf_nodes_have_no_subtasks_key(tasks):
    tree = build_hierarchy(tasks)

    assert "subtasks" not in tree[1]
    assert "subtasks" not in tree[0]["subtasks"][1]


def test_unreachable_tasks_are_left_out(tasks):
    flat_ids = {n["id"] for n in flatten_hierarchy(build_hierarchy(tasks))}
    assert "orphan" not in flat_ids
    assert flat_ids == {"a", "a1", "a1x", "a2", "b"}


def test_build_hierarchy_from_a_subtree(tasks):
    subtree = build_hierarchy(tasks, "a")
    assert [n["id"] for n in subtree] == ["a1", "a2"]


def test_build_hierarchy_does_not_mutate_input(tasks):
    build_hierarchy(tasks)
    assert all("subtasks" not in t for t in tasks)


def test_equal_order_indexes_keep_input_order():
    tree = build_hierarchy([node("x"), node("y"), node("z")])
    assert [n["id"] for n in tree] == ["x", "y", "z"]


def test_missing_id_is_rejected():
    with pytest.raises(BadRequestError):
        build_hierarchy([{"parent_id": None, "order_index": 0}])


@pytest.mark.parametrize(
    "bad",
    [
        node("x", order_index="first"),
        node("x", order_index=True),
        node("x", parent_id=["a"]),
        node(["x"]),
        "not a task",
    ],
)
def test_malformed_nodes_are_rejected(bad):
    with pytest.raises(BadRequestError):
        build_hierarchy([node("ok"), bad])


def test_flatten_is_depth_first(tasks):
    flat = flatten_hierarchy(build_hierarchy(tasks))
    assert [n["id"] for n in flat] == ["a", "a1", "a1x", "a2", "b"]
    assert all("subtasks" not in n for n in flat)


def test_transform_task_adds_display_fields():
    tree = build_hierarchy([
        node("p", assignee={"full_name": "Ada Lovelace", "email": "ada@example.com", "avatar_url": "a.png"}),
        node("c", parent_id="p", assignee={"full_name": None, "email": "bob@example.com"}),
    ])

    transformed = transform_task(tree[0])

    assert transformed["name"] == "Task p"
    assert transformed["assignee_name"] == "Ada Lovelace"
    assert transformed["assignee_avatar"] == "a.png"
    assert transformed["subtask_count"] == 1
    assert transformed["is_expanded"] is False
    assert transformed["subtasks"][0]["assignee_name"] == "bob@example.com"


def test_descendant_ids_walks_the_whole_subtree(tasks):
    assert sorted(descendant_ids(tasks, "a")) == ["a1", "a1x", "a2"]
    assert descendant_ids(tasks, "b") == []


def test_build_forest_promotes_tasks_whose_parent_is_missing():
    subset = [
        node("c2", parent_id="p", order_index=2),
        node("c1", parent_id="p", order_index=1),
        node("c1a", parent_id="c1"),
        node("r", order_index=1.5),
    ]

    forest = build_forest(subset)

    assert [n["id"] for n in forest] == ["c1", "r", "c2"]
    assert forest[0]["parent_id"] == "p"
    assert forest[0]["subtasks"][0]["id"] == "c1a"
    assert {n["id"] for n in flatten_hierarchy(forest)} == {n["id"] for n in subset}


def test_build_forest_matches_build_hierarchy_on_a_whole_project(tasks):
    complete = [t for t in tasks if t["id"] != "orphan"]
    assert build_forest(complete) == build_hierarchy(complete)
