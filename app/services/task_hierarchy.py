"""
Task Hierarchy
Rebuilds the task/subtask tree from a flat task list and shapes it for the UI.

Nodes are plain dicts keyed like the task serializer output (``id``,
``parent_id``, ``order_index`` ...). A node only carries ``subtasks`` when it
has children.
"""

from collections import defaultdict
from numbers import Real
from typing import Any, Dict, Iterable, List, Mapping, Optional

from app.core.exceptions import BadRequestError

TaskNode = Dict[str, Any]


def _order_key(task: Mapping[str, Any]) -> float:
    value = task.get("order_index")
    return float(value) if value is not None else 0.0


def _check_node(task: Any) -> None:
    if not isinstance(task, Mapping) or task.get("id") is None:
        raise BadRequestError("Malformed task in hierarchy input: missing id")
    if not isinstance(task["id"], (str, int)):
        raise BadRequestError(f"Malformed task id: {task['id']!r}")

    parent_id = task.get("parent_id")
    if parent_id is not None and not isinstance(parent_id, (str, int)):
        raise BadRequestError(f"Malformed parent id on task {task['id']}: {parent_id!r}")

    order_index = task.get("order_index")
    if order_index is not None and (isinstance(order_index, bool) or not isinstance(order_index, Real)):
        raise BadRequestError(f"Malformed order index on task {task['id']}: {order_index!r}")


def index_children(tasks: Iterable[Mapping[str, Any]]) -> Dict[Optional[str], List[Mapping[str, Any]]]:
    """
    Map each parent id to its children in ascending ``order_index``.

    Ties keep their input order. Nodes without an id, with a non-scalar id or
    parent id, or with a non-numeric order index are rejected.
    """
    children: Dict[Optional[str], List[Mapping[str, Any]]] = defaultdict(list)
    for task in tasks:
        _check_node(task)
        children[task.get("parent_id")].append(task)

    for siblings in children.values():
        siblings.sort(key=_order_key)
    return children


def _attach(
    children: Dict[Optional[str], List[Mapping[str, Any]]],
    siblings: Iterable[Mapping[str, Any]],
) -> List[TaskNode]:
    nodes = []
    for task in siblings:
        node = dict(task)
        node.pop("subtasks", None)
        subtasks = _attach(children, children.get(task["id"], ()))
        if subtasks:
            node["subtasks"] = subtasks
        nodes.append(node)
    return nodes


def build_hierarchy(tasks: Iterable[Mapping[str, Any]], parent_id: Optional[str] = None) -> List[TaskNode]:
    """
    Build the tree of tasks below ``parent_id`` (``None`` for root tasks).

    Tasks whose parent is not reachable from ``parent_id`` are left out.
    """
    children = index_children(tasks)
    return _attach(children, children.get(parent_id, ()))


def build_forest(tasks: Iterable[Mapping[str, Any]]) -> List[TaskNode]:
    """
    Build the tree of a subset of a project's tasks, such as a filtered listing.

    A task whose parent is not part of the subset becomes a root, so every
    input task appears exactly once. ``parent_id`` is left untouched.
    """
    tasks = list(tasks)
    children = index_children(tasks)
    ids = {task["id"] for task in tasks}

    roots = [
        task
        for parent, siblings in children.items()
        if parent is None or parent not in ids
        for task in siblings
    ]
    roots.sort(key=_order_key)
    return _attach(children, roots)


def transform_task(node: Mapping[str, Any]) -> TaskNode:
    """Add display fields to a node and, recursively, to its subtasks"""
    assignee = node.get("assignee") or {}
    subtasks = node.get("subtasks")

    transformed = dict(node)
    transformed["name"] = node.get("title")
    transformed["assignee_name"] = assignee.get("full_name") or assignee.get("email")
    transformed["assignee_avatar"] = assignee.get("avatar_url")
    transformed["subtask_count"] = node.get("subtask_count") or (len(subtasks) if subtasks else 0)
    transformed["is_expanded"] = False

    if subtasks:
        transformed["subtasks"] = [transform_task(child) for child in subtasks]
    return transformed


def flatten_hierarchy(nodes: Iterable[Mapping[str, Any]]) -> List[TaskNode]:
    """Depth-first list of every node in the tree, without ``subtasks``"""
    flat: List[TaskNode] = []
    stack = list(reversed(list(nodes)))
    while stack:
        node = stack.pop()
        item = dict(node)
        subtasks = item.pop("subtasks", None) or []
        flat.append(item)
        stack.extend(reversed(subtasks))
    return flat


def descendant_ids(tasks: Iterable[Mapping[str, Any]], task_id: str) -> List[str]:
    """Ids of every transitive descendant of ``task_id``"""
    children = index_children(tasks)
    found: List[str] = []
    stack = [task_id]
    seen = {task_id}
    while stack:
        for child in children.get(stack.pop(), ()):
            if child["id"] not in seen:
                seen.add(child["id"])
                found.append(child["id"])
                stack.append(child["id"])
    return found
