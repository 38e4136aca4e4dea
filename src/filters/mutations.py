"""
Filter mutation algebra -- pure add / update / remove / regroup operations.

Every function returns a new forest and leaves its input untouched.  Together
they keep the filter list minimal:

  - at most one top-level node
  - every group holds at least two children

A *path* is a sequence of child indices from the top-level list downwards,
e.g. ``(0, 2)`` is ``nodes[0].children[2]``.  A path that does not address a
suitable node turns the operation into a no-op; it is never an error.
"""
from __future__ import annotations

from typing import Iterable, Sequence

from src.filters.model import (
    FilterNode,
    GroupFilter,
    SimpleFilter,
    create_and_group,
)
from src.schema.meta import MetaResponse, get_field_type
from src.schema.operators import default_operator_for

Path = Sequence[int]


# ── Navigation ───────────────────────────────────────────

def get_node_at(nodes: Sequence[FilterNode], path: Path) -> FilterNode | None:
    """Node addressed by *path*, or None when the path leads nowhere."""
    if not path:
        return None
    current: Sequence[FilterNode] = nodes
    node: FilterNode | None = None
    for depth, index in enumerate(path):
        if not 0 <= index < len(current):
            return None
        node = current[index]
        if depth < len(path) - 1:
            if not isinstance(node, GroupFilter):
                return None
            current = node.children
    return node


def _replace_at(nodes: list[FilterNode], path: Path, new_node: FilterNode) -> list[FilterNode] | None:
    index, rest = path[0], path[1:]
    if not 0 <= index < len(nodes):
        return None
    if not rest:
        return nodes[:index] + [new_node] + nodes[index + 1:]
    target = nodes[index]
    if not isinstance(target, GroupFilter):
        return None
    children = _replace_at(list(target.children), rest, new_node)
    if children is None:
        return None
    return nodes[:index] + [target.model_copy(update={"children": children})] + nodes[index + 1:]


def replace_node_at(nodes: Sequence[FilterNode], path: Path, new_node: FilterNode) -> list[FilterNode]:
    if not path:
        return list(nodes)
    result = _replace_at(list(nodes), path, new_node)
    return list(nodes) if result is None else result


# ── Add ──────────────────────────────────────────────────

def add_simple_filter(nodes: Sequence[FilterNode], leaf: SimpleFilter) -> list[FilterNode]:
    """Add *leaf* at the top level.

    empty        -> [leaf]
    one leaf     -> [and(existing, leaf)]
    one group    -> the group with *leaf* appended, kind unchanged
    anything else (never produced by this module) -> *leaf* appended
    """
    if not nodes:
        return [leaf]
    if len(nodes) == 1:
        only = nodes[0]
        if isinstance(only, SimpleFilter):
            return [create_and_group([only, leaf])]
        if isinstance(only, GroupFilter):
            return [only.model_copy(update={"children": [*only.children, leaf]})]
    return [*nodes, leaf]


def add_filter_at_path(nodes: Sequence[FilterNode], path: Path, leaf: SimpleFilter) -> list[FilterNode]:
    """Append *leaf* inside the group at *path*; an empty path adds at the top level."""
    if not path:
        return add_simple_filter(nodes, leaf)
    target = get_node_at(nodes, path)
    if not isinstance(target, GroupFilter):
        return list(nodes)
    grown = target.model_copy(update={"children": [*target.children, leaf]})
    return replace_node_at(nodes, path, grown)


# ── Regroup ──────────────────────────────────────────────

def toggle_group_kind(nodes: Sequence[FilterNode]) -> list[FilterNode]:
    """Flip the top-level group between AND and OR; children are untouched."""
    if len(nodes) != 1 or not isinstance(nodes[0], GroupFilter):
        return list(nodes)
    group = nodes[0]
    flipped = "or" if group.kind == "and" else "and"
    return [group.model_copy(update={"kind": flipped})]


def collapse_singleton_groups(nodes: Iterable[FilterNode]) -> list[FilterNode]:
    """Drop empty groups and unwrap single-child groups, at every depth."""
    result: list[FilterNode] = []
    for node in nodes:
        if isinstance(node, GroupFilter):
            children = collapse_singleton_groups(node.children)
            if not children:
                continue
            if len(children) == 1:
                result.append(children[0])
            else:
                result.append(node.model_copy(update={"children": children}))
        else:
            result.append(node)
    return result


# ── Update ───────────────────────────────────────────────

def update_leaf_at(
    nodes: Sequence[FilterNode],
    path: Path,
    new_leaf: SimpleFilter,
    schema: MetaResponse | None = None,
) -> list[FilterNode]:
    """Store *new_leaf* at *path*, resetting what a field / operator change invalidates.

    - member changed   -> operator becomes the default for the new field's type,
                          values are cleared
    - operator changed -> values are cleared
    - otherwise        -> *new_leaf* is stored as given
    """
    current = get_node_at(nodes, path)
    if not isinstance(current, SimpleFilter):
        return list(nodes)

    if new_leaf.member != current.member:
        field_type = get_field_type(new_leaf.member, schema)
        stored = new_leaf.model_copy(
            update={"operator": default_operator_for(field_type), "values": []}
        )
    elif new_leaf.operator != current.operator:
        stored = new_leaf.model_copy(update={"values": []})
    else:
        stored = new_leaf
    return replace_node_at(nodes, path, stored)


# ── Remove ───────────────────────────────────────────────

def _remove_at(nodes: list[FilterNode], path: Path) -> list[FilterNode] | None:
    index, rest = path[0], path[1:]
    if not 0 <= index < len(nodes):
        return None
    if not rest:
        return nodes[:index] + nodes[index + 1:]

    target = nodes[index]
    if not isinstance(target, GroupFilter):
        return None
    children = _remove_at(list(target.children), rest)
    if children is None:
        return None

    if not children:
        replacement: list[FilterNode] = []
    elif len(children) == 1:
        replacement = [children[0]]
    else:
        replacement = [target.model_copy(update={"children": children})]
    return nodes[:index] + replacement + nodes[index + 1:]


def remove_filter_at(nodes: Sequence[FilterNode], path: Path) -> list[FilterNode]:
    """Remove the node at *path*.

    A group left with one child is replaced by that child at the group's
    position; a group left with none is removed as well.  Groups that keep
    two or more children keep their kind.
    """
    if not path:
        return list(nodes)
    result = _remove_at(list(nodes), path)
    if result is None:
        return list(nodes)

    if len(result) == 1 and isinstance(result[0], GroupFilter):
        group = result[0]
        if len(group.children) == 1:
            return [group.children[0]]
        if not group.children:
            return []
    return result
