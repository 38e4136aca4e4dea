"""
Filter tree model -- the two node shapes a query's ``filters`` list is built from.

  SimpleFilter -- one leaf condition ``member <operator> values``
  GroupFilter  -- an AND / OR container of child nodes (nested without limit)

Nodes are immutable and never point back at their parent; every traversal
is plain structural recursion and parent context travels as an index path.
"""
from __future__ import annotations

from typing import Any, Iterable, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

GroupKind = Literal["and", "or"]


class SimpleFilter(BaseModel):
    """A single field / operator / values condition.

    Extra keys (``dateRange`` on time filters, for instance) are kept so they
    survive a round trip through the builder untouched.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    member: str = Field(..., description="Fully-qualified field, e.g. 'Orders.status'")
    operator: str = Field("equals", description="Operator tag, e.g. 'equals', 'gt', 'inDateRange'")
    values: list[Any] = Field(default_factory=list)


class GroupFilter(BaseModel):
    """Logical conjunction (``and``) or disjunction (``or``) of child nodes."""

    model_config = ConfigDict(frozen=True)

    kind: GroupKind
    children: list[FilterNode] = Field(default_factory=list)


FilterNode = Union[SimpleFilter, GroupFilter]

GroupFilter.model_rebuild()


# ── Classification ───────────────────────────────────────

def is_simple_filter(node: Any) -> bool:
    return isinstance(node, SimpleFilter)


def is_group_filter(node: Any) -> bool:
    return isinstance(node, GroupFilter)


def is_and_filter(node: Any) -> bool:
    return isinstance(node, GroupFilter) and node.kind == "and"


def is_or_filter(node: Any) -> bool:
    return isinstance(node, GroupFilter) and node.kind == "or"


# ── Traversals ───────────────────────────────────────────

def count_leaves(nodes: Iterable[FilterNode]) -> int:
    """Number of SimpleFilters anywhere in the forest."""
    count = 0
    for node in nodes:
        if isinstance(node, SimpleFilter):
            count += 1
        elif isinstance(node, GroupFilter):
            count += count_leaves(node.children)
    return count


def flatten_leaves(nodes: Iterable[FilterNode]) -> list[SimpleFilter]:
    """Every leaf in depth-first order, group structure discarded."""
    leaves: list[SimpleFilter] = []
    for node in nodes:
        if isinstance(node, SimpleFilter):
            leaves.append(node)
        elif isinstance(node, GroupFilter):
            leaves.extend(flatten_leaves(node.children))
    return leaves


def filter_members(nodes: Iterable[FilterNode]) -> list[str]:
    """Unique member names referenced by the forest, first occurrence first."""
    seen: dict[str, None] = {}
    for leaf in flatten_leaves(nodes):
        seen.setdefault(leaf.member, None)
    return list(seen)


# ── Constructors ─────────────────────────────────────────

def create_simple_filter(
    member: str,
    operator: str = "equals",
    values: Iterable[Any] = (),
) -> SimpleFilter:
    return SimpleFilter(member=member, operator=operator, values=list(values))


def create_and_group(children: Iterable[FilterNode] = ()) -> GroupFilter:
    return GroupFilter(kind="and", children=list(children))


def create_or_group(children: Iterable[FilterNode] = ()) -> GroupFilter:
    return GroupFilter(kind="or", children=list(children))
