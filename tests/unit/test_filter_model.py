"""
Unit tests -- filter model: node shapes, predicates, traversals.
"""
import pytest
from pydantic import ValidationError

from src.filters.model import (
    GroupFilter,
    SimpleFilter,
    count_leaves,
    create_and_group,
    create_or_group,
    create_simple_filter,
    filter_members,
    flatten_leaves,
    is_and_filter,
    is_group_filter,
    is_or_filter,
    is_simple_filter,
)

A = create_simple_filter("Orders.status", "equals", ["completed"])
B = create_simple_filter("Orders.amount", "gt", [100])
C = create_simple_filter("Users.country", "in", ["US", "IN"])


# ── Constructors ─────────────────────────────────────────

def test_create_simple_filter_defaults():
    leaf = create_simple_filter("Orders.status")
    assert leaf.member == "Orders.status"
    assert leaf.operator == "equals"
    assert leaf.values == []


def test_create_groups():
    assert create_and_group([A, B]).kind == "and"
    assert create_or_group([A, B]).kind == "or"
    assert create_and_group().children == []


def test_nodes_are_frozen():
    with pytest.raises(ValidationError):
        A.member = "Other.field"


def test_simple_filter_keeps_extra_keys():
    leaf = SimpleFilter.model_validate(
        {"member": "Orders.createdAt", "operator": "inDateRange", "values": [], "dateRange": "last week"}
    )
    assert leaf.model_dump()["dateRange"] == "last week"


def test_group_rejects_unknown_kind():
    with pytest.raises(ValidationError):
        GroupFilter(kind="xor", children=[A])


# ── Predicates ───────────────────────────────────────────

def test_predicates_on_leaf():
    assert is_simple_filter(A)
    assert not is_group_filter(A)
    assert not is_and_filter(A)
    assert not is_or_filter(A)


def test_predicates_on_groups():
    and_group = create_and_group([A, B])
    or_group = create_or_group([A, B])
    assert is_group_filter(and_group) and is_and_filter(and_group)
    assert not is_or_filter(and_group)
    assert is_or_filter(or_group) and not is_and_filter(or_group)


def test_predicates_are_total():
    for value in (None, {}, {"member": "x"}, "and", 42):
        assert not is_simple_filter(value)
        assert not is_group_filter(value)


# ── Traversals ───────────────────────────────────────────

def test_count_leaves_empty():
    assert count_leaves([]) == 0


def test_count_leaves_nested():
    tree = [create_and_group([A, create_or_group([B, C])])]
    assert count_leaves(tree) == 3


def test_flatten_leaves_depth_first():
    tree = [create_and_group([create_or_group([B, C]), A])]
    assert flatten_leaves(tree) == [B, C, A]


def test_filter_members_unique_in_order():
    dup = create_simple_filter("Orders.status", "notEquals", ["cancelled"])
    tree = [create_and_group([A, B, dup])]
    assert filter_members(tree) == ["Orders.status", "Orders.amount"]
