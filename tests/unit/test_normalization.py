"""
Unit tests -- query normalization: wire adapters, pruning, trimming.
"""
import random

import pytest
from pydantic import ValidationError

from src.filters.model import (
    GroupFilter,
    SimpleFilter,
    create_and_group,
    create_or_group,
    create_simple_filter,
)
from src.filters.mutations import collapse_singleton_groups
from src.filters.normalization import (
    CubeQuery,
    TimeDimension,
    create_empty_query,
    from_wire_format,
    has_query_content,
    normalize_query,
    parse_filters,
    prune_orphaned_filters,
    query_from_wire,
    to_wire_format,
    to_wire_query,
)

A = create_simple_filter("A.x", "equals", ["1"])
B = create_simple_filter("B.y", "gt", [5])
C = create_simple_filter("A.z", "contains", ["foo"])


# ── Outbound ─────────────────────────────────────────────

def test_to_wire_format_leaf_unchanged():
    assert to_wire_format([A]) == [{"member": "A.x", "operator": "equals", "values": ["1"]}]


def test_to_wire_format_nested_groups():
    tree = [create_and_group([A, create_or_group([B, C])])]
    assert to_wire_format(tree) == [{
        "and": [
            {"member": "A.x", "operator": "equals", "values": ["1"]},
            {"or": [
                {"member": "B.y", "operator": "gt", "values": [5]},
                {"member": "A.z", "operator": "contains", "values": ["foo"]},
            ]},
        ]
    }]


# ── Inbound ──────────────────────────────────────────────

def test_from_wire_bare_keys():
    raw = [{"or": [{"member": "A.x", "operator": "equals", "values": ["1"]},
                   {"and": [{"member": "B.y", "operator": "gt", "values": [5]},
                            {"member": "A.z", "operator": "contains", "values": ["foo"]}]}]}]
    assert from_wire_format(raw) == [create_or_group([A, create_and_group([B, C])])]


def test_from_wire_tagged_shape():
    raw = [{"kind": "and", "children": [
        {"member": "A.x", "operator": "equals", "values": ["1"]},
        {"member": "B.y", "operator": "gt", "values": [5]},
    ]}]
    assert from_wire_format(raw) == [create_and_group([A, B])]


def test_round_trip():
    tree = [create_and_group([A, create_or_group([B, create_and_group([C, A])])])]
    assert from_wire_format(to_wire_format(tree)) == tree


def _random_node(rng, depth):
    if depth == 0 or rng.random() < 0.4:
        member = rng.choice(["A.x", "A.z", "B.y"])
        operator = rng.choice(["equals", "gt", "contains", "set"])
        values = [] if operator == "set" else [rng.choice(["1", "foo", 5, 2.5])]
        return create_simple_filter(member, operator, values)
    children = [_random_node(rng, depth - 1) for _ in range(rng.randint(1, 3))]
    return create_and_group(children) if rng.random() < 0.5 else create_or_group(children)


@pytest.mark.parametrize("seed", range(20))
def test_round_trip_random_trees(seed):
    rng = random.Random(seed)
    tree = [_random_node(rng, 4) for _ in range(rng.randint(1, 4))]
    assert from_wire_format(to_wire_format(tree)) == tree


def test_from_wire_unknown_shape_passes_through():
    weird = {"something": "else"}
    result = from_wire_format([weird, None, {"member": "A.x", "operator": "equals", "values": ["1"]}])
    assert result == [weird, A]


def test_from_wire_group_with_unknown_child_stays_raw():
    weird = {"not": "a filter"}
    result = from_wire_format([{"and": [{"member": "A.x", "values": []}, weird]}])
    assert not isinstance(result[0], GroupFilter)
    assert result[0]["kind"] == "and"
    assert result[0]["children"][1] == weird


def test_parse_filters_rejects_unknown_shapes():
    with pytest.raises(ValidationError):
        parse_filters([{"something": "else"}])


def test_parse_filters_accepts_models():
    assert parse_filters([create_and_group([A, B])]) == [create_and_group([A, B])]


# ── Pruning ──────────────────────────────────────────────

def test_prune_removes_orphan_and_collapses_group():
    query = CubeQuery(dimensions=["A.x"])
    pruned = prune_orphaned_filters([create_and_group([A, B])], query)
    assert pruned == [create_and_group([A])]
    assert collapse_singleton_groups(pruned) == [A]


def test_prune_removes_sole_orphan():
    query = CubeQuery(dimensions=["A.x"])
    assert prune_orphaned_filters([B], query) == []


def test_prune_drops_groups_emptied():
    query = CubeQuery(measures=["A.x"])
    tree = [create_and_group([A, create_or_group([B, create_simple_filter("B.w")])])]
    assert prune_orphaned_filters(tree, query) == [create_and_group([A])]


def test_prune_considers_time_dimensions():
    query = CubeQuery(time_dimensions=[TimeDimension(dimension="B.y")])
    assert prune_orphaned_filters([B], query) == [B]


# ── Trimming ─────────────────────────────────────────────

def test_normalize_empty_query():
    assert normalize_query(create_empty_query()) == {}


def test_normalize_strips_empties_keeps_content():
    query = CubeQuery(
        measures=["Orders.count"],
        dimensions=[],
        time_dimensions=[TimeDimension(dimension="Orders.createdAt", granularity="month")],
        order={},
        limit=None,
        offset=0,
    )
    assert normalize_query(query) == {
        "measures": ["Orders.count"],
        "timeDimensions": [{"dimension": "Orders.createdAt", "granularity": "month"}],
    }


def test_normalize_keeps_tagged_filters():
    query = CubeQuery(measures=["A.x"], filters=[create_and_group([A, C])])
    assert normalize_query(query)["filters"][0]["kind"] == "and"


def test_to_wire_query_uses_bare_keys():
    query = CubeQuery(
        measures=["A.x"],
        filters=[create_or_group([A, C])],
        order={"A.x": "desc"},
        limit=50,
    )
    wire = to_wire_query(query)
    assert wire["filters"] == to_wire_format([create_or_group([A, C])])
    assert wire["order"] == {"A.x": "desc"}
    assert wire["limit"] == 50


def test_date_range_alias():
    td = TimeDimension(dimension="Orders.createdAt", date_range=["2024-01-01", "2024-01-31"])
    assert td.model_dump(by_alias=True, exclude_none=True) == {
        "dimension": "Orders.createdAt",
        "dateRange": ["2024-01-01", "2024-01-31"],
    }


# ── Whole-query conversion ───────────────────────────────

def test_query_from_wire_round_trip():
    query = CubeQuery(
        measures=["A.x"],
        dimensions=["A.z"],
        filters=[create_and_group([A, C])],
        segments=["A.active"],
    )
    assert query_from_wire(to_wire_query(query)) == query
    assert query_from_wire(normalize_query(query)) == query


def test_query_from_wire_tolerates_junk():
    assert query_from_wire(None) == create_empty_query()
    assert query_from_wire("nope") == create_empty_query()
    restored = query_from_wire({"measures": "A.x", "limit": 0, "filters": "bad"})
    assert restored == create_empty_query()


def test_query_from_wire_rejects_malformed_filter():
    with pytest.raises(ValidationError):
        query_from_wire({"measures": ["A.x"], "filters": [{"bogus": True}]})


def test_has_query_content():
    assert not has_query_content(create_empty_query())
    assert not has_query_content(CubeQuery(filters=[A]))
    assert has_query_content(CubeQuery(measures=["A.x"]))
    assert has_query_content(CubeQuery(time_dimensions=[TimeDimension(dimension="A.t")]))


def test_leaf_with_extra_keys_survives_wire():
    raw = [{"member": "A.t", "operator": "inDateRange", "values": ["2024-01-01", "2024-02-01"], "note": "q1"}]
    (leaf,) = from_wire_format(raw)
    assert isinstance(leaf, SimpleFilter)
    assert to_wire_format([leaf]) == raw
