"""
Unit tests -- operator catalogue: YAML parsing, per-type lookups, defaults.
"""
from src.schema.operators import (
    FilterOperator,
    OperatorCatalogue,
    default_operator_for,
    get_available_operators,
    get_operator,
    load_operator_catalogue,
)


def test_loads_without_error():
    catalogue = load_operator_catalogue()
    assert isinstance(catalogue, OperatorCatalogue)
    assert catalogue.version == 1


def test_catalogue_is_cached():
    assert load_operator_catalogue() is load_operator_catalogue()


def test_known_operators_present():
    names = load_operator_catalogue().names()
    for name in ("equals", "notEquals", "contains", "gt", "between", "in", "set",
                 "inDateRange", "beforeDate", "afterDate", "arrayContains"):
        assert name in names


def test_operator_definition():
    op = get_operator("contains")
    assert isinstance(op, FilterOperator)
    assert op.requires_values is True
    assert op.supports_multiple_values is False
    assert op.value_type == "string"
    assert op.field_types == ("string",)


def test_unknown_operator():
    assert get_operator("sortOf") is None


def test_set_needs_no_values():
    assert get_operator("set").requires_values is False
    assert get_operator("notSet").requires_values is False


def test_range_operators_take_two_values():
    for name in ("between", "notBetween", "inDateRange"):
        assert get_operator(name).exact_values == 2
    assert get_operator("gt").exact_values is None


def test_numeric_anchor_expanded():
    gt = get_operator("gt")
    assert "number" in gt.field_types
    assert "count" in gt.field_types
    assert "sum" in gt.field_types


def test_available_operators_for_time():
    names = [op.name for op in get_available_operators("time")]
    assert names[0] == "equals"
    assert "inDateRange" in names
    assert "contains" not in names


def test_available_operators_keep_catalogue_order():
    names = [op.name for op in get_available_operators("string")]
    assert names.index("equals") < names.index("contains") < names.index("regex")


def test_default_operator_for():
    assert default_operator_for("string") == "equals"
    assert default_operator_for("count") == "equals"
    assert default_operator_for("no-such-type") == "equals"
    assert default_operator_for(None) == "equals"
