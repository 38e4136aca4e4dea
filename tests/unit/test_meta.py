"""
Unit tests -- meta models and field look-ups.
"""
import pytest

from src.schema.meta import (
    MetaResponse,
    get_all_filterable_fields,
    get_cube_name_from_field,
    get_field_title,
    get_field_type,
    get_measure_fields,
    get_regular_dimension_fields,
    get_time_dimension_fields,
    is_measure,
    is_time_dimension,
    parse_meta,
)

RAW_META = {
    "cubes": [
        {
            "name": "Users",
            "title": "Users",
            "measures": [
                {"name": "Users.count", "title": "User Count", "shortTitle": "Count", "type": "count"},
            ],
            "dimensions": [
                {"name": "Users.name", "title": "", "shortTitle": "Name", "type": "string"},
                {"name": "Users.signedUpAt", "title": "Signed Up", "shortTitle": "Signed Up", "type": "time"},
            ],
            "segments": [],
        },
        {
            "name": "Orders",
            "title": "Orders",
            "measures": [
                {"name": "Orders.amount", "title": "Amount", "shortTitle": "Amount", "type": "sum"},
            ],
            "dimensions": [
                {"name": "Orders.status", "title": "Status", "shortTitle": "Status", "type": "string"},
            ],
            "relationships": [{"targetCube": "Users", "relationship": "belongsTo"}],
        },
    ]
}


@pytest.fixture(scope="module")
def schema() -> MetaResponse:
    return parse_meta(RAW_META)


def test_parse_meta_keeps_instances(schema):
    assert parse_meta(schema) is schema
    assert len(schema.cubes) == 2


def test_short_title_alias(schema):
    assert schema.field("Users.name").short_title == "Name"


def test_cube_name_from_field():
    assert get_cube_name_from_field("Employees.count") == "Employees"
    assert get_cube_name_from_field("plain") == "plain"


def test_field_type(schema):
    assert get_field_type("Users.count", schema) == "count"
    assert get_field_type("Users.signedUpAt", schema) == "time"
    assert get_field_type("Nope.field", schema) == "string"
    assert get_field_type("Users.count", None) == "string"


def test_field_title_fallbacks(schema):
    assert get_field_title("Users.count", schema) == "User Count"
    assert get_field_title("Users.name", schema) == "Name"
    assert get_field_title("Nope.field", schema) == "Nope.field"
    assert get_field_title("Users.count", None) == "Users.count"


def test_all_filterable_fields_sorted(schema):
    names = [f.name for f in get_all_filterable_fields(schema)]
    assert names == sorted(names)
    assert len(names) == 5


def test_field_groupings(schema):
    assert [f.name for f in get_time_dimension_fields(schema)] == ["Users.signedUpAt"]
    assert [f.name for f in get_regular_dimension_fields(schema)] == ["Users.name", "Orders.status"]
    assert [f.name for f in get_measure_fields(schema)] == ["Users.count", "Orders.amount"]


def test_predicates(schema):
    assert is_time_dimension("Users.signedUpAt", schema)
    assert not is_time_dimension("Users.name", schema)
    assert is_measure("Orders.amount", schema)
    assert not is_measure("Orders.status", schema)
    assert not is_measure("Orders.amount", None)
