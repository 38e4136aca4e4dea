"""
Meta (schema) description returned by the Cube API ``/meta`` endpoint, plus
the field look-ups the builder and the filter validator rely on.
"""
from __future__ import annotations

from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict, Field

# Returned for fields the schema does not know.
DEFAULT_FIELD_TYPE = "string"


class MetaField(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str = Field(..., description="Fully-qualified name, e.g. 'Employees.count'")
    title: str = ""
    short_title: str = Field("", alias="shortTitle")
    type: str = Field(DEFAULT_FIELD_TYPE, description="count | sum | string | number | time | ...")
    description: str | None = None


class MetaCube(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str
    title: str = ""
    description: str = ""
    measures: list[MetaField] = Field(default_factory=list)
    dimensions: list[MetaField] = Field(default_factory=list)
    segments: list[MetaField] = Field(default_factory=list)


class MetaResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    cubes: list[MetaCube] = Field(default_factory=list)

    def iter_fields(self) -> Iterable[MetaField]:
        """Measures then dimensions, cube by cube."""
        for cube in self.cubes:
            yield from cube.measures
            yield from cube.dimensions

    def field(self, name: str) -> MetaField | None:
        for meta_field in self.iter_fields():
            if meta_field.name == name:
                return meta_field
        return None


def parse_meta(raw: MetaResponse | dict[str, Any]) -> MetaResponse:
    if isinstance(raw, MetaResponse):
        return raw
    return MetaResponse.model_validate(raw)


# ── Look-ups ─────────────────────────────────────────────

def get_cube_name_from_field(field_name: str) -> str:
    """``'Employees.count'`` -> ``'Employees'``."""
    return field_name.split(".")[0]


def get_field_type(field_name: str, schema: MetaResponse | None) -> str:
    if schema is None:
        return DEFAULT_FIELD_TYPE
    meta_field = schema.field(field_name)
    return meta_field.type if meta_field else DEFAULT_FIELD_TYPE


def get_field_title(field_name: str, schema: MetaResponse | None) -> str:
    """Title, then short title, then the raw name."""
    if schema is None:
        return field_name
    meta_field = schema.field(field_name)
    if meta_field is None:
        return field_name
    return meta_field.title or meta_field.short_title or field_name


def get_all_filterable_fields(schema: MetaResponse) -> list[MetaField]:
    """Every measure and dimension, sorted by name."""
    return sorted(schema.iter_fields(), key=lambda f: f.name)


def get_time_dimension_fields(schema: MetaResponse) -> list[MetaField]:
    return [d for cube in schema.cubes for d in cube.dimensions if d.type == "time"]


def get_regular_dimension_fields(schema: MetaResponse) -> list[MetaField]:
    return [d for cube in schema.cubes for d in cube.dimensions if d.type != "time"]


def get_measure_fields(schema: MetaResponse) -> list[MetaField]:
    return [m for cube in schema.cubes for m in cube.measures]


def is_time_dimension(field_name: str, schema: MetaResponse | None) -> bool:
    return get_field_type(field_name, schema) == "time"


def is_measure(field_name: str, schema: MetaResponse | None) -> bool:
    if schema is None:
        return False
    return any(m.name == field_name for m in get_measure_fields(schema))
