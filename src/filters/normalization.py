"""
Query model and query normalization.

The filter tree is held internally in the tagged shape (``kind`` /
``children``).  The Cube API only understands the bare-key shape, so the
adapter pair below converts at the boundary:

  internal                              wire
  GroupFilter(kind="and", [...])   <->  {"and": [...]}
  GroupFilter(kind="or",  [...])   <->  {"or":  [...]}
  SimpleFilter                     <->  {"member", "operator", "values"}

Inbound conversion also accepts the tagged ``{"kind", "children"}`` dict
(that is how snapshots are persisted).  Anything else is passed through
untouched so that model validation rejects it explicitly later on.
"""
from __future__ import annotations

from typing import Any, Iterable, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from src.filters.model import FilterNode, GroupFilter, SimpleFilter

OrderSpec = Union[dict[str, str], list[list[str]]]

# Collections dropped from the outbound / persisted query when empty.
_COLLECTION_KEYS = ("measures", "dimensions", "timeDimensions", "filters", "segments", "order")
# Scalars dropped when unset or zero.
_SCALAR_KEYS = ("limit", "offset")


# ── Query model ──────────────────────────────────────────

class TimeDimension(BaseModel):
    """``{dimension, granularity?, dateRange?}``."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True, extra="allow"
    )

    dimension: str
    granularity: str | None = None
    date_range: str | list[str] | None = None


class CubeQuery(BaseModel):
    """A complete query as built up by the query builder."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True, extra="allow"
    )

    measures: list[str] = Field(default_factory=list)
    dimensions: list[str] = Field(default_factory=list)
    time_dimensions: list[TimeDimension] = Field(default_factory=list)
    filters: list[FilterNode] = Field(default_factory=list)
    order: OrderSpec | None = None
    limit: int | None = None
    offset: int | None = None
    segments: list[str] = Field(default_factory=list)

    def selected_members(self) -> set[str]:
        """Measures, dimensions and time dimensions currently in the query."""
        return {
            *self.measures,
            *self.dimensions,
            *(td.dimension for td in self.time_dimensions),
        }


def create_empty_query() -> CubeQuery:
    return CubeQuery()


def has_query_content(query: CubeQuery) -> bool:
    """True once at least one measure, dimension or time dimension is selected."""
    return bool(query.measures or query.dimensions or query.time_dimensions)


# ── Filter adapters ──────────────────────────────────────

def _node_to_wire(node: Any) -> Any:
    if isinstance(node, GroupFilter):
        return {node.kind: [_node_to_wire(child) for child in node.children]}
    if isinstance(node, SimpleFilter):
        return node.model_dump()
    return node


def to_wire_format(nodes: Iterable[FilterNode]) -> list[Any]:
    """Rewrite every group into the bare ``{"and": [...]}`` / ``{"or": [...]}`` form."""
    return [_node_to_wire(node) for node in nodes]


def _group_from_wire(kind: str, children: list[Any]) -> Any:
    # A group holding an unrecognised child stays a tagged dict so that model
    # validation reports the child instead of this conversion.
    if all(isinstance(c, (SimpleFilter, GroupFilter)) for c in children):
        return GroupFilter(kind=kind, children=children)
    return {"kind": kind, "children": children}


def _node_from_wire(raw: Any) -> Any:
    if isinstance(raw, GroupFilter):
        return raw.model_copy(update={"children": from_wire_format(raw.children)})
    if isinstance(raw, SimpleFilter) or not isinstance(raw, dict):
        return raw

    for kind in ("and", "or"):
        if isinstance(raw.get(kind), list):
            return _group_from_wire(kind, from_wire_format(raw[kind]))

    if raw.get("kind") in ("and", "or") and isinstance(raw.get("children"), list):
        return _group_from_wire(raw["kind"], from_wire_format(raw["children"]))

    if "member" in raw:
        try:
            return SimpleFilter.model_validate(raw)
        except ValidationError:
            return raw
    return raw


def from_wire_format(raw: Iterable[Any]) -> list[Any]:
    """Convert wire (or persisted) filter nodes into the internal tree.

    ``None`` entries are dropped; unrecognised shapes are kept verbatim.
    """
    return [_node_from_wire(node) for node in raw if node is not None]


_FILTER_LIST = TypeAdapter(list[FilterNode])


def parse_filters(raw: Iterable[Any]) -> list[FilterNode]:
    """``from_wire_format`` followed by strict validation of the result.

    Raises ``pydantic.ValidationError`` when a node has no recognised shape.
    """
    return _FILTER_LIST.validate_python(from_wire_format(raw))


def prune_orphaned_filters(filters: Iterable[FilterNode], query: CubeQuery) -> list[FilterNode]:
    """Drop leaves on members the query no longer selects, and groups left empty.

    Groups reduced to a single child are kept as they are; callers apply
    ``collapse_singleton_groups`` when they need the minimal shape.
    """
    selected = query.selected_members()

    def _prune(node: FilterNode) -> FilterNode | None:
        if isinstance(node, SimpleFilter):
            return node if node.member in selected else None
        if isinstance(node, GroupFilter):
            children = [c for c in (_prune(child) for child in node.children) if c is not None]
            return node.model_copy(update={"children": children}) if children else None
        return None

    return [n for n in (_prune(node) for node in filters) if n is not None]


# ── Query trimming ───────────────────────────────────────

def normalize_query(query: CubeQuery) -> dict[str, Any]:
    """Dump *query* with its camelCase keys, leaving out empty collections
    and unset ``limit`` / ``offset``.  Filters stay in the tagged shape."""
    raw = query.model_dump(by_alias=True, exclude_none=True)
    result: dict[str, Any] = {}
    for key, value in raw.items():
        if key in _COLLECTION_KEYS and not value:
            continue
        if key in _SCALAR_KEYS and not value:
            continue
        result[key] = value
    return result


def to_wire_query(query: CubeQuery) -> dict[str, Any]:
    """The normalized query with filters rewritten into the bare-key form."""
    wire = normalize_query(query)
    if "filters" in wire:
        wire["filters"] = to_wire_format(query.filters)
    return wire


def query_from_wire(raw: Any) -> CubeQuery:
    """Build a CubeQuery from a wire or persisted dict.

    Non-dict input yields an empty query.  Malformed filter nodes survive
    conversion and make validation raise ``pydantic.ValidationError``.
    """
    if isinstance(raw, CubeQuery):
        return raw
    if not isinstance(raw, dict):
        return create_empty_query()

    data: dict[str, Any] = {}
    for key, value in raw.items():
        if key in ("measures", "dimensions", "timeDimensions", "segments"):
            data[key] = value if isinstance(value, list) else []
        elif key == "filters":
            data[key] = from_wire_format(value) if isinstance(value, list) else []
        elif key in _SCALAR_KEYS:
            if value:
                data[key] = value
        elif value is not None:
            data[key] = value
    return CubeQuery.model_validate(data)
