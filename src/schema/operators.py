"""
Loads and caches the filter operator catalogue (``filter_operators.yml``).

The catalogue decides, for every operator tag:
  - which meta field types it applies to
  - whether it needs values at all, and how many it accepts
  - the value type an editor should offer (any / string / number / date)
"""
from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

_CATALOGUE_PATH = Path(__file__).resolve().parent / "filter_operators.yml"

FALLBACK_OPERATOR = "equals"


# ── Typed domain objects ─────────────────────────────────

@dataclass(frozen=True)
class FilterOperator:
    name: str
    label: str
    description: str = ""
    requires_values: bool = True
    supports_multiple_values: bool = False
    value_type: str = "any"  # any | string | number | date
    exact_values: int | None = None
    field_types: tuple[str, ...] = field(default_factory=tuple)

    def applies_to(self, field_type: str) -> bool:
        return field_type in self.field_types


@dataclass
class OperatorCatalogue:
    version: int
    operators: dict[str, FilterOperator]  # keyed by name, file order kept

    def get(self, name: str) -> FilterOperator | None:
        return self.operators.get(name)

    def names(self) -> list[str]:
        return list(self.operators)

    def for_field_type(self, field_type: str) -> list[FilterOperator]:
        return [op for op in self.operators.values() if op.applies_to(field_type)]


# ── Parsing ──────────────────────────────────────────────

def _parse_operator(raw: dict[str, Any]) -> FilterOperator:
    return FilterOperator(
        name=raw["name"],
        label=raw.get("label", raw["name"]),
        description=raw.get("description", ""),
        requires_values=raw.get("requires_values", True),
        supports_multiple_values=raw.get("supports_multiple_values", False),
        value_type=raw.get("value_type", "any"),
        exact_values=raw.get("exact_values"),
        field_types=tuple(raw.get("field_types") or ()),
    )


def _parse_catalogue(raw_yaml: dict[str, Any]) -> OperatorCatalogue:
    operators = {o["name"]: _parse_operator(o) for o in raw_yaml.get("operators", [])}
    return OperatorCatalogue(version=raw_yaml.get("version", 1), operators=operators)


# ── Public API ───────────────────────────────────────────

@lru_cache
def load_operator_catalogue() -> OperatorCatalogue:
    """Load and cache the operator catalogue from YAML."""
    with open(_CATALOGUE_PATH) as f:
        raw = yaml.safe_load(f)
    return _parse_catalogue(raw)


def get_operator(name: str) -> FilterOperator | None:
    return load_operator_catalogue().get(name)


def get_available_operators(field_type: str) -> list[FilterOperator]:
    """Operators valid for *field_type*, in catalogue order."""
    return load_operator_catalogue().for_field_type(field_type)


def default_operator_for(field_type: str | None) -> str:
    """First operator listed for *field_type*; ``equals`` when nothing matches."""
    if not field_type:
        return FALLBACK_OPERATOR
    available = get_available_operators(field_type)
    return available[0].name if available else FALLBACK_OPERATOR
