"""
Validates filter leaves against the schema and the operator catalogue.

Checks performed on every leaf:
  1. The member exists among the schema's measures / dimensions
  2. The operator is a known operator
  3. The operator applies to the member's field type
  4. Operators that need values have at least one
  5. Single-value operators carry no more than one value
  6. Range operators (between, inDateRange, ...) carry exactly two values

This is the local pre-check; the remote dry-run stays authoritative.
"""
from __future__ import annotations

from typing import Iterable

from src.filters.model import FilterNode, SimpleFilter, flatten_leaves
from src.schema.meta import MetaResponse, get_field_type
from src.schema.operators import get_operator


def validate_filter(leaf: SimpleFilter, schema: MetaResponse) -> list[str]:
    """Return a list of validation error messages (empty list = leaf is valid).

    Parameters
    ----------
    leaf : SimpleFilter
        The condition to check.
    schema : MetaResponse
        Parsed ``/meta`` description the member is looked up in.
    """
    errors: list[str] = []

    if schema.field(leaf.member) is None:
        errors.append(f'Field "{leaf.member}" does not exist')
        return errors  # nothing else to check without a field type

    field_type = get_field_type(leaf.member, schema)
    operator = get_operator(leaf.operator)
    if operator is None:
        errors.append(f'Invalid operator "{leaf.operator}"')
        return errors

    if not operator.applies_to(field_type):
        errors.append(
            f'Operator "{leaf.operator}" is not valid for field type "{field_type}"'
        )
        return errors

    values = leaf.values or []
    if operator.requires_values and not values:
        errors.append(f'Operator "{leaf.operator}" requires values')

    if operator.exact_values is not None:
        if values and len(values) != operator.exact_values:
            errors.append(
                f'Operator "{leaf.operator}" requires exactly {operator.exact_values} values'
            )
    elif not operator.supports_multiple_values and len(values) > 1:
        errors.append(f'Operator "{leaf.operator}" does not support multiple values')

    return errors


def validate_filters(nodes: Iterable[FilterNode], schema: MetaResponse) -> list[str]:
    """Validate every leaf in the forest; messages are prefixed with the member."""
    errors: list[str] = []
    for leaf in flatten_leaves(nodes):
        for message in validate_filter(leaf, schema):
            errors.append(f"{leaf.member}: {message}")
    return errors
