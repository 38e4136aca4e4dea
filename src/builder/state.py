"""
Status enums and the immutable state record owned by the query builder.

The record is never mutated in place; every transition builds a new one with
``dataclasses.replace`` so readers always see a consistent combination of
query, validation and execution fields.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from src.filters.normalization import CubeQuery, create_empty_query
from src.schema.meta import MetaResponse


class SchemaStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


class ValidationStatus(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    VALID = "valid"
    INVALID = "invalid"


class ExecutionStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class QueryBuilderState:
    query: CubeQuery = field(default_factory=create_empty_query)

    # ── Schema ───────────────────────────────────────
    schema: MetaResponse | None = None
    schema_status: SchemaStatus = SchemaStatus.IDLE
    schema_error: str | None = None

    # ── Validation ───────────────────────────────────
    validation_status: ValidationStatus = ValidationStatus.IDLE
    validation_error: str | None = None
    validation_sql: dict[str, Any] | None = None
    validation_result: dict[str, Any] | None = None

    # ── Execution ────────────────────────────────────
    execution_status: ExecutionStatus = ExecutionStatus.IDLE
    execution_results: list[dict[str, Any]] | None = None
    execution_error: str | None = None
    total_row_count: int | None = None
    total_row_count_status: ExecutionStatus = ExecutionStatus.IDLE

    def with_validation_reset(self) -> "QueryBuilderState":
        return replace(
            self,
            validation_status=ValidationStatus.IDLE,
            validation_error=None,
            validation_sql=None,
            validation_result=None,
        )

    def with_execution_reset(self) -> "QueryBuilderState":
        return replace(
            self,
            execution_status=ExecutionStatus.IDLE,
            execution_results=None,
            execution_error=None,
            total_row_count=None,
            total_row_count_status=ExecutionStatus.IDLE,
        )
