"""
Exception taxonomy for the query builder.

Only the HTTP client and the snapshot store raise these; the state machine
catches them and records the message on its state record.
"""
from __future__ import annotations


class CubeQueryBuilderError(Exception):
    pass


class CubeApiError(CubeQueryBuilderError):
    """A request to the Cube API failed (transport error or non-2xx status)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class SchemaLoadError(CubeApiError):
    pass


class QueryValidationError(CubeApiError):
    pass


class ExecutionError(CubeApiError):
    pass


class MalformedPersistedState(CubeQueryBuilderError):
    pass
