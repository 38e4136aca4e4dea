"""
JSON snapshot persistence for the builder's query.

The file holds ``{"query": <normalized query>}``.  A missing or unreadable
snapshot is never an error for the caller: :meth:`QueryStateStore.load`
falls back to an empty query and logs what it discarded.
"""
from __future__ import annotations

import json
from pathlib import Path

from pydantic import ValidationError

from src.core.errors import MalformedPersistedState
from src.core.logging import get_logger
from src.filters.normalization import (
    CubeQuery,
    create_empty_query,
    normalize_query,
    query_from_wire,
)

logger = get_logger(__name__)


class QueryStateStore:
    def __init__(self, path: str | Path):
        self.path = Path(path)

    def save(self, query: CubeQuery) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"query": normalize_query(query)}
        self.path.write_text(json.dumps(payload, indent=2, default=str), encoding="utf-8")

    def read(self) -> CubeQuery | None:
        """Restored query, None when there is no snapshot.

        Raises MalformedPersistedState for unparseable or invalid content.
        """
        if not self.path.exists():
            return None
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise MalformedPersistedState(f"Cannot read {self.path}: {exc}") from exc

        if not isinstance(payload, dict) or not isinstance(payload.get("query"), dict):
            raise MalformedPersistedState(f"{self.path} has no 'query' object")
        try:
            return query_from_wire(payload["query"])
        except ValidationError as exc:
            raise MalformedPersistedState(f"Invalid query in {self.path}: {exc}") from exc

    def load(self) -> CubeQuery:
        try:
            query = self.read()
        except MalformedPersistedState as exc:
            logger.warning("Discarding persisted query: %s", exc)
            return create_empty_query()
        return query if query is not None else create_empty_query()

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
