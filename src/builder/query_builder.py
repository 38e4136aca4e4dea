"""
Query builder -- owns the query being edited and drives the
schema -> validate (dry-run) -> execute workflow against a Cube transport.

Three status axes live on one immutable ``QueryBuilderState`` record:

  schema      idle -> loading -> success | error
  validation  idle -> validating -> valid | invalid
  execution   idle -> loading -> success | error   (only from ``valid``)

Every edit that changes the normalized query bumps a generation counter,
resets validation and execution to ``idle`` and (re)arms a debounced dry-run.
Responses that come back for an older generation or an older query are
dropped.  Transport failures are stored as messages on the state and never
raised to the caller.
"""
from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Any, Callable, Iterable, Literal, Protocol, Sequence, Union

from src.builder.state import (
    ExecutionStatus,
    QueryBuilderState,
    SchemaStatus,
    ValidationStatus,
)
from src.builder.storage import QueryStateStore
from src.core.config import Settings, get_settings
from src.core.logging import get_logger
from src.core.utils import stable_json
from src.filters import mutations
from src.filters.model import FilterNode, SimpleFilter, create_simple_filter
from src.filters.normalization import (
    CubeQuery,
    TimeDimension,
    create_empty_query,
    has_query_content,
    normalize_query,
    parse_filters,
    prune_orphaned_filters,
    query_from_wire,
    to_wire_query,
)
from src.schema.meta import get_field_type, parse_meta
from src.schema.operators import default_operator_for

logger = get_logger(__name__)

FieldKind = Literal["measures", "dimensions", "timeDimensions"]
PathLike = Union[int, Sequence[int]]
Listener = Callable[[QueryBuilderState], None]

_FIELD_KIND_ALIASES = {
    "measures": "measures",
    "dimensions": "dimensions",
    "timeDimensions": "time_dimensions",
    "time_dimensions": "time_dimensions",
}

_REFRESHABLE = (ExecutionStatus.SUCCESS, ExecutionStatus.LOADING)


# ── Collaborator contract ────────────────────────────────

class TabularResult(Protocol):
    def table_pivot(self) -> list[dict[str, Any]]: ...


class CubeTransport(Protocol):
    """What the builder needs from the remote side (``CubeClient`` satisfies it)."""

    async def meta(self) -> Any: ...

    async def dry_run(self, query: dict[str, Any]) -> dict[str, Any]: ...

    async def load(self, query: dict[str, Any]) -> TabularResult: ...


def _error_message(exc: BaseException, default: str) -> str:
    return str(exc) or default


def _as_path(path: PathLike) -> tuple[int, ...]:
    if isinstance(path, int):
        return (path,)
    return tuple(path)


def _is_valid_dry_run(result: dict[str, Any]) -> bool:
    """No error, a query type, and no explicit ``valid: false``."""
    return (
        not result.get("error")
        and bool(result.get("queryType"))
        and result.get("valid") is not False
    )


class QueryBuilder:
    """Async query-building session bound to one transport.

    Parameters
    ----------
    transport : CubeTransport
        Remote collaborator providing ``meta`` / ``dry_run`` / ``load``.
    initial_query : CubeQuery or dict, optional
        Starting query; when omitted the snapshot in *store* (if any) is restored.
    store : QueryStateStore, optional
        Persists the query after every effective change.  Defaults to a store
        at ``Settings.query_state_path`` when that is set.
    display_limit : int, optional
        Row limit for the displayed result set; ``None`` falls back to settings.
    debounce_seconds : float, optional
        Dry-run debounce window; ``None`` falls back to settings.
    """

    def __init__(
        self,
        transport: CubeTransport,
        initial_query: CubeQuery | dict[str, Any] | None = None,
        store: QueryStateStore | None = None,
        display_limit: int | None = None,
        debounce_seconds: float | None = None,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._transport = transport
        if store is None and settings.persistence_enabled:
            store = QueryStateStore(settings.query_state_path)
        self._store = store
        self._display_limit: int | None = (
            display_limit if display_limit is not None else settings.default_display_limit
        )
        self._debounce_seconds = (
            debounce_seconds if debounce_seconds is not None else settings.validation_debounce_seconds
        )
        self._default_granularity = settings.default_granularity

        if initial_query is not None:
            query = query_from_wire(initial_query)
        elif store is not None:
            query = store.load()
        else:
            query = create_empty_query()
        self._state = QueryBuilderState(query=query)

        self._generation = 0
        self._schema_token = 0
        self._execution_token = 0
        self._debounce_task: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()
        self._listeners: list[Listener] = []

    # ── State access ─────────────────────────────────────

    @property
    def state(self) -> QueryBuilderState:
        return self._state

    @property
    def query(self) -> CubeQuery:
        return self._state.query

    @property
    def display_limit(self) -> int | None:
        return self._display_limit

    def get_current_query(self) -> dict[str, Any]:
        """The query in the shape the Cube API accepts."""
        return to_wire_query(self._state.query)

    def get_validation_state(self) -> dict[str, Any]:
        return {
            "status": self._state.validation_status.value,
            "error": self._state.validation_error,
            "sql": self._state.validation_sql,
            "result": self._state.validation_result,
        }

    def can_execute(self) -> bool:
        return (
            has_query_content(self._state.query)
            and self._state.validation_status == ValidationStatus.VALID
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call *listener* with every new state; returns an unsubscribe function."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _commit(self, new_state: QueryBuilderState) -> None:
        self._state = new_state
        for listener in list(self._listeners):
            try:
                listener(new_state)
            except Exception:
                logger.exception("State listener %r failed", listener)

    # ── Lifecycle ────────────────────────────────────────

    async def start(self) -> None:
        """Load the schema and, for a restored query, arm validation."""
        await self.load_schema()
        if self._state.validation_status == ValidationStatus.IDLE:
            self._schedule_validation()

    async def aclose(self) -> None:
        """Cancel the pending debounce and any background work."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._debounce_task = None

    async def wait_for_pending(self) -> None:
        """Wait until debounced validation and background re-execution settle."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def __aenter__(self) -> "QueryBuilder":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    def _spawn(self, coro: Any) -> asyncio.Task | None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; background work skipped")
            coro.close()
            return None
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # ── Schema ───────────────────────────────────────────

    async def load_schema(self) -> None:
        self._schema_token += 1
        token = self._schema_token
        self._commit(replace(self._state, schema_status=SchemaStatus.LOADING, schema_error=None))

        try:
            raw = await self._transport.meta()
            schema = parse_meta(raw)
        except Exception as exc:
            if token != self._schema_token:
                logger.debug("Discarding stale schema failure")
                return
            logger.warning("Schema load failed: %s", exc)
            self._commit(replace(
                self._state,
                schema=None,
                schema_status=SchemaStatus.ERROR,
                schema_error=_error_message(exc, "Failed to load schema"),
            ))
            return

        if token != self._schema_token:
            logger.debug("Discarding stale schema response")
            return
        logger.info("Schema loaded: %d cubes", len(schema.cubes))
        self._commit(replace(
            self._state, schema=schema, schema_status=SchemaStatus.SUCCESS, schema_error=None
        ))

    async def retry_schema(self) -> None:
        await self.load_schema()

    async def set_transport(self, transport: CubeTransport) -> None:
        """Point the builder at a new endpoint: reset everything but the query and reload."""
        self._transport = transport
        self._invalidate()
        self._commit(replace(
            self._state, schema=None, schema_status=SchemaStatus.IDLE, schema_error=None
        ).with_validation_reset().with_execution_reset())
        await self.load_schema()
        self._schedule_validation()

    # ── Query updates ────────────────────────────────────

    def _invalidate(self) -> None:
        self._generation += 1
        if self._debounce_task is not None:
            self._debounce_task.cancel()
            self._debounce_task = None

    def _update_query(self, updater: Callable[[CubeQuery], CubeQuery]) -> bool:
        """Apply *updater*; returns True when the normalized query changed."""
        previous = self._state.query
        updated = updater(previous)
        changed = stable_json(normalize_query(updated)) != stable_json(normalize_query(previous))
        if not changed:
            if updated != previous:
                self._commit(replace(self._state, query=updated))
            return False

        self._invalidate()
        self._commit(
            replace(self._state, query=updated).with_validation_reset().with_execution_reset()
        )
        self._persist(updated)
        self._schedule_validation()
        return True

    def _persist(self, query: CubeQuery) -> None:
        if self._store is None:
            return
        try:
            self._store.save(query)
        except OSError as exc:
            logger.warning("Could not persist query to %s: %s", self._store.path, exc)

    def set_query(self, query: CubeQuery | dict[str, Any]) -> bool:
        new_query = query_from_wire(query)
        return self._update_query(lambda _: new_query)

    def clear_query(self) -> None:
        """Back to an empty query with every status reset."""
        self._invalidate()
        self._execution_token += 1
        empty = create_empty_query()
        self._commit(
            replace(self._state, query=empty).with_validation_reset().with_execution_reset()
        )
        self._persist(empty)

    # ── Field selection ──────────────────────────────────

    def select_field(self, name: str, kind: FieldKind) -> bool:
        attr = _FIELD_KIND_ALIASES[kind]

        def _select(q: CubeQuery) -> CubeQuery:
            if attr == "time_dimensions":
                if any(td.dimension == name for td in q.time_dimensions):
                    return q
                td = TimeDimension(dimension=name, granularity=self._default_granularity)
                return q.model_copy(update={"time_dimensions": [*q.time_dimensions, td]})
            current = getattr(q, attr)
            if name in current:
                return q
            return q.model_copy(update={attr: [*current, name]})

        return self._update_query(_select)

    def deselect_field(self, name: str, kind: FieldKind) -> bool:
        """Remove the field, its sort entry, and any filters left orphaned."""
        attr = _FIELD_KIND_ALIASES[kind]

        def _deselect(q: CubeQuery) -> CubeQuery:
            if attr == "time_dimensions":
                remaining: Any = [td for td in q.time_dimensions if td.dimension != name]
            else:
                remaining = [f for f in getattr(q, attr) if f != name]
            updated = q.model_copy(update={attr: remaining, "order": _without_order(q.order, name)})
            filters = mutations.collapse_singleton_groups(
                prune_orphaned_filters(updated.filters, updated)
            )
            return updated.model_copy(update={"filters": filters})

        return self._update_query(_deselect)

    def _map_time_dimension(self, dimension: str, **changes: Any) -> bool:
        def _apply(q: CubeQuery) -> CubeQuery:
            tds = [
                td.model_copy(update=changes) if td.dimension == dimension else td
                for td in q.time_dimensions
            ]
            return q.model_copy(update={"time_dimensions": tds})

        return self._update_query(_apply)

    def set_time_dimension_granularity(self, dimension: str, granularity: str | None) -> bool:
        return self._map_time_dimension(dimension, granularity=granularity)

    def set_date_range(self, dimension: str, date_range: str | list[str]) -> bool:
        return self._map_time_dimension(dimension, date_range=date_range)

    def remove_date_range(self, dimension: str) -> bool:
        return self._map_time_dimension(dimension, date_range=None)

    def set_order(self, field_name: str, direction: Literal["asc", "desc"] | None) -> bool:
        """Sort by *field_name*; ``None`` removes the field from the ordering."""

        def _order(q: CubeQuery) -> CubeQuery:
            order = _order_as_dict(q.order)
            if direction is None:
                order.pop(field_name, None)
            else:
                order[field_name] = direction
            return q.model_copy(update={"order": order or None})

        return self._update_query(_order)

    # ── Filters ──────────────────────────────────────────

    def _make_leaf(self, member: str, operator: str | None, values: Iterable[Any]) -> SimpleFilter:
        if operator is None:
            operator = default_operator_for(get_field_type(member, self._state.schema))
        return create_simple_filter(member, operator, values)

    def _update_filters(self, fn: Callable[[list[FilterNode]], list[FilterNode]]) -> bool:
        return self._update_query(
            lambda q: q.model_copy(update={"filters": fn(list(q.filters))})
        )

    def set_filters(self, filters: Iterable[Any]) -> bool:
        """Replace the whole filter list (wire, persisted or model nodes)."""
        nodes = parse_filters(filters)
        return self._update_filters(lambda _: nodes)

    def add_filter(
        self,
        member: str,
        operator: str | None = None,
        values: Iterable[Any] = (),
    ) -> bool:
        leaf = self._make_leaf(member, operator, values)
        return self._update_filters(lambda nodes: mutations.add_simple_filter(nodes, leaf))

    def add_filter_at(
        self,
        path: PathLike,
        member: str,
        operator: str | None = None,
        values: Iterable[Any] = (),
    ) -> bool:
        leaf = self._make_leaf(member, operator, values)
        target = _as_path(path)
        return self._update_filters(
            lambda nodes: mutations.add_filter_at_path(nodes, target, leaf)
        )

    def update_filter(self, path: PathLike, new_leaf: SimpleFilter) -> bool:
        target = _as_path(path)
        schema = self._state.schema
        return self._update_filters(
            lambda nodes: mutations.update_leaf_at(nodes, target, new_leaf, schema)
        )

    def remove_filter(self, path: PathLike) -> bool:
        target = _as_path(path)
        return self._update_filters(lambda nodes: mutations.remove_filter_at(nodes, target))

    def toggle_filter_group(self) -> bool:
        return self._update_filters(mutations.toggle_group_kind)

    def clear_filters(self) -> bool:
        return self._update_filters(lambda _: [])

    # ── Validation ───────────────────────────────────────

    def _is_stale(self, generation: int, snapshot: str) -> bool:
        return (
            generation != self._generation
            or stable_json(to_wire_query(self._state.query)) != snapshot
        )

    def _schedule_validation(self) -> None:
        if self._debounce_task is not None:
            self._debounce_task.cancel()
            self._debounce_task = None
        if not has_query_content(self._state.query):
            return
        self._debounce_task = self._spawn(self._debounced_validate(self._generation))

    async def _debounced_validate(self, generation: int) -> None:
        await asyncio.sleep(self._debounce_seconds)
        if generation != self._generation:
            return
        # Past the window: a later edit no longer cancels this task, it only
        # makes the response stale.
        if self._debounce_task is asyncio.current_task():
            self._debounce_task = None
        await self.validate()

    async def validate(self) -> ValidationStatus:
        """Dry-run the current query and record the outcome."""
        if self._debounce_task is not None and self._debounce_task is not asyncio.current_task():
            self._debounce_task.cancel()
            self._debounce_task = None

        query = self._state.query
        if not has_query_content(query):
            return self._state.validation_status

        generation = self._generation
        wire = to_wire_query(query)
        snapshot = stable_json(wire)
        self._commit(replace(
            self._state,
            validation_status=ValidationStatus.VALIDATING,
            validation_error=None,
            validation_sql=None,
        ))

        try:
            result = await self._transport.dry_run(wire)
        except Exception as exc:
            if self._is_stale(generation, snapshot):
                logger.debug("Discarding stale dry-run failure")
                return self._state.validation_status
            logger.warning("Dry-run failed: %s", exc)
            self._commit(replace(
                self._state,
                validation_status=ValidationStatus.INVALID,
                validation_error=_error_message(exc, "Network error during validation"),
                validation_sql=None,
                validation_result=None,
            ))
            return ValidationStatus.INVALID

        if self._is_stale(generation, snapshot):
            logger.debug("Discarding stale dry-run response")
            return self._state.validation_status

        if not isinstance(result, dict):
            result = {"error": "Malformed dry-run response"}
        status = ValidationStatus.VALID if _is_valid_dry_run(result) else ValidationStatus.INVALID
        logger.info("Dry-run complete: %s", status.value)
        self._commit(replace(
            self._state,
            validation_status=status,
            validation_error=result.get("error") or None,
            validation_sql=result.get("sql") or None,
            validation_result=result,
        ))
        return status

    # ── Execution ────────────────────────────────────────

    async def execute(self) -> bool:
        """Run the validated query: a limited load for display and an
        unlimited one for the total row count, committed together.

        Returns False without any request when the query is not validated,
        and False when the results were discarded as stale.
        """
        if not self.can_execute():
            logger.info("Execution blocked: validation is %s", self._state.validation_status.value)
            return False

        self._execution_token += 1
        token = self._execution_token
        generation = self._generation
        wire = to_wire_query(self._state.query)
        snapshot = stable_json(wire)
        display_limit = self._display_limit
        limited_query = {**wire, "limit": display_limit} if display_limit else wire

        self._commit(replace(
            self._state,
            execution_status=ExecutionStatus.LOADING,
            execution_results=None,
            execution_error=None,
            total_row_count_status=ExecutionStatus.LOADING,
        ))

        limited, unlimited = await asyncio.gather(
            self._transport.load(limited_query),
            self._transport.load(wire),
            return_exceptions=True,
        )

        if (
            token != self._execution_token
            or display_limit != self._display_limit
            or self._is_stale(generation, snapshot)
        ):
            logger.debug("Discarding stale execution results")
            return False

        for outcome in (limited, unlimited):
            if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
                raise outcome

        failure = next((o for o in (limited, unlimited) if isinstance(o, Exception)), None)
        rows: list[dict[str, Any]] | None = None
        total = 0
        if failure is None:
            try:
                rows = limited.table_pivot()
                total = len(unlimited.table_pivot())
            except Exception as exc:
                failure = exc

        if failure is not None:
            logger.warning("Query execution failed: %s", failure)
            self._commit(replace(
                self._state,
                execution_status=ExecutionStatus.ERROR,
                execution_results=None,
                execution_error=_error_message(failure, "Query execution failed"),
                total_row_count=None,
                total_row_count_status=ExecutionStatus.ERROR,
            ))
            return True

        logger.info("Query executed: %d rows shown, %d total", len(rows or []), total)
        self._commit(replace(
            self._state,
            execution_status=ExecutionStatus.SUCCESS,
            execution_results=rows,
            execution_error=None,
            total_row_count=total,
            total_row_count_status=ExecutionStatus.SUCCESS,
        ))
        return True

    async def set_display_limit(self, limit: int | None) -> None:
        """Change the display limit; a shown or loading result is refreshed right away."""
        if limit == self._display_limit:
            return
        self._display_limit = limit
        if self._state.execution_status in _REFRESHABLE and self.can_execute():
            await self.execute()


# ── Order helpers ────────────────────────────────────────

def _order_as_dict(order: Any) -> dict[str, str]:
    if isinstance(order, dict):
        return dict(order)
    if isinstance(order, list):
        return {pair[0]: pair[1] for pair in order if len(pair) == 2}
    return {}


def _without_order(order: Any, field_name: str) -> dict[str, str] | None:
    remaining = _order_as_dict(order)
    remaining.pop(field_name, None)
    return remaining or None
