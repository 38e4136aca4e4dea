"""
Async HTTP client for the Cube REST API.

  GET  {api_url}/meta                -> schema description
  POST {api_url}/dry-run             -> compile-only validation, body ``{"query": ...}``
  GET  {api_url}/load?query=<json>   -> result rows
  GET  {api_url}/sql?query=<json>    -> generated SQL

A fresh ``httpx.AsyncClient`` is opened per request, so a client object is
cheap to create and can be swapped whenever the endpoint changes.
"""
from __future__ import annotations

import json
from typing import Any

import httpx

from src.core.errors import (
    CubeApiError,
    ExecutionError,
    QueryValidationError,
    SchemaLoadError,
)
from src.core.logging import get_logger, quiet_http_loggers
from src.core.utils import timer

logger = get_logger(__name__)
quiet_http_loggers()


class ResultSet:
    """Wraps a ``/load`` response.

    Both payload layouts are understood: the flat ``{"data": [...]}`` one and
    the nested ``{"results": [{"data": [...]}]}`` one.
    """

    def __init__(self, load_response: dict[str, Any]):
        self.load_response = load_response or {}

    def _first_result(self) -> dict[str, Any] | None:
        results = self.load_response.get("results")
        if isinstance(results, list) and results:
            return results[0] or {}
        return None

    def raw_data(self) -> list[dict[str, Any]]:
        first = self._first_result()
        source = first if first is not None else self.load_response
        return source.get("data") or []

    def table_pivot(self) -> list[dict[str, Any]]:
        return self.raw_data()

    def series(self) -> list[dict[str, Any]]:
        return self.raw_data()

    def annotation(self) -> dict[str, Any]:
        first = self._first_result()
        source = first if first is not None else self.load_response
        return source.get("annotation") or {}

    def cache_info(self) -> dict[str, Any] | None:
        """Cache metadata when the server answered from its cache, else None."""
        first = self._first_result()
        source = first if first is not None else self.load_response
        return source.get("cache")

    def __len__(self) -> int:
        return len(self.raw_data())


def _error_message(response: httpx.Response, operation: str) -> str:
    """The JSON ``error`` field when present, otherwise ``"<op> failed: <status> <body>"``."""
    text = response.text
    try:
        payload = json.loads(text)
    except ValueError:
        payload = None
    if isinstance(payload, dict) and payload.get("error"):
        return str(payload["error"])
    message = f"{operation} failed: {response.status_code}"
    return f"{message} {text}" if text else message


class CubeClient:
    """Thin async wrapper around the Cube REST endpoints."""

    def __init__(
        self,
        api_url: str,
        token: str | None = None,
        timeout: float = 30.0,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._headers: dict[str, str] = dict(headers or {})
        if token:
            self._headers["Authorization"] = token

    @classmethod
    def from_settings(cls, settings: Any) -> "CubeClient":
        return cls(
            api_url=settings.cube_api_url,
            token=settings.cube_api_token or None,
            timeout=settings.cube_request_timeout,
        )

    def _build_url(self, path: str) -> str:
        if not path.startswith("/"):
            path = f"/{path}"
        return f"{self.api_url}{path}"

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        error_cls: type[CubeApiError],
        headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> Any:
        request_headers = {**self._headers, **(headers or {})}
        url = self._build_url(path)
        with timer() as t:
            try:
                async with httpx.AsyncClient(
                    timeout=self._timeout, transport=self._transport
                ) as client:
                    response = await client.request(method, url, headers=request_headers, **kwargs)
            except httpx.HTTPError as exc:
                logger.warning("%s %s transport error: %s", method, path, exc)
                raise error_cls(f"{operation} failed: {exc}") from exc

        logger.info("%s %s -> %d (%d ms)", method, path, response.status_code, t["elapsed_ms"])
        if response.is_error:
            raise error_cls(_error_message(response, operation), status_code=response.status_code)
        try:
            return response.json()
        except ValueError as exc:
            raise error_cls(
                f"{operation} failed: invalid JSON response", status_code=response.status_code
            ) from exc

    # ── Endpoints ────────────────────────────────────────

    async def meta(self) -> dict[str, Any]:
        return await self._request("GET", "/meta", "Meta request", SchemaLoadError)

    async def dry_run(self, query: dict[str, Any]) -> dict[str, Any]:
        return await self._request(
            "POST", "/dry-run", "Dry run", QueryValidationError, json={"query": query}
        )

    async def load(self, query: dict[str, Any], bust_cache: bool = False) -> ResultSet:
        headers = {"X-Cache-Control": "no-cache"} if bust_cache else None
        payload = await self._request(
            "GET",
            "/load",
            "Cube query",
            ExecutionError,
            headers=headers,
            params={"query": json.dumps(query)},
        )
        return ResultSet(payload)

    async def sql(self, query: dict[str, Any]) -> dict[str, Any]:
        return await self._request(
            "GET", "/sql", "SQL generation", CubeApiError, params={"query": json.dumps(query)}
        )
