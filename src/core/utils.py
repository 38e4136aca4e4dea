"""
Small shared utilities.
"""
from __future__ import annotations

import json
import time
from contextlib import contextmanager
from typing import Any, Generator


@contextmanager
def timer() -> Generator[dict, None, None]:
    """Context manager that records elapsed wall-clock milliseconds."""
    result: dict = {}
    start = time.perf_counter()
    try:
        yield result
    finally:
        result["elapsed_ms"] = int((time.perf_counter() - start) * 1000)


def stable_json(value: Any) -> str:
    """Deterministic JSON text used to compare query snapshots."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)
