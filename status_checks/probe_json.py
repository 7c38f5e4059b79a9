from __future__ import annotations

import time
from typing import Any

import httpx

from status_checks.models import DOWN, OPERATIONAL, Observation
from status_checks.probe_http import DEFAULT_HTTP_TIMEOUT_SECONDS, elapsed_ms


_MISSING = object()


def resolve_json_path(data: Any, path: str) -> Any:
    """
    Walk a dot-separated path ("data.health.status"); list segments are indices.
    Returns _MISSING when a segment cannot be followed.
    """
    value = data
    for part in path.split("."):
        if isinstance(value, dict):
            if part not in value:
                return _MISSING
            value = value[part]
        elif isinstance(value, list):
            try:
                value = value[int(part)]
            except (ValueError, IndexError):
                return _MISSING
        else:
            return _MISSING
    return value


def _display(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


async def check_json(
    client: httpx.AsyncClient,
    *,
    url: str,
    json_path: str = "status",
    expected_value: Any = None,
    timeout_seconds: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
) -> Observation:
    started = time.perf_counter()
    try:
        resp = await client.get(url, headers={"Accept": "application/json"}, timeout=timeout_seconds)
    except httpx.TimeoutException:
        return Observation(status=DOWN, response_time=elapsed_ms(started), message="Timeout")
    except httpx.HTTPError as exc:
        return Observation(status=DOWN, response_time=elapsed_ms(started), message=str(exc) or type(exc).__name__)

    response_time = elapsed_ms(started)
    if not resp.is_success:
        return Observation(
            status=DOWN,
            response_time=response_time,
            status_code=resp.status_code,
            message=f"HTTP {resp.status_code}",
        )

    try:
        data = resp.json()
    except ValueError as exc:
        return Observation(status=DOWN, response_time=response_time, status_code=resp.status_code, message=str(exc))

    value = resolve_json_path(data, json_path)
    if value is _MISSING:
        return Observation(
            status=DOWN,
            response_time=response_time,
            status_code=resp.status_code,
            message=f'Path "{json_path}" not found',
        )

    if expected_value is None:
        matches = value is not None
    else:
        matches = _display(value).lower() == _display(expected_value).lower()

    return Observation(
        status=OPERATIONAL if matches else DOWN,
        response_time=response_time,
        status_code=resp.status_code,
        message=(
            f"{json_path} = {_display(value)}"
            if matches
            else f"Expected {_display(expected_value)}, got {_display(value)}"
        ),
    )
