from __future__ import annotations

import time

import httpx

from status_checks.models import DOWN, OPERATIONAL, Observation


DEFAULT_HTTP_TIMEOUT_SECONDS = 10.0


def elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000.0)


async def check_http(
    client: httpx.AsyncClient,
    *,
    url: str,
    expected_statuses: tuple[int, ...] = (200,),
    timeout_seconds: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
) -> Observation:
    started = time.perf_counter()
    try:
        resp = await client.head(url, follow_redirects=True, timeout=timeout_seconds)
    except httpx.TimeoutException:
        return Observation(status=DOWN, response_time=elapsed_ms(started), message="Timeout")
    except httpx.HTTPError as exc:
        return Observation(status=DOWN, response_time=elapsed_ms(started), message=str(exc) or type(exc).__name__)

    response_time = elapsed_ms(started)
    is_up = resp.status_code in expected_statuses
    if is_up:
        message = f"HTTP {resp.status_code}"
    else:
        expected = "/".join(str(s) for s in expected_statuses)
        message = f"Expected {expected}, got {resp.status_code}"

    return Observation(
        status=OPERATIONAL if is_up else DOWN,
        response_time=response_time,
        status_code=resp.status_code,
        message=message,
    )
