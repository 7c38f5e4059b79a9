from __future__ import annotations

import time

import httpx

from status_checks.models import DEGRADED, DOWN, MAJOR, OPERATIONAL, Observation
from status_checks.probe_http import DEFAULT_HTTP_TIMEOUT_SECONDS, elapsed_ms


# statuspage.io "indicator" vocabulary -> ours. Anything else is treated as down.
INDICATOR_STATUS = {
    "none": OPERATIONAL,
    "minor": DEGRADED,
    "major": MAJOR,
    "critical": MAJOR,
}


def statuspage_api_url(url: str) -> str:
    if "/api/" in url:
        return url
    return url.rstrip("/") + "/api/v2/status.json"


async def check_statuspage(
    client: httpx.AsyncClient,
    *,
    url: str,
    timeout_seconds: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
) -> Observation:
    api_url = statuspage_api_url(url)
    started = time.perf_counter()
    try:
        resp = await client.get(api_url, headers={"Accept": "application/json"}, timeout=timeout_seconds)
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

    status_obj = data.get("status") if isinstance(data, dict) else None
    if not isinstance(status_obj, dict):
        status_obj = {}
    indicator = str(status_obj.get("indicator") or "unknown").lower()
    description = status_obj.get("description") or "Unknown status"

    return Observation(
        status=INDICATOR_STATUS.get(indicator, DOWN),
        response_time=response_time,
        status_code=resp.status_code,
        message=str(description),
    )
