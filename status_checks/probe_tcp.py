from __future__ import annotations

import asyncio
import time

from status_checks.models import DOWN, OPERATIONAL, Observation
from status_checks.probe_http import elapsed_ms
from status_checks.targets import is_valid_target


DEFAULT_TCP_TIMEOUT_SECONDS = 5.0


async def check_tcp(*, host: str, port: int, timeout_seconds: float = DEFAULT_TCP_TIMEOUT_SECONDS) -> Observation:
    if not is_valid_target(host):
        return Observation(status=DOWN, response_time=0, message="Invalid host format")

    started = time.perf_counter()
    writer = None
    try:
        _reader, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout=timeout_seconds)
    except asyncio.TimeoutError:
        return Observation(
            status=DOWN,
            response_time=elapsed_ms(started),
            message=f"Connection timeout after {int(timeout_seconds * 1000)}ms",
        )
    except ConnectionRefusedError:
        return Observation(status=DOWN, response_time=elapsed_ms(started), message="Connection refused")
    except OSError as exc:
        return Observation(status=DOWN, response_time=elapsed_ms(started), message=str(exc) or type(exc).__name__)
    finally:
        if writer is not None:
            writer.close()

    response_time = elapsed_ms(started)
    try:
        await writer.wait_closed()
    except OSError:
        pass
    return Observation(
        status=OPERATIONAL,
        response_time=response_time,
        message=f"TCP port {port} open ({response_time}ms)",
    )
