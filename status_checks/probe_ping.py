from __future__ import annotations

import asyncio
import logging
import re
import sys
import time

from status_checks.models import DOWN, OPERATIONAL, Observation
from status_checks.probe_http import elapsed_ms
from status_checks.targets import is_valid_target


LOGGER = logging.getLogger("status-monitoring")

DEFAULT_PING_TIMEOUT_SECONDS = 10

_PACKET_LOSS_RE = re.compile(r"(\d+)%\s*(?:packet\s*)?loss", re.IGNORECASE)

# Tried in order; the first match wins.
PING_TIME_PATTERNS = [
    # time=15ms, time=15.3 ms, time<1ms
    re.compile(r"time[=<](\d+\.?\d*)\s*ms", re.IGNORECASE),
    # time= 15 ms
    re.compile(r"time[=<]\s*(\d+\.?\d*)\s*ms", re.IGNORECASE),
    # rtt min/avg/max/mdev = 14.267/14.267/14.267/0.000 ms
    re.compile(r"rtt\s+min/avg/max/\S+\s*=\s*[\d.]+/([\d.]+)", re.IGNORECASE),
    # bare "15.3 ms" at the end of a line
    re.compile(r"(\d+\.?\d*)\s*ms\s*$", re.IGNORECASE | re.MULTILINE),
]


def ping_command(target: str, timeout_seconds: int, *, platform: str | None = None) -> list[str]:
    if (platform or sys.platform) == "win32":
        return ["ping", "-n", "1", "-w", str(int(timeout_seconds) * 1000), target]
    return ["ping", "-c", "1", "-W", str(int(timeout_seconds)), target]


def parse_packet_loss(output: str) -> int | None:
    m = _PACKET_LOSS_RE.search(output)
    return int(m.group(1)) if m else None


def parse_ping_time(output: str) -> float | None:
    for pattern in PING_TIME_PATTERNS:
        m = pattern.search(output)
        if m:
            try:
                return float(m.group(1))
            except ValueError:
                continue
    return None


async def _run_ping(cmd: list[str], timeout_seconds: float) -> tuple[int, str]:
    proc = await asyncio.create_subprocess_exec(
        *cmd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, _stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout_seconds)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        raise
    return int(proc.returncode or 0), stdout.decode(errors="replace")


async def check_ping(*, target: str, timeout_seconds: int = DEFAULT_PING_TIMEOUT_SECONDS) -> Observation:
    if not is_valid_target(target):
        return Observation(status=DOWN, response_time=0, message="Invalid target format")

    cmd = ping_command(target, timeout_seconds)
    started = time.perf_counter()
    try:
        returncode, output = await _run_ping(cmd, timeout_seconds + 2)
    except (asyncio.TimeoutError, OSError) as exc:
        LOGGER.debug("Ping failed target=%s error=%s", target, exc)
        return Observation(status=DOWN, response_time=elapsed_ms(started), message="Host unreachable")

    response_time = elapsed_ms(started)
    LOGGER.debug("Ping output target=%s returncode=%s output=%r", target, returncode, output)

    if returncode != 0:
        return Observation(status=DOWN, response_time=response_time, message="Host unreachable")

    if parse_packet_loss(output) == 100:
        return Observation(
            status=DOWN,
            response_time=response_time,
            message="Host unreachable (100% packet loss)",
        )

    ping_time = parse_ping_time(output)
    final_time = ping_time if ping_time is not None else min(response_time, int(timeout_seconds) * 1000)
    return Observation(
        status=OPERATIONAL,
        response_time=final_time,
        message=f"Ping OK ({final_time:g}ms)",
    )
