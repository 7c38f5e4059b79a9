from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Protocol

import httpx

from status_checks.models import DOWN, OPERATIONAL, ManualStatus, MonitorSpec, MonitorType, Observation
from status_checks.probe_dns import DEFAULT_DNS_TIMEOUT_SECONDS, check_dns
from status_checks.probe_http import DEFAULT_HTTP_TIMEOUT_SECONDS, check_http
from status_checks.probe_json import check_json
from status_checks.probe_minecraft import DEFAULT_MINECRAFT_PORT, DEFAULT_MINECRAFT_TIMEOUT_SECONDS, check_minecraft
from status_checks.probe_ping import DEFAULT_PING_TIMEOUT_SECONDS, check_ping
from status_checks.probe_statuspage import check_statuspage
from status_checks.probe_steam import DEFAULT_STEAM_PORT, DEFAULT_STEAM_TIMEOUT_SECONDS, check_steam
from status_checks.probe_tcp import DEFAULT_TCP_TIMEOUT_SECONDS, check_tcp
from status_checks.targets import split_host_port


LOGGER = logging.getLogger("status-monitoring")

DEFAULT_TCP_PORT = 80


@dataclass
class ProbeContext:
    http_client: httpx.AsyncClient
    manual_statuses: dict[str, ManualStatus] = field(default_factory=dict)


class Probe(Protocol):
    async def check(self, spec: MonitorSpec, ctx: ProbeContext) -> Observation: ...


class HttpProbe:
    async def check(self, spec: MonitorSpec, ctx: ProbeContext) -> Observation:
        return await check_http(
            ctx.http_client,
            url=spec.target,
            expected_statuses=spec.expected_status,
            timeout_seconds=spec.timeout_seconds or DEFAULT_HTTP_TIMEOUT_SECONDS,
        )


def ping_timeout_seconds(value: float | None) -> int:
    # ping only takes whole seconds.
    return max(1, math.ceil(value or DEFAULT_PING_TIMEOUT_SECONDS))


class PingProbe:
    async def check(self, spec: MonitorSpec, ctx: ProbeContext) -> Observation:
        return await check_ping(target=spec.target, timeout_seconds=ping_timeout_seconds(spec.timeout_seconds))


class TcpProbe:
    async def check(self, spec: MonitorSpec, ctx: ProbeContext) -> Observation:
        host, port = split_host_port(spec.target, option_port=spec.port, default_port=DEFAULT_TCP_PORT)
        return await check_tcp(host=host, port=port, timeout_seconds=spec.timeout_seconds or DEFAULT_TCP_TIMEOUT_SECONDS)


class DnsProbe:
    async def check(self, spec: MonitorSpec, ctx: ProbeContext) -> Observation:
        return await check_dns(
            domain=spec.target,
            expected_value=spec.expected_ip,
            record_type=spec.record_type,
            timeout_seconds=spec.timeout_seconds or DEFAULT_DNS_TIMEOUT_SECONDS,
        )


class StatuspageProbe:
    async def check(self, spec: MonitorSpec, ctx: ProbeContext) -> Observation:
        return await check_statuspage(
            ctx.http_client,
            url=spec.target,
            timeout_seconds=spec.timeout_seconds or DEFAULT_HTTP_TIMEOUT_SECONDS,
        )


class JsonProbe:
    async def check(self, spec: MonitorSpec, ctx: ProbeContext) -> Observation:
        return await check_json(
            ctx.http_client,
            url=spec.target,
            json_path=spec.json_path,
            expected_value=spec.expected_value,
            timeout_seconds=spec.timeout_seconds or DEFAULT_HTTP_TIMEOUT_SECONDS,
        )


class SteamProbe:
    async def check(self, spec: MonitorSpec, ctx: ProbeContext) -> Observation:
        host, port = split_host_port(spec.target, option_port=spec.port, default_port=DEFAULT_STEAM_PORT)
        return await check_steam(host=host, port=port, timeout_seconds=spec.timeout_seconds or DEFAULT_STEAM_TIMEOUT_SECONDS)


class MinecraftProbe:
    async def check(self, spec: MonitorSpec, ctx: ProbeContext) -> Observation:
        host, port = split_host_port(spec.target, option_port=spec.port, default_port=DEFAULT_MINECRAFT_PORT)
        return await check_minecraft(
            host=host,
            port=port,
            timeout_seconds=spec.timeout_seconds or DEFAULT_MINECRAFT_TIMEOUT_SECONDS,
        )


class ManualProbe:
    async def check(self, spec: MonitorSpec, ctx: ProbeContext) -> Observation:
        manual = ctx.manual_statuses.get(spec.name)
        if manual is None:
            return Observation(status=OPERATIONAL, message="No status set")
        return Observation(status=manual.status, message=manual.message or "Manual status")


PROBES: dict[MonitorType, Probe] = {
    MonitorType.HTTP: HttpProbe(),
    MonitorType.PING: PingProbe(),
    MonitorType.TCP: TcpProbe(),
    MonitorType.DNS: DnsProbe(),
    MonitorType.STATUSPAGE: StatuspageProbe(),
    MonitorType.JSON: JsonProbe(),
    MonitorType.STEAM: SteamProbe(),
    MonitorType.MINECRAFT: MinecraftProbe(),
    MonitorType.MANUAL: ManualProbe(),
}

_missing = set(MonitorType) - set(PROBES)
if _missing:
    raise RuntimeError(f"No probe registered for monitor types: {sorted(t.value for t in _missing)}")


def invert_observation(obs: Observation) -> Observation:
    if obs.status == OPERATIONAL:
        return Observation(
            status=DOWN,
            response_time=obs.response_time,
            status_code=obs.status_code,
            message=f"{obs.message} (expected offline)",
            extra=obs.extra,
        )
    return Observation(
        status=OPERATIONAL,
        response_time=obs.response_time,
        status_code=obs.status_code,
        message="Offline as expected",
        extra=obs.extra,
    )


async def run_probe(spec: MonitorSpec, ctx: ProbeContext) -> Observation:
    """
    Never raises: a crash inside a probe is reported as a down observation for that monitor only.
    """
    try:
        obs = await PROBES[spec.type].check(spec, ctx)
    except Exception as exc:
        LOGGER.exception("Monitor check crashed monitor=%s type=%s", spec.name, spec.type.value)
        obs = Observation(status=DOWN, message=f"Check crashed: {type(exc).__name__}: {exc}")

    if spec.inverse:
        obs = invert_observation(obs)
    return obs
