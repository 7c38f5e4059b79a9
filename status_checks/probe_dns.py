from __future__ import annotations

import asyncio
import time

import dns.exception
import dns.resolver

from status_checks.models import DOWN, OPERATIONAL, Observation
from status_checks.probe_http import elapsed_ms


DEFAULT_DNS_TIMEOUT_SECONDS = 5.0
SUPPORTED_RECORD_TYPES = ("A", "AAAA", "MX", "TXT", "CNAME", "NS")


class DomainNotFound(Exception):
    pass


def _rdata_to_text(record_type: str, rr) -> str:
    if record_type == "MX":
        return str(rr.exchange).rstrip(".")
    if record_type == "TXT":
        return "".join(s.decode(errors="replace") for s in rr.strings)
    if record_type in {"CNAME", "NS"}:
        return str(rr.target).rstrip(".")
    return str(rr.address)


def _dns_query_sync(*, domain: str, record_type: str, timeout_seconds: float) -> list[str]:
    r = dns.resolver.Resolver(configure=True)
    r.timeout = max(0.5, float(timeout_seconds))
    r.lifetime = max(0.5, float(timeout_seconds))
    try:
        ans = r.resolve(domain, record_type)
    except dns.resolver.NXDOMAIN as exc:
        raise DomainNotFound(domain) from exc
    out: list[str] = []
    for rr in ans:
        s = _rdata_to_text(record_type, rr).strip()
        if s:
            out.append(s)
    return out


async def check_dns(
    *,
    domain: str,
    expected_value: str | None = None,
    record_type: str = "A",
    timeout_seconds: float = DEFAULT_DNS_TIMEOUT_SECONDS,
) -> Observation:
    domain = (domain or "").strip()
    if not domain:
        return Observation(status=DOWN, response_time=0, message="Invalid domain")

    rtype = (record_type or "A").upper()
    if rtype not in SUPPORTED_RECORD_TYPES:
        rtype = "A"

    started = time.perf_counter()
    try:
        records = await asyncio.wait_for(
            asyncio.to_thread(_dns_query_sync, domain=domain, record_type=rtype, timeout_seconds=timeout_seconds),
            timeout=timeout_seconds,
        )
    except asyncio.TimeoutError:
        return Observation(status=DOWN, response_time=elapsed_ms(started), message="DNS lookup timeout")
    except DomainNotFound:
        return Observation(status=DOWN, response_time=elapsed_ms(started), message="Domain not found")
    except dns.exception.DNSException as exc:
        return Observation(
            status=DOWN,
            response_time=elapsed_ms(started),
            message=str(exc) or type(exc).__name__,
        )

    response_time = elapsed_ms(started)
    if not records:
        return Observation(status=DOWN, response_time=response_time, message=f"No {rtype} records")

    first = records[0]
    if expected_value:
        matches = expected_value.strip().lower() in {r.lower() for r in records}
        return Observation(
            status=OPERATIONAL if matches else DOWN,
            response_time=response_time,
            message=(
                f"Resolved to {first} ({response_time}ms)" if matches else f"Expected {expected_value}, got {first}"
            ),
        )

    return Observation(status=OPERATIONAL, response_time=response_time, message=f"Resolved to {first} ({response_time}ms)")
