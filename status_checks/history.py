from __future__ import annotations

import math
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Iterable

from status_checks.models import OPERATIONAL, CheckResult


# On-disk history.json layout:
# {monitor_name: {"days": {"YYYY-MM-DD": {"checks": [CheckRecord, ...], "worstStatus": str}}}}
#
# CheckRecord: {"status", "responseTime", "statusCode", "timestamp" (ISO-8601 UTC), "incidentOverride"}
DayBucket = dict[str, Any]

DEFAULT_RETENTION_DAYS = 90
DEFAULT_WINDOW_DAYS = 90
RECENT_LOOKBACK_DAYS = 7
COALESCE_WINDOW = timedelta(hours=1)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def day_str(d: date | datetime) -> str:
    if isinstance(d, datetime):
        d = d.astimezone(timezone.utc).date()
    return d.isoformat()


def iso_timestamp(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: Any) -> datetime | None:
    s = str(value or "").strip()
    if not s:
        return None
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _optional_number(value: Any) -> float | int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _coerce_check(item: Any) -> dict[str, Any] | None:
    if not isinstance(item, dict):
        return None
    status = str(item.get("status") or "").strip()
    if not status or parse_timestamp(item.get("timestamp")) is None:
        return None
    status_code = _optional_number(item.get("statusCode"))
    return {
        "status": status,
        "responseTime": _optional_number(item.get("responseTime")),
        "statusCode": int(status_code) if status_code is not None else None,
        "timestamp": str(item["timestamp"]),
        "incidentOverride": bool(item.get("incidentOverride", False)),
    }


def coerce_history(raw: Any) -> dict[str, dict[str, Any]]:
    """
    Best-effort decode for history loaded from history.json.
    Ignores invalid entries to be robust to partial writes or older formats.
    """
    if not isinstance(raw, dict):
        return {}

    out: dict[str, dict[str, Any]] = {}
    for name, entry in raw.items():
        if not isinstance(name, str) or not name or not isinstance(entry, dict):
            continue
        # Older files stored the day mapping directly under the monitor name.
        days_raw = entry.get("days") if isinstance(entry.get("days"), dict) else entry

        days: dict[str, DayBucket] = {}
        for day, bucket in days_raw.items():
            if not isinstance(day, str) or not isinstance(bucket, dict):
                continue
            try:
                date.fromisoformat(day)
            except ValueError:
                continue
            checks = [c for c in (_coerce_check(x) for x in bucket.get("checks") or []) if c is not None]
            worst = str(bucket.get("worstStatus") or OPERATIONAL)
            days[day] = {"checks": checks, "worstStatus": worst}

        out[name] = {"days": days}
    return out


def _round_percent(ok: int, total: int) -> float:
    # Half-up rounding to 2 decimals: 2/3 -> 66.67.
    return math.floor((ok / float(total)) * 10000.0 + 0.5) / 100.0


class HistoryStore:
    """
    Day-bucketed check log per monitor. Loaded once per batch, mutated sequentially, saved once.
    """

    def __init__(self, data: dict[str, dict[str, Any]] | None = None, *, priority: Callable[[str | None], int]):
        self.data: dict[str, dict[str, Any]] = data if data is not None else {}
        self.priority = priority

    def to_dict(self) -> dict[str, dict[str, Any]]:
        return self.data

    def _days(self, name: str) -> dict[str, DayBucket]:
        entry = self.data.get(name)
        if not isinstance(entry, dict):
            return {}
        return entry.get("days") or {}

    def _window(self, days: int, now: datetime) -> list[str]:
        """
        Oldest-first list of the last `days` UTC calendar dates, today included.
        """
        today = now.astimezone(timezone.utc).date()
        return [day_str(today - timedelta(days=i)) for i in range(days - 1, -1, -1)]

    def record_check(self, result: CheckResult, *, now: datetime | None = None) -> bool:
        """
        Append a check to today's bucket. Returns False when it was coalesced into the previous one
        (same status, less than an hour apart).
        """
        now = now or utc_now()
        entry = self.data.setdefault(result.name, {"days": {}})
        days = entry.setdefault("days", {})
        bucket = days.setdefault(day_str(now), {"checks": [], "worstStatus": OPERATIONAL})

        checks = bucket["checks"]
        if checks:
            last = checks[-1]
            last_ts = parse_timestamp(last.get("timestamp"))
            if last.get("status") == result.status and last_ts is not None and now - last_ts < COALESCE_WINDOW:
                return False

        checks.append(
            {
                "status": result.status,
                "responseTime": result.response_time,
                "statusCode": result.status_code,
                "timestamp": iso_timestamp(now),
                "incidentOverride": bool(result.incident_override),
            }
        )

        if self.priority(result.status) > self.priority(bucket.get("worstStatus")):
            bucket["worstStatus"] = result.status
        return True

    def recent_checks(self, name: str, count: int, *, now: datetime | None = None) -> list[dict[str, Any]]:
        """
        Up to `count` checks from the last 7 days, most recent first.
        """
        now = now or utc_now()
        days = self._days(name)
        items: list[dict[str, Any]] = []
        for day in self._window(RECENT_LOOKBACK_DAYS, now):
            bucket = days.get(day)
            if bucket and bucket.get("checks"):
                items.extend(bucket["checks"])

        epoch = datetime.min.replace(tzinfo=timezone.utc)
        items.sort(key=lambda c: parse_timestamp(c.get("timestamp")) or epoch, reverse=True)
        return items[: max(0, int(count))]

    def prune(self, *, retention_days: int = DEFAULT_RETENTION_DAYS, now: datetime | None = None) -> None:
        now = now or utc_now()
        cutoff = day_str(now - timedelta(days=retention_days))
        for name in list(self.data.keys()):
            days = self._days(name)
            for day in list(days.keys()):
                if day < cutoff:
                    del days[day]

    def daily_history(self, name: str, *, days: int = DEFAULT_WINDOW_DAYS, now: datetime | None = None) -> list[dict[str, Any]]:
        now = now or utc_now()
        buckets = self._days(name)
        out: list[dict[str, Any]] = []
        for day in self._window(days, now):
            bucket = buckets.get(day)
            checks = (bucket or {}).get("checks") or []
            if not checks:
                out.append({"day": day, "status": None, "checks": 0, "avgResponseTime": None})
                continue

            response_times = [c["responseTime"] for c in checks if c.get("responseTime") is not None]
            status_counts: dict[str, int] = {}
            for c in checks:
                status_counts[c["status"]] = status_counts.get(c["status"], 0) + 1

            out.append(
                {
                    "day": day,
                    "status": bucket["worstStatus"],
                    "checks": len(checks),
                    "avgResponseTime": (sum(response_times) / len(response_times)) if response_times else None,
                    "statusCounts": status_counts,
                }
            )
        return out

    def uptime_percentage(self, name: str, *, days: int = DEFAULT_WINDOW_DAYS, now: datetime | None = None) -> float | None:
        return self.group_uptime_percentage([name], days=days, now=now)

    def group_daily_history(
        self,
        names: Iterable[str],
        *,
        days: int = DEFAULT_WINDOW_DAYS,
        now: datetime | None = None,
    ) -> list[dict[str, Any]]:
        now = now or utc_now()
        names = list(names)
        out: list[dict[str, Any]] = []
        for day in self._window(days, now):
            worst_status = None
            worst_priority = -1
            total_checks = 0
            response_total = 0.0
            response_count = 0
            status_counts: dict[str, int] = {}

            for name in names:
                bucket = self._days(name).get(day)
                checks = (bucket or {}).get("checks") or []
                if not checks:
                    continue
                total_checks += len(checks)

                prio = self.priority(bucket.get("worstStatus"))
                if prio > worst_priority:
                    worst_priority = prio
                    worst_status = bucket.get("worstStatus")

                for c in checks:
                    if c.get("responseTime") is not None:
                        response_total += c["responseTime"]
                        response_count += 1
                    status_counts[c["status"]] = status_counts.get(c["status"], 0) + 1

            row: dict[str, Any] = {
                "day": day,
                "status": worst_status,
                "checks": total_checks,
                "avgResponseTime": (response_total / response_count) if response_count else None,
            }
            if total_checks > 0:
                row["statusCounts"] = status_counts
            out.append(row)
        return out

    def group_uptime_percentage(
        self,
        names: Iterable[str],
        *,
        days: int = DEFAULT_WINDOW_DAYS,
        now: datetime | None = None,
    ) -> float | None:
        """
        Operational checks / all checks over the window. None (not 0) when there is no data at all.
        """
        now = now or utc_now()
        names = list(names)
        total = 0
        ok = 0
        for day in self._window(days, now):
            for name in names:
                bucket = self._days(name).get(day)
                for c in (bucket or {}).get("checks") or []:
                    total += 1
                    if c.get("status") == OPERATIONAL:
                        ok += 1
        if total <= 0:
            return None
        return _round_percent(ok, total)
