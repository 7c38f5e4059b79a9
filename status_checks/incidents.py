"""
Incident, maintenance, announcement and manual-status records derived from issue-tracker issues,
and the overlay that lets an active incident override a monitor's probed status.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Iterable

from status_checks.config import SiteConfig
from status_checks.history import iso_timestamp, utc_now
from status_checks.models import MAINTENANCE, MAJOR, OPERATIONAL, Incident, IncidentUpdate, ManualStatus, MonitorSpec
from status_checks.targets import target_hostname


_MONITORS_RE = re.compile(r"<!--\s*monitors:\s*([^>]+?)-->", re.IGNORECASE)
_GROUPS_RE = re.compile(r"<!--\s*groups:\s*([^>]+?)-->", re.IGNORECASE)
_START_RE = re.compile(r"<!--\s*start:\s*([^>]+?)-->", re.IGNORECASE)
_END_RE = re.compile(r"<!--\s*end:\s*([^>]+?)-->", re.IGNORECASE)
_STATUS_RE = re.compile(r"<!--\s*status:\s*(\w+)\s*-->", re.IGNORECASE)
_HTML_COMMENT_RE = re.compile(r"<!--.*?-->", re.DOTALL)

_ISO_MINUTE_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})[T\s](\d{1,2}):(\d{2})$")
_TWELVE_HOUR_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})\s+(\d{1,2}):(\d{2})\s*(AM|PM)$", re.IGNORECASE)
_DATE_ONLY_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})$")


def _split_list(raw: str) -> list[str]:
    return [s.strip() for s in raw.split(",") if s.strip()]


def parse_targets_from_body(body: str | None) -> tuple[list[str], list[str]]:
    """
    Returns (monitor patterns, group patterns) from `<!-- monitors: ... -->` / `<!-- groups: ... -->`.
    """
    if not body:
        return [], []
    m = _MONITORS_RE.search(body)
    g = _GROUPS_RE.search(body)
    return (_split_list(m.group(1)) if m else [], _split_list(g.group(1)) if g else [])


def _at(date_str: str, hour: int, minute: int) -> datetime | None:
    try:
        d = datetime.strptime(date_str, "%Y-%m-%d")
        return d.replace(hour=hour, minute=minute, tzinfo=timezone.utc)
    except ValueError:
        return None


def parse_date_string(value: str | None) -> datetime | None:
    """
    Accepts "YYYY-MM-DD HH:MM", "YYYY-MM-DDTHH:MM", "YYYY-MM-DD HH:MM AM|PM", "YYYY-MM-DD" or ISO-8601.
    Values without an offset are taken as UTC.
    """
    s = (value or "").strip()
    if not s:
        return None

    m = _ISO_MINUTE_RE.match(s)
    if m:
        parsed = _at(m.group(1), int(m.group(2)), int(m.group(3)))
        if parsed is not None:
            return parsed

    m = _TWELVE_HOUR_RE.match(s)
    if m:
        hour = int(m.group(2))
        meridiem = m.group(4).upper()
        if meridiem == "PM" and hour != 12:
            hour += 12
        elif meridiem == "AM" and hour == 12:
            hour = 0
        parsed = _at(m.group(1), hour, int(m.group(3)))
        if parsed is not None:
            return parsed

    m = _DATE_ONLY_RE.match(s)
    if m:
        parsed = _at(m.group(1), 0, 0)
        if parsed is not None:
            return parsed

    iso = s[:-1] + "+00:00" if s.endswith("Z") else s
    try:
        parsed = datetime.fromisoformat(iso)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_maintenance_schedule(body: str | None) -> tuple[datetime | None, datetime | None]:
    if not body:
        return None, None
    start = _START_RE.search(body)
    end = _END_RE.search(body)
    return (
        parse_date_string(start.group(1)) if start else None,
        parse_date_string(end.group(1)) if end else None,
    )


def maintenance_state(start: datetime | None, end: datetime | None, *, is_closed: bool, now: datetime) -> str:
    if is_closed:
        return "ended"
    if end is not None and now > end:
        return "ended"
    if start is not None and now < start:
        return "upcoming"
    return "active"


def _label_names(issue: dict[str, Any]) -> list[str]:
    names: list[str] = []
    for label in issue.get("labels") or []:
        name = label.get("name") if isinstance(label, dict) else label
        if isinstance(name, str) and name:
            names.append(name.lower())
    return names


def _status_from_labels(labels: list[str], config: SiteConfig) -> str | None:
    for name in labels:
        if name in config.status_levels:
            return name
    return None


def _status_from_body(body: str | None, config: SiteConfig) -> str | None:
    if not body:
        return None
    m = _STATUS_RE.search(body)
    if not m:
        return None
    status = m.group(1).lower()
    return status if status in config.status_levels else None


def _is_closed(issue: dict[str, Any]) -> bool:
    return str(issue.get("state") or "").lower() == "closed"


def _updates_from_comments(comments: Iterable[Any]) -> list[IncidentUpdate]:
    out: list[IncidentUpdate] = []
    for c in comments or []:
        if not isinstance(c, dict):
            continue
        user = c.get("user") if isinstance(c.get("user"), dict) else {}
        out.append(
            IncidentUpdate(
                id=c.get("id"),
                body=c.get("body"),
                created_at=c.get("created_at"),
                updated_at=c.get("updated_at"),
                author=user.get("login") or "Unknown",
                author_avatar=user.get("avatar_url"),
            )
        )
    return out


def transform_issue(
    issue: dict[str, Any],
    config: SiteConfig,
    *,
    comments: Iterable[Any] = (),
    now: datetime | None = None,
) -> Incident:
    now = now or utc_now()
    body = issue.get("body")
    closed = _is_closed(issue)
    labels = _label_names(issue)
    is_maintenance = config.github.maintenance_label.lower() in labels

    status = _status_from_body(body, config) or _status_from_labels(labels, config)
    if status is None:
        status = OPERATIONAL if closed else MAJOR
    if is_maintenance:
        status = MAINTENANCE

    monitors, groups = parse_targets_from_body(body)
    start, end = parse_maintenance_schedule(body)
    state = maintenance_state(start, end, is_closed=closed, now=now)

    return Incident(
        id=int(issue.get("number") or 0),
        title=str(issue.get("title") or ""),
        body=body,
        status=status,
        monitors=monitors,
        groups=groups,
        is_maintenance=is_maintenance,
        is_resolved=closed or state == "ended",
        is_upcoming=state == "upcoming",
        scheduled_start=iso_timestamp(start) if start else None,
        scheduled_end=iso_timestamp(end) if end else None,
        created_at=issue.get("created_at"),
        updated_at=issue.get("updated_at"),
        closed_at=issue.get("closed_at"),
        url=issue.get("html_url"),
        updates=_updates_from_comments(comments),
    )


def transform_issues(
    issues: Iterable[dict[str, Any]],
    config: SiteConfig,
    *,
    comments_by_issue: dict[int, list[Any]] | None = None,
    now: datetime | None = None,
) -> list[Incident]:
    comments_by_issue = comments_by_issue or {}
    return [
        transform_issue(issue, config, comments=comments_by_issue.get(issue.get("number"), []), now=now)
        for issue in issues
        if isinstance(issue, dict)
    ]


def merge_issues(*issue_lists: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    """
    Union by issue number; the last occurrence wins but the first position is kept.
    """
    merged: dict[Any, dict[str, Any]] = {}
    for issues in issue_lists:
        for issue in issues:
            if isinstance(issue, dict):
                merged[issue.get("number")] = issue
    return list(merged.values())


def manual_statuses_from_issues(issues: Iterable[dict[str, Any]], config: SiteConfig) -> dict[str, ManualStatus]:
    out: dict[str, ManualStatus] = {}
    for issue in issues:
        if not isinstance(issue, dict):
            continue
        title = str(issue.get("title") or "").strip()
        if not title:
            continue
        body = issue.get("body")
        closed = _is_closed(issue)

        status = None
        message = None
        if body:
            m = _STATUS_RE.search(body)
            if m:
                status = m.group(1).lower()
            stripped = _HTML_COMMENT_RE.sub("", body).strip()
            message = stripped.split("\n")[0].strip() or None

        if status is None:
            status = _status_from_labels(_label_names(issue), config)
        if status is None:
            status = OPERATIONAL if closed else MAJOR

        if closed:
            status = OPERATIONAL
            message = message or "Resolved"

        number = issue.get("number")
        out[title] = ManualStatus(
            status=status,
            message=message or title,
            issue_number=int(number) if number is not None else None,
            issue_url=issue.get("html_url"),
            updated_at=issue.get("updated_at"),
        )
    return out


def matches_pattern(pattern: str | None, target: str | None) -> bool:
    """
    Case-insensitive exact match, or a `*` glob anchored at both ends.
    """
    if not pattern or not target:
        return False
    p = pattern.lower()
    t = target.lower()
    if p == t:
        return True
    if "*" not in p:
        return False
    regex = ".*".join(re.escape(part) for part in p.split("*"))
    return re.fullmatch(regex, t) is not None


def incident_affects(incident: Incident, monitor: MonitorSpec, *, group_name: str | None = None) -> bool:
    if not incident.monitors and not incident.groups:
        return True

    if group_name:
        for g in incident.groups:
            if g.lower() == group_name.lower():
                return True

    for pattern in incident.monitors:
        if matches_pattern(pattern, monitor.name):
            return True
        if monitor.target:
            host = target_hostname(monitor.target)
            if matches_pattern(pattern, host if host is not None else monitor.target):
                return True
    return False


def affecting_incidents(
    incidents: Iterable[Incident],
    monitor: MonitorSpec,
    *,
    group_name: str | None = None,
) -> list[Incident]:
    return [i for i in incidents if i.is_active and incident_affects(i, monitor, group_name=group_name)]


def worst_incident_status(
    incidents: Iterable[Incident],
    monitor: MonitorSpec,
    config: SiteConfig,
    *,
    group_name: str | None = None,
) -> str | None:
    """
    Status of the highest-priority active incident affecting the monitor; the first one wins ties.
    """
    worst = None
    worst_priority = -1
    for incident in affecting_incidents(incidents, monitor, group_name=group_name):
        prio = config.priority(incident.status)
        if prio > worst_priority:
            worst_priority = prio
            worst = incident.status
    return worst
