from __future__ import annotations

from datetime import datetime
from typing import Any

from status_checks.config import MonitorsConfig, SiteConfig
from status_checks.history import DEFAULT_WINDOW_DAYS, HistoryStore, iso_timestamp
from status_checks.incidents import affecting_incidents, worst_incident_status
from status_checks.models import OPERATIONAL, CheckResult, Incident, MonitorSpec


def _monitor_entry(
    monitor: MonitorSpec,
    result: CheckResult | None,
    *,
    history: HistoryStore,
    incidents: list[Incident],
    config: SiteConfig,
    group_name: str | None,
    now: datetime,
) -> dict[str, Any]:
    entry: dict[str, Any] = dict(monitor.raw)
    entry.update(
        {
            "status": result.status if result else OPERATIONAL,
            "responseTime": result.response_time if result else None,
            "statusCode": result.status_code if result else None,
            "message": result.message if result else None,
            "incidentOverride": result.incident_override if result else False,
        }
    )
    if result is not None and result.extra:
        entry["extra"] = result.extra

    if monitor.show_history:
        entry["history"] = history.daily_history(monitor.name, days=DEFAULT_WINDOW_DAYS, now=now)
        entry["uptime"] = history.uptime_percentage(monitor.name, days=DEFAULT_WINDOW_DAYS, now=now)

    affecting = affecting_incidents(incidents, monitor, group_name=group_name)
    entry["incidentStatus"] = worst_incident_status(incidents, monitor, config, group_name=group_name)
    entry["affectingIncidents"] = [i.to_dict() for i in affecting]
    return entry


def build_snapshot(
    *,
    monitors: MonitorsConfig,
    results: dict[str, CheckResult],
    history: HistoryStore,
    incidents: list[Incident],
    announcements: list[Incident],
    config: SiteConfig,
    now: datetime,
) -> dict[str, Any]:
    ungrouped = [
        _monitor_entry(m, results.get(m.name), history=history, incidents=incidents, config=config, group_name=None, now=now)
        for m in monitors.monitors
    ]

    groups: list[dict[str, Any]] = []
    for group in monitors.groups:
        group_monitors = [
            _monitor_entry(
                m,
                results.get(m.name),
                history=history,
                incidents=incidents,
                config=config,
                group_name=group.name,
                now=now,
            )
            for m in group.monitors
        ]
        names = [m.name for m in group.monitors]

        group_history: list[dict[str, Any]] = []
        group_uptime = None
        if group.show_group_history and names:
            group_history = history.group_daily_history(names, days=DEFAULT_WINDOW_DAYS, now=now)
            group_uptime = history.group_uptime_percentage(names, days=DEFAULT_WINDOW_DAYS, now=now)

        groups.append(
            {
                "name": group.name,
                "description": group.description,
                "defaultOpen": group.default_open,
                "showGroupStatus": group.show_group_status,
                "showGroupHistory": group.show_group_history,
                "history": group_history,
                "uptime": group_uptime,
                "monitors": group_monitors,
            }
        )

    return {
        "incidents": [i.to_dict() for i in incidents],
        "monitors": ungrouped,
        "monitorGroups": groups,
        "announcements": [a.to_dict() for a in announcements],
        "lastUpdated": iso_timestamp(now),
    }
