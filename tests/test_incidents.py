from __future__ import annotations

from datetime import datetime, timezone

import pytest

from status_checks.config import SiteConfig
from status_checks.incidents import (
    manual_statuses_from_issues,
    matches_pattern,
    merge_issues,
    parse_date_string,
    parse_targets_from_body,
    transform_issue,
    worst_incident_status,
)
from status_checks.models import Incident, MonitorSpec, MonitorType


NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def _incident(id: int, status: str, *, monitors=(), groups=(), resolved=False, upcoming=False) -> Incident:
    return Incident(
        id=id,
        title=f"incident {id}",
        body=None,
        status=status,
        monitors=list(monitors),
        groups=list(groups),
        is_maintenance=status == "maintenance",
        is_resolved=resolved,
        is_upcoming=upcoming,
    )


def _monitor(name: str, target: str = "", group: str | None = None) -> MonitorSpec:
    return MonitorSpec(name=name, type=MonitorType.HTTP, target=target, group_name=group)


@pytest.mark.parametrize(
    ("pattern", "target", "expected"),
    [
        ("api-*", "api-gateway", True),
        ("api-*", "API-Auth", True),
        ("api-*", "apigateway", False),
        ("*.example.com", "www.example.com", True),
        ("*.example.com", "example.com.evil", False),
        ("Website", "website", True),
        ("web", "website", False),
        ("", "website", False),
    ],
)
def test_matches_pattern(pattern: str, target: str, expected: bool) -> None:
    assert matches_pattern(pattern, target) is expected


def test_worst_active_incident_wins() -> None:
    config = SiteConfig()
    api = _monitor("api-gateway")
    incidents = [
        _incident(1, "degraded", monitors=["api-*"]),
        _incident(2, "major", monitors=["api-gateway"]),
        _incident(3, "major", monitors=["db"]),
    ]
    assert worst_incident_status(incidents, api, config) == "major"
    assert worst_incident_status(incidents, _monitor("website"), config) is None


def test_resolved_and_upcoming_incidents_are_ignored() -> None:
    config = SiteConfig()
    incidents = [
        _incident(1, "major", resolved=True),
        _incident(2, "maintenance", upcoming=True),
    ]
    assert worst_incident_status(incidents, _monitor("api"), config) is None


def test_untargeted_incident_affects_everything_and_group_match() -> None:
    config = SiteConfig()
    assert worst_incident_status([_incident(1, "partial")], _monitor("anything"), config) == "partial"

    grouped = [_incident(2, "degraded", groups=["Backend"])]
    assert worst_incident_status(grouped, _monitor("db", group="backend"), config, group_name="backend") == "degraded"
    assert worst_incident_status(grouped, _monitor("web"), config, group_name="Frontend") is None


def test_monitor_pattern_matches_url_hostname() -> None:
    config = SiteConfig()
    incidents = [_incident(1, "major", monitors=["*.example.com"])]
    monitor = _monitor("Website", target="https://www.example.com/health")
    assert worst_incident_status(incidents, monitor, config) == "major"


def test_parse_targets_and_dates() -> None:
    body = "Outage\n<!-- monitors: api-*, website -->\n<!-- groups: Backend -->"
    assert parse_targets_from_body(body) == (["api-*", "website"], ["Backend"])
    assert parse_targets_from_body(None) == ([], [])

    assert parse_date_string("2026-03-10 14:30") == datetime(2026, 3, 10, 14, 30, tzinfo=timezone.utc)
    assert parse_date_string("2026-03-10T14:30") == datetime(2026, 3, 10, 14, 30, tzinfo=timezone.utc)
    assert parse_date_string("2026-03-10 02:30 PM") == datetime(2026, 3, 10, 14, 30, tzinfo=timezone.utc)
    assert parse_date_string("2026-03-10 12:05 AM") == datetime(2026, 3, 10, 0, 5, tzinfo=timezone.utc)
    assert parse_date_string("2026-03-10") == datetime(2026, 3, 10, tzinfo=timezone.utc)
    assert parse_date_string("2026-03-10T14:30:00Z") == datetime(2026, 3, 10, 14, 30, tzinfo=timezone.utc)
    assert parse_date_string("tomorrow") is None


def test_transform_issue_status_precedence() -> None:
    config = SiteConfig()
    issue = {
        "number": 7,
        "title": "API slow",
        "state": "open",
        "labels": [{"name": "incident"}, {"name": "major"}],
        "body": "<!-- status: degraded -->\n<!-- monitors: api -->",
        "html_url": "https://github.com/acme/status/issues/7",
    }
    incident = transform_issue(issue, config, now=NOW)
    assert incident.status == "degraded"
    assert incident.monitors == ["api"]
    assert incident.is_active

    issue["body"] = "<!-- status: bogus -->"
    assert transform_issue(issue, config, now=NOW).status == "major"

    issue["labels"] = [{"name": "incident"}]
    assert transform_issue(issue, config, now=NOW).status == "major"

    issue["state"] = "closed"
    closed = transform_issue(issue, config, now=NOW)
    assert closed.status == "operational"
    assert closed.is_resolved


def test_maintenance_windows() -> None:
    config = SiteConfig()
    issue = {
        "number": 9,
        "title": "DB upgrade",
        "state": "open",
        "labels": [{"name": "maintenance"}, {"name": "major"}],
        "body": "<!-- start: 2026-03-11 10:00 -->\n<!-- end: 2026-03-11 12:00 -->",
    }
    upcoming = transform_issue(issue, config, now=NOW)
    assert upcoming.status == "maintenance"
    assert upcoming.is_upcoming
    assert not upcoming.is_active
    assert upcoming.scheduled_start == "2026-03-11T10:00:00.000Z"

    active = transform_issue(issue, config, now=datetime(2026, 3, 11, 11, 0, tzinfo=timezone.utc))
    assert active.is_active

    ended = transform_issue(issue, config, now=datetime(2026, 3, 11, 12, 1, tzinfo=timezone.utc))
    assert ended.is_resolved


def test_transform_issue_collects_comments() -> None:
    config = SiteConfig()
    comments = [{"id": 1, "body": "Investigating", "user": {"login": "ops", "avatar_url": "a.png"}}, {"id": 2, "body": "Fixed"}]
    incident = transform_issue({"number": 1, "title": "x", "state": "open"}, config, comments=comments, now=NOW)
    assert [u.author for u in incident.updates] == ["ops", "Unknown"]
    assert incident.to_dict()["updates"][0]["authorAvatar"] == "a.png"


def test_merge_issues_dedupes_by_number() -> None:
    merged = merge_issues([{"number": 1, "title": "a"}, {"number": 2}], [{"number": 1, "title": "b"}])
    assert [i["number"] for i in merged] == [1, 2]
    assert merged[0]["title"] == "b"


def test_manual_statuses_from_issues() -> None:
    config = SiteConfig()
    statuses = manual_statuses_from_issues(
        [
            {"number": 3, "title": "Payments", "state": "open", "body": "<!-- status: degraded -->\nCard payments are slow\nmore"},
            {"number": 4, "title": "Support", "state": "open", "labels": [{"name": "partial"}]},
            {"number": 5, "title": "Billing", "state": "closed", "body": "<!-- status: major -->"},
            {"number": 6, "title": "  ", "state": "open"},
        ],
        config,
    )
    assert set(statuses) == {"Payments", "Support", "Billing"}
    assert statuses["Payments"].status == "degraded"
    assert statuses["Payments"].message == "Card payments are slow"
    assert statuses["Support"].status == "partial"
    assert statuses["Support"].message == "Support"
    assert statuses["Billing"].status == "operational"
    assert statuses["Billing"].message == "Resolved"
