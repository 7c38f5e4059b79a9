"""
One batch pass: probe every monitor concurrently, grade and overlay the results, then update
notification state and history strictly in declaration order.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import httpx

from status_checks.config import MonitorsConfig, Secrets, SiteConfig
from status_checks.escalation import escalate_status
from status_checks.github_client import GithubRepo, fetch_comments_for_issues, fetch_issues_with_label
from status_checks.history import DEFAULT_RETENTION_DAYS, HistoryStore, utc_now
from status_checks.incidents import (
    manual_statuses_from_issues,
    merge_issues,
    transform_issues,
    worst_incident_status,
)
from status_checks.models import OPERATIONAL, CheckResult, Incident, ManualStatus, MonitorSpec
from status_checks.notifications import Notifier, StatusChange
from status_checks.notify_state import NotificationStateStore, NotifyDecision
from status_checks.probes import ProbeContext, run_probe
from status_checks.snapshot import build_snapshot


LOGGER = logging.getLogger("status-monitoring")

_NO_CHANGE = NotifyDecision(should_send=False, reason="monitor notifications disabled")


@dataclass(frozen=True)
class ExternalRecords:
    incidents: list[Incident] = field(default_factory=list)
    announcements: list[Incident] = field(default_factory=list)
    manual_statuses: dict[str, ManualStatus] = field(default_factory=dict)


@dataclass(frozen=True)
class BatchOutcome:
    results: list[CheckResult]
    snapshot: dict[str, Any]
    notifications_attempted: int


async def fetch_external_records(
    client: httpx.AsyncClient,
    config: SiteConfig,
    secrets: Secrets,
    *,
    now: datetime | None = None,
) -> ExternalRecords:
    """
    Incidents, maintenance windows, announcements and manual statuses from the issue tracker.
    Upstream failures degrade to empty sets.
    """
    gh = config.github
    if not gh.is_configured:
        return ExternalRecords()

    repo = GithubRepo(owner=str(gh.owner), repo=str(gh.repo), token=secrets.github_token)
    LOGGER.info("Fetching incidents owner=%s repo=%s", repo.owner, repo.repo)

    async def _no_issues() -> list[dict[str, Any]]:
        return []

    incident_issues, maintenance_issues, manual_issues, announcement_issues = await asyncio.gather(
        fetch_issues_with_label(client, repo, gh.issues_label),
        fetch_issues_with_label(client, repo, gh.maintenance_label),
        fetch_issues_with_label(client, repo, gh.manual_monitor_label) if gh.manual_monitor_label else _no_issues(),
        fetch_issues_with_label(client, repo, gh.announcement_label),
    )

    issues = merge_issues(incident_issues, maintenance_issues)
    open_announcements = [i for i in announcement_issues if str(i.get("state") or "").lower() == "open"]

    numbers = [int(i["number"]) for i in issues + open_announcements if i.get("number") is not None]
    comments = await fetch_comments_for_issues(client, repo, sorted(set(numbers)))

    records = ExternalRecords(
        incidents=transform_issues(issues, config, comments_by_issue=comments, now=now),
        announcements=transform_issues(open_announcements, config, comments_by_issue=comments, now=now),
        manual_statuses=manual_statuses_from_issues(manual_issues, config),
    )
    LOGGER.info(
        "Fetched external records incidents=%s announcements=%s manual_statuses=%s",
        len(records.incidents),
        len(records.announcements),
        len(records.manual_statuses),
    )
    return records


async def probe_all(
    monitors: list[MonitorSpec],
    ctx: ProbeContext,
    *,
    history: HistoryStore,
    config: SiteConfig,
    now: datetime,
) -> list[CheckResult]:
    """
    Run every probe concurrently and grade the raw results against (unmodified) history.
    Results come back in declaration order.
    """
    observations = await asyncio.gather(*(run_probe(m, ctx) for m in monitors))

    results: list[CheckResult] = []
    for monitor, obs in zip(monitors, observations):
        status = escalate_status(
            history,
            name=monitor.name,
            status=obs.status,
            major_outage_threshold=config.major_outage_threshold,
            now=now,
        )
        results.append(
            CheckResult(
                name=monitor.name,
                status=status,
                response_time=obs.response_time,
                status_code=obs.status_code,
                message=obs.message,
                extra=obs.extra,
            )
        )
    return results


def apply_incident_overlay(
    result: CheckResult,
    monitor: MonitorSpec,
    incidents: list[Incident],
    config: SiteConfig,
) -> CheckResult:
    override = worst_incident_status(incidents, monitor, config, group_name=monitor.group_name)
    if override is None:
        return result
    LOGGER.info("Incident override monitor=%s status=%s -> %s", monitor.name, result.status, override)
    result.status = override
    result.incident_override = True
    return result


async def reconcile(
    monitors: list[MonitorSpec],
    results: list[CheckResult],
    *,
    incidents: list[Incident],
    history: HistoryStore,
    notify_state: NotificationStateStore,
    notifier: Notifier | None,
    config: SiteConfig,
    now: datetime,
) -> int:
    """
    Sequential phase. Mutates history and notification state in place; returns notifications attempted.
    """
    sent = 0
    notifications_on = notifier is not None and notifier.enabled
    if notifications_on:
        LOGGER.info("Processing notifications")

    for monitor, result in zip(monitors, results):
        apply_incident_overlay(result, monitor, incidents, config)

        level = logging.INFO if result.status == OPERATIONAL else logging.WARNING
        LOGGER.log(
            level,
            "Monitor result monitor=%s status=%s response_time_ms=%s message=%s",
            monitor.name,
            result.status,
            result.response_time,
            result.message,
        )

        if notifications_on and notifier is not None:
            if notifier.monitor_enabled(monitor):
                decision = notify_state.evaluate(
                    monitor.name,
                    result.status,
                    number_of_down=config.notifications.number_of_down,
                )
                if decision.should_send:
                    LOGGER.info("Sending notification monitor=%s reason=%s", monitor.name, decision.reason)
                    await notifier.send(
                        StatusChange(
                            monitor=monitor,
                            status=result.status,
                            previous_status=decision.previous_status or OPERATIONAL,
                            message=result.message,
                            response_time=result.response_time,
                        )
                    )
                    sent += 1
                notify_state.commit(monitor.name, result.status, decision)
            else:
                # Disabled monitors only track the last status, never the down counters.
                notify_state.commit(monitor.name, result.status, _NO_CHANGE)

        history.record_check(result, now=now)

    return sent


async def run_batch(
    *,
    config: SiteConfig,
    monitors: MonitorsConfig,
    history: HistoryStore,
    notify_state: NotificationStateStore,
    http_client: httpx.AsyncClient,
    secrets: Secrets,
    external: ExternalRecords | None = None,
    now: datetime | None = None,
) -> BatchOutcome:
    now = now or utc_now()
    if external is None:
        external = await fetch_external_records(http_client, config, secrets, now=now)

    ordered = monitors.all_monitors()
    LOGGER.info("Checking monitors count=%s", len(ordered))

    ctx = ProbeContext(http_client=http_client, manual_statuses=external.manual_statuses)
    results = await probe_all(ordered, ctx, history=history, config=config, now=now)

    notifier = Notifier(
        client=http_client,
        config=config,
        discord_url=secrets.discord_webhook,
        webhook_url=secrets.webhook_url,
    )
    sent = await reconcile(
        ordered,
        results,
        incidents=external.incidents,
        history=history,
        notify_state=notify_state,
        notifier=notifier,
        config=config,
        now=now,
    )

    history.prune(retention_days=DEFAULT_RETENTION_DAYS, now=now)

    snapshot = build_snapshot(
        monitors=monitors,
        results={r.name: r for r in results},
        history=history,
        incidents=external.incidents,
        announcements=external.announcements,
        config=config,
        now=now,
    )
    return BatchOutcome(results=results, snapshot=snapshot, notifications_attempted=sent)
