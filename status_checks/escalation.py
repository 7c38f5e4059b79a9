from __future__ import annotations

from datetime import datetime

from status_checks.history import HistoryStore
from status_checks.models import DEGRADED, DOWN, MAJOR, OPERATIONAL


DEFAULT_MAJOR_OUTAGE_THRESHOLD = 2


def count_leading_failures(checks: list[dict]) -> int:
    """
    Length of the run of non-operational checks at the head of a most-recent-first list.
    """
    n = 0
    for check in checks:
        if check.get("status") == OPERATIONAL:
            break
        n += 1
    return n


def escalate_status(
    history: HistoryStore,
    *,
    name: str,
    status: str,
    major_outage_threshold: int = DEFAULT_MAJOR_OUTAGE_THRESHOLD,
    now: datetime | None = None,
) -> str:
    """
    Grade a raw probe status. Only `down` is graded: it becomes `major` once the current failure
    plus the leading run of prior failures reaches the threshold, `degraded` before that.
    """
    if status != DOWN:
        return status

    try:
        threshold = int(major_outage_threshold)
    except (TypeError, ValueError):
        threshold = DEFAULT_MAJOR_OUTAGE_THRESHOLD
    if threshold <= 0:
        threshold = DEFAULT_MAJOR_OUTAGE_THRESHOLD

    recent = history.recent_checks(name, threshold, now=now)
    if count_leading_failures(recent) >= threshold - 1:
        return MAJOR
    return DEGRADED
