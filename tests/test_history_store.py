from __future__ import annotations

from datetime import datetime, timedelta, timezone

from status_checks.config import SiteConfig
from status_checks.escalation import escalate_status
from status_checks.history import HistoryStore, coerce_history
from status_checks.models import CheckResult


NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def _store() -> HistoryStore:
    return HistoryStore(priority=SiteConfig().priority)


def _result(name: str, status: str, *, response_time: float | None = 100.0) -> CheckResult:
    return CheckResult(name=name, status=status, response_time=response_time, status_code=None, message="")


def test_same_status_within_an_hour_is_coalesced() -> None:
    h = _store()
    assert h.record_check(_result("api", "operational"), now=NOW) is True
    assert h.record_check(_result("api", "operational"), now=NOW + timedelta(minutes=59)) is False
    assert len(h.data["api"]["days"]["2026-03-10"]["checks"]) == 1

    assert h.record_check(_result("api", "operational"), now=NOW + timedelta(minutes=61)) is True
    assert len(h.data["api"]["days"]["2026-03-10"]["checks"]) == 2


def test_status_change_is_always_recorded_and_worst_status_is_sticky() -> None:
    h = _store()
    h.record_check(_result("api", "operational"), now=NOW)
    h.record_check(_result("api", "major"), now=NOW + timedelta(minutes=1))
    h.record_check(_result("api", "degraded"), now=NOW + timedelta(minutes=2))
    h.record_check(_result("api", "operational"), now=NOW + timedelta(minutes=3))

    bucket = h.data["api"]["days"]["2026-03-10"]
    assert [c["status"] for c in bucket["checks"]] == ["operational", "major", "degraded", "operational"]
    assert bucket["worstStatus"] == "major"
    assert bucket["checks"][0]["timestamp"] == "2026-03-10T12:00:00.000Z"


def test_uptime_none_without_data_and_rounded_otherwise() -> None:
    h = _store()
    assert h.uptime_percentage("api", now=NOW) is None

    for i, status in enumerate(["operational", "major", "operational"]):
        h.record_check(_result("api", status), now=NOW - timedelta(days=i))
    assert h.uptime_percentage("api", now=NOW) == 66.67

    h2 = _store()
    for i in range(4):
        h2.record_check(_result("db", "operational"), now=NOW - timedelta(days=i))
    assert h2.uptime_percentage("db", now=NOW) == 100.0


def test_daily_history_has_fixed_length_with_placeholders() -> None:
    h = _store()
    h.record_check(_result("api", "operational", response_time=100.0), now=NOW)
    h.record_check(_result("api", "degraded", response_time=None), now=NOW + timedelta(minutes=5))
    h.record_check(_result("api", "operational", response_time=300.0), now=NOW + timedelta(minutes=10))

    days = h.daily_history("api", days=90, now=NOW)
    assert len(days) == 90
    assert days[0]["day"] == "2025-12-11"
    assert days[0] == {"day": "2025-12-11", "status": None, "checks": 0, "avgResponseTime": None}

    today = days[-1]
    assert today["day"] == "2026-03-10"
    assert today["checks"] == 3
    assert today["status"] == "degraded"
    assert today["avgResponseTime"] == 200.0
    assert today["statusCounts"] == {"operational": 2, "degraded": 1}


def test_group_rollup_takes_worst_day_status_across_monitors() -> None:
    h = _store()
    h.record_check(_result("a", "operational", response_time=10.0), now=NOW)
    h.record_check(_result("b", "major", response_time=30.0), now=NOW)

    days = h.group_daily_history(["a", "b", "missing"], days=3, now=NOW)
    assert len(days) == 3
    assert days[0]["checks"] == 0
    assert "statusCounts" not in days[0]
    assert days[-1]["status"] == "major"
    assert days[-1]["checks"] == 2
    assert days[-1]["avgResponseTime"] == 20.0
    assert h.group_uptime_percentage(["a", "b"], days=3, now=NOW) == 50.0


def test_prune_drops_days_older_than_retention() -> None:
    h = _store()
    h.record_check(_result("api", "operational"), now=NOW - timedelta(days=91))
    h.record_check(_result("api", "operational"), now=NOW - timedelta(days=90))
    h.record_check(_result("api", "operational"), now=NOW)

    h.prune(retention_days=90, now=NOW)
    assert sorted(h.data["api"]["days"]) == ["2025-12-10", "2026-03-10"]


def test_coerce_history_skips_garbage_and_accepts_unwrapped_days() -> None:
    raw = {
        "api": {
            "days": {
                "2026-03-10": {
                    "checks": [
                        {"status": "operational", "timestamp": "2026-03-10T10:00:00.000Z", "responseTime": 12},
                        {"status": "major"},
                        "nonsense",
                    ],
                    "worstStatus": "operational",
                },
                "not-a-day": {"checks": []},
            }
        },
        "legacy": {"2026-03-09": {"checks": [{"status": "major", "timestamp": "2026-03-09T10:00:00Z"}], "worstStatus": "major"}},
        "": {"days": {}},
        "bad": [],
    }
    h = coerce_history(raw)
    assert set(h) == {"api", "legacy"}
    assert list(h["api"]["days"]) == ["2026-03-10"]
    assert len(h["api"]["days"]["2026-03-10"]["checks"]) == 1
    assert h["legacy"]["days"]["2026-03-09"]["worstStatus"] == "major"
    assert coerce_history("not a dict") == {}


def test_operational_is_never_escalated() -> None:
    h = _store()
    for i in range(3):
        h.record_check(_result("api", "major"), now=NOW - timedelta(minutes=10 * (i + 1)))
    assert escalate_status(h, name="api", status="operational", major_outage_threshold=2, now=NOW) == "operational"


def test_first_failure_is_degraded_then_major() -> None:
    h = _store()
    h.record_check(_result("api", "operational"), now=NOW - timedelta(minutes=10))

    first = escalate_status(h, name="api", status="down", major_outage_threshold=2, now=NOW)
    assert first == "degraded"

    h.record_check(_result("api", first), now=NOW)
    second = escalate_status(h, name="api", status="down", major_outage_threshold=2, now=NOW + timedelta(minutes=5))
    assert second == "major"


def test_escalation_counts_only_the_leading_failure_run() -> None:
    h = _store()
    h.record_check(_result("api", "major"), now=NOW - timedelta(minutes=30))
    h.record_check(_result("api", "operational"), now=NOW - timedelta(minutes=20))
    h.record_check(_result("api", "degraded"), now=NOW - timedelta(minutes=10))

    # threshold 3 needs two prior consecutive failures; only one leads before the operational check.
    assert escalate_status(h, name="api", status="down", major_outage_threshold=3, now=NOW) == "degraded"

    h.record_check(_result("api", "major"), now=NOW - timedelta(minutes=5))
    assert escalate_status(h, name="api", status="down", major_outage_threshold=3, now=NOW) == "major"


def test_threshold_one_escalates_immediately_and_looks_back_a_week_only() -> None:
    h = _store()
    assert escalate_status(h, name="new", status="down", major_outage_threshold=1, now=NOW) == "major"

    h.record_check(_result("old", "major"), now=NOW - timedelta(days=8))
    assert escalate_status(h, name="old", status="down", major_outage_threshold=2, now=NOW) == "degraded"
