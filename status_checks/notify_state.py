from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from status_checks.models import MAINTENANCE, OPERATIONAL


@dataclass
class MonitorNotifyState:
    last_status: str = OPERATIONAL
    consecutive_down_count: int = 0
    notified_down: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "lastStatus": self.last_status,
            "consecutiveDownCount": self.consecutive_down_count,
            "notifiedDown": self.notified_down,
        }


@dataclass(frozen=True)
class NotifyDecision:
    should_send: bool
    reason: str
    previous_status: str | None = None
    mark_notified_down: bool = False
    reset_down_state: bool = False
    increment_down_count: bool = False


def decide(state: MonitorNotifyState, current_status: str, *, number_of_down: int = 1) -> NotifyDecision:
    """
    Debounce transitions between operational and the down family (anything not operational).
    A down notification needs `number_of_down` consecutive down observations; a recovery
    notification is only sent for an outage that was actually reported.
    """
    number_of_down = max(1, int(number_of_down or 1))
    previous = state.last_status

    if current_status == MAINTENANCE or previous == MAINTENANCE:
        return NotifyDecision(should_send=False, reason="maintenance status ignored")

    was_operational = previous == OPERATIONAL
    is_operational = current_status == OPERATIONAL

    if not is_operational and (was_operational or not state.notified_down):
        count = state.consecutive_down_count + 1
        if count >= number_of_down:
            return NotifyDecision(
                should_send=True,
                reason="went down" if was_operational else "reached down threshold",
                # Reported as a transition from operational even when the prior state was already down.
                previous_status=previous if was_operational else OPERATIONAL,
                mark_notified_down=True,
            )
        return NotifyDecision(
            should_send=False,
            reason=f"down count {count}/{number_of_down}",
            increment_down_count=True,
        )

    if not was_operational and is_operational:
        if state.notified_down:
            return NotifyDecision(should_send=True, reason="recovered", previous_status=previous, reset_down_state=True)
        return NotifyDecision(should_send=False, reason="recovered before threshold", reset_down_state=True)

    return NotifyDecision(should_send=False, reason="no status change")


def apply(state: MonitorNotifyState, current_status: str, decision: NotifyDecision) -> None:
    if decision.mark_notified_down:
        state.notified_down = True
        state.consecutive_down_count = 0
    elif decision.reset_down_state:
        state.notified_down = False
        state.consecutive_down_count = 0
    elif decision.increment_down_count:
        state.consecutive_down_count += 1

    if current_status != MAINTENANCE:
        state.last_status = current_status


def _coerce_entry(value: Any) -> MonitorNotifyState | None:
    if not isinstance(value, dict):
        return None
    try:
        count = max(0, int(value.get("consecutiveDownCount") or 0))
    except (TypeError, ValueError):
        count = 0
    last = value.get("lastStatus")
    return MonitorNotifyState(
        last_status=last if isinstance(last, str) and last else OPERATIONAL,
        consecutive_down_count=count,
        notified_down=value.get("notifiedDown") is True,
    )


class NotificationStateStore:
    def __init__(self, states: dict[str, MonitorNotifyState] | None = None):
        self.states: dict[str, MonitorNotifyState] = states if states is not None else {}

    @classmethod
    def from_dict(cls, raw: Any) -> "NotificationStateStore":
        states: dict[str, MonitorNotifyState] = {}
        if isinstance(raw, dict):
            for name, value in raw.items():
                if not isinstance(name, str) or not name:
                    continue
                entry = _coerce_entry(value)
                if entry is not None:
                    states[name] = entry
        return cls(states)

    def to_dict(self) -> dict[str, dict[str, Any]]:
        return {name: s.to_dict() for name, s in self.states.items()}

    def peek(self, name: str) -> MonitorNotifyState:
        return self.states.get(name) or MonitorNotifyState()

    def evaluate(self, name: str, current_status: str, *, number_of_down: int = 1) -> NotifyDecision:
        return decide(self.peek(name), current_status, number_of_down=number_of_down)

    def commit(self, name: str, current_status: str, decision: NotifyDecision) -> None:
        state = self.states.setdefault(name, MonitorNotifyState())
        apply(state, current_status, decision)
