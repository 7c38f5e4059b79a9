from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Callable

from status_checks.history import HistoryStore, coerce_history
from status_checks.notify_state import NotificationStateStore


LOGGER = logging.getLogger("status-monitoring")

HISTORY_FILENAME = "history.json"
NOTIFICATION_STATE_FILENAME = "notification-state.json"


def read_json_state(path: Path) -> Any:
    """
    Missing file -> None. Unreadable or malformed file -> None with a warning; never raises.
    """
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as exc:
        LOGGER.warning("Failed to read state file path=%s error=%s", path, exc)
        return None


def write_json_atomic(path: Path, payload: Any, *, indent: int | None = 2) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f"{path.name}.tmp")
    tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=indent), encoding="utf-8")
    tmp.replace(path)


def load_history(path: Path, *, priority: Callable[[str | None], int]) -> HistoryStore:
    return HistoryStore(coerce_history(read_json_state(path)), priority=priority)


def load_notification_state(path: Path) -> NotificationStateStore:
    return NotificationStateStore.from_dict(read_json_state(path))
