from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


OPERATIONAL = "operational"
DEGRADED = "degraded"
MAJOR = "major"
DOWN = "down"
MAINTENANCE = "maintenance"


class MonitorType(str, Enum):
    HTTP = "http"
    PING = "ping"
    TCP = "tcp"
    DNS = "dns"
    STATUSPAGE = "statuspage"
    JSON = "json"
    STEAM = "steam"
    MINECRAFT = "minecraft"
    MANUAL = "manual"


@dataclass(frozen=True)
class MonitorSpec:
    name: str
    type: MonitorType
    target: str = ""
    expected_status: tuple[int, ...] = (200,)
    timeout_seconds: float | None = None
    port: int | None = None
    record_type: str = "A"
    expected_ip: str | None = None
    json_path: str = "status"
    expected_value: Any = None
    inverse: bool = False
    notify: bool | None = None
    show_history: bool = False
    show_target: bool = True
    discord_ping_role: str | None = None
    group_name: str | None = None
    # Declared keys, echoed back into the public snapshot.
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


@dataclass(frozen=True)
class GroupSpec:
    name: str
    monitors: list[MonitorSpec]
    description: str | None = None
    default_open: bool = True
    show_group_status: bool = True
    show_group_history: bool = False


@dataclass
class Observation:
    status: str
    response_time: float | None = None
    status_code: int | None = None
    message: str = ""
    extra: dict[str, Any] | None = None


@dataclass
class CheckResult:
    """
    A graded observation for one monitor, after escalation and incident overlay.
    """

    name: str
    status: str
    response_time: float | None
    status_code: int | None
    message: str
    extra: dict[str, Any] | None = None
    incident_override: bool = False


@dataclass(frozen=True)
class ManualStatus:
    status: str
    message: str
    issue_number: int | None = None
    issue_url: str | None = None
    updated_at: str | None = None


@dataclass(frozen=True)
class IncidentUpdate:
    id: Any
    body: str | None
    created_at: str | None
    updated_at: str | None
    author: str
    author_avatar: str | None


@dataclass(frozen=True)
class Incident:
    id: int
    title: str
    body: str | None
    status: str
    monitors: list[str]
    groups: list[str]
    is_maintenance: bool
    is_resolved: bool
    is_upcoming: bool
    scheduled_start: str | None = None
    scheduled_end: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    closed_at: str | None = None
    url: str | None = None
    updates: list[IncidentUpdate] = field(default_factory=list)

    @property
    def is_active(self) -> bool:
        return not self.is_resolved and not self.is_upcoming

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "body": self.body,
            "status": self.status,
            "monitors": list(self.monitors),
            "groups": list(self.groups),
            "isMaintenance": self.is_maintenance,
            "isResolved": self.is_resolved,
            "isUpcoming": self.is_upcoming,
            "scheduledStart": self.scheduled_start,
            "scheduledEnd": self.scheduled_end,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "closedAt": self.closed_at,
            "url": self.url,
            "updates": [
                {
                    "id": u.id,
                    "body": u.body,
                    "createdAt": u.created_at,
                    "updatedAt": u.updated_at,
                    "author": u.author,
                    "authorAvatar": u.author_avatar,
                }
                for u in self.updates
            ],
        }
