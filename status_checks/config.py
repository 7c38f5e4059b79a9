"""Configuration management for the status monitor."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from status_checks.models import GroupSpec, MonitorSpec, MonitorType


class ConfigError(ValueError):
    pass


class StatusLevel(BaseModel):
    """One severity on the status page."""
    label: str = Field(description="Display label")
    color: str = Field(default="neutral", description="Theme colour: success, warning, error, info")
    priority: int = Field(default=0, description="Higher wins in worst-status comparisons")


def _default_status_levels() -> dict[str, StatusLevel]:
    return {
        "operational": StatusLevel(label="Operational", color="success", priority=0),
        "degraded": StatusLevel(label="Degraded Performance", color="warning", priority=1),
        "partial": StatusLevel(label="Partial Outage", color="warning", priority=2),
        "major": StatusLevel(label="Major Outage", color="error", priority=3),
        "maintenance": StatusLevel(label="Under Maintenance", color="info", priority=1),
    }


class DiscordConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    enabled: bool = Field(default=False, description="Send chat webhook notifications")
    default_ping_role: Optional[str] = Field(default=None, alias="defaultPingRole")


class NotificationsConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    default_enabled: bool = Field(default=True, alias="defaultEnabled")
    number_of_down: int = Field(default=1, alias="numberOfDown", description="Consecutive downs before notifying")
    discord: DiscordConfig = Field(default_factory=DiscordConfig)
    webhook: bool = Field(default=False, description="Send generic webhook notifications")


class GithubConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    owner: Optional[str] = None
    repo: Optional[str] = None
    issues_label: str = Field(default="incident", alias="issuesLabel")
    maintenance_label: str = Field(default="maintenance", alias="maintenanceLabel")
    manual_monitor_label: Optional[str] = Field(default="manual-status", alias="manualMonitorLabel")
    announcement_label: str = Field(default="announcement", alias="announcementLabel")

    @property
    def is_configured(self) -> bool:
        if not self.owner or not self.repo:
            return False
        return self.owner != "YOUR_USERNAME" and self.repo != "YOUR_REPO"


class SiteSettings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    site_name: str = Field(default="Status Monitor", alias="siteName")


class SiteConfig(BaseModel):
    """Main configuration for one status page."""
    model_config = ConfigDict(populate_by_name=True)

    status_levels: dict[str, StatusLevel] = Field(default_factory=_default_status_levels, alias="statusLevels")
    major_outage_threshold: int = Field(default=2, alias="majorOutageThreshold")
    notifications: NotificationsConfig = Field(default_factory=NotificationsConfig)
    github: GithubConfig = Field(default_factory=GithubConfig)
    site_settings: SiteSettings = Field(default_factory=SiteSettings, alias="siteSettings")

    def priority(self, status: str | None) -> int:
        level = self.status_levels.get(str(status or ""))
        return level.priority if level is not None else 0

    def label(self, status: str | None) -> str:
        level = self.status_levels.get(str(status or ""))
        return level.label if level is not None else str(status or "")


@dataclass(frozen=True)
class Secrets:
    github_token: str | None
    discord_webhook: str | None
    webhook_url: str | None


def load_secrets() -> Secrets:
    return Secrets(
        github_token=os.getenv("GIT_TOKEN") or os.getenv("GITHUB_TOKEN") or None,
        discord_webhook=os.getenv("DISCORD_WEBHOOK") or None,
        webhook_url=os.getenv("WEBHOOK_URL") or None,
    )


def _load_yaml_mapping(path: Path, *, what: str) -> dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"No {what} found at {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid {what} {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"{what} must be a mapping")
    return data


def load_config(path: Path) -> SiteConfig:
    data = _load_yaml_mapping(path, what="site config")
    try:
        return SiteConfig(**data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid site config {path}: {exc}") from exc


def _coerce_expected_status(value: Any) -> tuple[int, ...]:
    if value is None:
        return (200,)
    items = value if isinstance(value, list) else [value]
    out: list[int] = []
    for x in items:
        try:
            out.append(int(x))
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid expectedStatus value {x!r}") from exc
    return tuple(out) or (200,)


def _optional_float(value: Any) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _optional_int(value: Any) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_monitor(entry: Any, *, group_name: str | None = None) -> MonitorSpec:
    if not isinstance(entry, dict):
        raise ConfigError(f"Monitor entry must be a mapping, got {type(entry).__name__}")

    name = str(entry.get("name") or "").strip()
    if not name:
        raise ConfigError("Monitor entry is missing a name")

    raw_type = str(entry.get("type") or "").strip().lower()
    try:
        monitor_type = MonitorType(raw_type)
    except ValueError as exc:
        raise ConfigError(f"Unknown monitor type {raw_type!r} for monitor {name!r}") from exc

    notify = entry.get("notify")
    return MonitorSpec(
        name=name,
        type=monitor_type,
        target=str(entry.get("target") or "").strip(),
        expected_status=_coerce_expected_status(entry.get("expectedStatus")),
        timeout_seconds=_optional_float(entry.get("timeout")),
        port=_optional_int(entry.get("port")),
        record_type=str(entry.get("recordType") or "A").strip().upper(),
        expected_ip=(str(entry["expectedIp"]).strip() if entry.get("expectedIp") else None),
        json_path=str(entry.get("jsonPath") or "status"),
        expected_value=entry.get("expectedValue"),
        inverse=bool(entry.get("inverse", False)),
        notify=notify if isinstance(notify, bool) else None,
        show_history=bool(entry.get("showHistory", False)),
        show_target=entry.get("showTarget") is not False,
        discord_ping_role=(str(entry["discordPingRole"]) if entry.get("discordPingRole") else None),
        group_name=group_name,
        raw=dict(entry),
    )


@dataclass(frozen=True)
class MonitorsConfig:
    monitors: list[MonitorSpec]
    groups: list[GroupSpec]

    def all_monitors(self) -> list[MonitorSpec]:
        """
        Grouped monitors first, then ungrouped ones: the order notifications and history follow.
        """
        out: list[MonitorSpec] = []
        for group in self.groups:
            out.extend(group.monitors)
        out.extend(self.monitors)
        return out


def parse_monitors(data: dict[str, Any]) -> MonitorsConfig:
    monitors = [parse_monitor(m) for m in (data.get("monitors") or [])]

    groups: list[GroupSpec] = []
    for g in data.get("groups") or []:
        if not isinstance(g, dict):
            raise ConfigError("Group entry must be a mapping")
        group_name = str(g.get("name") or "").strip()
        if not group_name:
            raise ConfigError("Group entry is missing a name")
        groups.append(
            GroupSpec(
                name=group_name,
                monitors=[parse_monitor(m, group_name=group_name) for m in (g.get("monitors") or [])],
                description=g.get("description"),
                default_open=g.get("defaultOpen") is not False,
                show_group_status=g.get("showGroupStatus") is not False,
                show_group_history=bool(g.get("showGroupHistory", False)),
            )
        )

    cfg = MonitorsConfig(monitors=monitors, groups=groups)
    names = [m.name for m in cfg.all_monitors()]
    dupes = sorted({n for n in names if names.count(n) > 1})
    if dupes:
        raise ConfigError(f"Duplicate monitor names: {', '.join(dupes)}")
    return cfg


def load_monitors(path: Path) -> MonitorsConfig:
    return parse_monitors(_load_yaml_mapping(path, what="monitors file"))
