from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from status_checks.config import SiteConfig
from status_checks.history import iso_timestamp, utc_now
from status_checks.models import OPERATIONAL, MonitorSpec


LOGGER = logging.getLogger("status-monitoring")

WEBHOOK_TIMEOUT_SECONDS = 15.0

EMBED_COLORS = {
    "success": 0x22C55E,
    "warning": 0xEAB308,
    "error": 0xEF4444,
    "info": 0x3B82F6,
}
EMBED_DEFAULT_COLOR = 0x6B7280


@dataclass(frozen=True)
class StatusChange:
    monitor: MonitorSpec
    status: str
    previous_status: str
    message: str | None
    response_time: float | None

    @property
    def is_down(self) -> bool:
        return self.status != OPERATIONAL


def _mention(role: str | None) -> str | None:
    role = str(role or "").strip()
    if not role:
        return None
    if role == "everyone":
        return "@everyone"
    if role == "here":
        return "@here"
    return f"<@&{role}>"


def build_discord_payload(change: StatusChange, config: SiteConfig, *, now=None) -> dict[str, Any]:
    level = config.status_levels.get(change.status)
    color_name = level.color if level is not None else "warning"
    name = change.monitor.name

    fields: list[dict[str, Any]] = [
        {"name": "Status", "value": config.label(change.status), "inline": True},
        {"name": "Previous Status", "value": config.label(change.previous_status), "inline": True},
    ]
    if change.monitor.target and change.monitor.show_target:
        fields.append({"name": "Target", "value": change.monitor.target, "inline": False})
    if change.message:
        fields.append({"name": "Details", "value": change.message, "inline": False})

    embed = {
        "title": "🔴 Monitor Down" if change.is_down else "🟢 Monitor Recovered",
        "description": f"**{name}** is experiencing issues" if change.is_down else f"**{name}** is back online",
        "color": EMBED_COLORS.get(color_name, EMBED_DEFAULT_COLOR),
        "fields": fields,
        "timestamp": iso_timestamp(now or utc_now()),
        "footer": {"text": config.site_settings.site_name},
    }

    content = ""
    if change.is_down:
        content = _mention(change.monitor.discord_ping_role) or _mention(config.notifications.discord.default_ping_role) or ""

    return {"content": content, "embeds": [embed]}


def build_webhook_payload(change: StatusChange, config: SiteConfig, *, now=None) -> dict[str, Any]:
    return {
        "event": "monitor.down" if change.is_down else "monitor.up",
        "monitor": {
            "name": change.monitor.name,
            "type": change.monitor.type.value,
            "target": change.monitor.target or None,
        },
        "status": {
            "current": change.status,
            "currentLabel": config.label(change.status),
            "previous": change.previous_status,
            "previousLabel": config.label(change.previous_status),
        },
        "message": change.message or None,
        "responseTime": change.response_time or None,
        "timestamp": iso_timestamp(now or utc_now()),
        "siteName": config.site_settings.site_name,
    }


async def _post_json(client: httpx.AsyncClient, url: str, payload: dict[str, Any], *, transport: str, monitor: str) -> bool:
    try:
        resp = await client.post(url, json=payload, timeout=WEBHOOK_TIMEOUT_SECONDS)
    except httpx.HTTPError as exc:
        LOGGER.warning("Notification failed transport=%s monitor=%s error=%s", transport, monitor, type(exc).__name__)
        return False
    if not resp.is_success:
        LOGGER.warning(
            "Notification rejected transport=%s monitor=%s status_code=%s",
            transport,
            monitor,
            resp.status_code,
        )
        return False
    LOGGER.info("Notification sent transport=%s monitor=%s", transport, monitor)
    return True


async def send_discord_webhook(client: httpx.AsyncClient, url: str, change: StatusChange, config: SiteConfig) -> bool:
    return await _post_json(client, url, build_discord_payload(change, config), transport="discord", monitor=change.monitor.name)


async def send_generic_webhook(client: httpx.AsyncClient, url: str, change: StatusChange, config: SiteConfig) -> bool:
    return await _post_json(client, url, build_webhook_payload(change, config), transport="webhook", monitor=change.monitor.name)


@dataclass(frozen=True)
class Notifier:
    client: httpx.AsyncClient
    config: SiteConfig
    discord_url: str | None
    webhook_url: str | None

    @property
    def enabled(self) -> bool:
        n = self.config.notifications
        return bool(n.discord.enabled or n.webhook)

    def monitor_enabled(self, monitor: MonitorSpec) -> bool:
        if monitor.notify is not None:
            return monitor.notify
        return self.config.notifications.default_enabled

    async def send(self, change: StatusChange) -> bool:
        """
        Fan out to every configured transport. Returns True only if all of them accepted it.
        """
        n = self.config.notifications
        sends = []
        if n.discord.enabled:
            if self.discord_url:
                sends.append(send_discord_webhook(self.client, self.discord_url, change, self.config))
            else:
                LOGGER.info("Discord webhook URL not configured; skipping notification monitor=%s", change.monitor.name)
        if n.webhook:
            if self.webhook_url:
                sends.append(send_generic_webhook(self.client, self.webhook_url, change, self.config))
            else:
                LOGGER.info("Generic webhook URL not configured; skipping notification monitor=%s", change.monitor.name)
        if not sends:
            return False
        results = await asyncio.gather(*sends)
        return all(results)
