from __future__ import annotations

import argparse
import asyncio
import logging
import os
from pathlib import Path

import httpx

from status_checks.config import ConfigError, load_config, load_monitors, load_secrets
from status_checks.engine import run_batch
from status_checks.state import (
    HISTORY_FILENAME,
    NOTIFICATION_STATE_FILENAME,
    load_history,
    load_notification_state,
    write_json_atomic,
)


LOGGER = logging.getLogger("status-monitoring")

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2


async def run_once(
    *,
    config_path: Path,
    monitors_path: Path,
    data_dir: Path,
    output_path: Path,
) -> int:
    try:
        config = load_config(config_path)
        monitors = load_monitors(monitors_path)
    except ConfigError as exc:
        LOGGER.error("Configuration error; skipping checks error=%s", exc)
        return EXIT_CONFIG

    if not monitors.all_monitors():
        LOGGER.info("No monitors configured; skipping checks")
        return EXIT_OK

    history_path = data_dir / HISTORY_FILENAME
    notify_state_path = data_dir / NOTIFICATION_STATE_FILENAME
    history = load_history(history_path, priority=config.priority)
    notify_state = load_notification_state(notify_state_path)

    async with httpx.AsyncClient(headers={"User-Agent": "status-monitoring/1"}) as client:
        outcome = await run_batch(
            config=config,
            monitors=monitors,
            history=history,
            notify_state=notify_state,
            http_client=client,
            secrets=load_secrets(),
        )

    # Nothing is persisted until the whole pass has succeeded.
    write_json_atomic(history_path, history.to_dict())
    write_json_atomic(notify_state_path, notify_state.to_dict())
    write_json_atomic(output_path, outcome.snapshot)

    LOGGER.info(
        "Monitor checks complete monitors=%s notifications=%s output=%s",
        len(outcome.results),
        outcome.notifications_attempted,
        output_path,
    )
    return EXIT_OK


def main() -> int:
    parser = argparse.ArgumentParser(description="Status page monitor: one check pass over all monitors")
    parser.add_argument("--config", default="config.yaml", help="Path to site config (YAML or JSON)")
    parser.add_argument("--monitors", default="monitors.yaml", help="Path to monitor declarations (YAML or JSON)")
    parser.add_argument("--data-dir", default="data", help="Directory holding history and notification state")
    parser.add_argument("--output", default=str(Path("static") / "data" / "status.json"), help="Status snapshot path")
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Logging level (INFO, WARNING, ...)",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    # Webhook URLs carry their secrets in the path.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    try:
        return asyncio.run(
            run_once(
                config_path=Path(args.config),
                monitors_path=Path(args.monitors),
                data_dir=Path(args.data_dir),
                output_path=Path(args.output),
            )
        )
    except Exception:
        LOGGER.exception("Monitor run failed; no state written")
        return EXIT_FAILED


if __name__ == "__main__":
    raise SystemExit(main())
