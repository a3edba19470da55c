from __future__ import annotations

import argparse
import logging
import os
from pathlib import Path
import threading
from typing import Iterable, List, Optional, Tuple

from prayerwidgets.config import AppConfig, ConfigError, ConfigLoader
from prayerwidgets.data_source import LocalPrayerSource
from prayerwidgets.data_store import PrayerDataStore
from prayerwidgets.logging_utils import LoggerFactory
from prayerwidgets.record_store import RecordStore
from prayerwidgets.render import CompositeRenderSink, JsonFileRenderSink, LoggingRenderSink, RenderSink
from prayerwidgets.surfaces import InMemorySurfaceRegistry, SurfaceTable
from prayerwidgets.timers import ApschedulerTimerHost
from prayerwidgets.widgets import WidgetController, build_controller


def main(argv: Optional[Iterable[str]] = None) -> int:
    args = _parse_args(argv)
    try:
        instances = [_parse_instance(value) for value in args.instance]
        config_dir = Path(args.config) if args.config else None
        config = ConfigLoader(config_dir).load()
    except ConfigError as exc:
        LoggerFactory.create("")
        logging.getLogger("prayerwidgets").error("Config error: %s", exc)
        return 2

    log_path = os.getenv("PRAYERWIDGETS_LOG_PATH") or config.logging.file_path
    # Configure the root logger so every class logger shares the handlers.
    LoggerFactory.create("", log_file=log_path, level=config.logging.level)
    logger = logging.getLogger("prayerwidgets")
    logger.info("Config summary: %s", _config_summary(config))

    store = PrayerDataStore(_build_source(config), ttl=config.cache.ttl)

    if args.dry_run:
        # Dry-run renders one snapshot and never starts timers.
        snapshot = store.get()
        logger.info("Dry-run snapshot: %s", snapshot.to_record())
        return 0

    from apscheduler.schedulers.background import BackgroundScheduler

    scheduler = BackgroundScheduler()
    timers = ApschedulerTimerHost(
        scheduler=scheduler,
        exact_allowed=config.schedule.exact_alarms_allowed,
        inexact_allowed=config.schedule.inexact_alarms_allowed,
        inexact_floor=config.schedule.inexact_floor,
    )
    controller = build_controller(
        store=store,
        registry=InMemorySurfaceRegistry(),
        sink=_build_sink(config),
        timers=timers,
        surfaces=SurfaceTable(),
        periodic_interval=config.schedule.periodic_interval,
        followup_delay=config.schedule.followup_delay,
        countdown_interval=config.schedule.countdown_interval,
    )

    scheduler.start()
    try:
        for surface_key, instance_id in instances:
            controller.on_instance_added(surface_key, instance_id)
        _serve(config, controller, logger)
    except KeyError as exc:
        logger.error("Unknown surface type: %s", exc)
        return 2
    finally:
        controller.shutdown()
        scheduler.shutdown(wait=False)
    return 0


def _serve(config: AppConfig, controller: WidgetController, logger: logging.Logger) -> None:
    if config.control_panel.enabled:
        from prayerwidgets.control_panel import ControlPanelServer

        secret_key = os.getenv("PRAYERWIDGETS_SECRET_KEY", "prayerwidgets-dev")
        server = ControlPanelServer(
            username=config.control_panel.auth.username,
            password_hash=config.control_panel.auth.password_hash,
            controller=controller,
            secret_key=secret_key,
            host=config.control_panel.host,
            port=config.control_panel.port,
        )
        logger.info("Starting control panel on %s:%s", server.host, server.port)
        server.app.run(host=server.host, port=server.port)
        return

    logger.info("Control panel disabled; running scheduler until interrupted.")
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        logger.info("Interrupted; shutting down")


def _build_source(config: AppConfig) -> LocalPrayerSource:
    records = None
    if config.data.records_dir:
        records = RecordStore(Path(config.data.records_dir), create=False)
    bulk_asset = Path(config.data.bulk_asset) if config.data.bulk_asset else None
    return LocalPrayerSource(records=records, bulk_asset=bulk_asset)


def _build_sink(config: AppConfig) -> RenderSink:
    sinks: List[RenderSink] = [LoggingRenderSink()]
    if config.render.output_dir:
        sinks.append(JsonFileRenderSink(RecordStore(Path(config.render.output_dir))))
    return CompositeRenderSink(sinks)


def _config_summary(config: AppConfig) -> dict:
    return {
        "data": {
            "records_dir": config.data.records_dir,
            "bulk_asset": config.data.bulk_asset,
        },
        "cache": {"ttl_seconds": config.cache.ttl_seconds},
        "schedule": {
            "periodic_seconds": config.schedule.periodic_seconds,
            "followup_seconds": config.schedule.followup_seconds,
            "countdown_seconds": config.schedule.countdown_seconds,
            "inexact_floor_minutes": config.schedule.inexact_floor_minutes,
            "exact_alarms_allowed": config.schedule.exact_alarms_allowed,
            "inexact_alarms_allowed": config.schedule.inexact_alarms_allowed,
        },
        "render": {"output_dir": config.render.output_dir},
        "control_panel": {
            "enabled": config.control_panel.enabled,
            "host": config.control_panel.host,
            "port": config.control_panel.port,
            "auth": {"username": config.control_panel.auth.username},
        },
        "logging": {
            "file_path": config.logging.file_path,
            "level": config.logging.level,
        },
    }


def _parse_instance(value: str) -> Tuple[str, int]:
    key, sep, raw_id = value.rpartition(":")
    if not sep or not key:
        raise ConfigError(f"Instance must look like KEY:ID, got {value!r}")
    try:
        return key, int(raw_id)
    except ValueError as exc:
        raise ConfigError(f"Instance id must be an integer: {value!r}") from exc


def _parse_args(argv: Optional[Iterable[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Prayer countdown widget updater")
    parser.add_argument("--config", help="Directory containing config.yml")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Load config and prayer data, log one snapshot, and exit",
    )
    parser.add_argument(
        "--instance",
        action="append",
        default=[],
        metavar="KEY:ID",
        help="Register a live surface instance at startup (repeatable)",
    )
    return parser.parse_args(list(argv) if argv is not None else None)


if __name__ == "__main__":
    raise SystemExit(main())
