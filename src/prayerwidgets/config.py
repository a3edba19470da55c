from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


class ConfigError(ValueError):
    """Raised when configuration loading or validation fails."""


@dataclass(frozen=True)
class DataConfig:
    records_dir: str
    bulk_asset: str


@dataclass(frozen=True)
class CacheConfig:
    ttl_seconds: float

    @property
    def ttl(self) -> timedelta:
        return timedelta(seconds=self.ttl_seconds)


@dataclass(frozen=True)
class ScheduleConfig:
    periodic_seconds: float
    followup_seconds: float
    countdown_seconds: float
    inexact_floor_minutes: float
    exact_alarms_allowed: bool
    inexact_alarms_allowed: bool

    @property
    def periodic_interval(self) -> timedelta:
        return timedelta(seconds=self.periodic_seconds)

    @property
    def followup_delay(self) -> timedelta:
        return timedelta(seconds=self.followup_seconds)

    @property
    def countdown_interval(self) -> timedelta:
        return timedelta(seconds=self.countdown_seconds)

    @property
    def inexact_floor(self) -> timedelta:
        return timedelta(minutes=self.inexact_floor_minutes)


@dataclass(frozen=True)
class RenderConfig:
    output_dir: str


@dataclass(frozen=True)
class ControlPanelAuthConfig:
    username: str
    password_hash: str


@dataclass(frozen=True)
class ControlPanelConfig:
    enabled: bool
    host: str
    port: int
    auth: ControlPanelAuthConfig


@dataclass(frozen=True)
class LoggingConfig:
    file_path: Optional[str]
    level: str


@dataclass(frozen=True)
class AppConfig:
    data: DataConfig
    cache: CacheConfig
    schedule: ScheduleConfig
    render: RenderConfig
    control_panel: ControlPanelConfig
    logging: LoggingConfig


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged: Dict[str, Any] = dict(base)
    for key, value in override.items():
        if (
            key in merged
            and isinstance(merged[key], dict)
            and isinstance(value, dict)
        ):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _load_yaml(path: Path) -> Dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"Failed to read config file: {path}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in config file: {path}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected mapping at root of config file: {path}")
    return data


class ConfigLoader:
    def __init__(self, root_dir: Path | None = None) -> None:
        self._root_dir = root_dir

    def load(self) -> AppConfig:
        root_dir = self._resolve_root_dir()
        config_path = root_dir / "config.yml"
        if not config_path.exists():
            raise ConfigError(f"Missing base config file: {config_path}")

        merged: Dict[str, Any] = {}
        merged = _deep_merge(merged, _load_yaml(config_path))

        # Overlays apply in filename order, so 20-*.yml wins over 10-*.yml.
        config_d = root_dir / "config.d"
        if config_d.exists():
            for path in sorted(config_d.glob("*.yml")):
                merged = _deep_merge(merged, _load_yaml(path))

        secrets_path = root_dir / "secrets.yml"
        if secrets_path.exists():
            merged = _deep_merge(merged, _load_yaml(secrets_path))

        config = self._build_config(merged)
        self._validate(config)
        return config

    def _resolve_root_dir(self) -> Path:
        if self._root_dir is not None:
            return Path(self._root_dir)
        env_dir = os.getenv("PRAYERWIDGETS_CONFIG_DIR")
        if env_dir:
            return Path(env_dir)
        return Path("/etc/prayerwidgets")

    def _build_config(self, data: Dict[str, Any]) -> AppConfig:
        try:
            data_section = data["data"]
            cache_data = data["cache"]
            schedule_data = data["schedule"]
        except KeyError as exc:
            raise ConfigError(f"Missing config section: {exc.args[0]}") from exc

        render_data = data.get("render") or {}
        control_panel_data = data.get("control_panel") or {}
        logging_data = data.get("logging") or {}

        try:
            source = DataConfig(
                records_dir=data_section.get("records_dir", ""),
                bulk_asset=data_section.get("bulk_asset", ""),
            )
            cache = CacheConfig(ttl_seconds=float(cache_data.get("ttl_seconds", 10)))
            schedule = ScheduleConfig(
                periodic_seconds=float(schedule_data.get("periodic_seconds", 10)),
                followup_seconds=float(schedule_data.get("followup_seconds", 1)),
                countdown_seconds=float(schedule_data.get("countdown_seconds", 1)),
                inexact_floor_minutes=float(
                    schedule_data.get("inexact_floor_minutes", 15)
                ),
                exact_alarms_allowed=bool(
                    schedule_data.get("exact_alarms_allowed", True)
                ),
                inexact_alarms_allowed=bool(
                    schedule_data.get("inexact_alarms_allowed", True)
                ),
            )
            auth_data = control_panel_data.get("auth") or {}
            control_panel = ControlPanelConfig(
                enabled=bool(control_panel_data.get("enabled", False)),
                host=control_panel_data.get("host", "127.0.0.1"),
                port=int(control_panel_data.get("port", 8080)),
                auth=ControlPanelAuthConfig(
                    username=auth_data.get("username", ""),
                    password_hash=auth_data.get("password_hash", ""),
                ),
            )
        except (AttributeError, TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid config value: {exc}") from exc

        return AppConfig(
            data=source,
            cache=cache,
            schedule=schedule,
            render=RenderConfig(output_dir=render_data.get("output_dir") or ""),
            control_panel=control_panel,
            logging=LoggingConfig(
                file_path=logging_data.get("file_path") or None,
                level=str(logging_data.get("level", "INFO")).upper(),
            ),
        )

    def _validate(self, config: AppConfig) -> None:
        self._validate_data(config.data)
        self._validate_schedule(config.schedule, config.cache)
        self._validate_control_panel(config.control_panel)
        if not isinstance(logging.getLevelName(config.logging.level), int):
            raise ConfigError(f"Unknown log level: {config.logging.level}")

    def _validate_data(self, data: DataConfig) -> None:
        if not data.records_dir and not data.bulk_asset:
            raise ConfigError("Configure data.records_dir or data.bulk_asset")

    def _validate_schedule(self, schedule: ScheduleConfig, cache: CacheConfig) -> None:
        for name in (
            "periodic_seconds",
            "followup_seconds",
            "countdown_seconds",
            "inexact_floor_minutes",
        ):
            value = getattr(schedule, name)
            if value <= 0:
                raise ConfigError(f"schedule.{name} must be positive: {value}")
        if schedule.followup_seconds >= schedule.periodic_seconds:
            raise ConfigError("schedule.followup_seconds must be below periodic_seconds")
        if cache.ttl_seconds <= 0:
            raise ConfigError(f"cache.ttl_seconds must be positive: {cache.ttl_seconds}")

    def _validate_control_panel(self, control_panel: ControlPanelConfig) -> None:
        if not control_panel.enabled:
            return
        if not control_panel.auth.username:
            raise ConfigError("Control panel username is required")
        if not control_panel.auth.password_hash:
            raise ConfigError("Control panel password_hash is required")
