from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Protocol

from prayerwidgets.record_store import RecordStore
from prayerwidgets.surfaces import SurfaceType


class RenderSink(Protocol):
    def render(self, surface: SurfaceType, instance_id: int, record: Dict[str, str]) -> None:
        ...


class LoggingRenderSink:
    def __init__(self, logger_name: str = "prayerwidgets.render") -> None:
        self._logger = logging.getLogger(logger_name)

    def render(self, surface: SurfaceType, instance_id: int, record: Dict[str, str]) -> None:
        self._logger.info(
            "%s#%s: %s | %s",
            surface.key,
            instance_id,
            record.get("countdownText", ""),
            ", ".join(f"{key}={record[key]}" for key in ("fajr", "dhuhr", "asr", "maghrib", "isha")),
        )


class JsonFileRenderSink:
    """Writes each instance's latest record where a display process can pick it up."""

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    def render(self, surface: SurfaceType, instance_id: int, record: Dict[str, str]) -> None:
        self._store.write(self.key_for(surface, instance_id), dict(record))

    @staticmethod
    def key_for(surface: SurfaceType, instance_id: int) -> str:
        return f"surface_{surface.key}_{instance_id}"


class CompositeRenderSink:
    def __init__(self, sinks: Iterable[RenderSink]) -> None:
        self._sinks: List[RenderSink] = list(sinks)

    def render(self, surface: SurfaceType, instance_id: int, record: Dict[str, str]) -> None:
        for sink in self._sinks:
            sink.render(surface, instance_id, record)
