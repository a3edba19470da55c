from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
import logging
from typing import Any, Dict, List, Optional

from prayerwidgets.data_store import PrayerDataStore
from prayerwidgets.refresh_scheduler import (
    COUNTDOWN_INTERVAL,
    FOLLOWUP_DELAY,
    PERIODIC_INTERVAL,
    CountdownTicker,
    RefreshScheduler,
)
from prayerwidgets.render import RenderSink
from prayerwidgets.surfaces import InMemorySurfaceRegistry, SurfaceTable, SurfaceType
from prayerwidgets.timers import FOLLOWUP, LIVE, TimerHost, timer_id


@dataclass
class WidgetController:
    store: PrayerDataStore
    registry: InMemorySurfaceRegistry
    sink: RenderSink
    scheduler: RefreshScheduler
    ticker: Optional[CountdownTicker] = None
    # None re-arms each type's backstop at that type's own cadence.
    backstop_delay: Optional[timedelta] = None

    def __post_init__(self) -> None:
        self._logger = logging.getLogger(self.__class__.__name__)

    def refresh_surface(self, surface: SurfaceType) -> None:
        rendered = self._render(surface)
        if rendered:
            # Backstop in case the host silently dropped the repeating timer.
            self.scheduler.arm_live(surface, self.backstop_delay)

    def refresh_countdown(self, surface: SurfaceType) -> None:
        self._render(surface)

    def on_instance_added(self, surface_key: str, instance_id: int) -> None:
        surface = self.scheduler.surfaces.get(surface_key)
        became_active = self.registry.add_instance(surface.key, instance_id)
        if not became_active:
            self.refresh_surface(surface)
            return

        self._logger.info("First %s instance placed; bootstrapping updates", surface.key)
        self.scheduler.schedule_immediate()
        self.scheduler.start_periodic()
        if self.ticker is not None and surface.fast_track:
            self.ticker.start()

    def on_instance_removed(self, surface_key: str, instance_id: int) -> None:
        surface = self.scheduler.surfaces.get(surface_key)
        if not self.registry.remove_instance(surface.key, instance_id):
            return

        self._logger.info("Last %s instance removed; stopping updates", surface.key)
        self.scheduler.stop_surface(surface)
        if self.ticker is not None and surface.fast_track:
            self.ticker.stop()

    def on_configuration_changed(self) -> None:
        active = self.scheduler.detect_active()
        self._logger.info(
            "Configuration changed; refreshing %s", [surface.key for surface in active]
        )
        for surface in active:
            self._render(surface)

    def status(self) -> Dict[str, Any]:
        instances = {
            surface.key: list(self.registry.list_live_instance_ids(surface.key))
            for surface in self.scheduler.surfaces
        }
        entry = self.store.cached_entry
        pending = getattr(self.scheduler.timers, "pending_timer_ids", None)
        return {
            "active": [key for key, ids in instances.items() if ids],
            "instances": instances,
            "snapshot": self.store.get().to_record(),
            "cached_date": entry.date_key if entry else None,
            "pending_timers": pending() if pending else [],
            "countdown_running": bool(self.ticker and self.ticker.running),
        }

    def shutdown(self) -> None:
        if self.ticker is not None:
            self.ticker.stop()
        self.scheduler.stop_periodic()
        for surface in self.scheduler.surfaces:
            for kind in (FOLLOWUP, LIVE):
                self.scheduler.timers.cancel(timer_id(kind, surface))
        self.store.clear()
        self._logger.info("Widget updates shut down")

    def _render(self, surface: SurfaceType) -> List[int]:
        instance_ids = list(self.registry.list_live_instance_ids(surface.key))
        if not instance_ids:
            return []
        record = surface.build_record(self.store.get())
        rendered: List[int] = []
        for instance_id in instance_ids:
            try:
                self.sink.render(surface, instance_id, record)
            except Exception as exc:
                self._logger.warning(
                    "Render failed for %s#%s: %s", surface.key, instance_id, exc
                )
                continue
            rendered.append(instance_id)
        return rendered


def build_controller(
    *,
    store: PrayerDataStore,
    registry: InMemorySurfaceRegistry,
    sink: RenderSink,
    timers: TimerHost,
    surfaces: SurfaceTable,
    periodic_interval: timedelta = PERIODIC_INTERVAL,
    followup_delay: timedelta = FOLLOWUP_DELAY,
    countdown_interval: timedelta = COUNTDOWN_INTERVAL,
) -> WidgetController:
    """Wire scheduler, ticker and controller; the timers call back into the controller."""
    scheduler = RefreshScheduler(
        timers=timers,
        registry=registry,
        surfaces=surfaces,
        refresh=_unwired,
        periodic_interval=periodic_interval,
        followup_delay=followup_delay,
    )
    ticker = None
    fast_track = surfaces.fast_track
    if fast_track is not None:
        ticker = CountdownTicker(
            timers=timers,
            registry=registry,
            surface=fast_track,
            refresh=_unwired,
            interval=countdown_interval,
            fallback=scheduler.schedule_live_update,
        )
    controller = WidgetController(
        store=store,
        registry=registry,
        sink=sink,
        scheduler=scheduler,
        ticker=ticker,
    )
    scheduler.refresh = controller.refresh_surface
    if ticker is not None:
        ticker.refresh = controller.refresh_countdown
    return controller


def _unwired(surface: SurfaceType) -> None:
    raise RuntimeError(f"Refresh for {surface.key} called before wiring")
