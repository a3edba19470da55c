from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
import logging
import threading
from typing import Callable, List, Optional

from prayerwidgets.surfaces import SurfaceRegistry, SurfaceTable, SurfaceType
from prayerwidgets.timers import (
    COUNTDOWN,
    FOLLOWUP,
    LIVE,
    PERIODIC,
    SchedulingPermissionError,
    TimerHost,
    timer_id,
)


Refresh = Callable[[SurfaceType], None]

PERIODIC_INTERVAL = timedelta(milliseconds=10_000)
FOLLOWUP_DELAY = timedelta(milliseconds=1_000)
COUNTDOWN_INTERVAL = timedelta(milliseconds=1_000)


@dataclass
class RefreshScheduler:
    """Arms refresh timers for every surface type that has live instances.

    Each type is handled independently: a denied or failed timer for one type
    is logged and never stops the others from being scheduled.
    """

    timers: TimerHost
    registry: SurfaceRegistry
    surfaces: SurfaceTable
    refresh: Refresh
    periodic_interval: timedelta = PERIODIC_INTERVAL
    followup_delay: timedelta = FOLLOWUP_DELAY

    def __post_init__(self) -> None:
        self._logger = logging.getLogger(self.__class__.__name__)

    def detect_active(self) -> List[SurfaceType]:
        active = [
            surface
            for surface in self.surfaces
            if self.registry.list_live_instance_ids(surface.key)
        ]
        self._logger.debug("Active surface types: %s", [s.key for s in active])
        return active

    def cadence_for(self, surface: SurfaceType) -> timedelta:
        return surface.cadence or self.periodic_interval

    def start_periodic(self) -> None:
        active = self.detect_active()
        if not active:
            self._logger.info("No active surfaces; skipping periodic scheduling")
            return
        for surface in active:
            self._arm_periodic(surface)

    def stop_periodic(self) -> None:
        for surface in self.surfaces:
            self.timers.cancel(timer_id(PERIODIC, surface))
        self._logger.info("Periodic updates stopped for all surface types")

    def stop_surface(self, surface: SurfaceType) -> None:
        for kind in (PERIODIC, FOLLOWUP, LIVE):
            self.timers.cancel(timer_id(kind, surface))
        self._logger.info("Updates stopped for %s", surface.key)

    def schedule_immediate(self) -> None:
        active = self.detect_active()
        if not active:
            self._logger.info("No active surfaces; skipping immediate update")
            return
        for surface in active:
            self._run_refresh(surface)
            try:
                self.timers.set_exact_once(
                    timer_id(FOLLOWUP, surface),
                    self.followup_delay,
                    self._callback_for(surface),
                )
            except SchedulingPermissionError as exc:
                self._logger.warning(
                    "Follow-up update for %s not scheduled: %s", surface.key, exc
                )

    def schedule_live_update(self, delay: Optional[timedelta] = None) -> None:
        active = self.detect_active()
        if not active:
            self._logger.info("No active surfaces; skipping live update")
            return
        for surface in active:
            self.arm_live(surface, delay)

    def arm_live(self, surface: SurfaceType, delay: Optional[timedelta] = None) -> None:
        delay = delay if delay is not None else self.cadence_for(surface)
        try:
            self.timers.set_exact_once(
                timer_id(LIVE, surface), delay, self._callback_for(surface)
            )
        except SchedulingPermissionError as exc:
            self._logger.warning(
                "Live update for %s not scheduled, relying on periodic timer: %s",
                surface.key,
                exc,
            )

    def _arm_periodic(self, surface: SurfaceType) -> None:
        job_id = timer_id(PERIODIC, surface)
        interval = self.cadence_for(surface)
        callback = self._callback_for(surface)
        try:
            self.timers.set_exact_repeating(job_id, interval, callback)
            return
        except SchedulingPermissionError as exc:
            self._logger.error("Exact repeating denied for %s: %s", surface.key, exc)

        try:
            self.timers.set_inexact_repeating(job_id, interval, callback)
            self._logger.warning("Fell back to inexact repeating for %s", surface.key)
        except SchedulingPermissionError as exc:
            # The surface stays dormant until the next lifecycle signal.
            self._logger.error("All timer methods failed for %s: %s", surface.key, exc)

    def _callback_for(self, surface: SurfaceType) -> Callable[[], None]:
        def fire() -> None:
            self._run_refresh(surface)

        return fire

    def _run_refresh(self, surface: SurfaceType) -> None:
        try:
            self.refresh(surface)
        except Exception:
            self._logger.exception("Refresh failed for %s", surface.key)


@dataclass
class CountdownTicker:
    """One-second countdown chain for the fast-track surface type.

    Each firing arms exactly one more one-shot. The liveness flag is checked
    before refreshing and before re-arming, so a firing that races ``stop()``
    does nothing.
    """

    timers: TimerHost
    registry: SurfaceRegistry
    surface: SurfaceType
    refresh: Refresh
    interval: timedelta = COUNTDOWN_INTERVAL
    fallback: Optional[Callable[[timedelta], None]] = None
    _live: bool = field(default=False, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def __post_init__(self) -> None:
        self._logger = logging.getLogger(self.__class__.__name__)

    @property
    def running(self) -> bool:
        return self._live

    @property
    def timer_id(self) -> str:
        return timer_id(COUNTDOWN, self.surface)

    def start(self) -> None:
        with self._lock:
            self._live = True
        self._logger.info("Countdown updates started for %s", self.surface.key)
        self._arm_next()

    def stop(self) -> None:
        with self._lock:
            self._live = False
        self.timers.cancel(self.timer_id)
        self._logger.info("Countdown updates stopped for %s", self.surface.key)

    def fire(self) -> None:
        if not self._live:
            return
        if not self.registry.list_live_instance_ids(self.surface.key):
            self._logger.info("No %s instances left; ending countdown chain", self.surface.key)
            with self._lock:
                self._live = False
            return
        try:
            self.refresh(self.surface)
        except Exception:
            self._logger.exception("Countdown refresh failed for %s", self.surface.key)
        self._arm_next()

    def _arm_next(self) -> None:
        with self._lock:
            if not self._live:
                return
            try:
                self.timers.set_exact_once(self.timer_id, self.interval, self.fire)
                return
            except SchedulingPermissionError as exc:
                self._live = False
                self._logger.warning(
                    "Countdown chain for %s ended, exact timer denied: %s",
                    self.surface.key,
                    exc,
                )
        if self.fallback is not None:
            self.fallback(self.interval)
