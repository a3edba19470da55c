from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
import logging
from typing import Callable, List, Protocol

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from prayerwidgets.surfaces import SurfaceType


Callback = Callable[[], None]

PERIODIC = "periodic"
FOLLOWUP = "followup"
LIVE = "live"
COUNTDOWN = "countdown"


class SchedulingPermissionError(PermissionError):
    """Raised when the host refuses to arm a timer of the requested kind."""


class TimerHost(Protocol):
    def set_exact_repeating(
        self, timer_id: str, interval: timedelta, callback: Callback
    ) -> None:
        ...

    def set_inexact_repeating(
        self, timer_id: str, interval: timedelta, callback: Callback
    ) -> None:
        ...

    def set_exact_once(self, timer_id: str, delay: timedelta, callback: Callback) -> None:
        ...

    def cancel(self, timer_id: str) -> None:
        ...


def timer_id(kind: str, surface: SurfaceType) -> str:
    # Fixed request codes keep ids distinct per type and stable across calls.
    return f"{kind}_{surface.request_code}"


@dataclass
class ApschedulerTimerHost:
    scheduler: BaseScheduler
    now_provider: Callable[[], datetime] = datetime.now
    exact_allowed: bool = True
    inexact_allowed: bool = True
    inexact_floor: timedelta = timedelta(minutes=15)
    misfire_grace_seconds: int = 5

    def __post_init__(self) -> None:
        self._logger = logging.getLogger(self.__class__.__name__)

    def set_exact_repeating(
        self, timer_id: str, interval: timedelta, callback: Callback
    ) -> None:
        if not self.exact_allowed:
            raise SchedulingPermissionError("Exact repeating timers are not permitted")
        self._add(
            timer_id,
            callback,
            IntervalTrigger(
                seconds=interval.total_seconds(),
                start_date=self.now_provider() + interval,
            ),
        )
        self._logger.info("Armed exact %s every %s", timer_id, interval)

    def set_inexact_repeating(
        self, timer_id: str, interval: timedelta, callback: Callback
    ) -> None:
        if not self.inexact_allowed:
            raise SchedulingPermissionError("Inexact repeating timers are not permitted")
        effective = max(interval, self.inexact_floor)
        self._add(
            timer_id,
            callback,
            IntervalTrigger(
                seconds=effective.total_seconds(),
                start_date=self.now_provider() + interval,
                jitter=int(effective.total_seconds() // 10) or None,
            ),
        )
        self._logger.info("Armed inexact %s every %s", timer_id, effective)

    def set_exact_once(self, timer_id: str, delay: timedelta, callback: Callback) -> None:
        if not self.exact_allowed:
            raise SchedulingPermissionError("Exact one-shot timers are not permitted")
        self._add(
            timer_id,
            callback,
            DateTrigger(run_date=self.now_provider() + delay),
        )
        self._logger.debug("Armed one-shot %s in %s", timer_id, delay)

    def cancel(self, timer_id: str) -> None:
        try:
            self.scheduler.remove_job(timer_id)
        except JobLookupError:
            # Nothing armed under this id.
            return
        self._logger.info("Cancelled %s", timer_id)

    def pending_timer_ids(self) -> List[str]:
        return sorted(job.id for job in self.scheduler.get_jobs())

    def _add(self, timer_id: str, callback: Callback, trigger) -> None:
        self.scheduler.add_job(
            callback,
            trigger=trigger,
            id=timer_id,
            replace_existing=True,
            misfire_grace_time=self.misfire_grace_seconds,
            coalesce=True,
            max_instances=1,
        )
