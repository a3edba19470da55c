from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
import logging
import threading
from typing import Callable, Optional

from prayerwidgets.countdown import FormatError
from prayerwidgets.data_source import PrayerDataSource, SourceUnavailableError
from prayerwidgets.snapshot import (
    ERROR_SNAPSHOT,
    PrayerSnapshot,
    refresh_countdown,
    snapshot_from_record,
)


DEFAULT_TTL = timedelta(milliseconds=10_000)


@dataclass(frozen=True)
class CacheEntry:
    date_key: str
    snapshot: PrayerSnapshot
    computed_at: datetime

    def is_fresh(self, date_key: str, now: datetime, ttl: timedelta) -> bool:
        age = now - self.computed_at
        return self.date_key == date_key and timedelta(0) <= age < ttl


class PrayerDataStore:
    """Owns the day's parsed prayer data behind a short freshness window.

    Within the window only the countdown is recomputed; the five display times
    never change intraday. A failed load returns ``ERROR_SNAPSHOT`` and is not
    cached, so the next call asks the source again.
    """

    def __init__(
        self,
        source: PrayerDataSource,
        *,
        now_provider: Callable[[], datetime] = datetime.now,
        ttl: timedelta = DEFAULT_TTL,
    ) -> None:
        self._source = source
        self._now_provider = now_provider
        self._ttl = ttl
        self._entry: Optional[CacheEntry] = None
        self._lock = threading.Lock()
        self._logger = logging.getLogger(self.__class__.__name__)

    @property
    def cached_entry(self) -> Optional[CacheEntry]:
        return self._entry

    def get(self) -> PrayerSnapshot:
        # The clock is read under the lock too, so an entry can never be
        # replaced by one stamped earlier than itself.
        with self._lock:
            now = self._now_provider()
            today_key = now.date().isoformat()
            entry = self._entry
            if entry is not None and entry.is_fresh(today_key, now, self._ttl):
                self._logger.debug("Cache hit for %s", today_key)
                return refresh_countdown(entry.snapshot, now)

            self._logger.debug("Loading fresh prayer data for %s", today_key)
            try:
                record = self._source.load(today_key)
                snapshot = snapshot_from_record(record, now)
            except SourceUnavailableError as exc:
                self._logger.warning("Prayer data unavailable: %s", exc)
                return ERROR_SNAPSHOT
            except FormatError as exc:
                self._logger.error("Prayer data for %s unusable: %s", today_key, exc)
                return ERROR_SNAPSHOT

            self._entry = CacheEntry(
                date_key=today_key, snapshot=snapshot, computed_at=now
            )
            return snapshot

    def invalidate(self) -> None:
        with self._lock:
            self._entry = None

    def clear(self) -> None:
        self.invalidate()
