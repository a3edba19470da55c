from __future__ import annotations

from datetime import datetime, timedelta
import threading
import time

from prayerwidgets.data_source import SourceUnavailableError
from prayerwidgets.data_store import PrayerDataStore
from prayerwidgets.snapshot import ERROR_SNAPSHOT


class MutableClock:
    def __init__(self, now: datetime) -> None:
        self._now = now

    def now(self) -> datetime:
        return self._now

    def advance(self, **kwargs: float) -> None:
        self._now = self._now + timedelta(**kwargs)


class FakeSource:
    def __init__(self, records: dict | None = None, fail: bool = False) -> None:
        self.records = records or {}
        self.fail = fail
        self.calls: list[str] = []

    def load(self, date_key: str) -> dict:
        self.calls.append(date_key)
        if self.fail or date_key not in self.records:
            raise SourceUnavailableError(f"no data for {date_key}")
        return self.records[date_key]


def _day(fajr: str = "5:23 AM") -> dict:
    return {
        "times": {
            "fajr": {"adhan": fajr},
            "dhuhr": {"adhan": "1:33 PM"},
            "asr": {"adhan": "5:16 PM"},
            "maghrib": {"adhan": "8:13 PM"},
            "isha": {"adhan": "9:32 PM"},
        }
    }


def test_first_call_loads_and_caches() -> None:
    clock = MutableClock(datetime(2025, 6, 1, 4, 0))
    source = FakeSource({"2025-06-01": _day()})
    store = PrayerDataStore(source, now_provider=clock.now)

    snapshot = store.get()

    assert snapshot.countdown_text == "01:23:00 until Fajr"
    assert source.calls == ["2025-06-01"]
    assert store.cached_entry is not None
    assert store.cached_entry.date_key == "2025-06-01"


def test_cache_hit_recomputes_countdown_only() -> None:
    clock = MutableClock(datetime(2025, 6, 1, 4, 0))
    source = FakeSource({"2025-06-01": _day()})
    store = PrayerDataStore(source, now_provider=clock.now)
    first = store.get()

    clock.advance(seconds=5)
    second = store.get()

    assert source.calls == ["2025-06-01"]
    assert second.times() == first.times()
    assert second.countdown_text == "01:22:55 until Fajr"
    assert second.countdown_text <= first.countdown_text


def test_entry_expires_after_ttl() -> None:
    clock = MutableClock(datetime(2025, 6, 1, 4, 0))
    source = FakeSource({"2025-06-01": _day()})
    store = PrayerDataStore(source, now_provider=clock.now)
    store.get()

    clock.advance(seconds=10)
    store.get()

    assert source.calls == ["2025-06-01", "2025-06-01"]


def test_date_rollover_reloads_even_within_ttl() -> None:
    clock = MutableClock(datetime(2025, 6, 1, 23, 59, 58))
    source = FakeSource({"2025-06-01": _day("5:23 AM"), "2025-06-02": _day("5:22 AM")})
    store = PrayerDataStore(source, now_provider=clock.now)
    store.get()

    clock.advance(seconds=4)
    snapshot = store.get()

    assert source.calls == ["2025-06-01", "2025-06-02"]
    assert snapshot.fajr == "5:22 AM"


def test_clock_moving_backwards_invalidates_entry() -> None:
    clock = MutableClock(datetime(2025, 6, 1, 4, 0))
    source = FakeSource({"2025-06-01": _day()})
    store = PrayerDataStore(source, now_provider=clock.now)
    store.get()

    clock.advance(seconds=-3)
    store.get()

    assert len(source.calls) == 2


def test_error_snapshot_is_not_cached() -> None:
    clock = MutableClock(datetime(2025, 6, 1, 4, 0))
    source = FakeSource(fail=True)
    store = PrayerDataStore(source, now_provider=clock.now)

    assert store.get() == ERROR_SNAPSHOT
    assert store.get() == ERROR_SNAPSHOT
    assert source.calls == ["2025-06-01", "2025-06-01"]
    assert store.cached_entry is None


def test_recovers_once_source_is_populated() -> None:
    clock = MutableClock(datetime(2025, 6, 1, 4, 0))
    source = FakeSource()
    store = PrayerDataStore(source, now_provider=clock.now)
    assert store.get().is_error

    source.records["2025-06-01"] = _day()

    assert store.get().next_prayer_name == "Fajr"


def test_unparseable_record_yields_error_snapshot() -> None:
    clock = MutableClock(datetime(2025, 6, 1, 4, 0))
    source = FakeSource({"2025-06-01": {"times": {}}})
    store = PrayerDataStore(source, now_provider=clock.now)

    assert store.get() == ERROR_SNAPSHOT
    assert store.cached_entry is None


def test_invalidate_forces_reload() -> None:
    clock = MutableClock(datetime(2025, 6, 1, 4, 0))
    source = FakeSource({"2025-06-01": _day()})
    store = PrayerDataStore(source, now_provider=clock.now)
    store.get()

    store.invalidate()
    store.get()

    assert len(source.calls) == 2


def test_concurrent_misses_load_once() -> None:
    clock = MutableClock(datetime(2025, 6, 1, 4, 0))
    source = FakeSource({"2025-06-01": _day()})
    store = PrayerDataStore(source, now_provider=clock.now)
    barrier = threading.Barrier(8)
    results = []

    def worker() -> None:
        barrier.wait()
        results.append(store.get())

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert source.calls == ["2025-06-01"]
    assert len({snapshot.countdown_text for snapshot in results}) == 1


class StallingClock:
    """First reading stalls until a second caller is already inside ``get``."""

    def __init__(self, first: datetime, later: datetime, other_started: threading.Event) -> None:
        self._first = first
        self._later = later
        self._other_started = other_started
        self._calls = 0

    def now(self) -> datetime:
        self._calls += 1
        if self._calls == 1:
            self._other_started.wait(timeout=1)
            # Give the other caller time to contend for the store.
            time.sleep(0.05)
            return self._first
        return self._later


def test_stalled_clock_reading_cannot_overwrite_newer_entry() -> None:
    other_started = threading.Event()
    clock = StallingClock(
        datetime(2025, 6, 1, 4, 0, 0), datetime(2025, 6, 1, 4, 0, 1), other_started
    )
    source = FakeSource({"2025-06-01": _day()})
    store = PrayerDataStore(source, now_provider=clock.now)
    results = []

    def first() -> None:
        results.append(store.get())

    def second() -> None:
        other_started.set()
        results.append(store.get())

    threads = [threading.Thread(target=first), threading.Thread(target=second)]
    threads[0].start()
    time.sleep(0.01)
    threads[1].start()
    for thread in threads:
        thread.join()

    assert source.calls == ["2025-06-01"]
    assert store.cached_entry.computed_at == datetime(2025, 6, 1, 4, 0, 0)
    assert sorted(snapshot.countdown_text for snapshot in results) == [
        "01:22:59 until Fajr",
        "01:23:00 until Fajr",
    ]


def test_entry_timestamps_never_move_backwards_across_midnight() -> None:
    other_started = threading.Event()
    clock = StallingClock(
        datetime(2025, 6, 1, 23, 59, 59), datetime(2025, 6, 2, 0, 0, 1), other_started
    )
    source = FakeSource({"2025-06-01": _day(), "2025-06-02": _day("5:22 AM")})
    store = PrayerDataStore(source, now_provider=clock.now)

    def second() -> None:
        other_started.set()
        store.get()

    first_thread = threading.Thread(target=store.get)
    second_thread = threading.Thread(target=second)
    first_thread.start()
    time.sleep(0.01)
    second_thread.start()
    first_thread.join()
    second_thread.join()

    assert source.calls == ["2025-06-01", "2025-06-02"]
    assert store.cached_entry.date_key == "2025-06-02"
