from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
import logging
from typing import Any, Dict, Mapping

from prayerwidgets.countdown import (
    PRAYER_NAMES,
    FormatError,
    countdown_for_strings,
    format_display,
    parse_clock,
)


PLACEHOLDER_TIME = "--:--"
ERROR_COUNTDOWN_TEXT = "Unable to load prayer times"

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PrayerSnapshot:
    fajr: str
    dhuhr: str
    asr: str
    maghrib: str
    isha: str
    countdown_text: str
    next_prayer_name: str

    def times(self) -> Dict[str, str]:
        return {name: getattr(self, name.lower()) for name in PRAYER_NAMES}

    def time_for(self, name: str) -> str:
        return self.times().get(name.capitalize(), PLACEHOLDER_TIME)

    @property
    def is_error(self) -> bool:
        return self == ERROR_SNAPSHOT

    def to_record(self) -> Dict[str, str]:
        return {
            "fajr": self.fajr,
            "dhuhr": self.dhuhr,
            "asr": self.asr,
            "maghrib": self.maghrib,
            "isha": self.isha,
            "countdownText": self.countdown_text,
            "nextPrayerName": self.next_prayer_name,
        }


ERROR_SNAPSHOT = PrayerSnapshot(
    fajr=PLACEHOLDER_TIME,
    dhuhr=PLACEHOLDER_TIME,
    asr=PLACEHOLDER_TIME,
    maghrib=PLACEHOLDER_TIME,
    isha=PLACEHOLDER_TIME,
    countdown_text=ERROR_COUNTDOWN_TEXT,
    next_prayer_name="",
)


def snapshot_from_record(record: Mapping[str, Any], now: datetime) -> PrayerSnapshot:
    # Structure errors fail the whole day; a single bad clock string does not.
    try:
        times = record["times"]
        raw = {name: times[name.lower()]["adhan"] for name in PRAYER_NAMES}
    except KeyError as exc:
        raise FormatError(f"Missing field in prayer record: {exc.args[0]}") from exc
    except TypeError as exc:
        raise FormatError("Prayer record must be a mapping of mappings") from exc

    display: Dict[str, str] = {}
    for name, value in raw.items():
        if not isinstance(value, str) or not _is_clock(value):
            logger.warning("Malformed %s time %r; showing placeholder", name, value)
            display[name] = PLACEHOLDER_TIME
        else:
            display[name] = format_display(value)

    countdown = countdown_for_strings(display, now)
    return PrayerSnapshot(
        fajr=display["Fajr"],
        dhuhr=display["Dhuhr"],
        asr=display["Asr"],
        maghrib=display["Maghrib"],
        isha=display["Isha"],
        countdown_text=countdown.text,
        next_prayer_name=countdown.next_name,
    )


def refresh_countdown(snapshot: PrayerSnapshot, now: datetime) -> PrayerSnapshot:
    """Recompute only the countdown fields from the snapshot's own time strings."""
    countdown = countdown_for_strings(snapshot.times(), now)
    return replace(
        snapshot,
        countdown_text=countdown.text,
        next_prayer_name=countdown.next_name,
    )


def _is_clock(value: str) -> bool:
    try:
        parse_clock(value)
    except FormatError:
        return False
    return True
