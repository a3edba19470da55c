from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
import logging
from typing import List, Mapping, Sequence, Tuple


PRAYER_NAMES: Tuple[str, ...] = ("Fajr", "Dhuhr", "Asr", "Maghrib", "Isha")

_MS_PER_HOUR = 3_600_000
_MS_PER_MINUTE = 60_000
_MS_PER_SECOND = 1_000

logger = logging.getLogger(__name__)


class FormatError(ValueError):
    """Raised when a clock string or prayer record has an unexpected shape."""


@dataclass(frozen=True)
class PrayerTime:
    name: str
    hour: int
    minute: int


@dataclass(frozen=True)
class Countdown:
    text: str
    next_name: str
    remaining: timedelta


def parse_clock(text: str) -> Tuple[int, int]:
    """Decode a ``"H:MM AM"`` string into a 24-hour ``(hour, minute)`` pair."""
    parts = text.strip().split(" ")
    if len(parts) != 2:
        raise FormatError(f"Expected 'H:MM AM/PM', got {text!r}")
    clock_part, marker = parts
    marker = marker.upper()
    if marker not in ("AM", "PM"):
        raise FormatError(f"Unknown meridiem marker in {text!r}")

    try:
        hour_str, minute_str = clock_part.split(":")
        hour, minute = int(hour_str), int(minute_str)
    except ValueError as exc:
        raise FormatError(f"Non-numeric clock value in {text!r}") from exc
    if not 1 <= hour <= 12 or not 0 <= minute <= 59:
        raise FormatError(f"Clock value out of range in {text!r}")

    if marker == "PM" and hour != 12:
        hour += 12
    elif marker == "AM" and hour == 12:
        hour = 0
    return hour, minute


def format_clock(hour: int, minute: int) -> str:
    marker = "PM" if hour >= 12 else "AM"
    display_hour = hour % 12 or 12
    return f"{display_hour}:{minute:02d} {marker}"


def format_display(text: str) -> str:
    # Display strings pass through as supplied; 24-hour output would hook in here.
    return text


def prayer_times_from_strings(times: Mapping[str, str]) -> List[PrayerTime]:
    """Parse display strings keyed by prayer name, skipping malformed ones.

    A bad field drops out of the countdown candidates instead of failing the
    whole day, so the other prayers still render.
    """
    parsed: List[PrayerTime] = []
    for name in PRAYER_NAMES:
        raw = times.get(name)
        if raw is None:
            continue
        try:
            hour, minute = parse_clock(raw)
        except FormatError as exc:
            logger.debug("Skipping %s time: %s", name, exc)
            continue
        parsed.append(PrayerTime(name=name, hour=hour, minute=minute))
    return parsed


def compute_countdown(times: Sequence[PrayerTime], now: datetime) -> Countdown:
    """Return the countdown to the first prayer strictly after ``now``.

    Once the last prayer of the day has passed, the target rolls over to the
    first prayer of tomorrow, so a target always exists.
    """
    if not times:
        raise FormatError("No prayer times available for countdown")

    for prayer in times:
        candidate = _at(now, prayer)
        if candidate > now:
            return _countdown_to(prayer, candidate, now)

    first = times[0]
    return _countdown_to(first, _at(now + timedelta(days=1), first), now)


def render_countdown(remaining: timedelta, name: str) -> str:
    millis = remaining // timedelta(milliseconds=1)
    hours = millis // _MS_PER_HOUR
    minutes = (millis % _MS_PER_HOUR) // _MS_PER_MINUTE
    seconds = (millis % _MS_PER_MINUTE) // _MS_PER_SECOND
    return f"{hours:02d}:{minutes:02d}:{seconds:02d} until {name}"


def countdown_for_strings(times: Mapping[str, str], now: datetime) -> Countdown:
    return compute_countdown(prayer_times_from_strings(times), now)


def _countdown_to(prayer: PrayerTime, target: datetime, now: datetime) -> Countdown:
    remaining = target - now
    return Countdown(
        text=render_countdown(remaining, prayer.name),
        next_name=prayer.name,
        remaining=remaining,
    )


def _at(day: datetime, prayer: PrayerTime) -> datetime:
    # Seconds are zeroed on the candidate so equality with now counts as passed.
    return day.replace(hour=prayer.hour, minute=prayer.minute, second=0, microsecond=0)

