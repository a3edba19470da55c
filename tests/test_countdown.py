from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from prayerwidgets.countdown import (
    FormatError,
    PrayerTime,
    compute_countdown,
    format_clock,
    parse_clock,
    prayer_times_from_strings,
    render_countdown,
)


DAY_TIMES = {
    "Fajr": "5:23 AM",
    "Dhuhr": "1:33 PM",
    "Asr": "5:16 PM",
    "Maghrib": "8:13 PM",
    "Isha": "9:32 PM",
}


def _times() -> list[PrayerTime]:
    return prayer_times_from_strings(DAY_TIMES)


@pytest.mark.parametrize(
    "text, expected",
    [
        ("5:23 AM", (5, 23)),
        ("1:33 PM", (13, 33)),
        ("12:00 AM", (0, 0)),
        ("12:15 PM", (12, 15)),
        ("09:05 pm", (21, 5)),
        (" 11:59 PM ", (23, 59)),
    ],
)
def test_parse_clock_decodes_meridiem(text: str, expected: tuple[int, int]) -> None:
    assert parse_clock(text) == expected


@pytest.mark.parametrize(
    "text",
    ["5:23AM", "five:23 AM", "5:23 XM", "13:00 PM", "5:60 AM", "", "5 AM", "5:23 AM extra"],
)
def test_parse_clock_rejects_malformed(text: str) -> None:
    with pytest.raises(FormatError):
        parse_clock(text)


def test_format_clock_round_trips_every_hour() -> None:
    for hour in range(24):
        for minute in (0, 7, 59):
            assert parse_clock(format_clock(hour, minute)) == (hour, minute)


def test_next_prayer_before_fajr() -> None:
    countdown = compute_countdown(_times(), datetime(2025, 6, 1, 4, 0))

    assert countdown.next_name == "Fajr"
    assert countdown.text == "01:23:00 until Fajr"


def test_rolls_over_to_tomorrows_fajr_after_isha() -> None:
    now = datetime(2025, 6, 1, 22, 0)

    countdown = compute_countdown(_times(), now)

    assert countdown.next_name == "Fajr"
    assert countdown.remaining > timedelta(hours=7)
    assert now + countdown.remaining == datetime(2025, 6, 2, 5, 23)
    assert countdown.text == "07:23:00 until Fajr"


def test_prayer_at_exactly_now_counts_as_passed() -> None:
    countdown = compute_countdown(_times(), datetime(2025, 6, 1, 5, 23))

    assert countdown.next_name == "Dhuhr"
    assert countdown.text == "08:10:00 until Dhuhr"


def test_countdown_truncates_sub_second_remainder() -> None:
    now = datetime(2025, 6, 1, 13, 0, 29, 600_000)

    countdown = compute_countdown(_times(), now)

    assert countdown.text == "00:32:30 until Dhuhr"


def test_compute_countdown_is_idempotent_for_same_now() -> None:
    now = datetime(2025, 6, 1, 15, 42, 17)

    assert compute_countdown(_times(), now) == compute_countdown(_times(), now)


def test_hours_are_not_wrapped_at_a_day() -> None:
    assert render_countdown(timedelta(hours=30), "Fajr") == "30:00:00 until Fajr"


def test_malformed_field_is_skipped_not_fatal() -> None:
    times = dict(DAY_TIMES, Dhuhr="noon")

    parsed = prayer_times_from_strings(times)
    countdown = compute_countdown(parsed, datetime(2025, 6, 1, 12, 0))

    assert [prayer.name for prayer in parsed] == ["Fajr", "Asr", "Maghrib", "Isha"]
    assert countdown.next_name == "Asr"


def test_rollover_uses_first_valid_prayer_when_fajr_malformed() -> None:
    times = dict(DAY_TIMES, Fajr="--:--")

    countdown = compute_countdown(
        prayer_times_from_strings(times), datetime(2025, 6, 1, 23, 0)
    )

    assert countdown.next_name == "Dhuhr"
    assert countdown.text == "14:33:00 until Dhuhr"


def test_no_valid_times_raises_format_error() -> None:
    with pytest.raises(FormatError):
        compute_countdown([], datetime(2025, 6, 1, 12, 0))
