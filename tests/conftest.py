import sys
from pathlib import Path

import pytest


def pytest_sessionstart(session):
    """Ensure src/ is on sys.path for local test runs."""
    repo_root = Path(__file__).resolve().parents[1]
    src_path = repo_root / "src"
    if str(src_path) not in sys.path:
        sys.path.insert(0, str(src_path))


@pytest.fixture
def make_day():
    """Build one day's prayer record; pass a field to override that prayer's time."""

    def _make(**overrides):
        times = {
            "fajr": "5:23 AM",
            "dhuhr": "1:33 PM",
            "asr": "5:16 PM",
            "maghrib": "8:13 PM",
            "isha": "9:32 PM",
        }
        times.update(overrides)
        return {"times": {name: {"adhan": value} for name, value in times.items()}}

    return _make
