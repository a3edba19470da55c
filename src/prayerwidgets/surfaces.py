from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
import logging
import threading
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Sequence, Set, Tuple

from prayerwidgets.countdown import PRAYER_NAMES
from prayerwidgets.snapshot import PLACEHOLDER_TIME, PrayerSnapshot


RecordBuilder = Callable[[PrayerSnapshot], Dict[str, str]]

FILLED_INDICATOR = "●"
EMPTY_INDICATOR = "○"


def no_extras(snapshot: PrayerSnapshot) -> Dict[str, str]:
    return {}


def list_extras(snapshot: PrayerSnapshot) -> Dict[str, str]:
    """Status label plus one filled indicator next to the upcoming prayer."""
    upcoming = snapshot.next_prayer_name.lower()
    extras = {"statusLabel": f"Next prayer is {snapshot.next_prayer_name}"}
    for name in PRAYER_NAMES:
        key = f"{name.lower()}Indicator"
        extras[key] = FILLED_INDICATOR if name.lower() == upcoming else EMPTY_INDICATOR
    return extras


def focus_extras(snapshot: PrayerSnapshot) -> Dict[str, str]:
    if snapshot.is_error:
        return {
            "statusLabel": "Prayer Times",
            "currentPrayerName": "Loading...",
            "currentPrayerTime": PLACEHOLDER_TIME,
            "countdownTime": PLACEHOLDER_TIME,
        }
    countdown = snapshot.countdown_text.split(" until ")[0]
    return {
        "statusLabel": "Next Prayer",
        "currentPrayerName": snapshot.next_prayer_name,
        "currentPrayerTime": snapshot.time_for(snapshot.next_prayer_name),
        "countdownTime": countdown,
    }


@dataclass(frozen=True)
class SurfaceType:
    key: str
    request_code: int
    label: str
    fast_track: bool = False
    builder: RecordBuilder = no_extras
    # None follows the scheduler's configured periodic interval.
    cadence: Optional[timedelta] = None

    def build_record(self, snapshot: PrayerSnapshot) -> Dict[str, str]:
        record = snapshot.to_record()
        record.update(self.builder(snapshot))
        return record


DEFAULT_SURFACES: Tuple[SurfaceType, ...] = (
    SurfaceType(key="4x1", request_code=1, label="compact", fast_track=True),
    SurfaceType(key="2x2", request_code=2, label="grid"),
    SurfaceType(key="C1", request_code=3, label="list", builder=list_extras),
    SurfaceType(key="C2", request_code=4, label="focus", builder=focus_extras),
    SurfaceType(key="C2_1x1", request_code=5, label="focus compact", builder=focus_extras),
)


class SurfaceTable:
    """Ordered, validated lookup of the surface types a host can place."""

    def __init__(self, surfaces: Iterable[SurfaceType] = DEFAULT_SURFACES) -> None:
        self._surfaces: Tuple[SurfaceType, ...] = tuple(surfaces)
        self._validate()
        self._by_key = {surface.key: surface for surface in self._surfaces}

    def __iter__(self):
        return iter(self._surfaces)

    def __len__(self) -> int:
        return len(self._surfaces)

    def get(self, key: str) -> SurfaceType:
        try:
            return self._by_key[key]
        except KeyError:
            raise KeyError(f"Unknown surface type: {key}") from None

    @property
    def fast_track(self) -> Optional[SurfaceType]:
        for surface in self._surfaces:
            if surface.fast_track:
                return surface
        return None

    def _validate(self) -> None:
        keys: Set[str] = set()
        codes: Set[int] = set()
        fast: List[str] = []
        for surface in self._surfaces:
            if surface.key in keys:
                raise ValueError(f"Duplicate surface key: {surface.key}")
            if surface.request_code in codes:
                raise ValueError(f"Duplicate request code: {surface.request_code}")
            keys.add(surface.key)
            codes.add(surface.request_code)
            if surface.cadence is not None and surface.cadence <= timedelta(0):
                raise ValueError(f"Cadence for {surface.key} must be positive")
            if surface.fast_track:
                fast.append(surface.key)
        if len(fast) > 1:
            raise ValueError(f"Only one fast-track surface allowed, got {fast}")


class SurfaceRegistry(Protocol):
    def list_live_instance_ids(self, surface_key: str) -> Sequence[int]:
        ...


class InMemorySurfaceRegistry:
    def __init__(self) -> None:
        self._instances: Dict[str, Set[int]] = {}
        self._lock = threading.Lock()
        self._logger = logging.getLogger(self.__class__.__name__)

    def add_instance(self, surface_key: str, instance_id: int) -> bool:
        """Register an instance; True when the type just became active."""
        with self._lock:
            ids = self._instances.setdefault(surface_key, set())
            was_empty = not ids
            ids.add(instance_id)
        self._logger.info("Instance %s added to %s", instance_id, surface_key)
        return was_empty

    def remove_instance(self, surface_key: str, instance_id: int) -> bool:
        """Unregister an instance; True when the type just became inactive."""
        with self._lock:
            ids = self._instances.get(surface_key)
            if not ids or instance_id not in ids:
                return False
            ids.discard(instance_id)
            now_empty = not ids
        self._logger.info("Instance %s removed from %s", instance_id, surface_key)
        return now_empty

    def list_live_instance_ids(self, surface_key: str) -> Sequence[int]:
        with self._lock:
            return sorted(self._instances.get(surface_key, ()))
