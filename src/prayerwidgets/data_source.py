from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

from prayerwidgets.record_store import RecordStore


class SourceUnavailableError(RuntimeError):
    """Raised when neither the per-date record nor the bulk asset has the date."""


class PrayerDataSource(Protocol):
    def load(self, date_key: str) -> Dict[str, Any]:
        ...


def record_key(date_key: str) -> str:
    return f"prayer_times_{date_key}"


class LocalPrayerSource:
    def __init__(
        self,
        *,
        records: Optional[RecordStore] = None,
        bulk_asset: Optional[Path] = None,
    ) -> None:
        self._records = records
        self._bulk_asset = Path(bulk_asset) if bulk_asset is not None else None
        self._logger = logging.getLogger(self.__class__.__name__)

    def load(self, date_key: str) -> Dict[str, Any]:
        if self._records is not None:
            record = self._records.read(record_key(date_key))
            if record is not None:
                return record
            self._logger.info("No stored record for %s; trying bulk asset", date_key)
        return self._load_from_bulk(date_key)

    def _load_from_bulk(self, date_key: str) -> Dict[str, Any]:
        if self._bulk_asset is None:
            raise SourceUnavailableError(f"No prayer data source for {date_key}")
        try:
            data = json.loads(self._bulk_asset.read_text(encoding="utf-8"))
        except OSError as exc:
            raise SourceUnavailableError(
                f"Bulk asset unreadable: {self._bulk_asset}"
            ) from exc
        except json.JSONDecodeError as exc:
            raise SourceUnavailableError(
                f"Bulk asset is not valid JSON: {self._bulk_asset}"
            ) from exc
        if not isinstance(data, dict):
            raise SourceUnavailableError("Bulk asset root must be a JSON object")

        day = data.get(date_key)
        if not isinstance(day, dict):
            raise SourceUnavailableError(f"No prayer data for {date_key} in bulk asset")
        return day
