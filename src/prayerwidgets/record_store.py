from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional


class RecordStore:
    """JSON-object records on disk, one file per key."""

    def __init__(self, root_dir: Path, *, create: bool = True) -> None:
        self._root_dir = Path(root_dir)
        if create:
            self._root_dir.mkdir(parents=True, exist_ok=True)
        self._logger = logging.getLogger(self.__class__.__name__)

    @property
    def root_dir(self) -> Path:
        return self._root_dir

    def read(self, key: str) -> Optional[Dict[str, Any]]:
        path = self._path_for_key(key)
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            # A half-written or hand-edited record reads as missing.
            self._logger.warning("Record read failed for %s: %s", path, exc)
            return None
        if not isinstance(data, dict):
            self._logger.warning("Record %s is not a JSON object", path)
            return None
        return data

    def write(self, key: str, payload: Dict[str, Any]) -> None:
        path = self._path_for_key(key)
        tmp_path = path.with_suffix(".tmp")

        # Readers on other threads only ever see the old or the new file.
        data = json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False)
        try:
            tmp_path.write_text(data, encoding="utf-8")
            tmp_path.replace(path)
        except OSError as exc:
            self._logger.error("Record write failed for %s: %s", path, exc)
            raise

    def keys(self, prefix: str = "") -> List[str]:
        if not self._root_dir.exists():
            return []
        return sorted(
            path.stem
            for path in self._root_dir.glob(f"{prefix}*.json")
        )

    def _path_for_key(self, key: str) -> Path:
        safe_key = key.replace("/", "_")
        return self._root_dir / f"{safe_key}.json"
