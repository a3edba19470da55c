from __future__ import annotations

from pathlib import Path

from prayerwidgets.record_store import RecordStore


def test_write_then_read_returns_same_payload(tmp_path: Path) -> None:
    store = RecordStore(tmp_path)
    payload = {"times": {"fajr": {"adhan": "5:23 AM"}}}

    store.write("prayer_times_2025-06-01", payload)
    loaded = store.read("prayer_times_2025-06-01")

    assert loaded == payload
    assert not (tmp_path / "prayer_times_2025-06-01.tmp").exists()


def test_corrupt_json_returns_none(tmp_path: Path) -> None:
    store = RecordStore(tmp_path)
    record_file = tmp_path / "corrupt.json"
    record_file.write_text("{not-json", encoding="utf-8")

    loaded = store.read("corrupt")

    assert loaded is None
    assert record_file.read_text(encoding="utf-8") == "{not-json"


def test_non_object_json_returns_none(tmp_path: Path) -> None:
    store = RecordStore(tmp_path)
    (tmp_path / "list.json").write_text("[1, 2]", encoding="utf-8")

    assert store.read("list") is None


def test_missing_directory_reads_as_empty(tmp_path: Path) -> None:
    store = RecordStore(tmp_path / "absent", create=False)

    assert store.read("anything") is None
    assert store.keys() == []


def test_keys_filters_by_prefix(tmp_path: Path) -> None:
    store = RecordStore(tmp_path)
    store.write("surface_4x1_1", {"a": "1"})
    store.write("surface_C1_2", {"a": "2"})
    store.write("prayer_times_2025-06-01", {"times": {}})

    assert store.keys("surface_") == ["surface_4x1_1", "surface_C1_2"]
