"""Unit tests for the device and reading store."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest

from app.schemas import AlertCreate, AlertSeverity, AlertStatus, DeviceCreate, ReadingRow
from datastore.readings_store import DataAccessError, ReadingStore

BASE = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def _row(minutes: int, **data) -> ReadingRow:
    return ReadingRow(time=BASE + timedelta(minutes=minutes), data=data)


def _store_with_device(**kwargs) -> tuple[ReadingStore, str]:
    store = ReadingStore(name="readings", **kwargs)
    device = store.register_device(DeviceCreate(device_id="sensor-1", name="Greenhouse"))
    return store, device.id


def test_register_and_get_device_returns_copies() -> None:
    store, pk = _store_with_device()

    fetched = store.get_device("sensor-1")

    assert fetched is not None
    assert fetched.id == pk
    assert fetched.name == "Greenhouse"
    fetched.name = "mutated"
    assert store.get_device("sensor-1").name == "Greenhouse"  # type: ignore[union-attr]


def test_register_duplicate_device_is_rejected() -> None:
    store, _ = _store_with_device()

    with pytest.raises(ValueError):
        store.register_device(DeviceCreate(device_id="sensor-1", name="Other"))


def test_get_device_returns_none_when_missing() -> None:
    store = ReadingStore(name="readings")

    assert store.get_device("missing") is None


def test_append_reading_updates_last_seen() -> None:
    store, pk = _store_with_device()
    assert store.get_device("sensor-1").last_seen is None  # type: ignore[union-attr]

    store.append_reading(pk, _row(0, temp=20.5))

    assert store.get_device("sensor-1").last_seen is not None  # type: ignore[union-attr]


def test_append_reading_for_unknown_device_raises_key_error() -> None:
    store = ReadingStore(name="readings")

    with pytest.raises(KeyError):
        store.append_reading("nope", _row(0, temp=1))


def test_fetch_readings_orders_descending_and_limits() -> None:
    store, pk = _store_with_device()
    for minutes in (5, 0, 10, 3):
        store.append_reading(pk, _row(minutes, v=minutes))

    rows = store.fetch_readings(pk, limit=3)

    assert [row.data["v"] for row in rows] == [10, 5, 3]


def test_fetch_readings_time_range_is_inclusive() -> None:
    store, pk = _store_with_device()
    for minutes in range(6):
        store.append_reading(pk, _row(minutes, v=minutes))

    rows = store.fetch_readings(
        pk,
        start=BASE + timedelta(minutes=1),
        end=BASE + timedelta(minutes=4),
    )

    assert [row.data["v"] for row in rows] == [4, 3, 2, 1]


def test_fetch_readings_normalizes_naive_bounds_to_utc() -> None:
    store, pk = _store_with_device()
    store.append_reading(pk, _row(0, v=1))

    rows = store.fetch_readings(pk, start=datetime(2024, 1, 1, 12, 0))

    assert len(rows) == 1


def test_store_persists_to_disk_and_reloads(tmp_path) -> None:
    path = tmp_path / "store.json"
    store, pk = _store_with_device(persistence_path=path)
    store.append_reading(pk, _row(0, temp=21.0, status="ok"))

    payload = json.loads(path.read_text())
    assert pk in payload["devices"]
    assert payload["readings"][pk][0]["data"] == {"temp": 21.0, "status": "ok"}

    reloaded = ReadingStore(name="readings", persistence_path=path)
    rows = reloaded.fetch_readings(pk)
    assert len(rows) == 1
    assert rows[0].time == BASE
    assert reloaded.get_device("sensor-1") is not None


def test_store_ignores_corrupt_persistence_file(tmp_path) -> None:
    path = tmp_path / "store.json"
    path.write_text("{not json")

    store = ReadingStore(name="readings", persistence_path=path)

    assert store.list_devices() == []


def test_persist_failure_raises_data_access_error(tmp_path) -> None:
    path = tmp_path / "store.json"
    store = ReadingStore(name="readings", persistence_path=path)
    path.mkdir()

    with pytest.raises(DataAccessError):
        store.register_device(DeviceCreate(device_id="sensor-1", name="Greenhouse"))


def test_failed_append_leaves_readings_and_last_seen_untouched(tmp_path) -> None:
    store, pk = _store_with_device(persistence_path=tmp_path / "store.json")
    store.persistence_path = tmp_path / "missing" / "store.json"

    with pytest.raises(DataAccessError):
        store.append_reading(pk, _row(0, v=1))

    assert store.fetch_readings(pk) == []
    assert store.get_device("sensor-1").last_seen is None  # type: ignore[union-attr]


def test_failed_register_does_not_block_retry(tmp_path) -> None:
    path = tmp_path / "store.json"
    store = ReadingStore(name="readings", persistence_path=tmp_path / "missing" / "store.json")
    (tmp_path / "missing").rmdir()

    with pytest.raises(DataAccessError):
        store.register_device(DeviceCreate(device_id="sensor-1", name="Greenhouse"))
    assert store.get_device("sensor-1") is None

    store.persistence_path = path
    device = store.register_device(DeviceCreate(device_id="sensor-1", name="Greenhouse"))

    assert store.get_device("sensor-1").id == device.id  # type: ignore[union-attr]
    assert store.fetch_readings(device.id) == []


def test_list_devices_filters_by_status_and_location() -> None:
    store = ReadingStore(name="readings")
    store.register_device(DeviceCreate(device_id="a", name="A", location="North Field"))
    store.register_device(
        DeviceCreate(device_id="b", name="B", location="south field", status="maintenance")
    )
    store.register_device(DeviceCreate(device_id="c", name="C"))

    assert {d.device_id for d in store.list_devices(location="FIELD")} == {"a", "b"}
    assert [d.device_id for d in store.list_devices(status="maintenance")] == ["b"]
    assert store.list_devices(status="active", location="south") == []


def test_update_device_merges_changes_and_stamps_updated_at() -> None:
    store, _ = _store_with_device()

    updated = store.update_device("sensor-1", {"location": "Shed", "status": "inactive"})

    assert updated is not None
    assert updated.name == "Greenhouse"
    assert updated.location == "Shed"
    assert updated.status == "inactive"
    assert updated.updated_at is not None
    assert store.update_device("missing", {"name": "x"}) is None


def test_update_device_rejects_invalid_values() -> None:
    store, _ = _store_with_device()

    with pytest.raises(ValueError):
        store.update_device("sensor-1", {"name": None})
    assert store.get_device("sensor-1").name == "Greenhouse"  # type: ignore[union-attr]


def test_delete_device_drops_its_readings() -> None:
    store, pk = _store_with_device()
    store.append_reading(pk, _row(0, v=1))

    assert store.delete_device("sensor-1") is True

    assert store.get_device("sensor-1") is None
    assert store.fetch_readings(pk) == []
    assert store.delete_device("sensor-1") is False


def test_alerts_filter_order_and_resolve(tmp_path) -> None:
    path = tmp_path / "store.json"
    store = ReadingStore(name="readings", persistence_path=path)
    low = store.create_alert(
        AlertCreate(title="Battery", severity=AlertSeverity.low, conditions={"battery": "<10"})
    )
    high = store.create_alert(
        AlertCreate(title="Overheat", severity=AlertSeverity.high, conditions={"temp": ">40"})
    )

    assert [a.id for a in store.list_alerts()][0] == high.id
    assert [a.id for a in store.list_alerts(severity="low")] == [low.id]
    assert len(store.list_alerts(limit=1)) == 1

    resolved = store.resolve_alert(low.id)
    assert resolved is not None
    assert resolved.status == AlertStatus.resolved
    assert resolved.resolved_at is not None
    assert [a.id for a in store.list_alerts(status="open")] == [high.id]
    assert store.resolve_alert("missing") is None

    reloaded = ReadingStore(name="readings", persistence_path=path)
    assert {a.id for a in reloaded.list_alerts(status="resolved")} == {low.id}
