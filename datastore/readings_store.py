from __future__ import annotations
import json
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Optional
from uuid import uuid4

from app.schemas import Alert, AlertCreate, AlertStatus, Device, DeviceCreate, ReadingRow
from settings import get_settings


class DataAccessError(RuntimeError):
    """Raised when the store cannot read or persist its data."""


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ReadingStore:
    """Devices, their readings and alerts, kept in memory with optional JSON persistence.

    Mutations build the next state, write it to disk and only then swap it in,
    so a failed write leaves the in-memory view untouched.
    """

    def __init__(self, name: str = "iot", persistence_path: Optional[Path] = None) -> None:
        self.name = name
        self._devices: Dict[str, Device] = {}
        self._readings: Dict[str, List[ReadingRow]] = {}
        self._alerts: Dict[str, Alert] = {}
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def register_device(self, payload: DeviceCreate) -> Device:
        with self._lock:
            if self._find_device(payload.device_id) is not None:
                raise ValueError(f"Device {payload.device_id!r} already exists.")
            device = Device(
                id=str(uuid4()),
                created_at=datetime.now(timezone.utc),
                **payload.model_dump(),
            )
            self._commit(
                devices={**self._devices, device.id: device},
                readings={**self._readings, device.id: []},
            )
            return device.model_copy(deep=True)

    def get_device(self, device_id: str) -> Optional[Device]:
        """Look a device up by its external identifier."""

        with self._lock:
            device = self._find_device(device_id)
            if device is None:
                return None
            return device.model_copy(deep=True)

    def list_devices(
        self,
        status: Optional[str] = None,
        location: Optional[str] = None,
    ) -> list[Device]:
        """List devices, optionally by exact status and case-insensitive location substring."""

        needle = location.lower() if location else None
        with self._lock:
            return [
                device.model_copy(deep=True)
                for device in self._devices.values()
                if (status is None or device.status == status)
                and (needle is None or needle in (device.location or "").lower())
            ]

    def update_device(self, device_id: str, changes: Dict[str, Any]) -> Optional[Device]:
        with self._lock:
            current = self._find_device(device_id)
            if current is None:
                return None
            updated = Device.model_validate(
                {**current.model_dump(), **changes, "updated_at": datetime.now(timezone.utc)}
            )
            self._commit(devices={**self._devices, current.id: updated})
            return updated.model_copy(deep=True)

    def delete_device(self, device_id: str) -> bool:
        """Remove a device together with its readings."""

        with self._lock:
            current = self._find_device(device_id)
            if current is None:
                return False
            devices = {pk: device for pk, device in self._devices.items() if pk != current.id}
            readings = {pk: rows for pk, rows in self._readings.items() if pk != current.id}
            self._commit(devices=devices, readings=readings)
            return True

    def append_reading(self, device_pk: str, row: ReadingRow) -> ReadingRow:
        stored = row.model_copy(deep=True, update={"time": _as_utc(row.time)})
        with self._lock:
            device = self._devices.get(device_pk)
            if device is None:
                raise KeyError(f"Device with id {device_pk!r} not found in store {self.name!r}.")
            seen = device.model_copy(update={"last_seen": datetime.now(timezone.utc)})
            self._commit(
                devices={**self._devices, device_pk: seen},
                readings={**self._readings, device_pk: [*self._readings.get(device_pk, []), stored]},
            )
        return stored.model_copy(deep=True)

    def fetch_readings(
        self,
        device_pk: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[ReadingRow]:
        """Return readings in ``[start, end]``, most recent first."""

        lower = _as_utc(start) if start else None
        upper = _as_utc(end) if end else None
        with self._lock:
            rows = [
                row
                for row in self._readings.get(device_pk, [])
                if (lower is None or row.time >= lower)
                and (upper is None or row.time <= upper)
            ]
            rows.sort(key=lambda row: row.time, reverse=True)
            if limit is not None:
                rows = rows[:limit]
            return [row.model_copy(deep=True) for row in rows]

    def create_alert(self, payload: AlertCreate) -> Alert:
        now = datetime.now(timezone.utc)
        alert = Alert(id=str(uuid4()), triggered_at=now, created_at=now, **payload.model_dump())
        with self._lock:
            self._commit(alerts={**self._alerts, alert.id: alert})
        return alert.model_copy(deep=True)

    def list_alerts(
        self,
        status: Optional[str] = None,
        severity: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[Alert]:
        """Return alerts matching the filters, most recently triggered first."""

        with self._lock:
            alerts = [
                alert
                for alert in reversed(self._alerts.values())
                if (status is None or alert.status == status)
                and (severity is None or alert.severity == severity)
            ]
            alerts.sort(key=lambda alert: alert.triggered_at, reverse=True)
            if limit is not None:
                alerts = alerts[:limit]
            return [alert.model_copy(deep=True) for alert in alerts]

    def resolve_alert(self, alert_id: str) -> Optional[Alert]:
        with self._lock:
            current = self._alerts.get(alert_id)
            if current is None:
                return None
            resolved = current.model_copy(
                update={"status": AlertStatus.resolved, "resolved_at": datetime.now(timezone.utc)}
            )
            self._commit(alerts={**self._alerts, alert_id: resolved})
            return resolved.model_copy(deep=True)

    def _find_device(self, device_id: str) -> Optional[Device]:
        for device in self._devices.values():
            if device.device_id == device_id:
                return device
        return None

    def _commit(
        self,
        devices: Optional[Dict[str, Device]] = None,
        readings: Optional[Dict[str, List[ReadingRow]]] = None,
        alerts: Optional[Dict[str, Alert]] = None,
    ) -> None:
        devices = self._devices if devices is None else devices
        readings = self._readings if readings is None else readings
        alerts = self._alerts if alerts is None else alerts
        self._persist(devices, readings, alerts)
        self._devices, self._readings, self._alerts = devices, readings, alerts

    def _persist(
        self,
        devices: Dict[str, Device],
        readings: Dict[str, List[ReadingRow]],
        alerts: Dict[str, Alert],
    ) -> None:
        if not self.persistence_path:
            return
        payload = {
            "devices": {pk: device.model_dump(mode="json") for pk, device in devices.items()},
            "readings": {
                pk: [row.model_dump(mode="json") for row in rows] for pk, rows in readings.items()
            },
            "alerts": {pk: alert.model_dump(mode="json") for pk, alert in alerts.items()},
        }
        try:
            self.persistence_path.write_text(json.dumps(payload, indent=2, sort_keys=True))
        except OSError as exc:
            raise DataAccessError(
                f"Could not persist store {self.name!r} to {self.persistence_path}."
            ) from exc

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            data = {}

        for pk, payload in data.get("devices", {}).items():
            self._devices[pk] = Device.model_validate(payload)
            self._readings.setdefault(pk, [])
        for pk, rows in data.get("readings", {}).items():
            self._readings[pk] = [ReadingRow.model_validate(row) for row in rows]
        for pk, payload in data.get("alerts", {}).items():
            self._alerts[pk] = Alert.model_validate(payload)


@lru_cache
def build_default_store(
    name: Optional[str] = None,
    path: Optional[str] = None,
) -> ReadingStore:
    settings = get_settings()
    store_path = settings.store_path if path is None else path
    persistence = Path(store_path) if store_path else None
    return ReadingStore(name=name or "iot", persistence_path=persistence)
