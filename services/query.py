"""Device, ingestion and read-query orchestration."""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
from typing import List, Optional, Sequence, Union

from app.schemas import (
    Alert,
    AlertCreate,
    Device,
    DeviceCreate,
    DeviceUpdate,
    IngestRequest,
    ReadingRow,
)
from datastore.readings_store import ReadingStore, build_default_store
from models.records import AggregatedPoint, Reading
from services.aggregator import Aggregator
from settings import get_settings

logger = logging.getLogger(__name__)

FIELD_SAMPLE_SIZE = 10
ALERT_DEFAULT_LIMIT = 50


@dataclass
class QueryResult:
    """Outcome of a read query: raw rows, or points when aggregation ran."""

    aggregated: bool
    items: List[Union[AggregatedPoint, ReadingRow]] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.items)


def to_reading(row: ReadingRow) -> Reading:
    return Reading(timestamp=row.time, fields=row.data, metadata=row.metadata)


def collect_field_names(rows: Sequence[ReadingRow]) -> list[str]:
    names: set[str] = set()
    for row in rows:
        names.update(row.data)
    return sorted(names)


class QueryService:
    """Resolves devices, reads rows from the store and aggregates them on request."""

    def __init__(
        self,
        store: ReadingStore,
        aggregator: Aggregator,
        default_limit: int = 100,
        export_limit: int = 1000,
    ) -> None:
        self.store = store
        self.aggregator = aggregator
        self.default_limit = default_limit
        self.export_limit = export_limit

    def register_device(self, payload: DeviceCreate) -> Device:
        device = self.store.register_device(payload)
        logger.info("Registered device", extra={"device_id": device.device_id})
        return device

    def list_devices(
        self,
        status: Optional[str] = None,
        location: Optional[str] = None,
    ) -> list[Device]:
        devices = self.store.list_devices(status=status, location=location)
        return sorted(devices, key=lambda d: d.created_at, reverse=True)

    def get_device(self, device_id: str) -> Device:
        device = self.store.get_device(device_id)
        if device is None:
            raise KeyError("Device not found")
        return device

    def update_device(self, device_id: str, payload: DeviceUpdate) -> Device:
        device = self.store.update_device(device_id, payload.model_dump(exclude_unset=True))
        if device is None:
            raise KeyError("Device not found")
        logger.info(
            "Updated device", extra={"device_id": device_id, "status": device.status.value}
        )
        return device

    def delete_device(self, device_id: str) -> None:
        if not self.store.delete_device(device_id):
            raise KeyError("Device not found")
        logger.info("Deleted device", extra={"device_id": device_id})

    def ingest(self, request: IngestRequest) -> ReadingRow:
        if not request.data:
            raise ValueError("device_id and data are required")
        device = self.get_device(request.device_id)
        row = ReadingRow(
            time=request.timestamp or datetime.now(timezone.utc),
            data=request.data,
            metadata=request.metadata,
        )
        stored = self.store.append_reading(device.id, row)
        logger.debug(
            "Ingested reading",
            extra={"device_id": device.device_id, "field": ",".join(request.data)},
        )
        return stored

    def query(
        self,
        device_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = None,
        aggregation: Optional[str] = None,
        interval: Optional[str] = None,
    ) -> QueryResult:
        """Fetch readings for a device, aggregating them when both
        ``aggregation`` and ``interval`` are given and rows exist."""
        device = self.get_device(device_id)
        if aggregation and self.aggregator.strict:
            if not interval:
                raise ValueError("interval is required when aggregation is requested")
            self.aggregator.validate(aggregation, interval)

        row_limit = limit or self.default_limit
        rows = self.store.fetch_readings(device.id, start=start, end=end, limit=row_limit)

        if aggregation and interval and rows:
            points = self.aggregator.aggregate(
                [to_reading(row) for row in rows], aggregation, interval
            )
            logger.info(
                "Served aggregated query",
                extra={
                    "device_id": device_id,
                    "aggregation": aggregation,
                    "interval": interval,
                    "reading_count": len(rows),
                    "bucket_count": len(points),
                },
            )
            return QueryResult(aggregated=True, items=list(points))

        logger.info(
            "Served raw query",
            extra={"device_id": device_id, "reading_count": len(rows), "limit": row_limit},
        )
        return QueryResult(aggregated=False, items=list(rows))

    def list_fields(self, device_id: str) -> list[str]:
        device = self.get_device(device_id)
        rows = self.store.fetch_readings(device.id, limit=FIELD_SAMPLE_SIZE)
        return collect_field_names(rows)

    def export_rows(
        self,
        device_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[ReadingRow]:
        device = self.get_device(device_id)
        return self.store.fetch_readings(
            device.id, start=start, end=end, limit=limit or self.export_limit
        )

    def create_alert(self, payload: AlertCreate) -> Alert:
        if not payload.title or payload.severity is None or payload.conditions is None:
            raise ValueError("title, severity, and conditions are required")
        if payload.device_id is not None:
            self.get_device(payload.device_id)
        alert = self.store.create_alert(payload)
        logger.info("Raised alert", extra={"device_id": alert.device_id, "reason": alert.title})
        return alert

    def list_alerts(
        self,
        status: Optional[str] = None,
        severity: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[Alert]:
        return self.store.list_alerts(
            status=status, severity=severity, limit=limit or ALERT_DEFAULT_LIMIT
        )

    def resolve_alert(self, alert_id: str) -> Alert:
        alert = self.store.resolve_alert(alert_id)
        if alert is None:
            raise KeyError("Alert not found")
        logger.info("Resolved alert", extra={"device_id": alert.device_id})
        return alert


def render_csv(rows: Sequence[ReadingRow]) -> str:
    """Render rows as CSV with a ``timestamp`` column and one column per field."""
    field_names = collect_field_names(rows)
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(["timestamp", *field_names])
    for row in rows:
        writer.writerow(
            [
                row.time.isoformat().replace("+00:00", "Z"),
                *("" if row.data.get(name) is None else row.data[name] for name in field_names),
            ]
        )
    return buffer.getvalue()


@lru_cache
def build_default_service() -> QueryService:
    """Factory that wires the query service from settings."""
    settings = get_settings()
    aggregator = Aggregator(
        strict=settings.aggregation_strict,
        field_policy=settings.aggregation_field_policy,
        sort_buckets=settings.aggregation_sort_buckets,
    )
    return QueryService(
        store=build_default_store(),
        aggregator=aggregator,
        default_limit=settings.query_default_limit,
        export_limit=settings.export_default_limit,
    )
