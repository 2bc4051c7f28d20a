"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field


class DeviceStatus(str, Enum):
    """Operational states a registered device can be in."""

    active = "active"
    inactive = "inactive"
    maintenance = "maintenance"
    error = "error"


class DeviceCreate(BaseModel):
    """Payload for registering a device."""

    device_id: str = Field(..., min_length=1, description="External device identifier.")
    name: str = Field(..., min_length=1)
    location: Optional[str] = None
    status: DeviceStatus = DeviceStatus.active
    metadata: Dict[str, Any] = Field(default_factory=dict)


class Device(BaseModel):
    """A registered device."""

    id: str = Field(..., description="Internal identifier assigned by the store.")
    device_id: str
    name: str
    location: Optional[str] = None
    status: DeviceStatus = DeviceStatus.active
    metadata: Dict[str, Any] = Field(default_factory=dict)
    last_seen: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class DeviceUpdate(BaseModel):
    """Partial update of a device; omitted fields keep their value."""

    name: Optional[str] = Field(None, min_length=1)
    location: Optional[str] = None
    status: Optional[DeviceStatus] = None
    metadata: Optional[Dict[str, Any]] = None


class ReadingRow(BaseModel):
    """A stored reading as persisted and returned in raw query results."""

    time: datetime
    data: Dict[str, Any]
    metadata: Dict[str, Any] = Field(default_factory=dict)


class IngestRequest(BaseModel):
    """A single reading pushed by a device."""

    device_id: str = Field(..., min_length=1)
    data: Dict[str, Any]
    timestamp: Optional[datetime] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class IngestResponse(BaseModel):
    message: str = "Data ingested successfully"
    data: ReadingRow


class AggregatedPointOut(BaseModel):
    """One time bucket of an aggregated query."""

    time: str = Field(..., description="Bucket start as an ISO-8601 instant.")
    data: Dict[str, Any]
    count: int = Field(..., ge=1, description="Readings folded into the bucket.")


class QueryResponse(BaseModel):
    """Raw rows or aggregated points with the number of entries returned."""

    data: List[Union[AggregatedPointOut, ReadingRow]]
    count: int = Field(..., ge=0)


class FieldsResponse(BaseModel):
    fields: List[str] = Field(default_factory=list)


class AlertSeverity(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"
    critical = "critical"


class AlertStatus(str, Enum):
    open = "open"
    acknowledged = "acknowledged"
    resolved = "resolved"


class AlertCreate(BaseModel):
    """Payload for raising an alert.

    ``title``, ``severity`` and ``conditions`` are checked by the service so a
    missing value yields a single 400 rather than a validation error per field.
    """

    title: Optional[str] = None
    description: Optional[str] = None
    device_id: Optional[str] = Field(None, description="External identifier of the device.")
    severity: Optional[AlertSeverity] = None
    conditions: Optional[Dict[str, Any]] = None


class Alert(BaseModel):
    id: str
    device_id: Optional[str] = None
    title: str
    description: Optional[str] = None
    severity: AlertSeverity
    status: AlertStatus = AlertStatus.open
    conditions: Dict[str, Any] = Field(default_factory=dict)
    triggered_at: datetime
    acknowledged_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    created_at: datetime


class AlertResponse(BaseModel):
    alert: Alert


class AlertListResponse(BaseModel):
    alerts: List[Alert] = Field(default_factory=list)


class MessageResponse(BaseModel):
    message: str
