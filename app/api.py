"""HTTP route definitions for the service."""

from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import PlainTextResponse, Response

from app.schemas import (
    AggregatedPointOut,
    AlertCreate,
    AlertListResponse,
    AlertResponse,
    AlertSeverity,
    AlertStatus,
    Device,
    DeviceCreate,
    DeviceStatus,
    DeviceUpdate,
    FieldsResponse,
    IngestRequest,
    IngestResponse,
    MessageResponse,
    QueryResponse,
)
from datastore.readings_store import DataAccessError
from services.query import QueryService, build_default_service, render_csv

router = APIRouter()


def get_service() -> QueryService:
    return build_default_service()


def _require_device_id(device_id: Optional[str]) -> str:
    if not device_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="device_id is required",
        )
    return device_id


def _not_found(exc: KeyError) -> HTTPException:
    detail = exc.args[0] if exc.args else "Not found"
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


def _storage_failure(exc: DataAccessError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=str(exc),
    )


@router.post(
    "/devices",
    status_code=status.HTTP_201_CREATED,
    response_model=Device,
    summary="Register a device.",
)
async def create_device(
    payload: DeviceCreate,
    service: QueryService = Depends(get_service),
) -> Device:
    try:
        return service.register_device(payload)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except DataAccessError as exc:
        raise _storage_failure(exc) from exc


@router.get("/devices", response_model=List[Device], summary="List registered devices.")
async def list_devices(
    device_status: Optional[DeviceStatus] = Query(None, alias="status"),
    location: Optional[str] = Query(None, description="Case-insensitive substring match."),
    service: QueryService = Depends(get_service),
) -> List[Device]:
    return service.list_devices(status=device_status, location=location)


@router.get(
    "/devices/{device_id}",
    response_model=Device,
    summary="Fetch a device by its external identifier.",
)
async def get_device(
    device_id: str,
    service: QueryService = Depends(get_service),
) -> Device:
    try:
        return service.get_device(device_id)
    except KeyError as exc:
        raise _not_found(exc) from exc


@router.put(
    "/devices/{device_id}",
    response_model=Device,
    summary="Update a device's name, location, status or metadata.",
)
async def update_device(
    device_id: str,
    payload: DeviceUpdate,
    service: QueryService = Depends(get_service),
) -> Device:
    try:
        return service.update_device(device_id, payload)
    except KeyError as exc:
        raise _not_found(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except DataAccessError as exc:
        raise _storage_failure(exc) from exc


@router.delete(
    "/devices/{device_id}",
    response_model=MessageResponse,
    summary="Delete a device and its readings.",
)
async def delete_device(
    device_id: str,
    service: QueryService = Depends(get_service),
) -> MessageResponse:
    try:
        service.delete_device(device_id)
    except KeyError as exc:
        raise _not_found(exc) from exc
    except DataAccessError as exc:
        raise _storage_failure(exc) from exc
    return MessageResponse(message="Device deleted successfully")


@router.post(
    "/data/ingest",
    status_code=status.HTTP_201_CREATED,
    response_model=IngestResponse,
    summary="Store one reading for a device.",
)
async def ingest_reading(
    payload: IngestRequest,
    service: QueryService = Depends(get_service),
) -> IngestResponse:
    try:
        row = service.ingest(payload)
    except KeyError as exc:
        raise _not_found(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except DataAccessError as exc:
        raise _storage_failure(exc) from exc
    return IngestResponse(data=row)


@router.get(
    "/data/query",
    response_model=QueryResponse,
    summary="Query readings for a device, optionally aggregated into time buckets.",
)
async def query_data(
    device_id: Optional[str] = Query(None),
    start_time: Optional[datetime] = Query(None),
    end_time: Optional[datetime] = Query(None),
    limit: Optional[int] = Query(None, ge=1),
    aggregation: Optional[str] = Query(None, description="avg, sum, min, max or count."),
    interval: Optional[str] = Query(None, description="Bucket width such as 5m, 1h or 1d."),
    service: QueryService = Depends(get_service),
) -> QueryResponse:
    try:
        result = service.query(
            _require_device_id(device_id),
            start=start_time,
            end=end_time,
            limit=limit,
            aggregation=aggregation,
            interval=interval,
        )
    except KeyError as exc:
        raise _not_found(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except DataAccessError as exc:
        raise _storage_failure(exc) from exc

    if result.aggregated:
        items = [
            AggregatedPointOut(time=point.time, data=point.fields, count=point.count)
            for point in result.items
        ]
        return QueryResponse(data=items, count=len(items))
    return QueryResponse(data=result.items, count=result.count)


@router.get(
    "/data/fields",
    response_model=FieldsResponse,
    summary="List field names seen in a device's most recent readings.",
)
async def list_fields(
    device_id: Optional[str] = Query(None),
    service: QueryService = Depends(get_service),
) -> FieldsResponse:
    try:
        fields = service.list_fields(_require_device_id(device_id))
    except KeyError as exc:
        raise _not_found(exc) from exc
    except DataAccessError as exc:
        raise _storage_failure(exc) from exc
    return FieldsResponse(fields=fields)


@router.get(
    "/data/export",
    summary="Export a device's readings as CSV or JSON.",
    response_model=None,
)
async def export_data(
    device_id: Optional[str] = Query(None),
    start_time: Optional[datetime] = Query(None),
    end_time: Optional[datetime] = Query(None),
    limit: Optional[int] = Query(None, ge=1),
    export_format: str = Query("csv", alias="format", pattern="^(csv|json)$"),
    service: QueryService = Depends(get_service),
) -> Response | dict:
    device_id = _require_device_id(device_id)
    try:
        rows = service.export_rows(device_id, start=start_time, end=end_time, limit=limit)
    except KeyError as exc:
        raise _not_found(exc) from exc
    except DataAccessError as exc:
        raise _storage_failure(exc) from exc

    if export_format == "json":
        return {"data": [row.model_dump(mode="json") for row in rows]}

    if not rows:
        return PlainTextResponse("No data found", status_code=status.HTTP_404_NOT_FOUND)

    filename = f"iot-data-{device_id}-{date.today().isoformat()}.csv"
    return Response(
        content=render_csv(rows),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get(
    "/alerts",
    response_model=AlertListResponse,
    summary="List alerts, most recently triggered first.",
)
async def list_alerts(
    alert_status: Optional[AlertStatus] = Query(None, alias="status"),
    severity: Optional[AlertSeverity] = Query(None),
    limit: Optional[int] = Query(None, ge=1),
    service: QueryService = Depends(get_service),
) -> AlertListResponse:
    alerts = service.list_alerts(status=alert_status, severity=severity, limit=limit)
    return AlertListResponse(alerts=alerts)


@router.post(
    "/alerts",
    status_code=status.HTTP_201_CREATED,
    response_model=AlertResponse,
    summary="Raise an alert, optionally tied to a device.",
)
async def create_alert(
    payload: AlertCreate,
    service: QueryService = Depends(get_service),
) -> AlertResponse:
    try:
        alert = service.create_alert(payload)
    except KeyError as exc:
        raise _not_found(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except DataAccessError as exc:
        raise _storage_failure(exc) from exc
    return AlertResponse(alert=alert)


@router.post(
    "/alerts/{alert_id}/resolve",
    response_model=AlertResponse,
    summary="Mark an alert as resolved.",
)
async def resolve_alert(
    alert_id: str,
    service: QueryService = Depends(get_service),
) -> AlertResponse:
    try:
        alert = service.resolve_alert(alert_id)
    except KeyError as exc:
        raise _not_found(exc) from exc
    except DataAccessError as exc:
        raise _storage_failure(exc) from exc
    return AlertResponse(alert=alert)


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok"}
