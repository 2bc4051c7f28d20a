from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the readings query service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.timeout)

    def close(self) -> None:
        self._client.close()

    def ingest(
        self,
        device_id: str,
        data: Dict[str, Any],
        timestamp: Optional[str] = None,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {"device_id": device_id, "data": data}
        if timestamp:
            body["timestamp"] = timestamp
        return self._request("POST", "/data/ingest", json=body)

    def query(
        self,
        device_id: str,
        aggregation: Optional[str] = None,
        interval: Optional[str] = None,
        start: Optional[str] = None,
        end: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        params = {
            "device_id": device_id,
            "aggregation": aggregation,
            "interval": interval,
            "start_time": start,
            "end_time": end,
            "limit": limit,
        }
        return self._request(
            "GET",
            "/data/query",
            params={key: value for key, value in params.items() if value is not None},
        )

    def fields(self, device_id: str) -> List[str]:
        payload = self._request("GET", "/data/fields", params={"device_id": device_id})
        fields = payload.get("fields")
        if not isinstance(fields, list):
            raise typer.BadParameter("Unexpected response payload when listing fields.")
        return fields

    def _request(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = self._client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.TransportError as exc:
            typer.secho(
                f"Could not reach {self._config.base_url}: {exc}",
                fg=typer.colors.RED,
                err=True,
            )
            raise typer.Exit(code=1) from exc
        return response.json()

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: str | None = None
        try:
            data = exc.response.json()
            detail = data.get("detail") or data.get("error")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
