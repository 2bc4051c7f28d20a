from __future__ import annotations

from typing import Any, Dict, List

import pytest
import typer
from typer.testing import CliRunner

from cli.app import app, parse_field


class StubClient:
    def __init__(self, config) -> None:
        self.config = config
        self.ingested: List[tuple[str, Dict[str, Any], str | None]] = []
        self.queries: List[Dict[str, Any]] = []
        self.query_payload: Dict[str, Any] = {
            "data": [
                {"time": "2024-01-01T00:00:00.000Z", "data": {"temp": 20.0}, "count": 3},
                {"time": "2024-01-01T00:05:00.000Z", "data": {"temp": 22.5}, "count": 1},
            ],
            "count": 2,
        }
        self.closed = False

    def ingest(self, device_id: str, data: Dict[str, Any], timestamp: str | None = None) -> Dict[str, Any]:
        self.ingested.append((device_id, data, timestamp))
        return {
            "message": "Data ingested successfully",
            "data": {"time": timestamp or "2024-01-01T00:00:00Z", "data": data, "metadata": {}},
        }

    def query(self, device_id: str, **kwargs: Any) -> Dict[str, Any]:
        self.queries.append({"device_id": device_id, **kwargs})
        return self.query_payload

    def fields(self, device_id: str) -> List[str]:
        return ["humidity", "temp"]

    def close(self) -> None:
        self.closed = True


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture()
def stub(monkeypatch) -> StubClient:
    client = StubClient(config=None)

    def factory(config):
        client.config = config
        return client

    monkeypatch.setattr("cli.app.ApiClient", factory)
    return client


def test_parse_field_decodes_json_scalars() -> None:
    assert parse_field("temp=21.5") == ("temp", 21.5)
    assert parse_field("count=3") == ("count", 3)
    assert parse_field("ok=true") == ("ok", True)
    assert parse_field("status=online") == ("status", "online")
    assert parse_field("blob={\"a\": 1}") == ("blob", "{\"a\": 1}")


def test_parse_field_rejects_missing_separator() -> None:
    with pytest.raises(typer.BadParameter):
        parse_field("temp")


def test_ingest_command(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(
        app,
        ["ingest", "sensor-1", "-f", "temp=21.5", "-f", "status=ok", "--timestamp", "2024-01-01T00:00:00Z"],
    )

    assert result.exit_code == 0
    assert "Data ingested successfully" in result.stdout
    assert stub.ingested == [("sensor-1", {"temp": 21.5, "status": "ok"}, "2024-01-01T00:00:00Z")]
    assert stub.closed is True


def test_query_command_renders_aggregated_points(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(
        app,
        ["query", "sensor-1", "--aggregation", "avg", "--interval", "5m", "--limit", "50"],
    )

    assert result.exit_code == 0
    assert "Aggregated Points" in result.stdout
    assert "2024-01-01T00:00:00.000Z [3] temp=20.0" in result.stdout
    assert stub.queries == [
        {
            "device_id": "sensor-1",
            "aggregation": "avg",
            "interval": "5m",
            "start": None,
            "end": None,
            "limit": 50,
        }
    ]


def test_query_command_renders_raw_rows(runner: CliRunner, stub: StubClient) -> None:
    stub.query_payload = {
        "data": [{"time": "2024-01-01T00:00:00Z", "data": {"temp": 19}, "metadata": {}}],
        "count": 1,
    }

    result = runner.invoke(app, ["query", "sensor-1"])

    assert result.exit_code == 0
    assert "Readings" in result.stdout
    assert "2024-01-01T00:00:00Z temp=19" in result.stdout


def test_fields_command(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["--base-url", "http://example.test/", "fields", "sensor-1"])

    assert result.exit_code == 0
    assert "  - humidity" in result.stdout
    assert stub.config.base_url == "http://example.test"
