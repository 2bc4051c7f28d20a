from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_fields, render_ingest, render_query


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for interacting with the IoT readings query service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1, message="CLI state is uninitialized.")
    return state


def parse_field(raw: str) -> tuple[str, Any]:
    """Split ``key=value``, decoding the value as a JSON scalar when possible."""
    name, sep, value = raw.partition("=")
    name = name.strip()
    if not sep or not name:
        raise typer.BadParameter(f"Expected key=value, got {raw!r}.")
    try:
        decoded = json.loads(value)
    except json.JSONDecodeError:
        return name, value
    if isinstance(decoded, (dict, list)):
        return name, value
    return name, decoded


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Service base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="HTTP timeout in seconds.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("ingest")
def ingest_command(
    ctx: typer.Context,
    device_id: str = typer.Argument(..., help="External device identifier."),
    field: List[str] = typer.Option(
        ...,
        "--field",
        "-f",
        help="Reading field as key=value; repeat for several fields.",
    ),
    timestamp: Optional[str] = typer.Option(
        None,
        "--timestamp",
        help="ISO-8601 reading time (defaults to now on the server).",
    ),
) -> None:
    """Send one reading for a device."""
    state = _get_state(ctx)
    data: Dict[str, Any] = dict(parse_field(raw) for raw in field)
    payload = state.client.ingest(device_id, data, timestamp=timestamp)
    render_ingest(payload)


@app.command("query")
def query_command(
    ctx: typer.Context,
    device_id: str = typer.Argument(..., help="External device identifier."),
    aggregation: Optional[str] = typer.Option(
        None, "--aggregation", "-a", help="avg, sum, min, max or count."
    ),
    interval: Optional[str] = typer.Option(
        None, "--interval", "-i", help="Bucket width such as 5m, 1h or 1d."
    ),
    start: Optional[str] = typer.Option(None, "--start", help="Inclusive ISO-8601 start time."),
    end: Optional[str] = typer.Option(None, "--end", help="Inclusive ISO-8601 end time."),
    limit: Optional[int] = typer.Option(None, "--limit", min=1, help="Maximum rows to read."),
) -> None:
    """Query readings, optionally aggregated into time buckets."""
    state = _get_state(ctx)
    payload = state.client.query(
        device_id,
        aggregation=aggregation,
        interval=interval,
        start=start,
        end=end,
        limit=limit,
    )
    render_query(payload)


@app.command("fields")
def fields_command(
    ctx: typer.Context,
    device_id: str = typer.Argument(..., help="External device identifier."),
) -> None:
    """List field names seen in a device's recent readings."""
    state = _get_state(ctx)
    render_fields(state.client.fields(device_id))
