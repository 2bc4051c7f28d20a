from __future__ import annotations

from typing import Any, Dict, Iterable, List

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def _format_fields(fields: Dict[str, Any]) -> str:
    return ", ".join(f"{name}={value}" for name, value in fields.items())


def render_query(payload: Dict[str, Any]) -> None:
    rows = payload.get("data") or []
    aggregated = any("count" in row for row in rows)
    echo_heading("Aggregated Points" if aggregated else "Readings")
    echo_key_values([("count", payload.get("count", len(rows)))])
    typer.echo()
    if not rows:
        typer.echo("No data found.")
        return
    for row in rows:
        fields = _format_fields(row.get("data") or {})
        if aggregated:
            typer.echo(f"  - {row.get('time')} [{row.get('count')}] {fields}")
        else:
            typer.echo(f"  - {row.get('time')} {fields}")


def render_fields(fields: List[str]) -> None:
    echo_heading("Fields")
    if not fields:
        typer.echo("No fields recorded.")
        return
    for name in fields:
        typer.echo(f"  - {name}")


def render_ingest(payload: Dict[str, Any]) -> None:
    row = payload.get("data") or {}
    typer.secho(payload.get("message", "Data ingested."), fg=typer.colors.GREEN)
    echo_key_values([("time", row.get("time")), ("data", _format_fields(row.get("data") or {}))])
