from __future__ import annotations

from typing import Any, Dict, Iterable

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_import_result(payload: Dict[str, Any]) -> None:
    echo_heading("Import Result")
    echo_key_values(
        [
            ("success", payload.get("success")),
            ("imported_count", payload.get("imported_count")),
            ("skipped_count", payload.get("skipped_count")),
            ("elapsed_ms", payload.get("elapsed_ms")),
        ]
    )
    if payload.get("error_message"):
        typer.secho(
            f"error: {payload['error_message']} ({payload.get('error_code')})",
            fg=typer.colors.RED,
        )

    messages = payload.get("messages") or []
    typer.echo()
    echo_heading("Messages")
    if messages:
        for message in messages:
            typer.echo(f"  - {message}")
    else:
        typer.echo("No messages recorded.")


def render_buckets(payload: Dict[str, Any]) -> None:
    echo_heading(f"Buckets ({payload.get('mode')})")
    buckets = payload.get("buckets") or []
    if not buckets:
        typer.echo("No readings in range.")
        return
    for bucket in buckets:
        if bucket.get("kind") == "summary":
            typer.echo(
                f"  {bucket['label']}: average={bucket['average']} "
                f"total={bucket['total']} count={bucket['count']}"
            )
        else:
            typer.echo(f"  {bucket['label']}: {bucket['value']}")


def render_stats(payload: Dict[str, Any]) -> None:
    echo_heading("Stored Readings")
    echo_key_values(
        [
            ("count", payload.get("count")),
            ("min_date", payload.get("min_date") or "N/A"),
            ("max_date", payload.get("max_date") or "N/A"),
        ]
    )
