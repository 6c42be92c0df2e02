from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_buckets, render_import_result, render_stats

_DATE_FORMATS = ["%Y-%m-%d", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M:%S"]


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for importing and charting power load readings.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1, message="CLI state is uninitialized.")
    return state


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
        help="HTTP request timeout in seconds.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, request_timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("upload")
def upload_command(
    ctx: typer.Context,
    file: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="Path to .xlsx workbook."),
) -> None:
    """Upload a workbook so it can be validated and imported."""
    state = _get_state(ctx)
    typer.echo(f"Uploading {file} to {state.config.base_url} ...")
    key = state.client.upload_workbook(file)
    typer.secho(f"Upload stored. key={key}", fg=typer.colors.GREEN)


@app.command("import")
def import_command(
    ctx: typer.Context,
    workbook: str = typer.Argument(..., help="Storage key returned by the upload command."),
    sheet: Optional[str] = typer.Option(None, "--sheet", "-s", help="Worksheet name."),
    source: Optional[str] = typer.Option(None, "--source", help="Label stored with each reading."),
) -> None:
    """Import a stored workbook's load cross-table."""
    state = _get_state(ctx)
    payload = state.client.import_workbook(workbook, sheet_name=sheet, source=source)
    render_import_result(payload)
    if not payload.get("success"):
        raise typer.Exit(code=1)


@app.command("validate")
def validate_command(
    ctx: typer.Context,
    workbook: str = typer.Argument(..., help="Storage key of the workbook."),
    sheet: Optional[str] = typer.Option(None, "--sheet", "-s", help="Worksheet name."),
) -> None:
    """Check a workbook's layout without importing it."""
    state = _get_state(ctx)
    if state.client.validate_workbook(workbook, sheet_name=sheet):
        typer.secho(f"{workbook} has a valid layout.", fg=typer.colors.GREEN)
        return
    typer.secho(f"{workbook} does not have a valid layout.", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1)


@app.command("summary")
def summary_command(
    ctx: typer.Context,
    start: datetime = typer.Option(..., "--start", formats=_DATE_FORMATS, help="Range start."),
    end: datetime = typer.Option(..., "--end", formats=_DATE_FORMATS, help="Range end."),
    days: int = typer.Option(..., "--days", min=0, help="Day span that selects the granularity."),
    report: bool = typer.Option(False, "--report/--chart", help="List every reading unaggregated."),
) -> None:
    """Show bucketed load data for a date range."""
    state = _get_state(ctx)
    payload = state.client.aggregated(start, end, days, report_mode=report)
    render_buckets(payload)


@app.command("stats")
def stats_command(ctx: typer.Context) -> None:
    """Show how many readings are stored and the range they cover."""
    state = _get_state(ctx)
    render_stats(state.client.stats())
