from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_alerts, render_evaluation, render_job, render_stats


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for interacting with the cold storage monitoring service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1, message="CLI state is uninitialized.")
    return state


def _parse_sensor(value: str) -> Dict[str, str]:
    parts = [part.strip() for part in value.split(":")]
    if len(parts) not in (2, 3) or not all(parts):
        raise typer.BadParameter(
            f"Expected SENSOR_ID:PHARMACY_ID[:LOCATION], got {value!r}.",
            param_hint="--sensor",
        )
    sensor = {"sensor_id": parts[0], "pharmacy_id": parts[1]}
    if len(parts) == 3:
        sensor["location_type"] = parts[2]
    return sensor


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Service base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    poll_interval: Optional[float] = typer.Option(
        None,
        "--poll-interval",
        help="Seconds between status checks when waiting for a job.",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Maximum seconds to wait when polling a job.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(
        base_url=base_url,
        poll_interval=poll_interval,
        poll_timeout=timeout,
    )
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("generate")
def generate_command(
    ctx: typer.Context,
    mode: str = typer.Argument("sample", help="sample, full or custom."),
    sensors: List[str] = typer.Option(
        ...,
        "--sensor",
        "-s",
        help="SENSOR_ID:PHARMACY_ID[:LOCATION]; repeat for several sensors.",
    ),
    start_date: Optional[str] = typer.Option(None, "--start", help="First day (custom mode)."),
    end_date: Optional[str] = typer.Option(None, "--end", help="Last day (custom mode)."),
    wait: bool = typer.Option(
        False,
        "--wait/--no-wait",
        help="Wait for the job to finish and display the result.",
    ),
    poll_interval: Optional[float] = typer.Option(
        None,
        "--poll-interval",
        help="Override poll interval while waiting.",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Override timeout while waiting.",
    ),
) -> None:
    """Start a synthetic data generation job."""
    state = _get_state(ctx)
    payload = [_parse_sensor(value) for value in sensors]
    typer.echo(f"Requesting {mode} generation for {len(payload)} sensor(s) ...")
    job_id = state.client.start_generation(mode, payload, start_date, end_date)
    typer.secho(f"Job accepted. job_id={job_id}", fg=typer.colors.GREEN)

    if not wait:
        return

    interval = poll_interval if poll_interval is not None else state.config.poll_interval
    poll_timeout = timeout if timeout is not None else state.config.poll_timeout
    typer.echo(f"Waiting for job (interval={interval}s, timeout={poll_timeout}s)...")
    result = state.client.poll_job(job_id, interval=interval, timeout=poll_timeout)
    typer.echo()
    render_job(result)


@app.command("job")
def job_command(
    ctx: typer.Context,
    job_id: str = typer.Argument(..., help="Identifier returned from the generate command."),
) -> None:
    """Show the status of a generation job."""
    state = _get_state(ctx)
    render_job(state.client.get_job(job_id))


@app.command("stats")
def stats_command(ctx: typer.Context) -> None:
    """Summarize stored readings and alerts."""
    state = _get_state(ctx)
    render_stats(state.client.get_stats())


@app.command("evaluate")
def evaluate_command(
    ctx: typer.Context,
    temperature: float = typer.Argument(..., help="Temperature in °C."),
    location: Optional[str] = typer.Option(
        None,
        "--location",
        "-l",
        help="Location category (defaults to CLI_DEFAULT_LOCATION or storage).",
    ),
) -> None:
    """Check a temperature against a location profile."""
    state = _get_state(ctx)
    category = location or state.config.default_location
    render_evaluation(temperature, state.client.evaluate(temperature, category))


@app.command("alerts")
def alerts_command(
    ctx: typer.Context,
    pharmacy_id: Optional[str] = typer.Option(
        None, "--pharmacy", "-p", help="Pharmacy to list (defaults to CLI_PHARMACY_ID)."
    ),
    all_pharmacies: bool = typer.Option(
        False, "--all", help="Ignore CLI_PHARMACY_ID and list every pharmacy."
    ),
    active: bool = typer.Option(False, "--active", help="Only unresolved alerts."),
) -> None:
    """List alerts, open and most severe first."""
    state = _get_state(ctx)
    pharmacy = None if all_pharmacies else pharmacy_id or state.config.pharmacy_id
    render_alerts(state.client.list_alerts(pharmacy_id=pharmacy, active_only=active))


@app.command("resolve")
def resolve_command(
    ctx: typer.Context,
    alert_id: str = typer.Argument(...),
    note: Optional[str] = typer.Option(None, "--note", "-n"),
) -> None:
    """Resolve an alert manually."""
    state = _get_state(ctx)
    alert = state.client.resolve_alert(alert_id, note)
    typer.secho(
        f"Resolved {alert.get('alert_id')}: {alert.get('resolved_note')}",
        fg=typer.colors.GREEN,
    )
