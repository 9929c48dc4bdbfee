from __future__ import annotations

from typing import Any, Dict, Iterable

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_job(payload: Dict[str, Any]) -> None:
    echo_heading("Generation Job")
    echo_key_values(
        [
            ("job_id", payload.get("job_id")),
            ("mode", payload.get("mode")),
            ("status", payload.get("status")),
            ("start_date", payload.get("start_date")),
            ("end_date", payload.get("end_date")),
            ("readings_written", payload.get("readings_written")),
            ("alerts_written", payload.get("alerts_written")),
            ("duration_ms", payload.get("duration_ms")),
        ]
    )

    sensors = payload.get("sensors") or []
    typer.echo()
    echo_heading("Sensors")
    if sensors:
        for sensor in sensors:
            typer.echo(
                f"  - {sensor.get('sensor_id')} ({sensor.get('location')}): "
                f"{sensor.get('readings_written')} readings, {sensor.get('alerts_written')} alerts"
            )
    else:
        typer.echo("No sensors processed yet.")

    errors = payload.get("errors") or []
    typer.echo()
    echo_heading("Errors")
    if errors:
        for error in errors:
            typer.echo(f"  - {error.get('sensor_id') or 'job'}: {error.get('reason')}")
    else:
        typer.echo("No errors recorded.")


def render_stats(payload: Dict[str, Any]) -> None:
    readings = payload.get("readings") or {}
    alerts = payload.get("alerts") or {}
    echo_heading("Readings")
    echo_key_values(
        [
            ("total", readings.get("total")),
            ("sensors", readings.get("by_sensor")),
            ("oldest", readings.get("oldest")),
            ("newest", readings.get("newest")),
        ]
    )
    typer.echo()
    echo_heading("Alerts")
    echo_key_values(
        [
            ("total", alerts.get("total")),
            ("active", alerts.get("active")),
            ("resolved", alerts.get("resolved")),
            ("sensors", alerts.get("by_sensor")),
        ]
    )
    typer.echo()
    echo_key_values([("has_historical_data", payload.get("has_historical_data"))])


def render_evaluation(temperature: float, payload: Dict[str, Any]) -> None:
    decision = payload.get("decision")
    if not payload.get("breach") or not decision:
        typer.secho(
            f"{temperature}°C is within the {payload.get('location')} range.",
            fg=typer.colors.GREEN,
        )
        return
    typer.secho(
        f"{decision.get('type')} ({decision.get('severity')}) for {payload.get('location')}",
        fg=typer.colors.RED,
        bold=True,
    )
    echo_key_values(
        [
            ("temperature", temperature),
            ("threshold_value", decision.get("threshold_value")),
            ("deviation", round(decision.get("deviation", 0.0), 2)),
        ]
    )


def render_alerts(payload: Dict[str, Any]) -> None:
    alerts = payload.get("alerts") or []
    echo_heading(f"Alerts ({payload.get('total_count', len(alerts))})")
    if not alerts:
        typer.echo("No alerts found.")
        return
    for alert in alerts:
        state = "resolved" if alert.get("resolved") else "open"
        typer.echo(
            f"  - [{alert.get('severity')}] {alert.get('alert_id')} "
            f"{alert.get('sensor_id')}: {alert.get('message')} ({state})"
        )
