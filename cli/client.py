from __future__ import annotations

import time
from typing import Any, Dict, List, Optional

import httpx
import typer

from cli.config import CLIConfig

_PENDING_STATUSES = {"pending", "running"}


class ApiClient:
    """Minimal HTTP client for the monitoring service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=30.0)

    def close(self) -> None:
        self._client.close()

    def start_generation(
        self,
        mode: str,
        sensors: List[Dict[str, str]],
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> str:
        payload: Dict[str, Any] = {"mode": mode, "sensors": sensors}
        if start_date:
            payload["start_date"] = start_date
        if end_date:
            payload["end_date"] = end_date
        response = self._request("POST", "/generate", json=payload)
        job_id = response.json().get("job_id")
        if not isinstance(job_id, str):
            raise typer.BadParameter("Unexpected response payload when starting generation.")
        return job_id

    def get_job(self, job_id: str) -> Dict[str, Any]:
        response = self._request("GET", f"/generate/{job_id}", not_found=f"Job {job_id} was not found.")
        return response.json()

    def poll_job(self, job_id: str, interval: float, timeout: float) -> Dict[str, Any]:
        deadline = time.monotonic() + timeout
        last_payload: Dict[str, Any] | None = None
        while time.monotonic() <= deadline:
            last_payload = self.get_job(job_id)
            if last_payload.get("status") not in _PENDING_STATUSES:
                return last_payload
            time.sleep(interval)
        typer.secho(
            (
                f"Timed out waiting for job {job_id}. "
                f"Last status: {last_payload.get('status') if last_payload else 'unknown'}"
            ),
            fg=typer.colors.RED,
            err=True,
        )
        raise typer.Exit(code=1)

    def get_stats(self) -> Dict[str, Any]:
        return self._request("GET", "/data/stats").json()

    def evaluate(self, temperature: float, location: str) -> Dict[str, Any]:
        response = self._request(
            "POST", "/evaluate", json={"temperature": temperature, "location": location}
        )
        return response.json()

    def list_alerts(
        self, pharmacy_id: Optional[str] = None, active_only: bool = False
    ) -> Dict[str, Any]:
        params: Dict[str, str] = {}
        if pharmacy_id:
            params["pharmacy_id"] = pharmacy_id
        if active_only:
            params["resolved"] = "false"
        return self._request("GET", "/alerts", params=params).json()

    def resolve_alert(self, alert_id: str, note: Optional[str] = None) -> Dict[str, Any]:
        response = self._request(
            "POST",
            f"/alerts/{alert_id}/resolve",
            json={"note": note},
            not_found=f"Alert {alert_id} was not found.",
        )
        return response.json()

    def _request(
        self, method: str, path: str, not_found: Optional[str] = None, **kwargs: Any
    ) -> httpx.Response:
        try:
            response = self._client.request(method, path, **kwargs)
            if not_found and response.status_code == 404:
                raise typer.BadParameter(not_found)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: str | None = None
        try:
            data = exc.response.json()
            detail = data.get("detail")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
