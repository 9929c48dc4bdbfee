"""HTTP client for the SensorPush cloud API."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, Optional

import httpx

from models.records import SensorReading

logger = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(minutes=30)


class SensorPushError(RuntimeError):
    """Raised when the SensorPush API rejects or fails a request."""


@dataclass
class TokenCache:
    """Access token plus its expiry; owned by the caller, not the module."""

    ttl: timedelta = DEFAULT_TTL
    access_token: Optional[str] = None
    expires_at: Optional[datetime] = None

    def valid(self, now: Optional[datetime] = None) -> bool:
        return self.current(now) is not None

    def current(self, now: Optional[datetime] = None) -> Optional[str]:
        """The cached token, or None once it has expired."""
        if self.access_token is None or self.expires_at is None:
            return None
        if self.expires_at <= (now or datetime.now(timezone.utc)):
            return None
        return self.access_token

    def store(self, token: str, now: Optional[datetime] = None) -> None:
        self.access_token = token
        self.expires_at = (now or datetime.now(timezone.utc)) + self.ttl

    def clear(self) -> None:
        self.access_token = None
        self.expires_at = None


@dataclass
class SensorListCache:
    ttl: timedelta = DEFAULT_TTL
    sensors: Dict[str, Any] = field(default_factory=dict)
    expires_at: Optional[datetime] = None

    def valid(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at > (now or datetime.now(timezone.utc))

    def store(self, sensors: Dict[str, Any], now: Optional[datetime] = None) -> None:
        self.sensors = dict(sensors)
        self.expires_at = (now or datetime.now(timezone.utc)) + self.ttl


def fahrenheit_to_celsius(value: float) -> float:
    return round((value - 32) * 5 / 9, 1)


def _parse_observed(value: str) -> datetime:
    candidate = value.strip()
    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"
    parsed = datetime.fromisoformat(candidate)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class SensorPushClient:
    """Minimal client; token and sensor caches are injected by the caller."""

    def __init__(
        self,
        email: str,
        password: str,
        cache: Optional[TokenCache] = None,
        sensor_cache: Optional[SensorListCache] = None,
        base_url: str = "https://api.sensorpush.com/api/v1",
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        self._email = email
        self._password = password
        self.cache = cache or TokenCache()
        self.sensor_cache = sensor_cache or SensorListCache()
        self._client = http_client or httpx.Client(base_url=base_url, timeout=30.0)

    def close(self) -> None:
        self._client.close()

    def authenticate(self) -> str:
        cached = self.cache.current()
        if cached is not None:
            return cached

        authorization = self._post(
            "/oauth/authorize", {"email": self._email, "password": self._password}
        ).get("authorization")
        if not authorization:
            raise SensorPushError("SensorPush did not return an authorization code.")

        token = self._post("/oauth/accesstoken", {"authorization": authorization}).get(
            "accesstoken"
        )
        if not token:
            raise SensorPushError("SensorPush did not return an access token.")
        self.cache.store(token)
        logger.info("Authenticated with SensorPush")
        return token

    def get_sensors(self) -> Dict[str, Any]:
        if self.sensor_cache.valid():
            return dict(self.sensor_cache.sensors)
        sensors = self._post("/devices/sensors", {}, authorized=True)
        self.sensor_cache.store(sensors)
        return sensors

    def get_gateways(self) -> Dict[str, Any]:
        return self._post("/devices/gateways", {}, authorized=True)

    def get_samples(
        self,
        sensor_ids: Iterable[str],
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 100,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"sensors": list(sensor_ids), "limit": limit}
        if start is not None:
            payload["startTime"] = start.isoformat()
        if end is not None:
            payload["endTime"] = end.isoformat()
        return self._post("/samples", payload, authorized=True)

    def latest_readings(self, sensor_ids: Iterable[str]) -> Dict[str, SensorReading]:
        """Most recent sample per sensor, converted to Celsius."""
        ids = list(sensor_ids)
        if not ids:
            return {}
        payload = self.get_samples(ids, limit=1)
        readings: Dict[str, SensorReading] = {}
        for sensor_id, samples in (payload.get("sensors") or {}).items():
            if not samples:
                continue
            sample = samples[0]
            temperature = sample.get("temperature")
            observed = sample.get("observed")
            if temperature is None or not observed:
                logger.warning(
                    "Ignoring incomplete sample",
                    extra={"sensor_id": sensor_id, "reason": "missing fields"},
                )
                continue
            readings[sensor_id] = SensorReading(
                sensor_id=sensor_id,
                temperature=fahrenheit_to_celsius(float(temperature)),
                humidity=sample.get("humidity"),
                timestamp=_parse_observed(observed),
            )
        return readings

    def _post(
        self, path: str, payload: Dict[str, Any], authorized: bool = False
    ) -> Dict[str, Any]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if authorized:
            headers["Authorization"] = self.authenticate()
        try:
            response = self._client.post(path, json=payload, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code in (401, 403):
                self.cache.clear()
            raise SensorPushError(
                f"SensorPush request to {path} failed with status {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise SensorPushError(f"SensorPush request to {path} failed: {exc}") from exc
        return response.json()
