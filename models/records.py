"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4


class AlertType(str, Enum):
    """Direction of a temperature breach."""

    temperature_high = "temperature_high"
    temperature_low = "temperature_low"


class Severity(str, Enum):
    """Severity buckets, ordered from least to most urgent."""

    low = "low"
    medium = "medium"
    high = "high"
    critical = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.low: 0,
    Severity.medium: 1,
    Severity.high: 2,
    Severity.critical: 3,
}


@dataclass(frozen=True, slots=True)
class LocationProfile:
    """Expected temperature behaviour for one storage-location category."""

    location: str
    base_temperature: float
    normal_variance: float
    seasonal_variance: float
    daily_variance: float
    alert_probability: float

    def __post_init__(self) -> None:
        if self.normal_variance < 0:
            raise ValueError(
                f"normal_variance must be non-negative, got {self.normal_variance}"
            )
        if not 0.0 <= self.alert_probability <= 1.0:
            raise ValueError(
                f"alert_probability must be within [0, 1], got {self.alert_probability}"
            )

    @property
    def upper_threshold(self) -> float:
        return self.base_temperature + self.normal_variance + 1

    @property
    def lower_threshold(self) -> float:
        return self.base_temperature - self.normal_variance - 1


@dataclass(frozen=True, slots=True)
class SensorAssignment:
    """A sensor placed in a pharmacy at a given location category."""

    sensor_id: str
    pharmacy_id: str
    location_type: str
    name: Optional[str] = None

    @property
    def label(self) -> str:
        return self.name or self.sensor_id


@dataclass(slots=True)
class SensorReading:
    """A single temperature/humidity observation."""

    sensor_id: str
    temperature: float
    humidity: Optional[float]
    timestamp: datetime
    archived: bool = False


@dataclass(frozen=True, slots=True)
class AlertDecision:
    """Outcome of evaluating a breaching temperature."""

    type: AlertType
    severity: Severity
    threshold_value: float
    deviation: float


@dataclass(slots=True)
class TemperatureAlert:
    """An alert raised for a breaching reading."""

    sensor_id: str
    pharmacy_id: str
    type: AlertType
    severity: Severity
    message: str
    current_value: float
    threshold_value: float
    location: str
    created_at: datetime
    resolved: bool = False
    resolved_at: Optional[datetime] = None
    resolved_note: Optional[str] = None
    resolved_by: Optional[str] = None
    updated_at: Optional[datetime] = None
    alert_id: str = field(default_factory=lambda: str(uuid4()))

    def resolve(
        self,
        note: str,
        at: Optional[datetime] = None,
        by: Optional[str] = None,
    ) -> None:
        self.resolved = True
        self.resolved_at = at or datetime.now(timezone.utc)
        self.resolved_note = note
        self.resolved_by = by
