"""Threshold evaluation for temperature readings."""

from __future__ import annotations

import math
from numbers import Real
from typing import Optional

from models.records import (
    AlertDecision,
    AlertType,
    LocationProfile,
    SensorReading,
    Severity,
    TemperatureAlert,
)


class InvalidReading(ValueError):
    """Raised when a temperature cannot be meaningfully classified."""


def classify_severity(deviation: float, normal_variance: float) -> Severity:
    """Bucket an absolute deviation from the base temperature.

    Every cutoff is strict, so a deviation equal to ``normal_variance + 1``
    is still ``low``.
    """
    if deviation > normal_variance + 4:
        return Severity.critical
    if deviation > normal_variance + 2:
        return Severity.high
    if deviation > normal_variance + 1:
        return Severity.medium
    return Severity.low


def _require_finite(temperature: object) -> float:
    if isinstance(temperature, bool) or not isinstance(temperature, Real):
        raise InvalidReading(f"Temperature must be a real number, got {temperature!r}")
    value = float(temperature)
    if not math.isfinite(value):
        raise InvalidReading(f"Temperature must be finite, got {value}")
    return value


class ThresholdEvaluator:
    """Pure classifier that can be unit tested in isolation."""

    def evaluate(
        self, temperature: float, profile: LocationProfile
    ) -> Optional[AlertDecision]:
        value = _require_finite(temperature)

        upper = profile.upper_threshold
        lower = profile.lower_threshold
        if value > upper:
            alert_type, threshold = AlertType.temperature_high, upper
        elif value < lower:
            alert_type, threshold = AlertType.temperature_low, lower
        else:
            return None

        deviation = abs(value - profile.base_temperature)
        return AlertDecision(
            type=alert_type,
            severity=classify_severity(deviation, profile.normal_variance),
            threshold_value=threshold,
            deviation=deviation,
        )

    def build_alert(
        self,
        reading: SensorReading,
        decision: AlertDecision,
        pharmacy_id: str,
        location: str,
    ) -> TemperatureAlert:
        """Turn a breach decision into an unresolved alert record."""
        return TemperatureAlert(
            sensor_id=reading.sensor_id,
            pharmacy_id=pharmacy_id,
            type=decision.type,
            severity=decision.severity,
            message=alert_message(decision.type, reading.temperature),
            current_value=reading.temperature,
            threshold_value=decision.threshold_value,
            location=location,
            created_at=reading.timestamp,
        )


def alert_message(alert_type: AlertType, temperature: float) -> str:
    direction = "High" if alert_type is AlertType.temperature_high else "Low"
    return f"{direction} temperature detected: {temperature:.1f}°C"
