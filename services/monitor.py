"""Check live sensor readings against their location profiles."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Iterable, Mapping, Optional

from app.schemas import JobError, MonitorReport
from clients.sensorpush import SensorPushClient
from models.profiles import get_profile
from models.records import AlertType, SensorAssignment, SensorReading
from services.evaluator import InvalidReading, ThresholdEvaluator, alert_message
from storage.record_store import RecordStore

logger = logging.getLogger(__name__)

AUTO_RESOLVE_NOTE = "Auto-resolved: Values returned to normal range"
TEMPERATURE_TYPES = (AlertType.temperature_high, AlertType.temperature_low)


class SensorMonitor:
    """Raises, refreshes and auto-resolves alerts for real readings."""

    def __init__(
        self, store: RecordStore, evaluator: Optional[ThresholdEvaluator] = None
    ) -> None:
        self.store = store
        self.evaluator = evaluator or ThresholdEvaluator()

    def check_readings(
        self,
        assignments: Iterable[SensorAssignment],
        readings: Mapping[str, SensorReading],
        now: Optional[datetime] = None,
    ) -> MonitorReport:
        checked_at = now or datetime.now(timezone.utc)
        report = MonitorReport()
        for assignment in assignments:
            reading = readings.get(assignment.sensor_id)
            if reading is None:
                logger.warning(
                    "No current reading for sensor",
                    extra={"sensor_id": assignment.sensor_id, "pharmacy_id": assignment.pharmacy_id},
                )
                report.missing.append(assignment.sensor_id)
                continue

            profile = get_profile(assignment.location_type)
            try:
                decision = self.evaluator.evaluate(reading.temperature, profile)
            except InvalidReading as exc:
                logger.warning(
                    "Skipping invalid reading",
                    extra={"sensor_id": assignment.sensor_id, "reason": str(exc)},
                )
                report.errors.append(JobError(sensor_id=assignment.sensor_id, reason=str(exc)))
                continue
            report.checked += 1

            if decision is None:
                report.resolved += self.store.resolve_open_alerts(
                    assignment.sensor_id, TEMPERATURE_TYPES, AUTO_RESOLVE_NOTE, at=checked_at
                )
                continue

            existing = self.store.find_open_alert(
                assignment.sensor_id, assignment.pharmacy_id, decision.type
            )
            if existing is not None:
                self.store.update_alert(
                    replace(
                        existing,
                        current_value=reading.temperature,
                        message=alert_message(decision.type, reading.temperature),
                        updated_at=checked_at,
                    )
                )
                report.updated.append(existing.alert_id)
                continue

            alert = self.evaluator.build_alert(
                reading, decision, assignment.pharmacy_id, assignment.location_type
            )
            self.store.insert_alerts([alert])
            report.created.append(alert.alert_id)
            logger.info(
                "Raised temperature alert",
                extra={
                    "alert_id": alert.alert_id,
                    "sensor_id": assignment.sensor_id,
                    "alert_type": decision.type.value,
                    "severity": decision.severity.value,
                },
            )
        return report

    def check_sensors(
        self, client: SensorPushClient, assignments: Iterable[SensorAssignment]
    ) -> MonitorReport:
        """Fetch each sensor's latest sample from SensorPush and check it."""
        targets = list(assignments)
        readings = client.latest_readings(a.sensor_id for a in targets)
        return self.check_readings(targets, readings)
