"""In-process sink for readings and alerts with optional JSON persistence."""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Dict, Iterable, List, Optional, Set, Tuple

from pydantic import TypeAdapter

from app.schemas import AlertStats, DataStats, ReadingStats
from models.records import AlertType, SensorReading, Severity, TemperatureAlert
from settings import get_settings

logger = logging.getLogger(__name__)

_READINGS_FILE = "readings.jsonl"
_ALERTS_FILE = "alerts.json"

_reading_adapter = TypeAdapter(SensorReading)
_alerts_adapter = TypeAdapter(List[TemperatureAlert])

DEFAULT_RESOLVE_NOTE = "Manually resolved"


def _alert_order(alert: TemperatureAlert) -> Tuple[bool, int, float]:
    return (alert.resolved, -alert.severity.rank, -alert.created_at.timestamp())


class RecordStore:
    """Holds readings and alerts; readings are append-only on disk."""

    def __init__(self, root_path: Optional[Path] = None) -> None:
        self.root_path = root_path
        self._readings: List[SensorReading] = []
        self._reading_keys: Set[Tuple[str, datetime]] = set()
        self._alerts: Dict[str, TemperatureAlert] = {}
        self._lock = Lock()
        if root_path:
            root_path.mkdir(parents=True, exist_ok=True)
            self._load_from_disk(root_path)

    def insert_readings(self, readings: Iterable[SensorReading]) -> int:
        """Append readings, skipping duplicate ``(sensor_id, timestamp)`` pairs."""
        with self._lock:
            fresh: List[SensorReading] = []
            for reading in readings:
                key = (reading.sensor_id, reading.timestamp)
                if key in self._reading_keys:
                    continue
                self._reading_keys.add(key)
                fresh.append(reading)
            self._readings.extend(fresh)
            self._append_readings(fresh)
            return len(fresh)

    def insert_alerts(self, alerts: Iterable[TemperatureAlert]) -> int:
        with self._lock:
            inserted = 0
            for alert in alerts:
                if alert.alert_id in self._alerts:
                    continue
                self._alerts[alert.alert_id] = replace(alert)
                inserted += 1
            if inserted:
                self._persist_alerts()
            return inserted

    def readings_for(self, sensor_id: str) -> List[SensorReading]:
        with self._lock:
            return [r for r in self._readings if r.sensor_id == sensor_id]

    def get_alert(self, alert_id: str) -> Optional[TemperatureAlert]:
        with self._lock:
            alert = self._alerts.get(alert_id)
            return None if alert is None else replace(alert)

    def list_alerts(
        self,
        pharmacy_id: Optional[str] = None,
        resolved: Optional[bool] = None,
        severity: Optional[Severity] = None,
        alert_type: Optional[AlertType] = None,
    ) -> List[TemperatureAlert]:
        """Filter alerts; open first, then most severe, then newest."""
        with self._lock:
            matches = [
                replace(alert)
                for alert in self._alerts.values()
                if (pharmacy_id is None or alert.pharmacy_id == pharmacy_id)
                and (resolved is None or alert.resolved is resolved)
                and (severity is None or alert.severity is severity)
                and (alert_type is None or alert.type is alert_type)
            ]
        return sorted(matches, key=_alert_order)

    def active_alerts(self, pharmacy_id: Optional[str] = None) -> List[TemperatureAlert]:
        return self.list_alerts(pharmacy_id=pharmacy_id, resolved=False)

    def find_open_alert(
        self, sensor_id: str, pharmacy_id: str, alert_type: AlertType
    ) -> Optional[TemperatureAlert]:
        with self._lock:
            for alert in self._alerts.values():
                if (
                    not alert.resolved
                    and alert.sensor_id == sensor_id
                    and alert.pharmacy_id == pharmacy_id
                    and alert.type is alert_type
                ):
                    return replace(alert)
        return None

    def update_alert(self, alert: TemperatureAlert) -> None:
        """Store a changed alert; reads only ever hand out copies."""
        with self._lock:
            if alert.alert_id not in self._alerts:
                raise KeyError(f"Alert {alert.alert_id!r} not found.")
            self._alerts[alert.alert_id] = replace(alert)
            self._persist_alerts()

    def resolve_alert(
        self,
        alert_id: str,
        note: Optional[str] = None,
        resolved_by: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> TemperatureAlert:
        with self._lock:
            alert = self._alerts.get(alert_id)
            if alert is None:
                raise KeyError(f"Alert {alert_id!r} not found.")
            alert.resolve(note=note or DEFAULT_RESOLVE_NOTE, at=at, by=resolved_by)
            self._persist_alerts()
            resolved = replace(alert)
        logger.info(
            "Resolved alert",
            extra={"alert_id": alert_id, "sensor_id": resolved.sensor_id},
        )
        return resolved

    def resolve_open_alerts(
        self,
        sensor_id: str,
        alert_types: Iterable[AlertType],
        note: str,
        at: Optional[datetime] = None,
    ) -> int:
        types = set(alert_types)
        resolved_at = at or datetime.now(timezone.utc)
        with self._lock:
            count = 0
            for alert in self._alerts.values():
                if alert.resolved or alert.sensor_id != sensor_id or alert.type not in types:
                    continue
                alert.resolve(note=note, at=resolved_at)
                count += 1
            if count:
                self._persist_alerts()
            return count

    def stats(self, history_year: int = 2019) -> DataStats:
        with self._lock:
            timestamps = [reading.timestamp for reading in self._readings]
            reading_sensors = {reading.sensor_id for reading in self._readings}
            alerts = list(self._alerts.values())

        oldest = min(timestamps) if timestamps else None
        newest = max(timestamps) if timestamps else None
        active = sum(1 for alert in alerts if not alert.resolved)
        return DataStats(
            readings=ReadingStats(
                total=len(timestamps),
                by_sensor=len(reading_sensors),
                oldest=oldest,
                newest=newest,
            ),
            alerts=AlertStats(
                total=len(alerts),
                active=active,
                resolved=len(alerts) - active,
                by_sensor=len({alert.sensor_id for alert in alerts}),
            ),
            has_historical_data=oldest is not None and oldest.year <= history_year,
        )

    def clear(self) -> Tuple[int, int]:
        """Delete every reading and alert, returning how many of each went."""
        with self._lock:
            counts = (len(self._readings), len(self._alerts))
            self._readings.clear()
            self._reading_keys.clear()
            self._alerts.clear()
            if self.root_path:
                (self.root_path / _READINGS_FILE).unlink(missing_ok=True)
                self._persist_alerts()
        return counts

    def _append_readings(self, readings: List[SensorReading]) -> None:
        if not self.root_path or not readings:
            return
        with (self.root_path / _READINGS_FILE).open("a", encoding="utf-8") as handle:
            for reading in readings:
                handle.write(_reading_adapter.dump_json(reading).decode("utf-8"))
                handle.write("\n")

    def _persist_alerts(self) -> None:
        if not self.root_path:
            return
        payload = _alerts_adapter.dump_python(list(self._alerts.values()), mode="json")
        (self.root_path / _ALERTS_FILE).write_text(json.dumps(payload, indent=2))

    def _load_from_disk(self, root_path: Path) -> None:
        readings_path = root_path / _READINGS_FILE
        if readings_path.exists():
            with readings_path.open("r", encoding="utf-8") as handle:
                for line_number, line in enumerate(handle, start=1):
                    if not line.strip():
                        continue
                    try:
                        reading = _reading_adapter.validate_json(line)
                    except ValueError:
                        logger.warning(
                            "Skipping unreadable stored reading",
                            extra={"reason": f"line {line_number}"},
                        )
                        continue
                    key = (reading.sensor_id, reading.timestamp)
                    if key not in self._reading_keys:
                        self._reading_keys.add(key)
                        self._readings.append(reading)

        alerts_path = root_path / _ALERTS_FILE
        if alerts_path.exists():
            try:
                raw = alerts_path.read_text() or "[]"
                data = json.loads(raw)
            except (OSError, json.JSONDecodeError):
                data = []
            for alert in _alerts_adapter.validate_python(data):
                self._alerts[alert.alert_id] = alert


@lru_cache
def build_default_store(root_path: Optional[str] = None) -> RecordStore:
    settings = get_settings()
    store_root = settings.store_path if root_path is None else root_path
    path = Path(store_root) if store_root else None
    return RecordStore(root_path=path)
