from __future__ import annotations

import math
from datetime import datetime, timezone

import pytest

from models.records import AlertType, SensorAssignment, SensorReading, Severity
from services.monitor import AUTO_RESOLVE_NOTE, SensorMonitor
from storage.record_store import RecordStore

NOW = datetime(2024, 6, 1, 10, 0, tzinfo=timezone.utc)
FRIDGE = SensorAssignment(sensor_id="sp-1", pharmacy_id="ph-1", location_type="refrigerator")


def _reading(temperature: float, sensor_id: str = "sp-1") -> SensorReading:
    return SensorReading(sensor_id=sensor_id, temperature=temperature, humidity=50.0, timestamp=NOW)


@pytest.fixture()
def store() -> RecordStore:
    return RecordStore()


def test_breach_creates_alert(store: RecordStore) -> None:
    monitor = SensorMonitor(store)

    report = monitor.check_readings([FRIDGE], {"sp-1": _reading(9.5)}, now=NOW)

    assert report.checked == 1
    assert len(report.created) == 1
    alert = store.get_alert(report.created[0])
    assert alert is not None
    assert alert.type is AlertType.temperature_high
    assert alert.severity is Severity.critical
    assert alert.location == "refrigerator"


def test_repeated_breach_updates_open_alert(store: RecordStore) -> None:
    monitor = SensorMonitor(store)
    first = monitor.check_readings([FRIDGE], {"sp-1": _reading(6.5)}, now=NOW)

    second = monitor.check_readings([FRIDGE], {"sp-1": _reading(7.4)}, now=NOW)

    assert second.created == []
    assert second.updated == first.created
    alert = store.get_alert(first.created[0])
    assert alert is not None
    assert alert.current_value == 7.4
    assert alert.message == "High temperature detected: 7.4°C"
    assert alert.updated_at == NOW
    assert len(store.list_alerts()) == 1


def test_opposite_breach_opens_separate_alert(store: RecordStore) -> None:
    monitor = SensorMonitor(store)
    monitor.check_readings([FRIDGE], {"sp-1": _reading(7.0)}, now=NOW)

    report = monitor.check_readings([FRIDGE], {"sp-1": _reading(0.5)}, now=NOW)

    assert len(report.created) == 1
    types = {alert.type for alert in store.active_alerts()}
    assert types == {AlertType.temperature_high, AlertType.temperature_low}


def test_normal_reading_auto_resolves(store: RecordStore) -> None:
    monitor = SensorMonitor(store)
    created = monitor.check_readings([FRIDGE], {"sp-1": _reading(8.0)}, now=NOW).created

    report = monitor.check_readings([FRIDGE], {"sp-1": _reading(4.2)}, now=NOW)

    assert report.resolved == 1
    alert = store.get_alert(created[0])
    assert alert is not None
    assert alert.resolved is True
    assert alert.resolved_note == AUTO_RESOLVE_NOTE
    assert alert.resolved_at == NOW


def test_missing_reading_is_reported(store: RecordStore) -> None:
    report = SensorMonitor(store).check_readings([FRIDGE], {}, now=NOW)

    assert report.missing == ["sp-1"]
    assert report.checked == 0


def test_invalid_reading_is_skipped(store: RecordStore) -> None:
    other = SensorAssignment(sensor_id="sp-2", pharmacy_id="ph-1", location_type="freezer")

    report = SensorMonitor(store).check_readings(
        [FRIDGE, other],
        {"sp-1": _reading(math.nan), "sp-2": _reading(-10.0, sensor_id="sp-2")},
        now=NOW,
    )

    assert [error.sensor_id for error in report.errors] == ["sp-1"]
    assert report.checked == 1
    assert len(report.created) == 1


def test_check_sensors_pulls_from_client(store: RecordStore) -> None:
    class StubClient:
        def __init__(self) -> None:
            self.requested: list[str] = []

        def latest_readings(self, sensor_ids):
            self.requested = list(sensor_ids)
            return {"sp-1": _reading(10.0)}

    client = StubClient()

    report = SensorMonitor(store).check_sensors(client, [FRIDGE])  # type: ignore[arg-type]

    assert client.requested == ["sp-1"]
    assert len(report.created) == 1
