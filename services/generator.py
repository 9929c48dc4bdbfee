"""Synthetic hourly temperature/humidity series for seeding demo data."""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from itertools import islice
from typing import Iterable, Iterator, List, Optional, TypeVar

from models.profiles import resolve_profile
from models.records import LocationProfile, SensorReading, TemperatureAlert
from services.evaluator import ThresholdEvaluator

T = TypeVar("T")

ARCHIVE_AFTER = timedelta(days=20)
RESOLUTION_WINDOW = timedelta(hours=24)
RESOLUTION_NOTES = (
    "Temperature returned to normal range",
    "Manually resolved by staff",
)


@dataclass(slots=True)
class GeneratedSample:
    """One synthetic reading and the alert it raised, if any."""

    reading: SensorReading
    alert: Optional[TemperatureAlert] = None


def _as_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def iter_chunks(items: Iterable[T], size: int) -> Iterator[List[T]]:
    """Yield lists of at most ``size`` items without materialising the input."""
    if size <= 0:
        raise ValueError(f"Chunk size must be positive, got {size}")
    iterator = iter(items)
    while True:
        chunk = list(islice(iterator, size))
        if not chunk:
            return
        yield chunk


class SyntheticSeriesGenerator:
    """Lazily produces hourly readings over a date range.

    The random source only needs ``random()`` and ``uniform()``, so a seeded
    ``random.Random`` (or a scripted stand-in) makes the output reproducible.
    """

    def __init__(
        self,
        evaluator: Optional[ThresholdEvaluator] = None,
        rng: Optional[random.Random] = None,
        seed: Optional[int] = None,
        archive_after: timedelta = ARCHIVE_AFTER,
        resolve_probability: float = 0.9,
    ) -> None:
        self.evaluator = evaluator or ThresholdEvaluator()
        self.rng = rng if rng is not None else random.Random(seed)
        self.archive_after = archive_after
        self.resolve_probability = resolve_probability

    def generate(
        self,
        profile: LocationProfile | str | None,
        start_date: date | datetime,
        end_date: date | datetime,
        *,
        sensor_id: str,
        pharmacy_id: str,
        location: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Iterator[GeneratedSample]:
        resolved = resolve_profile(profile)
        location_name = location or resolved.location
        archive_cutoff = (now or datetime.now(timezone.utc)) - self.archive_after

        current = _as_date(start_date)
        last = _as_date(end_date)
        while current <= last:
            yield from self._generate_day(
                resolved, current, sensor_id, pharmacy_id, location_name, archive_cutoff
            )
            current += timedelta(days=1)

    def _generate_day(
        self,
        profile: LocationProfile,
        day: date,
        sensor_id: str,
        pharmacy_id: str,
        location: str,
        archive_cutoff: datetime,
    ) -> Iterator[GeneratedSample]:
        midnight = datetime.combine(day, time(0), tzinfo=timezone.utc)
        for hour in range(24):
            timestamp = midnight.replace(
                hour=hour,
                minute=int(self.rng.random() * 60),
                second=int(self.rng.random() * 60),
            )
            reading = SensorReading(
                sensor_id=sensor_id,
                temperature=self.temperature_at(profile, timestamp),
                humidity=self.humidity_at(profile.location, timestamp),
                timestamp=timestamp,
                archived=timestamp < archive_cutoff,
            )

            decision = self.evaluator.evaluate(reading.temperature, profile)
            alert = None
            if decision is not None:
                alert = self.evaluator.build_alert(reading, decision, pharmacy_id, location)
                self._settle_historically(alert)
            yield GeneratedSample(reading=reading, alert=alert)

    def temperature_at(self, profile: LocationProfile, timestamp: datetime) -> float:
        day_of_year = timestamp.timetuple().tm_yday
        seasonal_factor = math.sin(day_of_year / 365 * 2 * math.pi)
        daily_factor = math.sin(timestamp.hour / 24 * 2 * math.pi)

        variance = profile.normal_variance
        temperature = profile.base_temperature
        temperature += seasonal_factor * profile.seasonal_variance
        temperature += daily_factor * profile.daily_variance
        temperature += self.rng.uniform(-variance, variance)

        if self.rng.random() < profile.alert_probability:
            direction = 1 if self.rng.random() > 0.5 else -1
            temperature += direction * (variance + self.rng.uniform(0, 3))

        return round(temperature, 1)

    def humidity_at(self, location: str, timestamp: datetime) -> float:
        humidity = 60.0 if location == "freezer" else 55.0
        humidity += math.sin(timestamp.hour / 24 * 2 * math.pi) * 5
        humidity += self.rng.uniform(-10, 10)
        return max(0.0, min(100.0, round(humidity, 1)))

    def _settle_historically(self, alert: TemperatureAlert) -> None:
        if self.rng.random() >= self.resolve_probability:
            return
        offset = timedelta(seconds=self.rng.random() * RESOLUTION_WINDOW.total_seconds())
        note = RESOLUTION_NOTES[0] if self.rng.random() < 0.5 else RESOLUTION_NOTES[1]
        alert.resolve(note=note, at=alert.created_at + offset)
