"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from models.records import AlertType, LocationProfile, SensorAssignment, Severity


class JobStatus(str, Enum):
    """Generation job lifecycle states exposed via the API."""

    pending = "pending"
    running = "running"
    completed = "completed"
    partial = "partial"
    failed = "failed"


class GenerationMode(str, Enum):
    """Which date range a generation job covers."""

    sample = "sample"
    full = "full"
    custom = "custom"


class SensorAssignmentIn(BaseModel):
    """A sensor to seed, and where it lives."""

    sensor_id: str = Field(..., min_length=1)
    pharmacy_id: str = Field(..., min_length=1)
    location_type: str = "storage"
    name: Optional[str] = None

    def to_assignment(self) -> SensorAssignment:
        return SensorAssignment(
            sensor_id=self.sensor_id,
            pharmacy_id=self.pharmacy_id,
            location_type=self.location_type,
            name=self.name,
        )


class GenerationRequest(BaseModel):
    """Payload for starting a synthetic data generation job."""

    mode: GenerationMode = GenerationMode.sample
    sensors: List[SensorAssignmentIn] = Field(default_factory=list)
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class GenerationAccepted(BaseModel):
    """Immediate response payload after accepting a generation job."""

    job_id: str = Field(..., description="Generated identifier for the job.")


class SensorSummary(BaseModel):
    """Records written for one sensor within a job."""

    sensor_id: str
    location: str
    readings_written: int = Field(0, ge=0)
    alerts_written: int = Field(0, ge=0)


class JobError(BaseModel):
    """A sensor that could not be processed, and why."""

    sensor_id: Optional[str] = None
    reason: str


class GenerationJob(BaseModel):
    """Full record representing a generation job."""

    job_id: str
    mode: GenerationMode
    status: JobStatus
    requested_at: datetime
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    finished_at: Optional[datetime] = None
    duration_ms: Optional[int] = Field(
        default=None, description="Duration in milliseconds from start to finish."
    )
    readings_written: int = Field(0, ge=0)
    alerts_written: int = Field(0, ge=0)
    sensors: List[SensorSummary] = Field(default_factory=list)
    errors: List[JobError] = Field(default_factory=list)


class ReadingStats(BaseModel):
    total: int = 0
    by_sensor: int = 0
    oldest: Optional[datetime] = None
    newest: Optional[datetime] = None


class AlertStats(BaseModel):
    total: int = 0
    active: int = 0
    resolved: int = 0
    by_sensor: int = 0


class DataStats(BaseModel):
    """Summary of the generated data currently held in the store."""

    readings: ReadingStats = Field(default_factory=ReadingStats)
    alerts: AlertStats = Field(default_factory=AlertStats)
    has_historical_data: bool = False


class ClearResult(BaseModel):
    readings: int
    alerts: int


class ProfileOut(BaseModel):
    location: str
    base_temperature: float
    normal_variance: float
    seasonal_variance: float
    daily_variance: float
    alert_probability: float
    upper_threshold: float
    lower_threshold: float

    @classmethod
    def from_profile(cls, profile: LocationProfile) -> "ProfileOut":
        return cls(
            location=profile.location,
            base_temperature=profile.base_temperature,
            normal_variance=profile.normal_variance,
            seasonal_variance=profile.seasonal_variance,
            daily_variance=profile.daily_variance,
            alert_probability=profile.alert_probability,
            upper_threshold=profile.upper_threshold,
            lower_threshold=profile.lower_threshold,
        )


class EvaluateRequest(BaseModel):
    temperature: float
    location: str = "storage"


class DecisionOut(BaseModel):
    type: AlertType
    severity: Severity
    threshold_value: float
    deviation: float


class EvaluateResponse(BaseModel):
    location: str
    breach: bool
    decision: Optional[DecisionOut] = None


class AlertOut(BaseModel):
    """Serialized temperature alert."""

    model_config = ConfigDict(from_attributes=True)

    alert_id: str
    sensor_id: str
    pharmacy_id: str
    type: AlertType
    severity: Severity
    message: str
    current_value: float
    threshold_value: float
    location: str
    created_at: datetime
    resolved: bool
    resolved_at: Optional[datetime] = None
    resolved_note: Optional[str] = None
    resolved_by: Optional[str] = None
    updated_at: Optional[datetime] = None


class AlertList(BaseModel):
    alerts: List[AlertOut]
    total_count: int


class ResolveRequest(BaseModel):
    note: Optional[str] = None
    resolved_by: Optional[str] = None


class MonitorReadingIn(BaseModel):
    sensor_id: str
    temperature: float
    humidity: Optional[float] = None
    timestamp: Optional[datetime] = None


class MonitorRequest(BaseModel):
    assignments: List[SensorAssignmentIn]
    readings: List[MonitorReadingIn] = Field(default_factory=list)


class MonitorReport(BaseModel):
    """Outcome of checking live readings against their profiles."""

    checked: int = 0
    created: List[str] = Field(default_factory=list)
    updated: List[str] = Field(default_factory=list)
    resolved: int = 0
    missing: List[str] = Field(default_factory=list)
    errors: List[JobError] = Field(default_factory=list)
