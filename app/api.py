"""HTTP route definitions for the service."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.schemas import (
    AlertList,
    AlertOut,
    ClearResult,
    DataStats,
    DecisionOut,
    EvaluateRequest,
    EvaluateResponse,
    GenerationAccepted,
    GenerationJob,
    GenerationMode,
    GenerationRequest,
    JobStatus,
    MonitorReport,
    MonitorRequest,
    ProfileOut,
    ResolveRequest,
    SensorAssignmentIn,
)
from clients.sensorpush import SensorPushClient, SensorPushError
from models.profiles import PROFILES, get_profile
from models.records import AlertType, SensorReading, Severity
from services.evaluator import InvalidReading, ThresholdEvaluator
from services.monitor import SensorMonitor
from services.seeding import SeedingService, build_default_seeding_service
from settings import get_settings
from storage.record_store import RecordStore, build_default_store

router = APIRouter()


def get_seeding_service() -> SeedingService:
    return build_default_seeding_service()


def get_store() -> RecordStore:
    return build_default_store()


def get_evaluator() -> ThresholdEvaluator:
    return ThresholdEvaluator()


@router.get("/profiles", response_model=List[ProfileOut], summary="List location profiles.")
async def list_profiles() -> List[ProfileOut]:
    return [ProfileOut.from_profile(profile) for profile in PROFILES.values()]


@router.get(
    "/profiles/{location}",
    response_model=ProfileOut,
    summary="Fetch a profile; unknown locations fall back to storage.",
)
async def read_profile(location: str) -> ProfileOut:
    return ProfileOut.from_profile(get_profile(location))


@router.post(
    "/evaluate",
    response_model=EvaluateResponse,
    summary="Classify a temperature against a location profile.",
)
async def evaluate_temperature(
    payload: EvaluateRequest,
    evaluator: ThresholdEvaluator = Depends(get_evaluator),
) -> EvaluateResponse:
    profile = get_profile(payload.location)
    try:
        decision = evaluator.evaluate(payload.temperature, profile)
    except InvalidReading as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    if decision is None:
        return EvaluateResponse(location=profile.location, breach=False)
    return EvaluateResponse(
        location=profile.location,
        breach=True,
        decision=DecisionOut(
            type=decision.type,
            severity=decision.severity,
            threshold_value=decision.threshold_value,
            deviation=decision.deviation,
        ),
    )


@router.post(
    "/generate",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=GenerationAccepted,
    summary="Start generating synthetic readings and alerts.",
)
async def start_generation(
    payload: GenerationRequest,
    service: SeedingService = Depends(get_seeding_service),
) -> GenerationAccepted:
    try:
        job_id = service.enqueue(payload)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    return GenerationAccepted(job_id=job_id)


@router.get(
    "/generate",
    response_model=List[GenerationJob],
    summary="List generation jobs, newest first.",
)
async def list_generation_jobs(
    job_status: Optional[JobStatus] = Query(None, alias="status"),
    mode: Optional[GenerationMode] = None,
    limit: int = Query(50, ge=1, le=500),
    service: SeedingService = Depends(get_seeding_service),
) -> List[GenerationJob]:
    return service.list_jobs(status=job_status, mode=mode, limit=limit)


@router.get(
    "/generate/{job_id}",
    response_model=GenerationJob,
    summary="Fetch the status of a generation job.",
)
async def get_generation_job(
    job_id: str,
    service: SeedingService = Depends(get_seeding_service),
) -> GenerationJob:
    try:
        return service.fetch_job(job_id)
    except KeyError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc


@router.get("/data/stats", response_model=DataStats, summary="Summarize stored data.")
async def data_stats(store: RecordStore = Depends(get_store)) -> DataStats:
    return store.stats(history_year=get_settings().history_start.year)


@router.delete("/data", response_model=ClearResult, summary="Delete all stored data.")
async def clear_data(
    confirm: bool = Query(False, description="Must be true to delete."),
    store: RecordStore = Depends(get_store),
) -> ClearResult:
    if not confirm:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Confirmation required. Add ?confirm=true to the URL.",
        )
    readings, alerts = store.clear()
    return ClearResult(readings=readings, alerts=alerts)


@router.get("/alerts", response_model=AlertList, summary="List alerts.")
async def list_alerts(
    pharmacy_id: Optional[str] = None,
    resolved: Optional[bool] = None,
    severity: Optional[Severity] = None,
    alert_type: Optional[AlertType] = Query(None, alias="type"),
    store: RecordStore = Depends(get_store),
) -> AlertList:
    alerts = store.list_alerts(
        pharmacy_id=pharmacy_id, resolved=resolved, severity=severity, alert_type=alert_type
    )
    return AlertList(
        alerts=[AlertOut.model_validate(alert) for alert in alerts],
        total_count=len(alerts),
    )


@router.post(
    "/alerts/{alert_id}/resolve",
    response_model=AlertOut,
    summary="Resolve an alert manually.",
)
async def resolve_alert(
    alert_id: str,
    payload: ResolveRequest,
    store: RecordStore = Depends(get_store),
) -> AlertOut:
    try:
        alert = store.resolve_alert(
            alert_id, note=payload.note, resolved_by=payload.resolved_by
        )
    except KeyError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    return AlertOut.model_validate(alert)


@router.post(
    "/monitor/check",
    response_model=MonitorReport,
    summary="Check submitted live readings and raise or resolve alerts.",
)
async def check_readings(
    payload: MonitorRequest,
    store: RecordStore = Depends(get_store),
    evaluator: ThresholdEvaluator = Depends(get_evaluator),
) -> MonitorReport:
    now = datetime.now(timezone.utc)
    readings = {
        item.sensor_id: SensorReading(
            sensor_id=item.sensor_id,
            temperature=item.temperature,
            humidity=item.humidity,
            timestamp=item.timestamp or now,
        )
        for item in payload.readings
    }
    monitor = SensorMonitor(store, evaluator)
    return monitor.check_readings(
        [assignment.to_assignment() for assignment in payload.assignments], readings, now=now
    )


@router.post(
    "/monitor/sync",
    response_model=MonitorReport,
    summary="Pull latest SensorPush samples for the given sensors and check them.",
)
def sync_from_sensorpush(
    assignments: List[SensorAssignmentIn],
    store: RecordStore = Depends(get_store),
) -> MonitorReport:
    settings = get_settings()
    if not settings.sensorpush_email or not settings.sensorpush_password:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="SensorPush credentials are not configured.",
        )
    client = SensorPushClient(
        email=settings.sensorpush_email,
        password=settings.sensorpush_password,
        base_url=settings.sensorpush_base_url,
    )
    try:
        return SensorMonitor(store).check_sensors(
            client, [assignment.to_assignment() for assignment in assignments]
        )
    except SensorPushError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=str(exc),
        ) from exc
    finally:
        client.close()


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
