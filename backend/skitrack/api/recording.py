import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from skitrack.analysis.aggregator import Stats
from skitrack.analysis.points import LocationSample
from skitrack.api.tracks import _persist_track, _track_read
from skitrack.core.config import settings
from skitrack.core.errors import (
    AcquisitionTimeout,
    CheckpointWriteFailure,
    InvalidSample,
    InvalidTransition,
    PermissionDenied,
    RecoveryCorrupt,
    SkiTrackError,
)
from skitrack.core.time_utils import to_local_datetime
from skitrack.db import get_db
from skitrack.models.track import TrackRecord
from skitrack.recording.session import RecordingSession, RecordingState
from skitrack.schemas.recording import (
    RecordingStatus,
    RecoveryRead,
    SampleIn,
    SampleResult,
    StartIn,
    StopResult,
)
from skitrack.schemas.track import PointRead, RunRead, StatsRead
from skitrack.services.geocode import reverse_geocode

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/recording", tags=["recording"])

_ACTIVE = (
    RecordingState.ACQUIRING,
    RecordingState.RECORDING,
    RecordingState.PAUSED,
    RecordingState.RECOVERED,
)


def _http_error(e: SkiTrackError) -> HTTPException:
    if isinstance(e, InvalidSample):
        return HTTPException(status_code=422, detail=str(e))
    if isinstance(e, PermissionDenied):
        return HTTPException(status_code=403, detail=str(e))
    if isinstance(e, AcquisitionTimeout):
        return HTTPException(status_code=408, detail=str(e))
    if isinstance(e, InvalidTransition):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, RecoveryCorrupt):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, CheckpointWriteFailure):
        return HTTPException(status_code=503, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))


def _store(request: Request):
    return request.app.state.checkpoint_store


def _session(request: Request) -> RecordingSession:
    session = request.app.state.recording
    if session is None:
        raise HTTPException(status_code=409, detail="No recording in progress")
    return session


def _active(request: Request) -> bool:
    session = request.app.state.recording
    return session is not None and session.state in _ACTIVE


def _status(session: Optional[RecordingSession]) -> RecordingStatus:
    if session is None:
        return RecordingStatus(state=RecordingState.IDLE.value, stats=StatsRead.model_validate(Stats()))
    return RecordingStatus(
        state=session.state.value,
        name=session.name,
        started_at=session.started_at,
        elapsed_seconds=session.elapsed_seconds,
        point_count=len(session.points),
        pending_points=session.pending_points,
        checkpointed_points=session.checkpointed_points,
        last_location=list(session.last_location) if session.last_location else None,
        last_accuracy=session.last_accuracy,
        signal_lost=session.signal_lost,
        error=session.error,
        warning=session.warning,
        stats=StatsRead.model_validate(session.snapshot()),
        runs=[RunRead.model_validate(r) for r in session.runs],
    )


def _recording_name(session: RecordingSession) -> Optional[str]:
    """Name a stopped recording after where it started, when geocoding is on."""
    if not settings.geocode_enabled or not session.points:
        return None
    first = session.points[0]
    place = reverse_geocode(first.latitude, first.longitude)
    if not place:
        return None
    day = to_local_datetime(first.time, settings.timezone).date().isoformat()
    return f"{place} {day}"


@router.post("/start", response_model=RecordingStatus)
def start_recording(payload: StartIn, request: Request):
    if _active(request):
        raise HTTPException(status_code=409, detail="A recording is already in progress")
    session = RecordingSession(_store(request), name=payload.name)
    request.app.state.recording = session
    request.app.state.recording_track_id = None
    try:
        session.start(permission_granted=payload.permission_granted, foreground=payload.foreground)
    except SkiTrackError as e:
        raise _http_error(e) from e
    return _status(session)


@router.post("/samples", response_model=SampleResult)
def add_sample(payload: SampleIn, request: Request):
    session = _session(request)
    sample = LocationSample(**payload.model_dump())
    try:
        point = session.add_sample(sample)
    except SkiTrackError as e:
        raise _http_error(e) from e
    return SampleResult(
        accepted=point is not None,
        point=PointRead.model_validate(point) if point is not None else None,
        stats=StatsRead.model_validate(session.snapshot()),
    )


@router.post("/fix-unavailable", response_model=RecordingStatus)
def report_fix_unavailable(request: Request):
    """The device has permission but currently no position fix."""
    session = _session(request)
    try:
        session.fix_unavailable()
    except SkiTrackError as e:
        raise _http_error(e) from e
    return _status(session)


@router.post("/pause", response_model=RecordingStatus)
def pause_recording(request: Request):
    session = _session(request)
    try:
        session.pause()
    except SkiTrackError as e:
        raise _http_error(e) from e
    return _status(session)


@router.post("/resume", response_model=RecordingStatus)
def resume_recording(request: Request):
    session = _session(request)
    try:
        session.resume()
    except SkiTrackError as e:
        raise _http_error(e) from e
    return _status(session)


@router.get("/status", response_model=RecordingStatus)
def recording_status(request: Request):
    session = request.app.state.recording
    if session is not None:
        try:
            session.check_acquisition()
        except AcquisitionTimeout:
            # reported through the status error field
            pass
    return _status(session)


@router.post("/stop", response_model=StopResult)
def stop_recording(request: Request, db: Session = Depends(get_db)):
    session = _session(request)
    if session.state is RecordingState.STOPPED:
        track_id = request.app.state.recording_track_id
        record = db.query(TrackRecord).filter(TrackRecord.id == track_id).first() if track_id else None
        if record is not None:
            return StopResult(track=_track_read(record))

    name = None if session.state is RecordingState.STOPPED else _recording_name(session)
    track = session.stop_recording(name=name)
    if track is None:
        return StopResult(track=None)
    record = _persist_track(db, track)
    request.app.state.recording_track_id = record.id
    logger.info("Saved recording %r as track %d", track.name, record.id)
    return StopResult(track=_track_read(record))


@router.post("/discard", response_model=RecordingStatus)
def discard_recording(request: Request):
    session = _session(request)
    session.discard_recording()
    return _status(session)


@router.get("/recovery", response_model=Optional[RecoveryRead])
def check_recovery(request: Request):
    if _active(request):
        return None
    info = RecordingSession.check_for_recovery(_store(request))
    if info is None:
        return None
    return RecoveryRead(
        name=info.name,
        started_at=info.started_at,
        point_count=info.point_count,
        last_point_time=info.last_point_time,
    )


@router.post("/recovery", response_model=RecordingStatus)
def recover_recording(request: Request):
    if _active(request):
        raise HTTPException(status_code=409, detail="A recording is already in progress")
    try:
        session = RecordingSession.recover_recording(_store(request))
    except SkiTrackError as e:
        raise _http_error(e) from e
    request.app.state.recording = session
    request.app.state.recording_track_id = None
    return _status(session)


@router.delete("/recovery")
def clear_recovery(request: Request):
    if _active(request):
        raise HTTPException(status_code=409, detail="A recording is already in progress")
    try:
        RecordingSession.clear_recovery(_store(request))
    except SkiTrackError as e:
        raise _http_error(e) from e
    return {"message": "Recovery data cleared"}
