import logging
import os
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, Response, UploadFile
from sqlalchemy.orm import Session

from skitrack.analysis.aggregator import stats_to_dict
from skitrack.analysis.analytics import analyze
from skitrack.analysis.gpx_writer import track_to_gpx
from skitrack.analysis.ingest import is_supported_file
from skitrack.analysis.pipeline import Track, import_track_file, process_track
from skitrack.analysis.points import point_from_dict, point_to_dict
from skitrack.core.config import settings
from skitrack.core.errors import MalformedInput
from skitrack.core.time_utils import seconds_to_hhmmss
from skitrack.db import get_db
from skitrack.models.track import TrackRecord
from skitrack.models.track_file import TrackFile
from skitrack.models.track_run import TrackRun
from skitrack.schemas.track import (
    AnalyticsRead,
    PointRead,
    RunRead,
    StatsRead,
    TrackDetail,
    TrackRead,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tracks", tags=["tracks"])


def _persist_track(db: Session, track: Track) -> TrackRecord:
    """Store a finished Track (summary, stats, raw points and runs)."""
    stats = track.stats
    record = TrackRecord(
        name=track.name,
        source=track.source,
        started_at=stats.start_time,
        ended_at=stats.end_time,
        total_distance_m=stats.total_distance,
        ski_vertical_m=stats.ski_vertical,
        run_count=stats.run_count,
        stats=stats_to_dict(stats),
        points=[point_to_dict(p) for p in track.points],
    )
    db.add(record)
    db.flush()

    for run in track.runs:
        db.add(
            TrackRun(
                track_id=record.id,
                idx=run.id,
                start_index=run.start_index,
                end_index=run.end_index,
                distance_m=run.distance,
                vertical_drop_m=run.vertical_drop,
                avg_speed_mps=run.avg_speed,
                max_speed_mps=run.max_speed,
                duration_s=run.duration,
                start_elevation_m=run.start_elevation,
                end_elevation_m=run.end_elevation,
                avg_slope=run.avg_slope,
                start_time=run.start_time,
                end_time=run.end_time,
                avg_hr=run.avg_heart_rate,
                max_hr=run.max_heart_rate,
            )
        )
    db.commit()
    db.refresh(record)
    return record


def _track_read(record: TrackRecord) -> TrackRead:
    duration = (record.stats or {}).get("duration") or 0
    return TrackRead(
        id=record.id,
        name=record.name,
        source=record.source,
        started_at=record.started_at,
        ended_at=record.ended_at,
        duration=seconds_to_hhmmss(int(duration)),
        total_distance_m=float(record.total_distance_m or 0.0),
        ski_vertical_m=float(record.ski_vertical_m or 0.0),
        run_count=record.run_count or 0,
    )


def _run_read(row: TrackRun) -> RunRead:
    return RunRead(
        id=row.idx,
        start_index=row.start_index,
        end_index=row.end_index,
        distance=row.distance_m,
        vertical_drop=row.vertical_drop_m,
        avg_speed=row.avg_speed_mps,
        max_speed=row.max_speed_mps,
        duration=row.duration_s,
        start_elevation=row.start_elevation_m,
        end_elevation=row.end_elevation_m,
        avg_slope=row.avg_slope,
        start_time=row.start_time,
        end_time=row.end_time,
        avg_heart_rate=row.avg_hr,
        max_heart_rate=row.max_hr,
    )


def _get_track(db: Session, track_id: int) -> TrackRecord:
    record = db.query(TrackRecord).filter(TrackRecord.id == track_id).first()
    if not record:
        raise HTTPException(status_code=404, detail="Track not found")
    return record


def _rebuild(record: TrackRecord) -> Track:
    """Re-derive the annotated track from the stored raw points."""
    points = [point_from_dict(d) for d in record.points or []]
    return process_track(points, name=record.name, source=record.source)


def _parse_bounds(raw: Optional[str]) -> list[float]:
    if not raw:
        return list(settings.speed_bucket_bounds_mps)
    try:
        return [float(x) for x in raw.split(",") if x.strip()]
    except ValueError:
        raise HTTPException(status_code=422, detail="speed_bounds must be comma-separated numbers")


@router.post("/import", response_model=TrackRead)
def import_track(file: UploadFile = File(...), db: Session = Depends(get_db)):
    filename = os.path.basename(file.filename or "import")
    if not is_supported_file(filename):
        raise HTTPException(status_code=400, detail="Only .gpx or .fit files are supported")

    data = file.file.read()
    try:
        track = import_track_file(filename, data)
    except MalformedInput as e:
        logger.warning("Rejected import %r: %s", filename, e)
        raise HTTPException(status_code=422, detail=f"Invalid file: {e}")

    record = _persist_track(db, track)

    # Keep the original upload under uploads/tracks/{id}/
    dir_path = os.path.join(settings.uploads_dir, "tracks", str(record.id))
    os.makedirs(dir_path, exist_ok=True)
    save_path = os.path.join(dir_path, filename)
    with open(save_path, "wb") as out:
        out.write(data)

    db.add(
        TrackFile(
            track_id=record.id,
            filename=filename,
            content_type=file.content_type or "application/octet-stream",
            size_bytes=len(data),
            storage_path=save_path,
            source=track.source,
        )
    )
    db.commit()
    logger.info(
        "Imported %r as track %d: %d points, %d runs",
        filename,
        record.id,
        len(track.points),
        len(track.runs),
    )
    return _track_read(record)


@router.get("/", response_model=list[TrackRead])
def list_tracks(db: Session = Depends(get_db)):
    # Most recent first
    records = db.query(TrackRecord).order_by(TrackRecord.id.desc()).all()
    return [_track_read(r) for r in records]


@router.get("/{track_id}", response_model=TrackDetail)
def get_track(track_id: int, db: Session = Depends(get_db)):
    record = _get_track(db, track_id)
    rows = db.query(TrackRun).filter(TrackRun.track_id == track_id).order_by(TrackRun.idx).all()
    summary = _track_read(record)
    return TrackDetail(
        **summary.model_dump(),
        stats=StatsRead.model_validate(record.stats),
        runs=[_run_read(r) for r in rows],
    )


@router.get("/{track_id}/runs", response_model=list[RunRead])
def get_track_runs(track_id: int, db: Session = Depends(get_db)):
    _get_track(db, track_id)
    rows = db.query(TrackRun).filter(TrackRun.track_id == track_id).order_by(TrackRun.idx).all()
    return [_run_read(r) for r in rows]


@router.get("/{track_id}/points", response_model=list[PointRead])
def get_track_points(track_id: int, db: Session = Depends(get_db)):
    track = _rebuild(_get_track(db, track_id))
    return [PointRead.model_validate(p) for p in track.points]


@router.get("/{track_id}/analytics", response_model=AnalyticsRead)
def get_track_analytics(
    track_id: int,
    max_hr: Optional[int] = Query(None, gt=0),
    speed_bounds: Optional[str] = Query(None, description="Comma-separated m/s boundaries"),
    db: Session = Depends(get_db),
):
    track = _rebuild(_get_track(db, track_id))
    bounds = _parse_bounds(speed_bounds)
    try:
        result = analyze(track, bounds, max_hr or settings.hr_max)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return AnalyticsRead.model_validate(asdict(result))


@router.get("/{track_id}/gpx")
def export_track_gpx(track_id: int, db: Session = Depends(get_db)):
    record = _get_track(db, track_id)
    track = _rebuild(record)
    try:
        xml = track_to_gpx(track)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    safe_name = "".join(c if c.isalnum() or c in "-_" else "_" for c in record.name) or "track"
    return Response(
        content=xml,
        media_type="application/gpx+xml",
        headers={"Content-Disposition": f'attachment; filename="{safe_name}.gpx"'},
    )


@router.delete("/{track_id}")
def delete_track(track_id: int, db: Session = Depends(get_db)):
    record = _get_track(db, track_id)
    # SQLite does not enforce ON DELETE CASCADE by default
    db.query(TrackRun).filter(TrackRun.track_id == track_id).delete()
    db.query(TrackFile).filter(TrackFile.track_id == track_id).delete()
    db.delete(record)
    db.commit()
    return {"message": "Track deleted"}
