from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from skitrack.schemas.track import PointRead, RunRead, StatsRead, TrackRead


class StartIn(BaseModel):
    permission_granted: bool = True
    foreground: bool = True
    name: Optional[str] = None


class SampleIn(BaseModel):
    """One raw fix from the device. Coordinates are validated by the engine."""

    latitude: float
    longitude: float
    timestamp: datetime
    altitude: Optional[float] = None
    accuracy: Optional[float] = None
    speed: Optional[float] = None
    heart_rate: Optional[int] = None


class SampleResult(BaseModel):
    accepted: bool
    point: Optional[PointRead] = None
    stats: StatsRead


class RecordingStatus(BaseModel):
    state: str
    name: Optional[str] = None
    started_at: Optional[datetime] = None
    elapsed_seconds: float = 0.0
    point_count: int = 0
    pending_points: int = 0
    checkpointed_points: int = 0
    last_location: Optional[list[float]] = None
    last_accuracy: Optional[float] = None
    signal_lost: bool = False
    error: Optional[str] = None
    warning: Optional[str] = None
    stats: StatsRead
    runs: list[RunRead] = []


class StopResult(BaseModel):
    track: Optional[TrackRead] = None


class RecoveryRead(BaseModel):
    name: str
    started_at: Optional[datetime] = None
    point_count: int
    last_point_time: datetime
