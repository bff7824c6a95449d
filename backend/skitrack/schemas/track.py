from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class StatsRead(BaseModel):
    """Whole-track aggregate. Meters, seconds, m/s, grade."""

    total_distance: float
    ski_distance: float
    total_ascent: float
    total_descent: float
    ski_vertical: float
    max_speed: float
    avg_speed: float
    avg_ski_speed: float
    max_altitude: Optional[float] = None
    min_altitude: Optional[float] = None
    elevation_delta: float
    duration: float
    moving_time: float
    avg_slope: float
    max_slope: float
    run_count: int
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    avg_heart_rate: Optional[float] = None
    max_heart_rate: Optional[int] = None
    point_count: int = 0

    model_config = ConfigDict(from_attributes=True)


class RunRead(BaseModel):
    id: int
    start_index: int
    end_index: int
    distance: float
    vertical_drop: float
    avg_speed: float
    max_speed: float
    duration: float
    start_elevation: float
    end_elevation: float
    avg_slope: float
    start_time: datetime
    end_time: datetime
    avg_heart_rate: Optional[float] = None
    max_heart_rate: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class PointRead(BaseModel):
    latitude: float
    longitude: float
    elevation: Optional[float] = None
    time: datetime
    heart_rate: Optional[int] = None
    speed: float
    slope: Optional[float] = None
    distance: float
    cumulative_distance: float
    outlier: bool = False

    model_config = ConfigDict(from_attributes=True)


class TrackRead(BaseModel):
    """Summary row returned by list/import."""

    id: int
    name: str
    source: str
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    duration: str  # "HH:MM:SS"
    total_distance_m: float
    ski_vertical_m: float
    run_count: int


class TrackDetail(TrackRead):
    stats: StatsRead
    runs: list[RunRead]


class SpeedBucketRead(BaseModel):
    lower: float
    upper: Optional[float] = None
    count: int
    fraction: float
    relative: float


class HeartRateZoneRead(BaseModel):
    zone: int
    lower: float
    upper: Optional[float] = None
    seconds: float
    fraction: float


class HeartRateZonesRead(BaseModel):
    zones: list[HeartRateZoneRead]
    max_heart_rate: Optional[int] = None


class TimeDistributionRead(BaseModel):
    moving: float
    stationary: float
    ascending: float
    descending: float


class ElevationSummaryRead(BaseModel):
    average: float
    median: float
    minimum: float
    maximum: float


class PerformanceScoreRead(BaseModel):
    total: float
    speed: float
    efficiency: float
    motion: float


class AnalyticsRead(BaseModel):
    speed_histogram: list[SpeedBucketRead]
    # Omitted (null) for tracks without heart-rate samples
    heart_rate_zones: Optional[HeartRateZonesRead] = None
    time_distribution: TimeDistributionRead
    elevation: Optional[ElevationSummaryRead] = None
    score: PerformanceScoreRead
