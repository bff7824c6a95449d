"""Running whole-track statistics and per-run reduction.

The same aggregator backs live recording (snapshot after every sample)
and batch import (snapshot once at the end). Only sums, counts and
extrema are kept; averages are derived in `snapshot()`.
"""
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Sequence

from skitrack.analysis.kinematics import fresh_slope
from skitrack.analysis.points import TrackPoint
from skitrack.analysis.segmentation import Segment
from skitrack.core.constants import (
    MAX_PLAUSIBLE_SPEED_MPS,
    MAX_STEP_SECONDS,
    MOVING_SPEED_MPS,
)


@dataclass(frozen=True)
class Run:
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
    avg_heart_rate: float | None
    max_heart_rate: int | None
    speed_sum: float = 0.0
    speed_samples: int = 0


@dataclass(frozen=True)
class Stats:
    total_distance: float = 0.0
    ski_distance: float = 0.0
    total_ascent: float = 0.0
    total_descent: float = 0.0
    ski_vertical: float = 0.0
    max_speed: float = 0.0
    avg_speed: float = 0.0
    avg_ski_speed: float = 0.0
    max_altitude: float | None = None
    min_altitude: float | None = None
    elevation_delta: float = 0.0
    duration: float = 0.0
    moving_time: float = 0.0
    avg_slope: float = 0.0
    max_slope: float = 0.0
    run_count: int = 0
    start_time: datetime | None = None
    end_time: datetime | None = None
    avg_heart_rate: float | None = None
    max_heart_rate: int | None = None
    point_count: int = 0


def _plausible(speed: float) -> bool:
    return 0 < speed <= MAX_PLAUSIBLE_SPEED_MPS


def build_run(points: Sequence[TrackPoint], segment: Segment, run_id: int) -> Run:
    """Reduce the points of one finalized descent into a Run."""
    span = points[segment.start_index : segment.end_index + 1]
    speeds = [p.speed for p in span if _plausible(p.speed)]
    hrs = [p.heart_rate for p in span if p.heart_rate]
    distance = segment.distance
    duration = segment.duration
    drop = segment.vertical_drop

    if speeds:
        avg_speed = sum(speeds) / len(speeds)
    else:
        avg_speed = distance / duration if duration > 0 else 0.0

    return Run(
        id=run_id,
        start_index=segment.start_index,
        end_index=segment.end_index,
        distance=distance,
        vertical_drop=drop,
        avg_speed=avg_speed,
        max_speed=max(speeds, default=0.0),
        duration=duration,
        start_elevation=segment.start.elevation,
        end_elevation=segment.end.elevation,
        avg_slope=drop / distance if distance > 0 else 0.0,
        start_time=segment.start.time,
        end_time=segment.end.time,
        avg_heart_rate=sum(hrs) / len(hrs) if hrs else None,
        max_heart_rate=max(hrs) if hrs else None,
        speed_sum=sum(speeds),
        speed_samples=len(speeds),
    )


class StatsAggregator:
    def __init__(self):
        self.runs: list[Run] = []
        self._point_count = 0
        self._start_time: datetime | None = None
        self._end_time: datetime | None = None
        self._distance = 0.0
        self._ascent = 0.0
        self._descent = 0.0
        self._last_elevation: float | None = None
        self._max_altitude: float | None = None
        self._min_altitude: float | None = None
        self._moving_time = 0.0
        self._speed_sum = 0.0
        self._speed_count = 0
        self._max_speed = 0.0
        self._hr_sum = 0
        self._hr_count = 0
        self._hr_max: int | None = None
        self._slope_sum = 0.0
        self._slope_count = 0
        self._slope_max = 0.0
        self._ski_distance = 0.0
        self._ski_vertical = 0.0
        self._ski_speed_sum = 0.0
        self._ski_speed_count = 0

    def ingest(self, point: TrackPoint, previous: TrackPoint | None) -> None:
        """Update the running state with one annotated point."""
        self._point_count += 1
        if self._start_time is None:
            self._start_time = point.time
        if self._end_time is None or point.time > self._end_time:
            self._end_time = point.time

        if previous is not None:
            dt = (point.time - previous.time).total_seconds()
            if dt > 0 and not point.outlier:
                self._distance += point.distance
                if dt < MAX_STEP_SECONDS and point.speed > MOVING_SPEED_MPS:
                    self._moving_time += dt

        if point.elevation is not None:
            if self._last_elevation is not None:
                delta = point.elevation - self._last_elevation
                if delta > 0:
                    self._ascent += delta
                else:
                    self._descent -= delta
            self._last_elevation = point.elevation
            if self._max_altitude is None or point.elevation > self._max_altitude:
                self._max_altitude = point.elevation
            if self._min_altitude is None or point.elevation < self._min_altitude:
                self._min_altitude = point.elevation

        if _plausible(point.speed):
            self._speed_sum += point.speed
            self._speed_count += 1
            self._max_speed = max(self._max_speed, point.speed)

        if point.heart_rate:
            self._hr_sum += point.heart_rate
            self._hr_count += 1
            if self._hr_max is None or point.heart_rate > self._hr_max:
                self._hr_max = point.heart_rate

        # Descending grade only, stored positive
        if fresh_slope(point, previous) and point.slope < 0:
            grade = -point.slope
            self._slope_sum += grade
            self._slope_count += 1
            self._slope_max = max(self._slope_max, grade)

    def close_run(self, run: Run) -> None:
        self.runs.append(run)
        self._ski_distance += run.distance
        self._ski_vertical += run.vertical_drop
        self._ski_speed_sum += run.speed_sum
        self._ski_speed_count += run.speed_samples

    def snapshot(self) -> Stats:
        """Immutable view of the current totals; does not touch running state."""
        duration = 0.0
        if self._start_time is not None and self._end_time is not None:
            duration = (self._end_time - self._start_time).total_seconds()
        elevation_delta = 0.0
        if self._max_altitude is not None and self._min_altitude is not None:
            elevation_delta = self._max_altitude - self._min_altitude
        return Stats(
            total_distance=self._distance,
            ski_distance=self._ski_distance,
            total_ascent=self._ascent,
            total_descent=self._descent,
            ski_vertical=self._ski_vertical,
            max_speed=self._max_speed,
            avg_speed=self._speed_sum / self._speed_count if self._speed_count else 0.0,
            avg_ski_speed=(
                self._ski_speed_sum / self._ski_speed_count if self._ski_speed_count else 0.0
            ),
            max_altitude=self._max_altitude,
            min_altitude=self._min_altitude,
            elevation_delta=elevation_delta,
            duration=duration,
            moving_time=self._moving_time,
            avg_slope=self._slope_sum / self._slope_count if self._slope_count else 0.0,
            max_slope=self._slope_max,
            run_count=len(self.runs),
            start_time=self._start_time,
            end_time=self._end_time,
            avg_heart_rate=self._hr_sum / self._hr_count if self._hr_count else None,
            max_heart_rate=self._hr_max,
            point_count=self._point_count,
        )


def _jsonable(d: dict) -> dict:
    return {k: v.isoformat() if isinstance(v, datetime) else v for k, v in d.items()}


def stats_to_dict(stats: Stats) -> dict:
    return _jsonable(asdict(stats))
