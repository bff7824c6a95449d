"""Presentation-ready buckets and the composite performance score.

Everything here is computed on demand from a Track (or its Stats) and
never mutates engine state. Speeds are m/s; bucket boundaries are
supplied by the caller in the unit it already converted to.
"""
import statistics
from dataclasses import dataclass
from typing import Sequence

from skitrack.analysis.aggregator import Stats
from skitrack.analysis.points import TrackPoint
from skitrack.core.constants import (
    HR_ZONE_FIXED_BPM,
    HR_ZONE_FRACTIONS,
    MAX_PLAUSIBLE_SPEED_MPS,
    MAX_STEP_SECONDS,
    MOVING_SPEED_MPS,
    SCORE_REFERENCE_SKI_SPEED_MPS,
    SCORE_REFERENCE_VERTICAL_PER_RUN_M,
    SCORE_WEIGHTS,
)


@dataclass(frozen=True)
class SpeedBucket:
    lower: float
    upper: float | None  # None = open-ended
    count: int
    fraction: float  # share of all counted points
    relative: float  # share of the fullest bucket, for bar widths


@dataclass(frozen=True)
class HeartRateZone:
    zone: int
    lower: float  # bpm
    upper: float | None
    seconds: float
    fraction: float


@dataclass(frozen=True)
class HeartRateZones:
    zones: tuple[HeartRateZone, ...]
    max_heart_rate: int | None  # None when fixed bpm bounds were used


@dataclass(frozen=True)
class TimeDistribution:
    moving: float = 0.0
    stationary: float = 0.0
    ascending: float = 0.0
    descending: float = 0.0


@dataclass(frozen=True)
class ElevationSummary:
    average: float
    median: float
    minimum: float
    maximum: float


@dataclass(frozen=True)
class PerformanceScore:
    total: float
    speed: float
    efficiency: float
    motion: float


@dataclass(frozen=True)
class Analytics:
    speed_histogram: tuple[SpeedBucket, ...]
    heart_rate_zones: HeartRateZones | None
    time_distribution: TimeDistribution
    elevation: ElevationSummary | None
    score: PerformanceScore


def speed_histogram(points: Sequence[TrackPoint], bounds: Sequence[float]) -> tuple[SpeedBucket, ...]:
    """Count point speeds into [0, b0), [b0, b1), ..., [bn, inf)."""
    bounds = list(bounds)
    if not bounds or any(b <= 0 for b in bounds) or any(
        a >= b for a, b in zip(bounds, bounds[1:])
    ):
        raise ValueError("speed bounds must be positive and strictly increasing")

    counts = [0] * (len(bounds) + 1)
    for p in points:
        if not 0 <= p.speed <= MAX_PLAUSIBLE_SPEED_MPS:
            continue
        idx = len(bounds)
        for i, b in enumerate(bounds):
            if p.speed < b:
                idx = i
                break
        counts[idx] += 1

    total = sum(counts)
    peak = max(counts)
    lowers = [0.0] + bounds
    uppers = bounds + [None]
    return tuple(
        SpeedBucket(
            lower=lo,
            upper=hi,
            count=c,
            fraction=c / total if total else 0.0,
            relative=c / peak if peak else 0.0,
        )
        for lo, hi, c in zip(lowers, uppers, counts)
    )


def heart_rate_zones(
    points: Sequence[TrackPoint],
    max_heart_rate: int | None = None,
) -> HeartRateZones | None:
    """Time-weighted occupancy of five HR zones; None without HR data.

    Each HR sample is credited with the time until the next HR sample,
    clamped to [1 s, MAX_STEP_SECONDS]; the last sample counts 1 s.
    """
    samples = [(p.time, p.heart_rate) for p in points if p.heart_rate]
    if not samples:
        return None

    if max_heart_rate:
        bounds = [f * max_heart_rate for f in HR_ZONE_FRACTIONS]
    else:
        bounds = [float(b) for b in HR_ZONE_FIXED_BPM]

    seconds = [0.0] * (len(bounds) + 1)
    for i, (t, hr) in enumerate(samples):
        if i + 1 < len(samples):
            dt = (samples[i + 1][0] - t).total_seconds()
            dt = max(1.0, min(dt, MAX_STEP_SECONDS))
        else:
            dt = 1.0
        zone = len(bounds)
        for z, b in enumerate(bounds):
            if hr < b:
                zone = z
                break
        seconds[zone] += dt

    total = sum(seconds)
    lowers = [0.0] + bounds
    uppers = bounds + [None]
    zones = tuple(
        HeartRateZone(zone=i + 1, lower=lo, upper=hi, seconds=s, fraction=s / total)
        for i, (lo, hi, s) in enumerate(zip(lowers, uppers, seconds))
    )
    return HeartRateZones(zones=zones, max_heart_rate=max_heart_rate or None)


def time_distribution(points: Sequence[TrackPoint]) -> TimeDistribution:
    moving = stationary = ascending = descending = 0.0
    for prev, p in zip(points, points[1:]):
        dt = (p.time - prev.time).total_seconds()
        if dt <= 0 or dt >= MAX_STEP_SECONDS:
            continue
        if p.speed > MOVING_SPEED_MPS and not p.outlier:
            moving += dt
            if p.elevation is not None and prev.elevation is not None:
                if p.elevation > prev.elevation:
                    ascending += dt
                elif p.elevation < prev.elevation:
                    descending += dt
        else:
            stationary += dt
    return TimeDistribution(
        moving=moving, stationary=stationary, ascending=ascending, descending=descending
    )


def elevation_summary(points: Sequence[TrackPoint]) -> ElevationSummary | None:
    elevations = [p.elevation for p in points if p.elevation is not None]
    if not elevations:
        return None
    return ElevationSummary(
        average=sum(elevations) / len(elevations),
        median=statistics.median(elevations),
        minimum=min(elevations),
        maximum=max(elevations),
    )


def _clamp01(x: float) -> float:
    return max(0.0, min(1.0, x))


def performance_score(stats: Stats) -> PerformanceScore:
    """0-100 composite of ski speed, vertical per run and time in motion.

    Each part is clamped on its own; a missing input scores that part 0.
    """
    speed = _clamp01(stats.avg_ski_speed / SCORE_REFERENCE_SKI_SPEED_MPS)
    efficiency = 0.0
    if stats.run_count:
        efficiency = _clamp01(
            stats.ski_vertical / stats.run_count / SCORE_REFERENCE_VERTICAL_PER_RUN_M
        )
    motion = _clamp01(stats.moving_time / stats.duration) if stats.duration > 0 else 0.0

    parts = {
        "speed": speed * SCORE_WEIGHTS["speed"],
        "efficiency": efficiency * SCORE_WEIGHTS["efficiency"],
        "motion": motion * SCORE_WEIGHTS["motion"],
    }
    total = max(0.0, min(100.0, sum(parts.values())))
    return PerformanceScore(total=round(total, 1), **{k: round(v, 1) for k, v in parts.items()})


def analyze(
    track,
    speed_bounds: Sequence[float],
    max_heart_rate: int | None = None,
) -> Analytics:
    """Bundle every derived view of a finished Track."""
    return Analytics(
        speed_histogram=speed_histogram(track.points, speed_bounds),
        heart_rate_zones=heart_rate_zones(track.points, max_heart_rate),
        time_distribution=time_distribution(track.points),
        elevation=elevation_summary(track.points),
        score=performance_score(track.stats),
    )
