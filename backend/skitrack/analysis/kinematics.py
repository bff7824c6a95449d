import math
from dataclasses import replace
from typing import Iterable

from skitrack.analysis.points import TrackPoint
from skitrack.core.constants import (
    EARTH_RADIUS_M,
    MAX_PLAUSIBLE_SPEED_MPS,
    SLOPE_MIN_DISTANCE_M,
)


def haversine_m(lat1, lon1, lat2, lon2) -> float:
    """Return great‑circle distance in meters between two WGS84 points.

    Uses the standard haversine formula on a sphere; every distance in the
    engine goes through here so run thresholds stay consistent.
    """
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def _plausible_speed(speed: float | None) -> bool:
    return speed is not None and math.isfinite(speed) and 0 <= speed <= MAX_PLAUSIBLE_SPEED_MPS


def annotate(point: TrackPoint, previous: TrackPoint | None) -> TrackPoint:
    """Fill the derived fields of `point` from the pair (previous, point).

    `previous` must already be annotated. A non-positive time step carries
    speed and slope over and contributes no distance. A step faster than
    MAX_PLAUSIBLE_SPEED_MPS is flagged as an outlier: it keeps its raw
    distance and geometric speed but is left out of the cumulative
    distance and never defines a slope.
    """
    if previous is None:
        return replace(
            point,
            speed=point.source_speed if _plausible_speed(point.source_speed) else 0.0,
            slope=None,
            distance=0.0,
            cumulative_distance=0.0,
            outlier=False,
        )

    dt = (point.time - previous.time).total_seconds()
    if dt <= 0:
        return replace(
            point,
            speed=previous.speed,
            slope=previous.slope,
            distance=0.0,
            cumulative_distance=previous.cumulative_distance,
            outlier=False,
        )

    d = haversine_m(previous.latitude, previous.longitude, point.latitude, point.longitude)
    geometric = d / dt
    outlier = geometric > MAX_PLAUSIBLE_SPEED_MPS
    speed = point.source_speed if _plausible_speed(point.source_speed) else geometric

    slope = previous.slope
    if (
        not outlier
        and d >= SLOPE_MIN_DISTANCE_M
        and point.elevation is not None
        and previous.elevation is not None
    ):
        slope = (point.elevation - previous.elevation) / d

    return replace(
        point,
        speed=speed,
        slope=slope,
        distance=d,
        cumulative_distance=previous.cumulative_distance + (0.0 if outlier else d),
        outlier=outlier,
    )


def fresh_slope(point: TrackPoint, previous: TrackPoint | None) -> bool:
    """True when `point.slope` was computed from its own step, not carried over."""
    return (
        previous is not None
        and point.slope is not None
        and not point.outlier
        and point.distance >= SLOPE_MIN_DISTANCE_M
        and point.elevation is not None
        and previous.elevation is not None
    )


def annotate_points(points: Iterable[TrackPoint]) -> list[TrackPoint]:
    out: list[TrackPoint] = []
    previous = None
    for p in points:
        previous = annotate(p, previous)
        out.append(previous)
    return out
