"""Canonical point types shared by file import and live recording.

Format adapters (GPX, FIT, live samples) all produce `TrackPoint`; the
derived fields are filled in afterwards by `kinematics.annotate`.
"""
import math
from dataclasses import dataclass
from datetime import datetime

from skitrack.core.time_utils import parse_iso


@dataclass(frozen=True)
class TrackPoint:
    latitude: float
    longitude: float
    elevation: float | None
    time: datetime
    heart_rate: int | None = None
    source_speed: float | None = None
    # Derived by kinematics
    speed: float = 0.0
    slope: float | None = None
    distance: float = 0.0
    cumulative_distance: float = 0.0
    outlier: bool = False


@dataclass(frozen=True)
class LocationSample:
    """One raw fix as delivered by the location provider."""

    latitude: float
    longitude: float
    timestamp: datetime
    altitude: float | None = None
    accuracy: float | None = None  # meters, horizontal
    speed: float | None = None
    heart_rate: int | None = None


def valid_coordinates(lat, lon) -> bool:
    if lat is None or lon is None:
        return False
    if not (math.isfinite(lat) and math.isfinite(lon)):
        return False
    return abs(lat) <= 90 and abs(lon) <= 180


def point_to_dict(p: TrackPoint) -> dict:
    """Serialize the input fields of a point (derived fields are recomputed)."""
    return {
        "lat": p.latitude,
        "lon": p.longitude,
        "ele": p.elevation,
        "time": p.time.isoformat(),
        "hr": p.heart_rate,
        "speed": p.source_speed,
    }


def point_from_dict(d: dict) -> TrackPoint:
    """Inverse of `point_to_dict`. Raises KeyError/ValueError/TypeError on bad data."""
    time = parse_iso(d["time"])
    if time is None:
        raise ValueError("point without time")
    lat, lon = float(d["lat"]), float(d["lon"])
    if not valid_coordinates(lat, lon):
        raise ValueError(f"coordinates out of range: {lat}, {lon}")
    ele = d.get("ele")
    hr = d.get("hr")
    speed = d.get("speed")
    return TrackPoint(
        latitude=lat,
        longitude=lon,
        elevation=float(ele) if ele is not None else None,
        time=time,
        heart_rate=int(hr) if hr is not None else None,
        source_speed=float(speed) if speed is not None else None,
    )
