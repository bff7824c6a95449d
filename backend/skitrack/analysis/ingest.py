"""Format adapters: GPX/FIT files and live samples -> TrackPoint.

These are the only functions that know about format differences. Points
are returned in input order; timestamps are normalized to aware UTC.
"""
import io
import logging
import math
import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import gpxpy
import gpxpy.gpx
from fitparse import FitFile
from fitparse.utils import FitParseError

from skitrack.analysis.points import LocationSample, TrackPoint, valid_coordinates
from skitrack.core.constants import SEMICIRCLES_TO_DEGREES
from skitrack.core.errors import InvalidSample, MalformedInput, UnsupportedFileType
from skitrack.core.time_utils import ensure_utc

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = {".gpx": "gpx", ".fit": "fit"}

# Tracks without any timestamps are treated as 1 Hz from this instant
_UNTIMED_START = datetime(1970, 1, 1, tzinfo=timezone.utc)

_HR_TAGS = ("hr", "heartrate")
_SPEED_TAGS = ("speed",)


@dataclass(frozen=True)
class ParsedTrack:
    name: str
    source: str
    points: tuple[TrackPoint, ...]


def get_file_type(filename: str) -> str | None:
    ext = os.path.splitext(filename or "")[1].lower()
    return SUPPORTED_EXTENSIONS.get(ext)


def is_supported_file(filename: str) -> bool:
    return get_file_type(filename) is not None


def _finite_or_none(value) -> float | None:
    if value is None:
        return None
    try:
        value = float(value)
    except (TypeError, ValueError):
        return None
    return value if math.isfinite(value) else None


def _make_point(lat, lon, ele, time, hr=None, speed=None) -> TrackPoint:
    hr = _finite_or_none(hr)
    return TrackPoint(
        latitude=float(lat),
        longitude=float(lon),
        elevation=_finite_or_none(ele),
        time=time,
        heart_rate=int(hr) if hr is not None and hr > 0 else None,
        source_speed=_finite_or_none(speed),
    )


# --------- GPX --------- #

def _local_tag(element) -> str:
    tag = element.tag
    if not isinstance(tag, str):  # comments / processing instructions
        return ""
    tag = tag.rsplit("}", 1)[-1]
    return tag.rsplit(":", 1)[-1].lower()


def _extension_values(point) -> tuple[float | None, float | None]:
    """Heart rate and speed from GPX extensions (Garmin TrackPointExtension etc)."""
    hr = None
    speed = None
    for ext in getattr(point, "extensions", None) or []:
        for el in ext.iter():
            name = _local_tag(el)
            if hr is None and name in _HR_TAGS:
                hr = _finite_or_none((el.text or "").strip())
            elif speed is None and name in _SPEED_TAGS:
                speed = _finite_or_none((el.text or "").strip())
    return hr, speed


def _gpx_name(gpx, fallback: str | None) -> str:
    for track in gpx.tracks:
        if track.name:
            return track.name
    return gpx.name or fallback or "Unnamed Track"


def parse_gpx(content: bytes | str, name: str | None = None) -> ParsedTrack:
    """Parse GPX markup into points.

    Track segment points are read in document order; routes are used only
    when the file has no track points. Points with out-of-range coordinates
    are skipped. Raises MalformedInput when the markup cannot be decoded,
    a point lacks latitude/longitude, or nothing usable remains.
    """
    if isinstance(content, bytes):
        try:
            content = content.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise MalformedInput(f"GPX is not valid UTF-8: {e}") from e
    try:
        gpx = gpxpy.parse(content)
    except (gpxpy.gpx.GPXException, ValueError) as e:
        raise MalformedInput(f"Invalid GPX: {e}") from e

    raw = [p for track in gpx.tracks for segment in track.segments for p in segment.points]
    if not raw:
        raw = [p for route in gpx.routes for p in route.points]

    times = [ensure_utc(p.time) for p in raw if p.time is not None]
    last_time = times[0] if times else None

    points: list[TrackPoint] = []
    skipped = 0
    for i, p in enumerate(raw):
        if p.latitude is None or p.longitude is None:
            raise MalformedInput(f"GPX point {i} is missing latitude/longitude")
        if not valid_coordinates(p.latitude, p.longitude):
            skipped += 1
            continue
        if p.time is not None:
            last_time = ensure_utc(p.time)
        elif not times:
            last_time = _UNTIMED_START + timedelta(seconds=i)
        hr, ext_speed = _extension_values(p)
        speed = getattr(p, "speed", None)
        points.append(
            _make_point(
                p.latitude,
                p.longitude,
                p.elevation,
                last_time,
                hr=hr,
                speed=speed if speed is not None else ext_speed,
            )
        )

    if skipped:
        logger.warning("Skipped %d GPX points with out-of-range coordinates", skipped)
    if not points:
        raise MalformedInput("GPX file contains no usable track points")
    if not times:
        logger.info("GPX file has no timestamps; assuming one point per second")
    return ParsedTrack(name=_gpx_name(gpx, name), source="gpx", points=tuple(points))


# --------- FIT --------- #

def _semicircles_to_degrees(val):
    return val * SEMICIRCLES_TO_DEGREES if val is not None else None


def _fit_name(sessions: list[dict], first_time: datetime | None, fallback: str | None) -> str:
    sport = sessions[0].get("sport") if sessions else None
    if sport is None:
        return fallback or "FIT Activity"
    label = str(sport).replace("_", " ").title()
    start = sessions[0].get("start_time") or first_time
    if start is None:
        return f"{label} Activity"
    return f"{label} Activity - {ensure_utc(start).date().isoformat()}"


def parse_fit(data: bytes, name: str | None = None) -> ParsedTrack:
    """Parse a FIT activity into points.

    Only `record` messages with a position are used. Positions arrive as
    semicircles; enhanced altitude/speed are preferred over the legacy
    fields when a device writes both.
    """
    try:
        ff = FitFile(io.BytesIO(data))
        records = [{f.name: f.value for f in record} for record in ff.get_messages("record")]
        sessions = [{f.name: f.value for f in session} for session in ff.get_messages("session")]
    except (FitParseError, ValueError, EOFError) as e:
        raise MalformedInput(f"Invalid FIT file: {e}") from e

    points: list[TrackPoint] = []
    last_time = None
    skipped = 0
    for i, fields in enumerate(records):
        lat = _semicircles_to_degrees(fields.get("position_lat"))
        lon = _semicircles_to_degrees(fields.get("position_long"))
        if lat is None or lon is None:
            continue
        if not valid_coordinates(lat, lon):
            skipped += 1
            continue
        ts = fields.get("timestamp")
        if isinstance(ts, datetime):
            last_time = ensure_utc(ts)
        elif last_time is None:
            last_time = _UNTIMED_START + timedelta(seconds=i)
        # Prefer enhanced fields when present
        ele = fields.get("enhanced_altitude")
        if ele is None:
            ele = fields.get("altitude")
        speed = fields.get("enhanced_speed")
        if speed is None:
            speed = fields.get("speed")
        points.append(
            _make_point(lat, lon, ele, last_time, hr=fields.get("heart_rate"), speed=speed)
        )

    if skipped:
        logger.warning("Skipped %d FIT records with out-of-range coordinates", skipped)
    if not points:
        raise MalformedInput("FIT file contains no positioned records")
    track_name = _fit_name(sessions, points[0].time, name)
    return ParsedTrack(name=track_name, source="fit", points=tuple(points))


def parse_track_file(filename: str, data: bytes) -> ParsedTrack:
    """Dispatch on the file extension."""
    kind = get_file_type(filename)
    fallback = os.path.splitext(os.path.basename(filename or ""))[0] or None
    if kind == "gpx":
        return parse_gpx(data, name=fallback)
    if kind == "fit":
        return parse_fit(data, name=fallback)
    raise UnsupportedFileType(f"Unsupported file type: {filename!r} (expected .gpx or .fit)")


# --------- Live samples --------- #

def point_from_sample(sample: LocationSample) -> TrackPoint:
    """Convert one live fix; implausible coordinates raise InvalidSample."""
    if not valid_coordinates(sample.latitude, sample.longitude):
        raise InvalidSample(
            f"implausible coordinates lat={sample.latitude!r} lon={sample.longitude!r}"
        )
    return _make_point(
        sample.latitude,
        sample.longitude,
        sample.altitude,
        ensure_utc(sample.timestamp),
        hr=sample.heart_rate,
        speed=sample.speed,
    )
