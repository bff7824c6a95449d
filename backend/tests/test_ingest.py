import math
from datetime import datetime, timedelta, timezone

import pytest

from skitrack.analysis import ingest
from skitrack.analysis.ingest import (
    get_file_type,
    parse_fit,
    parse_gpx,
    parse_track_file,
    point_from_sample,
)
from skitrack.analysis.points import LocationSample
from skitrack.core.errors import InvalidSample, MalformedInput, UnsupportedFileType
from fitgen import build_fit

GPX_WITH_HR = """<?xml version="1.0" encoding="UTF-8"?>
<gpx version="1.1" creator="test" xmlns="http://www.topografix.com/GPX/1/1"
     xmlns:gpxtpx="http://www.garmin.com/xmlschemas/TrackPointExtension/v1">
  <trk>
    <name>Morning Laps</name>
    <trkseg>
      <trkpt lat="46.0000" lon="7.0000">
        <ele>2500.0</ele>
        <time>2025-01-12T09:00:00Z</time>
        <extensions><gpxtpx:TrackPointExtension><gpxtpx:hr>121</gpxtpx:hr></gpxtpx:TrackPointExtension></extensions>
      </trkpt>
      <trkpt lat="46.0001" lon="7.0000">
        <ele>2495.0</ele>
        <time>2025-01-12T09:00:01Z</time>
        <extensions><gpxtpx:TrackPointExtension><gpxtpx:hr>125</gpxtpx:hr></gpxtpx:TrackPointExtension></extensions>
      </trkpt>
      <trkpt lat="46.0002" lon="7.0000">
        <time>2025-01-12T09:00:02Z</time>
      </trkpt>
    </trkseg>
  </trk>
</gpx>
"""

GPX_UNTIMED = """<?xml version="1.0" encoding="UTF-8"?>
<gpx version="1.1" creator="test" xmlns="http://www.topografix.com/GPX/1/1">
  <trk><trkseg>
    <trkpt lat="46.0" lon="7.0"><ele>2000</ele></trkpt>
    <trkpt lat="46.001" lon="7.0"><ele>1990</ele></trkpt>
    <trkpt lat="46.002" lon="7.0"><ele>1980</ele></trkpt>
  </trkseg></trk>
</gpx>
"""

GPX_EMPTY = """<?xml version="1.0" encoding="UTF-8"?>
<gpx version="1.1" creator="test" xmlns="http://www.topografix.com/GPX/1/1">
  <metadata><name>Nothing here</name></metadata>
</gpx>
"""


def test_parse_gpx_reads_points_in_order():
    parsed = parse_gpx(GPX_WITH_HR.encode("utf-8"))
    assert parsed.name == "Morning Laps"
    assert parsed.source == "gpx"
    assert len(parsed.points) == 3
    first, second, third = parsed.points
    assert first.latitude == 46.0
    assert first.elevation == 2500.0
    assert first.heart_rate == 121
    assert second.heart_rate == 125
    assert third.elevation is None
    assert third.heart_rate is None
    assert first.time == datetime(2025, 1, 12, 9, 0, tzinfo=timezone.utc)
    assert third.time.tzinfo is not None


def test_parse_gpx_without_timestamps_assumes_one_hz():
    parsed = parse_gpx(GPX_UNTIMED)
    times = [p.time for p in parsed.points]
    assert [(t - times[0]).total_seconds() for t in times] == [0.0, 1.0, 2.0]


def test_parse_gpx_rejects_garbage():
    with pytest.raises(MalformedInput):
        parse_gpx(b"<gpx><trk><trkseg><trkpt")
    with pytest.raises(MalformedInput):
        parse_gpx(b"\xff\xfe\x00not xml")


def test_parse_gpx_without_points_is_malformed():
    with pytest.raises(MalformedInput):
        parse_gpx(GPX_EMPTY)


def test_parse_gpx_missing_latitude_is_malformed():
    broken = GPX_UNTIMED.replace('lat="46.001" ', "")
    with pytest.raises(MalformedInput):
        parse_gpx(broken)


def test_parse_gpx_skips_out_of_range_points():
    bad = GPX_UNTIMED.replace('lat="46.001"', 'lat="146.001"')
    parsed = parse_gpx(bad)
    assert len(parsed.points) == 2


def test_file_type_dispatch():
    assert get_file_type("day.GPX") == "gpx"
    assert get_file_type("watch.fit") == "fit"
    assert get_file_type("notes.txt") is None
    with pytest.raises(UnsupportedFileType):
        parse_track_file("notes.txt", b"hello")
    parsed = parse_track_file("laps.gpx", GPX_WITH_HR.encode("utf-8"))
    assert parsed.name == "Morning Laps"


def test_untitled_gpx_uses_file_name():
    parsed = parse_track_file("saas-fee.gpx", GPX_UNTIMED.encode("utf-8"))
    assert parsed.name == "saas-fee"


def test_parse_fit_rejects_garbage():
    with pytest.raises(MalformedInput):
        parse_fit(b"definitely not a FIT file")


class _Field:
    def __init__(self, name, value):
        self.name = name
        self.value = value


class _FakeFitFile:
    """Stands in for fitparse.FitFile with canned messages."""

    messages = {}

    def __init__(self, fileish):
        self.fileish = fileish

    def get_messages(self, name):
        for fields in self.messages.get(name, []):
            yield [_Field(k, v) for k, v in fields.items()]


def test_parse_fit_maps_records(monkeypatch):
    semi = 2**31 / 180
    _FakeFitFile.messages = {
        "record": [
            {"timestamp": datetime(2025, 1, 12, 9, 0, 0), "heart_rate": 130},  # no position
            {
                "timestamp": datetime(2025, 1, 12, 9, 0, 1),
                "position_lat": int(46.0 * semi),
                "position_long": int(7.0 * semi),
                "altitude": 2400.0,
                "enhanced_altitude": 2401.5,
                "enhanced_speed": 9.5,
                "heart_rate": 131,
            },
            {
                "timestamp": datetime(2025, 1, 12, 9, 0, 2),
                "position_lat": int(46.0001 * semi),
                "position_long": int(7.0 * semi),
                "altitude": 2398.0,
                "speed": 9.0,
            },
        ],
        "session": [{"sport": "alpine_skiing", "start_time": datetime(2025, 1, 12, 9, 0, 0)}],
    }
    monkeypatch.setattr(ingest, "FitFile", _FakeFitFile)
    parsed = parse_fit(b"ignored")
    assert parsed.source == "fit"
    assert parsed.name == "Alpine Skiing Activity - 2025-01-12"
    assert len(parsed.points) == 2
    first, second = parsed.points
    assert math.isclose(first.latitude, 46.0, abs_tol=1e-6)
    assert first.elevation == 2401.5
    assert first.source_speed == 9.5
    assert first.heart_rate == 131
    assert first.time.tzinfo is not None
    assert second.elevation == 2398.0
    assert second.source_speed == 9.0


def test_parse_fit_without_positions_is_malformed(monkeypatch):
    _FakeFitFile.messages = {"record": [{"timestamp": datetime(2025, 1, 12), "heart_rate": 90}]}
    monkeypatch.setattr(ingest, "FitFile", _FakeFitFile)
    with pytest.raises(MalformedInput):
        parse_fit(b"ignored")


def _fit_bytes():
    t0 = datetime(2025, 1, 12, 9, 0, 0, tzinfo=timezone.utc)
    return build_fit(
        [
            {"time": t0, "heart_rate": 128},  # before the first fix
            {"time": t0 + timedelta(seconds=1), "lat": 46.0, "lon": 7.0, "altitude": 2401.0, "heart_rate": 131, "speed": 9.5},
            {"time": t0 + timedelta(seconds=2), "lat": 46.0001, "lon": 7.0, "altitude": 2398.0, "speed": 9.0},
        ]
    )


def test_parse_real_fit_file():
    parsed = parse_track_file("morning.fit", _fit_bytes())
    assert parsed.source == "fit"
    assert parsed.name == "Alpine Skiing Activity - 2025-01-12"
    assert len(parsed.points) == 2
    first, second = parsed.points
    assert math.isclose(first.latitude, 46.0, abs_tol=1e-6)
    assert math.isclose(first.longitude, 7.0, abs_tol=1e-6)
    assert math.isclose(second.latitude, 46.0001, abs_tol=1e-6)
    assert first.elevation == pytest.approx(2401.0)
    assert second.elevation == pytest.approx(2398.0)
    assert first.source_speed == pytest.approx(9.5)
    assert first.heart_rate == 131
    assert second.heart_rate is None
    assert first.time == datetime(2025, 1, 12, 9, 0, 1, tzinfo=timezone.utc)


def test_real_fit_file_with_bad_crc_is_malformed():
    data = bytearray(_fit_bytes())
    data[-1] ^= 0xFF
    with pytest.raises(MalformedInput):
        parse_fit(bytes(data))


def test_truncated_fit_file_is_malformed():
    with pytest.raises(MalformedInput):
        parse_fit(_fit_bytes()[:40])

def _sample(lat=46.0, lon=7.0, **kw):
    return LocationSample(
        latitude=lat,
        longitude=lon,
        timestamp=datetime(2025, 1, 12, 9, 0),
        **kw,
    )


def test_point_from_sample():
    p = point_from_sample(_sample(altitude=2100.0, heart_rate=0, speed=float("nan")))
    assert p.elevation == 2100.0
    assert p.heart_rate is None
    assert p.source_speed is None
    assert p.time.tzinfo == timezone.utc


@pytest.mark.parametrize(
    "lat,lon",
    [(91.0, 7.0), (-90.5, 7.0), (46.0, 180.1), (46.0, -181.0), (float("nan"), 7.0), (46.0, float("inf"))],
)
def test_point_from_sample_rejects_implausible(lat, lon):
    with pytest.raises(InvalidSample):
        point_from_sample(_sample(lat=lat, lon=lon))
