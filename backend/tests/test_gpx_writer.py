import pytest

from skitrack.analysis.aggregator import Stats
from skitrack.analysis.gpx_writer import track_to_gpx
from skitrack.analysis.ingest import parse_gpx
from skitrack.analysis.pipeline import Track, process_track
from trackgen import TrackGen


def test_export_keeps_name_elevation_and_heart_rate():
    points = TrackGen(hr=150).descend(20, hr=160).points
    xml = track_to_gpx(process_track(points, name="Piste 7", source="recording"))
    assert "<trkpt" in xml

    parsed = parse_gpx(xml)
    assert parsed.name == "Piste 7"
    assert len(parsed.points) == 21
    assert parsed.points[0].elevation == pytest.approx(2500.0)
    assert parsed.points[-1].heart_rate == 160
    assert parsed.points[-1].time == points[-1].time


def test_export_empty_track_fails():
    with pytest.raises(ValueError):
        track_to_gpx(Track(name="empty", source="gpx", points=(), stats=Stats(), runs=()))
