from skitrack.analysis.gpx_writer import track_to_gpx
from skitrack.analysis.pipeline import process_track
from trackgen import TrackGen, steady_descent, two_runs_with_lift


def get_client():
    # Environment (in-memory sqlite, temp dirs) is set up in conftest.py
    from skitrack.main import app  # noqa: WPS433
    from fastapi.testclient import TestClient  # noqa: WPS433
    return TestClient(app)


def _gpx_bytes(points, name="Test Day"):
    return track_to_gpx(process_track(points, name=name, source="gpx")).encode("utf-8")


def _import(client, points, filename="day.gpx"):
    files = {"file": (filename, _gpx_bytes(points), "application/gpx+xml")}
    return client.post("/tracks/import", files=files)


def test_root_ok():
    client = get_client()
    r = client.get("/")
    assert r.status_code == 200
    data = r.json()
    assert "message" in data


def test_import_and_browse_track():
    client = get_client()
    r = _import(client, two_runs_with_lift())
    assert r.status_code == 200, r.text
    track = r.json()
    assert track["name"] == "Test Day"
    assert track["source"] == "gpx"
    assert track["run_count"] == 2
    assert track["duration"] == "00:04:30"
    track_id = track["id"]

    lr = client.get("/tracks/")
    assert lr.status_code == 200
    assert any(t["id"] == track_id for t in lr.json())

    dr = client.get(f"/tracks/{track_id}")
    assert dr.status_code == 200
    detail = dr.json()
    assert len(detail["runs"]) == 2
    assert detail["stats"]["point_count"] == 271
    assert detail["stats"]["ski_vertical"] > 500

    rr = client.get(f"/tracks/{track_id}/runs")
    assert [r["id"] for r in rr.json()] == [1, 2]

    pr = client.get(f"/tracks/{track_id}/points")
    assert pr.status_code == 200
    points = pr.json()
    assert len(points) == 271
    assert points[0]["cumulative_distance"] == 0


def test_track_analytics_and_export():
    client = get_client()
    track_id = _import(client, steady_descent()).json()["id"]

    ar = client.get(f"/tracks/{track_id}/analytics")
    assert ar.status_code == 200, ar.text
    analytics = ar.json()
    assert analytics["heart_rate_zones"] is None
    assert sum(b["count"] for b in analytics["speed_histogram"]) == 100
    assert 0 <= analytics["score"]["total"] <= 100

    cr = client.get(f"/tracks/{track_id}/analytics", params={"speed_bounds": "5,10"})
    assert len(cr.json()["speed_histogram"]) == 3
    bad = client.get(f"/tracks/{track_id}/analytics", params={"speed_bounds": "10,5"})
    assert bad.status_code == 422

    xr = client.get(f"/tracks/{track_id}/gpx")
    assert xr.status_code == 200
    assert xr.headers["content-type"].startswith("application/gpx+xml")
    assert "<trkpt" in xr.text


def test_heart_rate_zones_in_analytics():
    client = get_client()
    points = TrackGen(hr=120).descend(60, hr=165).points
    track_id = _import(client, points).json()["id"]
    zones = client.get(f"/tracks/{track_id}/analytics", params={"max_hr": 190}).json()["heart_rate_zones"]
    assert zones["max_heart_rate"] == 190
    assert len(zones["zones"]) == 5


def test_delete_track():
    client = get_client()
    track_id = _import(client, steady_descent()).json()["id"]
    assert client.delete(f"/tracks/{track_id}").status_code == 200
    assert client.get(f"/tracks/{track_id}").status_code == 404
    assert client.delete(f"/tracks/{track_id}").status_code == 404


def test_import_rejects_bad_files():
    client = get_client()
    r = client.post("/tracks/import", files={"file": ("notes.txt", b"hello", "text/plain")})
    assert r.status_code == 400
    r = client.post("/tracks/import", files={"file": ("broken.gpx", b"<gpx><trk>", "application/gpx+xml")})
    assert r.status_code == 422


def test_recording_flow():
    client = get_client()
    sr = client.post("/recording/start", json={"name": "Morning Laps"})
    assert sr.status_code == 200, sr.text
    assert sr.json()["state"] == "acquiring"
    assert client.post("/recording/start", json={}).status_code == 409

    for p in steady_descent(40):
        payload = {
            "latitude": p.latitude,
            "longitude": p.longitude,
            "timestamp": p.time.isoformat(),
            "altitude": p.elevation,
            "accuracy": 5.0,
        }
        r = client.post("/recording/samples", json=payload)
        assert r.status_code == 200, r.text
        assert r.json()["accepted"]

    bad = client.post(
        "/recording/samples",
        json={"latitude": 123.0, "longitude": 7.0, "timestamp": "2025-01-12T09:10:00+00:00"},
    )
    assert bad.status_code == 422

    status = client.get("/recording/status").json()
    assert status["state"] == "recording"
    assert status["point_count"] == 40
    assert status["stats"]["point_count"] == 40

    assert client.post("/recording/pause").json()["state"] == "paused"
    assert client.post("/recording/resume").json()["state"] == "recording"

    stop = client.post("/recording/stop")
    assert stop.status_code == 200, stop.text
    track = stop.json()["track"]
    assert track["name"] == "Morning Laps"
    assert track["source"] == "recording"
    assert track["run_count"] == 1

    again = client.post("/recording/stop")
    assert again.json()["track"]["id"] == track["id"]
    assert client.get("/recording/recovery").json() is None
    assert client.get(f"/tracks/{track['id']}").status_code == 200


def test_recording_permission_denied():
    client = get_client()
    r = client.post("/recording/start", json={"permission_granted": False})
    assert r.status_code == 403
    status = client.get("/recording/status").json()
    assert status["state"] == "idle"
    assert status["error"]


def test_recording_fix_unavailable_then_discard():
    client = get_client()
    assert client.post("/recording/start", json={}).status_code == 200
    r = client.post("/recording/fix-unavailable")
    assert r.status_code == 200
    assert r.json()["state"] == "acquiring"
    assert client.post("/recording/discard").json()["state"] == "idle"
    assert client.get("/recording/recovery").json() is None
