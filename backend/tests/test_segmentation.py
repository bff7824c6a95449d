import math
from dataclasses import replace

import pytest

from skitrack.analysis.kinematics import annotate_points
from skitrack.analysis.pipeline import TrackBuilder, process_track
from skitrack.analysis.segmentation import SegmentationParams, segment_points
from trackgen import TrackGen, run_with_short_stop, steady_descent, two_runs_with_lift


def test_steady_descent_is_one_run():
    track = process_track(steady_descent(100))
    assert len(track.runs) == 1
    run = track.runs[0]
    assert run.start_index == 0
    assert run.end_index == 99
    assert math.isclose(run.vertical_drop, 500.0, abs_tol=1e-6)
    assert math.isclose(run.distance, 600.0, rel_tol=1e-6)
    assert track.stats.run_count == 1


def test_single_point_glitch_does_not_split_run():
    clean = process_track(steady_descent(100))
    gen = TrackGen()
    gen.descend(99, step_m=600 / 99, drop_m=500 / 99)
    gen.glitch(50, offset_m=1000.0)
    track = process_track(gen.points)
    assert len(track.runs) == 1
    assert track.runs[0].start_index == 0
    assert track.runs[0].end_index == 99
    assert track.stats.total_distance <= clean.stats.total_distance + 1000.0
    assert track.stats.max_speed < 150.0


def test_five_point_glitch_does_not_split_run():
    gen = TrackGen()
    gen.descend(99, step_m=600 / 99, drop_m=500 / 99)
    gen.glitch(40, offset_m=1000.0, count=5)
    track = process_track(gen.points)
    assert len(track.runs) == 1


def test_lift_separates_runs():
    track = process_track(two_runs_with_lift())
    assert len(track.runs) == 2
    first, second = track.runs
    assert first.end_index < second.start_index
    assert first.vertical_drop == pytest.approx(300.0)
    assert second.vertical_drop == pytest.approx(300.0)
    # second run starts at the top of the lift
    assert second.start_index == 210


def test_short_stop_merges_into_one_run():
    track = process_track(run_with_short_stop())
    assert len(track.runs) == 1
    run = track.runs[0]
    assert run.start_index == 0
    assert run.end_index == 110
    assert run.vertical_drop == pytest.approx(400.0)


def test_long_stop_splits_runs():
    gen = TrackGen()
    gen.descend(40)
    gen.wait(150)
    gen.descend(40)
    track = process_track(gen.points)
    assert len(track.runs) == 2


def test_small_dip_is_not_a_run():
    gen = TrackGen()
    gen.wait(10)
    gen.descend(5, step_m=8.0, drop_m=2.0)  # 10 m drop
    gen.wait(10)
    track = process_track(gen.points)
    assert track.runs == ()
    assert track.stats.ski_distance == 0.0
    assert track.stats.ski_vertical == 0.0


def test_track_without_elevation_has_no_runs():
    points = [replace(p, elevation=None) for p in steady_descent()]
    track = process_track(points)
    assert track.runs == ()
    assert track.stats.max_altitude is None
    assert track.stats.total_descent == 0.0
    assert track.stats.total_distance > 0


def test_runs_satisfy_thresholds():
    params = SegmentationParams()
    for points in (steady_descent(), two_runs_with_lift(), run_with_short_stop()):
        track = process_track(points, params=params)
        prev_end = -1
        for run in track.runs:
            assert run.start_index < run.end_index
            assert run.start_index > prev_end
            assert 0 <= run.end_index < len(track.points)
            assert run.vertical_drop >= params.min_vertical
            assert run.distance >= params.min_distance
            assert run.vertical_drop == pytest.approx(run.start_elevation - run.end_elevation)
            prev_end = run.end_index


def test_stricter_params_drop_runs():
    params = SegmentationParams(min_vertical=350.0)
    track = process_track(two_runs_with_lift(), params=params)
    assert track.runs == ()


def test_batch_segments_match_incremental_builder():
    points = two_runs_with_lift()
    batch = segment_points(annotate_points(points))
    builder = TrackBuilder()
    for p in points:
        builder.append(p)
        builder.snapshot()
    live = builder.finish()
    assert [(s.start_index, s.end_index) for s in batch] == [
        (r.start_index, r.end_index) for r in live.runs
    ]


def test_invalid_params_rejected():
    with pytest.raises(ValueError):
        SegmentationParams(window=1)
    with pytest.raises(ValueError):
        SegmentationParams(hysteresis=0)
