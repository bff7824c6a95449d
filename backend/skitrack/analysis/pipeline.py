"""Drive kinematics -> segmentation -> aggregation over a point stream.

`TrackBuilder` is the single code path: live recording appends one point
at a time, batch import and checkpoint recovery fold the same builder over
a full sequence.
"""
from dataclasses import dataclass
from typing import Iterable

from skitrack.analysis.aggregator import Run, Stats, StatsAggregator, build_run
from skitrack.analysis.ingest import ParsedTrack, parse_track_file
from skitrack.analysis.kinematics import annotate
from skitrack.analysis.points import TrackPoint
from skitrack.analysis.segmentation import (
    DEFAULT_PARAMS,
    Segment,
    SegmentationParams,
    SegmenterState,
    advance,
    finish,
)


@dataclass(frozen=True)
class Track:
    name: str
    source: str
    points: tuple[TrackPoint, ...]
    stats: Stats
    runs: tuple[Run, ...]


class TrackBuilder:
    def __init__(
        self,
        name: str = "Unnamed Track",
        source: str = "recording",
        params: SegmentationParams = DEFAULT_PARAMS,
    ):
        self.name = name
        self.source = source
        self.params = params
        self._points: list[TrackPoint] = []
        self._aggregator = StatsAggregator()
        self._state = SegmenterState()
        self._track: Track | None = None

    @property
    def points(self) -> tuple[TrackPoint, ...]:
        return tuple(self._points)

    @property
    def runs(self) -> tuple[Run, ...]:
        return tuple(self._aggregator.runs)

    @property
    def last_point(self) -> TrackPoint | None:
        return self._points[-1] if self._points else None

    @property
    def finished(self) -> bool:
        return self._track is not None

    def __len__(self) -> int:
        return len(self._points)

    def _close(self, segment: Segment) -> None:
        run = build_run(self._points, segment, run_id=len(self._aggregator.runs) + 1)
        self._aggregator.close_run(run)

    def append(self, point: TrackPoint) -> TrackPoint:
        """Annotate, aggregate and segment one raw point; returns the annotated point."""
        if self._track is not None:
            raise RuntimeError("track already finished")
        previous = self.last_point
        annotated = annotate(point, previous)
        self._points.append(annotated)
        self._aggregator.ingest(annotated, previous)
        self._state, segment = advance(self._state, annotated, self.params)
        if segment is not None:
            self._close(segment)
        return annotated

    def extend(self, points: Iterable[TrackPoint]) -> None:
        for p in points:
            self.append(p)

    def snapshot(self) -> Stats:
        return self._aggregator.snapshot()

    def finish(self) -> Track:
        """Close any open run and freeze the track. Calling again returns the same Track."""
        if self._track is None:
            segment = finish(self._state, self.params)
            if segment is not None:
                self._close(segment)
            self._track = Track(
                name=self.name,
                source=self.source,
                points=tuple(self._points),
                stats=self._aggregator.snapshot(),
                runs=tuple(self._aggregator.runs),
            )
        return self._track


def process_track(
    points: Iterable[TrackPoint],
    name: str = "Unnamed Track",
    source: str = "gpx",
    params: SegmentationParams = DEFAULT_PARAMS,
) -> Track:
    """Batch mode: one synchronous pass, returns the finished Track."""
    builder = TrackBuilder(name=name, source=source, params=params)
    builder.extend(points)
    return builder.finish()


def process_parsed(parsed: ParsedTrack, params: SegmentationParams = DEFAULT_PARAMS) -> Track:
    return process_track(parsed.points, name=parsed.name, source=parsed.source, params=params)


def import_track_file(filename: str, data: bytes) -> Track:
    """Parse a GPX/FIT upload and process it. Raises MalformedInput."""
    return process_parsed(parse_track_file(filename, data))
