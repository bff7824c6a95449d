"""Run segmentation as a pure state-transition function.

`advance(state, point)` consumes one annotated point and returns the new
state plus a finalized descent when one becomes final. Batch import folds
it over the whole track (`segment_points`); live recording calls it once
per accepted sample. Both paths share every rule below.

Phases are voted on from a short trailing window: the net elevation loss
rate combined with the horizontal speed over the window, never a single
sample's slope. A phase changes only after `hysteresis` consecutive votes
agree. Descent boundaries are picked in hindsight from the buffered
samples: a descent starts at the highest recent sample and ends at the
lowest sample reached before the phase changed.

A closed descent is kept pending until either the pause after it grows
past `merge_gap_seconds` or the climb after it reaches `max_gap_ascent`;
a new descent starting before that is merged into it. A finalized descent
only counts as a run when its drop, distance and duration all reach the
configured minimums.
"""
import logging
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Iterable

from skitrack.analysis.points import TrackPoint
from skitrack.core.constants import (
    HYSTERESIS_POINTS,
    MAX_GAP_ASCENT_M,
    MERGE_GAP_SECONDS,
    MIN_ASCENT_RATE_MPS,
    MIN_DESCENT_RATE_MPS,
    MIN_RUN_DISTANCE_M,
    MIN_RUN_DURATION_S,
    MIN_RUN_VERTICAL_M,
    MIN_SKI_SPEED_MPS,
    WINDOW_POINTS,
)

logger = logging.getLogger(__name__)


class Phase(str, Enum):
    STATIONARY = "stationary"
    ASCENDING = "ascending"
    DESCENDING = "descending"


@dataclass(frozen=True)
class SegmentationParams:
    window: int = WINDOW_POINTS
    hysteresis: int = HYSTERESIS_POINTS
    min_descent_rate: float = MIN_DESCENT_RATE_MPS
    min_ascent_rate: float = MIN_ASCENT_RATE_MPS
    min_speed: float = MIN_SKI_SPEED_MPS
    min_vertical: float = MIN_RUN_VERTICAL_M
    min_distance: float = MIN_RUN_DISTANCE_M
    min_duration: float = MIN_RUN_DURATION_S
    merge_gap_seconds: float = MERGE_GAP_SECONDS
    max_gap_ascent: float = MAX_GAP_ASCENT_M

    def __post_init__(self):
        if self.window < 2:
            raise ValueError("window must cover at least 2 points")
        if self.hysteresis < 1:
            raise ValueError("hysteresis must be at least 1")


DEFAULT_PARAMS = SegmentationParams()


@dataclass(frozen=True)
class Sample:
    """What segmentation remembers about one point."""

    index: int
    time: datetime
    elevation: float | None  # last known elevation, carried forward
    distance: float  # cumulative counted distance


@dataclass(frozen=True)
class Segment:
    start: Sample
    end: Sample

    @property
    def start_index(self) -> int:
        return self.start.index

    @property
    def end_index(self) -> int:
        return self.end.index

    @property
    def vertical_drop(self) -> float:
        return self.start.elevation - self.end.elevation

    @property
    def distance(self) -> float:
        return self.end.distance - self.start.distance

    @property
    def duration(self) -> float:
        return (self.end.time - self.start.time).total_seconds()


@dataclass(frozen=True)
class SegmenterState:
    buffer: tuple[Sample, ...] = ()
    next_index: int = 0
    last_elevation: float | None = None
    phase: Phase = Phase.STATIONARY
    candidate: Phase | None = None
    votes: int = 0
    # Open descent: where it started and the lowest sample so far
    open_start: Sample | None = None
    open_low: Sample | None = None
    # Closed descent waiting to see whether the next one merges into it
    pending: Segment | None = None
    gap_peak: float | None = None
    # Next descent may not start before this index
    floor_index: int = 0


def _is_lower(sample: Sample, low: Sample | None) -> bool:
    if sample.elevation is None:
        return False
    return low is None or low.elevation is None or sample.elevation < low.elevation


def classify(window: tuple[Sample, ...], params: SegmentationParams) -> Phase | None:
    """Vote for a phase from a trailing window; None when undecidable."""
    if len(window) < 2:
        return None
    first, last = window[0], window[-1]
    if first.elevation is None or last.elevation is None:
        return None
    dt = (last.time - first.time).total_seconds()
    if dt <= 0:
        return None
    drop_rate = (first.elevation - last.elevation) / dt
    speed = (last.distance - first.distance) / dt
    if drop_rate >= params.min_descent_rate and speed >= params.min_speed:
        return Phase.DESCENDING
    if -drop_rate >= params.min_ascent_rate:
        return Phase.ASCENDING
    return Phase.STATIONARY


def qualify(segment: Segment | None, params: SegmentationParams) -> Segment | None:
    if segment is None:
        return None
    if (
        segment.vertical_drop >= params.min_vertical
        and segment.distance >= params.min_distance
        and segment.duration >= params.min_duration
    ):
        return segment
    logger.debug(
        "Discarding descent %d-%d: drop=%.1fm distance=%.1fm duration=%.0fs",
        segment.start_index,
        segment.end_index,
        segment.vertical_drop,
        segment.distance,
        segment.duration,
    )
    return None


def _open_descent(s: SegmenterState) -> SegmenterState:
    if s.pending is not None:
        # Short pause after the previous descent: continue it
        start, low = s.pending.start, s.pending.end
        for x in s.buffer:
            if x.index > low.index and _is_lower(x, low):
                low = x
        return replace(s, open_start=start, open_low=low, pending=None, gap_peak=None)

    candidates = [x for x in s.buffer if x.index >= s.floor_index and x.elevation is not None]
    if not candidates:
        return s
    # highest sample, latest on ties
    start = max(candidates, key=lambda x: (x.elevation, x.index))
    low = None
    for x in s.buffer:
        if x.index > start.index and _is_lower(x, low):
            low = x
    return replace(s, open_start=start, open_low=low)


def _close_descent(s: SegmenterState) -> SegmenterState:
    start, low = s.open_start, s.open_low
    s = replace(s, open_start=None, open_low=None)
    if start is None or low is None or low.index <= start.index:
        return s
    peak = max(
        (x.elevation for x in s.buffer if x.index >= low.index and x.elevation is not None),
        default=low.elevation,
    )
    return replace(
        s,
        pending=Segment(start=start, end=low),
        gap_peak=max(peak, low.elevation),
        floor_index=low.index + 1,
    )


def _gap_exceeded(s: SegmenterState, sample: Sample, params: SegmentationParams) -> bool:
    end = s.pending.end
    if (sample.time - end.time).total_seconds() >= params.merge_gap_seconds:
        return True
    return s.gap_peak is not None and s.gap_peak - end.elevation >= params.max_gap_ascent


def _apply_vote(s: SegmenterState, vote: Phase | None, params: SegmentationParams) -> SegmenterState:
    if vote is None:
        return s
    if vote == s.phase:
        return replace(s, candidate=None, votes=0)
    votes = s.votes + 1 if vote == s.candidate else 1
    if votes < params.hysteresis:
        return replace(s, candidate=vote, votes=votes)

    previous = s.phase
    s = replace(s, phase=vote, candidate=None, votes=0)
    if previous is Phase.DESCENDING:
        s = _close_descent(s)
    if vote is Phase.DESCENDING:
        s = _open_descent(s)
    return s


def advance(
    state: SegmenterState,
    point: TrackPoint,
    params: SegmentationParams = DEFAULT_PARAMS,
) -> tuple[SegmenterState, Segment | None]:
    """Consume one annotated point. Work per call is bounded by the window size."""
    elevation = point.elevation if point.elevation is not None else state.last_elevation
    sample = Sample(
        index=state.next_index,
        time=point.time,
        elevation=elevation,
        distance=point.cumulative_distance,
    )
    buffer = (state.buffer + (sample,))[-(params.window + params.hysteresis):]
    s = replace(state, buffer=buffer, next_index=state.next_index + 1, last_elevation=elevation)

    finalized = None
    if s.open_start is not None:
        if _is_lower(sample, s.open_low):
            s = replace(s, open_low=sample)
    elif s.pending is not None:
        if elevation is not None:
            s = replace(s, gap_peak=elevation if s.gap_peak is None else max(s.gap_peak, elevation))
        if _gap_exceeded(s, sample, params):
            finalized = qualify(s.pending, params)
            s = replace(s, pending=None, gap_peak=None)

    s = _apply_vote(s, classify(buffer[-params.window:], params), params)
    return s, finalized


def finish(state: SegmenterState, params: SegmentationParams = DEFAULT_PARAMS) -> Segment | None:
    """End of stream: close the open descent at its lowest point and finalize."""
    if state.open_start is not None:
        return qualify(_close_descent(state).pending, params)
    return qualify(state.pending, params)


def segment_points(
    points: Iterable[TrackPoint],
    params: SegmentationParams = DEFAULT_PARAMS,
) -> list[Segment]:
    """Batch mode: fold `advance` over annotated points."""
    state = SegmenterState()
    segments: list[Segment] = []
    for p in points:
        state, segment = advance(state, p, params)
        if segment is not None:
            segments.append(segment)
    last = finish(state, params)
    if last is not None:
        segments.append(last)
    return segments
