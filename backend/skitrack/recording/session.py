"""Live recording lifecycle.

    IDLE -> ACQUIRING -> RECORDING <-> PAUSED -> STOPPED
    RECOVERED (process start only) -> RECORDING

Each accepted sample runs through the same TrackBuilder used for file
import and is buffered for the durable checkpoint, which is flushed every
`checkpoint_flush_points` points or `checkpoint_flush_seconds` seconds.
Recovery replays the checkpoint through a fresh TrackBuilder, so the
rebuilt state always derives from the persisted points.
"""
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable

from skitrack.analysis.aggregator import Run, Stats
from skitrack.analysis.ingest import point_from_sample
from skitrack.analysis.pipeline import Track, TrackBuilder
from skitrack.analysis.points import LocationSample, TrackPoint
from skitrack.analysis.segmentation import DEFAULT_PARAMS, SegmentationParams
from skitrack.core.config import Settings, settings
from skitrack.core.constants import CHECKPOINT_FAILURE_WARN_AFTER
from skitrack.core.errors import (
    AcquisitionTimeout,
    CheckpointWriteFailure,
    InvalidTransition,
    PermissionDenied,
    RecoveryCorrupt,
)
from skitrack.core.time_utils import to_local_datetime
from skitrack.recording.checkpoint import CheckpointLog, KeyValueStore

logger = logging.getLogger(__name__)


class RecordingState(str, Enum):
    IDLE = "idle"
    ACQUIRING = "acquiring"
    RECORDING = "recording"
    PAUSED = "paused"
    STOPPED = "stopped"
    RECOVERED = "recovered"


@dataclass(frozen=True)
class RecoveryInfo:
    name: str
    started_at: datetime | None
    point_count: int
    last_point_time: datetime


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def default_recording_name(now: datetime, tz_name: str | None) -> str:
    return f"Recording {to_local_datetime(now, tz_name).date().isoformat()}"


class RecordingSession:
    def __init__(
        self,
        store: KeyValueStore,
        config: Settings = settings,
        clock: Callable[[], datetime] = _utcnow,
        name: str | None = None,
        params: SegmentationParams = DEFAULT_PARAMS,
    ):
        self.store = store
        self.config = config
        self.clock = clock
        self.name = name
        self.params = params
        self.state = RecordingState.IDLE
        self.error: str | None = None
        self.warning: str | None = None
        self.last_location: tuple[float, float] | None = None
        self.last_accuracy: float | None = None
        self.checkpointed_points = 0
        self._lock = threading.RLock()
        self._log = CheckpointLog(store, compact_every=config.checkpoint_compact_chunks)
        self._reset()

    def _reset(self) -> None:
        self.started_at: datetime | None = None
        self._builder: TrackBuilder | None = None
        self._track: Track | None = None
        self._pending: list[TrackPoint] = []
        self._acquiring_since: datetime | None = None
        self._last_flush_at: datetime | None = None
        self._last_fix_at: datetime | None = None
        self._log_open = False
        self._flush_failures = 0
        self._paused_at: datetime | None = None
        self._paused_total = 0.0
        self._stopped_at: datetime | None = None
        self.checkpointed_points = 0

    # --------- read side --------- #

    @property
    def points(self) -> tuple[TrackPoint, ...]:
        return self._builder.points if self._builder else ()

    @property
    def runs(self) -> tuple[Run, ...]:
        return self._builder.runs if self._builder else ()

    @property
    def pending_points(self) -> int:
        return len(self._pending)

    @property
    def track(self) -> Track | None:
        return self._track

    def snapshot(self) -> Stats:
        with self._lock:
            return self._builder.snapshot() if self._builder else Stats()

    @property
    def elapsed_seconds(self) -> float:
        """Wall time since start, excluding paused intervals."""
        if self.started_at is None:
            return 0.0
        end = self._stopped_at or self.clock()
        paused = self._paused_total
        if self._paused_at is not None:
            paused += (end - self._paused_at).total_seconds()
        return max(0.0, (end - self.started_at).total_seconds() - paused)

    @property
    def signal_lost(self) -> bool:
        if self.state is not RecordingState.RECORDING or self._last_fix_at is None:
            return False
        idle = (self.clock() - self._last_fix_at).total_seconds()
        return idle >= self.config.signal_loss_seconds

    # --------- lifecycle --------- #

    def start(self, permission_granted: bool = True, foreground: bool = True) -> None:
        with self._lock:
            if self.state is not RecordingState.IDLE:
                raise InvalidTransition("start", self.state)
            if not permission_granted or not foreground:
                self.error = (
                    "location permission denied"
                    if not permission_granted
                    else "foreground capture unavailable"
                )
                logger.warning("Recording not started: %s", self.error)
                raise PermissionDenied(self.error)

            now = self.clock()
            self._reset()
            self.name = self.name or default_recording_name(now, self.config.timezone)
            self.error = None
            self.warning = None
            self.started_at = now
            self._acquiring_since = now
            self._last_flush_at = now
            self._builder = TrackBuilder(name=self.name, source="recording", params=self.params)
            try:
                self._log.begin(self.name, now)
                self._log_open = True
            except CheckpointWriteFailure as e:
                self._flush_failures += 1
                logger.warning("Could not open recording checkpoint: %s", e)
            self.state = RecordingState.ACQUIRING
            logger.info("Recording %r started, waiting for GPS fix", self.name)

    def _timeout_acquisition(self) -> None:
        waited = self.config.acquisition_timeout_seconds
        self._clear_checkpoint()
        self._reset()
        self.state = RecordingState.IDLE
        self.error = f"no GPS fix within {waited:.0f}s"
        logger.warning("Recording acquisition timed out after %.0fs", waited)
        raise AcquisitionTimeout(self.error)

    def check_acquisition(self) -> None:
        """Fail back to IDLE when no fix arrived within the acquisition timeout."""
        with self._lock:
            if self.state is not RecordingState.ACQUIRING:
                return
            waited = (self.clock() - self._acquiring_since).total_seconds()
            if waited > self.config.acquisition_timeout_seconds:
                self._timeout_acquisition()

    def fix_unavailable(self) -> None:
        """The location provider reports no fix (distinct from a denied permission)."""
        with self._lock:
            if self.state is RecordingState.ACQUIRING:
                self.check_acquisition()
            elif self.state is RecordingState.RECORDING:
                logger.debug("Location fix unavailable while recording")

    def add_sample(self, sample: LocationSample) -> TrackPoint | None:
        """Feed one fix. Returns the annotated point, or None when it was dropped.

        Implausible coordinates raise InvalidSample and leave the session as
        it was. Fixes that are too inaccurate, arrive faster than the minimum
        sample interval, or arrive while paused are dropped.
        """
        with self._lock:
            if self.state in (RecordingState.IDLE, RecordingState.STOPPED):
                raise InvalidTransition("add samples", self.state)
            if self.state is RecordingState.ACQUIRING:
                self.check_acquisition()

            point = point_from_sample(sample)
            if self.state in (RecordingState.PAUSED, RecordingState.RECOVERED):
                return None
            if (
                sample.accuracy is not None
                and sample.accuracy > self.config.gps_accuracy_threshold_m
            ):
                logger.debug("Dropping fix with accuracy %.0fm", sample.accuracy)
                return None
            last = self._builder.last_point
            if last is not None:
                dt = (point.time - last.time).total_seconds()
                if dt < self.config.min_sample_interval_seconds:
                    return None

            annotated = self._builder.append(point)
            now = self.clock()
            self._last_fix_at = now
            self.last_location = (point.latitude, point.longitude)
            self.last_accuracy = sample.accuracy
            if self.state is RecordingState.ACQUIRING:
                self.state = RecordingState.RECORDING
                self._acquiring_since = None
                logger.info("GPS fix acquired, recording %r", self.name)

            self._pending.append(annotated)
            since_flush = (now - self._last_flush_at).total_seconds()
            if (
                len(self._pending) >= self.config.checkpoint_flush_points
                or since_flush >= self.config.checkpoint_flush_seconds
            ):
                self._flush()
            return annotated

    def _flush(self) -> bool:
        self._last_flush_at = self.clock()
        if not self._pending:
            return True
        try:
            if not self._log_open:
                # start could not open the log; everything so far is still pending
                self._log.begin(self.name, self.started_at)
                self._log_open = True
            self._log.append(self._pending)
        except CheckpointWriteFailure as e:
            self._flush_failures += 1
            logger.warning(
                "Checkpoint flush failed (%d in a row), keeping %d points in memory: %s",
                self._flush_failures,
                len(self._pending),
                e,
            )
            if self._flush_failures >= CHECKPOINT_FAILURE_WARN_AFTER:
                self.warning = "recording is not being saved; a crash may lose data"
            return False
        self.checkpointed_points += len(self._pending)
        self._pending = []
        self._flush_failures = 0
        self.warning = None
        return True

    def flush(self) -> bool:
        """Write buffered points to the checkpoint now. False when the store failed."""
        with self._lock:
            return self._flush()

    def pause(self) -> None:
        with self._lock:
            if self.state is RecordingState.PAUSED:
                return
            if self.state is not RecordingState.RECORDING:
                raise InvalidTransition("pause", self.state)
            self._paused_at = self.clock()
            self._flush()
            self.state = RecordingState.PAUSED

    def resume(self) -> None:
        with self._lock:
            if self.state is RecordingState.RECORDING:
                return
            if self.state not in (RecordingState.PAUSED, RecordingState.RECOVERED):
                raise InvalidTransition("resume", self.state)
            if self._paused_at is not None:
                self._paused_total += (self.clock() - self._paused_at).total_seconds()
                self._paused_at = None
            self.state = RecordingState.RECORDING

    def _clear_checkpoint(self) -> None:
        try:
            self._log.clear()
        except CheckpointWriteFailure as e:
            logger.warning("Could not clear recording checkpoint: %s", e)

    def stop_recording(self, name: str | None = None) -> Track | None:
        """Finalize the open run and return the Track. Repeated calls return the same Track."""
        with self._lock:
            if self.state is RecordingState.STOPPED:
                return self._track
            if self.state is RecordingState.IDLE:
                return None
            if self._builder is None or len(self._builder) == 0:
                self._clear_checkpoint()
                self._reset()
                self.state = RecordingState.IDLE
                return None

            if name:
                self.name = name
                self._builder.name = name
            self._stopped_at = self.clock()
            track = self._builder.finish()
            self._clear_checkpoint()
            self._pending = []
            self._track = track
            self.state = RecordingState.STOPPED
            logger.info(
                "Recording %r stopped: %d points, %d runs",
                track.name,
                len(track.points),
                len(track.runs),
            )
            return track

    def discard_recording(self) -> None:
        """Drop the session and its checkpoint. No effect once stopped or idle."""
        with self._lock:
            if self.state in (RecordingState.IDLE, RecordingState.STOPPED):
                return
            self._clear_checkpoint()
            self._reset()
            self.state = RecordingState.IDLE
            logger.info("Recording %r discarded", self.name)

    # --------- recovery --------- #

    @staticmethod
    def check_for_recovery(store: KeyValueStore) -> RecoveryInfo | None:
        """Describe a recoverable checkpoint, or None. Never raises on bad data."""
        try:
            data = CheckpointLog(store).load()
        except (RecoveryCorrupt, CheckpointWriteFailure) as e:
            logger.warning("Ignoring unreadable recording checkpoint: %s", e)
            return None
        if data is None or not data.points:
            return None
        return RecoveryInfo(
            name=data.name,
            started_at=data.started_at,
            point_count=len(data.points),
            last_point_time=data.points[-1].time,
        )

    @classmethod
    def recover_recording(
        cls,
        store: KeyValueStore,
        config: Settings = settings,
        clock: Callable[[], datetime] = _utcnow,
        params: SegmentationParams = DEFAULT_PARAMS,
    ) -> "RecordingSession":
        """Rebuild a session from the checkpoint by replaying its points."""
        session = cls(store, config=config, clock=clock, params=params)
        try:
            data = session._log.load()
        except CheckpointWriteFailure as e:
            raise RecoveryCorrupt(str(e)) from e
        if data is None or not data.points:
            raise RecoveryCorrupt("no recoverable recording")

        builder = TrackBuilder(name=data.name, source="recording", params=params)
        builder.extend(data.points)

        now = clock()
        last = builder.last_point
        session.name = data.name
        session._builder = builder
        session.started_at = data.started_at or data.points[0].time
        session._paused_at = now
        session._last_flush_at = now
        session.checkpointed_points = len(data.points)
        session._log_open = True
        session.last_location = (last.latitude, last.longitude)
        session.state = RecordingState.RECOVERED
        logger.info("Recovered recording %r with %d points", data.name, len(data.points))
        return session

    @staticmethod
    def clear_recovery(store: KeyValueStore) -> None:
        CheckpointLog(store).clear()
