"""Error types raised by the telemetry engine and the recording session.

Routers translate these into HTTP responses; the engine itself never
returns partial results when one of them is raised.
"""


class SkiTrackError(Exception):
    """Base class for all engine errors."""


class MalformedInput(SkiTrackError):
    """A GPX/FIT file could not be parsed into track points."""


class UnsupportedFileType(MalformedInput):
    pass


class InvalidSample(SkiTrackError):
    """A live sample carried implausible coordinates."""


class AcquisitionError(SkiTrackError):
    """The session could not reach the recording state."""


class PermissionDenied(AcquisitionError):
    pass


class AcquisitionTimeout(AcquisitionError):
    pass


class CheckpointWriteFailure(SkiTrackError):
    """The durable checkpoint store rejected a write."""


class RecoveryCorrupt(SkiTrackError):
    """A persisted checkpoint is unreadable or inconsistent."""


class InvalidTransition(SkiTrackError):
    """Operation not allowed in the session's current state."""

    def __init__(self, operation: str, state):
        self.operation = operation
        self.state = state
        super().__init__(f"cannot {operation} while {getattr(state, 'value', state)}")
