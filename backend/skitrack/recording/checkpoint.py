"""Durable checkpoint for a live recording.

The checkpoint is an append-only log of point chunks on top of any
key/value store with get/set/remove. Every few chunks the log is compacted
into a single snapshot under a new generation; the `meta` key always names
the generation and chunk count that make up the current state, so it is
written last.

Keys (prefix "recording"):
    recording.meta             {"version", "generation", "chunks", "points", ...}
    recording.snapshot.<gen>   [point, ...]
    recording.chunk.<gen>.<n>  [point, ...]
"""
import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, Sequence

from sqlalchemy.exc import SQLAlchemyError

from skitrack.analysis.points import TrackPoint, point_from_dict, point_to_dict
from skitrack.core.errors import CheckpointWriteFailure, RecoveryCorrupt
from skitrack.core.time_utils import parse_iso

logger = logging.getLogger(__name__)

LOG_VERSION = 1


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryStore:
    """In-process store; survives nothing, used for tests and ephemeral sessions."""

    def __init__(self):
        self.data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def remove(self, key: str) -> None:
        self.data.pop(key, None)


class FileStore:
    """One file per key under `directory`, replaced atomically on write."""

    def __init__(self, directory: str):
        self.directory = directory

    def _path(self, key: str) -> str:
        return os.path.join(self.directory, f"{key}.json")

    def get(self, key: str) -> str | None:
        try:
            with open(self._path(key), "r", encoding="utf-8") as f:
                return f.read()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise CheckpointWriteFailure(f"could not read {key}: {e}") from e

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        tmp = path + ".tmp"
        try:
            os.makedirs(self.directory, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as out:
                out.write(value)
                out.flush()
                os.fsync(out.fileno())
            os.replace(tmp, path)
        except OSError as e:
            raise CheckpointWriteFailure(f"could not write {path}: {e}") from e

    def remove(self, key: str) -> None:
        try:
            os.remove(self._path(key))
        except FileNotFoundError:
            pass
        except OSError as e:
            raise CheckpointWriteFailure(f"could not remove {key}: {e}") from e


class SqlStore:
    """Rows in the `checkpoint_entries` table."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def get(self, key: str) -> str | None:
        from skitrack.models.checkpoint_entry import CheckpointEntry

        db = self.session_factory()
        try:
            row = db.query(CheckpointEntry).filter(CheckpointEntry.key == key).first()
            return row.value if row else None
        except SQLAlchemyError as e:
            raise CheckpointWriteFailure(f"could not read {key}: {e}") from e
        finally:
            db.close()

    def set(self, key: str, value: str) -> None:
        from skitrack.models.checkpoint_entry import CheckpointEntry

        db = self.session_factory()
        try:
            row = db.query(CheckpointEntry).filter(CheckpointEntry.key == key).first()
            if not row:
                row = CheckpointEntry(key=key)
                db.add(row)
            row.value = value
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise CheckpointWriteFailure(f"could not write {key}: {e}") from e
        finally:
            db.close()

    def remove(self, key: str) -> None:
        from skitrack.models.checkpoint_entry import CheckpointEntry

        db = self.session_factory()
        try:
            db.query(CheckpointEntry).filter(CheckpointEntry.key == key).delete()
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise CheckpointWriteFailure(f"could not remove {key}: {e}") from e
        finally:
            db.close()


def store_from_settings(config) -> KeyValueStore:
    if config.checkpoint_backend == "file":
        return FileStore(config.checkpoint_dir)
    if config.checkpoint_backend == "memory":
        return MemoryStore()
    from skitrack.db import SessionLocal

    return SqlStore(SessionLocal)


@dataclass(frozen=True)
class CheckpointData:
    name: str
    started_at: datetime | None
    points: tuple[TrackPoint, ...]


class CheckpointLog:
    def __init__(self, store: KeyValueStore, prefix: str = "recording", compact_every: int = 20):
        self.store = store
        self.prefix = prefix
        self.compact_every = compact_every

    def _key(self, *parts) -> str:
        return ".".join([self.prefix, *map(str, parts)])

    def _read_meta(self) -> dict | None:
        raw = self.store.get(self._key("meta"))
        if raw is None:
            return None
        try:
            meta = json.loads(raw)
        except ValueError as e:
            raise RecoveryCorrupt(f"checkpoint meta is not JSON: {e}") from e
        if not isinstance(meta, dict) or meta.get("version") != LOG_VERSION:
            raise RecoveryCorrupt("checkpoint meta has an unknown layout")
        for field in ("generation", "chunks", "points"):
            if not isinstance(meta.get(field), int) or meta[field] < 0:
                raise RecoveryCorrupt(f"checkpoint meta field {field!r} is invalid")
        return meta

    def _write_meta(self, meta: dict) -> None:
        self.store.set(self._key("meta"), json.dumps(meta))

    def _read_points(self, key: str, required: bool) -> list[TrackPoint]:
        raw = self.store.get(key)
        if raw is None:
            if required:
                raise RecoveryCorrupt(f"checkpoint entry {key} is missing")
            return []
        try:
            return [point_from_dict(d) for d in json.loads(raw)]
        except (ValueError, KeyError, TypeError) as e:
            raise RecoveryCorrupt(f"checkpoint entry {key} is unreadable: {e}") from e

    def begin(self, name: str, started_at: datetime) -> None:
        """Start a fresh log, dropping whatever was there."""
        self.clear()
        self._write_meta(
            {
                "version": LOG_VERSION,
                "generation": 0,
                "chunks": 0,
                "points": 0,
                "name": name,
                "started_at": started_at.isoformat(),
            }
        )

    def append(self, points: Sequence[TrackPoint]) -> None:
        """Persist one chunk. Raises CheckpointWriteFailure; on failure the log is unchanged."""
        if not points:
            return
        try:
            meta = self._read_meta()
        except RecoveryCorrupt as e:
            raise CheckpointWriteFailure(str(e)) from e
        if meta is None:
            raise CheckpointWriteFailure("checkpoint log was not started")
        gen, n = meta["generation"], meta["chunks"]
        self.store.set(self._key("chunk", gen, n), json.dumps([point_to_dict(p) for p in points]))
        meta["chunks"] = n + 1
        meta["points"] += len(points)
        self._write_meta(meta)
        if meta["chunks"] >= self.compact_every:
            try:
                self.compact()
            except CheckpointWriteFailure as e:
                # the chunk is already durable; compaction is retried next time
                logger.warning("Checkpoint compaction failed: %s", e)

    def compact(self) -> None:
        """Fold snapshot + chunks into a new generation snapshot."""
        try:
            meta = self._read_meta()
            if meta is None or meta["chunks"] == 0:
                return
            points = self._collect(meta)
        except RecoveryCorrupt as e:
            raise CheckpointWriteFailure(f"cannot compact: {e}") from e
        gen, chunks = meta["generation"], meta["chunks"]
        self.store.set(self._key("snapshot", gen + 1), json.dumps([point_to_dict(p) for p in points]))
        meta.update(generation=gen + 1, chunks=0, points=len(points))
        self._write_meta(meta)
        self._remove_generation(gen, chunks)
        logger.debug("Compacted checkpoint into generation %d (%d points)", gen + 1, len(points))

    def _collect(self, meta: dict) -> list[TrackPoint]:
        gen = meta["generation"]
        points = self._read_points(self._key("snapshot", gen), required=gen > 0)
        for n in range(meta["chunks"]):
            points.extend(self._read_points(self._key("chunk", gen, n), required=True))
        if len(points) != meta["points"]:
            raise RecoveryCorrupt(
                f"checkpoint holds {len(points)} points, meta says {meta['points']}"
            )
        return points

    def _remove_generation(self, gen: int, chunks: int) -> None:
        self.store.remove(self._key("snapshot", gen))
        for n in range(chunks):
            self.store.remove(self._key("chunk", gen, n))

    def load(self) -> CheckpointData | None:
        """Read the whole log. None when there is none; RecoveryCorrupt when inconsistent."""
        meta = self._read_meta()
        if meta is None:
            return None
        points = self._collect(meta)
        try:
            started_at = parse_iso(meta.get("started_at"))
        except (TypeError, ValueError) as e:
            raise RecoveryCorrupt(f"checkpoint start time is invalid: {e}") from e
        return CheckpointData(
            name=str(meta.get("name") or "Recovered Recording"),
            started_at=started_at,
            points=tuple(points),
        )

    def clear(self) -> None:
        """Remove the log. Safe to call repeatedly."""
        try:
            meta = self._read_meta()
        except RecoveryCorrupt:
            meta = None
        # meta first: a half-cleared log must never look recoverable
        self.store.remove(self._key("meta"))
        if meta is not None:
            self._remove_generation(meta["generation"], meta["chunks"])
