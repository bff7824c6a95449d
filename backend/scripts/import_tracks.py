"""Bulk-import every .gpx/.fit file in a directory.

    python scripts/import_tracks.py ~/Downloads/ski-days
"""
import argparse
import os

from skitrack.analysis.ingest import is_supported_file
from skitrack.analysis.pipeline import import_track_file
from skitrack.api.tracks import _persist_track
from skitrack.core.errors import MalformedInput
from skitrack.db import Base, SessionLocal, engine
from skitrack.models.track import TrackRecord


def import_directory(db, directory: str) -> tuple[int, int]:
    """Import supported files not already stored under the same name. Returns (imported, skipped)."""
    imported = skipped = 0
    for filename in sorted(os.listdir(directory)):
        path = os.path.join(directory, filename)
        if not os.path.isfile(path) or not is_supported_file(filename):
            continue
        with open(path, "rb") as f:
            data = f.read()
        try:
            track = import_track_file(filename, data)
        except MalformedInput as e:
            print(f"Skipping {filename}: {e}")
            skipped += 1
            continue
        exists = (
            db.query(TrackRecord)
            .filter(TrackRecord.name == track.name, TrackRecord.started_at == track.stats.start_time)
            .first()
        )
        if exists:
            skipped += 1
            continue
        record = _persist_track(db, track)
        print(f"Imported {filename} as track {record.id} ({len(track.runs)} runs)")
        imported += 1
    return imported, skipped


def main():
    parser = argparse.ArgumentParser(description="Import GPX/FIT files into the track database")
    parser.add_argument("directory", help="Folder containing .gpx or .fit files")
    args = parser.parse_args()
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        imported, skipped = import_directory(db, args.directory)
    finally:
        db.close()
    print(f"Imported {imported} tracks, skipped {skipped}")


if __name__ == "__main__":
    main()
