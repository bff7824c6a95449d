import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from skitrack.api.tracks import router as tracks_router
from skitrack.api.recording import router as recording_router
from skitrack.db import Base, engine
from skitrack.models.track import TrackRecord  # noqa: F401  (import ensures table is registered)
from skitrack.models.track_run import TrackRun  # noqa: F401
from skitrack.models.track_file import TrackFile  # noqa: F401
from skitrack.models.checkpoint_entry import CheckpointEntry  # noqa: F401
from skitrack.core.config import settings
from skitrack.recording.checkpoint import store_from_settings
from skitrack.recording.session import RecordingSession

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="SkiTrack")

# Allow CORS for local frontend
origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Create DB tables on startup
Base.metadata.create_all(bind=engine)

# Ensure uploads directory exists
os.makedirs(settings.uploads_dir, exist_ok=True)

# One live recording per process; the checkpoint store outlives it
app.state.checkpoint_store = store_from_settings(settings)
app.state.recording = None
app.state.recording_track_id = None

_recovery = RecordingSession.check_for_recovery(app.state.checkpoint_store)
if _recovery is not None:
    logger.info(
        "Found unfinished recording %r with %d points; POST /recording/recovery to resume",
        _recovery.name,
        _recovery.point_count,
    )

app.include_router(tracks_router)
app.include_router(recording_router)


@app.get("/")
def root():
    return {"message": "SkiTrack backend is running"}
