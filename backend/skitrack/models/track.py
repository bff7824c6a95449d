from sqlalchemy import JSON, Column, DateTime, Float, Integer, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from skitrack.db import Base


class TrackRecord(Base):
    __tablename__ = "tracks"

    id = Column(Integer, primary_key=True, index=True)

    name = Column(String, nullable=False)

    # Where the points came from: gpx, fit or recording
    source = Column(String(20), nullable=False, server_default="gpx")

    started_at = Column(DateTime(timezone=True), nullable=True)
    ended_at = Column(DateTime(timezone=True), nullable=True)

    # Denormalized headline numbers for listing (meters / count)
    total_distance_m = Column(Float, nullable=False, default=0.0)
    ski_vertical_m = Column(Float, nullable=False, default=0.0)
    run_count = Column(Integer, nullable=False, default=0)

    # Full Stats snapshot as returned by the engine
    stats = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False)
    # Raw input points [{lat, lon, ele, time, hr, speed}, ...]; derived
    # fields are recomputed on read so they always match the engine
    points = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False)

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
