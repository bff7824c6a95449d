from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.sql import func
from skitrack.db import Base


class TrackFile(Base):
    __tablename__ = "track_files"

    id = Column(Integer, primary_key=True, index=True)
    track_id = Column(Integer, ForeignKey("tracks.id", ondelete="CASCADE"), nullable=False, index=True)

    filename = Column(String, nullable=False)
    content_type = Column(String, nullable=False)
    size_bytes = Column(Integer, nullable=False)
    storage_path = Column(String, nullable=False)  # local path for now
    source = Column(String, nullable=False, default="gpx")

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
