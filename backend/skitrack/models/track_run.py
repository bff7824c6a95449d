from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer
from skitrack.db import Base


class TrackRun(Base):
    __tablename__ = "track_runs"

    id = Column(Integer, primary_key=True, index=True)
    track_id = Column(Integer, ForeignKey("tracks.id", ondelete="CASCADE"), nullable=False, index=True)
    idx = Column(Integer, nullable=False)  # 1-based order within the track

    start_index = Column(Integer, nullable=False)
    end_index = Column(Integer, nullable=False)  # inclusive
    distance_m = Column(Float, nullable=False)
    vertical_drop_m = Column(Float, nullable=False)
    avg_speed_mps = Column(Float, nullable=False)
    max_speed_mps = Column(Float, nullable=False)
    duration_s = Column(Float, nullable=False)
    start_elevation_m = Column(Float, nullable=False)
    end_elevation_m = Column(Float, nullable=False)
    avg_slope = Column(Float, nullable=False)
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=False)
    avg_hr = Column(Float, nullable=True)
    max_hr = Column(Integer, nullable=True)
