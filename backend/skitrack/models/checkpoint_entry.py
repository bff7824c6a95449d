from sqlalchemy import Column, DateTime, String, Text
from sqlalchemy.sql import func
from skitrack.db import Base


class CheckpointEntry(Base):
    """Key/value row backing the live recording checkpoint."""

    __tablename__ = "checkpoint_entries"

    key = Column(String(200), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
