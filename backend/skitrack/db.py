from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool
from skitrack.core.config import settings

# SQLAlchemy Base class for models to inherit
Base = declarative_base()


def _engine_kwargs(url: str) -> dict:
    kwargs = {"pool_pre_ping": True}  # helps avoid stale connections
    if url.startswith("sqlite"):
        # FastAPI may serve a request on a different thread than the one
        # that opened the connection
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in url:
            # keep one shared in-memory database for the whole process
            kwargs["poolclass"] = StaticPool
    return kwargs


engine = create_engine(settings.database_url, **_engine_kwargs(settings.database_url))

# Factory that creates DB sessions
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Dependency we will use in FastAPI routes
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
