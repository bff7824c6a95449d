import os
import tempfile

# Settings are read at import time, so point them at throwaway locations
# before any skitrack module is imported.
_tmp = tempfile.mkdtemp(prefix="skitrack-tests-")
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("UPLOADS_DIR", os.path.join(_tmp, "uploads"))
os.environ.setdefault("CHECKPOINT_DIR", os.path.join(_tmp, "checkpoints"))
os.environ.setdefault("CHECKPOINT_BACKEND", "database")
os.environ.setdefault("GEOCODE_ENABLED", "false")
