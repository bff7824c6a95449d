from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator


class Settings(BaseSettings):
    database_url: str = "sqlite+pysqlite:///./skitrack.db"
    uploads_dir: str = "uploads"  # relative to backend working dir
    # Timezone for naming recordings and displaying local times.
    # Examples: "Europe/Zurich", "America/Denver", or "local" to use system tz.
    timezone: str = "local"
    log_level: str = "INFO"

    # Heart rate settings; without a max, zones use fixed bpm bounds
    hr_max: int | None = None

    # Recording checkpoint: "database", "file" or "memory"
    checkpoint_backend: str = "database"
    checkpoint_dir: str = "uploads/checkpoints"
    checkpoint_flush_points: int = 10
    checkpoint_flush_seconds: float = 15.0
    checkpoint_compact_chunks: int = 20

    # Live acquisition
    acquisition_timeout_seconds: float = 60.0
    gps_accuracy_threshold_m: float = 50.0
    min_sample_interval_seconds: float = 1.0
    signal_loss_seconds: float = 30.0

    # Default speed histogram boundaries in m/s (10/20/40/60/80 km/h)
    speed_bucket_bounds_mps: list[float] = [2.78, 5.56, 11.11, 16.67, 22.22]

    # Reverse geocoding for naming recordings (optional)
    geocode_enabled: bool = False
    geocode_url: str = "https://nominatim.openstreetmap.org/reverse"
    geocode_user_agent: str = "skitrack/0.1"
    geocode_timeout_seconds: float = 5.0

    model_config = SettingsConfigDict(env_file=".env")

    # Allow empty env strings for optional fields
    @field_validator("hr_max", mode="before")
    @classmethod
    def _empty_to_none(cls, v):
        if v in ("", None, "null", "None"):
            return None
        return v

    @field_validator("checkpoint_backend")
    @classmethod
    def _known_backend(cls, v: str) -> str:
        v = v.lower()
        if v not in ("database", "file", "memory"):
            raise ValueError("checkpoint_backend must be database, file or memory")
        return v


settings = Settings()
