from pydantic_settings import BaseSettings
from typing import Optional, List, Dict

class Settings(BaseSettings):
    PROJECT_NAME: str = "LMS Cache"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"

    # CORS for the cache admin API
    ALLOWED_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
    ]

    # Hosted backend (REST + auth). Empty URL selects the in-memory backend.
    SUPABASE_URL: str = ""
    SUPABASE_ANON_KEY: str = ""
    SUPABASE_ACCESS_TOKEN: Optional[str] = None
    REQUEST_TIMEOUT: float = 10.0

    # Snapshot persistence
    REDIS_URL: Optional[str] = None
    SNAPSHOT_TTL: int = 60 * 60 * 24  # 1 day
    SNAPSHOT_PREFIX: str = "lms_cache:snapshot"

    CACHE_ENABLED: bool = True
    # Per-store expiry overrides in seconds, e.g. {"courses": 600}
    CACHE_EXPIRY_OVERRIDES: Dict[str, float] = {}

    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None

    class Config:
        env_file = ".env"

settings = Settings()
