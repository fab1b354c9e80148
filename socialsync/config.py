import os
from dotenv import load_dotenv

load_dotenv()

def _bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")

class Settings:
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./socialsync.db")
    app_base_url: str = os.getenv("APP_BASE_URL", "http://localhost:8000")
    # base64 of exactly 32 bytes (openssl rand -base64 32)
    encryption_key: str = os.getenv("ENCRYPTION_KEY", "")
    # Optional: when empty the state signing key is derived from ENCRYPTION_KEY
    state_signing_key: str = os.getenv("STATE_SIGNING_KEY", "")
    oauth_state_ttl_seconds: int = int(os.getenv("OAUTH_STATE_TTL_SECONDS", "600"))
    platform_http_timeout: float = float(os.getenv("PLATFORM_HTTP_TIMEOUT", "30"))
    sync_max_workers: int = int(os.getenv("SYNC_MAX_WORKERS", "4"))
    sync_deadline_seconds: float = float(os.getenv("SYNC_DEADLINE_SECONDS", "120"))
    sync_cron: str = os.getenv("SYNC_CRON", "0 * * * *")
    undo_ttl_ms: int = int(os.getenv("UNDO_TTL_MS", "5000"))
    undo_retention_ms: int = int(os.getenv("UNDO_RETENTION_MS", "60000"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_json: bool = _bool(os.getenv("LOG_JSON", "true"))

settings = Settings()
