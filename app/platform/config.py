from pathlib import Path
from typing import Dict, List, Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── App ─────────────────────────────────────
    APP_NAME: str = "Link Preview API"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    DEBUG: bool = True
    LOG_DIR: str = "logs"

    # ── Outbound fetch policy ───────────────────
    FETCH_MAX_REDIRECTS: int = 3
    FETCH_TIMEOUT_MS: int = 10000
    FETCH_MAX_HTML_SIZE_KB: int = 1024
    FETCH_USER_AGENT: str = (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )
    FETCH_ALLOWED_CONTENT_TYPES: List[str] = [
        "text/html",
        "text/html; charset=utf-8",
        "text/html; charset=UTF-8",
    ]

    # ── Inbound limits ──────────────────────────
    MAX_RAW_HTML_SIZE_KB: int = 500
    MAX_REQUEST_BODY_KB: int = 1024

    # ── Rate limiting ───────────────────────────
    RATE_LIMITS: Dict[str, int] = {"/preview": 10}
    RATE_LIMIT_WINDOW_SECONDS: int = 60
    WHITELIST_IPS: List[str] = []
    FORCE_IN_MEMORY_RATE_LIMITER: bool = True
    REDIS_URL: str = "redis://localhost:6379/0"

    # ── CORS ────────────────────────────────────
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:19006",
    ]

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    class Config:
        env_file = str(Path(__file__).parent.parent.parent / ".env")
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
