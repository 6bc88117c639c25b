"""Application configuration management."""

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


@dataclass
class Settings:
    """Settings loaded from environment."""

    # CMS
    strapi_url: str = "http://localhost:1337"
    strapi_api_token: Optional[str] = None
    request_timeout: float = 10.0

    # Append-and-resync
    resync_wait: float = 2.0
    settle_delay: float = 0.1

    # Full-replacement loss guard
    preserve_ratio: float = 0.5
    preserve_min_existing: int = 3

    # Local state (onboarding flags)
    state_file: str = "desk_state.json"

    # Server
    host: str = "127.0.0.1"
    port: int = 8765

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

    def __post_init__(self):
        if not 0 < self.preserve_ratio <= 1:
            raise ValueError("PRESERVE_RATIO must be in (0, 1]")
        if self.preserve_min_existing < 0:
            raise ValueError("PRESERVE_MIN_EXISTING must not be negative")
        self.strapi_url = self.strapi_url.rstrip("/")

    @property
    def api_base_url(self) -> str:
        return f"{self.strapi_url}/api"


def load_settings_from_env() -> Settings:
    """Load settings from environment variables."""

    def get_float(key: str, default: float) -> float:
        return float(os.getenv(key, str(default)))

    def get_int(key: str, default: int) -> int:
        return int(os.getenv(key, str(default)))

    return Settings(
        strapi_url=os.getenv("STRAPI_URL", "http://localhost:1337"),
        strapi_api_token=os.getenv("STRAPI_API_TOKEN") or None,
        request_timeout=get_float("REQUEST_TIMEOUT", 10.0),
        resync_wait=get_float("RESYNC_WAIT", 2.0),
        settle_delay=get_float("SETTLE_DELAY", 0.1),
        preserve_ratio=get_float("PRESERVE_RATIO", 0.5),
        preserve_min_existing=get_int("PRESERVE_MIN_EXISTING", 3),
        state_file=os.getenv("STATE_FILE", "desk_state.json"),
        host=os.getenv("HOST", "127.0.0.1"),
        port=get_int("PORT", 8765),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_format=os.getenv("LOG_FORMAT", "json"),
    )


@lru_cache()
def get_settings() -> Settings:
    return load_settings_from_env()
