"""mediagate configuration — Pydantic BaseSettings loaded from .env."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings for the media delivery service."""

    app_name: str = "mediagate"
    debug: bool = False
    environment: str = "development"
    log_level: str = "INFO"

    # Network
    host: str = "127.0.0.1"
    port: int = 8000
    api_prefix: str = "/api"
    cors_origins: list[str] = ["*"]

    # Storage paths (relative resolved from backend/ at runtime)
    data_dir: str = "./data"
    log_dir: str = "./data/logs"
    database_path: str = "./data/mediagate.db"

    # Origin store: internal endpoint for server-to-server, public one for clients
    origin_url: str = "http://127.0.0.1:4000"
    origin_public_url: str = ""
    origin_api_key: str = ""
    origin_timeout_seconds: float = 30.0
    origin_health_timeout_seconds: float = 3.0
    origin_max_connections: int = 50
    origin_max_keepalive: int = 10
    origin_poll_interval_seconds: int = 30
    origin_failure_threshold: int = 3
    hls_probe_timeout_seconds: float = 2.0

    # Secondary store issuing time-limited signed URLs
    fallback_url: str = ""
    fallback_service_key: str = ""
    fallback_bucket: str = "user-files"
    fallback_signed_url_ttl_seconds: int = 3600

    # Stream URL signing
    stream_signing_secret: str = "change-me-in-prod"
    stream_token_algorithm: str = "HS256"
    stream_url_ttl_seconds: int = 43200  # 12 hours

    # Response policy
    cache_control: str = "public, max-age=3600, stale-while-revalidate=7200"
    max_preview_bytes: int = 500 * 1024 * 1024

    # View analytics
    analytics_queue_size: int = 1000
    analytics_workers: int = 1

    # Client-side stream resolution
    resolver_max_retries: int = 2
    resolver_retry_delay_seconds: float = 1.5
    resolver_prefer_adaptive: bool = True
    unstable_origin_patterns: list[str] = [
        "*.trycloudflare.com",
        "*.ngrok-free.app",
        "*.ngrok.io",
        "*.loca.lt",
    ]
    blob_prefetch_max_bytes: int = 2 * 1024 * 1024

    # Hardware limits
    uvicorn_workers: int = 1
    max_db_connections: int = 5
    db_busy_timeout_ms: int = 5000

    @property
    def stream_base_url(self) -> str:
        """Client-facing origin base; falls back to the internal endpoint."""
        return (self.origin_public_url or self.origin_url).rstrip("/")

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        env_prefix="MEDIAGATE_",
        extra="ignore",
    )

    @field_validator("cors_origins", "unstable_origin_patterns", mode="before")
    @classmethod
    def split_comma_list(cls, value: list[str] | str) -> list[str]:
        if isinstance(value, str) and not value.startswith("["):
            return [o.strip() for o in value.split(",") if o.strip()]
        return value

    @model_validator(mode="after")
    def _resolve_paths(self) -> "Settings":
        """Ensure data directories are absolute."""
        base = Path(__file__).resolve().parent.parent  # backend/
        for field in ("data_dir", "log_dir", "database_path"):
            val = getattr(self, field)
            if not Path(val).is_absolute():
                setattr(self, field, str(base / val))
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
