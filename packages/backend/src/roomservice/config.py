"""Application configuration via environment variables.

Uses pydantic-settings to load config from env vars with ROOMSERVICE_ prefix.
No YAML files, no file-based config — just env vars (12-factor app style).

Learn: The broker backend is decided by ROOMSERVICE_REDIS_URL. Empty means
in-memory delivery (single process); set it and every instance shares one
Redis Streams log, so subscribers on any instance see every order event.
"""

from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All app configuration. Set via ROOMSERVICE_* env vars."""

    # Durable log (Redis Streams). Empty → memory mode.
    redis_url: str = ""
    stream_prefix: str = "sse:"
    stream_maxlen: Optional[int] = None  # approximate trim on XADD; None = retention is external

    # Broker polling (durable mode only)
    poll_interval_seconds: float = 1.0
    poll_batch_size: int = 100

    # SSE endpoints
    heartbeat_interval_seconds: float = 15.0
    stream_queue_size: int = 256

    # Auth
    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60
    staff_roles: list[str] = ["admin", "manager", "kitchen"]

    # Server
    environment: str = "development"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8000
    log_json: bool = False

    # CORS
    cors_origins: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
    ]

    model_config = {"env_prefix": "ROOMSERVICE_"}

    @model_validator(mode="after")
    def validate_production_settings(self):
        """Ensure sensitive defaults are changed in non-development environments."""
        if (
            self.environment != "development"
            and self.jwt_secret == "change-me-in-production"
        ):
            raise ValueError(
                "ROOMSERVICE_JWT_SECRET must be set to a secure value in "
                "non-development environments. Generate one with: "
                'python -c "import secrets; print(secrets.token_urlsafe(32))"'
            )
        if self.poll_interval_seconds <= 0:
            raise ValueError("ROOMSERVICE_POLL_INTERVAL_SECONDS must be positive")
        if self.heartbeat_interval_seconds <= 0:
            raise ValueError("ROOMSERVICE_HEARTBEAT_INTERVAL_SECONDS must be positive")
        return self


# Process-wide settings; tests monkeypatch attributes on it
settings = Settings()
