"""Application configuration via environment variables."""

from __future__ import annotations

import logging
from typing import Optional

from pydantic_settings import BaseSettings
from sqlalchemy.engine import URL, make_url

from demo_service import __version__
from demo_service.errors import ConfigError

log = logging.getLogger("demo_service.config")


class Settings(BaseSettings):
    # Identity (reported by /health)
    app_name: str = "demo-service"
    app_version: str = __version__
    git_commit_hash: str = ""

    # Server
    host: str = ""  # empty = dual-stack wildcard
    port: int = 80
    log_level: str = "INFO"

    # Database: credentials are runtime config, never baked into the build
    db_url: str = ""  # full SQLAlchemy URL; overrides the DB_* parts below
    db_user: str = ""
    db_pass: str = ""
    db_host: str = ""
    db_port: Optional[int] = None
    db_name: str = "demo"
    db_pool_max: int = 5
    db_idle_timeout: float = 60.0
    db_acquire_timeout: float = 5.0

    # OpenTelemetry. Empty endpoint lets the exporter read OTEL_EXPORTER_OTLP_*.
    otel_exporter_otlp_endpoint: str = ""
    otel_service_name: str = ""
    tracing_required: bool = True
    tracer_shutdown_timeout: float = 5.0

    # IP echo upstream
    ip_echo_url: str = "https://httpbin.org/ip"
    ip_echo_timeout: float = 5.0
    ip_echo_retries: int = 1

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @property
    def service_name(self) -> str:
        return self.otel_service_name or self.app_name

    def database_url(self) -> URL:
        """Connection URL for the bookings database (asyncpg driver)."""
        if self.db_url:
            return make_url(self.db_url)
        return URL.create(
            "postgresql+asyncpg",
            username=self.db_user,
            password=self.db_pass,
            host=self.db_host,
            port=self.db_port,
            database=self.db_name,
        )

    def validate_startup(self) -> list[str]:
        """Validate configuration at startup. Returns warnings, raises on errors."""
        warnings: list[str] = []

        missing = [
            name.upper()
            for name in ("db_user", "db_pass", "db_host")
            if not self.db_url and not getattr(self, name)
        ]
        if missing:
            raise ConfigError(
                f"Missing required configuration: {', '.join(missing)}. "
                "Set them in the environment or .env."
            )

        if not 0 <= self.port <= 65535:
            raise ConfigError(f"PORT out of range: {self.port}")

        if self.db_pool_max < 1:
            raise ConfigError("DB_POOL_MAX must be at least 1")

        if not self.git_commit_hash:
            warnings.append(
                "GIT_COMMIT_HASH not set: /health will report the placeholder commit."
            )

        if self.ip_echo_timeout <= 0:
            warnings.append("IP_ECHO_TIMEOUT is not positive; the greeting page may hang.")

        return warnings


settings = Settings()
