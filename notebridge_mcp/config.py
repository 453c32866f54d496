"""
Configuration management for NoteBridge MCP service.

Loads settings from environment variables with NOTEBRIDGE_ prefix.
"""

from datetime import timedelta

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Notes backend connection
    api_base_url: str = "http://localhost:8080"

    # Static bearer token sent to the backend (None = no Authorization header)
    api_token: str | None = None

    # Tenant header for multi-tenant backends (None = header omitted)
    tenant_id: str | None = None

    request_timeout_seconds: float = 30.0

    # Note edit sessions
    # Sessions older than this are invisible to lookups and removed by sweeps
    edit_session_max_age_seconds: int = 3600

    # Unchanged hunks longer than this are abbreviated in diff previews
    max_unchanged_lines: int = 5

    # Keep the review session when the conditional write hits a version
    # conflict, so the reviewed content can be re-proposed or discarded
    retain_session_on_conflict: bool = True

    # Logging
    log_level: str = "INFO"

    # Server configuration
    host: str = "0.0.0.0"
    port: int = 8001

    # Uvicorn / HTTP server behavior
    # shutdown_timeout_seconds controls how long uvicorn waits for in-flight requests
    # before force-closing during graceful shutdown (SIGTERM/SIGINT).
    shutdown_timeout_seconds: int = 7

    # Turn off uvicorn access logs to reduce noise (MCP already logs requests)
    uvicorn_access_log: bool = False

    model_config = SettingsConfigDict(
        env_prefix="NOTEBRIDGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @property
    def edit_session_max_age(self) -> timedelta:
        return timedelta(seconds=self.edit_session_max_age_seconds)

    def validate_session_config(self) -> None:
        """Validate note edit session configuration at startup."""
        if self.edit_session_max_age_seconds <= 0:
            raise ValueError(
                "NOTEBRIDGE_EDIT_SESSION_MAX_AGE_SECONDS must be positive. "
                "Sessions would expire immediately after creation."
            )
        if self.max_unchanged_lines < 2:
            raise ValueError(
                "NOTEBRIDGE_MAX_UNCHANGED_LINES must be at least 2 so abbreviated "
                "unchanged sections keep a leading and trailing line."
            )


# Global settings instance
settings = Settings()
