"""Configuration for the HTTP server."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerSettings(BaseSettings):
    """Settings for the REST API and the event stream."""

    host: str = Field(default="127.0.0.1", validation_alias="HOST")
    port: int = Field(default=3000, ge=1, le=65535, validation_alias="PORT")

    cors_origins: str = Field(
        default="*",
        validation_alias="TASK_QUEUE_CORS_ORIGINS",
        description="Comma-separated list of allowed CORS origins.",
    )

    stream_keepalive_seconds: float = Field(
        default=15.0,
        gt=0,
        validation_alias="TASK_QUEUE_STREAM_KEEPALIVE_SECONDS",
        description="Idle time after which the event stream sends a comment line.",
    )

    shutdown_grace_seconds: float = Field(
        default=5.0,
        ge=0,
        validation_alias="TASK_QUEUE_SHUTDOWN_GRACE_SECONDS",
        description="Time shutdown waits for in-flight executions to finish.",
    )

    model_config = SettingsConfigDict(
        env_prefix="", env_file=".env", extra="ignore", populate_by_name=True
    )

    def parsed_cors_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]
