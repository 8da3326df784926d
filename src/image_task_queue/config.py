"""Configuration for the task queue and its execution backend.

Configuration is loaded from:
- environment variables
- and a local `.env` file (if present)

Values can also be passed by field name, which is what tests do:
`QueueSettings(max_concurrent=2)`.
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class QueueSettings(BaseSettings):
    """Limits, retry policy and scheduler cadence.

    Environment variables:
    - TASK_QUEUE_MAX_CONCURRENT
    - TASK_QUEUE_MAX_SIZE
    - TASK_QUEUE_MAX_RETRIES
    - TASK_QUEUE_BASE_RETRY_DELAY_MS / TASK_QUEUE_MAX_RETRY_DELAY_MS
    - LOG_LEVEL (optional)
    """

    max_concurrent: int = Field(
        default=5,
        ge=1,
        validation_alias="TASK_QUEUE_MAX_CONCURRENT",
        description="Number of tasks allowed to execute at the same time",
    )
    max_queue_size: int = Field(
        default=100,
        ge=1,
        validation_alias="TASK_QUEUE_MAX_SIZE",
        description="Maximum number of stored tasks, in any state",
    )
    max_retries: int = Field(
        default=5,
        ge=0,
        validation_alias="TASK_QUEUE_MAX_RETRIES",
        description="Retryable failures tolerated before a task fails permanently",
    )
    base_retry_delay_ms: int = Field(
        default=2000,
        gt=0,
        validation_alias="TASK_QUEUE_BASE_RETRY_DELAY_MS",
    )
    max_retry_delay_ms: int = Field(
        default=60000,
        gt=0,
        validation_alias="TASK_QUEUE_MAX_RETRY_DELAY_MS",
    )
    jitter_ratio: float = Field(
        default=0.25,
        ge=0.0,
        lt=1.0,
        validation_alias="TASK_QUEUE_JITTER_RATIO",
        description="Symmetric jitter applied to retry delays (0.25 means +/-25%)",
    )

    dispatch_interval_seconds: float = Field(
        default=0.5,
        gt=0,
        validation_alias="TASK_QUEUE_DISPATCH_INTERVAL_SECONDS",
    )
    retry_check_interval_seconds: float = Field(
        default=5.0,
        gt=0,
        validation_alias="TASK_QUEUE_RETRY_CHECK_INTERVAL_SECONDS",
    )

    average_task_ms: int = Field(
        default=30000,
        gt=0,
        validation_alias="TASK_QUEUE_AVERAGE_TASK_MS",
        description="Assumed task duration used for advisory wait estimates",
    )
    max_prompt_length: int = Field(
        default=1000,
        ge=1,
        validation_alias="TASK_QUEUE_MAX_PROMPT_LENGTH",
    )
    subscriber_buffer_size: int = Field(
        default=256,
        ge=2,
        validation_alias="TASK_QUEUE_SUBSCRIBER_BUFFER_SIZE",
        description="Events buffered per observer before it is dropped as too slow",
    )

    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Root logging level",
    )

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    @model_validator(mode="after")
    def _validate_retry_delays(self) -> QueueSettings:
        if self.max_retry_delay_ms < self.base_retry_delay_ms:
            raise ValueError(
                "TASK_QUEUE_MAX_RETRY_DELAY_MS must be >= TASK_QUEUE_BASE_RETRY_DELAY_MS"
            )
        return self


class BackendSettings(BaseSettings):
    """Settings for the image-generation backend."""

    provider: Literal["pollinations", "simulated"] = Field(
        default="pollinations",
        description="Execution backend to use",
    )

    base_url: str = Field(
        default="https://image.pollinations.ai/prompt",
        description="Image endpoint; the encoded prompt is appended as a path segment",
    )
    model: str = Field(default="flux")
    width: int = Field(default=1024, gt=0)
    height: int = Field(default=1024, gt=0)
    timeout_seconds: float = Field(
        default=120.0,
        gt=0,
        description="Per-task timeout; reported as a retryable failure",
    )
    expected_duration_seconds: float = Field(
        default=20.0,
        gt=0,
        description="Typical generation time, used to estimate progress",
    )
    progress_interval_seconds: float = Field(default=1.0, gt=0)

    simulated_duration_seconds: float = Field(default=3.0, ge=0)
    simulated_failure_rate: float = Field(default=0.0, ge=0.0, le=1.0)

    model_config = SettingsConfigDict(
        env_prefix="IMAGE_BACKEND_",
        env_file=".env",
        extra="ignore",
    )
