"""Shared configuration management for the invoice pipeline.

Based on Pydantic Settings v2 best practices:
https://docs.pydantic.dev/latest/concepts/pydantic_settings/
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_MAX_FILE_SIZE_BYTES = 10 * 1024 * 1024


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with the prefix 'APP_'.
    Example: APP_PIPELINE_CONCURRENCY=4
    """

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Service configuration
    service_name: str = Field(
        default="invoice-batch-analytics",
        description="Service identifier for metrics and logs",
    )
    service_version: str = Field(
        default="0.1.0",
        description="Service version",
    )

    # Ingestion limits
    max_file_size_bytes: int = Field(
        default=DEFAULT_MAX_FILE_SIZE_BYTES,
        gt=0,
        description="Largest document accepted by the ingestion queue",
    )
    accepted_media_types: list[str] = Field(
        default=["application/pdf", "image/jpeg", "image/png"],
        description="Media types accepted by the ingestion queue",
    )

    # Processing pipeline
    pipeline_concurrency: int = Field(
        default=1,
        ge=1,
        description="Number of documents extracted concurrently (1 = strictly sequential)",
    )
    extraction_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Per-document bound on the extraction call",
    )

    # Extraction provider configuration
    extraction_provider: Literal["sample", "http"] = Field(
        default="sample",
        description=(
            "Extraction provider: sample (bundled invoice catalog), "
            "http (remote extraction service)"
        ),
    )
    sample_provider_delay_seconds: float = Field(
        default=0.0,
        ge=0,
        description="Simulated processing latency of the sample provider",
    )
    sample_provider_failure_marker: str = Field(
        default="corrupt",
        description="Documents whose name contains this marker fail sample extraction",
    )
    extraction_service_url: str = Field(
        default="http://localhost:8080/extract",
        description="Endpoint of the remote extraction service (extraction_provider='http')",
    )

    # Notifications
    notification_history_size: int = Field(
        default=50,
        ge=1,
        description="Number of notifications retained by the in-memory event sink",
    )


def get_settings() -> Settings:
    """Factory function to get settings instance.

    Returns:
        Configured Settings instance
    """
    return Settings()
