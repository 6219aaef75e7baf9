"""Configuration management for turnflow."""

import logging
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime settings, read from the environment or a .env file."""

    # Logging Settings
    log_level: str = Field(default="INFO", alias="TURNFLOW_LOG_LEVEL")
    log_format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        alias="TURNFLOW_LOG_FORMAT",
    )

    # OpenTelemetry Settings
    service_name: str = Field(default="turnflow", alias="TURNFLOW_SERVICE_NAME")
    environment: str = Field(default="development", alias="TURNFLOW_ENVIRONMENT")
    enable_telemetry: bool = Field(default=False, alias="TURNFLOW_ENABLE_TELEMETRY")
    otel_exporter_otlp_endpoint: str | None = Field(
        default=None, alias="OTEL_EXPORTER_OTLP_ENDPOINT"
    )
    otel_traces_sampler_arg: float = Field(default=1.0, alias="OTEL_TRACES_SAMPLER_ARG")

    # Run defaults
    default_max_llm_calls: int = Field(default=500, alias="TURNFLOW_MAX_LLM_CALLS")
    save_input_blobs_as_artifacts: bool = Field(
        default=False, alias="TURNFLOW_SAVE_INPUT_BLOBS_AS_ARTIFACTS"
    )

    # Replay Settings
    replay_recordings_filename: str = Field(
        default="generated-recordings.yaml", alias="TURNFLOW_REPLAY_RECORDINGS_FILENAME"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value: str | None) -> str:
        """Normalize log level names from environment."""
        if value is None:
            return "INFO"
        normalized = str(value).strip().upper()
        if normalized not in logging.getLevelNamesMapping():
            raise ValueError(f"TURNFLOW_LOG_LEVEL must be a logging level name, got {value!r}")
        return normalized


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def configure_logging(settings: Settings | None = None) -> None:
    """Configure root logging for an application embedding turnflow.

    Library modules only create loggers; entry points call this once.
    """
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level, format=settings.log_format)


__all__ = ["Settings", "configure_logging", "get_settings"]
