"""Configuration management using pydantic-settings."""

import threading

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Valid log levels
VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class RegistrySettings(BaseSettings):
    """In-process metrics registry settings."""

    model_config = SettingsConfigDict(env_prefix="METRICS_")

    enabled: bool = Field(
        default=True,
        description="Record metrics in this process (disable for client-side contexts)",
    )
    service_name: str = Field(
        default="pecwebetmobile-next", description="Service label for app_build_info"
    )
    environment: str = Field(default="production", description="Env label for app_build_info")

    @field_validator("service_name")
    @classmethod
    def validate_service_name(cls, v: str) -> str:
        """Validate service name is not empty."""
        if not v or not v.strip():
            raise ValueError("Service name cannot be empty")
        return v.strip()


class MonitoringSettings(BaseSettings):
    """Scrape history and insight thresholds."""

    model_config = SettingsConfigDict(env_prefix="MONITORING_")

    max_history_points: int = Field(
        default=24 * 60, description="Snapshots retained in history (24h at 1/min)"
    )
    window_ms: int = Field(
        default=24 * 60 * 60 * 1000, description="Series window in milliseconds"
    )
    debounce_ms: int = Field(
        default=30_000,
        description="Unchanged scrapes closer than this to the last snapshot are dropped",
    )
    peak_threshold_ratio: float = Field(
        default=1.35, description="Peak must exceed average traffic times this ratio"
    )
    trend_noise_floor: float = Field(
        default=0.02, description="Relative change below which a trend is flat"
    )
    max_insights: int = Field(default=4, description="Maximum insights returned")
    max_peaks: int = Field(default=3, description="Maximum traffic peaks reported")
    error_rate_warning_percent: float = Field(
        default=1.0, description="Average error rate that triggers a warning"
    )

    @field_validator("max_history_points")
    @classmethod
    def validate_max_history_points(cls, v: int) -> int:
        """Validate history keeps at least two points."""
        if v < 2:
            raise ValueError(f"History must keep at least 2 points, got {v}")
        return v

    @field_validator("window_ms", "debounce_ms")
    @classmethod
    def validate_non_negative_ms(cls, v: int) -> int:
        """Validate durations are not negative."""
        if v < 0:
            raise ValueError(f"Duration must be non-negative, got {v}")
        return v

    @field_validator("peak_threshold_ratio", "trend_noise_floor", "error_rate_warning_percent")
    @classmethod
    def validate_positive_ratio(cls, v: float) -> float:
        """Validate thresholds are positive."""
        if v <= 0:
            raise ValueError(f"Threshold must be positive, got {v}")
        return v

    @field_validator("max_insights", "max_peaks")
    @classmethod
    def validate_limits(cls, v: int) -> int:
        """Validate limits are at least one."""
        if v < 1:
            raise ValueError(f"Limit must be at least 1, got {v}")
        return v


class AppSettings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(env_prefix="APP_")

    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Log format: json or console")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        normalized = v.upper()
        if normalized not in VALID_LOG_LEVELS:
            raise ValueError(
                f"Invalid log level '{v}'. Must be one of: {', '.join(sorted(VALID_LOG_LEVELS))}"
            )
        return normalized

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format is valid."""
        normalized = v.lower()
        if normalized not in ("json", "console"):
            raise ValueError(f"Invalid log format '{v}'. Must be 'json' or 'console'")
        return normalized


class Settings(BaseSettings):
    """Combined application settings."""

    registry: RegistrySettings = Field(default_factory=RegistrySettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)
    app: AppSettings = Field(default_factory=AppSettings)

    @classmethod
    def load(cls) -> "Settings":
        """Load settings from environment variables."""
        return cls(
            registry=RegistrySettings(),
            monitoring=MonitoringSettings(),
            app=AppSettings(),
        )


# Global settings instance with thread-safe initialization
_settings: Settings | None = None
_settings_lock = threading.Lock()


def get_settings() -> Settings:
    """Get or create the global settings instance.

    Thread-safe singleton pattern using double-checked locking.
    """
    global _settings
    if _settings is None:
        with _settings_lock:
            # Double-check after acquiring lock
            if _settings is None:
                _settings = Settings.load()
    return _settings
