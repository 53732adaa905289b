"""
Configuration management with environment variable support and validation.

Covers deployment-wide defaults for resident thresholds, fall detection
timings, alert deduplication and logging. Values are validated once at
startup; environment names match the deployment manifests.
"""

import os
from functools import lru_cache
from typing import Literal, cast

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

# Load environment variables from .env file
load_dotenv()


class ThresholdDefaults(BaseModel):
    """Default normal ranges applied to every newly created resident."""

    heart_rate_min: int = Field(default=50, ge=30, le=200, description="Lowest normal BPM")
    heart_rate_max: int = Field(default=120, ge=30, le=200, description="Highest normal BPM")
    spo2_min: int = Field(default=90, ge=70, le=100, description="Lowest normal SpO2 percent")
    respiration_min: int = Field(default=12, ge=5, le=50, description="Breaths/min lower bound")
    respiration_max: int = Field(default=25, ge=5, le=50, description="Breaths/min upper bound")
    stress_max: int = Field(default=80, ge=0, le=100, description="Highest normal stress level")

    @model_validator(mode="after")
    def ranges_are_ordered(self) -> "ThresholdDefaults":
        if self.heart_rate_min >= self.heart_rate_max:
            raise ValueError("heart_rate_min must be less than heart_rate_max")
        if self.respiration_min >= self.respiration_max:
            raise ValueError("respiration_min must be less than respiration_max")
        return self


class FallDetectionConfig(BaseModel):
    """Per-deployment tuning of the fall-detection state machine."""

    impact_threshold_g: float = Field(
        default=2.5, gt=0.0, description="Acceleration magnitude that counts as an impact"
    )
    inactivity_threshold_g: float = Field(
        default=0.5, gt=0.0, description="Magnitude below which the wearer is considered still"
    )
    inactivity_duration_ms: int = Field(
        default=10_000, gt=0, description="Stillness after impact required to confirm a fall"
    )
    false_positive_window_ms: int = Field(
        default=5_000, ge=0, description="Movement within this window after impact cancels it"
    )
    pending_timeout_ms: int = Field(
        default=60_000, gt=0, description="Unresolved impacts are dropped after this long"
    )
    buffer_window_ms: int = Field(
        default=30_000, gt=0, description="Span of recent magnitudes kept per resident"
    )
    state_idle_ttl_seconds: float = Field(
        default=24 * 60 * 60,
        gt=0.0,
        description="Fall state is evicted after this long without accelerometer data",
    )
    state_max_entries: int = Field(
        default=10_000,
        gt=0,
        description="Residents with fall state held at once; the least recently used is dropped",
    )
    clock_source: Literal["device", "server"] = Field(
        default="server", description="Whether timers use the server clock or reading timestamps"
    )

    @model_validator(mode="after")
    def thresholds_are_ordered(self) -> "FallDetectionConfig":
        if self.inactivity_threshold_g >= self.impact_threshold_g:
            raise ValueError("inactivity_threshold_g must be below impact_threshold_g")
        if self.inactivity_duration_ms >= self.pending_timeout_ms:
            raise ValueError("inactivity_duration_ms must be shorter than pending_timeout_ms")
        return self


class AlertingConfig(BaseModel):
    """Alert creation and fanout settings."""

    dedup_window_seconds: float = Field(
        default=300.0, gt=0.0, description="Repeat alerts of one category are suppressed this long"
    )
    notify_on_critical: bool = Field(
        default=True, description="Forward critical alerts to the staff notification service"
    )
    subscriber_queue_size: int = Field(
        default=100, gt=0, description="Events buffered per subscriber before dropping"
    )
    record_vitals: bool = Field(default=True, description="Persist every ingested sample")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    format: Literal["json", "console"] = Field(default="json", description="Logging format")


class AppConfig(BaseModel):
    """Main application configuration combining all subsystems."""

    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    thresholds: ThresholdDefaults = Field(default_factory=ThresholdDefaults)
    fall_detection: FallDetectionConfig = Field(default_factory=FallDetectionConfig)
    alerting: AlertingConfig = Field(default_factory=AlertingConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def debug_only_in_dev(self) -> "AppConfig":
        """Ensure debug mode is only allowed in development environment."""
        if self.debug and self.environment != "development":
            raise ValueError("debug mode is only allowed in development environment")
        return self


def load_config_from_env() -> AppConfig:
    """Load configuration from environment variables with validation."""

    def _env_to_literal(val: str) -> Literal["development", "staging", "production"]:
        v = val.strip().lower()
        if v in {"dev", "development"}:
            return "development"
        if v in {"stage", "staging"}:
            return "staging"
        return "production"

    def _level_to_literal(val: str) -> Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
        v = val.strip().upper()
        return cast(
            Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
            v if v in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"} else "INFO",
        )

    def _parse_bool(val: str | None, default: bool) -> bool:
        if val is None:
            return default
        return val.strip().lower() in {"1", "true", "yes", "on"}

    environment = _env_to_literal(os.getenv("ENVIRONMENT", "development"))
    debug = environment == "development"

    thresholds = ThresholdDefaults(
        heart_rate_min=int(os.getenv("DEFAULT_HEART_RATE_MIN", "50")),
        heart_rate_max=int(os.getenv("DEFAULT_HEART_RATE_MAX", "120")),
        spo2_min=int(os.getenv("DEFAULT_SPO2_MIN", "90")),
        respiration_min=int(os.getenv("DEFAULT_RESPIRATION_RATE_MIN", "12")),
        respiration_max=int(os.getenv("DEFAULT_RESPIRATION_RATE_MAX", "25")),
        stress_max=int(os.getenv("DEFAULT_STRESS_LEVEL_MAX", "80")),
    )

    fall_detection = FallDetectionConfig(
        impact_threshold_g=float(os.getenv("FALL_DETECTION_IMPACT_THRESHOLD", "2.5")),
        inactivity_threshold_g=float(os.getenv("FALL_DETECTION_INACTIVITY_THRESHOLD", "0.5")),
        inactivity_duration_ms=int(os.getenv("FALL_DETECTION_INACTIVITY_DURATION", "10000")),
        state_idle_ttl_seconds=float(os.getenv("FALL_DETECTION_STATE_TTL_SECONDS", "86400")),
        state_max_entries=int(os.getenv("FALL_DETECTION_STATE_MAX_ENTRIES", "10000")),
        clock_source="device"
        if os.getenv("FALL_DETECTION_CLOCK", "server").strip().lower() == "device"
        else "server",
    )

    alerting = AlertingConfig(
        dedup_window_seconds=float(os.getenv("ALERT_DEDUP_WINDOW_SECONDS", "300")),
        notify_on_critical=_parse_bool(os.getenv("ALERT_NOTIFY_ON_CRITICAL"), True),
        subscriber_queue_size=int(os.getenv("BROADCAST_QUEUE_SIZE", "100")),
        record_vitals=_parse_bool(os.getenv("RECORD_VITALS"), True),
    )

    logging_config = LoggingConfig(
        level=_level_to_literal(os.getenv("LOG_LEVEL", "INFO")),
        format="console" if debug else "json",
    )

    return AppConfig(
        environment=environment,
        debug=debug,
        thresholds=thresholds,
        fall_detection=fall_detection,
        alerting=alerting,
        logging=logging_config,
    )


@lru_cache
def get_config() -> AppConfig:
    """Get cached application configuration."""
    return load_config_from_env()


def print_config_summary() -> None:
    """Print configuration summary for debugging."""
    config = get_config()

    print("\nCONFIGURATION SUMMARY")
    print(f"Environment: {config.environment}")
    print(f"Debug Mode: {config.debug}")
    print(f"Log Level: {config.logging.level}")

    t = config.thresholds
    print("\nDEFAULT THRESHOLDS")
    print(f"Heart Rate: {t.heart_rate_min}-{t.heart_rate_max} BPM")
    print(f"SpO2: >= {t.spo2_min}%")
    print(f"Respiration: {t.respiration_min}-{t.respiration_max} breaths/min")
    print(f"Stress: <= {t.stress_max}")

    f = config.fall_detection
    print("\nFALL DETECTION")
    print(f"Impact: > {f.impact_threshold_g}g")
    print(f"Inactivity: < {f.inactivity_threshold_g}g for {f.inactivity_duration_ms}ms")
    print(f"Clock: {f.clock_source}")

    print("\nALERTING")
    print(f"Dedup Window: {config.alerting.dedup_window_seconds}s")
    print(f"Notify On Critical: {config.alerting.notify_on_critical}")


if __name__ == "__main__":
    print_config_summary()
