"""
Configuration management with environment variable support and validation.

Design principles:
- Environment-specific configs (dev, staging, prod)
- Validation at startup (fail fast)
- Type safety with Pydantic
- Clinical calibration constants live here, not in the evaluator
"""

import logging
import os
from functools import lru_cache
from typing import Literal, cast

import structlog
from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

# Load environment variables from .env file
load_dotenv()

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class SchedulerConfig(BaseModel):
    """Periodic evaluation pass settings."""

    interval_seconds: float = Field(
        default=300.0, gt=0.0, description="Interval between full-population passes"
    )
    max_concurrent_patients: int = Field(
        default=10, gt=0, description="Maximum number of patients evaluated at once"
    )
    patient_timeout_seconds: float = Field(
        default=30.0, gt=0.0, description="Timeout for a single patient's pass"
    )
    error_backoff_seconds: float = Field(
        default=60.0, ge=0.0, description="Sleep after an unexpected pass failure"
    )


class EvaluationConfig(BaseModel):
    """Defaults for rule parameters a rule does not set itself."""

    trend_slope_threshold: float = Field(
        default=0.1, ge=0.0, description="Minimum |slope| for a trend to count as significant"
    )
    default_volatility_percent: float = Field(
        default=10.0, gt=0.0, description="Volatility percentage used when a rule omits it"
    )


class DeduplicationConfig(BaseModel):
    """Lookback windows used to suppress repeat actions."""

    alert_window_hours: float = Field(
        default=24.0, gt=0.0, description="Window for alert, task and content suppression"
    )
    visit_request_window_days: float = Field(
        default=7.0, gt=0.0, description="Window for visit suggestion suppression"
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(default="INFO", description="Logging level")
    format: Literal["json", "console"] = Field(default="json", description="Logging format")


class AppConfig(BaseModel):
    """Main application configuration combining all subsystems."""

    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    evaluation: EvaluationConfig = Field(default_factory=EvaluationConfig)
    deduplication: DeduplicationConfig = Field(default_factory=DeduplicationConfig)
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

    def _level_to_literal(val: str) -> LogLevel:
        v = val.strip().upper()
        return cast(
            LogLevel,
            v if v in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"} else "INFO",
        )

    environment = _env_to_literal(os.getenv("ENVIRONMENT", "development"))
    debug = environment == "development"

    scheduler_config = SchedulerConfig(
        interval_seconds=float(os.getenv("SCHEDULER_INTERVAL_SECONDS", "300")),
        max_concurrent_patients=int(os.getenv("SCHEDULER_MAX_CONCURRENT_PATIENTS", "10")),
        patient_timeout_seconds=float(os.getenv("SCHEDULER_PATIENT_TIMEOUT_SECONDS", "30")),
        error_backoff_seconds=float(os.getenv("SCHEDULER_ERROR_BACKOFF_SECONDS", "60")),
    )

    evaluation_config = EvaluationConfig(
        trend_slope_threshold=float(os.getenv("TREND_SLOPE_THRESHOLD", "0.1")),
        default_volatility_percent=float(os.getenv("VOLATILITY_DEFAULT_PERCENT", "10")),
    )

    deduplication_config = DeduplicationConfig(
        alert_window_hours=float(os.getenv("ALERT_DEDUP_WINDOW_HOURS", "24")),
        visit_request_window_days=float(os.getenv("VISIT_DEDUP_WINDOW_DAYS", "7")),
    )

    logging_config = LoggingConfig(
        level=_level_to_literal(os.getenv("LOG_LEVEL", "INFO")),
        format="console" if debug else "json",
    )

    return AppConfig(
        environment=environment,
        debug=debug,
        scheduler=scheduler_config,
        evaluation=evaluation_config,
        deduplication=deduplication_config,
        logging=logging_config,
    )


@lru_cache
def get_config() -> AppConfig:
    """Get cached application configuration."""
    return load_config_from_env()


def reset_config_cache() -> None:
    """Drop the cached configuration so the next get_config() re-reads the environment."""
    get_config.cache_clear()


def configure_logging(config: LoggingConfig) -> None:
    """Install the structlog pipeline. Call once from the process bootstrap."""
    renderer = (
        structlog.dev.ConsoleRenderer()
        if config.format == "console"
        else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelNamesMapping()[config.level]
        ),
        context_class=dict,
        cache_logger_on_first_use=True,
    )


def print_config_summary() -> None:
    """Print configuration summary for operators."""
    config = get_config()

    print("\nCONFIGURATION SUMMARY")
    print(f"Environment: {config.environment}")
    print(f"Debug Mode: {config.debug}")
    print(f"Log Level: {config.logging.level}")

    print("\nSCHEDULER")
    print(f"Pass Interval: {config.scheduler.interval_seconds}s")
    print(f"Max Concurrent Patients: {config.scheduler.max_concurrent_patients}")
    print(f"Patient Timeout: {config.scheduler.patient_timeout_seconds}s")
    print(f"Error Backoff: {config.scheduler.error_backoff_seconds}s")

    print("\nEVALUATION")
    print(f"Trend Slope Threshold: {config.evaluation.trend_slope_threshold}")
    print(f"Default Volatility: {config.evaluation.default_volatility_percent}%")

    print("\nDEDUPLICATION")
    print(f"Alert Window: {config.deduplication.alert_window_hours}h")
    print(f"Visit Request Window: {config.deduplication.visit_request_window_days}d")


if __name__ == "__main__":
    print_config_summary()
