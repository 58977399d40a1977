from functools import lru_cache
from pathlib import Path
import logging

from croniter import croniter
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Validates configuration at startup to catch misconfiguration early.
    """

    database_path: str = "./data/tvguide.db"
    feed_url: str = ""  # Initial feed URL, used until one is stored in feed state
    feed_state_path: str = "./data/feed_state.json"
    feed_fetch_cron: str = "0 3 * * *"  # Daily at 3 AM
    feed_fetch_misfire_grace_sec: int = 3600
    feed_request_timeout_sec: float = 30.0
    feed_parse_timeout_sec: int = 600  # 0 disables timeout
    retention_past_hours: int = 12
    retention_future_days: int = 7
    scheduler_enabled: bool = True
    shutdown_grace_sec: float = 10.0
    log_level: str = "INFO"

    sqlite_journal_mode: str = "WAL"
    sqlite_synchronous: str = "NORMAL"
    sqlite_cache_size_kb: int = 64000
    sqlite_busy_timeout_sec: float = 30.0

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("feed_url")
    @classmethod
    def validate_feed_url(cls, value: str) -> str:
        """Validate the initial feed URL is HTTP/HTTPS when given."""
        value = value.strip()
        if value and not value.lower().startswith(("http://", "https://")):
            raise ValueError(f"Feed URL must be HTTP/HTTPS: {value}")
        return value

    @field_validator("database_path", "feed_state_path")
    @classmethod
    def validate_data_path(cls, value: str, info) -> str:
        """Validate the parent directory of a data file is accessible."""
        if value == ":memory:":
            return value
        path = Path(value)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            return value
        except (OSError, PermissionError) as exc:
            raise ValueError(f"Cannot access {info.field_name} '{value}': {exc}") from exc

    @field_validator("retention_past_hours")
    @classmethod
    def validate_past_hours(cls, value: int) -> int:
        if value < 0:
            raise ValueError("retention_past_hours must be >= 0")
        if value > 24 * 365:
            raise ValueError("retention_past_hours must be <= 8760")
        return value

    @field_validator("retention_future_days")
    @classmethod
    def validate_future_days(cls, value: int) -> int:
        if value < 1:
            raise ValueError("retention_future_days must be >= 1")
        if value > 365:
            raise ValueError("retention_future_days must be <= 365 days")
        return value

    @field_validator("feed_parse_timeout_sec", "feed_fetch_misfire_grace_sec")
    @classmethod
    def validate_non_negative(cls, value: int, info) -> int:
        """Ensure timeouts and grace periods are non-negative."""
        if value < 0:
            raise ValueError(f"{info.field_name} must be >= 0")
        return value

    @field_validator(
        "feed_request_timeout_sec",
        "shutdown_grace_sec",
        "sqlite_busy_timeout_sec",
    )
    @classmethod
    def validate_positive_floats(cls, value: float, info) -> float:
        """Ensure durations in seconds are positive."""
        if value <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return value

    @field_validator("sqlite_cache_size_kb")
    @classmethod
    def validate_cache_size(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("sqlite_cache_size_kb must be > 0")
        return value

    @field_validator("sqlite_journal_mode")
    @classmethod
    def validate_journal_mode(cls, value: str) -> str:
        """Validate SQLite journal mode."""
        normalized = value.upper()
        allowed = {"DELETE", "TRUNCATE", "PERSIST", "MEMORY", "WAL", "OFF"}
        if normalized not in allowed:
            raise ValueError(f"sqlite_journal_mode must be one of {sorted(allowed)}")
        return normalized

    @field_validator("sqlite_synchronous")
    @classmethod
    def validate_synchronous(cls, value: str) -> str:
        """Validate SQLite synchronous value."""
        normalized = value.upper()
        allowed = {"OFF", "NORMAL", "FULL", "EXTRA"}
        if normalized not in allowed:
            raise ValueError(f"sqlite_synchronous must be one of {sorted(allowed)}")
        return normalized

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        normalized = value.upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(f"Unknown log level: {value}")
        return normalized

    @field_validator("feed_fetch_cron")
    @classmethod
    def validate_cron_expression(cls, value: str) -> str:
        """Validate cron expression is valid."""
        try:
            croniter(value)
            return value
        except (ValueError, KeyError) as exc:
            raise ValueError(f"Invalid cron expression '{value}': {exc}") from exc

    @model_validator(mode="after")
    def validate_feed_configuration(self):
        """Validate cross-field configuration."""
        if not self.feed_url:
            logger.warning(
                "No feed URL configured - updates fail until one is set via the API"
            )
        return self

    def log_summary(self) -> None:
        """Log the effective configuration."""
        logger.info("Configuration loaded:")
        logger.info("  Database: %s", self.database_path)
        logger.info("  Feed State: %s", self.feed_state_path)
        logger.info("  Feed URL configured: %s", bool(self.feed_url))
        logger.info("  Fetch Schedule: %s", self.feed_fetch_cron)
        logger.info("  Fetch Misfire Grace: %ss", self.feed_fetch_misfire_grace_sec)
        logger.info("  Request Timeout: %ss", self.feed_request_timeout_sec)
        logger.info(
            "  Parse Timeout: %s",
            f"{self.feed_parse_timeout_sec}s" if self.feed_parse_timeout_sec else "disabled",
        )
        logger.info(
            "  Retention Window: -%sh .. +%sd",
            self.retention_past_hours,
            self.retention_future_days,
        )
        logger.info("  Scheduler Enabled: %s", self.scheduler_enabled)
        logger.info("  SQLite Journal Mode: %s", self.sqlite_journal_mode)
        logger.info("  SQLite Synchronous: %s", self.sqlite_synchronous)
        logger.info("  SQLite Cache Size (KB): %s", self.sqlite_cache_size_kb)


@lru_cache
def get_settings() -> Settings:
    """Load settings once per process."""
    return Settings()


def setup_logging(level: str = "INFO") -> None:
    """Configure application logging."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
