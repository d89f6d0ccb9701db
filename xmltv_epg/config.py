from functools import lru_cache
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import json
import logging

from croniter import croniter
from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from xmltv_epg import __version__


logger = logging.getLogger(__name__)

DEFAULT_API_KEY = "secret"
MAX_SCHEDULE_CHUNK_SIZE = 450
MAX_PROGRAM_CHUNK_SIZE = 4500


class ChannelMapping(BaseModel):
    """One entry of the static channel map (virtual channel number -> station)."""

    number: str
    station_id: str = Field(validation_alias=AliasChoices("station_id", "stationId", "stationID"))
    name: str

    @field_validator("number", "station_id", mode="before")
    @classmethod
    def coerce_to_str(cls, value, info):
        """Numeric station ids and whole channel numbers may arrive as JSON integers."""
        if isinstance(value, float):
            # 18.10 and 18.1 would both become "18.1"
            raise ValueError(f"{info.field_name} must be a string, e.g. \"{value}\"")
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @property
    def label(self) -> str:
        return f"{self.number} {self.name}"


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Validates configuration at startup to catch misconfiguration early.
    """

    sd_username: str = ""
    sd_password: str = ""
    sd_base_url: str = "https://json.schedulesdirect.org/20141201"
    sd_user_agent: str = f"xmltv-epg/{__version__}"
    sd_request_timeout_sec: float = 60.0
    sd_max_concurrent_requests: int = 2
    sd_schedule_chunk_size: int = MAX_SCHEDULE_CHUNK_SIZE
    sd_program_chunk_size: int = MAX_PROGRAM_CHUNK_SIZE

    epg_postal_code: str = "72201"
    epg_country: str = "USA"
    epg_days: int = 7
    epg_cache_hours: float = 6
    epg_refresh_cron: str = "0 */6 * * *"  # Every 6 hours
    epg_refresh_misfire_grace_sec: int = 3600
    epg_timezone: str | None = None
    epg_channels: list[ChannelMapping] = Field(default_factory=list)
    epg_channels_file: str | None = None

    cache_dir: str = "./cache"
    write_snapshots: bool = True

    api_key: str = DEFAULT_API_KEY
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("sd_base_url")
    @classmethod
    def validate_base_url(cls, value: str) -> str:
        """Validate provider URL is HTTP/HTTPS."""
        if not value.lower().startswith(("http://", "https://")):
            raise ValueError(f"sd_base_url must be HTTP/HTTPS: {value}")
        return value.rstrip("/")

    @field_validator("sd_request_timeout_sec", "epg_cache_hours")
    @classmethod
    def validate_positive_floats(cls, value: float, info) -> float:
        """Ensure timeouts and freshness windows are positive."""
        if value <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return value

    @field_validator("sd_max_concurrent_requests")
    @classmethod
    def validate_concurrency(cls, value: int) -> int:
        """Ensure at least one request may be in flight."""
        if value < 1:
            raise ValueError("sd_max_concurrent_requests must be >= 1")
        return value

    @field_validator("sd_schedule_chunk_size")
    @classmethod
    def validate_schedule_chunk(cls, value: int) -> int:
        """Schedule requests are capped by the provider payload limit."""
        if not 1 <= value <= MAX_SCHEDULE_CHUNK_SIZE:
            raise ValueError(f"sd_schedule_chunk_size must be between 1 and {MAX_SCHEDULE_CHUNK_SIZE}")
        return value

    @field_validator("sd_program_chunk_size")
    @classmethod
    def validate_program_chunk(cls, value: int) -> int:
        """Program requests are capped by the provider identifier limit."""
        if not 1 <= value <= MAX_PROGRAM_CHUNK_SIZE:
            raise ValueError(f"sd_program_chunk_size must be between 1 and {MAX_PROGRAM_CHUNK_SIZE}")
        return value

    @field_validator("epg_days")
    @classmethod
    def validate_days(cls, value: int) -> int:
        """Validate schedule day range is positive and reasonable."""
        if value < 1:
            raise ValueError("epg_days must be >= 1")
        if value > 21:
            raise ValueError("epg_days must be <= 21")
        return value

    @field_validator("epg_refresh_misfire_grace_sec")
    @classmethod
    def validate_misfire_grace(cls, value: int) -> int:
        """Validate scheduler misfire grace period (seconds)."""
        if value < 0:
            raise ValueError("epg_refresh_misfire_grace_sec must be >= 0")
        return value

    @field_validator("epg_refresh_cron")
    @classmethod
    def validate_cron_expression(cls, value: str) -> str:
        """Validate cron expression is valid."""
        try:
            croniter(value)
            return value
        except (ValueError, KeyError) as exc:
            raise ValueError(f"Invalid cron expression '{value}': {exc}") from exc

    @field_validator("epg_timezone")
    @classmethod
    def validate_timezone(cls, value: str | None) -> str | None:
        """Validate timezone string"""
        if not value:
            return None
        try:
            ZoneInfo(value)
            return value
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(
                f"Invalid timezone: {value}. Must be a valid IANA timezone (e.g., 'America/Chicago')"
            ) from exc

    @field_validator("epg_channels", mode="before")
    @classmethod
    def parse_channels(cls, value):
        """Accept a JSON string, a list, or nothing."""
        if value is None:
            return []
        if isinstance(value, str):
            if not value.strip():
                return []
            return json.loads(value)
        return value

    @field_validator("cache_dir")
    @classmethod
    def validate_cache_dir(cls, value: str) -> str:
        """Validate cache directory is accessible."""
        path = Path(value)
        try:
            path.mkdir(parents=True, exist_ok=True)
            return value
        except (OSError, PermissionError) as exc:
            raise ValueError(f"Cannot access cache directory '{value}': {exc}") from exc

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Validate logging level name."""
        normalized = value.upper()
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if normalized not in allowed:
            raise ValueError(f"log_level must be one of {sorted(allowed)}")
        return normalized

    @model_validator(mode="after")
    def load_channels_file(self):
        """Load the static channel map from a JSON file when configured."""
        if not self.epg_channels_file:
            return self

        path = Path(self.epg_channels_file)
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise ValueError(f"Cannot load channel map '{path}': {exc}") from exc

        if not isinstance(raw, list):
            raise ValueError(f"Channel map '{path}' must contain a JSON list")

        self.epg_channels = [ChannelMapping.model_validate(entry) for entry in raw]
        return self

    @model_validator(mode="after")
    def validate_service_configuration(self):
        """Warn about configuration that will not work in production."""
        if not self.sd_username or not self.sd_password:
            logger.warning(
                "Schedules Direct credentials not configured - guide refresh will fail authentication"
            )
        if self.api_key == DEFAULT_API_KEY:
            logger.warning("API_KEY left at its default value - set a private key")
        return self

    @property
    def cache_path(self) -> Path:
        return Path(self.cache_dir)

    @property
    def cache_max_age_seconds(self) -> int:
        return int(self.epg_cache_hours * 3600)

    def log_summary(self) -> None:
        """Log the effective configuration without secrets."""
        logger.info("Configuration loaded:")
        logger.info("  Provider: %s", self.sd_base_url)
        logger.info("  Username: %s", self.sd_username or "(not set)")
        logger.info("  User-Agent: %s", self.sd_user_agent)
        logger.info("  Request Timeout: %ss", self.sd_request_timeout_sec)
        logger.info("  Max Concurrent Requests: %s", self.sd_max_concurrent_requests)
        logger.info(
            "  Chunk Sizes: schedules=%s programs=%s",
            self.sd_schedule_chunk_size,
            self.sd_program_chunk_size,
        )
        logger.info("  Location: %s %s", self.epg_country, self.epg_postal_code)
        logger.info("  Guide Days: %s", self.epg_days)
        logger.info("  Cache Freshness: %s hours", self.epg_cache_hours)
        logger.info("  Refresh Schedule: %s", self.epg_refresh_cron)
        logger.info("  Timestamp Zone: %s", self.epg_timezone or "host local")
        logger.info("  Static Channels: %s configured", len(self.epg_channels))
        logger.info("  Cache Directory: %s", self.cache_dir)
        logger.info("  Snapshots: %s", "enabled" if self.write_snapshots else "disabled")


@lru_cache
def get_settings() -> Settings:
    """Settings loaded once from the environment."""
    return Settings()


def setup_logging(level: str = "INFO") -> None:
    """Configure application logging."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
