from pathlib import Path
import logging

from croniter import croniter
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


logger = logging.getLogger(__name__)


def mask_url(url: str | None) -> str:
    """Remove credentials from URL for safe logging."""
    if not url:
        return "not configured"
    if "://" not in url:
        return url
    try:
        protocol, rest = url.split("://", 1)
        if "@" in rest:
            rest = rest.split("@", 1)[1]
            return f"{protocol}://***:***@{rest}"
        return url
    except (ValueError, IndexError):
        return url


class CustomSettings(BaseSettings):
    """Application settings loaded from environment variables.

    Validates configuration at startup to catch misconfiguration early.
    """

    database_path: str = "./data/iptv.db"
    cache_dir: str = "./data/cache"
    xmltv_url: str | None = None
    playlist_url: str | None = None
    stream_base_url: str | None = None  # e.g. https://host/live/{channel}.m3u8

    iptv_refresh_interval_hours: int = 12
    iptv_refresh_cron: str | None = None  # Overrides the interval when set
    iptv_refresh_misfire_grace_sec: int = 3600
    epg_min_future_coverage_hours: int = 12

    fetch_timeout_sec: float = 120.0
    fetch_max_retries: int = 3
    fetch_backoff_factor: float = 2.0
    xmltv_parse_timeout_sec: int = 600  # 0 disables timeout

    channels_chunk_size: int = 1000
    programmes_chunk_size: int = 5000

    api_host: str = "0.0.0.0"
    api_port: int = 8000
    shutdown_grace_sec: int = 30  # Wait for an in-flight startup refresh on shutdown

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("xmltv_url", "playlist_url", "stream_base_url", mode="before")
    @classmethod
    def blank_to_none(cls, value):
        """Treat empty strings from the environment as unset."""
        if isinstance(value, str) and not value.strip():
            return None
        return value.strip() if isinstance(value, str) else value

    @field_validator("xmltv_url", "playlist_url")
    @classmethod
    def validate_source_url(cls, value: str | None, info) -> str | None:
        """Validate feed URLs are HTTP/HTTPS."""
        if value is None:
            return value
        if not value.lower().startswith(("http://", "https://")):
            raise ValueError(f"{info.field_name} must be HTTP/HTTPS: {value}")
        return value

    @field_validator("stream_base_url")
    @classmethod
    def validate_stream_template(cls, value: str | None) -> str | None:
        """Stream URL template must carry the {channel} placeholder."""
        if value is not None and "{channel}" not in value:
            raise ValueError("stream_base_url must contain a '{channel}' placeholder")
        return value

    @field_validator("database_path", "cache_dir")
    @classmethod
    def validate_data_path(cls, value: str, info) -> str:
        """Validate data paths are accessible."""
        path = Path(value)
        target = path if info.field_name == "cache_dir" else path.parent
        try:
            target.mkdir(parents=True, exist_ok=True)
            return value
        except (OSError, PermissionError) as exc:
            raise ValueError(f"Cannot access {info.field_name} '{value}': {exc}") from exc

    @field_validator("iptv_refresh_interval_hours", "fetch_max_retries", "api_port")
    @classmethod
    def validate_positive_ints(cls, value: int, info) -> int:
        if value <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return value

    @field_validator(
        "iptv_refresh_misfire_grace_sec",
        "epg_min_future_coverage_hours",
        "xmltv_parse_timeout_sec",
        "shutdown_grace_sec",
    )
    @classmethod
    def validate_non_negative_ints(cls, value: int, info) -> int:
        if value < 0:
            raise ValueError(f"{info.field_name} must be >= 0")
        return value

    @field_validator("channels_chunk_size", "programmes_chunk_size")
    @classmethod
    def validate_chunk_sizes(cls, value: int, info) -> int:
        """Ensure chunk sizes are positive integers."""
        if value <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return value

    @field_validator("fetch_timeout_sec")
    @classmethod
    def validate_fetch_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("fetch_timeout_sec must be > 0")
        return value

    @field_validator("fetch_backoff_factor")
    @classmethod
    def validate_backoff_factor(cls, value: float) -> float:
        """Ensure the backoff factor is at least 1."""
        if value < 1:
            raise ValueError("fetch_backoff_factor must be >= 1")
        return value

    @field_validator("iptv_refresh_cron")
    @classmethod
    def validate_cron_expression(cls, value: str | None) -> str | None:
        """Validate cron expression is valid."""
        if value is None or not value.strip():
            return None
        try:
            croniter(value)
            return value
        except (ValueError, KeyError) as exc:
            raise ValueError(f"Invalid cron expression '{value}': {exc}") from exc

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        normalized = value.upper()
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if normalized not in allowed:
            raise ValueError(f"log_level must be one of {sorted(allowed)}")
        return normalized

    @model_validator(mode="after")
    def validate_feed_configuration(self):
        """Validate cross-field configuration."""
        if not self.xmltv_url:
            logger.warning(
                "No XMLTV source configured - refresh will not retrieve programme data"
            )
        if not self.playlist_url:
            logger.info("No playlist source configured - playlist ingestion disabled")
        return self

    def __init__(self, **data):
        """Initialize settings and log configuration."""
        super().__init__(**data)

        logger.info("Configuration loaded:")
        logger.info("  Database: %s", self.database_path)
        logger.info("  Cache Directory: %s", self.cache_dir)
        logger.info("  XMLTV Source: %s", mask_url(self.xmltv_url))
        logger.info("  Playlist Source: %s", mask_url(self.playlist_url))
        logger.info("  Stream URL Template: %s", mask_url(self.stream_base_url))
        logger.info(
            "  Refresh Schedule: %s",
            self.iptv_refresh_cron or f"every {self.iptv_refresh_interval_hours}h",
        )
        logger.info("  Minimum Future Coverage: %s hours", self.epg_min_future_coverage_hours)
        logger.info(
            "  Fetch: timeout=%.1fs retries=%s backoff=%.1f",
            self.fetch_timeout_sec,
            self.fetch_max_retries,
            self.fetch_backoff_factor,
        )
        logger.info(
            "  Parse Timeout: %s seconds",
            self.xmltv_parse_timeout_sec or "disabled",
        )


settings = CustomSettings()


def setup_logging() -> None:
    """Configure application logging."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
