"""
Environment configuration loader with validation for tripmap.
"""

import logging
import os
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field, field_validator
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_GEOCODER_URL = "https://maps.googleapis.com/maps/api/geocode/json"


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes", "on")


class AppConfig(BaseModel):
    """Configuration model for tripmap with validation."""

    # Row store
    database_url: str = Field(
        default="sqlite:///tripmap.db", description="Database connection URL"
    )

    # Valkey cache tier
    use_valkey: bool = Field(default=True, description="Use Valkey for cache and lock")
    valkey_host: str = Field(default="localhost", description="Valkey server host")
    valkey_port: int = Field(
        default=6379, ge=1, le=65535, description="Valkey server port"
    )
    valkey_password: Optional[str] = Field(
        default=None, description="Valkey server password"
    )
    valkey_database: int = Field(
        default=0, ge=0, le=15, description="Valkey database number"
    )

    # External geocoder
    geocoder_url: str = Field(
        default=DEFAULT_GEOCODER_URL, description="Geocoding endpoint (Google JSON format)"
    )
    geocoder_api_key: Optional[str] = Field(
        default=None, description="Geocoding API key"
    )
    geocoder_timeout_seconds: float = Field(
        default=10.0, gt=0, description="Geocoder HTTP timeout in seconds"
    )

    # Trip lock
    lock_timeout_seconds: float = Field(
        default=10.0, gt=0, description="Maximum wait for the store-wide trip lock"
    )
    lock_ttl_seconds: int = Field(
        default=30, ge=1, le=300, description="Lease time of the trip lock"
    )

    # Airport directory cache
    airport_cache_ttl_seconds: int = Field(
        default=21600, ge=1, le=21600, description="Airport cache TTL (6 hour ceiling)"
    )

    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the standard levels."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()


def load_config(env_file: Optional[str] = None) -> AppConfig:
    """
    Load configuration from environment variables and .env file.

    Args:
        env_file: Optional path to .env file. If None, looks for .env in current directory.

    Raises:
        ValueError: If configuration is invalid
    """
    if env_file is None:
        env_file = ".env"

    if os.path.exists(env_file):
        load_dotenv(env_file)

    config_data: Dict[str, Any] = {
        "database_url": os.getenv("DATABASE_URL", "sqlite:///tripmap.db"),
        "use_valkey": _env_flag("USE_VALKEY", "true"),
        "valkey_host": os.getenv("VALKEY_HOST", "localhost"),
        "valkey_port": int(os.getenv("VALKEY_PORT", "6379")),
        "valkey_password": os.getenv("VALKEY_PASSWORD") or None,
        "valkey_database": int(os.getenv("VALKEY_DATABASE", "0")),
        "geocoder_url": os.getenv("GEOCODER_URL", DEFAULT_GEOCODER_URL),
        "geocoder_api_key": os.getenv("GEOCODER_API_KEY") or None,
        "geocoder_timeout_seconds": float(os.getenv("GEOCODER_TIMEOUT_SECONDS", "10")),
        "lock_timeout_seconds": float(os.getenv("LOCK_TIMEOUT_SECONDS", "10")),
        "lock_ttl_seconds": int(os.getenv("LOCK_TTL_SECONDS", "30")),
        "airport_cache_ttl_seconds": int(os.getenv("AIRPORT_CACHE_TTL_SECONDS", "21600")),
        "log_level": os.getenv("TRIPMAP_LOG_LEVEL", "INFO"),
    }

    try:
        return AppConfig(**config_data)
    except Exception as e:
        raise ValueError(f"Configuration validation failed: {e}")


def validate_required_settings(config: AppConfig) -> None:
    """
    Check settings that have no usable default.

    Raises:
        ValueError: If required settings are missing or invalid
    """
    if not config.database_url:
        raise ValueError("DATABASE_URL is required")

    if config.use_valkey and not config.valkey_host:
        raise ValueError("VALKEY_HOST is required when USE_VALKEY is enabled")

    if not config.geocoder_api_key:
        logger.warning("GEOCODER_API_KEY not set; geocoder requests are sent without a key")

    logger.info(
        f"Configuration validated: database={config.database_url}, "
        f"valkey={'%s:%s' % (config.valkey_host, config.valkey_port) if config.use_valkey else 'disabled'}"
    )


# Global configuration instance
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get the global configuration instance, loading it if necessary."""
    global _config
    if _config is None:
        _config = load_config()
        validate_required_settings(_config)
    return _config
