import logging
import os
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv


@dataclass
class Settings:
    # Database
    database_url: Optional[str]

    # Documents
    app_version: str

    # Case numbers
    case_number_prefix: str = "CR"
    case_number_max_attempts: int = 5

    # Logging
    log_level: str = "INFO"


# Global settings instance
_settings: Optional[Settings] = None


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got '{raw}'") from exc
    if value < 1:
        raise ValueError(f"{name} must be at least 1, got {value}")
    return value


def load_settings() -> Settings:
    global _settings
    load_dotenv()

    database_url = os.getenv("DATABASE_URL", "")

    _settings = Settings(
        database_url=database_url.strip().strip('"') or None,
        app_version=os.getenv("APP_VERSION", "1.0"),
        case_number_prefix=os.getenv("CASE_NUMBER_PREFIX", "CR"),
        case_number_max_attempts=_int_env("CASE_NUMBER_MAX_ATTEMPTS", 5),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
    return _settings


def get_settings() -> Settings:
    """Get the loaded settings. Must call load_settings() first."""
    global _settings
    if _settings is None:
        raise RuntimeError("Settings not initialized. Call load_settings() first.")
    return _settings


def configure_logging(level: Optional[str] = None) -> None:
    """Apply the configured log level for scripts and entry points."""
    if level is None:
        level = _settings.log_level if _settings else "INFO"
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
