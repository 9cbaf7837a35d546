"""
Configuration module with strict environment variable validation.
NO FALLBACKS for required variables - they must be explicitly set.

Tunables and district tables are centralized in config.yaml - modify there, not in code.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Any

import yaml


class ConfigurationError(Exception):
    """Raised when required configuration is missing or malformed."""
    pass


# Load YAML config once at module level
_CONFIG_PATH = Path(__file__).parent / "config.yaml"
_YAML_CONFIG: dict = {}

DEFAULT_BUCKET = "satellite-analysis"
DEFAULT_USER_AGENT = "MineGuard-Ghana-App/1.0"


def _load_yaml_config() -> dict:
    """Load configuration from config.yaml file."""
    global _YAML_CONFIG
    if not _YAML_CONFIG:
        if _CONFIG_PATH.exists():
            with open(_CONFIG_PATH, "r", encoding="utf-8") as f:
                _YAML_CONFIG = yaml.safe_load(f) or {}
        else:
            raise ConfigurationError(f"Configuration file not found: {_CONFIG_PATH}")
    return _YAML_CONFIG


def get_yaml_setting(*keys: str, default: Any = None) -> Any:
    """
    Get a setting from config.yaml by key path.

    Example: get_yaml_setting("grid", "fine_cell_size_deg") -> 0.005
    """
    config = _load_yaml_config()
    value = config
    for key in keys:
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default
    return value


def get_required_env(key: str) -> str:
    """Get a required environment variable. Raises if not set."""
    value = os.environ.get(key)
    if value is None or value.strip() == "":
        raise ConfigurationError(
            f"Missing required environment variable: {key}\n"
            f"Please set {key} in your .env file or environment."
        )
    return value.strip()


def get_optional_env(key: str) -> Optional[str]:
    """Get an optional environment variable. Returns None if not set."""
    value = os.environ.get(key)
    if value is None or value.strip() == "":
        return None
    return value.strip()


@dataclass(frozen=True)
class Config:
    """Application configuration - immutable after creation."""

    # Server settings - REQUIRED
    backend_port: int
    backend_host: str

    # Supabase project (storage, reports, district boundaries) - REQUIRED
    supabase_url: str
    supabase_key: str

    # Optional credentials (synthetic imagery is used if missing)
    sentinelhub_client_id: Optional[str]
    sentinelhub_client_secret: Optional[str]

    # CORS settings - REQUIRED
    cors_origins: list[str]

    supabase_bucket: str = DEFAULT_BUCKET
    nominatim_user_agent: str = DEFAULT_USER_AGENT

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""

        # Required settings
        try:
            backend_port = int(get_required_env("BACKEND_PORT"))
        except ValueError:
            raise ConfigurationError("BACKEND_PORT must be an integer")
        backend_host = get_required_env("BACKEND_HOST")

        supabase_url = get_required_env("SUPABASE_URL").rstrip("/")
        if not supabase_url.startswith(("http://", "https://")):
            raise ConfigurationError(f"SUPABASE_URL must be an http(s) URL, got: {supabase_url}")
        supabase_key = get_required_env("SUPABASE_KEY")

        cors_origins_str = get_required_env("CORS_ORIGINS")
        cors_origins = [origin.strip() for origin in cors_origins_str.split(",")]

        # Optional settings
        sentinelhub_client_id = get_optional_env("SENTINELHUB_CLIENT_ID")
        sentinelhub_client_secret = get_optional_env("SENTINELHUB_CLIENT_SECRET")

        return cls(
            backend_port=backend_port,
            backend_host=backend_host,
            supabase_url=supabase_url,
            supabase_key=supabase_key,
            sentinelhub_client_id=sentinelhub_client_id,
            sentinelhub_client_secret=sentinelhub_client_secret,
            cors_origins=cors_origins,
            supabase_bucket=get_optional_env("SUPABASE_BUCKET") or DEFAULT_BUCKET,
            nominatim_user_agent=get_optional_env("NOMINATIM_USER_AGENT") or DEFAULT_USER_AGENT,
        )

    def validate_apis(self) -> dict[str, bool]:
        """Return which external services are configured."""
        return {
            "supabase": bool(self.supabase_url and self.supabase_key),
            "sentinel_hub": bool(self.sentinelhub_client_id and self.sentinelhub_client_secret),
            "nominatim": True,  # Always available, no key needed
        }


def load_config() -> Config:
    """Load and validate configuration."""
    from dotenv import load_dotenv

    # Load .env file if present
    load_dotenv()

    return Config.from_env()
