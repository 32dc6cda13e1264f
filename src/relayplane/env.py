"""Environment settings for RelayPlane.

Uses pydantic-settings for type-safe access to the RELAY_* variables,
and reads the login file written by the relay CLI to pick up a cloud
access token for telemetry.
"""

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_TELEMETRY_ENDPOINT = "https://api.relayplane.com/v1/telemetry/logs"


class RelaySettings(BaseSettings):
    """RELAY_* environment settings."""

    model_config = SettingsConfigDict(
        env_prefix="RELAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    api_key: str | None = None
    api_endpoint: str | None = None
    config_path: Path | None = None
    verbose: bool = False


@lru_cache(maxsize=1)
def get_settings() -> RelaySettings:
    """Get cached RelaySettings instance."""
    return RelaySettings()


def clear_settings_cache() -> None:
    """Clear the settings cache. Useful for testing."""
    get_settings.cache_clear()


def cli_config_path() -> Path:
    """Location of the relay CLI login file."""
    return get_settings().config_path or Path.home() / ".relay" / "config.json"


def read_cli_config(path: Path | None = None) -> dict[str, Any] | None:
    """Return the "cloud" section of the CLI login file, if any.

    A missing or unreadable file is not an error: telemetry simply stays
    disabled.
    """
    path = path or cli_config_path()
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.debug("Ignoring unreadable CLI config %s: %s", path, e)
        return None
    cloud = data.get("cloud") if isinstance(data, dict) else None
    return cloud if isinstance(cloud, dict) else None


def initial_telemetry_config() -> dict[str, Any]:
    """Telemetry settings a fresh configuration starts with.

    RELAY_API_KEY wins; otherwise an access token from the CLI login
    file enables telemetry. Without either, telemetry is off.
    """
    settings = get_settings()
    if settings.api_key:
        return {
            "enabled": True,
            "api_endpoint": settings.api_endpoint or DEFAULT_TELEMETRY_ENDPOINT,
            "api_key": settings.api_key,
        }

    cloud = read_cli_config()
    if cloud and cloud.get("accessToken"):
        return {
            "enabled": True,
            "api_endpoint": DEFAULT_TELEMETRY_ENDPOINT,
            "api_key": cloud["accessToken"],
        }

    return {"enabled": False}
