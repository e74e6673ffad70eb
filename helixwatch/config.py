"""
⚙️ Config - config/config.yaml loading

Secrets may be overridden from the environment:
TWITCH_CLIENT_ID, TWITCH_CLIENT_SECRET, TWITCH_ACCESS_TOKEN, TWITCH_REFRESH_TOKEN
"""
import logging
import os
import pathlib
from dataclasses import dataclass, field
from typing import Any, Dict, List

import yaml

from helixwatch.errors import ConfigError

LOGGER = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/config.yaml"

HELIX_BASE_URL = "https://api.twitch.tv/helix"
OAUTH_BASE_URL = "https://id.twitch.tv"


def load_config(config_path: str = DEFAULT_CONFIG_PATH) -> Dict[str, Any]:
    """Load config.yaml (an empty file gives an empty dict)"""
    config_file = pathlib.Path(config_path)
    if not config_file.exists():
        raise ConfigError(f"Config file {config_path} not found")
    try:
        with open(config_file, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Config file {config_path} is not valid YAML: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {config_path} must contain a mapping")
    LOGGER.debug(f"Config loaded from {config_file}")
    return data


@dataclass
class HelixSettings:
    """Credentials and transport settings shared by HelixClient and AuthManager"""
    client_id: str = ""
    client_secret: str = ""
    access_token: str = ""
    refresh_token: str = ""
    helix_base_url: str = HELIX_BASE_URL
    oauth_base_url: str = OAUTH_BASE_URL
    helix_timeout: float = 8.0
    points_per_minute: int = 800

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "HelixSettings":
        twitch_config = config.get("twitch", {}) or {}
        timeouts = config.get("timeouts", {}) or {}
        rate_limit = config.get("rate_limit", {}) or {}
        return cls(
            client_id=os.getenv("TWITCH_CLIENT_ID", twitch_config.get("client_id", "")) or "",
            client_secret=os.getenv("TWITCH_CLIENT_SECRET", twitch_config.get("client_secret", "")) or "",
            access_token=os.getenv("TWITCH_ACCESS_TOKEN", twitch_config.get("access_token", "")) or "",
            refresh_token=os.getenv("TWITCH_REFRESH_TOKEN", twitch_config.get("refresh_token", "")) or "",
            helix_base_url=twitch_config.get("helix_base_url", HELIX_BASE_URL),
            oauth_base_url=twitch_config.get("oauth_base_url", OAUTH_BASE_URL),
            helix_timeout=float(timeouts.get("helix_request", 8.0)),
            points_per_minute=int(rate_limit.get("points_per_minute", 800)),
        )


@dataclass
class MonitorSettings:
    """monitor: section"""
    channels: List[str] = field(default_factory=list)
    lookup: str = "id"              # "id" or "login"
    interval: float = 60.0
    page_size: int = 100
    track_departures: bool = True
    report_initial_followers: bool = False

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "MonitorSettings":
        monitor_config = config.get("monitor", {}) or {}
        lookup = monitor_config.get("lookup", "id")
        if lookup not in ("id", "login"):
            raise ConfigError(f"monitor.lookup must be 'id' or 'login', got {lookup!r}")
        return cls(
            channels=[str(c) for c in monitor_config.get("channels", []) or []],
            lookup=lookup,
            interval=float(monitor_config.get("interval", 60)),
            page_size=int(monitor_config.get("page_size", 100)),
            track_departures=bool(monitor_config.get("track_departures", True)),
            report_initial_followers=bool(monitor_config.get("report_initial_followers", False)),
        )


def get_log_level(config: Dict[str, Any], default: str = "INFO") -> int:
    """logging.level -> logging constant"""
    level_name = str((config.get("logging", {}) or {}).get("level", default)).upper()
    level = logging.getLevelName(level_name)
    return level if isinstance(level, int) else logging.INFO
