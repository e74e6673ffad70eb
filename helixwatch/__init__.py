"""
helixwatch/
===========

Twitch Helix client + follower change monitor.

Organisation:
- auth_manager.py : OAuth (authorize URL, code exchange, refresh, validate) + token store
- config.py : config/config.yaml loading
- rate_limiter.py : Helix points bucket
- transports/ : HTTP dispatcher and typed Helix endpoints
- monitors/ : follower poll-and-diff monitor
"""

from helixwatch.auth_manager import AuthManager, TokenInfo
from helixwatch.config import HelixSettings, MonitorSettings, load_config
from helixwatch.errors import (
    AuthError,
    ConfigError,
    HelixError,
    InvalidArgument,
    RateLimited,
    UpstreamError,
)
from helixwatch.models import ChannelInformation, FollowerRecord, PollResult
from helixwatch.monitors import FollowerMonitor, lookup_by_id, lookup_by_login
from helixwatch.rate_limiter import HelixRateLimiter
from helixwatch.transports import HelixClient, HttpCallHandler

__version__ = "0.1.0"

__all__ = [
    "AuthError",
    "AuthManager",
    "ChannelInformation",
    "ConfigError",
    "FollowerMonitor",
    "FollowerRecord",
    "HelixClient",
    "HelixError",
    "HelixRateLimiter",
    "HelixSettings",
    "HttpCallHandler",
    "InvalidArgument",
    "MonitorSettings",
    "PollResult",
    "RateLimited",
    "TokenInfo",
    "UpstreamError",
    "load_config",
    "lookup_by_id",
    "lookup_by_login",
]
