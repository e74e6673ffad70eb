"""
⚠️ Errors - Exceptions raised by the Helix client and the monitors

InvalidArgument is raised before any I/O and is never retried.
UpstreamError and its subclasses come from the HTTP layer.
"""
from typing import Optional


class HelixError(Exception):
    """Base class for every helixwatch error"""


class InvalidArgument(HelixError, ValueError):
    """Bad call parameters (blank id, out-of-range page size, ...)"""


class ConfigError(HelixError):
    """Config file missing or unreadable"""


class UpstreamError(HelixError):
    """Non-success answer from Twitch (or no answer at all when status is None)"""

    def __init__(self, status: Optional[int], message: str = ""):
        self.status = status
        self.message = message
        super().__init__(f"[{status}] {message}" if status is not None else message)


class AuthError(UpstreamError):
    """Invalid/expired credentials or missing scope (401/403)"""


class RateLimited(UpstreamError):
    """Helix throttled the request (429)"""

    def __init__(self, retry_after: float, message: str = "Too Many Requests"):
        self.retry_after = retry_after
        super().__init__(429, message)
