"""
helixwatch/transports/
======================

Transport clients for the Twitch API.

Modules:
- http : aiohttp dispatcher (timeouts, status -> exceptions)
- helix_client : typed Helix endpoints (users, channels, subscriptions, followers)
"""

from helixwatch.transports.helix_client import HelixClient
from helixwatch.transports.http import HttpCallHandler, HttpResponse

__all__ = ["HelixClient", "HttpCallHandler", "HttpResponse"]
