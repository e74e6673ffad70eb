"""
👥 Monitors - Polling-based follower change detection

The followers endpoint has no delta query: full snapshots are diffed.
"""
from .follower_monitor import (
    FollowerMonitor,
    MonitorState,
    lookup_by_id,
    lookup_by_login,
)

__all__ = ["FollowerMonitor", "MonitorState", "lookup_by_id", "lookup_by_login"]
