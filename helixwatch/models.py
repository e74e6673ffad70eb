"""
📦 Models - DTOs built from Helix / OAuth JSON payloads

Frozen dataclasses: once fetched, a record never changes.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse Twitch RFC3339 timestamps ("2024-05-24T22:22:08Z") into aware datetimes."""
    if not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _cursor(payload: Dict[str, Any]) -> Optional[str]:
    # Helix sends {"pagination": {}} on the last page
    return (payload.get("pagination") or {}).get("cursor") or None


@dataclass(frozen=True)
class FollowerRecord:
    """One follower of a channel"""
    user_id: str                    # Account identifier (identity key)
    user_name: str                  # Display name
    followed_at: Optional[datetime]  # When the follow was established
    user_login: str = ""

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "FollowerRecord":
        return cls(
            user_id=str(data["user_id"]),
            user_name=data.get("user_name", ""),
            followed_at=parse_timestamp(data.get("followed_at")),
            user_login=data.get("user_login", ""),
        )


@dataclass(frozen=True)
class FollowersPage:
    followers: List[FollowerRecord]
    total: int
    cursor: Optional[str]

    @classmethod
    def from_json(cls, payload: Dict[str, Any]) -> "FollowersPage":
        return cls(
            followers=[FollowerRecord.from_json(item) for item in payload.get("data", [])],
            total=int(payload.get("total", 0)),
            cursor=_cursor(payload),
        )


@dataclass(frozen=True)
class User:
    id: str
    login: str
    display_name: str
    type: str = ""
    broadcaster_type: str = ""
    description: str = ""
    profile_image_url: str = ""
    offline_image_url: str = ""
    created_at: Optional[datetime] = None

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "User":
        return cls(
            id=str(data["id"]),
            login=data.get("login", ""),
            display_name=data.get("display_name", ""),
            type=data.get("type", ""),
            broadcaster_type=data.get("broadcaster_type", ""),
            description=data.get("description", ""),
            profile_image_url=data.get("profile_image_url", ""),
            offline_image_url=data.get("offline_image_url", ""),
            created_at=parse_timestamp(data.get("created_at")),
        )


@dataclass(frozen=True)
class ChannelInformation:
    """Channel metadata from GET /channels"""
    broadcaster_id: str
    broadcaster_login: str
    broadcaster_name: str
    broadcaster_language: str
    game_id: str
    game_name: str
    title: str
    delay: int = 0

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "ChannelInformation":
        return cls(
            broadcaster_id=str(data["broadcaster_id"]),
            broadcaster_login=data.get("broadcaster_login", ""),
            broadcaster_name=data.get("broadcaster_name", ""),
            broadcaster_language=data.get("broadcaster_language", ""),
            game_id=data.get("game_id", ""),
            game_name=data.get("game_name", ""),
            title=data.get("title", ""),
            delay=int(data.get("delay", 0) or 0),
        )


@dataclass(frozen=True)
class Subscription:
    """Entry of GET /subscriptions"""
    broadcaster_id: str
    broadcaster_login: str
    broadcaster_name: str
    user_id: str
    user_login: str
    user_name: str
    tier: str
    is_gift: bool = False
    gifter_id: str = ""
    gifter_login: str = ""
    gifter_name: str = ""
    plan_name: str = ""

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "Subscription":
        return cls(
            broadcaster_id=str(data["broadcaster_id"]),
            broadcaster_login=data.get("broadcaster_login", ""),
            broadcaster_name=data.get("broadcaster_name", ""),
            user_id=str(data["user_id"]),
            user_login=data.get("user_login", ""),
            user_name=data.get("user_name", ""),
            tier=data.get("tier", ""),
            is_gift=bool(data.get("is_gift", False)),
            gifter_id=data.get("gifter_id", ""),
            gifter_login=data.get("gifter_login", ""),
            gifter_name=data.get("gifter_name", ""),
            plan_name=data.get("plan_name", ""),
        )


@dataclass(frozen=True)
class UserSubscription:
    """Result of GET /subscriptions/user (seen from the subscriber side)"""
    broadcaster_id: str
    broadcaster_login: str
    broadcaster_name: str
    tier: str
    is_gift: bool = False
    gifter_login: str = ""
    gifter_name: str = ""

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "UserSubscription":
        return cls(
            broadcaster_id=str(data["broadcaster_id"]),
            broadcaster_login=data.get("broadcaster_login", ""),
            broadcaster_name=data.get("broadcaster_name", ""),
            tier=data.get("tier", ""),
            is_gift=bool(data.get("is_gift", False)),
            gifter_login=data.get("gifter_login", "") or "",
            gifter_name=data.get("gifter_name", "") or "",
        )


@dataclass(frozen=True)
class BroadcasterSubscriptionsPage:
    subscriptions: List[Subscription]
    total: int
    points: int
    cursor: Optional[str]

    @classmethod
    def from_json(cls, payload: Dict[str, Any]) -> "BroadcasterSubscriptionsPage":
        return cls(
            subscriptions=[Subscription.from_json(item) for item in payload.get("data", [])],
            total=int(payload.get("total", 0)),
            points=int(payload.get("points", 0)),
            cursor=_cursor(payload),
        )


@dataclass(frozen=True)
class RefreshResponse:
    access_token: str
    refresh_token: str
    expires_in: int
    scopes: Tuple[str, ...] = ()

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "RefreshResponse":
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token", ""),
            expires_in=int(data.get("expires_in", 0) or 0),
            scopes=tuple(data.get("scope") or ()),
        )


@dataclass(frozen=True)
class AuthCodeResponse(RefreshResponse):
    token_type: str = "bearer"

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "AuthCodeResponse":
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token", ""),
            expires_in=int(data.get("expires_in", 0) or 0),
            scopes=tuple(data.get("scope") or ()),
            token_type=data.get("token_type", "bearer"),
        )


@dataclass(frozen=True)
class ValidateAccessTokenResponse:
    client_id: str
    login: str
    user_id: str
    expires_in: int
    scopes: Tuple[str, ...] = ()

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "ValidateAccessTokenResponse":
        return cls(
            client_id=data.get("client_id", ""),
            # App tokens carry no login/user_id
            login=data.get("login") or "",
            user_id=str(data.get("user_id") or ""),
            expires_in=int(data.get("expires_in", 0) or 0),
            scopes=tuple(data.get("scopes") or ()),
        )


@dataclass
class PollResult:
    """Outcome of one poll cycle for one channel"""
    channel_id: str
    added: List[FollowerRecord] = field(default_factory=list)
    removed: List[FollowerRecord] = field(default_factory=list)
    error: Optional[Exception] = None
    baseline: bool = False          # This poll established the first snapshot
    skipped: bool = False           # Tick skipped (poll already in flight) or cycle cancelled by stop()

    @property
    def ok(self) -> bool:
        return self.error is None and not self.skipped

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.removed)
