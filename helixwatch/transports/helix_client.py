#!/usr/bin/env python3
"""Helix Transport - typed wrappers over the Helix REST endpoints

- get_users() : public user data (login <-> id)
- get_channel_information() : channel metadata
- check_user_subscription() / get_user_subscriptions() / get_broadcaster_subscriptions()
- get_channel_followers() / fetch_followers() : follower pages

Arguments are validated before any request (InvalidArgument).
Every call waits on the rate limiter then goes through HttpCallHandler.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from helixwatch.config import HelixSettings
from helixwatch.errors import AuthError, InvalidArgument
from helixwatch.models import (
    BroadcasterSubscriptionsPage,
    ChannelInformation,
    FollowerRecord,
    FollowersPage,
    Subscription,
    User,
    UserSubscription,
)
from helixwatch.rate_limiter import HelixRateLimiter
from helixwatch.transports.http import HttpCallHandler, query_pairs

LOGGER = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


def _require(value: Optional[str], name: str) -> None:
    if value is None or not str(value).strip():
        raise InvalidArgument(f"{name} must be set")


def _check_page_size(first: int, name: str = "first") -> None:
    if first < 1 or first > MAX_PAGE_SIZE:
        raise InvalidArgument(f"{name} must be between 1 and {MAX_PAGE_SIZE}, got {first}")


class HelixClient:
    """
    Helix API client (App Token or User Token)

    Holds no state besides credentials: each method is one round trip.
    """

    def __init__(
        self,
        http: HttpCallHandler,
        settings: HelixSettings,
        rate_limiter: Optional[HelixRateLimiter] = None,
    ):
        self.http = http
        self.settings = settings
        self.rate_limiter = rate_limiter or HelixRateLimiter(settings.points_per_minute)
        LOGGER.debug(f"HelixClient init (base={settings.helix_base_url})")

    def set_access_token(self, access_token: str) -> None:
        """Swap the bearer token (after a refresh)"""
        self.settings.access_token = access_token

    def _headers(self, access_token: Optional[str]) -> Dict[str, str]:
        token = access_token or self.settings.access_token
        if not token:
            raise AuthError(401, "No access token configured")
        return {
            "Client-Id": self.settings.client_id,
            "Authorization": f"Bearer {token}",
        }

    async def _get(
        self,
        path: str,
        params: List[Tuple[str, str]],
        access_token: Optional[str] = None,
        allow_status: Sequence[int] = (),
    ) -> Tuple[int, Dict[str, Any]]:
        headers = self._headers(access_token)
        await self.rate_limiter.acquire()
        response = await self.http.request(
            "GET",
            f"{self.settings.helix_base_url}{path}",
            params=params,
            headers=headers,
            allow_status=allow_status,
        )
        self.rate_limiter.update_from_headers(response.headers)
        return response.status, response.json()

    # ------------------------------------------------------------------
    # Users / channels
    # ------------------------------------------------------------------

    async def get_users(
        self,
        ids: Optional[Sequence[str]] = None,
        logins: Optional[Sequence[str]] = None,
        access_token: Optional[str] = None,
    ) -> List[User]:
        """Get Users by id and/or login (100 max combined)"""
        ids = list(ids or [])
        logins = list(logins or [])
        if not ids and not logins:
            raise InvalidArgument("At least one id or login must be set")
        if len(ids) + len(logins) > MAX_PAGE_SIZE:
            raise InvalidArgument(f"At most {MAX_PAGE_SIZE} ids/logins per request")

        LOGGER.debug(f"[HELIX] get_users(ids={ids}, logins={logins})")
        _, payload = await self._get(
            "/users", query_pairs(id=ids or None, login=logins or None), access_token
        )
        return [User.from_json(item) for item in payload.get("data", [])]

    async def get_user_id(self, login: str) -> Optional[str]:
        """Resolve a login to its user id (None if no such user)"""
        _require(login, "login")
        users = await self.get_users(logins=[login.lower()])
        return users[0].id if users else None

    async def get_channel_information(
        self, broadcaster_ids: Sequence[str], access_token: Optional[str] = None
    ) -> List[ChannelInformation]:
        """Get Channel Information for 1..100 broadcasters"""
        broadcaster_ids = [b for b in broadcaster_ids or [] if b and str(b).strip()]
        if not broadcaster_ids:
            raise InvalidArgument("At least one broadcaster id must be set")
        if len(broadcaster_ids) > MAX_PAGE_SIZE:
            raise InvalidArgument(f"At most {MAX_PAGE_SIZE} broadcaster ids per request")

        LOGGER.debug(f"[HELIX] get_channel_information({broadcaster_ids})")
        _, payload = await self._get(
            "/channels", query_pairs(broadcaster_id=broadcaster_ids), access_token
        )
        return [ChannelInformation.from_json(item) for item in payload.get("data", [])]

    # ------------------------------------------------------------------
    # Subscriptions (User Token with channel:read:subscriptions / user:read:subscriptions)
    # ------------------------------------------------------------------

    async def check_user_subscription(
        self, broadcaster_id: str, user_id: str, access_token: Optional[str] = None
    ) -> Optional[UserSubscription]:
        """Check whether user_id subscribes to broadcaster_id.

        Returns:
            UserSubscription, or None when the user is not subscribed (Helix 404)
        """
        _require(broadcaster_id, "broadcaster_id")
        _require(user_id, "user_id")

        LOGGER.debug(f"[HELIX] check_user_subscription({broadcaster_id}, {user_id})")
        status, payload = await self._get(
            "/subscriptions/user",
            query_pairs(broadcaster_id=broadcaster_id, user_id=user_id),
            access_token,
            allow_status=(404,),
        )
        if status == 404:
            LOGGER.debug(f"User {user_id} not subscribed to {broadcaster_id}")
            return None
        data = payload.get("data", [])
        return UserSubscription.from_json(data[0]) if data else None

    async def get_user_subscriptions(
        self, broadcaster_id: str, user_ids: Sequence[str], access_token: Optional[str] = None
    ) -> List[Subscription]:
        """Subscriptions of specific users to one broadcaster"""
        _require(broadcaster_id, "broadcaster_id")
        if not user_ids:
            raise InvalidArgument("user_ids must contain at least one user id")
        if len(user_ids) > MAX_PAGE_SIZE:
            raise InvalidArgument(f"At most {MAX_PAGE_SIZE} user ids per request")

        _, payload = await self._get(
            "/subscriptions",
            query_pairs(broadcaster_id=broadcaster_id, user_id=list(user_ids)),
            access_token,
        )
        return [Subscription.from_json(item) for item in payload.get("data", [])]

    async def get_broadcaster_subscriptions(
        self,
        broadcaster_id: str,
        first: int = 20,
        after: Optional[str] = None,
        access_token: Optional[str] = None,
    ) -> BroadcasterSubscriptionsPage:
        """One page of a broadcaster's subscribers"""
        _require(broadcaster_id, "broadcaster_id")
        _check_page_size(first)

        _, payload = await self._get(
            "/subscriptions",
            query_pairs(broadcaster_id=broadcaster_id, first=first, after=after or None),
            access_token,
        )
        page = BroadcasterSubscriptionsPage.from_json(payload)
        LOGGER.debug(
            f"Subscriptions {broadcaster_id}: {len(page.subscriptions)} on page (total={page.total})"
        )
        return page

    # ------------------------------------------------------------------
    # Followers (moderator:read:followers to list the followers themselves)
    # ------------------------------------------------------------------

    async def get_channel_followers(
        self,
        broadcaster_id: str,
        first: int = MAX_PAGE_SIZE,
        after: Optional[str] = None,
        user_id: Optional[str] = None,
        access_token: Optional[str] = None,
    ) -> FollowersPage:
        """One page of GET /channels/followers"""
        _require(broadcaster_id, "broadcaster_id")
        _check_page_size(first)

        _, payload = await self._get(
            "/channels/followers",
            query_pairs(
                broadcaster_id=broadcaster_id,
                user_id=user_id or None,
                first=first,
                after=after or None,
            ),
            access_token,
        )
        return FollowersPage.from_json(payload)

    async def fetch_followers(
        self,
        channel_id: str,
        page_size: int = MAX_PAGE_SIZE,
        continuation_token: Optional[str] = None,
    ) -> Tuple[List[FollowerRecord], Optional[str]]:
        """Page fetch used by the follower monitor.

        Returns:
            (followers on this page, cursor of the next page or None on the last page)
        """
        page = await self.get_channel_followers(
            channel_id, first=page_size, after=continuation_token
        )
        LOGGER.debug(
            f"Followers {channel_id}: {len(page.followers)} on page "
            f"(total={page.total}, more={page.cursor is not None})"
        )
        return page.followers, page.cursor
