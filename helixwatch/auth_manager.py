#!/usr/bin/env python3
"""
AuthManager
OAuth endpoints (authorize URL, code exchange, refresh, validate)
and user token store with automatic refresh
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Iterable, Optional
from urllib.parse import urlencode

from twitchAPI.helper import build_scope
from twitchAPI.type import AuthScope

from helixwatch.config import HelixSettings
from helixwatch.errors import AuthError, InvalidArgument
from helixwatch.models import AuthCodeResponse, RefreshResponse, ValidateAccessTokenResponse
from helixwatch.transports.http import HttpCallHandler

LOGGER = logging.getLogger(__name__)


def _require(value: Optional[str], name: str) -> str:
    if value is None or not value.strip():
        raise InvalidArgument(
            f"The {name} is not valid. It is not allowed to be null, empty or filled with whitespaces."
        )
    return value


def scopes_from_strings(scope_strings: Iterable[str]) -> list[AuthScope]:
    """
    Convert scope strings ("channel:read:subscriptions") to AuthScope enums.
    Unknown scopes are dropped with a warning.
    """
    result = []
    for scope_str in scope_strings:
        try:
            result.append(AuthScope(scope_str))
        except ValueError:
            LOGGER.warning(f"⚠️ Unknown scope string: {scope_str}")
    return result


@dataclass
class TokenInfo:
    """User token"""
    user_login: str          # Account login
    user_id: str             # Twitch ID
    access_token: str
    refresh_token: str
    expires_at: datetime     # When the access token expires
    scopes: list[AuthScope] = field(default_factory=list)


class AuthManager:
    """
    OAuth against id.twitch.tv + user token store
    - Load/save from a JSON token file
    - Automatic refresh of expired tokens
    - Scope checks
    """

    def __init__(
        self,
        http: HttpCallHandler,
        settings: HelixSettings,
        token_file: str = ".helixwatch.tokens.json",
    ):
        self.http = http
        self.settings = settings
        self.token_file = Path(token_file)
        self.tokens: dict[str, TokenInfo] = {}  # {user_login: TokenInfo}

        LOGGER.debug("AuthManager initialized")

    # ------------------------------------------------------------------
    # OAuth endpoints
    # ------------------------------------------------------------------

    def get_authorization_code_url(
        self,
        redirect_uri: str,
        scopes: Iterable[AuthScope],
        force_verify: bool = False,
        state: Optional[str] = None,
        client_id: Optional[str] = None,
    ) -> str:
        """
        Build the authorization code flow URL the user must open

        Args:
            redirect_uri: Redirect URI registered for the app
            scopes: Requested scopes
            force_verify: Always re-prompt the user
            state: Opaque CSRF value echoed back by Twitch
            client_id: Overrides the configured client id
        """
        internal_client_id = _require(client_id or self.settings.client_id, "clientId")

        params = {
            "client_id": internal_client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": build_scope(list(scopes)),
            "force_verify": "true" if force_verify else "false",
        }
        if state:
            params["state"] = state
        return f"{self.settings.oauth_base_url}/oauth2/authorize?{urlencode(params)}"

    async def refresh_auth_token(
        self,
        refresh_token: str,
        client_secret: Optional[str] = None,
        client_id: Optional[str] = None,
    ) -> RefreshResponse:
        """
        Refresh an expired access token (client secret required, never expose it)

        Raises:
            InvalidArgument: blank refresh token / secret / client id
            UpstreamError: Twitch refused the refresh token (400)
        """
        _require(refresh_token, "refresh token")
        secret = _require(client_secret or self.settings.client_secret, "client secret")
        internal_client_id = _require(client_id or self.settings.client_id, "clientId")

        LOGGER.info("🔄 Refresh token via Twitch OAuth...")
        response = await self.http.request(
            "POST",
            f"{self.settings.oauth_base_url}/oauth2/token",
            data={
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": internal_client_id,
                "client_secret": secret,
            },
        )
        return RefreshResponse.from_json(response.json())

    async def get_access_token_from_code(
        self,
        code: str,
        redirect_uri: str,
        client_secret: Optional[str] = None,
        client_id: Optional[str] = None,
    ) -> AuthCodeResponse:
        """Exchange an authorization code for access + refresh tokens"""
        _require(code, "code")
        secret = _require(client_secret or self.settings.client_secret, "client secret")
        _require(redirect_uri, "redirectUri")
        internal_client_id = _require(client_id or self.settings.client_id, "clientId")

        LOGGER.info("🔐 Exchanging OAuth code...")
        response = await self.http.request(
            "POST",
            f"{self.settings.oauth_base_url}/oauth2/token",
            data={
                "grant_type": "authorization_code",
                "code": code,
                "client_id": internal_client_id,
                "client_secret": secret,
                "redirect_uri": redirect_uri,
            },
        )
        return AuthCodeResponse.from_json(response.json())

    async def validate_access_token(
        self, access_token: Optional[str] = None
    ) -> Optional[ValidateAccessTokenResponse]:
        """
        Validate a token (the configured one by default)

        Returns:
            ValidateAccessTokenResponse, or None if Twitch says the token is invalid (401)
        """
        token = _require(access_token or self.settings.access_token, "access token")
        response = await self.http.request(
            "GET",
            f"{self.settings.oauth_base_url}/oauth2/validate",
            headers={"Authorization": f"OAuth {token}"},
            allow_status=(401,),
        )
        if response.status == 401:
            LOGGER.warning("⚠️ Token invalid or expired (401)")
            return None
        validation = ValidateAccessTokenResponse.from_json(response.json())
        LOGGER.debug(f"Token valid: {validation.login or 'app token'} (expires in {validation.expires_in}s)")
        return validation

    async def get_app_access_token(self) -> str:
        """Client credentials grant (App Token, public endpoints only)"""
        secret = _require(self.settings.client_secret, "client secret")
        internal_client_id = _require(self.settings.client_id, "clientId")

        response = await self.http.request(
            "POST",
            f"{self.settings.oauth_base_url}/oauth2/token",
            data={
                "grant_type": "client_credentials",
                "client_id": internal_client_id,
                "client_secret": secret,
            },
        )
        LOGGER.info("✅ App token obtained")
        return response.json()["access_token"]

    # ------------------------------------------------------------------
    # Token store
    # ------------------------------------------------------------------

    def _read_token_file(self) -> dict:
        if not self.token_file.exists():
            return {}
        with open(self.token_file, 'r') as f:
            return json.load(f)

    async def load_token_from_file(self, user_id: str) -> Optional[TokenInfo]:
        """
        Load a token from the token file, then validate it
        (an expired token is refreshed on the way)

        Returns:
            TokenInfo or None if user_id is not in the file
        """
        data = self._read_token_file()
        if user_id not in data:
            LOGGER.error(f"❌ User ID {user_id} not found in {self.token_file}")
            return None

        token_data = data[user_id]
        token_info = TokenInfo(
            user_login=token_data.get("login", ""),
            user_id=user_id,
            access_token=token_data["token"],
            refresh_token=token_data["refresh"],
            expires_at=datetime.now(),
        )
        await self._validate_and_update(token_info)
        self.tokens[token_info.user_login] = token_info

        LOGGER.info(f"✅ Token loaded for {token_info.user_login} (ID: {user_id})")
        return token_info

    async def _validate_and_update(self, token_info: TokenInfo) -> None:
        """Fill login/scopes/expiry from /validate, refreshing once on 401"""
        validation = await self.validate_access_token(token_info.access_token)
        if validation is None:
            LOGGER.warning(f"⚠️ Token for {token_info.user_id} expired, refreshing...")
            await self._refresh(token_info)
            validation = await self.validate_access_token(token_info.access_token)
            if validation is None:
                raise AuthError(401, f"Token for {token_info.user_id} is invalid even after refresh")

        token_info.user_login = validation.login or token_info.user_login
        token_info.user_id = validation.user_id or token_info.user_id
        token_info.scopes = scopes_from_strings(validation.scopes)
        token_info.expires_at = datetime.now() + timedelta(seconds=validation.expires_in)

    async def _save_token_to_file(self, token_info: TokenInfo) -> None:
        data = self._read_token_file()
        data[token_info.user_id] = {
            "login": token_info.user_login,
            "token": token_info.access_token,
            "refresh": token_info.refresh_token,
        }
        with open(self.token_file, 'w') as f:
            json.dump(data, f, indent=2)
        LOGGER.info(f"✅ Token {token_info.user_login} saved to {self.token_file}")

    async def _refresh(self, token_info: TokenInfo) -> None:
        result = await self.refresh_auth_token(token_info.refresh_token)
        token_info.access_token = result.access_token
        token_info.refresh_token = result.refresh_token or token_info.refresh_token
        token_info.expires_at = datetime.now() + timedelta(seconds=result.expires_in)
        await self._save_token_to_file(token_info)
        LOGGER.info(f"✅ Token {token_info.user_login or token_info.user_id} refreshed (expires: {token_info.expires_at})")

    def add_token(self, token_info: TokenInfo) -> None:
        self.tokens[token_info.user_login] = token_info
        LOGGER.info(f"✅ Token {token_info.user_login} added")

    async def get_token(self, user_login: str) -> Optional[TokenInfo]:
        """
        Get a token, refreshing it first if expired

        Returns:
            TokenInfo or None if unknown
        """
        token_info = self.tokens.get(user_login)
        if token_info is None:
            LOGGER.warning(f"❌ Token {user_login} not found")
            return None

        if datetime.now() >= token_info.expires_at:
            LOGGER.info(f"🔄 Token {user_login} expired, refresh...")
            await self._refresh(token_info)

        return token_info

    def has_scope(self, user_login: str, scope: AuthScope) -> bool:
        token_info = self.tokens.get(user_login)
        return token_info is not None and scope in token_info.scopes

    def get_all_users(self) -> list[str]:
        return list(self.tokens.keys())

    def get_stats(self) -> dict[str, int]:
        now = datetime.now()
        valid_count = sum(1 for t in self.tokens.values() if now < t.expires_at)
        return {
            "total_tokens": len(self.tokens),
            "valid_tokens": valid_count,
            "expired_tokens": len(self.tokens) - valid_count,
        }
