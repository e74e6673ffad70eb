"""
Pytest configuration for CI tests
Provides common fixtures (settings, fake follower API, canned HTTP responses)
"""
import asyncio
import json
from datetime import datetime, timezone

import pytest

from helixwatch.config import HelixSettings
from helixwatch.models import FollowerRecord
from helixwatch.transports.http import HttpResponse


def make_follower(user_id, name=None):
    name = name or f"User{user_id}"
    return FollowerRecord(
        user_id=str(user_id),
        user_name=name,
        followed_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        user_login=name.lower(),
    )


class FakeFollowersApi:
    """
    In-memory followers endpoint: pages self.followers with an offset cursor.
    fail_on_page makes that page (1-based) raise self.error.
    """

    def __init__(self, followers=()):
        self.followers = list(followers)
        self.fail_on_page = None
        self.error = None
        self.delay = 0.0
        self.gate = None            # asyncio.Event the fetch waits on
        self.calls = []
        self.entered = asyncio.Event()
        self.cancelled = False
        self.active = 0
        self.max_active = 0

    async def fetch(self, channel_id, page_size, cursor):
        self.calls.append((channel_id, page_size, cursor))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        self.entered.set()
        try:
            if self.gate is not None:
                await self.gate.wait()
            if self.delay:
                await asyncio.sleep(self.delay)

            start = int(cursor) if cursor else 0
            page_number = start // page_size + 1
            if self.fail_on_page == page_number:
                raise self.error

            end = start + page_size
            next_cursor = str(end) if end < len(self.followers) else None
            return list(self.followers[start:end]), next_cursor
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        finally:
            self.active -= 1


class Recorder:
    """Collects monitor callbacks in call order"""

    def __init__(self):
        self.events = []

    def added(self, channel_id, records):
        self.events.append(("added", channel_id, [r.user_id for r in records]))

    def removed(self, channel_id, records):
        self.events.append(("removed", channel_id, [r.user_id for r in records]))

    def error(self, channel_id, error):
        self.events.append(("error", channel_id, error))

    def of_kind(self, kind):
        return [e for e in self.events if e[0] == kind]


def json_response(payload, status=200, headers=None):
    return HttpResponse(status=status, headers=headers or {}, text=json.dumps(payload))


@pytest.fixture
def follower():
    return make_follower


@pytest.fixture
def followers_api():
    return FakeFollowersApi()


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def respond():
    """Build an HttpResponse from a JSON payload"""
    return json_response


@pytest.fixture
def helix_settings():
    """Settings with mock credentials (no real API keys needed)"""
    return HelixSettings(
        client_id="test_client_id_mock",
        client_secret="test_client_secret_mock",
        access_token="test_access_token_mock",
        refresh_token="test_refresh_token_mock",
        helix_timeout=2.0,
    )
