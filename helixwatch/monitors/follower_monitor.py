#!/usr/bin/env python3
"""
👥 Follower Monitor - Polling-based follower change detection

Polls the channel followers endpoint every N seconds, pages through the whole
list and diffs it against the previous snapshot (identity = user id).
Reports new followers and, optionally, departed ones through callbacks.

The first successful poll only establishes the baseline: no startup burst of
"new follower" events unless report_initial_followers is set.
"""
import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from helixwatch.errors import InvalidArgument, RateLimited, UpstreamError
from helixwatch.models import FollowerRecord, PollResult

# Type checking import
from typing import TYPE_CHECKING
if TYPE_CHECKING:
    from helixwatch.transports.helix_client import HelixClient

LOGGER = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100

# (channel_ref, page_size, cursor) -> (records on page, next cursor or None)
FollowerLookup = Callable[
    [str, int, Optional[str]], Awaitable[Tuple[List[FollowerRecord], Optional[str]]]
]
FollowersCallback = Callable[[str, List[FollowerRecord]], Any]
ErrorCallback = Callable[[str, Exception], Any]


def lookup_by_id(helix: 'HelixClient') -> FollowerLookup:
    """Channels are referenced by broadcaster id"""
    return helix.fetch_followers


def lookup_by_login(helix: 'HelixClient') -> FollowerLookup:
    """Channels are referenced by login; the id is resolved once and cached"""
    resolved: Dict[str, str] = {}

    async def fetch(login: str, page_size: int, cursor: Optional[str]):
        key = login.lower()
        if key not in resolved:
            user_id = await helix.get_user_id(key)
            if user_id is None:
                raise UpstreamError(404, f"No Twitch user with login {login!r}")
            LOGGER.debug(f"Resolved {login} -> {user_id}")
            resolved[key] = user_id
        return await helix.fetch_followers(resolved[key], page_size, cursor)

    return fetch


@dataclass
class MonitorState:
    """State of one monitored channel, owned by its poll cycle"""
    channel_id: str
    poll_interval: float
    page_size: int
    followers: Optional[Dict[str, FollowerRecord]] = None  # None until the baseline poll
    last_poll: Optional[datetime] = None
    consecutive_failures: int = 0
    last_error: Optional[Exception] = None
    retry_after: float = 0.0
    active: bool = True
    task: Optional[asyncio.Task] = field(default=None, repr=False)
    cycle: Optional[asyncio.Future] = field(default=None, repr=False)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    @property
    def has_baseline(self) -> bool:
        return self.followers is not None


class FollowerMonitor:
    """
    Monitors follower changes via Helix polling.

    One asyncio task per channel. A channel's polls never overlap: a tick that
    finds a poll in flight is skipped, manual poll_once() calls queue up.
    """

    def __init__(
        self,
        lookup: FollowerLookup,
        on_followers_added: Optional[FollowersCallback] = None,
        on_followers_removed: Optional[FollowersCallback] = None,
        on_poll_error: Optional[ErrorCallback] = None,
        track_departures: bool = True,
        report_initial_followers: bool = False,
    ):
        """
        Args:
            lookup: Page fetcher, see lookup_by_id() / lookup_by_login()
            on_followers_added: callback(channel_id, records), sync or async
            on_followers_removed: callback(channel_id, records), only with track_departures
            on_poll_error: callback(channel_id, error), sync or async
            track_departures: Report followers that disappeared
            report_initial_followers: Report the whole baseline as additions on the first poll
        """
        self.lookup = lookup
        self.on_followers_added = on_followers_added
        self.on_followers_removed = on_followers_removed
        self.on_poll_error = on_poll_error
        self.track_departures = track_departures
        self.report_initial_followers = report_initial_followers

        self._states: Dict[str, MonitorState] = {}

        LOGGER.info(
            f"👥 FollowerMonitor initialized (departures={'on' if track_departures else 'off'}, "
            f"initial={'report' if report_initial_followers else 'baseline'})"
        )

    @property
    def channels(self) -> List[str]:
        return list(self._states.keys())

    async def start(self, channel_id: str, poll_interval: float, page_size: int = MAX_PAGE_SIZE):
        """
        Start polling a channel. Starting it again replaces the previous schedule.

        Raises:
            InvalidArgument: blank channel, poll_interval <= 0, page_size outside 1..100
        """
        if not channel_id or not str(channel_id).strip():
            raise InvalidArgument("channel_id must be set")
        if poll_interval is None or poll_interval <= 0:
            raise InvalidArgument(f"poll_interval must be > 0, got {poll_interval}")
        if page_size < 1 or page_size > MAX_PAGE_SIZE:
            raise InvalidArgument(f"page_size must be between 1 and {MAX_PAGE_SIZE}, got {page_size}")

        state = MonitorState(channel_id=channel_id, poll_interval=poll_interval, page_size=page_size)

        previous = self._states.get(channel_id)
        if previous is not None:
            LOGGER.info(f"🔁 {channel_id}: restarting monitor (interval {previous.poll_interval}s -> {poll_interval}s)")
            await self._cancel(previous)
            # Keep the snapshot so a restart does not re-baseline
            state.followers = previous.followers
            state.last_poll = previous.last_poll

        self._states[channel_id] = state
        state.task = asyncio.create_task(self._monitoring_loop(state))
        LOGGER.info(f"✅ Monitoring followers of {channel_id} (interval={poll_interval}s, page_size={page_size})")

    async def stop(self, channel_id: str):
        """Stop polling a channel and drop its state (no-op if not monitored)"""
        state = self._states.pop(channel_id, None)
        if state is None:
            return

        LOGGER.info(f"🛑 Stopping follower monitor for {channel_id}...")
        await self._cancel(state)
        LOGGER.info(f"✅ Follower monitor for {channel_id} stopped")

    async def stop_all(self):
        for channel_id in list(self._states):
            await self.stop(channel_id)

    async def _cancel(self, state: MonitorState):
        state.active = False

        current = asyncio.current_task()
        pending = [
            t for t in (state.task, state.cycle)
            if t is not None and not t.done() and t is not current
        ]
        for task in pending:
            task.cancel()

        if current is not None and current in (state.task, state.cycle):
            # stop() called from a callback of this channel's own poll
            return

        for task in pending:
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def poll_once(self, channel_id: str) -> PollResult:
        """
        Run one full fetch-and-diff cycle now.

        Errors from the fetch are reported through on_poll_error and returned in
        PollResult.error, never raised.

        Raises:
            InvalidArgument: channel is not monitored
        """
        state = self._states.get(channel_id)
        if state is None:
            raise InvalidArgument(f"Channel {channel_id} is not monitored")

        async with state.lock:
            if not self._is_live(state):
                # stop() happened while we were queued
                return PollResult(channel_id, skipped=True)
            return await self._run_cycle(state)

    async def _monitoring_loop(self, state: MonitorState):
        """Main loop for one channel: poll, then sleep"""
        LOGGER.debug(f"🔄 Follower loop started for {state.channel_id} (interval={state.poll_interval}s)")

        try:
            while state.active:
                if state.lock.locked():
                    LOGGER.debug(f"⏭️ {state.channel_id}: poll already in flight, skipping tick")
                else:
                    try:
                        async with state.lock:
                            await self._run_cycle(state)
                    except asyncio.CancelledError:
                        raise
                    except Exception as e:
                        LOGGER.error(f"❌ Follower loop error for {state.channel_id}: {e}", exc_info=True)

                await asyncio.sleep(max(state.poll_interval, state.retry_after))
        except asyncio.CancelledError:
            LOGGER.debug(f"🛑 Follower loop cancelled for {state.channel_id}")

    async def _run_cycle(self, state: MonitorState) -> PollResult:
        """Run _poll_cycle as its own task so stop() can cancel an in-flight fetch"""
        cycle = asyncio.ensure_future(self._poll_cycle(state))
        state.cycle = cycle
        try:
            return await cycle
        except asyncio.CancelledError:
            if asyncio.current_task() is not state.task and cycle.cancelled() and not state.active:
                # Manual poll aborted by stop()
                return PollResult(state.channel_id, skipped=True)
            raise
        finally:
            if state.cycle is cycle:
                state.cycle = None

    def _is_live(self, state: MonitorState) -> bool:
        return state.active and self._states.get(state.channel_id) is state

    async def _fetch_snapshot(self, channel_id: str, page_size: int) -> Dict[str, FollowerRecord]:
        """Page through the whole follower list. Any page failure aborts the fetch."""
        snapshot: Dict[str, FollowerRecord] = {}
        seen_cursors = set()
        cursor: Optional[str] = None
        pages = 0

        while True:
            records, cursor = await self.lookup(channel_id, page_size, cursor)
            pages += 1
            for record in records:
                snapshot[record.user_id] = record  # last write wins
            if not cursor:
                break
            if cursor in seen_cursors:
                raise UpstreamError(None, f"Pagination cursor repeated after {pages} pages")
            seen_cursors.add(cursor)

        LOGGER.debug(f"📥 {channel_id}: {len(snapshot)} followers fetched in {pages} page(s)")
        return snapshot

    async def _poll_cycle(self, state: MonitorState) -> PollResult:
        channel_id = state.channel_id

        try:
            snapshot = await self._fetch_snapshot(channel_id, state.page_size)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if not self._is_live(state):
                return PollResult(channel_id, skipped=True)
            state.consecutive_failures += 1
            state.last_error = e
            state.retry_after = e.retry_after if isinstance(e, RateLimited) else 0.0
            LOGGER.warning(
                f"⚠️ {channel_id}: poll failed ({type(e).__name__}: {e}), "
                f"{state.consecutive_failures} consecutive failure(s)"
            )
            await self._emit_error(state, e)
            return PollResult(channel_id, error=e)

        if not self._is_live(state):
            return PollResult(channel_id, skipped=True)

        previous = state.followers
        state.followers = snapshot
        state.last_poll = datetime.now(timezone.utc)
        state.consecutive_failures = 0
        state.last_error = None
        state.retry_after = 0.0

        if previous is None:
            LOGGER.info(f"📊 {channel_id}: baseline = {len(snapshot)} followers")
            added = list(snapshot.values()) if self.report_initial_followers else []
            if added:
                await self._emit(state, self.on_followers_added, added)
            return PollResult(channel_id, added=added, baseline=True)

        added = [record for user_id, record in snapshot.items() if user_id not in previous]
        removed = []
        if self.track_departures:
            removed = [record for user_id, record in previous.items() if user_id not in snapshot]

        if added:
            LOGGER.info(f"💜 {channel_id}: {len(added)} new follower(s): {', '.join(r.user_name for r in added)}")
            await self._emit(state, self.on_followers_added, added)
        if removed:
            LOGGER.info(f"👋 {channel_id}: {len(removed)} follower(s) left: {', '.join(r.user_name for r in removed)}")
            await self._emit(state, self.on_followers_removed, removed)
        if not added and not removed:
            LOGGER.debug(f"🔄 [Refresh] {channel_id} - {len(snapshot)} followers, no change")

        return PollResult(channel_id, added=added, removed=removed)

    async def _emit(self, state: MonitorState, callback: Optional[Callable], payload: Any):
        if callback is None or not self._is_live(state):
            return
        await self._safe_call(callback, state.channel_id, payload)

    async def _emit_error(self, state: MonitorState, error: Exception):
        if self.on_poll_error is None:
            LOGGER.error(f"❌ Follower poll error for {state.channel_id}: {error}")
            return
        await self._emit(state, self.on_poll_error, error)

    async def _safe_call(self, callback: Callable, channel_id: str, payload: Any):
        """Callbacks may be sync or async; their failures never reach the loop"""
        try:
            result = callback(channel_id, payload)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            name = getattr(callback, "__name__", repr(callback))
            LOGGER.error(f"❌ Callback {name} failed for {channel_id}: {e}", exc_info=True)

    def get_state(self, channel_id: str) -> Optional[MonitorState]:
        return self._states.get(channel_id)

    def get_followers(self, channel_id: str) -> Optional[Dict[str, FollowerRecord]]:
        """Copy of the current snapshot (None if not monitored or no baseline yet)"""
        state = self._states.get(channel_id)
        if state is None or state.followers is None:
            return None
        return dict(state.followers)

    def get_all_states(self) -> Dict[str, MonitorState]:
        return self._states.copy()
