#!/usr/bin/env python3
"""
helixwatch - Twitch follower monitor + Helix/OAuth helpers

Commands:
    watch      Monitor followers of the configured channels
    channel    Print channel information
    subs       Print a broadcaster's subscriptions (or check one user)
    validate   Validate the configured access token
    refresh    Refresh the configured access token
    auth-url   Print the OAuth authorization code URL
    exchange   Exchange an OAuth code for tokens
"""

import argparse
import asyncio
import logging
import pathlib
import sys

from helixwatch.auth_manager import AuthManager, scopes_from_strings
from helixwatch.config import (
    DEFAULT_CONFIG_PATH,
    HelixSettings,
    MonitorSettings,
    get_log_level,
    load_config,
)
from helixwatch.errors import HelixError
from helixwatch.monitors import FollowerMonitor, lookup_by_id, lookup_by_login
from helixwatch.rate_limiter import HelixRateLimiter
from helixwatch.transports import HelixClient, HttpCallHandler

# Logger will be configured in setup_logging()
LOGGER = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(prog="helixwatch", description="Twitch follower monitor")
    parser.add_argument(
        '--config',
        type=str,
        default=DEFAULT_CONFIG_PATH,
        help=f'Path to config file (default: {DEFAULT_CONFIG_PATH})'
    )
    parser.add_argument(
        '--log-file',
        type=str,
        default='logs/helixwatch.log',
        help='Log file (default: logs/helixwatch.log)'
    )
    sub = parser.add_subparsers(dest='command', required=True)

    watch = sub.add_parser('watch', help='Monitor followers of the configured channels')
    watch.add_argument('--channel', action='append', help='Channel to monitor (repeatable, overrides config)')
    watch.add_argument('--interval', type=float, help='Poll interval in seconds')
    watch.add_argument('--by-login', action='store_true', help='Channels are logins, not broadcaster ids')

    channel = sub.add_parser('channel', help='Print channel information')
    channel.add_argument('broadcaster_ids', nargs='+')

    subs = sub.add_parser('subs', help='Print subscriptions of a broadcaster')
    subs.add_argument('broadcaster_id')
    subs.add_argument('--user', help='Only check this user id')
    subs.add_argument('--first', type=int, default=20)

    sub.add_parser('validate', help='Validate the configured access token')
    sub.add_parser('refresh', help='Refresh the configured access token')

    auth_url = sub.add_parser('auth-url', help='Print the OAuth authorization code URL')
    auth_url.add_argument('--redirect-uri', default='http://localhost:3000')
    auth_url.add_argument('--scope', action='append', default=[], help='Scope, e.g. moderator:read:followers')
    auth_url.add_argument('--force-verify', action='store_true')
    auth_url.add_argument('--state')

    exchange = sub.add_parser('exchange', help='Exchange an OAuth code for tokens')
    exchange.add_argument('code')
    exchange.add_argument('--redirect-uri', default='http://localhost:3000')

    return parser.parse_args(argv)


def setup_logging(log_file: str, level: int = logging.INFO):
    log_path = pathlib.Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-8s %(name)s %(message)s",
        handlers=[
            logging.FileHandler(log_path),
            logging.StreamHandler()
        ],
        force=True  # Override any existing config
    )


def _log_added(channel_id, records):
    for record in records:
        LOGGER.info(f"💜 [{channel_id}] New follower: {record.user_name} ({record.user_id})")


def _log_removed(channel_id, records):
    for record in records:
        LOGGER.info(f"👋 [{channel_id}] Unfollowed: {record.user_name} ({record.user_id})")


def _log_error(channel_id, error):
    LOGGER.error(f"❌ [{channel_id}] Poll failed: {error}")


async def run_watch(args, config, helix: HelixClient):
    monitor_settings = MonitorSettings.from_config(config)
    channels = args.channel or monitor_settings.channels
    if not channels:
        LOGGER.error("❌ No channel to monitor (monitor.channels or --channel)")
        return 1

    by_login = args.by_login or monitor_settings.lookup == "login"
    monitor = FollowerMonitor(
        lookup=lookup_by_login(helix) if by_login else lookup_by_id(helix),
        on_followers_added=_log_added,
        on_followers_removed=_log_removed,
        on_poll_error=_log_error,
        track_departures=monitor_settings.track_departures,
        report_initial_followers=monitor_settings.report_initial_followers,
    )

    interval = args.interval if args.interval is not None else monitor_settings.interval
    for channel in channels:
        await monitor.start(channel, interval, monitor_settings.page_size)

    try:
        while True:
            await asyncio.sleep(3600)
    finally:
        await monitor.stop_all()


async def run(args) -> int:
    config = load_config(args.config)
    setup_logging(args.log_file, get_log_level(config))

    settings = HelixSettings.from_config(config)
    http = HttpCallHandler(timeout=settings.helix_timeout)
    auth = AuthManager(http, settings)
    helix = HelixClient(http, settings, HelixRateLimiter(settings.points_per_minute))

    try:
        if args.command == 'auth-url':
            print(auth.get_authorization_code_url(
                args.redirect_uri,
                scopes_from_strings(args.scope),
                force_verify=args.force_verify,
                state=args.state,
            ))
            return 0

        if args.command == 'exchange':
            tokens = await auth.get_access_token_from_code(args.code, args.redirect_uri)
            print(f"access_token: {tokens.access_token}")
            print(f"refresh_token: {tokens.refresh_token}")
            print(f"expires_in: {tokens.expires_in}")
            print(f"scopes: {' '.join(tokens.scopes)}")
            return 0

        if args.command == 'refresh':
            tokens = await auth.refresh_auth_token(settings.refresh_token)
            print(f"access_token: {tokens.access_token}")
            print(f"refresh_token: {tokens.refresh_token}")
            return 0

        if args.command == 'validate':
            validation = await auth.validate_access_token()
            if validation is None:
                print("❌ Token invalid or expired")
                return 1
            print(f"✅ {validation.login or 'app token'} (client {validation.client_id})")
            print(f"   Expires in {validation.expires_in}s")
            for scope in sorted(validation.scopes):
                print(f"   ✓ {scope}")
            return 0

        if not settings.access_token:
            LOGGER.info("🔑 No access token configured, using an App Token")
            helix.set_access_token(await auth.get_app_access_token())

        if args.command == 'channel':
            for info in await helix.get_channel_information(args.broadcaster_ids):
                print(f"{info.broadcaster_name} ({info.broadcaster_id}) [{info.broadcaster_language}]")
                print(f"   {info.title} - {info.game_name}")
            return 0

        if args.command == 'subs':
            if args.user:
                subscription = await helix.check_user_subscription(args.broadcaster_id, args.user)
                print(f"{args.user}: {subscription.tier if subscription else 'not subscribed'}")
                return 0
            page = await helix.get_broadcaster_subscriptions(args.broadcaster_id, first=args.first)
            print(f"Total: {page.total} ({page.points} points)")
            for subscription in page.subscriptions:
                gift = f" (gift from {subscription.gifter_name})" if subscription.is_gift else ""
                print(f"   {subscription.user_name} tier {subscription.tier}{gift}")
            return 0

        if args.command == 'watch':
            return await run_watch(args, config, helix)

        return 2
    finally:
        await http.close()


def main(argv=None) -> int:
    args = parse_args(argv)
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        LOGGER.info("🛑 Interrupted")
        return 0
    except HelixError as e:
        LOGGER.error(f"❌ {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
