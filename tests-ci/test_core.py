"""
Tests for the ambient modules (rate_limiter, config, CLI wiring)
"""
import time
from unittest.mock import AsyncMock, patch

import pytest

from helixwatch.config import HelixSettings, MonitorSettings, get_log_level, load_config
from helixwatch.errors import ConfigError, InvalidArgument
from helixwatch.main import parse_args, run
from helixwatch.rate_limiter import HelixRateLimiter


@pytest.mark.unit
class TestRateLimiter:
    """Helix points bucket"""

    def test_first_call_allowed(self):
        limiter = HelixRateLimiter(points_per_minute=2)
        assert limiter.delay_for() == 0

    @pytest.mark.asyncio
    async def test_budget_exhausted_requires_wait(self):
        limiter = HelixRateLimiter(points_per_minute=2)
        await limiter.acquire()
        await limiter.acquire()

        delay = limiter.delay_for()
        assert 59 < delay <= 60
        assert limiter.get_stats()["used_in_window"] == 2

    def test_server_headers_block_until_reset(self):
        limiter = HelixRateLimiter(points_per_minute=800)
        limiter.update_from_headers({
            "Ratelimit-Remaining": "0",
            "Ratelimit-Reset": str(time.time() + 5),
        })
        assert 4 < limiter.delay_for() <= 5

    def test_incomplete_headers_ignored(self):
        limiter = HelixRateLimiter()
        limiter.update_from_headers({"Ratelimit-Remaining": "0"})
        assert limiter.delay_for() == 0

    def test_invalid_budget(self):
        with pytest.raises(ValueError):
            HelixRateLimiter(points_per_minute=0)


@pytest.mark.unit
class TestConfig:
    """config.yaml loading"""

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(str(tmp_path / "nope.yaml"))

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("twitch: [unclosed")
        with pytest.raises(ConfigError):
            load_config(str(path))

    def test_full_config(self, tmp_path, monkeypatch):
        for var in ("TWITCH_CLIENT_ID", "TWITCH_CLIENT_SECRET", "TWITCH_ACCESS_TOKEN", "TWITCH_REFRESH_TOKEN"):
            monkeypatch.delenv(var, raising=False)
        path = tmp_path / "config.yaml"
        path.write_text(
            "twitch:\n"
            "  client_id: abc\n"
            "  client_secret: shh\n"
            "timeouts:\n"
            "  helix_request: 3\n"
            "monitor:\n"
            "  channels: [44456636, el_serda]\n"
            "  lookup: login\n"
            "  interval: 30\n"
            "  track_departures: false\n"
            "logging:\n"
            "  level: debug\n"
        )
        config = load_config(str(path))

        settings = HelixSettings.from_config(config)
        assert settings.client_id == "abc"
        assert settings.helix_timeout == 3.0
        assert settings.points_per_minute == 800

        monitor = MonitorSettings.from_config(config)
        assert monitor.channels == ["44456636", "el_serda"]
        assert monitor.lookup == "login"
        assert monitor.interval == 30.0
        assert monitor.page_size == 100
        assert monitor.track_departures is False
        assert monitor.report_initial_followers is False

        assert get_log_level(config) == 10

    def test_env_overrides_secrets(self, monkeypatch):
        monkeypatch.setenv("TWITCH_CLIENT_SECRET", "from_env")
        settings = HelixSettings.from_config({"twitch": {"client_id": "abc", "client_secret": "from_file"}})
        assert settings.client_secret == "from_env"

    def test_bad_lookup(self):
        with pytest.raises(ConfigError):
            MonitorSettings.from_config({"monitor": {"lookup": "nickname"}})

    def test_empty_config(self):
        assert MonitorSettings.from_config({}).channels == []
        assert get_log_level({}) == 20


@pytest.mark.integration
class TestCli:
    """helixwatch.main wiring (HTTP mocked)"""

    @pytest.fixture(autouse=True)
    def no_logging_setup(self):
        with patch("helixwatch.main.setup_logging"):
            yield

    @pytest.mark.asyncio
    async def test_auth_url(self, tmp_path, capsys):
        path = tmp_path / "config.yaml"
        path.write_text("twitch:\n  client_id: abc\n")
        args = parse_args([
            "--config", str(path), "--log-file", str(tmp_path / "logs" / "test.log"),
            "auth-url", "--scope", "moderator:read:followers",
        ])

        assert await run(args) == 0
        assert "client_id=abc" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_watch_without_channels(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("twitch:\n  client_id: abc\n  access_token: tok\n")
        args = parse_args(["--config", str(path), "--log-file", str(tmp_path / "test.log"), "watch"])

        assert await run(args) == 1

    @pytest.mark.asyncio
    async def test_validate_invalid_token(self, tmp_path, respond):
        path = tmp_path / "config.yaml"
        path.write_text("twitch:\n  client_id: abc\n  access_token: tok\n")
        args = parse_args(["--config", str(path), "--log-file", str(tmp_path / "test.log"), "validate"])

        send = AsyncMock(return_value=respond({"status": 401, "message": "invalid access token"}, status=401))
        with patch("helixwatch.transports.http.HttpCallHandler._send", send):
            assert await run(args) == 1

    @pytest.mark.asyncio
    async def test_watch_zero_interval_rejected(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("twitch:\n  client_id: abc\n  access_token: tok\nmonitor:\n  interval: 60\n")
        args = parse_args([
            "--config", str(path), "--log-file", str(tmp_path / "test.log"),
            "watch", "--channel", "44456636", "--interval", "0",
        ])

        with pytest.raises(InvalidArgument):
            await run(args)
