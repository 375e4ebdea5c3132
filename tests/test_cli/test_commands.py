"""Tests for the youtube-notifier CLI commands."""

from contextlib import contextmanager
from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner

from src.cli import main
from src.installations.schemas import ChatScope, InstallationLocation
from src.polling.schemas import PollCycleResult
from src.subscriptions.schemas import FeedSource, SubscribeResult

CHANNEL_A = "UCaaaaaaaaaaaaaaaaaaaaaa"


# ── Fixtures ──────────────────────────────────────────────


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def service() -> AsyncMock:
    """Mock NotifierService handed to every command."""
    return AsyncMock()


@contextmanager
def _patched(service: AsyncMock):
    db = AsyncMock()
    with patch("src.cli.Database", return_value=db), \
         patch("src.cli.NotifierService.create", return_value=service) as create:
        yield create
    service.close.assert_awaited()
    db.close.assert_awaited()


# ── subscriptions ─────────────────────────────────────────


class TestSubscribe:
    def test_subscribed(self, runner, service):
        service.subscribe.return_value = SubscribeResult.SUBSCRIBED

        with _patched(service):
            result = runner.invoke(main, ["subscribe", "group:g1", CHANNEL_A])

        assert result.exit_code == 0
        assert f"Subscribed to {CHANNEL_A}" in result.output
        service.subscribe.assert_awaited_once_with(ChatScope("group", "g1"), CHANNEL_A)

    def test_channel_scope(self, runner, service):
        service.subscribe.return_value = SubscribeResult.ALREADY_SUBSCRIBED

        with _patched(service):
            result = runner.invoke(main, ["subscribe", "channel:c1/ch1", CHANNEL_A])

        assert result.exit_code == 0
        assert "Already subscribed" in result.output
        scope = service.subscribe.await_args[0][0]
        assert scope == ChatScope("channel", "ch1", community_id="c1")

    def test_not_installed_exits_nonzero(self, runner, service):
        service.subscribe.return_value = SubscribeResult.NOT_INSTALLED

        with _patched(service):
            result = runner.invoke(main, ["subscribe", "group:g1", CHANNEL_A])

        assert result.exit_code == 1
        assert "not installed" in result.output

    def test_invalid_source(self, runner, service):
        service.subscribe.return_value = SubscribeResult.INVALID_SOURCE

        with _patched(service):
            result = runner.invoke(main, ["subscribe", "group:g1", "bogus"])

        assert result.exit_code == 1
        assert "not a valid YouTube channel id" in result.output

    def test_bad_scope_is_usage_error(self, runner, service):
        result = runner.invoke(main, ["subscribe", "community:c1", CHANNEL_A])

        assert result.exit_code == 2
        assert "Invalid scope kind" in result.output
        service.subscribe.assert_not_called()


class TestUnsubscribe:
    def test_unsubscribe(self, runner, service):
        service.unsubscribe.return_value = True

        with _patched(service):
            result = runner.invoke(main, ["unsubscribe", "direct:d1", CHANNEL_A])

        assert result.exit_code == 0
        assert f"Unsubscribed from {CHANNEL_A}" in result.output

    def test_unsubscribe_missing(self, runner, service):
        service.unsubscribe.return_value = False

        with _patched(service):
            result = runner.invoke(main, ["unsubscribe", "direct:d1", CHANNEL_A])

        assert result.exit_code == 0
        assert "Not subscribed" in result.output

    def test_unsubscribe_all(self, runner, service):
        service.unsubscribe_all.return_value = 3

        with _patched(service):
            result = runner.invoke(main, ["unsubscribe-all", "group:g1"])

        assert result.exit_code == 0
        assert "Removed 3 subscription(s)" in result.output


class TestList:
    def test_lists_sources(self, runner, service):
        service.list.return_value = [
            FeedSource(CHANNEL_A, name="Chip Talk"),
            FeedSource("UCbbbbbbbbbbbbbbbbbbbbbb"),
        ]

        with _patched(service):
            result = runner.invoke(main, ["list", "group:g1"])

        assert result.exit_code == 0
        assert f"{CHANNEL_A}  Chip Talk" in result.output
        assert "UCbbbbbbbbbbbbbbbbbbbbbb" in result.output

    def test_empty(self, runner, service):
        service.list.return_value = []

        with _patched(service):
            result = runner.invoke(main, ["list", "group:g1"])

        assert "No subscriptions." in result.output


class TestMostRecent:
    def test_found(self, runner, service):
        service.most_recent.return_value = "[Ep](https://www.youtube.com/watch?v=1)"

        with _patched(service):
            result = runner.invoke(main, ["most-recent", "group:g1", CHANNEL_A])

        assert "[Ep](https://www.youtube.com/watch?v=1)" in result.output

    def test_nothing(self, runner, service):
        service.most_recent.return_value = None

        with _patched(service):
            result = runner.invoke(main, ["most-recent", "group:g1", CHANNEL_A])

        assert "couldn't find any content" in result.output


# ── polling ───────────────────────────────────────────────


class TestPoll:
    def test_successful_cycle(self, runner, service):
        service.run_poll_cycle.return_value = PollCycleResult(
            sources_polled=4, notifications_sent=2,
        )

        with _patched(service):
            result = runner.invoke(main, ["poll"])

        assert result.exit_code == 0
        assert "Sources polled:         4" in result.output
        assert "Notifications sent:     2" in result.output

    def test_batch_size_option(self, runner, service):
        service.run_poll_cycle.return_value = PollCycleResult()

        with _patched(service) as create:
            runner.invoke(main, ["poll", "--batch-size", "5"])

        assert create.call_args.kwargs["polling_config"].batch_size == 5

    def test_failed_cycle_exits_nonzero(self, runner, service):
        service.run_poll_cycle.return_value = PollCycleResult(
            success=False, error="selection failed: db down",
        )

        with _patched(service):
            result = runner.invoke(main, ["poll"])

        assert result.exit_code == 1
        assert "selection failed: db down" in result.output


class TestRefresh:
    def test_refresh(self, runner, service):
        service.refresh.return_value = PollCycleResult(sources_polled=1)

        with _patched(service):
            result = runner.invoke(main, ["refresh", "group:g1"])

        assert result.exit_code == 0
        assert "Sources polled:         1" in result.output

    def test_refresh_not_installed(self, runner, service):
        service.refresh.return_value = None

        with _patched(service):
            result = runner.invoke(main, ["refresh", "group:g1"])

        assert result.exit_code == 1


# ── installations ─────────────────────────────────────────


class TestInstall:
    def test_install_with_default_permission(self, runner, service):
        with _patched(service):
            result = runner.invoke(
                main, ["install", "community:c1", "https://gateway.example.com"],
            )

        assert result.exit_code == 0
        location, installation = service.on_install.await_args[0]
        assert location == InstallationLocation("community", "c1")
        assert installation.api_gateway == "https://gateway.example.com"
        assert installation.can_send()

    def test_install_without_text(self, runner, service):
        with _patched(service):
            runner.invoke(
                main,
                ["install", "group:g1", "https://gw", "--permission", "Image"],
            )

        _, installation = service.on_install.await_args[0]
        assert not installation.can_send()

    def test_uninstall(self, runner, service):
        service.on_uninstall.return_value = 4

        with _patched(service):
            result = runner.invoke(main, ["uninstall", "group:g1"])

        assert result.exit_code == 0
        assert "removed 4 subscription(s)" in result.output
        service.on_uninstall.assert_awaited_once_with(InstallationLocation("group", "g1"))

    def test_bad_location(self, runner, service):
        result = runner.invoke(main, ["uninstall", "channel:x"])

        assert result.exit_code == 2


class TestInitDb:
    def test_init_db(self, runner, service):
        with _patched(service):
            result = runner.invoke(main, ["init-db"])

        assert result.exit_code == 0
        assert "Database initialized successfully" in result.output
        service.initialize.assert_awaited_once()
