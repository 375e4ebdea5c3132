"""
Command-line interface for youtube-notifier.

Provides commands to run the poll loop, manage subscriptions and
installations, initialize the database, and run diagnostic checks.

Scopes are written ``group:<id>``, ``direct:<id>`` or
``channel:<community_id>/<channel_id>``; installation locations are
``community:<id>``, ``group:<id>`` or ``direct:<id>``.

Usage:
    youtube-notifier init-db                      # Initialize database
    youtube-notifier worker                       # Poll on an interval
    youtube-notifier poll                         # Run one poll cycle
    youtube-notifier subscribe group:abc UC...    # Subscribe a scope
    youtube-notifier health                       # Check service health
"""

import asyncio
import os
import signal
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import click

from src.config.settings import get_settings
from src.installations.schemas import (
    TEXT_PERMISSION,
    ChatScope,
    Installation,
    InstallationLocation,
    Permissions,
    ScopeParseError,
)
from src.observability.logging import setup_logging
from src.observability.metrics import get_metrics
from src.polling.config import PollingConfig
from src.polling.schemas import PollCycleResult
from src.services.notifier_service import NotifierService
from src.storage.database import Database
from src.subscriptions.schemas import SubscribeResult

SUBSCRIBE_MESSAGES = {
    SubscribeResult.SUBSCRIBED: "Subscribed to {source_id}",
    SubscribeResult.ALREADY_SUBSCRIBED: "Already subscribed to {source_id}",
    SubscribeResult.NOT_INSTALLED: "The bot is not installed here or may not send messages",
    SubscribeResult.SOURCE_UNRESOLVABLE: "Could not find a YouTube channel with id {source_id}",
    SubscribeResult.INVALID_SOURCE: "{source_id!r} is not a valid YouTube channel id",
}


def _parse_scope(ctx: click.Context, param: click.Parameter, value: str) -> ChatScope:
    try:
        return ChatScope.parse(value)
    except ScopeParseError as e:
        raise click.BadParameter(str(e)) from e


def _parse_location(
    ctx: click.Context, param: click.Parameter, value: str
) -> InstallationLocation:
    try:
        return InstallationLocation.parse(value)
    except ScopeParseError as e:
        raise click.BadParameter(str(e)) from e


@asynccontextmanager
async def _notifier(batch_size: int | None = None) -> AsyncIterator[NotifierService]:
    """Connect to the database and build a notifier for one command."""
    db = Database()
    await db.connect()
    polling_config = PollingConfig(batch_size=batch_size) if batch_size else None
    service = NotifierService.create(db, polling_config=polling_config)
    try:
        yield service
    finally:
        await service.close()
        await db.close()


def _echo_cycle(result: PollCycleResult) -> None:
    color = "green" if result.success else "red"
    click.echo(click.style(f"\nPoll cycle {'succeeded' if result.success else 'failed'}", fg=color))
    click.echo("-" * 40)
    click.echo(f"  Sources polled:         {result.sources_polled}")
    click.echo(f"  Sources failed:         {result.sources_failed}")
    click.echo(f"  Sources with content:   {result.sources_with_content}")
    click.echo(f"  Sources dropped:        {result.sources_dropped}")
    click.echo(f"  Notifications sent:     {result.notifications_sent}")
    click.echo(f"  Notifications failed:   {result.notifications_failed}")
    click.echo(f"  Subscriptions revoked:  {result.subscriptions_revoked}")
    click.echo(f"  Duration:               {result.duration_seconds:.2f}s")
    if result.error:
        click.echo(click.style(f"  Error: {result.error}", fg="red"))


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """YouTube Notifier - Post new channel uploads to subscribed chats."""
    if debug:
        os.environ["LOG_LEVEL"] = "DEBUG"
        get_settings.cache_clear()

    setup_logging()

    # Initialize tracing if enabled
    settings = get_settings()
    if settings.tracing_enabled:
        from src.observability.tracing import setup_tracing

        setup_tracing(
            service_name=settings.otel_service_name,
            otlp_endpoint=settings.otel_exporter_otlp_endpoint,
        )


@main.command("init-db")
def init_db() -> None:
    """Initialize the database schema."""

    async def run():
        async with _notifier() as service:
            await service.initialize()
        click.echo("Database initialized successfully")

    asyncio.run(run())


@main.command()
@click.option("--batch-size", default=None, type=click.IntRange(1, 500),
              help="Sources to poll (defaults to POLLING_BATCH_SIZE)")
def poll(batch_size: int | None) -> None:
    """Run a single poll cycle and exit."""

    async def run() -> bool:
        async with _notifier(batch_size) as service:
            result = await service.run_poll_cycle()
        _echo_cycle(result)
        return result.success

    sys.exit(0 if asyncio.run(run()) else 1)


@main.command()
@click.option("--interval", default=None, type=float,
              help="Seconds between cycles (defaults to POLLING_INTERVAL_SECONDS)")
@click.option("--metrics/--no-metrics", default=True, help="Enable metrics server")
@click.option("--metrics-port", default=None, type=int, help="Metrics server port")
def worker(interval: float | None, metrics: bool, metrics_port: int | None) -> None:
    """Run the poll loop until interrupted."""
    from src.services.poll_service import PollService

    async def run():
        async with _notifier() as notifier:
            service = PollService(notifier, interval_seconds=interval)

            if metrics:
                get_metrics().start_server(port=metrics_port)

            # Handle shutdown signals
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, lambda: asyncio.create_task(service.stop()))

            await service.start()

    asyncio.run(run())


@main.command()
@click.argument("scope", callback=_parse_scope)
@click.argument("channel_id")
def subscribe(scope: ChatScope, channel_id: str) -> None:
    """Subscribe SCOPE to the YouTube channel CHANNEL_ID."""

    async def run() -> SubscribeResult:
        async with _notifier() as service:
            return await service.subscribe(scope, channel_id)

    result = asyncio.run(run())
    click.echo(SUBSCRIBE_MESSAGES[result].format(source_id=channel_id))
    if not result.ok:
        sys.exit(1)


@main.command()
@click.argument("scope", callback=_parse_scope)
@click.argument("channel_id")
def unsubscribe(scope: ChatScope, channel_id: str) -> None:
    """Unsubscribe SCOPE from CHANNEL_ID."""

    async def run() -> bool:
        async with _notifier() as service:
            return await service.unsubscribe(scope, channel_id)

    if asyncio.run(run()):
        click.echo(f"Unsubscribed from {channel_id}")
    else:
        click.echo(f"Not subscribed to {channel_id}")


@main.command("unsubscribe-all")
@click.argument("scope", callback=_parse_scope)
def unsubscribe_all(scope: ChatScope) -> None:
    """Remove every subscription of SCOPE."""

    async def run() -> int:
        async with _notifier() as service:
            return await service.unsubscribe_all(scope)

    click.echo(f"Removed {asyncio.run(run())} subscription(s)")


@main.command("list")
@click.argument("scope", callback=_parse_scope)
def list_subscriptions(scope: ChatScope) -> None:
    """List the channels SCOPE is subscribed to."""

    async def run():
        async with _notifier() as service:
            return await service.list(scope)

    sources = asyncio.run(run())
    if not sources:
        click.echo("No subscriptions.")
        return

    click.echo(f"\nSubscriptions for {scope}")
    click.echo("=" * 40)
    for source in sources:
        if source.name:
            click.echo(f"  {source.source_id}  {source.name}")
        else:
            click.echo(f"  {source.source_id}")


@main.command("most-recent")
@click.argument("scope", callback=_parse_scope)
@click.argument("channel_id")
def most_recent(scope: ChatScope, channel_id: str) -> None:
    """Show the newest upload of CHANNEL_ID."""

    async def run() -> str | None:
        async with _notifier() as service:
            return await service.most_recent(scope, channel_id)

    message = asyncio.run(run())
    click.echo(message or "I couldn't find any content for this channel")


@main.command()
@click.argument("scope", callback=_parse_scope)
def refresh(scope: ChatScope) -> None:
    """Check every channel SCOPE follows for new uploads now."""

    async def run() -> PollCycleResult | None:
        async with _notifier() as service:
            return await service.refresh(scope)

    result = asyncio.run(run())
    if result is None:
        click.echo("The bot is not installed here or may not send messages")
        sys.exit(1)
    _echo_cycle(result)


@main.command()
@click.argument("location", callback=_parse_location)
@click.argument("api_gateway")
@click.option("--permission", "permissions", multiple=True, default=[TEXT_PERMISSION],
              show_default=True, help="Autonomous message permission (can repeat)")
def install(location: InstallationLocation, api_gateway: str, permissions: tuple[str, ...]) -> None:
    """Record an installation at LOCATION reachable through API_GATEWAY."""
    granted = Permissions(message=frozenset(permissions))
    installation = Installation(
        location=location,
        api_gateway=api_gateway,
        autonomous_permissions=granted,
        command_permissions=granted,
    )

    async def run():
        async with _notifier() as service:
            await service.on_install(location, installation)

    asyncio.run(run())
    click.echo(f"Installed at {location}")


@main.command()
@click.argument("location", callback=_parse_location)
def uninstall(location: InstallationLocation) -> None:
    """Remove the installation at LOCATION and all its subscriptions."""

    async def run() -> int:
        async with _notifier() as service:
            return await service.on_uninstall(location)

    removed = asyncio.run(run())
    click.echo(f"Uninstalled from {location}, removed {removed} subscription(s)")


@main.command()
@click.option("--probe-channel", default="UCBR8-60-B28hp2BmDPdntcQ",
              show_default=True, help="Channel whose feed is fetched as a probe")
def health(probe_channel: str) -> None:
    """Check health of all dependencies."""
    import structlog
    logger = structlog.get_logger()

    async def check():
        results: dict[str, bool] = {}

        # Check PostgreSQL
        try:
            db = Database()
            await db.connect()
            results["postgres"] = await db.health_check()
            await db.close()
        except Exception as e:
            results["postgres"] = False
            logger.error("Postgres health check failed", error=str(e))

        # Check the feed endpoint
        from src.feeds.youtube_adapter import YouTubeFeedAdapter
        results["youtube_feeds"] = await YouTubeFeedAdapter().health_check(probe_channel)

        # Print results
        click.echo("\nHealth Check Results:")
        click.echo("-" * 40)

        all_healthy = True
        for name, status in results.items():
            icon = "✓" if status else "✗"
            color = "green" if status else "red"
            click.echo(click.style(f"  {icon} {name}: {status}", fg=color))
            if not status:
                all_healthy = False

        click.echo("-" * 40)

        if all_healthy:
            click.echo(click.style("All core services healthy!", fg="green"))
            sys.exit(0)
        else:
            click.echo(click.style("Some services unhealthy!", fg="red"))
            sys.exit(1)

    asyncio.run(check())


if __name__ == "__main__":
    main()
