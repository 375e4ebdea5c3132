"""
Prometheus metrics for the polling and notification engine.

Defines and exposes metrics for:
- Poll cycles by status and their latency
- Sources polled by outcome (new content, nothing new, failed)
- Notification deliveries by outcome
- Subscriptions removed automatically (revoked auth, failing sources)

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import Counter, Gauge, Histogram, start_http_server

from src.config.settings import get_settings

logger = logging.getLogger(__name__)

# Poll cycles span many network calls; buckets are in seconds
CYCLE_BUCKETS = (0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0)


class MetricsCollector:
    """
    Prometheus metrics collector for youtube-notifier.

    Usage:
        metrics = get_metrics()
        metrics.start_server()
        metrics.record_source("failed")
    """

    def __init__(self):
        self.poll_cycles = Counter(
            "youtube_notifier_poll_cycles_total",
            "Total poll cycles run",
            ["status"],  # success, error
        )

        self.poll_cycle_latency = Histogram(
            "youtube_notifier_poll_cycle_seconds",
            "Wall time of one poll cycle",
            buckets=CYCLE_BUCKETS,
        )

        self.last_cycle_timestamp = Gauge(
            "youtube_notifier_last_poll_cycle_timestamp_seconds",
            "Unix time the last poll cycle finished",
        )

        self.sources_polled = Counter(
            "youtube_notifier_sources_polled_total",
            "Feed fetches by outcome",
            ["outcome"],  # new_content, no_content, failed
        )

        self.notifications = Counter(
            "youtube_notifier_notifications_total",
            "Notification deliveries by outcome",
            ["outcome"],  # delivered, failed, authorization_revoked
        )

        self.subscriptions_removed = Counter(
            "youtube_notifier_subscriptions_removed_total",
            "Subscriptions removed without a user command",
            ["reason"],  # authorization_revoked, source_failing
        )

    def start_server(self, port: int | None = None) -> None:
        """
        Start the Prometheus HTTP server.

        Args:
            port: Port to listen on (defaults to settings.metrics_port)
        """
        port = port or get_settings().metrics_port
        try:
            start_http_server(port)
            logger.info("Metrics server started on port %d", port)
        except OSError as e:
            logger.warning("Failed to start metrics server: %s", e)

    def record_cycle(self, success: bool, duration_seconds: float, finished_at: float) -> None:
        self.poll_cycles.labels(status="success" if success else "error").inc()
        self.poll_cycle_latency.observe(duration_seconds)
        self.last_cycle_timestamp.set(finished_at)

    def record_source(self, outcome: str) -> None:
        self.sources_polled.labels(outcome=outcome).inc()

    def record_delivery(self, outcome: str) -> None:
        self.notifications.labels(outcome=outcome).inc()

    def record_subscription_removed(self, reason: str, count: int = 1) -> None:
        if count > 0:
            self.subscriptions_removed.labels(reason=reason).inc(count)


# Global metrics instance (prometheus collectors register once per process)
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
