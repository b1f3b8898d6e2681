"""Prometheus metrics for the radio relay."""

import logging
from typing import Callable, Dict, Optional

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    generate_latest,
)

logger = logging.getLogger(__name__)

REQUEST_OUTCOMES = ("started", "unknown_station", "no_address", "spawn_failed")
ADDRESS_SOURCES = ("regional", "national", "cached")
EXIT_OUTCOMES = ("stopped", "crashed")


class RelayMetrics:
    """Prometheus metrics for relay requests and transcoder processes.

    Each instance owns its own registry so several apps (or tests) can live in
    one process.
    """

    content_type = CONTENT_TYPE_LATEST

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """Initialize Prometheus metrics.

        Args:
            registry: Collector registry (a new one if not provided)
        """
        self.registry = registry or CollectorRegistry()

        # Counters
        self.relay_requests_total = Counter(
            "radio_relay_requests_total",
            "Stream requests by outcome",
            ["outcome"],
            registry=self.registry,
        )

        self.address_resolutions_total = Counter(
            "radio_relay_address_resolutions_total",
            "Media addresses used, by lookup that produced them",
            ["source"],
            registry=self.registry,
        )

        self.transcoder_exits_total = Counter(
            "radio_relay_transcoder_exits_total",
            "Transcoder process exits by outcome",
            ["outcome"],
            registry=self.registry,
        )

        self.bytes_relayed_total = Counter(
            "radio_relay_bytes_relayed_total",
            "Audio bytes sent to listeners",
            registry=self.registry,
        )

        # Gauges
        self.active_sessions = Gauge(
            "radio_relay_active_sessions",
            "Listener connections currently streaming",
            registry=self.registry,
        )

        logger.info("Prometheus metrics initialized")

    def bind_active_sessions(self, count: Callable[[], int]) -> None:
        """Read the active session gauge from a callable at scrape time.

        Args:
            count: Returns the current number of sessions
        """
        self.active_sessions.set_function(count)

    def record_request(self, outcome: str) -> None:
        """Count a stream request.

        Args:
            outcome: One of ``REQUEST_OUTCOMES``
        """
        self.relay_requests_total.labels(outcome=outcome).inc()
        logger.debug(f"Relay request recorded: {outcome}")

    def record_address(self, source: str) -> None:
        """Count the source of a media address.

        Args:
            source: One of ``ADDRESS_SOURCES``
        """
        self.address_resolutions_total.labels(source=source).inc()

    def record_transcoder_exit(self, state: str) -> None:
        """Count a transcoder exit.

        Args:
            state: Final process state ("stopped" or "crashed")
        """
        outcome = "crashed" if state == "crashed" else "stopped"
        self.transcoder_exits_total.labels(outcome=outcome).inc()

    def record_bytes(self, count: int) -> None:
        """Add relayed bytes."""
        self.bytes_relayed_total.inc(count)

    def get_metrics(self) -> bytes:
        """Generate Prometheus metrics output.

        Returns:
            Prometheus metrics in text format
        """
        return generate_latest(self.registry)

    def get_metrics_summary(self) -> Dict:
        """Get current metric values as a dictionary.

        Returns:
            Dictionary with current metric values
        """
        return {
            "requests": {
                outcome: self._sample("radio_relay_requests_total", outcome=outcome)
                for outcome in REQUEST_OUTCOMES
            },
            "addresses": {
                source: self._sample("radio_relay_address_resolutions_total", source=source)
                for source in ADDRESS_SOURCES
            },
            "transcoder_exits": {
                outcome: self._sample("radio_relay_transcoder_exits_total", outcome=outcome)
                for outcome in EXIT_OUTCOMES
            },
            "bytes_relayed": self._sample("radio_relay_bytes_relayed_total"),
            "active_sessions": self._sample("radio_relay_active_sessions"),
        }

    def _sample(self, name: str, **labels: str) -> float:
        value = self.registry.get_sample_value(name, labels or None)
        return value or 0.0
