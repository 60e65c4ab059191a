"""Prometheus metrics for monitoring the campus feed client."""

import logging
import time
from typing import Optional

from prometheus_client import Counter, Gauge, Histogram, start_http_server

logger = logging.getLogger(__name__)

# Define metrics
VOTES_CAST = Counter(
    "campus_feed_votes_cast_total",
    "Number of vote taps sent to the backend",
    ["kind"],
)

VOTE_OUTCOMES = Counter(
    "campus_feed_vote_outcomes_total",
    "Vote attempts by outcome (confirmed, reverted, superseded)",
    ["outcome"],
)

FETCH_OPERATIONS = Counter(
    "campus_feed_fetch_operations_total",
    "Number of fetch operations performed",
    ["kind"],
)

API_ERRORS = Counter(
    "campus_feed_api_errors_total",
    "Number of backend errors encountered",
    ["error_type"],
)

TRACKED_SUBJECTS = Gauge(
    "campus_feed_tracked_subjects",
    "Number of posts and comments with a vote controller in the session",
)

REQUEST_DURATION = Histogram(
    "campus_feed_request_duration_seconds",
    "Duration of backend requests in seconds",
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0],
)


class PrometheusExporter:
    """Prometheus metrics exporter for the campus feed client."""

    def __init__(self, port: int = 8000):
        """
        Initialize the Prometheus exporter.

        Args:
            port: Port to expose metrics on
        """
        self.port = port
        self.server_started = False

    def start_server(self) -> None:
        """Start the Prometheus metrics server."""
        if not self.server_started:
            try:
                start_http_server(self.port)
                self.server_started = True
                logger.info(f"Started Prometheus metrics server on port {self.port}")
            except OSError as e:
                logger.error(f"Failed to start Prometheus metrics server: {str(e)}")

    def record_vote_cast(self, kind: str) -> None:
        VOTES_CAST.labels(kind=kind).inc()

    def record_vote_outcome(self, outcome: str) -> None:
        VOTE_OUTCOMES.labels(outcome=outcome).inc()

    def record_fetch_operation(self, kind: str) -> None:
        FETCH_OPERATIONS.labels(kind=kind).inc()

    def record_api_error(self, error_type: str) -> None:
        """
        Record a backend error.

        Args:
            error_type: Type of error (e.g., '5xx', '429', '4xx', 'connection')
        """
        API_ERRORS.labels(error_type=error_type).inc()

    def set_tracked_subjects(self, count: int) -> None:
        TRACKED_SUBJECTS.set(count)

    def time_request(self) -> "RequestTimer":
        """
        Create a context manager for timing backend requests.

        Returns:
            RequestTimer context manager
        """
        return RequestTimer()


class RequestTimer:
    """Context manager for timing backend requests."""

    def __init__(self):
        self.start_time: Optional[float] = None

    def __enter__(self) -> "RequestTimer":
        self.start_time = time.time()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self.start_time is not None:
            duration = time.time() - self.start_time
            REQUEST_DURATION.observe(duration)
