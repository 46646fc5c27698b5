"""
Prometheus metrics for the ingestion pipeline and HTTP layer
"""

from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    "adoption_insights_requests_total",
    "Total requests",
    ["method", "endpoint", "status"]
)
REQUEST_DURATION = Histogram(
    "adoption_insights_request_duration_seconds",
    "Request duration",
    ["method", "endpoint"]
)

EVENTS_QUEUED = Counter(
    "adoption_insights_events_queued_total",
    "Events admitted into the batch queue"
)
EVENTS_INSERTED = Counter(
    "adoption_insights_events_inserted_total",
    "Events persisted by a successful batch insert"
)
EVENTS_RETRIED = Counter(
    "adoption_insights_events_retried_total",
    "Events re-queued after a failed batch insert"
)
EVENTS_DEAD_LETTERED = Counter(
    "adoption_insights_events_dead_lettered_total",
    "Events moved to the failed_events table after exhausting retries"
)
