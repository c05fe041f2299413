"""Prometheus collectors for the refresh engine and stores."""

from prometheus_client import Counter, Gauge, Histogram  # pip install prometheus-client

REFRESH_TOTAL = Counter(
    "tracker_refresh_total",
    "Refresh attempts by data kind and outcome",
    ["kind", "outcome"],
)
FETCH_ERRORS = Counter(
    "tracker_fetch_errors_total",
    "Failed exchange fetches",
    ["kind", "error_type"],
)
REFRESH_LATENCY = Histogram(
    "tracker_refresh_latency_seconds",
    "Time spent fetching and parsing one document",
    ["kind"],
)
LAST_SUCCESS_TS = Gauge(
    "tracker_last_success_timestamp",
    "Unix timestamp of the last successful refresh",
    ["kind"],
)
CACHED_RECORDS = Gauge(
    "tracker_cached_records",
    "Records currently held per store",
    ["store"],
)
