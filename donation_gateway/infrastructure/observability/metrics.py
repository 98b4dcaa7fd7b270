"""Prometheus metrics for gateway outcomes, notification delivery and abuse limiting"""

from prometheus_client import Counter, Histogram

# Gateway metrics
gateway_outcome_counter = Counter(
    "gateway_outcome_total",
    "Classified payment gateway responses",
    ["operation", "outcome"],  # operation: probe | payment | test_payment | capture_context
)

gateway_latency_histogram = Histogram(
    "gateway_latency_seconds",
    "Payment gateway response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 15.0],
)

# Notification metrics
notification_dispatch_counter = Counter(
    "notification_dispatch_total",
    "Donation notification dispatches",
    ["result"],  # sent | failed | skipped
)

mail_failure_counter = Counter(
    "mail_failures_total",
    "Messages the mail server did not accept",
    ["channel"],  # accounting | donor
)

# Abuse mitigation
rate_limited_counter = Counter(
    "rate_limited_total",
    "Requests rejected by the per-source rate limiter",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_gateway_outcome(operation: str, outcome: str) -> None:
    gateway_outcome_counter.labels(operation=operation, outcome=outcome).inc()
