"""
Prometheus Metrics for the Price Engine
=======================================

Counters and histograms for price mutations, resolutions, change
notifications and view tracking. Exposed on ``/metrics``.

Usage:
    from price_engine.api.metrics import record_mutation

    with MUTATION_DURATION.labels(operation="set_default_price").time():
        ...
    record_mutation("set_default_price", "success")
"""

from prometheus_client import Counter, Histogram

# =============================================================================
# Metric Definitions
# =============================================================================

MUTATIONS_TOTAL = Counter(
    "price_engine_mutations_total",
    "Total price mutations",
    ["operation", "status"],  # status: success, rejected, failed, timeout
)

MUTATION_DURATION = Histogram(
    "price_engine_mutation_seconds",
    "Price mutation transaction duration in seconds",
    ["operation"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, float("inf")],
)

RESOLUTIONS_TOTAL = Counter(
    "price_engine_resolutions_total",
    "Total price resolutions",
    ["price_type"],  # price_type: default, private, not_available
)

NOTIFICATIONS_TOTAL = Counter(
    "price_engine_notifications_total",
    "Total change notifications by outcome",
    ["outcome"],  # outcome: published, failed, skipped
)

PRICE_VIEWS_TOTAL = Counter(
    "price_engine_price_views_total",
    "Total price view records by outcome",
    ["outcome"],  # outcome: recorded, failed
)


# =============================================================================
# Helper Functions
# =============================================================================

def record_mutation(operation: str, status: str) -> None:
    """
    Record the outcome of a price mutation.

    Args:
        operation: Mutator operation name
        status: Outcome (success, rejected, failed, timeout)
    """
    MUTATIONS_TOTAL.labels(operation=operation, status=status).inc()


def record_resolution(price_type: str) -> None:
    RESOLUTIONS_TOTAL.labels(price_type=price_type).inc()


def record_notification(outcome: str) -> None:
    NOTIFICATIONS_TOTAL.labels(outcome=outcome).inc()


def record_price_view(outcome: str) -> None:
    PRICE_VIEWS_TOTAL.labels(outcome=outcome).inc()


# =============================================================================
# Metric Endpoint Setup
# =============================================================================

def get_metrics_app():
    """
    Get ASGI app for /metrics endpoint.

    Returns:
        ASGI application that serves Prometheus metrics
    """
    from prometheus_client import make_asgi_app
    return make_asgi_app()
