"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Slot bookings
booking_attempts = Counter(
    'booking_attempts_total',
    'Total slot booking attempts',
    ['status']  # success, conflict, error
)

availability_checks = Counter(
    'availability_checks_total',
    'Availability checks by outcome',
    ['result']  # available, unavailable
)

slots_offered = Histogram(
    'availability_slots_offered',
    'Open slots returned per slot listing',
    buckets=[0, 1, 5, 10, 25, 50, 100, 250, 500]
)

# Group bookings
group_booking_operations = Counter(
    'group_booking_operations_total',
    'Group booking orchestrator operations',
    ['operation', 'outcome']  # outcome: success or an error code
)

group_booking_latency = Histogram(
    'group_booking_operation_latency_seconds',
    'Group booking operation latency',
    ['operation'],
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

waitlist_promotions = Counter(
    'waitlist_promotions_total',
    'Waitlist entries converted into participants',
    ['trigger']  # leave, manual
)

waitlist_expirations = Counter(
    'waitlist_expirations_total',
    'Waitlist entries found past their TTL during promotion'
)

invitation_responses = Counter(
    'invitation_responses_total',
    'Invitation responses',
    ['decision']  # accepted, declined, expired
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set, hit/miss
)

# Outbound email
email_deliveries = Counter(
    'email_deliveries_total',
    'Outbound email attempts',
    ['result']  # sent, failed, skipped
)


def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


# Convenience functions for instrumentation
def record_booking_attempt(status: str):
    """Record booking attempt. Status: success, conflict, error"""
    booking_attempts.labels(status=status).inc()


def record_availability_check(available: bool):
    availability_checks.labels(result="available" if available else "unavailable").inc()


def record_slots_offered(count: int):
    slots_offered.observe(count)


def record_group_operation(operation: str, outcome: str, duration: float):
    group_booking_operations.labels(operation=operation, outcome=outcome).inc()
    group_booking_latency.labels(operation=operation).observe(duration)


def record_cache_operation(operation: str, hit: bool):
    """Record cache operation."""
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()


def record_email(result: str):
    email_deliveries.labels(result=result).inc()
