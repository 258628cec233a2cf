"""
Prometheus metrics for the Genova sessions backend.

Service timings come from ``@BaseService.measure_operation``; the domain
counters cover check-ins, settlement outcomes and outbox delivery.
"""

from typing import Optional, cast

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Custom registry to avoid clashing with the default process collectors
REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "genova_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "genova_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "genova_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

check_ins_total = Counter(
    "genova_check_ins_total",
    "Check-in attempts by method and outcome",
    ["method", "outcome"],
    registry=REGISTRY,
)

settlements_total = Counter(
    "genova_settlements_total",
    "Settled payment holds by outcome",
    ["outcome"],  # paid | refunded | failed
    registry=REGISTRY,
)

outbox_events_total = Counter(
    "genova_outbox_events_total",
    "Outbox events by terminal status",
    ["status", "event_type"],
    registry=REGISTRY,
)

outbox_attempts_total = Counter(
    "genova_outbox_attempts_total",
    "Outbox delivery attempts",
    ["event_type"],
    registry=REGISTRY,
)


class PrometheusMetrics:
    """Manages Prometheus metrics collection and exposure."""

    @staticmethod
    def record_service_operation(
        service: str,
        operation: str,
        duration: float,
        status: str = "success",
        error_type: Optional[str] = None,
    ) -> None:
        """
        Record service operation metrics from @measure_operation decorator.

        Args:
            service: Service name (e.g., 'SessionService')
            operation: Operation name (e.g., 'create_session')
            duration: Operation duration in seconds
            status: 'success' or 'error'
            error_type: Exception class name if status is 'error'
        """
        service_operation_duration_seconds.labels(service=service, operation=operation).observe(
            duration
        )
        service_operations_total.labels(service=service, operation=operation, status=status).inc()
        if status == "error" and error_type:
            errors_total.labels(service=service, operation=operation, error_type=error_type).inc()

    @staticmethod
    def record_check_in(method: str, outcome: str) -> None:
        check_ins_total.labels(method=method, outcome=outcome).inc()

    @staticmethod
    def record_settlement(outcome: str) -> None:
        settlements_total.labels(outcome=outcome).inc()

    @staticmethod
    def record_outbox_attempt(event_type: str) -> None:
        outbox_attempts_total.labels(event_type=event_type).inc()

    @staticmethod
    def record_outbox_outcome(event_type: str, status: str) -> None:
        outbox_events_total.labels(status=status, event_type=event_type).inc()

    @staticmethod
    def get_metrics() -> bytes:
        """Metrics in Prometheus text exposition format."""
        return cast(bytes, generate_latest(REGISTRY))

    @staticmethod
    def get_content_type() -> str:
        return cast(str, CONTENT_TYPE_LATEST)


prometheus_metrics = PrometheusMetrics()
