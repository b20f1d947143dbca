"""
Prometheus metrics for the geotarget engine.

Service timings come from the @measure_operation decorator; the domain
counters track how often location resolution and targeting had to fall back.
"""

from typing import cast

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

# Create a custom registry to avoid conflicts with default metrics
REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "geotarget_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 10.0),
)

service_operations_total = Counter(
    "geotarget_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "geotarget_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

location_resolutions_total = Counter(
    "geotarget_location_resolutions_total",
    "Slug resolutions by outcome method",
    ["method"],  # city_cache | city_remote | region | country | default | none
    registry=REGISTRY,
)

bootstrap_outcomes_total = Counter(
    "geotarget_bootstrap_outcomes_total",
    "Geolocation bootstrap terminal outcomes",
    ["state", "reason"],
    registry=REGISTRY,
)

search_fallbacks_total = Counter(
    "geotarget_search_fallbacks_total",
    "Business searches that broadened beyond the requested location",
    ["requested_type", "applied_type"],
    registry=REGISTRY,
)


circuit_breaker_state = Gauge(
    "geotarget_circuit_breaker_state",
    "Circuit breaker state (0 closed, 1 half-open, 2 open)",
    ["circuit"],
    registry=REGISTRY,
)

_CIRCUIT_STATE_VALUES = {"closed": 0, "half_open": 1, "open": 2}


class PrometheusMetrics:
    """Manages Prometheus metrics collection and exposure."""

    @staticmethod
    def record_service_operation(
        service: str,
        operation: str,
        duration: float,
        status: str = "success",
        error_type: str | None = None,
    ) -> None:
        """
        Record service operation metrics from @measure_operation decorator.

        Args:
            service: Service name (e.g., 'LocationResolver')
            operation: Operation/method name (e.g., 'resolve')
            duration: Operation duration in seconds
            status: Operation status ('success' or 'error')
            error_type: Type of error if status is 'error'
        """
        service_operation_duration_seconds.labels(service=service, operation=operation).observe(
            duration
        )
        service_operations_total.labels(service=service, operation=operation, status=status).inc()
        if status == "error" and error_type:
            errors_total.labels(service=service, operation=operation, error_type=error_type).inc()

    @staticmethod
    def inc_location_resolution(method: str) -> None:
        location_resolutions_total.labels(method=method).inc()

    @staticmethod
    def inc_bootstrap_outcome(state: str, reason: str) -> None:
        bootstrap_outcomes_total.labels(state=state, reason=reason).inc()

    @staticmethod
    def inc_search_fallback(requested_type: str, applied_type: str) -> None:
        search_fallbacks_total.labels(
            requested_type=requested_type, applied_type=applied_type
        ).inc()

    @staticmethod
    def set_circuit_state(circuit: str, state: str) -> None:
        circuit_breaker_state.labels(circuit=circuit).set(_CIRCUIT_STATE_VALUES[state])

    @staticmethod
    def get_metrics() -> bytes:
        """Generate Prometheus metrics in exposition format."""
        return cast(bytes, generate_latest(REGISTRY))


# Singleton instance
prometheus_metrics = PrometheusMetrics()
