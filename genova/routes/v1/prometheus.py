"""
Prometheus metrics endpoint for monitoring infrastructure.

This is a PUBLIC endpoint (no authentication required) following
standard Prometheus practices. It exposes metrics collected from
the @measure_operation decorators and the domain counters.
"""

from fastapi import APIRouter, Response

from ...monitoring.prometheus_metrics import PrometheusMetrics

router = APIRouter(tags=["monitoring"])


@router.get("/metrics", include_in_schema=False)
def get_metrics() -> Response:
    return Response(
        content=PrometheusMetrics.get_metrics(),
        media_type=PrometheusMetrics.get_content_type(),
    )
