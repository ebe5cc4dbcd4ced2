from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

from intervia.metrics import metrics_registry
from intervia.metrics.exporters import PrometheusExporter

router = APIRouter(tags=["health"])


@router.get("/metrics", response_class=PlainTextResponse, summary="Prometheus metrics")
async def metrics() -> str:
    return PrometheusExporter(metrics_registry).build_payload()
