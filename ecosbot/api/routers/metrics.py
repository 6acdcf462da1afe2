"""
Prometheus metrics endpoint

    GET /metrics    text exposition format, scraped by Prometheus

Metric definitions live in ``core/metrics.py``.
"""
import logging

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Monitoring"])


@router.get(
    "/metrics",
    summary="Prometheus metrics",
    response_class=Response,
    responses={
        200: {
            "description": "Metrics in Prometheus text format",
            "content": {
                "text/plain": {
                    "example": """# HELP ecosbot_questions_asked_total Questions answered by the course assistant
# TYPE ecosbot_questions_asked_total counter
ecosbot_questions_asked_total 42.0
# HELP ecosbot_ecos_sessions_completed_total ECOS exam sessions completed
# TYPE ecosbot_ecos_sessions_completed_total counter
ecosbot_ecos_sessions_completed_total{reason="expired"} 3.0
"""
                }
            }
        }
    }
)
async def get_metrics() -> Response:
    try:
        output = generate_latest()
        logger.debug("Exported Prometheus metrics", extra={"size_bytes": len(output)})
        return Response(content=output, media_type=CONTENT_TYPE_LATEST)
    except Exception as e:
        logger.error(f"Error exporting metrics: {e}", exc_info=True)
        return Response(content="# Error exporting metrics\n", media_type="text/plain", status_code=500)
