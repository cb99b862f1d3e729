from fastapi import APIRouter
from fastapi.responses import JSONResponse

from lendflow.core.health import health_payload, live_payload
from lendflow.core.limiter import limiter
from lendflow.core.response_envelope import envelope

router = APIRouter(tags=["health"])


@router.get("/health/live", summary="Process liveness check")
@limiter.exempt
async def health_live() -> dict:
    return await live_payload()


@router.get("/health", summary="Liveness plus database connectivity")
@limiter.exempt
async def read_health():
    payload = await health_payload()
    if not payload["ready"]:
        body = {**envelope(payload, "Service unavailable"), "success": False}
        return JSONResponse(status_code=503, content=body)
    return envelope(payload, "Service is healthy")
