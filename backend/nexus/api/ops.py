"""Operations endpoints providing health checks and metrics."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from nexus.api.deps import get_services
from nexus.obs import health
from nexus.services import Services

router = APIRouter(prefix="", tags=["ops"])


@router.get("/health/live")
async def live() -> dict:
	return await health.liveness()


@router.get("/health/ready")
async def ready(services: Services = Depends(get_services)) -> JSONResponse:
	status_code, payload = await health.readiness(services.store, services.redis)
	return JSONResponse(status_code=status_code, content=payload)


@router.get("/metrics")
async def metrics_endpoint() -> Response:
	return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
