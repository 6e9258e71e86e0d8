"""HTTP routers."""

from __future__ import annotations

from fastapi import APIRouter

from nexus.api import auth, content, entities, ops, users
from nexus.domain.entities.models import ROUTE_KINDS


def build_api_router() -> APIRouter:
	router = APIRouter()
	router.include_router(auth.router)
	router.include_router(users.router)
	for segment, kind in ROUTE_KINDS.items():
		router.include_router(entities.build_router(segment, kind))
	router.include_router(content.router)
	router.include_router(ops.router)
	return router


__all__ = ["build_api_router"]
