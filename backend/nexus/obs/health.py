"""Health check helpers for liveness and readiness probes."""

from __future__ import annotations

import asyncio
import logging
from time import perf_counter
from typing import Any, Dict, Tuple

from redis.asyncio import Redis
from redis.exceptions import RedisError

from nexus.infra.documents import DocumentStore
from nexus.obs import metrics

LOGGER = logging.getLogger(__name__)


async def _redis_status(redis: Redis, timeout: float = 0.2) -> Dict[str, Any]:
	start = perf_counter()
	try:
		await asyncio.wait_for(redis.ping(), timeout=timeout)
	except (RedisError, OSError, asyncio.TimeoutError) as exc:
		metrics.mark_redis(False)
		LOGGER.warning("Redis readiness check failed", exc_info=True)
		return {"ok": False, "error": str(exc) or exc.__class__.__name__}
	latency = perf_counter() - start
	metrics.mark_redis(True, latency_seconds=latency)
	return {"ok": True, "latency_ms": round(latency * 1000, 2)}


async def _store_status(store: DocumentStore) -> Dict[str, Any]:
	start = perf_counter()
	ok = await store.ping()
	latency = perf_counter() - start
	metrics.mark_store(ok, latency_seconds=latency if ok else None)
	if not ok:
		return {"ok": False, "error": "ping_failed"}
	return {"ok": True, "latency_ms": round(latency * 1000, 2)}


async def liveness() -> Dict[str, Any]:
	return {"status": "ok"}


async def readiness(store: DocumentStore, redis: Redis) -> Tuple[int, Dict[str, Any]]:
	redis_state = await _redis_status(redis)
	store_state = await _store_status(store)
	ok = bool(redis_state.get("ok") and store_state.get("ok"))
	return (
		200 if ok else 503,
		{
			"status": "ok" if ok else "degraded",
			"checks": {"redis": redis_state, "documents": store_state},
		},
	)
