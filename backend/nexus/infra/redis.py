"""Redis connection management."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

import redis.asyncio as redis
from redis.exceptions import RedisError

from nexus.domain.common.errors import CollaboratorUnavailable
from nexus.settings import Settings

SESSION_STORE_UNAVAILABLE = "session_store_unavailable"


def create_redis(settings: Settings) -> redis.Redis:
	"""Build the shared client; tests hand a FakeRedis to ``create_app`` instead."""
	return redis.from_url(settings.redis_url, decode_responses=True)


@contextmanager
def redis_guard() -> Iterator[None]:
	"""Surface client failures inside the block as ``CollaboratorUnavailable``."""
	try:
		yield
	except RedisError as exc:
		raise CollaboratorUnavailable(SESSION_STORE_UNAVAILABLE) from exc


async def touch_limit(client: redis.Redis, key: str, ttl_seconds: int) -> int:
	"""Increment a fixed-window counter and return the new count."""
	with redis_guard():
		async with client.pipeline(transaction=True) as pipe:
			pipe.incr(key)
			pipe.expire(key, ttl_seconds)
			count, _ = await pipe.execute()
	return int(count)
