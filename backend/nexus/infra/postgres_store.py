"""asyncpg-backed document store.

One row per document in ``documents(collection, id, data jsonb)``. Updates lock
the row with ``SELECT ... FOR UPDATE`` and apply the same patch logic as the
memory adapter, so increments and set operations stay atomic per document and
``transaction()`` couples writes across documents.
"""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Sequence

import asyncpg
import ulid

from nexus.domain.common.errors import CollaboratorUnavailable, NotFound
from nexus.infra.documents import (
	Filter,
	apply_patch,
	check_batch,
	run_query,
	snapshot,
)
from nexus.settings import Settings

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS documents (
	collection TEXT NOT NULL,
	id TEXT NOT NULL,
	data JSONB NOT NULL DEFAULT '{}'::jsonb,
	PRIMARY KEY (collection, id)
);
CREATE INDEX IF NOT EXISTS documents_data_gin ON documents USING GIN (data jsonb_path_ops);
"""

_DRIVER_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)


async def _init_connection(conn: asyncpg.Connection) -> None:
	await conn.set_type_codec("jsonb", encoder=json.dumps, decoder=json.loads, schema="pg_catalog")


def _containment(filters: Sequence[Filter]) -> Optional[Dict[str, Any]]:
	"""Translate equality-style filters into a ``@>`` containment document.

	Range and ``in`` filters are evaluated after the fetch by ``run_query``.
	"""
	doc_filter: Dict[str, Any] = {}
	for f in filters:
		if f.field in doc_filter:
			continue
		if f.op == "==" and f.value is not None:
			doc_filter[f.field] = f.value
		elif f.op == "array_contains":
			doc_filter[f.field] = [f.value]
	return doc_filter or None


class _PostgresOps:
	def __init__(self, conn: asyncpg.Connection, *, lock_reads: bool = False) -> None:
		self._conn = conn
		# Inside a transaction single-document reads take the row lock.
		self._read_suffix = " FOR UPDATE" if lock_reads else ""

	async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
		data = await self._conn.fetchval(
			"SELECT data FROM documents WHERE collection = $1 AND id = $2" + self._read_suffix,
			collection,
			doc_id,
		)
		return snapshot(doc_id, data) if data is not None else None

	async def get_many(self, collection: str, ids: Sequence[str]) -> List[Dict[str, Any]]:
		check_batch(ids)
		rows = await self._conn.fetch(
			"SELECT id, data FROM documents WHERE collection = $1 AND id = ANY($2::text[])",
			collection,
			list(ids),
		)
		by_id = {row["id"]: row["data"] for row in rows}
		return [snapshot(doc_id, by_id[doc_id]) for doc_id in ids if doc_id in by_id]

	async def query(
		self,
		collection: str,
		filters: Sequence[Filter] = (),
		*,
		order_by: Optional[str] = None,
		descending: bool = False,
		limit: Optional[int] = None,
	) -> List[Dict[str, Any]]:
		doc_filter = _containment(filters)
		if doc_filter is None:
			rows = await self._conn.fetch(
				"SELECT id, data FROM documents WHERE collection = $1",
				collection,
			)
		else:
			rows = await self._conn.fetch(
				"SELECT id, data FROM documents WHERE collection = $1 AND data @> $2::jsonb",
				collection,
				doc_filter,
			)
		pairs = [(row["id"], row["data"]) for row in rows]
		return run_query(pairs, filters, order_by=order_by, descending=descending, limit=limit)

	async def create(self, collection: str, data: Mapping[str, Any], *, doc_id: Optional[str] = None) -> str:
		doc_id = doc_id or str(ulid.new())
		await self._conn.execute(
			"""
			INSERT INTO documents (collection, id, data)
			VALUES ($1, $2, $3::jsonb)
			ON CONFLICT (collection, id) DO UPDATE SET data = EXCLUDED.data
			""",
			collection,
			doc_id,
			apply_patch(None, data),
		)
		return doc_id

	async def create_if_absent(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> bool:
		inserted = await self._conn.fetchval(
			"""
			INSERT INTO documents (collection, id, data)
			VALUES ($1, $2, $3::jsonb)
			ON CONFLICT (collection, id) DO NOTHING
			RETURNING id
			""",
			collection,
			doc_id,
			apply_patch(None, data),
		)
		return inserted is not None

	async def update(self, collection: str, doc_id: str, patch: Mapping[str, Any]) -> Dict[str, Any]:
		current = await self._conn.fetchval(
			"SELECT data FROM documents WHERE collection = $1 AND id = $2 FOR UPDATE",
			collection,
			doc_id,
		)
		if current is None:
			raise NotFound(f"{collection}_not_found")
		updated = apply_patch(current, patch)
		await self._conn.execute(
			"UPDATE documents SET data = $3::jsonb WHERE collection = $1 AND id = $2",
			collection,
			doc_id,
			updated,
		)
		return snapshot(doc_id, updated)

	async def delete(self, collection: str, doc_id: str) -> None:
		await self._conn.execute(
			"DELETE FROM documents WHERE collection = $1 AND id = $2",
			collection,
			doc_id,
		)


class PostgresDocumentStore:
	def __init__(self, pool: asyncpg.Pool) -> None:
		self._pool = pool

	@classmethod
	async def connect(cls, settings: Settings) -> "PostgresDocumentStore":
		# Force 127.0.0.1 instead of localhost to avoid IPv6 resolution issues
		dsn = settings.postgres_url.replace("localhost", "127.0.0.1")
		try:
			pool = await asyncpg.create_pool(
				dsn=dsn,
				min_size=settings.postgres_min_pool_size,
				max_size=settings.postgres_max_pool_size,
				init=_init_connection,
			)
			async with pool.acquire() as conn:
				await conn.execute(SCHEMA_SQL)
		except _DRIVER_ERRORS as exc:
			logger.warning("document store bootstrap failed", exc_info=True)
			raise CollaboratorUnavailable() from exc
		return cls(pool)

	def new_id(self) -> str:
		return str(ulid.new())

	@asynccontextmanager
	async def _ops(self, *, transactional: bool = False) -> AsyncIterator[_PostgresOps]:
		try:
			async with self._pool.acquire() as conn:
				if transactional:
					async with conn.transaction():
						yield _PostgresOps(conn, lock_reads=True)
				else:
					yield _PostgresOps(conn)
		except _DRIVER_ERRORS as exc:
			logger.warning("document store call failed", exc_info=True)
			raise CollaboratorUnavailable() from exc

	async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
		async with self._ops() as ops:
			return await ops.get(collection, doc_id)

	async def get_many(self, collection: str, ids: Sequence[str]) -> List[Dict[str, Any]]:
		async with self._ops() as ops:
			return await ops.get_many(collection, ids)

	async def query(
		self,
		collection: str,
		filters: Sequence[Filter] = (),
		*,
		order_by: Optional[str] = None,
		descending: bool = False,
		limit: Optional[int] = None,
	) -> List[Dict[str, Any]]:
		async with self._ops() as ops:
			return await ops.query(collection, filters, order_by=order_by, descending=descending, limit=limit)

	async def create(self, collection: str, data: Mapping[str, Any], *, doc_id: Optional[str] = None) -> str:
		async with self._ops() as ops:
			return await ops.create(collection, data, doc_id=doc_id)

	async def create_if_absent(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> bool:
		async with self._ops() as ops:
			return await ops.create_if_absent(collection, doc_id, data)

	async def update(self, collection: str, doc_id: str, patch: Mapping[str, Any]) -> Dict[str, Any]:
		async with self._ops(transactional=True) as ops:
			return await ops.update(collection, doc_id, patch)

	async def delete(self, collection: str, doc_id: str) -> None:
		async with self._ops() as ops:
			await ops.delete(collection, doc_id)

	def transaction(self):
		return self._ops(transactional=True)

	async def ping(self) -> bool:
		try:
			async with self._pool.acquire() as conn:
				await asyncio.wait_for(conn.execute("SELECT 1"), timeout=0.3)
			return True
		except _DRIVER_ERRORS:
			logger.warning("document store readiness query failed", exc_info=True)
			return False

	async def close(self) -> None:
		await self._pool.close()


__all__ = ["PostgresDocumentStore", "SCHEMA_SQL"]
