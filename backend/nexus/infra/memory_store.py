"""In-process document store used in development and tests."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Sequence

import ulid

from nexus.domain.common.errors import NotFound
from nexus.infra.documents import (
	Filter,
	apply_patch,
	check_batch,
	run_query,
	snapshot,
)

Collections = Dict[str, Dict[str, Dict[str, Any]]]


class _MemoryOps:
	"""Document operations over a dict of collections.

	Stored documents are never mutated in place; every write swaps in a new dict,
	which lets transactions work on a shallow copy of the collections.
	"""

	def __init__(self, collections: Collections) -> None:
		self._collections = collections

	def _docs(self, collection: str) -> Dict[str, Dict[str, Any]]:
		return self._collections.setdefault(collection, {})

	async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
		data = self._docs(collection).get(doc_id)
		return snapshot(doc_id, data) if data is not None else None

	async def get_many(self, collection: str, ids: Sequence[str]) -> List[Dict[str, Any]]:
		check_batch(ids)
		docs = self._docs(collection)
		return [snapshot(doc_id, docs[doc_id]) for doc_id in ids if doc_id in docs]

	async def query(
		self,
		collection: str,
		filters: Sequence[Filter] = (),
		*,
		order_by: Optional[str] = None,
		descending: bool = False,
		limit: Optional[int] = None,
	) -> List[Dict[str, Any]]:
		rows = list(self._docs(collection).items())
		return run_query(rows, filters, order_by=order_by, descending=descending, limit=limit)

	async def create(self, collection: str, data: Mapping[str, Any], *, doc_id: Optional[str] = None) -> str:
		doc_id = doc_id or str(ulid.new())
		self._docs(collection)[doc_id] = apply_patch(None, data)
		return doc_id

	async def create_if_absent(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> bool:
		docs = self._docs(collection)
		if doc_id in docs:
			return False
		docs[doc_id] = apply_patch(None, data)
		return True

	async def update(self, collection: str, doc_id: str, patch: Mapping[str, Any]) -> Dict[str, Any]:
		docs = self._docs(collection)
		current = docs.get(doc_id)
		if current is None:
			raise NotFound(f"{collection}_not_found")
		updated = apply_patch(current, patch)
		docs[doc_id] = updated
		return snapshot(doc_id, updated)

	async def delete(self, collection: str, doc_id: str) -> None:
		self._docs(collection).pop(doc_id, None)


class MemoryDocumentStore:
	"""Single-process store guarded by one asyncio lock."""

	def __init__(self) -> None:
		self._lock = asyncio.Lock()
		self._collections: Collections = {}

	def new_id(self) -> str:
		return str(ulid.new())

	def _ops(self) -> _MemoryOps:
		return _MemoryOps(self._collections)

	async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
		async with self._lock:
			return await self._ops().get(collection, doc_id)

	async def get_many(self, collection: str, ids: Sequence[str]) -> List[Dict[str, Any]]:
		async with self._lock:
			return await self._ops().get_many(collection, ids)

	async def query(
		self,
		collection: str,
		filters: Sequence[Filter] = (),
		*,
		order_by: Optional[str] = None,
		descending: bool = False,
		limit: Optional[int] = None,
	) -> List[Dict[str, Any]]:
		async with self._lock:
			return await self._ops().query(
				collection, filters, order_by=order_by, descending=descending, limit=limit
			)

	async def create(self, collection: str, data: Mapping[str, Any], *, doc_id: Optional[str] = None) -> str:
		async with self._lock:
			return await self._ops().create(collection, data, doc_id=doc_id or self.new_id())

	async def create_if_absent(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> bool:
		async with self._lock:
			return await self._ops().create_if_absent(collection, doc_id, data)

	async def update(self, collection: str, doc_id: str, patch: Mapping[str, Any]) -> Dict[str, Any]:
		async with self._lock:
			return await self._ops().update(collection, doc_id, patch)

	async def delete(self, collection: str, doc_id: str) -> None:
		async with self._lock:
			await self._ops().delete(collection, doc_id)

	@asynccontextmanager
	async def transaction(self) -> AsyncIterator[_MemoryOps]:
		"""Run writes against a copy and publish it only if the block succeeds."""
		async with self._lock:
			working: Collections = {name: dict(docs) for name, docs in self._collections.items()}
			yield _MemoryOps(working)
			self._collections = working

	async def ping(self) -> bool:
		return True

	async def close(self) -> None:
		return None

	async def reset(self) -> None:
		"""Test helper to drop every collection."""
		async with self._lock:
			self._collections = {}


__all__ = ["MemoryDocumentStore"]
