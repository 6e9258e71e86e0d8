"""Document store contract shared by the memory and Postgres adapters.

Documents are plain JSON-compatible dicts keyed by ``(collection, id)``. Reads
return a copy of the stored data with the document id merged in under ``"id"``.
Writes accept field transforms (``Increment``, ``ArrayUnion``, ``ArrayRemove``,
``SERVER_TIMESTAMP``) which are resolved against the current document inside
the adapter, so concurrent writers never lose an increment or a set member.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import (
	Any,
	AsyncContextManager,
	Dict,
	Iterable,
	List,
	Mapping,
	Optional,
	Protocol,
	Sequence,
	Tuple,
)

# Maximum number of ids accepted by a single batched read.
BATCH_LIMIT = 10

OPERATORS = ("==", "!=", "<", "<=", ">", ">=", "array_contains", "in")


@dataclass(frozen=True, slots=True)
class Increment:
	delta: int | float = 1


class ArrayUnion:
	__slots__ = ("values",)

	def __init__(self, *values: Any) -> None:
		self.values = values


class ArrayRemove:
	__slots__ = ("values",)

	def __init__(self, *values: Any) -> None:
		self.values = values


class _ServerTimestamp:
	__slots__ = ()

	def __repr__(self) -> str:
		return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


@dataclass(frozen=True, slots=True)
class Filter:
	field: str
	op: str
	value: Any


def where(field: str, op: str, value: Any) -> Filter:
	if op not in OPERATORS:
		raise ValueError(f"unsupported_operator:{op}")
	if op == "in" and not isinstance(value, (list, tuple, set)):
		raise ValueError("in_requires_sequence")
	return Filter(field=field, op=op, value=value)


def now_iso() -> str:
	return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def apply_patch(current: Optional[Mapping[str, Any]], patch: Mapping[str, Any]) -> Dict[str, Any]:
	"""Return a new document with ``patch`` applied on top of ``current``."""
	result: Dict[str, Any] = dict(current or {})
	for key, value in patch.items():
		if key == "id":
			continue
		if isinstance(value, Increment):
			base = result.get(key) or 0
			result[key] = base + value.delta
		elif isinstance(value, ArrayUnion):
			items = list(result.get(key) or [])
			for item in value.values:
				if item not in items:
					items.append(copy.deepcopy(item))
			result[key] = items
		elif isinstance(value, ArrayRemove):
			items = list(result.get(key) or [])
			result[key] = [item for item in items if item not in value.values]
		elif value is SERVER_TIMESTAMP:
			result[key] = now_iso()
		else:
			result[key] = copy.deepcopy(value)
	return result


def _compare(op: str, actual: Any, expected: Any) -> bool:
	if op == "==":
		return actual == expected
	if op == "!=":
		return actual != expected
	if op == "array_contains":
		return isinstance(actual, list) and expected in actual
	if op == "in":
		return actual in expected
	if actual is None:
		return False
	try:
		if op == "<":
			return actual < expected
		if op == "<=":
			return actual <= expected
		if op == ">":
			return actual > expected
		if op == ">=":
			return actual >= expected
	except TypeError:
		return False
	return False


def matches(data: Mapping[str, Any], filters: Sequence[Filter]) -> bool:
	return all(_compare(f.op, data.get(f.field), f.value) for f in filters)


def snapshot(doc_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
	result = copy.deepcopy(dict(data))
	result["id"] = doc_id
	return result


def run_query(
	rows: Iterable[Tuple[str, Mapping[str, Any]]],
	filters: Sequence[Filter] = (),
	*,
	order_by: Optional[str] = None,
	descending: bool = False,
	limit: Optional[int] = None,
) -> List[Dict[str, Any]]:
	selected = [snapshot(doc_id, data) for doc_id, data in rows if matches(data, filters)]
	if order_by:
		present = [doc for doc in selected if doc.get(order_by) is not None]
		missing = [doc for doc in selected if doc.get(order_by) is None]
		present.sort(key=lambda doc: doc[order_by], reverse=descending)
		selected = present + missing
	if limit is not None:
		selected = selected[: max(limit, 0)]
	return selected


class DocumentOps(Protocol):
	"""Read/write surface shared by stores and their transactions."""

	async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]: ...

	async def get_many(self, collection: str, ids: Sequence[str]) -> List[Dict[str, Any]]: ...

	async def query(
		self,
		collection: str,
		filters: Sequence[Filter] = (),
		*,
		order_by: Optional[str] = None,
		descending: bool = False,
		limit: Optional[int] = None,
	) -> List[Dict[str, Any]]: ...

	async def create(self, collection: str, data: Mapping[str, Any], *, doc_id: Optional[str] = None) -> str: ...

	async def create_if_absent(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> bool: ...

	async def update(self, collection: str, doc_id: str, patch: Mapping[str, Any]) -> Dict[str, Any]: ...

	async def delete(self, collection: str, doc_id: str) -> None: ...


class DocumentStore(DocumentOps, Protocol):
	def new_id(self) -> str: ...

	def transaction(self) -> AsyncContextManager[DocumentOps]: ...

	async def ping(self) -> bool: ...

	async def close(self) -> None: ...


def check_batch(ids: Sequence[str]) -> None:
	if len(ids) > BATCH_LIMIT:
		raise ValueError(f"batch_too_large:{len(ids)}>{BATCH_LIMIT}")


async def get_all(ops: DocumentOps, collection: str, ids: Sequence[str]) -> List[Dict[str, Any]]:
	"""Fetch any number of documents in batches of at most ``BATCH_LIMIT`` ids.

	Missing ids are skipped; the remaining documents keep the order of ``ids``.
	"""
	unique = list(dict.fromkeys(ids))
	found: Dict[str, Dict[str, Any]] = {}
	for start in range(0, len(unique), BATCH_LIMIT):
		batch = unique[start : start + BATCH_LIMIT]
		for doc in await ops.get_many(collection, batch):
			found[doc["id"]] = doc
	return [found[doc_id] for doc_id in unique if doc_id in found]


__all__ = [
	"ArrayRemove",
	"ArrayUnion",
	"BATCH_LIMIT",
	"DocumentOps",
	"DocumentStore",
	"Filter",
	"Increment",
	"SERVER_TIMESTAMP",
	"apply_patch",
	"check_batch",
	"get_all",
	"matches",
	"now_iso",
	"run_query",
	"snapshot",
	"where",
]
