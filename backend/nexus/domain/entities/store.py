"""Typed access to resource, course and project documents."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence

from nexus.domain.common.errors import NotFound, ValidationFailed
from nexus.domain.entities.models import IMMUTABLE_FIELDS, Entity, EntityKind, milestone_progress, spec_for
from nexus.infra.documents import SERVER_TIMESTAMP, DocumentOps, Filter, Increment, get_all


class EntityStore:
	def __init__(self, store: DocumentOps) -> None:
		self._store = store

	def _ops(self, ops: Optional[DocumentOps]) -> DocumentOps:
		return ops if ops is not None else self._store

	async def create(
		self,
		kind: EntityKind,
		owner_id: str,
		fields: Mapping[str, Any],
		*,
		owner_name: str,
		access_code: str,
		entity_id: Optional[str] = None,
		ops: Optional[DocumentOps] = None,
	) -> str:
		spec = spec_for(kind)
		data: Dict[str, Any] = dict(spec.defaults)
		data.update({key: value for key, value in fields.items() if key in spec.fields})
		data.update(
			{
				"ownerId": owner_id,
				"ownerName": owner_name,
				"accessCode": access_code,
				"memberCount": 0,
				"createdAt": SERVER_TIMESTAMP,
				"updatedAt": SERVER_TIMESTAMP,
			}
		)
		if spec.kind is EntityKind.PROJECT:
			data.update(
				{
					"likes": 0,
					"views": 0,
					"collaborators": [],
					"progress": milestone_progress(data.get("milestones") or []),
				}
			)
		return await self._ops(ops).create(spec.collection, data, doc_id=entity_id)

	async def get(self, kind: EntityKind, entity_id: str, *, ops: Optional[DocumentOps] = None) -> Entity:
		spec = spec_for(kind)
		doc = await self._ops(ops).get(spec.collection, entity_id)
		if doc is None:
			raise NotFound(f"{spec.kind.value}_not_found")
		return Entity.from_doc(spec.kind, doc)

	async def get_many(self, kind: EntityKind, ids: Sequence[str], *, ops: Optional[DocumentOps] = None) -> List[Entity]:
		spec = spec_for(kind)
		docs = await get_all(self._ops(ops), spec.collection, ids)
		return [Entity.from_doc(spec.kind, doc) for doc in docs]

	async def update(
		self,
		kind: EntityKind,
		entity_id: str,
		patch: Mapping[str, Any],
		*,
		ops: Optional[DocumentOps] = None,
	) -> Entity:
		touched = sorted(IMMUTABLE_FIELDS.intersection(patch))
		if touched:
			raise ValidationFailed(f"immutable_field:{touched[0]}")
		return await self._write(kind, entity_id, patch, ops=ops)

	async def adjust_member_count(
		self,
		kind: EntityKind,
		entity_id: str,
		delta: int,
		*,
		extra: Optional[Mapping[str, Any]] = None,
		ops: Optional[DocumentOps] = None,
	) -> Entity:
		patch: Dict[str, Any] = dict(extra or {})
		patch["memberCount"] = Increment(delta)
		return await self._write(kind, entity_id, patch, ops=ops)

	async def set_member_count(
		self,
		kind: EntityKind,
		entity_id: str,
		value: int,
		*,
		ops: Optional[DocumentOps] = None,
	) -> Entity:
		return await self._write(kind, entity_id, {"memberCount": value}, ops=ops)

	async def _write(
		self,
		kind: EntityKind,
		entity_id: str,
		patch: Mapping[str, Any],
		*,
		ops: Optional[DocumentOps] = None,
	) -> Entity:
		spec = spec_for(kind)
		body = dict(patch)
		body["updatedAt"] = SERVER_TIMESTAMP
		try:
			doc = await self._ops(ops).update(spec.collection, entity_id, body)
		except NotFound as exc:
			raise NotFound(f"{spec.kind.value}_not_found") from exc
		return Entity.from_doc(spec.kind, doc)

	async def delete(self, kind: EntityKind, entity_id: str, *, ops: Optional[DocumentOps] = None) -> None:
		spec = spec_for(kind)
		await self._ops(ops).delete(spec.collection, entity_id)

	async def list(
		self,
		kind: EntityKind,
		filters: Sequence[Filter] = (),
		*,
		limit: Optional[int] = None,
		order_by: Optional[str] = "createdAt",
		descending: bool = True,
		ops: Optional[DocumentOps] = None,
	) -> List[Entity]:
		spec = spec_for(kind)
		docs = await self._ops(ops).query(
			spec.collection,
			filters,
			order_by=order_by,
			descending=descending,
			limit=limit,
		)
		return [Entity.from_doc(spec.kind, doc) for doc in docs]
