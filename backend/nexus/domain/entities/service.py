"""Entity lifecycle service layer."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from nexus.domain.access.gate import Action, ensure
from nexus.domain.common.errors import Denied, NotFound, ValidationFailed
from nexus.domain.content.models import purge_parent
from nexus.domain.entities.codes import AccessCodes
from nexus.domain.entities.models import (
	MILESTONE_STATUSES,
	PROJECT_STATUSES,
	Entity,
	EntityKind,
	milestone_progress,
	spec_for,
)
from nexus.domain.entities.store import EntityStore
from nexus.domain.identity.models import USERS_COLLECTION, Principal
from nexus.domain.identity.resolver import IdentityResolver
from nexus.infra.documents import ArrayRemove, ArrayUnion, DocumentStore, Increment, where
from nexus.obs import metrics

logger = logging.getLogger(__name__)

LISTING_FILTERS = ("subject", "ownerId", "category", "status", "college", "branch")

_CREATE_ACTIONS = {
	EntityKind.RESOURCE: Action.CREATE_RESOURCE,
	EntityKind.COURSE: Action.CREATE_COURSE,
	EntityKind.PROJECT: Action.CREATE_PROJECT,
}

# Per-principal sets that reference an entity besides membership and ownership.
_MARKER_FIELDS = {
	EntityKind.RESOURCE: ("starredResources",),
	EntityKind.PROJECT: ("likedProjects",),
}


def _clean_fields(kind: EntityKind, fields: Mapping[str, Any]) -> Dict[str, Any]:
	spec = spec_for(kind)
	unknown = sorted(set(fields) - set(spec.fields))
	if unknown:
		raise ValidationFailed(f"unknown_field:{unknown[0]}")
	cleaned = dict(fields)
	for key in spec.required:
		if key in cleaned and not str(cleaned[key] or "").strip():
			raise ValidationFailed(f"{key}_required")
	if "status" in cleaned and cleaned["status"] not in PROJECT_STATUSES:
		raise ValidationFailed("status_invalid")
	if "tech" in cleaned:
		tech = cleaned["tech"]
		if isinstance(tech, str):
			tech = [part.strip() for part in tech.split(",")]
		cleaned["tech"] = [str(item).strip() for item in tech or [] if str(item).strip()]
	if "milestones" in cleaned:
		cleaned["milestones"] = [_clean_milestone(item) for item in cleaned["milestones"] or []]
	return cleaned


def _clean_milestone(item: Any) -> Dict[str, Any]:
	if not isinstance(item, Mapping):
		raise ValidationFailed("milestone_invalid")
	title = str(item.get("title") or "").strip()
	if not title:
		raise ValidationFailed("milestone_title_required")
	status = item.get("status") or "pending"
	if status not in MILESTONE_STATUSES:
		raise ValidationFailed("milestone_status_invalid")
	return {"title": title, "status": status, "date": str(item.get("date") or "")}


def _matches_text(entity: Entity, needle: str) -> bool:
	haystack = [
		str(entity.attrs.get("title") or ""),
		str(entity.attrs.get("description") or ""),
		*(str(item) for item in entity.attrs.get("tech") or []),
	]
	return any(needle in value.lower() for value in haystack)


class EntityService:
	def __init__(
		self,
		store: DocumentStore,
		entities: EntityStore,
		codes: AccessCodes,
		resolver: IdentityResolver,
	) -> None:
		self._store = store
		self._entities = entities
		self._codes = codes
		self._resolver = resolver

	async def create(self, actor_id: str, kind: EntityKind, fields: Mapping[str, Any]) -> Entity:
		spec = spec_for(kind)
		principal = await self._resolver.resolve(actor_id)
		ensure(principal, None, _CREATE_ACTIONS[spec.kind])
		cleaned = _clean_fields(spec.kind, fields)
		missing = [key for key in spec.required if not str(cleaned.get(key) or "").strip()]
		if missing:
			raise ValidationFailed(f"{missing[0]}_required")
		entity_id = self._store.new_id()
		async with self._store.transaction() as tx:
			code = await self._codes.claim(tx, spec.kind, entity_id)
			await self._entities.create(
				spec.kind,
				principal.id,
				cleaned,
				owner_name=principal.display_name,
				access_code=code,
				entity_id=entity_id,
				ops=tx,
			)
			await tx.update(USERS_COLLECTION, principal.id, {spec.owned_field: ArrayUnion(entity_id)})
		metrics.inc_entity_created(spec.kind.value)
		logger.info(
			"entity created",
			extra={"kind": spec.kind.value, "entity_id": entity_id, "owner_id": principal.id},
		)
		return await self._entities.get(spec.kind, entity_id)

	async def get(self, kind: EntityKind, entity_id: str) -> Entity:
		return await self._entities.get(kind, entity_id)

	async def list(
		self,
		kind: EntityKind,
		*,
		filters: Optional[Mapping[str, Any]] = None,
		search: Optional[str] = None,
		limit: Optional[int] = None,
	) -> List[Entity]:
		"""Newest first; ``search`` is a case-insensitive match over project text fields."""
		spec = spec_for(kind)
		clauses = []
		for key, value in (filters or {}).items():
			if value in (None, ""):
				continue
			if key not in LISTING_FILTERS:
				raise ValidationFailed(f"unknown_filter:{key}")
			clauses.append(where(key, "==", value))
		needle = (search or "").strip().lower()
		if needle and spec.kind is EntityKind.PROJECT:
			found = await self._entities.list(spec.kind, clauses)
			found = [entity for entity in found if _matches_text(entity, needle)]
			return found[:limit] if limit is not None else found
		return await self._entities.list(spec.kind, clauses, limit=limit)

	async def update(self, actor_id: str, kind: EntityKind, entity_id: str, patch: Mapping[str, Any]) -> Entity:
		spec = spec_for(kind)
		principal = await self._resolver.resolve(actor_id)
		entity = await self._entities.get(spec.kind, entity_id)
		if spec.kind is EntityKind.PROJECT and principal.id in entity.collaborator_ids() and not entity.is_owner(principal.id):
			restricted = sorted(set(spec.owner_only_fields).intersection(patch))
			if restricted:
				raise Denied("not owner")
		else:
			ensure(principal, entity, Action.UPDATE_ENTITY)
		cleaned = _clean_fields(spec.kind, patch)
		if not cleaned:
			return entity
		if "milestones" in cleaned:
			cleaned["progress"] = milestone_progress(cleaned["milestones"])
		updated = await self._entities.update(spec.kind, entity_id, cleaned)
		logger.info("entity updated", extra={"kind": spec.kind.value, "entity_id": entity_id, "fields": sorted(cleaned)})
		return updated

	async def delete(self, actor_id: str, kind: EntityKind, entity_id: str) -> None:
		"""Owner-only delete; strips the id from every principal set and drops owned content.

		The entity row is read first inside the transaction so joins queue behind
		the delete and the lock order matches ``MembershipLedger.join``.
		"""
		spec = spec_for(kind)
		principal = await self._resolver.resolve(actor_id)
		async with self._store.transaction() as tx:
			entity = await self._entities.get(spec.kind, entity_id, ops=tx)
			ensure(principal, entity, Action.DELETE_ENTITY)
			for set_field in (spec.member_field, spec.owned_field, *_MARKER_FIELDS.get(spec.kind, ())):
				holders = await tx.query(USERS_COLLECTION, [where(set_field, "array_contains", entity_id)])
				for holder in holders:
					await tx.update(USERS_COLLECTION, holder["id"], {set_field: ArrayRemove(entity_id)})
			removed = await purge_parent(tx, spec.kind, entity_id)
			await self._codes.release(tx, spec.kind, entity.access_code)
			await self._entities.delete(spec.kind, entity_id, ops=tx)
		metrics.inc_entity_deleted(spec.kind.value)
		logger.info(
			"entity deleted",
			extra={"kind": spec.kind.value, "entity_id": entity_id, "content_removed": removed},
		)

	async def _principal_entities(self, principal: Principal, kind: EntityKind, set_field: str) -> List[Entity]:
		return await self._entities.get_many(kind, principal.members_of(set_field))

	async def list_joined(self, principal_id: str, kind: EntityKind) -> List[Entity]:
		spec = spec_for(kind)
		principal = await self._resolver.resolve(principal_id)
		return await self._principal_entities(principal, spec.kind, spec.member_field)

	async def list_owned(self, principal_id: str, kind: EntityKind) -> List[Entity]:
		spec = spec_for(kind)
		principal = await self._resolver.resolve(principal_id)
		return await self._principal_entities(principal, spec.kind, spec.owned_field)

	async def list_marked(self, principal_id: str, kind: EntityKind) -> List[Entity]:
		"""Starred resources or liked projects of the principal."""
		spec = spec_for(kind)
		if spec.kind not in _MARKER_FIELDS:
			raise ValidationFailed("markers_unsupported")
		principal = await self._resolver.resolve(principal_id)
		return await self._principal_entities(principal, spec.kind, _MARKER_FIELDS[spec.kind][0])

	async def update_milestone(
		self, actor_id: str, kind: EntityKind, entity_id: str, index: int, status: str
	) -> Entity:
		"""Set one milestone's status and recompute ``progress``; owner and collaborators only."""
		spec = spec_for(kind)
		if spec.kind is not EntityKind.PROJECT:
			raise ValidationFailed("milestones_unsupported")
		if status not in MILESTONE_STATUSES:
			raise ValidationFailed("milestone_status_invalid")
		principal = await self._resolver.resolve(actor_id)
		async with self._store.transaction() as tx:
			entity = await self._entities.get(spec.kind, entity_id, ops=tx)
			ensure(principal, entity, Action.UPDATE_MILESTONE)
			milestones = [dict(item) for item in entity.attrs.get("milestones") or []]
			if index < 0 or index >= len(milestones):
				raise NotFound("milestone_not_found")
			milestones[index]["status"] = status
			updated = await self._entities.update(
				spec.kind,
				entity_id,
				{"milestones": milestones, "progress": milestone_progress(milestones)},
				ops=tx,
			)
		logger.info(
			"milestone updated",
			extra={"entity_id": entity_id, "index": index, "status": status, "progress": updated.attrs.get("progress")},
		)
		return updated

	async def record_view(self, kind: EntityKind, entity_id: str) -> Entity:
		spec = spec_for(kind)
		if spec.kind is not EntityKind.PROJECT:
			raise ValidationFailed("views_unsupported")
		return await self._entities.update(spec.kind, entity_id, {"views": Increment(1)})

	async def toggle_star(self, actor_id: str, kind: EntityKind, entity_id: str) -> bool:
		"""Flip the resource in the principal's starred set; returns the new state."""
		spec = spec_for(kind)
		if spec.kind is not EntityKind.RESOURCE:
			raise ValidationFailed("star_unsupported")
		async with self._store.transaction() as tx:
			await self._entities.get(spec.kind, entity_id, ops=tx)
			principal = await self._resolver.resolve(actor_id, ops=tx)
			starred = entity_id in principal.members_of("starredResources")
			transform = ArrayRemove(entity_id) if starred else ArrayUnion(entity_id)
			await tx.update(USERS_COLLECTION, principal.id, {"starredResources": transform})
		return not starred

	async def toggle_like(self, actor_id: str, kind: EntityKind, entity_id: str) -> Tuple[bool, int]:
		"""Flip the project in the principal's liked set and move the counter with it."""
		spec = spec_for(kind)
		if spec.kind is not EntityKind.PROJECT:
			raise ValidationFailed("like_unsupported")
		async with self._store.transaction() as tx:
			entity = await self._entities.get(spec.kind, entity_id, ops=tx)
			principal = await self._resolver.resolve(actor_id, ops=tx)
			liked = entity_id in principal.members_of("likedProjects")
			likes = int(entity.attrs.get("likes") or 0)
			if liked:
				await tx.update(USERS_COLLECTION, principal.id, {"likedProjects": ArrayRemove(entity_id)})
				if likes > 0:
					entity = await self._entities.update(spec.kind, entity_id, {"likes": Increment(-1)}, ops=tx)
			else:
				await tx.update(USERS_COLLECTION, principal.id, {"likedProjects": ArrayUnion(entity_id)})
				entity = await self._entities.update(spec.kind, entity_id, {"likes": Increment(1)}, ops=tx)
		return not liked, int(entity.attrs.get("likes") or 0)
