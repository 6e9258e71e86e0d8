"""Membership ledger: join, leave and enrollment by access code.

A membership is the entity id inside the principal's per-kind set. The set
update and the entity's ``memberCount`` increment are written in one store
transaction, so a failed join leaves neither behind.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from nexus.domain.access.gate import Action, ensure
from nexus.domain.common.errors import (
	AlreadyMember,
	LeaveUnsupported,
	NexusError,
	NotAccepting,
	NotMember,
	OwnerCannotLeave,
	SelfJoinForbidden,
)
from nexus.domain.entities.codes import AccessCodes
from nexus.domain.entities.models import Entity, EntityKind, spec_for
from nexus.domain.entities.store import EntityStore
from nexus.domain.identity.models import USERS_COLLECTION, Principal
from nexus.domain.identity.resolver import IdentityResolver
from nexus.infra.documents import ArrayRemove, ArrayUnion, DocumentStore, where
from nexus.obs import metrics

logger = logging.getLogger(__name__)

DEFAULT_COLLABORATOR_ROLE = "Collaborator"


class MembershipLedger:
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

	async def join(
		self,
		principal_id: str,
		kind: EntityKind,
		entity_id: str,
		*,
		role: Optional[str] = None,
	) -> Entity:
		"""Add the principal to the entity and bump its member count.

		Checks run in order: entity exists, principal is not the owner, principal
		is not already a member, then (projects only) the project is open.
		"""
		spec = spec_for(kind)
		try:
			async with self._store.transaction() as tx:
				entity = await self._entities.get(spec.kind, entity_id, ops=tx)
				if entity.is_owner(principal_id):
					raise SelfJoinForbidden()
				principal = await self._resolver.resolve(principal_id, ops=tx)
				if entity_id in principal.members_of(spec.member_field):
					raise AlreadyMember()
				extra: Dict[str, Any] = {}
				if spec.kind is EntityKind.PROJECT:
					if entity.attrs.get("status") != "Open":
						raise NotAccepting()
					extra["collaborators"] = ArrayUnion(_collaborator_record(principal, role))
				await tx.update(USERS_COLLECTION, principal_id, {spec.member_field: ArrayUnion(entity_id)})
				updated = await self._entities.adjust_member_count(spec.kind, entity_id, 1, extra=extra, ops=tx)
		except NexusError as exc:
			metrics.inc_join(spec.kind.value, exc.detail)
			raise
		metrics.inc_join(spec.kind.value, "ok")
		logger.info(
			"membership joined",
			extra={"kind": spec.kind.value, "entity_id": entity_id, "principal_id": principal_id},
		)
		return updated

	async def leave(self, principal_id: str, kind: EntityKind, entity_id: str) -> Entity:
		spec = spec_for(kind)
		try:
			if not spec.supports_leave:
				raise LeaveUnsupported()
			async with self._store.transaction() as tx:
				entity = await self._entities.get(spec.kind, entity_id, ops=tx)
				if entity.is_owner(principal_id):
					raise OwnerCannotLeave()
				principal = await self._resolver.resolve(principal_id, ops=tx)
				if entity_id not in principal.members_of(spec.member_field):
					raise NotMember()
				records = [
					item
					for item in entity.attrs.get("collaborators") or []
					if isinstance(item, dict) and item.get("id") == principal_id
				]
				extra: Dict[str, Any] = {"collaborators": ArrayRemove(*records)} if records else {}
				await tx.update(USERS_COLLECTION, principal_id, {spec.member_field: ArrayRemove(entity_id)})
				updated = await self._entities.adjust_member_count(spec.kind, entity_id, -1, extra=extra, ops=tx)
		except NexusError as exc:
			metrics.inc_leave(spec.kind.value, exc.detail)
			raise
		metrics.inc_leave(spec.kind.value, "ok")
		logger.info(
			"membership left",
			extra={"kind": spec.kind.value, "entity_id": entity_id, "principal_id": principal_id},
		)
		return updated

	async def enroll_by_code(self, principal_id: str, kind: EntityKind, code: str) -> Entity:
		try:
			entity_id = await self._codes.resolve(kind, code)
		except NexusError as exc:
			metrics.inc_join(spec_for(kind).kind.value, exc.detail)
			raise
		return await self.join(principal_id, kind, entity_id)

	async def enroll_direct(
		self,
		actor_id: str,
		kind: EntityKind,
		entity_id: str,
		principal_id: str,
		*,
		role: Optional[str] = None,
	) -> Entity:
		"""Owner adds another principal without an access code."""
		actor = await self._resolver.resolve(actor_id)
		entity = await self._entities.get(kind, entity_id)
		ensure(actor, entity, Action.ENROLL_MEMBER)
		return await self.join(principal_id, kind, entity_id, role=role)

	async def members(self, kind: EntityKind, entity_id: str) -> List[Principal]:
		spec = spec_for(kind)
		await self._entities.get(spec.kind, entity_id)
		docs = await self._store.query(
			USERS_COLLECTION,
			[where(spec.member_field, "array_contains", entity_id)],
			order_by="displayName",
		)
		return [Principal.from_doc(doc) for doc in docs]


def _collaborator_record(principal: Principal, role: Optional[str]) -> dict:
	return {
		"id": principal.id,
		"name": principal.display_name,
		"role": (role or "").strip() or DEFAULT_COLLABORATOR_ROLE,
		"email": principal.email,
	}
