"""Wiring of the domain services around one store and one redis client."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from redis.asyncio import Redis

from nexus.domain.content.service import ContentService
from nexus.domain.entities.codes import AccessCodes, CodeGenerator
from nexus.domain.entities.service import EntityService
from nexus.domain.entities.store import EntityStore
from nexus.domain.identity.provider import IdentityProvider, IdTokenVerifier, PasswordResetMailer
from nexus.domain.identity.resolver import IdentityResolver
from nexus.domain.membership.ledger import MembershipLedger
from nexus.domain.membership.reconcile import MembershipReconciler
from nexus.infra.documents import DocumentStore
from nexus.settings import Settings


@dataclass(slots=True)
class Services:
	settings: Settings
	store: DocumentStore
	redis: Redis
	resolver: IdentityResolver
	identity: IdentityProvider
	entity_store: EntityStore
	codes: AccessCodes
	entities: EntityService
	ledger: MembershipLedger
	content: ContentService
	reconciler: MembershipReconciler


def build_services(
	settings: Settings,
	store: DocumentStore,
	redis: Redis,
	*,
	mailer: PasswordResetMailer,
	verifier: IdTokenVerifier,
	code_generator: Optional[CodeGenerator] = None,
) -> Services:
	resolver = IdentityResolver(store)
	entity_store = EntityStore(store)
	codes = AccessCodes(store, settings, generator=code_generator)
	return Services(
		settings=settings,
		store=store,
		redis=redis,
		resolver=resolver,
		identity=IdentityProvider(settings, store, redis, resolver, mailer, verifier),
		entity_store=entity_store,
		codes=codes,
		entities=EntityService(store, entity_store, codes, resolver),
		ledger=MembershipLedger(store, entity_store, codes, resolver),
		content=ContentService(store, entity_store, resolver),
		reconciler=MembershipReconciler(store, entity_store),
	)
