"""FastAPI application factory.

``uvicorn --factory nexus.main:create_app`` builds the app from the
environment; tests pass their own store, redis client, mailer and verifier.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from redis.asyncio import Redis

from nexus import obs
from nexus.api import build_api_router
from nexus.api.errors import install_error_handlers
from nexus.domain.entities.codes import CodeGenerator
from nexus.domain.identity.mailer import Mailer
from nexus.domain.identity.oauth import FederatedVerifier
from nexus.domain.identity.provider import IdTokenVerifier, PasswordResetMailer
from nexus.infra.documents import DocumentStore
from nexus.infra.memory_store import MemoryDocumentStore
from nexus.infra.postgres_store import PostgresDocumentStore
from nexus.infra.redis import create_redis
from nexus.infra.scheduler import JobScheduler
from nexus.services import build_services
from nexus.settings import Settings, get_settings

logger = logging.getLogger(__name__)

RECONCILE_JOB_ID = "membership-reconcile"


def _allow_origins(settings: Settings) -> list[str]:
	allow_origins = list(settings.cors_allow_origins)
	if not allow_origins:
		allow_origins = ["http://localhost:3000"] if settings.is_dev() else []
	# Starlette disallows wildcard '*' with allow_credentials=True.
	if "*" in allow_origins:
		allow_origins = ["http://localhost:3000", "http://127.0.0.1:3000"] if settings.is_dev() else []
	return allow_origins


def create_app(
	settings: Optional[Settings] = None,
	*,
	store: Optional[DocumentStore] = None,
	redis: Optional[Redis] = None,
	mailer: Optional[PasswordResetMailer] = None,
	verifier: Optional[IdTokenVerifier] = None,
	code_generator: Optional[CodeGenerator] = None,
) -> FastAPI:
	settings = settings or get_settings()
	if settings.is_prod() and settings.uses_dev_secret():
		raise RuntimeError("SECRET_KEY must be set to a non-default value in production")
	redis_client = redis if redis is not None else create_redis(settings)
	mailer = mailer or Mailer(settings)
	verifier = verifier or FederatedVerifier(settings)
	if store is None and settings.document_backend == "memory":
		store = MemoryDocumentStore()

	def _wire(app: FastAPI, document_store: DocumentStore) -> None:
		app.state.services = build_services(
			settings,
			document_store,
			redis_client,
			mailer=mailer,
			verifier=verifier,
			code_generator=code_generator,
		)

	@asynccontextmanager
	async def lifespan(app: FastAPI):
		if getattr(app.state, "services", None) is None:
			_wire(app, await PostgresDocumentStore.connect(settings))
		services = app.state.services
		scheduler: JobScheduler | None = None
		if settings.reconcile_enabled:
			scheduler = JobScheduler()
			scheduler.start()
			scheduler.schedule_hourly(
				RECONCILE_JOB_ID,
				services.reconciler.run_once,
				hours=settings.reconcile_interval_hours,
			)
		app.state.scheduler = scheduler
		logger.info("service started", extra={"document_backend": settings.document_backend})
		try:
			yield
		finally:
			if scheduler is not None:
				scheduler.shutdown()
			await services.store.close()
			await redis_client.aclose()

	app = FastAPI(title="Skill Nexus API", lifespan=lifespan)
	app.state.settings = settings
	app.state.services = None
	if store is not None:
		_wire(app, store)

	install_error_handlers(app)
	app.add_middleware(
		CORSMiddleware,
		allow_origins=_allow_origins(settings),
		allow_credentials=True,
		allow_methods=["*"],
		allow_headers=["*"],
	)
	obs.init(app, settings)

	app.include_router(build_api_router())
	return app
