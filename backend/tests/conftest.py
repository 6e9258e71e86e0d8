import sys
from pathlib import Path
from typing import Dict, List, Tuple

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from fakeredis.aioredis import FakeRedis

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from nexus.domain.common.errors import InvalidToken
from nexus.domain.entities.codes import random_code
from nexus.domain.entities.models import EntityKind
from nexus.domain.identity.models import USERS_COLLECTION, FederatedClaims, Principal
from nexus.infra.memory_store import MemoryDocumentStore
from nexus.main import create_app
from nexus.services import build_services
from nexus.settings import Settings


class FakeMailer:
	def __init__(self) -> None:
		self.sent: List[Tuple[str, str]] = []

	async def send_password_reset(self, email: str, link: str) -> None:
		self.sent.append((email, link))


class FakeVerifier:
	def __init__(self) -> None:
		self.tokens: Dict[str, FederatedClaims] = {}

	async def verify(self, provider: str, id_token: str) -> FederatedClaims:
		claims = self.tokens.get(id_token)
		if claims is None or claims.provider != provider:
			raise InvalidToken()
		return claims


class CodeQueue:
	"""Hands out queued codes first, then random ones."""

	def __init__(self) -> None:
		self.pending: List[str] = []

	def __call__(self, kind: EntityKind) -> str:
		if self.pending:
			return self.pending.pop(0)
		return random_code(kind)


def make_settings(**overrides) -> Settings:
	values = {
		"environment": "dev",
		"document_backend": "memory",
		"secret_key": "test-secret-key-with-enough-length",
		"obs_enabled": False,
	}
	values.update(overrides)
	return Settings(**values)


@pytest.fixture
def settings() -> Settings:
	return make_settings()


@pytest_asyncio.fixture
async def fake_redis():
	client = FakeRedis(decode_responses=True)
	try:
		yield client
	finally:
		await client.flushall()


@pytest.fixture
def store() -> MemoryDocumentStore:
	return MemoryDocumentStore()


@pytest.fixture
def mailer() -> FakeMailer:
	return FakeMailer()


@pytest.fixture
def verifier() -> FakeVerifier:
	return FakeVerifier()


@pytest.fixture
def codes() -> CodeQueue:
	return CodeQueue()


@pytest.fixture
def services(settings, store, fake_redis, mailer, verifier, codes):
	return build_services(settings, store, fake_redis, mailer=mailer, verifier=verifier, code_generator=codes)


@pytest.fixture
def make_principal(store, services):
	async def _make(principal_id: str, *, role: str = "student", display_name: str | None = None) -> Principal:
		await store.create(
			USERS_COLLECTION,
			{
				"email": f"{principal_id}@example.edu",
				"displayName": display_name or principal_id.title(),
				"role": role,
				"photoURL": None,
			},
			doc_id=principal_id,
		)
		return await services.resolver.resolve(principal_id)

	return _make


@pytest_asyncio.fixture
async def teacher(make_principal) -> Principal:
	return await make_principal("teacher-1", role="teacher", display_name="Ada Teacher")


@pytest_asyncio.fixture
async def student(make_principal) -> Principal:
	return await make_principal("student-1", display_name="Sam Student")


@pytest_asyncio.fixture
async def api_client(settings, store, fake_redis, mailer, verifier, codes):
	app = create_app(settings, store=store, redis=fake_redis, mailer=mailer, verifier=verifier, code_generator=codes)
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client


@pytest.fixture
def settings_factory():
	return make_settings
