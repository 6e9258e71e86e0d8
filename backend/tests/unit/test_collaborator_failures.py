import pytest
from httpx import ASGITransport, AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError

from nexus.domain.common.errors import CollaboratorUnavailable
from nexus.domain.identity.provider import IdentityProvider
from nexus.infra.postgres_store import PostgresDocumentStore
from nexus.infra.redis import touch_limit
from nexus.main import create_app
from nexus.settings import DEV_SECRET_KEY


class UnreachableRedis:
	"""Redis client whose every call fails like a dropped connection."""

	def _fail(self, *args, **kwargs):
		raise RedisConnectionError("redis down")

	get = set = getdel = smembers = pipeline = _fail


class UnreachablePool:
	def acquire(self):
		raise OSError("connection refused")

	async def close(self) -> None:
		return None


@pytest.fixture
def offline_identity(settings, store, services, mailer, verifier):
	return IdentityProvider(settings, store, UnreachableRedis(), services.resolver, mailer, verifier)


@pytest.mark.asyncio
async def test_session_calls_surface_redis_outage(services, offline_identity):
	session = await services.identity.sign_up("ada@example.edu", "correct-horse", "Ada")

	calls = [
		offline_identity.authenticate(session.access_token),
		offline_identity.sign_in("ada@example.edu", "correct-horse"),
		offline_identity.sign_out(session.session_id),
		offline_identity.revoke_all_sessions(session.principal.id),
		offline_identity.request_password_reset("ada@example.edu"),
		offline_identity.consume_password_reset("some-token", "new-password-1"),
	]
	for call in calls:
		with pytest.raises(CollaboratorUnavailable) as excinfo:
			await call
		assert excinfo.value.detail == "session_store_unavailable"
		assert excinfo.value.status_code == 503


@pytest.mark.asyncio
async def test_touch_limit_surfaces_redis_outage():
	with pytest.raises(CollaboratorUnavailable):
		await touch_limit(UnreachableRedis(), "rl:test", 60)


@pytest.mark.asyncio
async def test_postgres_store_maps_driver_errors():
	store = PostgresDocumentStore(UnreachablePool())
	with pytest.raises(CollaboratorUnavailable) as excinfo:
		await store.get("users", "p1")
	assert excinfo.value.detail == "collaborator_unavailable"
	with pytest.raises(CollaboratorUnavailable):
		async with store.transaction() as tx:
			await tx.get("users", "p1")
	assert await store.ping() is False


@pytest.mark.asyncio
async def test_api_answers_503_when_document_store_is_down(settings, fake_redis, mailer, verifier):
	app = create_app(
		settings,
		store=PostgresDocumentStore(UnreachablePool()),
		redis=fake_redis,
		mailer=mailer,
		verifier=verifier,
	)
	async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as client:
		resp = await client.post(
			"/auth/sign-up",
			json={"email": "ada@example.edu", "password": "correct-horse", "display_name": "Ada"},
			headers={"X-Request-Id": "req-503"},
		)
	assert resp.status_code == 503
	assert resp.json() == {"detail": "collaborator_unavailable", "request_id": "req-503"}


@pytest.mark.asyncio
async def test_api_answers_503_when_session_store_is_down(settings, store, mailer, verifier):
	app = create_app(settings, store=store, redis=UnreachableRedis(), mailer=mailer, verifier=verifier)
	async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as client:
		resp = await client.post("/auth/sign-in", json={"email": "ada@example.edu", "password": "correct-horse"})
	assert resp.status_code == 503
	assert resp.json()["detail"] == "session_store_unavailable"


def test_production_refuses_default_secret(settings_factory, store, fake_redis, mailer, verifier):
	with pytest.raises(RuntimeError):
		create_app(
			settings_factory(environment="production", secret_key=DEV_SECRET_KEY),
			store=store,
			redis=fake_redis,
			mailer=mailer,
			verifier=verifier,
		)

	app = create_app(
		settings_factory(environment="production"),
		store=store,
		redis=fake_redis,
		mailer=mailer,
		verifier=verifier,
	)
	assert app.title == "Skill Nexus API"
