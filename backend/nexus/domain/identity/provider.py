"""Credential, session and federated sign-in flows.

Principals live in the ``users`` collection. Credentials are keyed by the
normalised email in ``credentials`` so the conditional insert doubles as the
uniqueness check; federated accounts are linked through ``identity_links``
documents keyed ``{provider}:{subject}``. Sessions, reset tokens and rate
limit buckets are kept in redis.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol

import ulid
from jwt import InvalidTokenError
from redis.asyncio import Redis

from nexus.domain.common.errors import (
	EmailTaken,
	InvalidCredentials,
	InvalidToken,
	RateLimited,
	ValidationFailed,
)
from nexus.domain.identity.models import (
	CREDENTIALS_COLLECTION,
	LINKS_COLLECTION,
	USERS_COLLECTION,
	FederatedClaims,
	Principal,
	Role,
	Session,
)
from nexus.domain.identity.resolver import IdentityResolver
from nexus.infra import jwt as jwt_helper
from nexus.infra.auth import AuthenticatedUser
from nexus.infra.documents import SERVER_TIMESTAMP, DocumentStore
from nexus.infra.password import check_needs_rehash, hash_password, verify_password
from nexus.infra.redis import redis_guard, touch_limit
from nexus.obs import metrics
from nexus.settings import Settings

logger = logging.getLogger(__name__)

PASSWORD_MIN_LEN = 8
DISPLAY_MAX_LEN = 80


class PasswordResetMailer(Protocol):
	async def send_password_reset(self, email: str, link: str) -> None: ...


class IdTokenVerifier(Protocol):
	async def verify(self, provider: str, id_token: str) -> FederatedClaims: ...


def normalise_email(email: str) -> str:
	value = (email or "").strip().lower()
	if "@" not in value or value.startswith("@") or value.endswith("@"):
		raise ValidationFailed("email_invalid")
	return value


def guard_password(password: str) -> None:
	if len(password or "") < PASSWORD_MIN_LEN:
		raise ValidationFailed("password_too_short")


def guard_display_name(display_name: str) -> str:
	value = (display_name or "").strip()
	if not value or len(value) > DISPLAY_MAX_LEN:
		raise ValidationFailed("display_name_invalid")
	return value


def parse_role(role: str | Role) -> Role:
	try:
		return Role(role)
	except ValueError as exc:
		raise ValidationFailed("role_invalid") from exc


def _session_key(session_id: str) -> str:
	return f"session:{session_id}"


def _sessions_index_key(principal_id: str) -> str:
	return f"sessions:{principal_id}"


def _reset_key(token: str) -> str:
	return f"pwreset:{token}"


class IdentityProvider:
	def __init__(
		self,
		settings: Settings,
		store: DocumentStore,
		redis: Redis,
		resolver: IdentityResolver,
		mailer: PasswordResetMailer,
		verifier: IdTokenVerifier,
	) -> None:
		self._settings = settings
		self._store = store
		self._redis = redis
		self._resolver = resolver
		self._mailer = mailer
		self._verifier = verifier

	# Sessions

	async def _open_session(self, principal: Principal) -> Session:
		session_id = str(ulid.new())
		ttl = self._settings.session_ttl_days * 24 * 60 * 60
		with redis_guard():
			async with self._redis.pipeline(transaction=True) as pipe:
				pipe.set(_session_key(session_id), principal.id, ex=ttl)
				pipe.sadd(_sessions_index_key(principal.id), session_id)
				pipe.expire(_sessions_index_key(principal.id), ttl)
				await pipe.execute()
		token = jwt_helper.encode_access(
			self._settings,
			{"sub": principal.id, "sid": session_id, "role": principal.role.value},
		)
		metrics.inc_identity("session_created")
		return Session(
			access_token=token,
			session_id=session_id,
			principal=principal,
			expires_in=self._settings.access_ttl_minutes * 60,
		)

	async def revoke_all_sessions(self, principal_id: str) -> int:
		index = _sessions_index_key(principal_id)
		with redis_guard():
			session_ids = await self._redis.smembers(index)
			async with self._redis.pipeline(transaction=True) as pipe:
				for session_id in session_ids:
					pipe.delete(_session_key(session_id))
				pipe.delete(index)
				await pipe.execute()
		metrics.inc_identity("session_revoked_all")
		return len(session_ids)

	async def sign_out(self, session_id: str) -> None:
		with redis_guard():
			principal_id = await self._redis.get(_session_key(session_id))
			async with self._redis.pipeline(transaction=True) as pipe:
				pipe.delete(_session_key(session_id))
				if principal_id:
					pipe.srem(_sessions_index_key(principal_id), session_id)
				await pipe.execute()
		metrics.inc_identity("sign_out")
		logger.info("session revoked", extra={"session_id": session_id})

	async def authenticate(self, token: str) -> AuthenticatedUser:
		"""Verify the access token and that its session has not been revoked."""
		try:
			claims = jwt_helper.decode_access(self._settings, token)
		except InvalidTokenError as exc:
			raise InvalidToken() from exc
		principal_id = str(claims["sub"])
		session_id = str(claims["sid"])
		with redis_guard():
			stored = await self._redis.get(_session_key(session_id))
		if stored != principal_id:
			raise InvalidToken("session_revoked")
		return AuthenticatedUser(id=principal_id, session_id=session_id, role=str(claims.get("role") or ""))

	async def current_principal(self, user: AuthenticatedUser) -> Principal:
		return await self._resolver.resolve(user.id)

	# Credentials

	async def sign_up(self, email: str, password: str, display_name: str, role: str | Role = Role.STUDENT) -> Session:
		email = normalise_email(email)
		guard_password(password)
		display_name = guard_display_name(display_name)
		parsed_role = parse_role(role)
		principal_id = self._store.new_id()
		async with self._store.transaction() as tx:
			claimed = await tx.create_if_absent(
				CREDENTIALS_COLLECTION,
				email,
				{"principalId": principal_id, "passwordHash": hash_password(password)},
			)
			if not claimed:
				metrics.inc_identity("sign_up", "email_taken")
				raise EmailTaken()
			await tx.create(
				USERS_COLLECTION,
				{
					"email": email,
					"displayName": display_name,
					"role": parsed_role.value,
					"photoURL": None,
					"createdAt": SERVER_TIMESTAMP,
					"updatedAt": SERVER_TIMESTAMP,
				},
				doc_id=principal_id,
			)
		principal = await self._resolver.resolve(principal_id)
		metrics.inc_identity("sign_up")
		logger.info("principal registered", extra={"principal_id": principal_id, "role": parsed_role.value})
		return await self._open_session(principal)

	async def _enforce_sign_in_rate(self, email: str) -> None:
		bucket = datetime.now(timezone.utc).strftime("%Y%m%d%H%M")
		key = f"rl:auth:signin:{email}:{bucket}"
		if await touch_limit(self._redis, key, 120) > self._settings.sign_in_per_minute:
			metrics.inc_identity("sign_in", "rate_limited")
			raise RateLimited("rate_limited:sign_in")

	async def sign_in(self, email: str, password: str) -> Session:
		email = normalise_email(email)
		await self._enforce_sign_in_rate(email)
		credential = await self._store.get(CREDENTIALS_COLLECTION, email)
		password_hash = credential.get("passwordHash") if credential else None
		if not password_hash or not verify_password(password_hash, password):
			metrics.inc_identity("sign_in", "invalid")
			raise InvalidCredentials()
		if check_needs_rehash(password_hash):
			await self._store.update(CREDENTIALS_COLLECTION, email, {"passwordHash": hash_password(password)})
		principal = await self._resolver.resolve(credential["principalId"])
		metrics.inc_identity("sign_in")
		return await self._open_session(principal)

	async def update_profile(
		self,
		principal_id: str,
		*,
		display_name: Optional[str] = None,
		role: str | Role | None = None,
		photo_url: Optional[str] = None,
	) -> Principal:
		"""Apply the principal's own profile edit; the only path that changes ``role``."""
		patch: Dict[str, Any] = {}
		if display_name is not None:
			patch["displayName"] = guard_display_name(display_name)
		if role is not None:
			patch["role"] = parse_role(role).value
		if photo_url is not None:
			patch["photoURL"] = photo_url.strip() or None
		if patch:
			patch["updatedAt"] = SERVER_TIMESTAMP
			await self._resolver.resolve(principal_id)
			await self._store.update(USERS_COLLECTION, principal_id, patch)
			metrics.inc_identity("profile_update")
		return await self._resolver.resolve(principal_id)

	# Password reset

	async def request_password_reset(self, email: str) -> None:
		email = normalise_email(email)
		bucket = datetime.now(timezone.utc).strftime("%Y%m%d%H")
		key = f"rl:auth:pwreset:{email}:{bucket}"
		if await touch_limit(self._redis, key, 3600) > self._settings.password_reset_per_hour:
			metrics.inc_identity("pwreset_request", "rate_limited")
			raise RateLimited("rate_limited:password_reset")
		credential = await self._store.get(CREDENTIALS_COLLECTION, email)
		metrics.inc_identity("pwreset_request")
		if credential is None:
			return
		token = secrets.token_urlsafe(32)
		with redis_guard():
			await self._redis.set(
				_reset_key(token),
				credential["principalId"],
				ex=self._settings.password_reset_ttl_minutes * 60,
			)
		link = f"{self._settings.public_app_url}/reset-password?token={token}"
		await self._mailer.send_password_reset(email, link)
		logger.info("password reset requested", extra={"principal_id": credential["principalId"]})

	async def consume_password_reset(self, token: str, new_password: str) -> None:
		guard_password(new_password)
		with redis_guard():
			principal_id = await self._redis.getdel(_reset_key(token))
		if not principal_id:
			metrics.inc_identity("pwreset_consume", "invalid")
			raise InvalidToken("reset_token_invalid")
		principal = await self._resolver.resolve(principal_id)
		await self._store.update(
			CREDENTIALS_COLLECTION,
			principal.email,
			{"passwordHash": hash_password(new_password), "principalId": principal.id},
		)
		await self.revoke_all_sessions(principal.id)
		metrics.inc_identity("pwreset_consume")
		logger.info("password reset completed", extra={"principal_id": principal.id})

	# Federated sign-in

	async def federated_sign_in(self, provider: str, id_token: str) -> Session:
		claims = await self._verifier.verify(provider, id_token)
		link_id = f"{claims.provider}:{claims.subject}"
		link = await self._store.get(LINKS_COLLECTION, link_id)
		if link is not None:
			principal = await self._resolver.resolve(link["principalId"])
		else:
			principal = await self._link_or_create(claims, link_id)
		metrics.inc_identity("federated_sign_in")
		return await self._open_session(principal)

	async def _link_or_create(self, claims: FederatedClaims, link_id: str) -> Principal:
		credential = await self._store.get(CREDENTIALS_COLLECTION, claims.email)
		if credential is not None:
			if not claims.email_verified:
				raise InvalidToken("email_unverified")
			principal_id = credential["principalId"]
		else:
			principal_id = self._store.new_id()
			async with self._store.transaction() as tx:
				claimed = await tx.create_if_absent(
					CREDENTIALS_COLLECTION,
					claims.email,
					{"principalId": principal_id, "passwordHash": None},
				)
				if not claimed:
					raise EmailTaken()
				await tx.create(
					USERS_COLLECTION,
					{
						"email": claims.email,
						"displayName": (claims.name or claims.email.split("@", 1)[0])[:DISPLAY_MAX_LEN],
						"role": Role.STUDENT.value,
						"photoURL": claims.picture,
						"createdAt": SERVER_TIMESTAMP,
						"updatedAt": SERVER_TIMESTAMP,
					},
					doc_id=principal_id,
				)
			logger.info("principal registered", extra={"principal_id": principal_id, "provider": claims.provider})
		await self._store.create(
			LINKS_COLLECTION,
			{"principalId": principal_id, "provider": claims.provider, "createdAt": SERVER_TIMESTAMP},
			doc_id=link_id,
		)
		return await self._resolver.resolve(principal_id)
