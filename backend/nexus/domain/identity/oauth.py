"""Verification of Google/Microsoft ID tokens for federated sign-in."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

import jwt

from nexus.domain.common.errors import CollaboratorUnavailable, InvalidToken, ValidationFailed
from nexus.domain.identity.models import FederatedClaims
from nexus.settings import Settings

_PROVIDERS: Dict[str, Dict[str, Any]] = {
	"google": {
		"jwks_url": "https://www.googleapis.com/oauth2/v3/certs",
		"issuers": ("https://accounts.google.com", "accounts.google.com"),
	},
	"microsoft": {
		"jwks_url": "https://login.microsoftonline.com/common/discovery/v2.0/keys",
		# Issuer is tenant specific for the common endpoint
		"issuers": None,
	},
}


class FederatedVerifier:
	def __init__(self, settings: Settings) -> None:
		self._client_ids = {
			"google": settings.oauth_google_client_id,
			"microsoft": settings.oauth_microsoft_client_id,
		}
		self._jwks: Dict[str, jwt.PyJWKClient] = {}

	def _jwks_client(self, provider: str) -> jwt.PyJWKClient:
		client = self._jwks.get(provider)
		if client is None:
			client = jwt.PyJWKClient(_PROVIDERS[provider]["jwks_url"], cache_keys=True)
			self._jwks[provider] = client
		return client

	async def verify(self, provider: str, id_token: str) -> FederatedClaims:
		provider = provider.lower()
		client_id: Optional[str] = self._client_ids.get(provider)
		if provider not in _PROVIDERS or not client_id:
			raise ValidationFailed("provider_unsupported")
		config = _PROVIDERS[provider]
		try:
			signing_key = await asyncio.to_thread(self._jwks_client(provider).get_signing_key_from_jwt, id_token)
			claims = jwt.decode(
				id_token,
				signing_key.key,
				algorithms=["RS256"],
				audience=client_id,
				options={"require": ["exp", "iat", "sub"], "verify_iss": config["issuers"] is not None},
			)
		except jwt.PyJWKClientConnectionError as exc:
			raise CollaboratorUnavailable("identity_provider_unavailable") from exc
		except jwt.PyJWTError as exc:
			raise InvalidToken() from exc
		if config["issuers"] is not None and claims.get("iss") not in config["issuers"]:
			raise InvalidToken("issuer_mismatch")
		email = str(claims.get("email") or claims.get("preferred_username") or "").strip().lower()
		if not email:
			raise InvalidToken("email_missing")
		return FederatedClaims(
			provider=provider,
			subject=str(claims["sub"]),
			email=email,
			email_verified=bool(claims.get("email_verified", provider == "microsoft")),
			name=claims.get("name"),
			picture=claims.get("picture"),
		)
