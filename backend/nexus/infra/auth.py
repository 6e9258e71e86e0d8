"""Authentication helpers for FastAPI endpoints."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from nexus.domain.common.errors import InvalidToken


@dataclass(slots=True)
class AuthenticatedUser:
	id: str
	session_id: Optional[str] = None
	# Informational only; authorization reads the stored principal record.
	role: str = ""


_bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
	request: Request,
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
	credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> AuthenticatedUser:
	"""Resolve the authenticated user.

	In development the ``X-User-Id`` header is accepted for local tools. In all
	other environments a valid Bearer JWT backed by a live session is required.
	"""
	services = request.app.state.services
	if credentials and credentials.scheme.lower() == "bearer":
		return await services.identity.authenticate(credentials.credentials)
	if services.settings.is_dev() and x_user_id:
		return AuthenticatedUser(id=x_user_id.strip())
	raise InvalidToken()
