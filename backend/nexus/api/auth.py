"""Identity endpoints: credentials, sessions, profile and federated sign-in."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from nexus.api.deps import get_services
from nexus.domain.identity import schemas
from nexus.infra.auth import AuthenticatedUser, get_current_user
from nexus.services import Services

router = APIRouter(prefix="/auth", tags=["identity"])


@router.post("/sign-up", status_code=status.HTTP_201_CREATED)
async def sign_up_endpoint(payload: schemas.SignUpRequest, services: Services = Depends(get_services)) -> dict:
	session = await services.identity.sign_up(payload.email, payload.password, payload.display_name, payload.role)
	return session.to_dict()


@router.post("/sign-in")
async def sign_in_endpoint(payload: schemas.SignInRequest, services: Services = Depends(get_services)) -> dict:
	session = await services.identity.sign_in(payload.email, payload.password)
	return session.to_dict()


@router.post("/sign-out")
async def sign_out_endpoint(
	auth_user: AuthenticatedUser = Depends(get_current_user),
	services: Services = Depends(get_services),
) -> dict:
	if auth_user.session_id:
		await services.identity.sign_out(auth_user.session_id)
	return {"ok": True}


@router.get("/me")
async def me_endpoint(
	auth_user: AuthenticatedUser = Depends(get_current_user),
	services: Services = Depends(get_services),
) -> dict:
	principal = await services.identity.current_principal(auth_user)
	return principal.to_dict()


@router.patch("/me")
async def update_me_endpoint(
	payload: schemas.ProfilePatch,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	services: Services = Depends(get_services),
) -> dict:
	principal = await services.identity.update_profile(
		auth_user.id,
		display_name=payload.display_name,
		role=payload.role,
		photo_url=payload.photo_url,
	)
	return principal.to_dict()


@router.post("/password-reset", status_code=status.HTTP_202_ACCEPTED)
async def password_reset_endpoint(
	payload: schemas.PasswordResetRequest,
	services: Services = Depends(get_services),
) -> dict:
	await services.identity.request_password_reset(payload.email)
	return {"ok": True}


@router.post("/password-reset/confirm")
async def password_reset_confirm_endpoint(
	payload: schemas.PasswordResetConfirm,
	services: Services = Depends(get_services),
) -> dict:
	await services.identity.consume_password_reset(payload.token, payload.new_password)
	return {"ok": True}


@router.post("/federated/{provider}")
async def federated_sign_in_endpoint(
	provider: str,
	payload: schemas.FederatedSignInRequest,
	services: Services = Depends(get_services),
) -> dict:
	session = await services.identity.federated_sign_in(provider, payload.id_token)
	return session.to_dict()
