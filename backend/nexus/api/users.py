"""Principal directory lookups."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from nexus.api.deps import get_services
from nexus.infra.auth import AuthenticatedUser, get_current_user
from nexus.services import Services

router = APIRouter(prefix="/users", tags=["identity"])


@router.get("/search")
async def search_users_endpoint(
	q: str = Query(default="", max_length=120),
	limit: int = Query(default=10, ge=1, le=50),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	services: Services = Depends(get_services),
) -> dict:
	principals = await services.resolver.search(q, limit=limit)
	return {
		"items": [
			{
				"id": principal.id,
				"displayName": principal.display_name,
				"photoURL": principal.photo_url,
				"role": principal.role.value,
			}
			for principal in principals
		]
	}
