"""FastAPI routes for resources, courses and projects.

One router is built per entity kind; the kind decides the request schemas and
which of the star/like/view routes exist.
"""

from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from nexus.api.deps import get_services
from nexus.domain.access import gate
from nexus.domain.content import schemas as content_schemas
from nexus.domain.entities import schemas
from nexus.domain.entities.models import EntityKind, spec_for
from nexus.infra.auth import AuthenticatedUser, get_current_user
from nexus.services import Services


# Key under /mine for the principal's starred or liked entities.
_MARKED_KEYS = {EntityKind.RESOURCE: "starred", EntityKind.PROJECT: "liked"}


def _listing(entities) -> dict:
	return {"items": [entity.to_dict() for entity in entities]}


def _records(items) -> dict:
	return {"items": [asdict(item) for item in items]}


def build_router(segment: str, kind: EntityKind) -> APIRouter:
	router = APIRouter(prefix=f"/{segment}", tags=[segment])
	create_schema = schemas.CREATE_SCHEMAS[kind]
	patch_schema = schemas.PATCH_SCHEMAS[kind]

	@router.post("", status_code=status.HTTP_201_CREATED)
	async def create_endpoint(
		payload: create_schema,  # type: ignore[valid-type]
		auth_user: AuthenticatedUser = Depends(get_current_user),
		services: Services = Depends(get_services),
	) -> dict:
		entity = await services.entities.create(auth_user.id, kind, payload.model_dump())
		return entity.to_dict()

	@router.get("")
	async def list_endpoint(
		subject: Optional[str] = None,
		owner_id: Optional[str] = Query(default=None, alias="ownerId"),
		category: Optional[str] = None,
		status_filter: Optional[str] = Query(default=None, alias="status"),
		college: Optional[str] = None,
		branch: Optional[str] = None,
		q: Optional[str] = Query(default=None, max_length=120),
		limit: Optional[int] = Query(default=None, ge=1, le=200),
		services: Services = Depends(get_services),
	) -> dict:
		filters = {
			"subject": subject,
			"ownerId": owner_id,
			"category": category,
			"status": status_filter,
			"college": college,
			"branch": branch,
		}
		allowed = {key: value for key, value in filters.items() if key in ("ownerId",) or key in spec_for(kind).fields}
		found = await services.entities.list(kind, filters=allowed, search=q, limit=limit)
		return _listing(found)

	@router.get("/mine")
	async def mine_endpoint(
		auth_user: AuthenticatedUser = Depends(get_current_user),
		services: Services = Depends(get_services),
	) -> dict:
		owned = await services.entities.list_owned(auth_user.id, kind)
		joined = await services.entities.list_joined(auth_user.id, kind)
		body = {"owned": _listing(owned)["items"], "joined": _listing(joined)["items"]}
		if kind in _MARKED_KEYS:
			marked = await services.entities.list_marked(auth_user.id, kind)
			body[_MARKED_KEYS[kind]] = _listing(marked)["items"]
		return body

	@router.post("/join/by-code")
	async def join_by_code_endpoint(
		payload: schemas.JoinByCodeRequest,
		auth_user: AuthenticatedUser = Depends(get_current_user),
		services: Services = Depends(get_services),
	) -> dict:
		entity = await services.ledger.enroll_by_code(auth_user.id, kind, payload.code)
		return entity.to_dict()

	@router.get("/{entity_id}")
	async def get_endpoint(entity_id: str, services: Services = Depends(get_services)) -> dict:
		entity = await services.entities.get(kind, entity_id)
		return entity.to_dict()

	@router.patch("/{entity_id}")
	async def update_endpoint(
		entity_id: str,
		payload: patch_schema,  # type: ignore[valid-type]
		auth_user: AuthenticatedUser = Depends(get_current_user),
		services: Services = Depends(get_services),
	) -> dict:
		entity = await services.entities.update(auth_user.id, kind, entity_id, payload.model_dump(exclude_unset=True))
		return entity.to_dict()

	@router.delete("/{entity_id}")
	async def delete_endpoint(
		entity_id: str,
		auth_user: AuthenticatedUser = Depends(get_current_user),
		services: Services = Depends(get_services),
	) -> dict:
		await services.entities.delete(auth_user.id, kind, entity_id)
		return {"ok": True}

	@router.post("/{entity_id}/join")
	async def join_endpoint(
		entity_id: str,
		payload: Optional[schemas.JoinRequest] = None,
		auth_user: AuthenticatedUser = Depends(get_current_user),
		services: Services = Depends(get_services),
	) -> dict:
		role = payload.role if payload else None
		entity = await services.ledger.join(auth_user.id, kind, entity_id, role=role)
		return entity.to_dict()

	@router.post("/{entity_id}/leave")
	async def leave_endpoint(
		entity_id: str,
		auth_user: AuthenticatedUser = Depends(get_current_user),
		services: Services = Depends(get_services),
	) -> dict:
		entity = await services.ledger.leave(auth_user.id, kind, entity_id)
		return entity.to_dict()

	@router.post("/{entity_id}/members")
	async def enroll_member_endpoint(
		entity_id: str,
		payload: schemas.EnrollMemberRequest,
		auth_user: AuthenticatedUser = Depends(get_current_user),
		services: Services = Depends(get_services),
	) -> dict:
		entity = await services.ledger.enroll_direct(
			auth_user.id, kind, entity_id, payload.principal_id, role=payload.role
		)
		return entity.to_dict()

	@router.get("/{entity_id}/members")
	async def members_endpoint(entity_id: str, services: Services = Depends(get_services)) -> dict:
		members = await services.ledger.members(kind, entity_id)
		return {
			"items": [
				{"id": member.id, "displayName": member.display_name, "photoURL": member.photo_url}
				for member in members
			]
		}

	@router.get("/{entity_id}/authorize/{action}")
	async def authorize_endpoint(
		entity_id: str,
		action: str,
		auth_user: AuthenticatedUser = Depends(get_current_user),
		services: Services = Depends(get_services),
	) -> dict:
		principal = await services.resolver.resolve(auth_user.id)
		entity = await services.entities.get(kind, entity_id)
		decision = gate.authorize(principal, entity, action)
		return {"allowed": decision.allowed, "reason": decision.reason}

	if kind is EntityKind.RESOURCE:

		@router.post("/{entity_id}/star")
		async def star_endpoint(
			entity_id: str,
			auth_user: AuthenticatedUser = Depends(get_current_user),
			services: Services = Depends(get_services),
		) -> dict:
			starred = await services.entities.toggle_star(auth_user.id, kind, entity_id)
			return {"starred": starred}

	if kind is EntityKind.PROJECT:

		@router.post("/{entity_id}/like")
		async def like_endpoint(
			entity_id: str,
			auth_user: AuthenticatedUser = Depends(get_current_user),
			services: Services = Depends(get_services),
		) -> dict:
			liked, likes = await services.entities.toggle_like(auth_user.id, kind, entity_id)
			return {"liked": liked, "likes": likes}

		@router.post("/{entity_id}/view")
		async def view_endpoint(entity_id: str, services: Services = Depends(get_services)) -> dict:
			entity = await services.entities.record_view(kind, entity_id)
			return {"views": entity.attrs.get("views", 0)}

		@router.patch("/{entity_id}/milestones/{index}")
		async def milestone_endpoint(
			entity_id: str,
			index: int,
			payload: schemas.MilestoneStatusRequest,
			auth_user: AuthenticatedUser = Depends(get_current_user),
			services: Services = Depends(get_services),
		) -> dict:
			entity = await services.entities.update_milestone(auth_user.id, kind, entity_id, index, payload.status)
			return entity.to_dict()

		@router.post("/{entity_id}/messages", status_code=status.HTTP_201_CREATED)
		async def post_message_endpoint(
			entity_id: str,
			payload: content_schemas.MessageCreate,
			auth_user: AuthenticatedUser = Depends(get_current_user),
			services: Services = Depends(get_services),
		) -> dict:
			message = await services.content.post_message(auth_user.id, kind, entity_id, content=payload.content)
			return asdict(message)

		@router.get("/{entity_id}/messages")
		async def list_messages_endpoint(
			entity_id: str,
			limit: int = Query(default=50, ge=1, le=200),
			auth_user: AuthenticatedUser = Depends(get_current_user),
			services: Services = Depends(get_services),
		) -> dict:
			return _records(await services.content.list_messages(auth_user.id, kind, entity_id, limit=limit))

	# Owned content

	@router.post("/{entity_id}/announcements", status_code=status.HTTP_201_CREATED)
	async def post_announcement_endpoint(
		entity_id: str,
		payload: content_schemas.AnnouncementCreate,
		auth_user: AuthenticatedUser = Depends(get_current_user),
		services: Services = Depends(get_services),
	) -> dict:
		announcement = await services.content.post_announcement(
			auth_user.id, kind, entity_id, title=payload.title, content=payload.content
		)
		return asdict(announcement)

	@router.get("/{entity_id}/announcements")
	async def list_announcements_endpoint(
		entity_id: str,
		limit: Optional[int] = Query(default=None, ge=1, le=200),
		services: Services = Depends(get_services),
	) -> dict:
		return _records(await services.content.list_announcements(kind, entity_id, limit=limit))

	@router.post("/{entity_id}/materials", status_code=status.HTTP_201_CREATED)
	async def add_material_endpoint(
		entity_id: str,
		payload: content_schemas.MaterialCreate,
		auth_user: AuthenticatedUser = Depends(get_current_user),
		services: Services = Depends(get_services),
	) -> dict:
		material = await services.content.add_material(
			auth_user.id,
			kind,
			entity_id,
			title=payload.title,
			url=payload.url,
			description=payload.description,
		)
		return asdict(material)

	@router.get("/{entity_id}/materials")
	async def list_materials_endpoint(entity_id: str, services: Services = Depends(get_services)) -> dict:
		return _records(await services.content.list_materials(kind, entity_id))

	@router.post("/{entity_id}/assignments", status_code=status.HTTP_201_CREATED)
	async def create_assignment_endpoint(
		entity_id: str,
		payload: content_schemas.AssignmentCreate,
		auth_user: AuthenticatedUser = Depends(get_current_user),
		services: Services = Depends(get_services),
	) -> dict:
		assignment = await services.content.create_assignment(
			auth_user.id,
			kind,
			entity_id,
			title=payload.title,
			description=payload.description,
			due_date=payload.due_date,
			points=payload.points,
		)
		return asdict(assignment)

	@router.get("/{entity_id}/assignments")
	async def list_assignments_endpoint(entity_id: str, services: Services = Depends(get_services)) -> dict:
		return _records(await services.content.list_assignments(kind, entity_id))

	@router.get("/{entity_id}/grades")
	async def my_grades_endpoint(
		entity_id: str,
		auth_user: AuthenticatedUser = Depends(get_current_user),
		services: Services = Depends(get_services),
	) -> dict:
		rows = await services.content.my_grades(auth_user.id, kind, entity_id)
		return {
			"items": [
				{"assignment": asdict(assignment), "submission": asdict(submission) if submission else None}
				for assignment, submission in rows
			]
		}

	@router.get("/{entity_id}/gradebook")
	async def gradebook_endpoint(
		entity_id: str,
		auth_user: AuthenticatedUser = Depends(get_current_user),
		services: Services = Depends(get_services),
	) -> dict:
		return _records(await services.content.gradebook(auth_user.id, kind, entity_id))

	return router
