"""FastAPI routes addressing announcements, comments and coursework by id."""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, status

from nexus.api.deps import get_services
from nexus.domain.content import schemas
from nexus.infra.auth import AuthenticatedUser, get_current_user
from nexus.services import Services

router = APIRouter(tags=["content"])


@router.patch("/announcements/{announcement_id}")
async def edit_announcement_endpoint(
	announcement_id: str,
	payload: schemas.AnnouncementPatch,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	services: Services = Depends(get_services),
) -> dict:
	announcement = await services.content.edit_announcement(
		auth_user.id, announcement_id, title=payload.title, content=payload.content
	)
	return asdict(announcement)


@router.delete("/announcements/{announcement_id}")
async def delete_announcement_endpoint(
	announcement_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	services: Services = Depends(get_services),
) -> dict:
	await services.content.delete_announcement(auth_user.id, announcement_id)
	return {"ok": True}


@router.get("/announcements/{announcement_id}/comments")
async def list_comments_endpoint(announcement_id: str, services: Services = Depends(get_services)) -> dict:
	comments = await services.content.list_comments(announcement_id)
	return {"items": [asdict(comment) for comment in comments]}


@router.post("/announcements/{announcement_id}/comments", status_code=status.HTTP_201_CREATED)
async def add_comment_endpoint(
	announcement_id: str,
	payload: schemas.CommentCreate,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	services: Services = Depends(get_services),
) -> dict:
	comment = await services.content.add_comment(auth_user.id, announcement_id, content=payload.content)
	return asdict(comment)


@router.delete("/comments/{comment_id}")
async def delete_comment_endpoint(
	comment_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	services: Services = Depends(get_services),
) -> dict:
	await services.content.delete_comment(auth_user.id, comment_id)
	return {"ok": True}


@router.delete("/materials/{material_id}")
async def remove_material_endpoint(
	material_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	services: Services = Depends(get_services),
) -> dict:
	await services.content.remove_material(auth_user.id, material_id)
	return {"ok": True}


@router.patch("/assignments/{assignment_id}")
async def update_assignment_endpoint(
	assignment_id: str,
	payload: schemas.AssignmentPatch,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	services: Services = Depends(get_services),
) -> dict:
	assignment = await services.content.update_assignment(
		auth_user.id,
		assignment_id,
		title=payload.title,
		description=payload.description,
		due_date=payload.due_date,
		points=payload.points,
	)
	return asdict(assignment)


@router.delete("/assignments/{assignment_id}")
async def delete_assignment_endpoint(
	assignment_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	services: Services = Depends(get_services),
) -> dict:
	await services.content.delete_assignment(auth_user.id, assignment_id)
	return {"ok": True}


@router.post("/assignments/{assignment_id}/submissions", status_code=status.HTTP_201_CREATED)
async def submit_endpoint(
	assignment_id: str,
	payload: schemas.SubmissionCreate,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	services: Services = Depends(get_services),
) -> dict:
	submission = await services.content.submit(
		auth_user.id, assignment_id, content=payload.content, attachments=payload.attachments
	)
	return asdict(submission)


@router.get("/assignments/{assignment_id}/submissions")
async def list_submissions_endpoint(
	assignment_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	services: Services = Depends(get_services),
) -> dict:
	submissions = await services.content.list_submissions(auth_user.id, assignment_id)
	return {"items": [asdict(item) for item in submissions]}


@router.post("/submissions/{submission_id}/grade")
async def grade_endpoint(
	submission_id: str,
	payload: schemas.GradeRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	services: Services = Depends(get_services),
) -> dict:
	submission = await services.content.grade(
		auth_user.id, submission_id, grade=payload.grade, feedback=payload.feedback
	)
	return asdict(submission)
