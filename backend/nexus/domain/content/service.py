"""Announcements, materials, coursework and project messages owned by an entity."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from nexus.domain.access.gate import Action, ensure
from nexus.domain.common.errors import Denied, NotFound, NotMember, PastDue, ValidationFailed
from nexus.domain.content import models
from nexus.domain.content.models import (
	ANNOUNCEMENTS,
	ASSIGNMENTS,
	COMMENTS,
	MATERIALS,
	MESSAGES,
	SUBMISSIONS,
	parent_filters,
)
from nexus.domain.entities.models import Entity, EntityKind, spec_for
from nexus.domain.entities.store import EntityStore
from nexus.domain.identity.models import USERS_COLLECTION, Principal
from nexus.domain.identity.resolver import IdentityResolver
from nexus.infra.documents import SERVER_TIMESTAMP, DocumentOps, DocumentStore, Increment, now_iso, where

logger = logging.getLogger(__name__)

NOT_AUTHOR = "not author"
MESSAGE_PAGE_SIZE = 50


def _parse_due(value: datetime | str) -> datetime:
	if isinstance(value, str):
		try:
			value = datetime.fromisoformat(value.replace("Z", "+00:00"))
		except ValueError as exc:
			raise ValidationFailed("due_date_invalid") from exc
	if value.tzinfo is None:
		value = value.replace(tzinfo=timezone.utc)
	return value.astimezone(timezone.utc)


def _require_text(value: Optional[str], code: str) -> str:
	text = (value or "").strip()
	if not text:
		raise ValidationFailed(code)
	return text


def _submission_id(assignment_id: str, student_id: str) -> str:
	return f"{assignment_id}:{student_id}"


class ContentService:
	def __init__(self, store: DocumentStore, entities: EntityStore, resolver: IdentityResolver) -> None:
		self._store = store
		self._entities = entities
		self._resolver = resolver

	async def _require(self, collection: str, doc_id: str, *, ops: Optional[DocumentOps] = None) -> Dict[str, Any]:
		doc = await (ops or self._store).get(collection, doc_id)
		if doc is None:
			raise NotFound(f"{collection[:-1]}_not_found")
		return doc

	async def _parent(self, doc: Mapping[str, Any], *, ops: Optional[DocumentOps] = None) -> Entity:
		return await self._entities.get(EntityKind(doc["parentKind"]), doc["parentId"], ops=ops)

	async def _owner_context(
		self, actor_id: str, kind: EntityKind, parent_id: str, action: Action
	) -> Tuple[Principal, Entity]:
		principal = await self._resolver.resolve(actor_id)
		entity = await self._entities.get(kind, parent_id)
		ensure(principal, entity, action)
		return principal, entity

	async def _list(
		self,
		collection: str,
		kind: EntityKind,
		parent_id: str,
		*,
		order_by: str,
		descending: bool = False,
		limit: Optional[int] = None,
	) -> List[Dict[str, Any]]:
		await self._entities.get(kind, parent_id)
		return await self._store.query(
			collection,
			parent_filters(kind, parent_id),
			order_by=order_by,
			descending=descending,
			limit=limit,
		)

	# Announcements

	async def post_announcement(
		self, actor_id: str, kind: EntityKind, parent_id: str, *, title: str, content: str
	) -> models.Announcement:
		principal, entity = await self._owner_context(actor_id, kind, parent_id, Action.POST_ANNOUNCEMENT)
		announcement_id = await self._store.create(
			ANNOUNCEMENTS,
			{
				"parentKind": entity.kind.value,
				"parentId": entity.id,
				"authorId": principal.id,
				"authorName": principal.display_name,
				"title": _require_text(title, "title_required"),
				"content": _require_text(content, "content_required"),
				"comments": 0,
				"createdAt": SERVER_TIMESTAMP,
				"updatedAt": SERVER_TIMESTAMP,
			},
		)
		logger.info("announcement posted", extra={"kind": entity.kind.value, "entity_id": entity.id})
		return models.Announcement.from_doc(await self._require(ANNOUNCEMENTS, announcement_id))

	async def list_announcements(
		self, kind: EntityKind, parent_id: str, *, limit: Optional[int] = None
	) -> List[models.Announcement]:
		docs = await self._list(ANNOUNCEMENTS, kind, parent_id, order_by="createdAt", descending=True, limit=limit)
		return [models.Announcement.from_doc(doc) for doc in docs]

	async def edit_announcement(
		self,
		actor_id: str,
		announcement_id: str,
		*,
		title: Optional[str] = None,
		content: Optional[str] = None,
	) -> models.Announcement:
		doc = await self._require(ANNOUNCEMENTS, announcement_id)
		if doc["authorId"] != actor_id:
			raise Denied(NOT_AUTHOR)
		patch: Dict[str, Any] = {"updatedAt": SERVER_TIMESTAMP}
		if title is not None:
			patch["title"] = _require_text(title, "title_required")
		if content is not None:
			patch["content"] = _require_text(content, "content_required")
		return models.Announcement.from_doc(await self._store.update(ANNOUNCEMENTS, announcement_id, patch))

	async def delete_announcement(self, actor_id: str, announcement_id: str) -> None:
		doc = await self._require(ANNOUNCEMENTS, announcement_id)
		entity = await self._parent(doc)
		if actor_id not in (doc["authorId"], entity.owner_id):
			raise Denied(NOT_AUTHOR)
		async with self._store.transaction() as tx:
			for comment in await tx.query(COMMENTS, [where("announcementId", "==", announcement_id)]):
				await tx.delete(COMMENTS, comment["id"])
			await tx.delete(ANNOUNCEMENTS, announcement_id)

	async def add_comment(self, actor_id: str, announcement_id: str, *, content: str) -> models.Comment:
		text = _require_text(content, "content_required")
		principal = await self._resolver.resolve(actor_id)
		async with self._store.transaction() as tx:
			announcement = await self._require(ANNOUNCEMENTS, announcement_id, ops=tx)
			comment_id = await tx.create(
				COMMENTS,
				{
					"announcementId": announcement_id,
					"parentKind": announcement["parentKind"],
					"parentId": announcement["parentId"],
					"authorId": principal.id,
					"authorName": principal.display_name,
					"content": text,
					"createdAt": SERVER_TIMESTAMP,
				},
			)
			await tx.update(ANNOUNCEMENTS, announcement_id, {"comments": Increment(1)})
			comment = await tx.get(COMMENTS, comment_id)
		return models.Comment.from_doc(comment)

	async def list_comments(self, announcement_id: str) -> List[models.Comment]:
		await self._require(ANNOUNCEMENTS, announcement_id)
		docs = await self._store.query(
			COMMENTS,
			[where("announcementId", "==", announcement_id)],
			order_by="createdAt",
		)
		return [models.Comment.from_doc(doc) for doc in docs]

	async def delete_comment(self, actor_id: str, comment_id: str) -> None:
		comment = await self._require(COMMENTS, comment_id)
		entity = await self._parent(comment)
		if actor_id not in (comment["authorId"], entity.owner_id):
			raise Denied(NOT_AUTHOR)
		async with self._store.transaction() as tx:
			await tx.delete(COMMENTS, comment_id)
			announcement = await tx.get(ANNOUNCEMENTS, comment["announcementId"])
			if announcement is not None and int(announcement.get("comments") or 0) > 0:
				await tx.update(ANNOUNCEMENTS, announcement["id"], {"comments": Increment(-1)})

	# Materials

	async def add_material(
		self,
		actor_id: str,
		kind: EntityKind,
		parent_id: str,
		*,
		title: str,
		url: Optional[str] = None,
		description: str = "",
	) -> models.Material:
		_, entity = await self._owner_context(actor_id, kind, parent_id, Action.CREATE_MATERIAL)
		material_id = await self._store.create(
			MATERIALS,
			{
				"parentKind": entity.kind.value,
				"parentId": entity.id,
				"title": _require_text(title, "title_required"),
				"url": (url or "").strip() or None,
				"description": (description or "").strip(),
				"createdAt": SERVER_TIMESTAMP,
			},
		)
		return models.Material.from_doc(await self._require(MATERIALS, material_id))

	async def list_materials(self, kind: EntityKind, parent_id: str) -> List[models.Material]:
		docs = await self._list(MATERIALS, kind, parent_id, order_by="createdAt", descending=True)
		return [models.Material.from_doc(doc) for doc in docs]

	async def remove_material(self, actor_id: str, material_id: str) -> None:
		doc = await self._require(MATERIALS, material_id)
		await self._owner_context(actor_id, EntityKind(doc["parentKind"]), doc["parentId"], Action.REMOVE_MATERIAL)
		await self._store.delete(MATERIALS, material_id)

	# Assignments

	async def create_assignment(
		self,
		actor_id: str,
		kind: EntityKind,
		parent_id: str,
		*,
		title: str,
		description: str = "",
		due_date: datetime | str,
		points: int,
	) -> models.Assignment:
		_, entity = await self._owner_context(actor_id, kind, parent_id, Action.CREATE_ASSIGNMENT)
		if int(points) <= 0:
			raise ValidationFailed("points_must_be_positive")
		assignment_id = await self._store.create(
			ASSIGNMENTS,
			{
				"parentKind": entity.kind.value,
				"parentId": entity.id,
				"title": _require_text(title, "title_required"),
				"description": (description or "").strip(),
				"dueDate": _parse_due(due_date).isoformat(timespec="microseconds"),
				"points": int(points),
				"createdAt": SERVER_TIMESTAMP,
			},
		)
		logger.info("assignment created", extra={"kind": entity.kind.value, "entity_id": entity.id})
		return models.Assignment.from_doc(await self._require(ASSIGNMENTS, assignment_id))

	async def list_assignments(self, kind: EntityKind, parent_id: str) -> List[models.Assignment]:
		docs = await self._list(ASSIGNMENTS, kind, parent_id, order_by="dueDate")
		return [models.Assignment.from_doc(doc) for doc in docs]

	async def update_assignment(
		self,
		actor_id: str,
		assignment_id: str,
		*,
		title: Optional[str] = None,
		description: Optional[str] = None,
		due_date: datetime | str | None = None,
		points: Optional[int] = None,
	) -> models.Assignment:
		doc = await self._require(ASSIGNMENTS, assignment_id)
		await self._owner_context(actor_id, EntityKind(doc["parentKind"]), doc["parentId"], Action.UPDATE_ASSIGNMENT)
		patch: Dict[str, Any] = {"updatedAt": SERVER_TIMESTAMP}
		if title is not None:
			patch["title"] = _require_text(title, "title_required")
		if description is not None:
			patch["description"] = description.strip()
		if due_date is not None:
			patch["dueDate"] = _parse_due(due_date).isoformat(timespec="microseconds")
		if points is not None:
			if int(points) <= 0:
				raise ValidationFailed("points_must_be_positive")
			patch["points"] = int(points)
		updated = await self._store.update(ASSIGNMENTS, assignment_id, patch)
		logger.info("assignment updated", extra={"assignment_id": assignment_id, "fields": sorted(patch)})
		return models.Assignment.from_doc(updated)

	async def delete_assignment(self, actor_id: str, assignment_id: str) -> None:
		doc = await self._require(ASSIGNMENTS, assignment_id)
		await self._owner_context(actor_id, EntityKind(doc["parentKind"]), doc["parentId"], Action.REMOVE_ASSIGNMENT)
		async with self._store.transaction() as tx:
			for submission in await tx.query(SUBMISSIONS, [where("assignmentId", "==", assignment_id)]):
				await tx.delete(SUBMISSIONS, submission["id"])
			await tx.delete(ASSIGNMENTS, assignment_id)

	# Project messages

	async def _workspace_context(
		self, actor_id: str, kind: EntityKind, parent_id: str, action: Action
	) -> Tuple[Principal, Entity]:
		if spec_for(kind).kind is not EntityKind.PROJECT:
			raise ValidationFailed("messages_unsupported")
		return await self._owner_context(actor_id, kind, parent_id, action)

	async def post_message(self, actor_id: str, kind: EntityKind, parent_id: str, *, content: str) -> models.Message:
		principal, entity = await self._workspace_context(actor_id, kind, parent_id, Action.POST_MESSAGE)
		message_id = await self._store.create(
			MESSAGES,
			{
				"parentKind": entity.kind.value,
				"parentId": entity.id,
				"authorId": principal.id,
				"authorName": principal.display_name or principal.email,
				"authorPhotoURL": principal.photo_url,
				"content": _require_text(content, "content_required"),
				"createdAt": SERVER_TIMESTAMP,
			},
		)
		return models.Message.from_doc(await self._require(MESSAGES, message_id))

	async def list_messages(
		self, actor_id: str, kind: EntityKind, parent_id: str, *, limit: int = MESSAGE_PAGE_SIZE
	) -> List[models.Message]:
		"""Oldest first, capped at ``limit`` messages."""
		await self._workspace_context(actor_id, kind, parent_id, Action.VIEW_MESSAGES)
		docs = await self._store.query(
			MESSAGES,
			parent_filters(kind, parent_id),
			order_by="createdAt",
			limit=limit,
		)
		return [models.Message.from_doc(doc) for doc in docs]

	# Submissions

	async def submit(
		self,
		actor_id: str,
		assignment_id: str,
		*,
		content: str,
		attachments: Sequence[str] = (),
		now: Optional[datetime] = None,
	) -> models.Submission:
		"""Create or replace the principal's submission; a resubmission clears the grade."""
		assignment = models.Assignment.from_doc(await self._require(ASSIGNMENTS, assignment_id))
		kind = EntityKind(assignment.parent_kind)
		principal = await self._resolver.resolve(actor_id)
		if assignment.parent_id not in principal.members_of(spec_for(kind).member_field):
			raise NotMember()
		current = now or datetime.now(timezone.utc)
		if current > _parse_due(assignment.due_date):
			raise PastDue()
		submission_id = _submission_id(assignment_id, principal.id)
		async with self._store.transaction() as tx:
			existing = await tx.get(SUBMISSIONS, submission_id)
			await tx.create(
				SUBMISSIONS,
				{
					"assignmentId": assignment_id,
					"parentKind": assignment.parent_kind,
					"parentId": assignment.parent_id,
					"studentId": principal.id,
					"studentName": principal.display_name,
					"content": content or "",
					"attachments": [str(item) for item in attachments],
					"grade": None,
					"feedback": None,
					"gradedAt": None,
					"submittedAt": SERVER_TIMESTAMP,
					"resubmitted": existing is not None,
				},
				doc_id=submission_id,
			)
			saved = await tx.get(SUBMISSIONS, submission_id)
		logger.info(
			"submission saved",
			extra={"assignment_id": assignment_id, "principal_id": principal.id, "resubmitted": existing is not None},
		)
		return models.Submission.from_doc(saved)

	async def list_submissions(self, actor_id: str, assignment_id: str) -> List[models.Submission]:
		doc = await self._require(ASSIGNMENTS, assignment_id)
		await self._owner_context(actor_id, EntityKind(doc["parentKind"]), doc["parentId"], Action.VIEW_SUBMISSIONS)
		docs = await self._store.query(
			SUBMISSIONS,
			[where("assignmentId", "==", assignment_id)],
			order_by="submittedAt",
		)
		return [models.Submission.from_doc(item) for item in docs]

	async def grade(
		self, actor_id: str, submission_id: str, *, grade: float, feedback: Optional[str] = None
	) -> models.Submission:
		submission = await self._require(SUBMISSIONS, submission_id)
		assignment = models.Assignment.from_doc(await self._require(ASSIGNMENTS, submission["assignmentId"]))
		await self._owner_context(actor_id, EntityKind(assignment.parent_kind), assignment.parent_id, Action.GRADE)
		if grade < 0 or grade > assignment.points:
			raise ValidationFailed("grade_out_of_range")
		updated = await self._store.update(
			SUBMISSIONS,
			submission_id,
			{"grade": grade, "feedback": (feedback or "").strip() or None, "gradedAt": now_iso()},
		)
		logger.info("submission graded", extra={"submission_id": submission_id, "assignment_id": assignment.id})
		return models.Submission.from_doc(updated)

	async def my_grades(
		self, actor_id: str, kind: EntityKind, parent_id: str
	) -> List[Tuple[models.Assignment, Optional[models.Submission]]]:
		principal = await self._resolver.resolve(actor_id)
		assignments = await self.list_assignments(kind, parent_id)
		submissions = await self._store.query(
			SUBMISSIONS,
			[*parent_filters(kind, parent_id), where("studentId", "==", principal.id)],
		)
		by_assignment = {doc["assignmentId"]: models.Submission.from_doc(doc) for doc in submissions}
		return [(assignment, by_assignment.get(assignment.id)) for assignment in assignments]

	async def gradebook(self, actor_id: str, kind: EntityKind, parent_id: str) -> List[models.GradebookRow]:
		"""Per-member grades with the average over graded work as a percentage."""
		await self._owner_context(actor_id, kind, parent_id, Action.VIEW_SUBMISSIONS)
		assignments = await self.list_assignments(kind, parent_id)
		students = await self._store.query(
			USERS_COLLECTION,
			[where(spec_for(kind).member_field, "array_contains", parent_id)],
			order_by="displayName",
		)
		submissions = await self._store.query(SUBMISSIONS, parent_filters(kind, parent_id))
		grades: Dict[Tuple[str, str], Optional[float]] = {
			(doc["studentId"], doc["assignmentId"]): doc.get("grade") for doc in submissions
		}
		rows: List[models.GradebookRow] = []
		for student in students:
			row = models.GradebookRow(
				student_id=student["id"],
				student_name=student.get("displayName") or student.get("email") or "",
			)
			earned = 0.0
			possible = 0
			for assignment in assignments:
				value = grades.get((student["id"], assignment.id))
				row.grades[assignment.id] = value
				if value is not None:
					earned += float(value)
					possible += assignment.points
			row.average_percent = round(earned / possible * 100, 2) if possible else None
			rows.append(row)
		return rows
