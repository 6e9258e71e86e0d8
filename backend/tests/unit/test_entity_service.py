from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from nexus.domain.common.errors import Denied, NotFound, ValidationFailed
from nexus.domain.content.models import ANNOUNCEMENTS, ASSIGNMENTS, SUBMISSIONS
from nexus.domain.entities.codes import CODES_COLLECTION
from nexus.domain.entities.models import EntityKind, spec_for
from nexus.domain.identity.models import USERS_COLLECTION
from nexus.infra.memory_store import MemoryDocumentStore
from nexus.services import build_services


@pytest.mark.asyncio
async def test_students_cannot_create_courses_or_resources(services, student):
	with pytest.raises(Denied) as excinfo:
		await services.entities.create(student.id, EntityKind.COURSE, {"title": "Intro"})
	assert excinfo.value.reason == "not instructor"
	with pytest.raises(Denied):
		await services.entities.create(student.id, EntityKind.RESOURCE, {"name": "Notes"})


@pytest.mark.asyncio
async def test_create_records_ownership_and_code(services, teacher, store):
	resource = await services.entities.create(
		teacher.id, EntityKind.RESOURCE, {"name": "Calculus", "subject": "Math"}
	)

	assert resource.owner_id == teacher.id
	assert resource.owner_name == "Ada Teacher"
	assert resource.member_count == 0
	assert len(resource.access_code) == 6
	assert resource.attrs["subject"] == "Math"
	principal = await services.resolver.resolve(teacher.id)
	assert principal.members_of("resources") == [resource.id]
	claim = await store.get(CODES_COLLECTION, f"resource:{resource.access_code}")
	assert claim["entityId"] == resource.id


@pytest.mark.asyncio
async def test_create_requires_title(services, teacher):
	with pytest.raises(ValidationFailed):
		await services.entities.create(teacher.id, EntityKind.COURSE, {"title": "   "})
	with pytest.raises(ValidationFailed):
		await services.entities.create(teacher.id, EntityKind.COURSE, {"description": "no title"})


@pytest.mark.asyncio
async def test_update_rules(services, teacher, student):
	course = await services.entities.create(teacher.id, EntityKind.COURSE, {"title": "Draft"})

	updated = await services.entities.update(teacher.id, EntityKind.COURSE, course.id, {"title": "Final"})
	assert updated.attrs["title"] == "Final"
	assert updated.access_code == course.access_code

	with pytest.raises(Denied):
		await services.entities.update(student.id, EntityKind.COURSE, course.id, {"title": "Hijack"})
	with pytest.raises(ValidationFailed):
		await services.entities.update(teacher.id, EntityKind.COURSE, course.id, {"accessCode": "ZZZ999"})
	with pytest.raises(ValidationFailed):
		await services.entity_store.update(EntityKind.COURSE, course.id, {"memberCount": 40})


@pytest.mark.asyncio
async def test_collaborators_edit_everything_but_owner_fields(services, make_principal):
	owner = await make_principal("owner")
	member = await make_principal("member")
	project = await services.entities.create(
		owner.id, EntityKind.PROJECT, {"title": "Drone", "category": "Hardware", "tech": "C, Rust"}
	)
	assert project.attrs["tech"] == ["C", "Rust"]
	await services.ledger.join(member.id, EntityKind.PROJECT, project.id)

	updated = await services.entities.update(member.id, EntityKind.PROJECT, project.id, {"status": "In Progress"})
	assert updated.attrs["status"] == "In Progress"
	with pytest.raises(Denied):
		await services.entities.update(member.id, EntityKind.PROJECT, project.id, {"category": "Software"})
	with pytest.raises(ValidationFailed):
		await services.entities.update(owner.id, EntityKind.PROJECT, project.id, {"status": "Abandoned"})


@pytest.mark.asyncio
async def test_delete_cascades(services, store, teacher, student):
	course = await services.entities.create(teacher.id, EntityKind.COURSE, {"title": "Compilers"})
	await services.ledger.join(student.id, EntityKind.COURSE, course.id)
	await services.content.post_announcement(teacher.id, EntityKind.COURSE, course.id, title="Hi", content="Welcome")
	assignment = await services.content.create_assignment(
		teacher.id,
		EntityKind.COURSE,
		course.id,
		title="Lexer",
		due_date=datetime.now(timezone.utc) + timedelta(days=3),
		points=10,
	)
	await services.content.submit(student.id, assignment.id, content="done")

	with pytest.raises(Denied):
		await services.entities.delete(student.id, EntityKind.COURSE, course.id)
	await services.entities.delete(teacher.id, EntityKind.COURSE, course.id)

	with pytest.raises(NotFound):
		await services.entities.get(EntityKind.COURSE, course.id)
	assert (await services.resolver.resolve(student.id)).members_of("enrolledCourses") == []
	assert (await services.resolver.resolve(teacher.id)).members_of("courses") == []
	for collection in (ANNOUNCEMENTS, ASSIGNMENTS, SUBMISSIONS):
		assert await store.query(collection) == []
	assert await store.get(CODES_COLLECTION, f"course:{course.access_code}") is None
	with pytest.raises(NotFound):
		await services.codes.resolve(EntityKind.COURSE, course.access_code)


@pytest.mark.asyncio
async def test_star_like_and_view(services, teacher, student):
	resource = await services.entities.create(teacher.id, EntityKind.RESOURCE, {"name": "Guides"})
	assert await services.entities.toggle_star(student.id, EntityKind.RESOURCE, resource.id) is True
	assert (await services.resolver.resolve(student.id)).members_of("starredResources") == [resource.id]
	assert await services.entities.toggle_star(student.id, EntityKind.RESOURCE, resource.id) is False

	project = await services.entities.create(teacher.id, EntityKind.PROJECT, {"title": "Website"})
	assert await services.entities.toggle_like(student.id, EntityKind.PROJECT, project.id) == (True, 1)
	assert await services.entities.toggle_like(student.id, EntityKind.PROJECT, project.id) == (False, 0)

	viewed = await services.entities.record_view(EntityKind.PROJECT, project.id)
	viewed = await services.entities.record_view(EntityKind.PROJECT, project.id)
	assert viewed.attrs["views"] == 2

	with pytest.raises(ValidationFailed):
		await services.entities.toggle_like(student.id, EntityKind.RESOURCE, resource.id)


@pytest.mark.asyncio
async def test_list_filters_and_search(services, make_principal):
	owner = await make_principal("owner")
	await services.entities.create(owner.id, EntityKind.PROJECT, {"title": "Chess engine", "tech": ["Rust"]})
	await services.entities.create(
		owner.id, EntityKind.PROJECT, {"title": "Portfolio", "description": "personal site", "status": "Completed"}
	)
	await services.entities.create(owner.id, EntityKind.PROJECT, {"title": "Parser", "tech": ["rust", "wasm"]})

	found = await services.entities.list(EntityKind.PROJECT, search="RUST")
	assert sorted(entity.attrs["title"] for entity in found) == ["Chess engine", "Parser"]

	completed = await services.entities.list(EntityKind.PROJECT, filters={"status": "Completed"})
	assert [entity.attrs["title"] for entity in completed] == ["Portfolio"]

	assert len(await services.entities.list(EntityKind.PROJECT, limit=1)) == 1

	with pytest.raises(ValidationFailed):
		await services.entities.list(EntityKind.PROJECT, filters={"accessCode": "X"})


@pytest.mark.asyncio
async def test_list_joined_spans_batches(services, teacher, student):
	created = []
	for index in range(12):
		resource = await services.entities.create(teacher.id, EntityKind.RESOURCE, {"name": f"Deck {index}"})
		await services.ledger.join(student.id, EntityKind.RESOURCE, resource.id)
		created.append(resource.id)

	joined = await services.entities.list_joined(student.id, EntityKind.RESOURCE)
	owned = await services.entities.list_owned(teacher.id, EntityKind.RESOURCE)

	assert [entity.id for entity in joined] == created
	assert [entity.id for entity in owned] == created


class RecordingOps:
	def __init__(self, ops, calls) -> None:
		self._ops = ops
		self._calls = calls

	def __getattr__(self, name):
		target = getattr(self._ops, name)

		async def _call(collection, *args, **kwargs):
			self._calls.append((name, collection))
			return await target(collection, *args, **kwargs)

		return _call


class RecordingStore(MemoryDocumentStore):
	"""Memory store that records the operations issued inside transactions."""

	def __init__(self) -> None:
		super().__init__()
		self.tx_calls = []

	@asynccontextmanager
	async def transaction(self):
		async with super().transaction() as tx:
			yield RecordingOps(tx, self.tx_calls)


@pytest.mark.asyncio
async def test_delete_locks_entity_before_member_rows(settings, fake_redis, mailer, verifier):
	store = RecordingStore()
	local = build_services(settings, store, fake_redis, mailer=mailer, verifier=verifier)
	for principal_id, role in (("teacher-9", "teacher"), ("student-9", "student")):
		await store.create(
			USERS_COLLECTION,
			{"email": f"{principal_id}@example.edu", "displayName": principal_id, "role": role},
			doc_id=principal_id,
		)
	course = await local.entities.create("teacher-9", EntityKind.COURSE, {"title": "Networks"})
	await local.ledger.join("student-9", EntityKind.COURSE, course.id)

	store.tx_calls.clear()
	with pytest.raises(Denied):
		await local.entities.delete("student-9", EntityKind.COURSE, course.id)
	assert store.tx_calls == [("get", spec_for(EntityKind.COURSE).collection)]

	store.tx_calls.clear()
	await local.entities.delete("teacher-9", EntityKind.COURSE, course.id)
	assert store.tx_calls[0] == ("get", spec_for(EntityKind.COURSE).collection)
	assert ("delete", spec_for(EntityKind.COURSE).collection) in store.tx_calls

	with pytest.raises(NotFound):
		await local.ledger.join("student-9", EntityKind.COURSE, course.id)
	assert (await local.resolver.resolve("student-9")).members_of("enrolledCourses") == []


@pytest.mark.asyncio
async def test_delete_of_missing_entity_is_not_found(services, teacher):
	with pytest.raises(NotFound):
		await services.entities.delete(teacher.id, EntityKind.COURSE, "missing")


@pytest_asyncio.fixture
async def roadmap_project(services, make_principal):
	owner = await make_principal("lead")
	crew = await make_principal("crew")
	project = await services.entities.create(
		owner.id,
		EntityKind.PROJECT,
		{
			"title": "Rover",
			"milestones": [
				{"title": "Chassis", "status": "completed"},
				{"title": "Motors"},
				{"title": "Firmware", "status": "in-progress", "date": "2026-12-01"},
			],
		},
	)
	await services.ledger.join(crew.id, EntityKind.PROJECT, project.id, role="Developer")
	return project


@pytest.mark.asyncio
async def test_milestones_drive_progress(services, roadmap_project, make_principal):
	assert roadmap_project.attrs["progress"] == 33
	assert roadmap_project.attrs["milestones"][1] == {"title": "Motors", "status": "pending", "date": ""}

	updated = await services.entities.update_milestone("crew", EntityKind.PROJECT, roadmap_project.id, 1, "completed")
	assert updated.attrs["progress"] == 67
	assert updated.attrs["milestones"][1]["status"] == "completed"

	updated = await services.entities.update_milestone("lead", EntityKind.PROJECT, roadmap_project.id, 2, "completed")
	assert updated.attrs["progress"] == 100

	outsider = await make_principal("outsider")
	with pytest.raises(Denied) as excinfo:
		await services.entities.update_milestone(outsider.id, EntityKind.PROJECT, roadmap_project.id, 0, "pending")
	assert excinfo.value.reason == "not collaborator"
	with pytest.raises(NotFound):
		await services.entities.update_milestone("crew", EntityKind.PROJECT, roadmap_project.id, 3, "pending")
	with pytest.raises(ValidationFailed):
		await services.entities.update_milestone("crew", EntityKind.PROJECT, roadmap_project.id, 0, "done")


@pytest.mark.asyncio
async def test_replacing_milestones_recomputes_progress(services, roadmap_project):
	updated = await services.entities.update(
		"crew",
		EntityKind.PROJECT,
		roadmap_project.id,
		{"milestones": [{"title": "Ship", "status": "completed"}, {"title": "Demo", "status": "completed"}]},
	)
	assert updated.attrs["progress"] == 100

	cleared = await services.entities.update("lead", EntityKind.PROJECT, roadmap_project.id, {"milestones": []})
	assert cleared.attrs["progress"] == 0
	with pytest.raises(ValidationFailed):
		await services.entities.update("lead", EntityKind.PROJECT, roadmap_project.id, {"progress": 90})
	with pytest.raises(ValidationFailed):
		await services.entities.update(
			"lead", EntityKind.PROJECT, roadmap_project.id, {"milestones": [{"title": "X", "status": "late"}]}
		)


@pytest.mark.asyncio
async def test_list_marked_returns_starred_and_liked(services, teacher, student):
	notes = await services.entities.create(teacher.id, EntityKind.RESOURCE, {"name": "Notes"})
	await services.entities.create(teacher.id, EntityKind.RESOURCE, {"name": "Slides"})
	project = await services.entities.create(teacher.id, EntityKind.PROJECT, {"title": "Robot"})
	await services.entities.toggle_star(student.id, EntityKind.RESOURCE, notes.id)
	await services.entities.toggle_like(student.id, EntityKind.PROJECT, project.id)

	starred = await services.entities.list_marked(student.id, EntityKind.RESOURCE)
	liked = await services.entities.list_marked(student.id, EntityKind.PROJECT)
	assert [entity.id for entity in starred] == [notes.id]
	assert [entity.id for entity in liked] == [project.id]
	assert await services.entities.list_marked(teacher.id, EntityKind.RESOURCE) == []
	with pytest.raises(ValidationFailed):
		await services.entities.list_marked(student.id, EntityKind.COURSE)
