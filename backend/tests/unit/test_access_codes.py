import re

import pytest

from nexus.domain.common.errors import CodeSpaceExhausted, NotFound, ValidationFailed
from nexus.domain.entities.codes import CODES_COLLECTION, AccessCodes, normalize, random_code
from nexus.domain.entities.models import EntityKind
from nexus.infra.memory_store import MemoryDocumentStore


def test_normalize_trims_and_uppercases():
	assert normalize("  abc123 ") == "ABC123"
	with pytest.raises(ValidationFailed):
		normalize("   ")


def test_random_code_styles():
	for _ in range(50):
		assert re.fullmatch(r"[A-Z]{3}[1-9][0-9]{2}", random_code(EntityKind.COURSE))
		assert re.fullmatch(r"[A-Z0-9]{6}", random_code(EntityKind.RESOURCE))
		assert re.fullmatch(r"[A-Z0-9]{6}", random_code(EntityKind.PROJECT))


@pytest.mark.asyncio
async def test_claim_retries_on_collision(settings_factory):
	store = MemoryDocumentStore()
	sequence = iter(["DUPE01", "DUPE01", "FRESH1"])
	codes = AccessCodes(store, settings_factory(), generator=lambda _kind: next(sequence))

	async with store.transaction() as tx:
		first = await codes.claim(tx, EntityKind.RESOURCE, "r1")
	async with store.transaction() as tx:
		second = await codes.claim(tx, EntityKind.RESOURCE, "r2")

	assert first == "DUPE01"
	assert second == "FRESH1"
	claim = await store.get(CODES_COLLECTION, "resource:FRESH1")
	assert claim["entityId"] == "r2"


@pytest.mark.asyncio
async def test_same_code_is_free_across_kinds(settings_factory):
	store = MemoryDocumentStore()
	codes = AccessCodes(store, settings_factory(), generator=lambda _kind: "SHARED")
	async with store.transaction() as tx:
		assert await codes.claim(tx, EntityKind.RESOURCE, "r1") == "SHARED"
		assert await codes.claim(tx, EntityKind.PROJECT, "p1") == "SHARED"


@pytest.mark.asyncio
async def test_claim_gives_up_after_max_attempts(settings_factory):
	store = MemoryDocumentStore()
	codes = AccessCodes(store, settings_factory(access_code_max_attempts=2), generator=lambda _kind: "SAME01")
	async with store.transaction() as tx:
		await codes.claim(tx, EntityKind.PROJECT, "p1")
	with pytest.raises(CodeSpaceExhausted):
		async with store.transaction() as tx:
			await codes.claim(tx, EntityKind.PROJECT, "p2")


@pytest.mark.asyncio
async def test_release_frees_the_code(settings_factory):
	store = MemoryDocumentStore()
	codes = AccessCodes(store, settings_factory(), generator=lambda _kind: "ABC123")
	async with store.transaction() as tx:
		await codes.claim(tx, EntityKind.RESOURCE, "r1")
		await codes.release(tx, EntityKind.RESOURCE, "ABC123")
		assert await codes.claim(tx, EntityKind.RESOURCE, "r2") == "ABC123"


@pytest.mark.asyncio
async def test_resolve_is_case_insensitive(services, teacher, codes):
	codes.pending.append("ABC123")
	entity = await services.entities.create(teacher.id, EntityKind.RESOURCE, {"name": "Algorithms"})
	assert entity.access_code == "ABC123"

	assert await services.codes.resolve(EntityKind.RESOURCE, " abc123 ") == entity.id
	with pytest.raises(NotFound):
		await services.codes.resolve(EntityKind.COURSE, "ABC123")
	with pytest.raises(NotFound):
		await services.codes.resolve(EntityKind.RESOURCE, "ZZZ999")
