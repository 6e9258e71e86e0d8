import pytest

from nexus.domain.common.errors import NotFound
from nexus.infra.documents import (
	SERVER_TIMESTAMP,
	ArrayRemove,
	ArrayUnion,
	Increment,
	apply_patch,
	get_all,
	where,
)
from nexus.infra.memory_store import MemoryDocumentStore


def test_apply_patch_resolves_transforms():
	current = {"count": 2, "tags": ["a", "b"], "keep": True}
	patched = apply_patch(
		current,
		{
			"id": "ignored",
			"count": Increment(3),
			"tags": ArrayUnion("b", "c"),
			"gone": ArrayRemove("x"),
			"stamp": SERVER_TIMESTAMP,
		},
	)
	assert patched["count"] == 5
	assert patched["tags"] == ["a", "b", "c"]
	assert patched["gone"] == []
	assert isinstance(patched["stamp"], str) and patched["stamp"].endswith("+00:00")
	assert "id" not in patched
	assert current["tags"] == ["a", "b"]


def test_array_remove_drops_every_match():
	patched = apply_patch({"ids": ["x", "y", "x"]}, {"ids": ArrayRemove("x")})
	assert patched["ids"] == ["y"]


def test_where_rejects_unknown_operator():
	with pytest.raises(ValueError):
		where("field", "~=", 1)
	with pytest.raises(ValueError):
		where("field", "in", "not-a-list")


@pytest.mark.asyncio
async def test_query_filters_orders_and_limits():
	store = MemoryDocumentStore()
	await store.create("items", {"group": "a", "rank": 3, "tags": ["red"]}, doc_id="one")
	await store.create("items", {"group": "a", "rank": 1, "tags": ["blue"]}, doc_id="two")
	await store.create("items", {"group": "a", "rank": None}, doc_id="three")
	await store.create("items", {"group": "b", "rank": 2}, doc_id="four")

	ordered = await store.query("items", [where("group", "==", "a")], order_by="rank")
	assert [doc["id"] for doc in ordered] == ["two", "one", "three"]

	newest = await store.query("items", [where("group", "==", "a")], order_by="rank", descending=True, limit=1)
	assert [doc["id"] for doc in newest] == ["one"]

	tagged = await store.query("items", [where("tags", "array_contains", "blue")])
	assert [doc["id"] for doc in tagged] == ["two"]

	picked = await store.query("items", [where("rank", "in", [2, 3])], order_by="rank")
	assert [doc["id"] for doc in picked] == ["four", "one"]


@pytest.mark.asyncio
async def test_reads_return_copies():
	store = MemoryDocumentStore()
	await store.create("items", {"tags": ["a"]}, doc_id="doc")
	doc = await store.get("items", "doc")
	doc["tags"].append("mutated")
	again = await store.get("items", "doc")
	assert again == {"id": "doc", "tags": ["a"]}


@pytest.mark.asyncio
async def test_create_if_absent_claims_once():
	store = MemoryDocumentStore()
	assert await store.create_if_absent("claims", "k", {"owner": "first"}) is True
	assert await store.create_if_absent("claims", "k", {"owner": "second"}) is False
	doc = await store.get("claims", "k")
	assert doc["owner"] == "first"


@pytest.mark.asyncio
async def test_update_missing_document_raises():
	store = MemoryDocumentStore()
	with pytest.raises(NotFound):
		await store.update("items", "missing", {"a": 1})


@pytest.mark.asyncio
async def test_get_many_rejects_oversized_batches():
	store = MemoryDocumentStore()
	with pytest.raises(ValueError):
		await store.get_many("items", [str(index) for index in range(11)])


@pytest.mark.asyncio
async def test_get_all_batches_and_keeps_order():
	store = MemoryDocumentStore()
	ids = [f"doc-{index:02d}" for index in range(23)]
	for doc_id in ids:
		await store.create("items", {"n": doc_id}, doc_id=doc_id)
	wanted = list(reversed(ids)) + ["missing", ids[0]]
	docs = await get_all(store, "items", wanted)
	assert [doc["id"] for doc in docs] == list(reversed(ids))


@pytest.mark.asyncio
async def test_transaction_rolls_back_on_error():
	store = MemoryDocumentStore()
	await store.create("counters", {"value": 1}, doc_id="c")
	with pytest.raises(RuntimeError):
		async with store.transaction() as tx:
			await tx.update("counters", "c", {"value": Increment(1)})
			await tx.create("counters", {"value": 0}, doc_id="new")
			raise RuntimeError("boom")
	assert (await store.get("counters", "c"))["value"] == 1
	assert await store.get("counters", "new") is None


@pytest.mark.asyncio
async def test_transaction_publishes_on_success():
	store = MemoryDocumentStore()
	async with store.transaction() as tx:
		await tx.create("counters", {"value": 0}, doc_id="c")
		await tx.update("counters", "c", {"value": Increment(2)})
		inside = await tx.get("counters", "c")
		assert inside["value"] == 2
	assert (await store.get("counters", "c"))["value"] == 2
