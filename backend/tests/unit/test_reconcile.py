import pytest

from nexus.domain.entities.models import EntityKind
from nexus.infra.scheduler import JobScheduler


@pytest.mark.asyncio
async def test_reconciler_rewrites_drifted_counts(services, store, teacher, make_principal):
	course = await services.entities.create(teacher.id, EntityKind.COURSE, {"title": "Operating Systems"})
	resource = await services.entities.create(teacher.id, EntityKind.RESOURCE, {"name": "Slides"})
	for principal_id in ("a", "b"):
		await make_principal(principal_id)
		await services.ledger.join(principal_id, EntityKind.COURSE, course.id)
	await services.ledger.join("a", EntityKind.RESOURCE, resource.id)

	await store.update("courses", course.id, {"memberCount": 7})

	corrected = await services.reconciler.run_once()

	assert corrected == 1
	assert (await services.entities.get(EntityKind.COURSE, course.id)).member_count == 2
	assert (await services.entities.get(EntityKind.RESOURCE, resource.id)).member_count == 1
	assert await services.reconciler.run_once() == 0


@pytest.mark.asyncio
async def test_scheduler_registers_reconcile_job(services):
	scheduler = JobScheduler()
	scheduler.start()
	try:
		scheduler.schedule_hourly("membership-reconcile", services.reconciler.run_once, hours=2)
		assert scheduler.job_ids() == ["membership-reconcile"]
	finally:
		scheduler.shutdown()
