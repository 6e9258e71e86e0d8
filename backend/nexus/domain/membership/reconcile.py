"""Recompute member counters from the principals' membership sets."""

from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timezone

from nexus.domain.entities.models import KINDS
from nexus.domain.entities.store import EntityStore
from nexus.domain.identity.models import USERS_COLLECTION
from nexus.infra.documents import DocumentStore
from nexus.obs import metrics

logger = logging.getLogger(__name__)

_JOB_NAME = "membership-reconcile"


class MembershipReconciler:
	"""Rewrites ``memberCount`` wherever it drifted from the membership sets."""

	def __init__(self, store: DocumentStore, entities: EntityStore) -> None:
		self._store = store
		self._entities = entities

	async def run_once(self) -> int:
		started = datetime.now(timezone.utc)
		try:
			corrected = await self._reconcile()
			metrics.record_job_run(_JOB_NAME, result="success")
			return corrected
		except Exception:
			metrics.record_job_run(_JOB_NAME, result="error")
			logger.warning("membership reconcile failed", exc_info=True)
			raise
		finally:
			duration = (datetime.now(timezone.utc) - started).total_seconds()
			metrics.BACKGROUND_DURATION.labels(name=_JOB_NAME).observe(duration)

	async def _reconcile(self) -> int:
		corrected = 0
		async with self._store.transaction() as tx:
			principals = await tx.query(USERS_COLLECTION)
			for spec in KINDS.values():
				expected: Counter[str] = Counter()
				for principal in principals:
					for entity_id in set(principal.get(spec.member_field) or []):
						expected[entity_id] += 1
				drifted = 0
				for entity in await self._entities.list(spec.kind, order_by=None, ops=tx):
					actual = expected.get(entity.id, 0)
					if entity.member_count != actual:
						await self._entities.set_member_count(spec.kind, entity.id, actual, ops=tx)
						logger.info(
							"member count corrected",
							extra={
								"kind": spec.kind.value,
								"entity_id": entity.id,
								"stored": entity.member_count,
								"expected": actual,
							},
						)
						drifted += 1
				metrics.inc_reconcile_correction(spec.kind.value, drifted)
				corrected += drifted
		return corrected
