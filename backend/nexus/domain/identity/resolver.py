"""Look up the stored principal behind an authenticated id."""

from __future__ import annotations

from typing import List

from nexus.domain.common.errors import NotFound
from nexus.domain.identity.models import USERS_COLLECTION, Principal
from nexus.infra.documents import DocumentOps

SEARCH_MIN_LEN = 3
SEARCH_MAX_RESULTS = 50


class IdentityResolver:
	def __init__(self, store: DocumentOps) -> None:
		self._store = store

	async def resolve(self, principal_id: str, *, ops: DocumentOps | None = None) -> Principal:
		"""Return the principal record; roles always come from here, never from token claims."""
		doc = await (ops or self._store).get(USERS_COLLECTION, principal_id)
		if doc is None:
			raise NotFound("principal_not_found")
		return Principal.from_doc(doc)

	async def search(self, query: str, *, limit: int = 10) -> List[Principal]:
		"""Case-insensitive prefix match on display name or email.

		Queries shorter than ``SEARCH_MIN_LEN`` characters return nothing.
		"""
		needle = (query or "").strip().lower()
		if len(needle) < SEARCH_MIN_LEN:
			return []
		limit = max(1, min(limit, SEARCH_MAX_RESULTS))
		found: List[Principal] = []
		for doc in await self._store.query(USERS_COLLECTION, order_by="displayName"):
			name = str(doc.get("displayName") or "").lower()
			email = str(doc.get("email") or "").lower()
			if name.startswith(needle) or email.startswith(needle):
				found.append(Principal.from_doc(doc))
				if len(found) >= limit:
					break
		return found
