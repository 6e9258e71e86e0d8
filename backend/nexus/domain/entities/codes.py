"""Access code generation, claiming and resolution.

A code is claimed by a conditional insert of ``access_codes/{kind}:{code}``
inside the creating transaction; a taken code is regenerated up to
``ACCESS_CODE_MAX_ATTEMPTS`` times.
"""

from __future__ import annotations

import logging
import secrets
import string
from typing import Callable, Optional

from nexus.domain.common.errors import CodeSpaceExhausted, NotFound, ValidationFailed
from nexus.domain.entities.models import CodeStyle, EntityKind, spec_for
from nexus.infra.documents import SERVER_TIMESTAMP, DocumentOps, where
from nexus.settings import Settings

logger = logging.getLogger(__name__)

CODES_COLLECTION = "access_codes"
_ALNUM = string.ascii_uppercase + string.digits

CodeGenerator = Callable[[EntityKind], str]


def normalize(code: str) -> str:
	"""Trim and upper-case a human-entered code."""
	value = (code or "").strip().upper()
	if not value:
		raise ValidationFailed("access_code_empty")
	return value


def random_code(kind: EntityKind) -> str:
	spec = spec_for(kind)
	if spec.code_style is CodeStyle.LETTERS3_DIGITS3:
		letters = "".join(secrets.choice(string.ascii_uppercase) for _ in range(3))
		return f"{letters}{100 + secrets.randbelow(900)}"
	return "".join(secrets.choice(_ALNUM) for _ in range(6))


def _claim_id(kind: EntityKind, code: str) -> str:
	return f"{EntityKind(kind).value}:{code}"


class AccessCodes:
	def __init__(self, store: DocumentOps, settings: Settings, generator: Optional[CodeGenerator] = None) -> None:
		self._store = store
		self._max_attempts = max(1, settings.access_code_max_attempts)
		self._generator = generator or random_code

	def generate(self, kind: EntityKind) -> str:
		return self._generator(EntityKind(kind))

	async def claim(self, ops: DocumentOps, kind: EntityKind, entity_id: str) -> str:
		for attempt in range(1, self._max_attempts + 1):
			code = self.generate(kind)
			claimed = await ops.create_if_absent(
				CODES_COLLECTION,
				_claim_id(kind, code),
				{"kind": EntityKind(kind).value, "entityId": entity_id, "createdAt": SERVER_TIMESTAMP},
			)
			if claimed:
				return code
			logger.info("access code collision", extra={"kind": EntityKind(kind).value, "attempt": attempt})
		logger.warning("access code space exhausted", extra={"kind": EntityKind(kind).value})
		raise CodeSpaceExhausted()

	async def release(self, ops: DocumentOps, kind: EntityKind, code: str) -> None:
		if code:
			await ops.delete(CODES_COLLECTION, _claim_id(kind, code))

	async def resolve(self, kind: EntityKind, code: str, *, ops: Optional[DocumentOps] = None) -> str:
		"""Return the id of the entity of ``kind`` carrying ``code``."""
		spec = spec_for(kind)
		normalized = normalize(code)
		docs = await (ops or self._store).query(
			spec.collection,
			[where("accessCode", "==", normalized)],
			limit=1,
		)
		if not docs:
			raise NotFound("access_code_not_found")
		return str(docs[0]["id"])
