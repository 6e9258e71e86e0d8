"""Error taxonomy shared by the ledger, the role gate and the identity flows.

Every error is recoverable at the call site. The API layer maps ``status_code``
and ``detail`` onto the JSON response.
"""

from __future__ import annotations

from fastapi import status

if hasattr(status, "HTTP_422_UNPROCESSABLE_CONTENT"):
	_HTTP_422 = status.HTTP_422_UNPROCESSABLE_CONTENT
else:  # pragma: no cover - older Starlette builds
	_HTTP_422 = status.HTTP_422_UNPROCESSABLE_ENTITY


class NexusError(Exception):
	"""Base class for domain errors."""

	status_code: int = status.HTTP_400_BAD_REQUEST
	detail: str = "operation_failed"

	def __init__(self, detail: str | None = None) -> None:
		super().__init__(detail or self.detail)
		if detail:
			self.detail = detail


class NotFound(NexusError):
	"""Entity, principal or access code could not be resolved."""

	status_code = status.HTTP_404_NOT_FOUND
	detail = "not_found"


class AlreadyMember(NexusError):
	status_code = status.HTTP_409_CONFLICT
	detail = "already_member"


class SelfJoinForbidden(NexusError):
	status_code = status.HTTP_403_FORBIDDEN
	detail = "self_join_forbidden"


class NotMember(NexusError):
	status_code = status.HTTP_409_CONFLICT
	detail = "not_member"


class OwnerCannotLeave(NexusError):
	status_code = status.HTTP_409_CONFLICT
	detail = "owner_cannot_leave"


class LeaveUnsupported(NexusError):
	"""Only project collaboration has a leave path."""

	status_code = status.HTTP_400_BAD_REQUEST
	detail = "leave_unsupported"


class NotAccepting(NexusError):
	"""Project is not open for new collaborators."""

	status_code = status.HTTP_409_CONFLICT
	detail = "not_accepting_members"


class Denied(NexusError):
	"""Authorization failure carrying the gate's reason."""

	status_code = status.HTTP_403_FORBIDDEN
	detail = "denied"

	def __init__(self, reason: str) -> None:
		super().__init__(reason)
		self.reason = reason


class CollaboratorUnavailable(NexusError):
	"""The document store or identity backend failed or timed out."""

	status_code = status.HTTP_503_SERVICE_UNAVAILABLE
	detail = "collaborator_unavailable"


class ValidationFailed(NexusError):
	status_code = _HTTP_422
	detail = "validation_error"


class EmailTaken(NexusError):
	status_code = status.HTTP_409_CONFLICT
	detail = "email_taken"


class InvalidCredentials(NexusError):
	status_code = status.HTTP_401_UNAUTHORIZED
	detail = "invalid_credentials"


class InvalidToken(NexusError):
	status_code = status.HTTP_401_UNAUTHORIZED
	detail = "invalid_token"


class RateLimited(NexusError):
	status_code = status.HTTP_429_TOO_MANY_REQUESTS
	detail = "rate_limited"


class CodeSpaceExhausted(NexusError):
	"""No free access code found within the retry budget."""

	status_code = status.HTTP_409_CONFLICT
	detail = "access_code_exhausted"


class PastDue(NexusError):
	status_code = status.HTTP_409_CONFLICT
	detail = "past_due"


__all__ = [
	"AlreadyMember",
	"CodeSpaceExhausted",
	"CollaboratorUnavailable",
	"Denied",
	"EmailTaken",
	"InvalidCredentials",
	"InvalidToken",
	"LeaveUnsupported",
	"NexusError",
	"NotAccepting",
	"NotFound",
	"NotMember",
	"OwnerCannotLeave",
	"PastDue",
	"RateLimited",
	"SelfJoinForbidden",
	"ValidationFailed",
]
