"""Stateless authorization checks for owner and instructor actions."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from nexus.domain.common.errors import Denied
from nexus.domain.entities.models import Entity
from nexus.domain.identity.models import Principal
from nexus.obs import metrics

logger = logging.getLogger(__name__)

NOT_OWNER = "not owner"
NOT_INSTRUCTOR = "not instructor"
NOT_COLLABORATOR = "not collaborator"


class Action(str, Enum):
	DELETE_ENTITY = "delete_entity"
	UPDATE_ENTITY = "update_entity"
	CREATE_MATERIAL = "create_material"
	REMOVE_MATERIAL = "remove_material"
	CREATE_ASSIGNMENT = "create_assignment"
	REMOVE_ASSIGNMENT = "remove_assignment"
	UPDATE_ASSIGNMENT = "update_assignment"
	GRADE = "grade"
	POST_ANNOUNCEMENT = "post_announcement"
	ENROLL_MEMBER = "enroll_member"
	VIEW_SUBMISSIONS = "view_submissions"
	CREATE_RESOURCE = "create_resource"
	CREATE_COURSE = "create_course"
	INSTRUCTOR_DASHBOARD = "instructor_dashboard"
	CREATE_PROJECT = "create_project"
	POST_MESSAGE = "post_message"
	VIEW_MESSAGES = "view_messages"
	UPDATE_MILESTONE = "update_milestone"
	READ = "read"


OWNER_ACTIONS = frozenset(
	{
		Action.DELETE_ENTITY,
		Action.UPDATE_ENTITY,
		Action.CREATE_MATERIAL,
		Action.REMOVE_MATERIAL,
		Action.CREATE_ASSIGNMENT,
		Action.REMOVE_ASSIGNMENT,
		Action.UPDATE_ASSIGNMENT,
		Action.GRADE,
		Action.POST_ANNOUNCEMENT,
		Action.ENROLL_MEMBER,
		Action.VIEW_SUBMISSIONS,
	}
)

TEACHER_SURFACES = frozenset({Action.CREATE_RESOURCE, Action.CREATE_COURSE, Action.INSTRUCTOR_DASHBOARD})

# Project workspace actions open to the owner and current collaborators.
COLLABORATOR_ACTIONS = frozenset({Action.POST_MESSAGE, Action.VIEW_MESSAGES, Action.UPDATE_MILESTONE})

_ALIASES = {"delete": Action.DELETE_ENTITY, "update": Action.UPDATE_ENTITY}


@dataclass(frozen=True, slots=True)
class Decision:
	allowed: bool
	reason: Optional[str] = None


ALLOWED = Decision(allowed=True)


def _as_action(action: Action | str) -> Optional[Action]:
	if isinstance(action, Action):
		return action
	if action in _ALIASES:
		return _ALIASES[action]
	try:
		return Action(action)
	except ValueError:
		return None


def authorize(principal: Principal, entity: Optional[Entity], action: Action | str) -> Decision:
	"""Evaluate owner rules, then instructor rules, then collaborator rules; anything else is allowed."""
	resolved = _as_action(action)
	if resolved in OWNER_ACTIONS:
		if entity is not None and entity.owner_id == principal.id:
			return ALLOWED
		return Decision(allowed=False, reason=NOT_OWNER)
	if resolved in TEACHER_SURFACES:
		if principal.is_teacher():
			return ALLOWED
		return Decision(allowed=False, reason=NOT_INSTRUCTOR)
	if resolved in COLLABORATOR_ACTIONS:
		if entity is not None and (entity.is_owner(principal.id) or principal.id in entity.collaborator_ids()):
			return ALLOWED
		return Decision(allowed=False, reason=NOT_COLLABORATOR)
	return ALLOWED


def ensure(principal: Principal, entity: Optional[Entity], action: Action | str) -> None:
	decision = authorize(principal, entity, action)
	if decision.allowed:
		return
	label = action.value if isinstance(action, Action) else str(action)
	metrics.inc_gate_denial(label)
	logger.info(
		"gate denied",
		extra={"principal_id": principal.id, "action": label, "reason": decision.reason},
	)
	raise Denied(decision.reason or NOT_OWNER)
