import pytest

from nexus.domain.access import gate
from nexus.domain.access.gate import COLLABORATOR_ACTIONS, OWNER_ACTIONS, TEACHER_SURFACES, Action
from nexus.domain.common.errors import Denied
from nexus.domain.entities.models import Entity, EntityKind
from nexus.domain.identity.models import Principal, Role


def _principal(principal_id: str, role: Role = Role.STUDENT) -> Principal:
	return Principal(id=principal_id, email=f"{principal_id}@example.edu", display_name=principal_id, role=role)


def _course(owner_id: str) -> Entity:
	return Entity(
		id="course-1",
		kind=EntityKind.COURSE,
		owner_id=owner_id,
		owner_name=owner_id,
		access_code="ABC123",
		member_count=0,
	)


@pytest.mark.parametrize("action", sorted(OWNER_ACTIONS, key=lambda item: item.value))
def test_owner_actions_follow_ownership(action):
	owner = _principal("owner", Role.TEACHER)
	other_teacher = _principal("other", Role.TEACHER)
	course = _course(owner.id)

	assert gate.authorize(owner, course, action).allowed
	denied = gate.authorize(other_teacher, course, action)
	assert not denied.allowed
	assert denied.reason == "not owner"


def test_owner_action_without_entity_is_denied():
	decision = gate.authorize(_principal("owner", Role.TEACHER), None, Action.GRADE)
	assert decision == gate.Decision(allowed=False, reason="not owner")


def test_short_aliases_match_entity_actions():
	owner = _principal("owner")
	course = _course(owner.id)
	assert gate.authorize(owner, course, "delete").allowed
	assert gate.authorize(_principal("someone"), course, "delete").reason == "not owner"
	assert gate.authorize(_principal("someone"), course, "update").reason == "not owner"


@pytest.mark.parametrize("action", sorted(TEACHER_SURFACES, key=lambda item: item.value))
def test_teacher_surfaces_follow_role(action):
	assert gate.authorize(_principal("t", Role.TEACHER), None, action).allowed
	decision = gate.authorize(_principal("s"), None, action)
	assert not decision.allowed
	assert decision.reason == "not instructor"


def test_other_actions_are_allowed():
	student = _principal("s")
	assert gate.authorize(student, None, Action.READ).allowed
	assert gate.authorize(student, None, Action.CREATE_PROJECT).allowed
	assert gate.authorize(student, _course("owner"), "view").allowed


def test_ensure_raises_with_reason():
	with pytest.raises(Denied) as excinfo:
		gate.ensure(_principal("s"), None, Action.CREATE_COURSE)
	assert excinfo.value.reason == "not instructor"
	assert excinfo.value.status_code == 403
	gate.ensure(_principal("t", Role.TEACHER), None, Action.CREATE_COURSE)


@pytest.mark.parametrize("action", sorted(COLLABORATOR_ACTIONS, key=lambda item: item.value))
def test_workspace_actions_follow_collaboration(action):
	project = Entity(
		id="project-1",
		kind=EntityKind.PROJECT,
		owner_id="owner",
		owner_name="owner",
		access_code="QWE123",
		member_count=1,
		attrs={"collaborators": [{"id": "crew", "name": "crew", "role": "Developer"}]},
	)

	assert gate.authorize(_principal("owner"), project, action).allowed
	assert gate.authorize(_principal("crew"), project, action).allowed
	decision = gate.authorize(_principal("visitor", Role.TEACHER), project, action)
	assert decision == gate.Decision(allowed=False, reason="not collaborator")
	assert not gate.authorize(_principal("crew"), None, action).allowed
