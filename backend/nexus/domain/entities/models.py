"""Entity kinds and the persisted entity shape."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from nexus.domain.common.errors import ValidationFailed

PROJECT_STATUSES = ("Open", "In Progress", "Completed")
MILESTONE_STATUSES = ("pending", "in-progress", "completed")

# Stored on every entity and never writable through a plain update.
IMMUTABLE_FIELDS = frozenset({"id", "ownerId", "accessCode", "memberCount", "createdAt"})


class EntityKind(str, Enum):
    RESOURCE = "resource"
    COURSE = "course"
    PROJECT = "project"


class CodeStyle(str, Enum):
    ALNUM6 = "alnum6"
    LETTERS3_DIGITS3 = "letters3_digits3"


@dataclass(frozen=True, slots=True)
class KindSpec:
    kind: EntityKind
    collection: str
    member_field: str
    owned_field: str
    code_style: CodeStyle
    supports_leave: bool
    required: Tuple[str, ...]
    fields: Tuple[str, ...]
    owner_only_fields: Tuple[str, ...] = ()
    defaults: Mapping[str, Any] = field(default_factory=dict)


KINDS: Dict[EntityKind, KindSpec] = {
    EntityKind.RESOURCE: KindSpec(
        kind=EntityKind.RESOURCE,
        collection="resources",
        member_field="enrolledResources",
        owned_field="resources",
        code_style=CodeStyle.ALNUM6,
        supports_leave=False,
        required=("name",),
        fields=("name", "subject", "description", "coverColor"),
        defaults={"subject": "", "description": "", "coverColor": None},
    ),
    EntityKind.COURSE: KindSpec(
        kind=EntityKind.COURSE,
        collection="courses",
        member_field="enrolledCourses",
        owned_field="courses",
        code_style=CodeStyle.LETTERS3_DIGITS3,
        supports_leave=False,
        required=("title",),
        fields=("title", "description"),
        defaults={"description": ""},
    ),
    EntityKind.PROJECT: KindSpec(
        kind=EntityKind.PROJECT,
        collection="projects",
        member_field="collaboratingProjects",
        owned_field="projects",
        code_style=CodeStyle.ALNUM6,
        supports_leave=True,
        required=("title",),
        fields=("title", "description", "category", "tech", "college", "branch", "status", "milestones"),
        owner_only_fields=("category", "college", "branch"),
        defaults={
            "description": "",
            "category": "",
            "tech": [],
            "college": "",
            "branch": "",
            "status": "Open",
            "milestones": [],
        },
    ),
}

# URL segment -> kind
ROUTE_KINDS: Dict[str, EntityKind] = {
    "resources": EntityKind.RESOURCE,
    "courses": EntityKind.COURSE,
    "projects": EntityKind.PROJECT,
}


def milestone_progress(milestones: Sequence[Mapping[str, Any]]) -> int:
    """Whole percentage of completed milestones, rounding halves up."""
    if not milestones:
        return 0
    done = sum(1 for item in milestones if item.get("status") == "completed")
    return int(math.floor(done * 100 / len(milestones) + 0.5))


def spec_for(kind: EntityKind | str) -> KindSpec:
    try:
        return KINDS[EntityKind(kind)]
    except ValueError as exc:
        raise ValidationFailed("unknown_kind") from exc


@dataclass(slots=True)
class Entity:
    """A resource, course or project as stored."""

    id: str
    kind: EntityKind
    owner_id: str
    owner_name: str
    access_code: str
    member_count: int
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    attrs: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_doc(cls, kind: EntityKind, doc: Mapping[str, Any]) -> "Entity":
        spec = KINDS[kind]
        return cls(
            id=str(doc["id"]),
            kind=kind,
            owner_id=str(doc.get("ownerId") or ""),
            owner_name=str(doc.get("ownerName") or ""),
            access_code=str(doc.get("accessCode") or ""),
            member_count=int(doc.get("memberCount") or 0),
            created_at=doc.get("createdAt"),
            updated_at=doc.get("updatedAt"),
            attrs={
                key: value
                for key, value in doc.items()
                if key in spec.fields or key in ("likes", "views", "collaborators", "progress")
            },
        )

    def is_owner(self, principal_id: str) -> bool:
        return self.owner_id == principal_id

    def collaborator_ids(self) -> list[str]:
        return [str(item.get("id")) for item in self.attrs.get("collaborators") or [] if isinstance(item, dict)]

    def to_dict(self) -> dict:
        payload: Dict[str, Any] = {
            "id": self.id,
            "kind": self.kind.value,
            "ownerId": self.owner_id,
            "ownerName": self.owner_name,
            "accessCode": self.access_code,
            "memberCount": self.member_count,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        payload.update(self.attrs)
        return payload
