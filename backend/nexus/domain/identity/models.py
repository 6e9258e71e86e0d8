"""Domain models for principals and their sessions."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

USERS_COLLECTION = "users"
CREDENTIALS_COLLECTION = "credentials"
LINKS_COLLECTION = "identity_links"

MEMBERSHIP_FIELDS = (
    "enrolledResources",
    "enrolledCourses",
    "collaboratingProjects",
    "resources",
    "courses",
    "projects",
    "starredResources",
    "likedProjects",
)


class Role(str, Enum):
    STUDENT = "student"
    TEACHER = "teacher"


@dataclass(slots=True)
class Principal:
    """Stored principal record; the role here is authoritative."""

    id: str
    email: str
    display_name: str
    role: Role
    photo_url: Optional[str] = None
    created_at: Optional[str] = None
    sets: Dict[str, List[str]] = field(default_factory=dict)

    @classmethod
    def from_doc(cls, doc: Mapping[str, Any]) -> "Principal":
        return cls(
            id=str(doc["id"]),
            email=str(doc.get("email") or ""),
            display_name=str(doc.get("displayName") or ""),
            role=Role(doc.get("role") or Role.STUDENT.value),
            photo_url=doc.get("photoURL"),
            created_at=doc.get("createdAt"),
            sets={name: list(doc.get(name) or []) for name in MEMBERSHIP_FIELDS},
        )

    def members_of(self, set_field: str) -> List[str]:
        return list(self.sets.get(set_field, []))

    def is_teacher(self) -> bool:
        return self.role is Role.TEACHER

    def to_dict(self) -> dict:
        payload: Dict[str, Any] = {
            "id": self.id,
            "email": self.email,
            "displayName": self.display_name,
            "role": self.role.value,
            "photoURL": self.photo_url,
            "createdAt": self.created_at,
        }
        payload.update({name: list(values) for name, values in self.sets.items()})
        return payload


@dataclass(slots=True)
class Session:
    access_token: str
    session_id: str
    principal: Principal
    expires_in: int

    def to_dict(self) -> dict:
        return {
            "access_token": self.access_token,
            "token_type": "bearer",
            "session_id": self.session_id,
            "expires_in": self.expires_in,
            "principal": self.principal.to_dict(),
        }


@dataclass(slots=True)
class FederatedClaims:
    provider: str
    subject: str
    email: str
    email_verified: bool = False
    name: Optional[str] = None
    picture: Optional[str] = None
