"""Owned content records hanging off an entity."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from nexus.domain.entities.models import EntityKind
from nexus.infra.documents import DocumentOps, where

ANNOUNCEMENTS = "announcements"
COMMENTS = "comments"
MATERIALS = "materials"
ASSIGNMENTS = "assignments"
SUBMISSIONS = "submissions"
MESSAGES = "messages"

CONTENT_COLLECTIONS = (COMMENTS, ANNOUNCEMENTS, MATERIALS, SUBMISSIONS, ASSIGNMENTS, MESSAGES)


def parent_filters(kind: EntityKind, parent_id: str) -> list:
    return [where("parentKind", "==", EntityKind(kind).value), where("parentId", "==", parent_id)]


async def purge_parent(ops: DocumentOps, kind: EntityKind, parent_id: str) -> int:
    """Delete every content record that points back at the given entity."""
    removed = 0
    for collection in CONTENT_COLLECTIONS:
        for doc in await ops.query(collection, parent_filters(kind, parent_id)):
            await ops.delete(collection, doc["id"])
            removed += 1
    return removed


@dataclass(slots=True)
class Announcement:
    id: str
    parent_kind: str
    parent_id: str
    author_id: str
    author_name: str
    title: str
    content: str
    comments: int = 0
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_doc(cls, doc: Mapping[str, Any]) -> "Announcement":
        return cls(
            id=doc["id"],
            parent_kind=doc["parentKind"],
            parent_id=doc["parentId"],
            author_id=doc["authorId"],
            author_name=doc.get("authorName") or "",
            title=doc.get("title") or "",
            content=doc.get("content") or "",
            comments=int(doc.get("comments") or 0),
            created_at=doc.get("createdAt"),
            updated_at=doc.get("updatedAt"),
        )


@dataclass(slots=True)
class Comment:
    id: str
    announcement_id: str
    parent_kind: str
    parent_id: str
    author_id: str
    author_name: str
    content: str
    created_at: Optional[str] = None

    @classmethod
    def from_doc(cls, doc: Mapping[str, Any]) -> "Comment":
        return cls(
            id=doc["id"],
            announcement_id=doc["announcementId"],
            parent_kind=doc["parentKind"],
            parent_id=doc["parentId"],
            author_id=doc["authorId"],
            author_name=doc.get("authorName") or "",
            content=doc.get("content") or "",
            created_at=doc.get("createdAt"),
        )


@dataclass(slots=True)
class Material:
    id: str
    parent_kind: str
    parent_id: str
    title: str
    url: Optional[str] = None
    description: str = ""
    created_at: Optional[str] = None

    @classmethod
    def from_doc(cls, doc: Mapping[str, Any]) -> "Material":
        return cls(
            id=doc["id"],
            parent_kind=doc["parentKind"],
            parent_id=doc["parentId"],
            title=doc.get("title") or "",
            url=doc.get("url"),
            description=doc.get("description") or "",
            created_at=doc.get("createdAt"),
        )


@dataclass(slots=True)
class Assignment:
    id: str
    parent_kind: str
    parent_id: str
    title: str
    description: str
    due_date: str
    points: int
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_doc(cls, doc: Mapping[str, Any]) -> "Assignment":
        return cls(
            id=doc["id"],
            parent_kind=doc["parentKind"],
            parent_id=doc["parentId"],
            title=doc.get("title") or "",
            description=doc.get("description") or "",
            due_date=doc["dueDate"],
            points=int(doc.get("points") or 0),
            created_at=doc.get("createdAt"),
            updated_at=doc.get("updatedAt"),
        )


@dataclass(slots=True)
class Submission:
    id: str
    assignment_id: str
    parent_kind: str
    parent_id: str
    student_id: str
    student_name: str
    content: str
    attachments: List[str] = field(default_factory=list)
    grade: Optional[float] = None
    feedback: Optional[str] = None
    submitted_at: Optional[str] = None
    graded_at: Optional[str] = None
    resubmitted: bool = False

    @classmethod
    def from_doc(cls, doc: Mapping[str, Any]) -> "Submission":
        return cls(
            id=doc["id"],
            assignment_id=doc["assignmentId"],
            parent_kind=doc["parentKind"],
            parent_id=doc["parentId"],
            student_id=doc["studentId"],
            student_name=doc.get("studentName") or "",
            content=doc.get("content") or "",
            attachments=list(doc.get("attachments") or []),
            grade=doc.get("grade"),
            feedback=doc.get("feedback"),
            submitted_at=doc.get("submittedAt"),
            graded_at=doc.get("gradedAt"),
            resubmitted=bool(doc.get("resubmitted")),
        )


@dataclass(slots=True)
class GradebookRow:
    student_id: str
    student_name: str
    grades: Dict[str, Optional[float]] = field(default_factory=dict)
    average_percent: Optional[float] = None


@dataclass(slots=True)
class Message:
    """One post in a project's collaborator thread."""

    id: str
    parent_kind: str
    parent_id: str
    author_id: str
    author_name: str
    content: str
    author_photo_url: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_doc(cls, doc: Mapping[str, Any]) -> "Message":
        return cls(
            id=doc["id"],
            parent_kind=doc["parentKind"],
            parent_id=doc["parentId"],
            author_id=doc["authorId"],
            author_name=doc.get("authorName") or "",
            content=doc.get("content") or "",
            author_photo_url=doc.get("authorPhotoURL"),
            created_at=doc.get("createdAt"),
        )
