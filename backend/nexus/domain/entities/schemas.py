"""Pydantic schemas for resource, course and project endpoints."""

from __future__ import annotations

from typing import Dict, List, Optional, Type

from pydantic import BaseModel, Field

from nexus.domain.entities.models import EntityKind

STATUS_PATTERN = "^(Open|In Progress|Completed)$"
MILESTONE_PATTERN = "^(pending|in-progress|completed)$"


class Milestone(BaseModel):
    title: str = Field(..., min_length=1, max_length=120)
    status: str = Field(default="pending", pattern=MILESTONE_PATTERN)
    date: str = Field(default="", max_length=40)


class MilestoneStatusRequest(BaseModel):
    status: str = Field(..., pattern=MILESTONE_PATTERN)


class ResourceCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    subject: str = Field(default="", max_length=120)
    description: str = Field(default="", max_length=2000)
    coverColor: Optional[str] = Field(default=None, max_length=32)


class ResourcePatch(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    subject: Optional[str] = Field(default=None, max_length=120)
    description: Optional[str] = Field(default=None, max_length=2000)
    coverColor: Optional[str] = Field(default=None, max_length=32)


class CourseCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=120)
    description: str = Field(default="", max_length=2000)


class CoursePatch(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=120)
    description: Optional[str] = Field(default=None, max_length=2000)


class ProjectCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=120)
    description: str = Field(default="", max_length=5000)
    category: str = Field(default="", max_length=80)
    tech: List[str] = Field(default_factory=list)
    college: str = Field(default="", max_length=120)
    branch: str = Field(default="", max_length=120)
    status: str = Field(default="Open", pattern=STATUS_PATTERN)
    milestones: List[Milestone] = Field(default_factory=list)


class ProjectPatch(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=120)
    description: Optional[str] = Field(default=None, max_length=5000)
    category: Optional[str] = Field(default=None, max_length=80)
    tech: Optional[List[str]] = None
    college: Optional[str] = Field(default=None, max_length=120)
    branch: Optional[str] = Field(default=None, max_length=120)
    status: Optional[str] = Field(default=None, pattern=STATUS_PATTERN)
    milestones: Optional[List[Milestone]] = None


class JoinRequest(BaseModel):
    role: Optional[str] = Field(default=None, max_length=80)


class JoinByCodeRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=32)


class EnrollMemberRequest(BaseModel):
    principal_id: str = Field(..., min_length=1)
    role: Optional[str] = Field(default=None, max_length=80)


CREATE_SCHEMAS: Dict[EntityKind, Type[BaseModel]] = {
    EntityKind.RESOURCE: ResourceCreate,
    EntityKind.COURSE: CourseCreate,
    EntityKind.PROJECT: ProjectCreate,
}

PATCH_SCHEMAS: Dict[EntityKind, Type[BaseModel]] = {
    EntityKind.RESOURCE: ResourcePatch,
    EntityKind.COURSE: CoursePatch,
    EntityKind.PROJECT: ProjectPatch,
}
