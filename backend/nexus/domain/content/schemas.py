"""Pydantic schemas for announcements, materials and coursework."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class AnnouncementCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    content: str = Field(..., min_length=1, max_length=10000)


class AnnouncementPatch(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    content: Optional[str] = Field(default=None, min_length=1, max_length=10000)


class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=2000)


class MaterialCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    url: Optional[str] = Field(default=None, max_length=2048)
    description: str = Field(default="", max_length=2000)


class AssignmentCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(default="", max_length=10000)
    due_date: datetime
    points: int = Field(..., gt=0)


class SubmissionCreate(BaseModel):
    content: str = Field(default="", max_length=20000)
    attachments: List[str] = Field(default_factory=list)


class GradeRequest(BaseModel):
    grade: float = Field(..., ge=0)
    feedback: Optional[str] = Field(default=None, max_length=5000)


class AssignmentPatch(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=10000)
    due_date: Optional[datetime] = None
    points: Optional[int] = Field(default=None, gt=0)


class MessageCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=4000)
