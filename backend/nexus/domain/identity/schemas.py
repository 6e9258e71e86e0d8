"""Pydantic schemas for identity endpoints."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class SignUpRequest(BaseModel):
    email: str = Field(..., max_length=254)
    password: str = Field(..., min_length=1, max_length=256)
    display_name: str = Field(..., max_length=80)
    role: str = Field(default="student", pattern="^(student|teacher)$")


class SignInRequest(BaseModel):
    email: str = Field(..., max_length=254)
    password: str = Field(..., max_length=256)


class ProfilePatch(BaseModel):
    display_name: Optional[str] = Field(default=None, max_length=80)
    role: Optional[str] = Field(default=None, pattern="^(student|teacher)$")
    photo_url: Optional[str] = Field(default=None, max_length=2048)


class PasswordResetRequest(BaseModel):
    email: str = Field(..., max_length=254)


class PasswordResetConfirm(BaseModel):
    token: str = Field(..., min_length=8, max_length=256)
    new_password: str = Field(..., max_length=256)


class FederatedSignInRequest(BaseModel):
    id_token: str = Field(..., min_length=1)
