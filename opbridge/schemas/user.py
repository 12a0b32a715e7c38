"""Pydantic schemas for the local user endpoints."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    openproject_id: str
    name: str
    email: Optional[str] = None
    avatar_url: Optional[str] = None
    roles: list[str] = Field(default_factory=list)
    last_sync: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class UserCreate(BaseModel):
    openproject_id: str | int
    name: str
    email: str
    roles: list[str] = Field(default_factory=list)


class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    roles: Optional[list[str]] = None


class SyncRequest(BaseModel):
    openproject_id: str | int


class UserResponse(BaseModel):
    user: UserOut
    message: Optional[str] = None


class AvatarResponse(UserResponse):
    avatar_url: str = Field(serialization_alias="avatarUrl")
