from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from .user import UserOut


class OpenProjectLoginRequest(BaseModel):
    api_token: str = Field(..., alias="apiToken", min_length=1)

    model_config = {
        "populate_by_name": True,
        "json_schema_extra": {
            "example": {"apiToken": "<openproject api key>"}
        },
    }


class SessionResponse(BaseModel):
    ok: bool = True
    token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserOut

    model_config = {
        "json_schema_extra": {
            "example": {
                "ok": True,
                "token": "<jwt>",
                "token_type": "bearer",
                "expires_in": 86400,
                "user": {"id": 1, "openproject_id": "7", "name": "Ana", "email": "ana@example.com"},
            }
        }
    }


class OpenProjectIdentity(BaseModel):
    id: int | str
    name: Optional[str] = None
    email: Optional[str] = None


class IdentityResponse(BaseModel):
    ok: bool = True
    user: OpenProjectIdentity
