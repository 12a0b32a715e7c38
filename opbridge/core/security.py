from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt
from pydantic import BaseModel, ValidationError

from .config import Settings, get_settings

ALGORITHM = "HS256"
AUDIENCE = "opbridge-dashboard"
ISSUER = "opbridge"
TOKEN_TYPE = "session"


class SessionToken(BaseModel):
    token: str
    token_type: str = "bearer"
    expires_in: int


class TokenPayload(BaseModel):
    sub: str
    exp: datetime
    iat: datetime
    typ: str
    aud: str
    iss: str
    name: str | None = None
    email: str | None = None
    openproject_id: str | None = None

    @property
    def user_id(self) -> int:
        return int(self.sub)


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def issue_session_token(
    user_id: int,
    *,
    name: str | None = None,
    email: str | None = None,
    openproject_id: str | None = None,
    settings: Settings | None = None,
) -> SessionToken:
    """Sign a session JWT for a local user.

    The OpenProject credential stays in the user table; the token only names
    the local user so a leaked token cannot be replayed against OpenProject.
    """

    settings = settings or get_settings()
    now = _now()
    expires_delta = timedelta(hours=settings.JWT_TTL_HOURS)
    payload: dict[str, Any] = {
        "sub": str(user_id),
        "iat": int(now.timestamp()),
        "exp": int((now + expires_delta).timestamp()),
        "typ": TOKEN_TYPE,
        "aud": AUDIENCE,
        "iss": ISSUER,
    }
    if name:
        payload["name"] = name
    if email:
        payload["email"] = email
    if openproject_id:
        payload["openproject_id"] = str(openproject_id)
    token = jwt.encode(payload, settings.SESSION_SECRET, algorithm=ALGORITHM)
    return SessionToken(token=token, expires_in=int(expires_delta.total_seconds()))


def decode_token(token: str, *, settings: Settings | None = None) -> TokenPayload:
    settings = settings or get_settings()
    try:
        decoded = jwt.decode(
            token,
            settings.SESSION_SECRET,
            algorithms=[ALGORITHM],
            audience=AUDIENCE,
            issuer=ISSUER,
        )
    except JWTError as exc:
        raise ValueError("Invalid token") from exc
    try:
        payload = TokenPayload.model_validate(decoded)
    except ValidationError as exc:
        raise ValueError("Invalid token payload") from exc
    if payload.typ != TOKEN_TYPE:
        raise ValueError("Invalid token type")
    if not payload.sub.isdigit():
        raise ValueError("Invalid token subject")
    return payload
