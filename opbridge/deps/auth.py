from __future__ import annotations

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security.utils import get_authorization_scheme_param
from sqlalchemy.orm import Session

from ..core.security import TokenPayload, decode_token
from ..crud.users import get_user
from ..db.session import get_db
from ..middlewares import principal_ctx_var
from ..models.user import User


class AuthContext:
    def __init__(self, *, user: User, payload: TokenPayload) -> None:
        self.user = user
        self.payload = payload

    @property
    def api_token(self) -> str | None:
        return self.user.api_token


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _set_principal(request: Request, principal: str) -> None:
    principal_ctx_var.set(principal)
    request.state.principal = principal


def require_user(
    request: Request,
    authorization: str | None = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db),
) -> AuthContext:
    scheme, credentials = get_authorization_scheme_param(authorization)
    if not authorization or scheme.lower() != "bearer" or not credentials:
        raise _unauthorized("No token provided")
    try:
        payload = decode_token(credentials)
    except ValueError as exc:
        raise _unauthorized(str(exc)) from exc
    user = get_user(db, payload.user_id)
    if user is None:
        raise _unauthorized("User no longer exists")
    _set_principal(request, f"user:{user.id}")
    request.state.token_payload = payload
    return AuthContext(user=user, payload=payload)
