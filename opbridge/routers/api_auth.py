from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ..core.errors import OpenProjectError, UpstreamUnavailable
from ..core.security import issue_session_token
from ..crud.users import DuplicateUser, record_login
from ..db.session import get_db
from ..schemas.auth import IdentityResponse, OpenProjectIdentity, OpenProjectLoginRequest, SessionResponse
from ..schemas.user import UserOut
from ..services.openproject import OpenProjectClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["auth"])


async def _verify_openproject_token(api_token: str) -> dict:
    async with OpenProjectClient.from_settings(api_token) as client:
        try:
            return await client.whoami()
        except UpstreamUnavailable:
            raise
        except OpenProjectError as exc:
            logger.info("OpenProject token rejected (%s)", exc.status_code)
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid OpenProject token",
            ) from exc


@router.post("/auth/openproject", response_model=SessionResponse, summary="Exchange an OpenProject token for a session")
async def login_with_openproject(payload: OpenProjectLoginRequest, db: Session = Depends(get_db)):
    identity = await _verify_openproject_token(payload.api_token)
    try:
        user = record_login(db, identity, payload.api_token)
    except DuplicateUser as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    session = issue_session_token(
        user.id,
        name=user.name,
        email=user.email,
        openproject_id=user.openproject_id,
    )
    logger.info("Session issued", extra={"extra_data": {"user_id": user.id}})
    return SessionResponse(
        token=session.token,
        token_type=session.token_type,
        expires_in=session.expires_in,
        user=UserOut.model_validate(user),
    )


@router.post("/projects/login", response_model=IdentityResponse, summary="Validate an OpenProject token")
async def verify_openproject_token(payload: OpenProjectLoginRequest):
    identity = await _verify_openproject_token(payload.api_token)
    return IdentityResponse(user=OpenProjectIdentity.model_validate(identity))
