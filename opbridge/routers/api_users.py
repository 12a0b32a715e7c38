from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from sqlalchemy.orm import Session

from ..core.config import get_settings
from ..core.errors import OpenProjectError, UpstreamUnavailable
from ..crud.users import (
    DuplicateUser,
    create_user,
    find_user,
    get_user_by_openproject_id,
    set_avatar,
    sync_from_openproject,
    update_profile,
)
from ..db.session import get_db
from ..deps.auth import AuthContext, require_user
from ..deps.openproject import get_openproject_client
from ..schemas.user import AvatarResponse, ProfileUpdate, SyncRequest, UserCreate, UserOut, UserResponse
from ..services.avatars import AvatarRejected, store_avatar
from ..services.openproject import OpenProjectClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"], dependencies=[Depends(require_user)])


def _user_response(user, message: str | None = None) -> UserResponse:
    return UserResponse(user=UserOut.model_validate(user), message=message)


@router.get("/profile", response_model=UserResponse)
def api_get_profile(auth: AuthContext = Depends(require_user)):
    return _user_response(auth.user)


@router.put("/profile", response_model=UserResponse)
def api_update_profile(
    payload: ProfileUpdate,
    auth: AuthContext = Depends(require_user),
    db: Session = Depends(get_db),
):
    try:
        user = update_profile(db, auth.user, payload.model_dump(exclude_unset=True))
    except DuplicateUser as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    return _user_response(user, "Profile updated")


@router.post("", response_model=UserResponse, status_code=201)
def api_create_user(payload: UserCreate, db: Session = Depends(get_db)):
    try:
        user = create_user(db, payload.model_dump())
    except DuplicateUser as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    return _user_response(user, "User created")


@router.post("/avatar", response_model=AvatarResponse)
async def api_upload_avatar(
    avatar: UploadFile = File(...),
    auth: AuthContext = Depends(require_user),
    db: Session = Depends(get_db),
):
    settings = get_settings()
    try:
        stored = store_avatar(
            avatar.file,
            avatar.filename,
            avatar.content_type,
            directory=settings.avatar_dir,
            max_bytes=settings.AVATAR_MAX_BYTES,
        )
    except AvatarRejected as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    finally:
        await avatar.close()
    avatar_url = settings.avatar_url(stored)
    user = set_avatar(db, auth.user, avatar_url)
    logger.info("Avatar stored", extra={"extra_data": {"user_id": user.id, "file": stored}})
    return AvatarResponse(user=UserOut.model_validate(user), message="Avatar updated", avatar_url=avatar_url)


@router.post("/sync", response_model=UserResponse)
async def api_sync_user(
    payload: SyncRequest,
    client: OpenProjectClient = Depends(get_openproject_client),
    db: Session = Depends(get_db),
):
    try:
        identity = await client.get_user(payload.openproject_id)
    except UpstreamUnavailable:
        raise
    except OpenProjectError as exc:
        if exc.status_code == status.HTTP_404_NOT_FOUND:
            raise HTTPException(status.HTTP_404_NOT_FOUND, "User not found in OpenProject") from exc
        raise
    try:
        user = sync_from_openproject(db, identity)
    except DuplicateUser as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return _user_response(user, "User synchronized with OpenProject")


@router.get("/by-openproject/{openproject_id}", response_model=UserResponse)
def api_get_by_openproject_id(openproject_id: str, db: Session = Depends(get_db)):
    user = get_user_by_openproject_id(db, openproject_id)
    if not user:
        raise HTTPException(404, "User not found")
    return _user_response(user)


@router.get("/lookup/{identifier}", response_model=UserResponse)
def api_lookup_user(identifier: str, db: Session = Depends(get_db)):
    user = find_user(db, identifier)
    if not user:
        raise HTTPException(404, "User not found")
    return _user_response(user)
