"""CRUD helpers for the local user table."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models.user import User


class DuplicateUser(ValueError):
    """A user with the same OpenProject id or email already exists."""


def _utcnow() -> str:
    return datetime.now(tz=timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def _clean(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _commit(db: Session, user: User) -> User:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise DuplicateUser("A user with that openproject_id or email already exists") from exc
    db.refresh(user)
    return user


def get_user(db: Session, user_id: int) -> User | None:
    return db.get(User, user_id)


def get_user_by_openproject_id(db: Session, openproject_id: str | int) -> User | None:
    stmt = select(User).where(User.openproject_id == str(openproject_id))
    return db.execute(stmt).scalars().first()


def find_user(db: Session, identifier: str) -> User | None:
    """Resolve a numeric id, an email address, or a partial name."""

    key = (identifier or "").strip()
    if not key:
        return None
    if key.isdigit():
        return get_user(db, int(key))
    if "@" in key:
        stmt = select(User).where(User.email == key)
    else:
        pattern = "%" + _escape_like(key) + "%"
        stmt = select(User).where(User.name.ilike(pattern, escape="\\")).order_by(User.id)
    return db.execute(stmt).scalars().first()


def create_user(db: Session, payload: dict) -> User:
    openproject_id = _clean(payload.get("openproject_id"))
    name = _clean(payload.get("name"))
    email = _clean(payload.get("email"))
    missing = [field for field, value in (("openproject_id", openproject_id), ("name", name), ("email", email)) if not value]
    if missing:
        raise ValueError(f"Missing required fields: {', '.join(missing)}")
    now = _utcnow()
    user = User(
        openproject_id=openproject_id,
        name=name,
        email=email,
        avatar_url=_clean(payload.get("avatar_url")),
        created_at=now,
        updated_at=now,
    )
    user.roles = payload.get("roles") or []
    db.add(user)
    return _commit(db, user)


def update_profile(db: Session, user: User, payload: dict) -> User:
    if "name" in payload:
        name = _clean(payload.get("name"))
        if not name:
            raise ValueError("name is required")
        user.name = name
    if "email" in payload:
        user.email = _clean(payload.get("email"))
    if "roles" in payload:
        user.roles = payload.get("roles") or []
    user.updated_at = _utcnow()
    return _commit(db, user)


def record_login(db: Session, identity: dict, api_token: str) -> User:
    """Find or create the local user for an OpenProject identity and store its credential."""

    openproject_id = _clean(identity.get("id"))
    if not openproject_id:
        raise ValueError("OpenProject identity has no id")
    user = get_user_by_openproject_id(db, openproject_id)
    now = _utcnow()
    if user is None:
        user = User(
            openproject_id=openproject_id,
            name=_clean(identity.get("name")) or openproject_id,
            email=_clean(identity.get("email")),
            created_at=now,
            updated_at=now,
        )
        db.add(user)
    user.api_token = api_token
    user.updated_at = now
    return _commit(db, user)


def sync_from_openproject(db: Session, identity: dict) -> User:
    """Upsert a user from an OpenProject ``/users/{id}`` payload.

    An existing avatar is kept when OpenProject does not provide one.
    """

    openproject_id = _clean(identity.get("id"))
    if not openproject_id:
        raise ValueError("OpenProject identity has no id")
    name = _clean(identity.get("name")) or openproject_id
    email = _clean(identity.get("email"))
    avatar = _clean(identity.get("avatar"))
    now = _utcnow()

    user = get_user_by_openproject_id(db, openproject_id)
    if user is None and email:
        user = db.execute(select(User).where(User.email == email)).scalars().first()
    if user is None:
        user = User(openproject_id=openproject_id, name=name, email=email, created_at=now)
        db.add(user)
    else:
        user.openproject_id = openproject_id
        user.name = name
        if email:
            user.email = email
    if avatar:
        user.avatar_url = avatar
    user.last_sync = now
    user.updated_at = now
    return _commit(db, user)


def set_avatar(db: Session, user: User, avatar_url: str) -> User:
    user.avatar_url = avatar_url
    user.updated_at = _utcnow()
    return _commit(db, user)
