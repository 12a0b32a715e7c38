"""SQLAlchemy model for locally bridged OpenProject users."""

from __future__ import annotations

import json

from sqlalchemy import Column, Integer, Text

from ..db.session import Base


class User(Base):
    """A dashboard user mirrored from OpenProject.

    ``api_token`` holds the user's own OpenProject credential. It is loaded by
    the auth dependency on every request and never leaves the server.
    """

    __tablename__ = "users"
    __allow_unmapped__ = True

    id = Column(Integer, primary_key=True, index=True)
    openproject_id = Column(Text, nullable=False, unique=True, index=True)
    name = Column(Text, nullable=False)
    email = Column(Text, nullable=True, unique=True)
    avatar_url = Column(Text, nullable=True)
    roles_blob = Column("roles", Text, nullable=True)
    api_token = Column(Text, nullable=True)
    last_sync = Column(Text, nullable=True)
    created_at = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=False)

    @property
    def roles(self) -> list[str]:
        raw = self.roles_blob
        if not raw:
            return []
        try:
            decoded = json.loads(raw)
        except (TypeError, json.JSONDecodeError):
            # Older rows stored a comma separated string.
            return [part.strip() for part in str(raw).split(",") if part.strip()]
        if not isinstance(decoded, list):
            return []
        return [str(item) for item in decoded if str(item).strip()]

    @roles.setter
    def roles(self, value: list[str] | str | None) -> None:
        if not value:
            self.roles_blob = None
            return
        if isinstance(value, str):
            value = [part for part in value.split(",")]
        if not isinstance(value, list):
            raise ValueError("roles must be a list of strings")
        cleaned: list[str] = []
        for item in value:
            name = str(item).strip()
            if name and name not in cleaned:
                cleaned.append(name)
        self.roles_blob = json.dumps(cleaned) if cleaned else None


__all__ = ["User"]
