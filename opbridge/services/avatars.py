"""Avatar image storage on the local filesystem."""

from __future__ import annotations

from pathlib import Path
from typing import IO
from uuid import uuid4

ALLOWED_AVATAR_TYPES = {
    "image/png",
    "image/jpeg",
    "image/jpg",
    "image/gif",
    "image/webp",
}
ALLOWED_AVATAR_EXTENSIONS = {".png", ".jpeg", ".jpg", ".gif", ".webp"}
CHUNK_SIZE = 64 * 1024


class AvatarRejected(ValueError):
    status_code = 400


class UnsupportedAvatarType(AvatarRejected):
    status_code = 415


class AvatarTooLarge(AvatarRejected):
    status_code = 413


def validate_avatar(filename: str | None, content_type: str | None) -> str:
    """Return the lower-cased extension once both the name and MIME type pass."""

    safe_name = Path(filename or "").name
    if not safe_name:
        raise AvatarRejected("A file upload is required")
    ext = Path(safe_name).suffix.lower()
    if ext not in ALLOWED_AVATAR_EXTENSIONS or (content_type or "").lower() not in ALLOWED_AVATAR_TYPES:
        raise UnsupportedAvatarType("Only images are allowed (jpeg, jpg, png, gif, webp)")
    return ext


def store_avatar(
    file_data: IO[bytes],
    filename: str | None,
    content_type: str | None,
    *,
    directory: Path,
    max_bytes: int,
) -> str:
    """Copy an uploaded avatar into ``directory`` under a random name.

    Returns the stored file name. Oversized uploads are removed before
    ``AvatarTooLarge`` is raised.
    """

    ext = validate_avatar(filename, content_type)
    directory.mkdir(parents=True, exist_ok=True)
    storage_name = f"{uuid4()}{ext}"
    dest_path = directory / storage_name
    written = 0
    try:
        with dest_path.open("wb") as buffer:
            while True:
                chunk = file_data.read(CHUNK_SIZE)
                if not chunk:
                    break
                written += len(chunk)
                if written > max_bytes:
                    raise AvatarTooLarge(f"Avatar exceeds the {max_bytes} byte limit")
                buffer.write(chunk)
    except AvatarTooLarge:
        dest_path.unlink(missing_ok=True)
        raise
    return storage_name
