import io

import pytest

from opbridge.services.avatars import (
    AvatarRejected,
    AvatarTooLarge,
    UnsupportedAvatarType,
    store_avatar,
)


def test_store_avatar_writes_random_name(tmp_path):
    stored = store_avatar(io.BytesIO(b"\x89PNG fake"), "me.PNG", "image/png", directory=tmp_path, max_bytes=1024)

    assert stored.endswith(".png")
    assert stored != "me.png"
    assert (tmp_path / stored).read_bytes() == b"\x89PNG fake"


@pytest.mark.parametrize(
    "filename, content_type",
    [
        ("notes.txt", "text/plain"),
        ("photo.png", "application/octet-stream"),
        ("script.js", "image/png"),
    ],
)
def test_store_avatar_rejects_non_images(tmp_path, filename, content_type):
    with pytest.raises(UnsupportedAvatarType):
        store_avatar(io.BytesIO(b"data"), filename, content_type, directory=tmp_path, max_bytes=1024)
    assert list(tmp_path.iterdir()) == []


def test_store_avatar_requires_filename(tmp_path):
    with pytest.raises(AvatarRejected):
        store_avatar(io.BytesIO(b"data"), "", "image/png", directory=tmp_path, max_bytes=1024)


def test_store_avatar_removes_oversized_upload(tmp_path):
    with pytest.raises(AvatarTooLarge) as excinfo:
        store_avatar(io.BytesIO(b"x" * 2048), "big.jpg", "image/jpeg", directory=tmp_path, max_bytes=1000)

    assert excinfo.value.status_code == 413
    assert list(tmp_path.iterdir()) == []
