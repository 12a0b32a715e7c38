"""Tests for session tokens and the configuration guards around them."""

from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt
from pydantic import ValidationError

from opbridge.core.config import Settings
from opbridge.core.security import ALGORITHM, AUDIENCE, ISSUER, decode_token, issue_session_token


@pytest.fixture()
def settings(tmp_path):
    return Settings(SESSION_SECRET="unit-test-secret-abcdefgh", DATA_DIR=tmp_path, JWT_TTL_HOURS=2)


def test_session_token_round_trip(settings):
    session = issue_session_token(5, name="Ana", email="ana@example.com", openproject_id="7", settings=settings)

    payload = decode_token(session.token, settings=settings)

    assert payload.user_id == 5
    assert payload.name == "Ana"
    assert payload.email == "ana@example.com"
    assert payload.openproject_id == "7"
    assert session.expires_in == 2 * 3600


def test_session_token_never_carries_openproject_credential(settings):
    session = issue_session_token(5, settings=settings)

    claims = jwt.get_unverified_claims(session.token)

    assert "apiToken" not in claims
    assert "api_token" not in claims


def test_token_signed_with_other_secret_is_rejected(settings, tmp_path):
    other = Settings(SESSION_SECRET="another-secret-0987654321", DATA_DIR=tmp_path)
    session = issue_session_token(5, settings=other)

    with pytest.raises(ValueError):
        decode_token(session.token, settings=settings)


def test_expired_token_is_rejected(settings):
    past = datetime.now(tz=timezone.utc) - timedelta(hours=3)
    token = jwt.encode(
        {
            "sub": "5",
            "iat": int(past.timestamp()),
            "exp": int((past + timedelta(hours=1)).timestamp()),
            "typ": "session",
            "aud": AUDIENCE,
            "iss": ISSUER,
        },
        settings.SESSION_SECRET,
        algorithm=ALGORITHM,
    )

    with pytest.raises(ValueError):
        decode_token(token, settings=settings)


def test_token_with_wrong_type_is_rejected(settings):
    now = datetime.now(tz=timezone.utc)
    token = jwt.encode(
        {
            "sub": "5",
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(hours=1)).timestamp()),
            "typ": "refresh",
            "aud": AUDIENCE,
            "iss": ISSUER,
        },
        settings.SESSION_SECRET,
        algorithm=ALGORITHM,
    )

    with pytest.raises(ValueError, match="type"):
        decode_token(token, settings=settings)


@pytest.mark.parametrize("secret", ["", "   ", "short", "tu_clave_secreta_muy_segura_aqui", "change-me"])
def test_weak_session_secrets_fail_validation(secret, tmp_path):
    with pytest.raises(ValidationError):
        Settings(SESSION_SECRET=secret, DATA_DIR=tmp_path)


def test_missing_session_secret_fails_validation(monkeypatch, tmp_path):
    monkeypatch.delenv("SESSION_SECRET", raising=False)
    monkeypatch.delenv("JWT_SECRET", raising=False)

    with pytest.raises(ValidationError):
        Settings(DATA_DIR=tmp_path)


def test_csv_settings_are_split(monkeypatch, tmp_path):
    monkeypatch.setenv("CORS_ORIGINS", "http://localhost:3001, https://dash.example.com")
    monkeypatch.setenv("OPENPROJECT_CLOSED_STATUS_IDS", "12,13")

    settings = Settings(SESSION_SECRET="unit-test-secret-abcdefgh", DATA_DIR=tmp_path)

    assert settings.CORS_ORIGINS == ["http://localhost:3001", "https://dash.example.com"]
    assert settings.OPENPROJECT_CLOSED_STATUS_IDS == ["12", "13"]
    assert settings.avatar_dir == tmp_path / "avatars"
    assert settings.database_url == f"sqlite:///{tmp_path / 'opbridge.db'}"
