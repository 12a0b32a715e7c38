"""Tests for the local user store."""

import pytest
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from opbridge.crud.users import (
    DuplicateUser,
    create_user,
    find_user,
    get_user_by_openproject_id,
    record_login,
    set_avatar,
    sync_from_openproject,
    update_profile,
)
from opbridge.db.migrate import run_migrations


def test_create_user_requires_core_fields(db_session):
    with pytest.raises(ValueError, match="email"):
        create_user(db_session, {"openproject_id": "7", "name": "Ana"})


def test_create_user_rejects_duplicates(db_session):
    create_user(db_session, {"openproject_id": "7", "name": "Ana", "email": "ana@example.com"})

    with pytest.raises(DuplicateUser):
        create_user(db_session, {"openproject_id": "7", "name": "Ana B", "email": "other@example.com"})

    # The session stays usable after the rollback.
    assert get_user_by_openproject_id(db_session, 7).email == "ana@example.com"


def test_roles_round_trip_and_deduplicate(db_session):
    user = create_user(
        db_session,
        {"openproject_id": 8, "name": "Bruno", "email": "bruno@example.com", "roles": ["QA", "Dev", "QA"]},
    )
    assert user.roles == ["QA", "Dev"]

    updated = update_profile(db_session, user, {"roles": []})
    assert updated.roles == []


def test_legacy_comma_separated_roles_are_read(db_session):
    user = create_user(db_session, {"openproject_id": "9", "name": "Carla", "email": "carla@example.com"})
    user.roles_blob = "Dev, Lead"

    assert user.roles == ["Dev", "Lead"]


def test_update_profile_rejects_blank_name(db_session):
    user = create_user(db_session, {"openproject_id": "7", "name": "Ana", "email": "ana@example.com"})

    with pytest.raises(ValueError):
        update_profile(db_session, user, {"name": "  "})


def test_find_user_by_id_email_and_partial_name(db_session):
    ana = create_user(db_session, {"openproject_id": "7", "name": "Ana Torres", "email": "ana@example.com"})
    create_user(db_session, {"openproject_id": "8", "name": "Bruno Díaz", "email": "bruno@example.com"})

    assert find_user(db_session, str(ana.id)).id == ana.id
    assert find_user(db_session, "ana@example.com").id == ana.id
    assert find_user(db_session, "torr").id == ana.id
    assert find_user(db_session, "nobody") is None
    assert find_user(db_session, "") is None


def test_record_login_creates_then_updates_credential(db_session):
    identity = {"id": 7, "name": "Ana", "email": "ana@example.com"}

    first = record_login(db_session, identity, "token-one")
    second = record_login(db_session, identity, "token-two")

    assert first.id == second.id
    assert second.api_token == "token-two"
    assert second.openproject_id == "7"


def test_sync_keeps_existing_avatar_when_upstream_has_none(db_session):
    user = create_user(db_session, {"openproject_id": "7", "name": "Ana", "email": "ana@example.com"})
    set_avatar(db_session, user, "/avatars/ana.png")

    synced = sync_from_openproject(db_session, {"id": 7, "name": "Ana María", "email": "ana@example.com", "avatar": ""})

    assert synced.id == user.id
    assert synced.name == "Ana María"
    assert synced.avatar_url == "/avatars/ana.png"
    assert synced.last_sync is not None


def test_sync_matches_existing_user_by_email(db_session):
    user = create_user(db_session, {"openproject_id": "legacy", "name": "Ana", "email": "ana@example.com"})

    synced = sync_from_openproject(
        db_session,
        {"id": 7, "name": "Ana", "email": "ana@example.com", "avatar": "https://op.example.com/avatar/7"},
    )

    assert synced.id == user.id
    assert synced.openproject_id == "7"
    assert synced.avatar_url == "https://op.example.com/avatar/7"


def test_migrations_upgrade_legacy_users_table():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    with engine.begin() as conn:
        conn.execute(
            text(
                "CREATE TABLE users ("
                "id INTEGER PRIMARY KEY, openproject_id TEXT NOT NULL, name TEXT NOT NULL, "
                "email TEXT, created_at TEXT NOT NULL, updated_at TEXT NOT NULL)"
            )
        )
        conn.execute(
            text(
                "INSERT INTO users (openproject_id, name, email, created_at, updated_at) "
                "VALUES ('7', 'Ana', 'ana@example.com', '2024-01-01T00:00:00Z', '2024-01-01T00:00:00Z')"
            )
        )

    run_migrations(engine)
    run_migrations(engine)

    inspector = inspect(engine)
    columns = {column["name"] for column in inspector.get_columns("users")}
    assert {"avatar_url", "roles", "api_token", "last_sync"} <= columns
    indexes = {index["name"]: index for index in inspector.get_indexes("users")}
    assert indexes["ix_users_openproject_id_unique"]["unique"]

    Session = sessionmaker(bind=engine)
    with Session() as session:
        user = get_user_by_openproject_id(session, "7")
        assert user.roles == []
        assert user.api_token is None
        with pytest.raises(DuplicateUser):
            create_user(session, {"openproject_id": "7", "name": "Ana B", "email": "other@example.com"})
    engine.dispose()


def test_find_user_treats_wildcards_literally(db_session):
    create_user(db_session, {"openproject_id": "7", "name": "Ana Torres", "email": "ana@example.com"})
    percent = create_user(db_session, {"openproject_id": "8", "name": "100% Bot", "email": "bot@example.com"})

    assert find_user(db_session, "%").id == percent.id
    assert find_user(db_session, "_na") is None
