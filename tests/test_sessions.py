from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest

from landing.database import Database, current_timestamp
from landing.errors import AuthError, ForbiddenError
import landing.sessions as sessions_module
from landing.security import hash_password, verify_password
from landing.sessions import INVALID_CREDENTIALS_MESSAGE, AdminSessionService, seed_admin

SECRET = "tests-jwt-secret"
PASSWORD = "correct-horse"


@pytest.fixture()
def database(tmp_path: Path) -> Database:
    db = Database(tmp_path / "landing.sqlite3")
    db.initialize()
    seed_admin(db, username="admin", email="Admin@Example.com", password=PASSWORD)
    yield db
    db.close()


def _last_login(database: Database):
    return database.execute("SELECT last_login FROM admins WHERE username = 'admin'")[0]["last_login"]


def test_password_hash_round_trip() -> None:
    hashed = hash_password("supersecurepassword")
    assert hashed.startswith("$pbkdf2-sha256$")
    assert verify_password("supersecurepassword", hashed)
    assert not verify_password("incorrect", hashed)
    assert not verify_password("anything", "not-a-hash")


def test_seed_admin_only_creates_once(database: Database) -> None:
    admin, created = seed_admin(database, username="admin", email="other@example.com", password="another")

    assert created is False
    assert admin.email == "admin@example.com"
    assert admin.role == "super_admin"
    assert database.execute("SELECT COUNT(*) AS n FROM admins")[0]["n"] == 1


def test_login_issues_verifiable_token_and_records_login(database: Database) -> None:
    sessions = AdminSessionService(database, secret=SECRET)

    first = sessions.login("admin", PASSWORD)
    assert first.admin.last_login is None
    assert _last_login(database) is not None

    claims = sessions.verify(first.token)
    assert claims.username == "admin"
    assert claims.role == "super_admin"
    assert claims.id == first.admin.id

    second = sessions.login("admin", PASSWORD)
    assert second.admin.last_login is not None


@pytest.mark.parametrize("username,password", [("admin", "wrong-password"), ("nobody", PASSWORD)])
def test_failed_login_does_not_reveal_field_or_touch_last_login(database: Database, username, password) -> None:
    sessions = AdminSessionService(database, secret=SECRET)

    with pytest.raises(AuthError) as excinfo:
        sessions.login(username, password)

    assert str(excinfo.value) == INVALID_CREDENTIALS_MESSAGE
    assert _last_login(database) is None


def test_expired_token_is_forbidden(database: Database) -> None:
    past = current_timestamp() - timedelta(days=2)
    issuer = AdminSessionService(database, secret=SECRET, ttl=timedelta(hours=1), clock=lambda: past)
    result = issuer.login("admin", PASSWORD)

    with pytest.raises(ForbiddenError):
        AdminSessionService(database, secret=SECRET).verify(result.token)


def test_token_signed_with_other_secret_is_forbidden(database: Database) -> None:
    token = AdminSessionService(database, secret="other-secret").login("admin", PASSWORD).token

    with pytest.raises(ForbiddenError):
        AdminSessionService(database, secret=SECRET).verify(token)

    with pytest.raises(ForbiddenError):
        AdminSessionService(database, secret=SECRET).verify("not.a.token")


def test_missing_token_is_unauthorized(database: Database) -> None:
    with pytest.raises(AuthError):
        AdminSessionService(database, secret=SECRET).verify("")


def test_unknown_username_still_checks_a_password_hash(database: Database, monkeypatch: pytest.MonkeyPatch) -> None:
    checked = []

    def recording_verify(password: str, hashed: str) -> bool:
        checked.append(hashed)
        return verify_password(password, hashed)

    monkeypatch.setattr(sessions_module, "verify_password", recording_verify)

    with pytest.raises(AuthError):
        AdminSessionService(database, secret=SECRET).login("nobody", PASSWORD)

    assert len(checked) == 1
    assert checked[0].startswith("$pbkdf2-sha256$")
