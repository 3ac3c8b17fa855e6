from __future__ import annotations

from collections.abc import Generator

import pytest
from argon2 import PasswordHasher
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.accounts.models import User, UserSession
from app.accounts.service import account_service
from app.core.config import get_settings
from app.core.database import Base, get_db
from app.main import app
from app.middleware.rate_limit import reset_rate_limiter
from app.models.audit import Activity
from app.platform.security.credentials import hash_password, reset_credential_state


PASSWORD = "Str0ng!Pass"


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def configure_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("RATE_LIMIT_DISABLED", "true")
    monkeypatch.setenv("PASSWORD_HASH_MEMORY_COST_KIB", "1024")
    monkeypatch.setenv("PASSWORD_HASH_TIME_COST", "1")
    get_settings.cache_clear()
    reset_credential_state()
    reset_rate_limiter()
    yield
    get_settings.cache_clear()
    reset_credential_state()
    reset_rate_limiter()


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _staff(db: Session, email: str, role: str = "employee", *, is_active: bool = True) -> User:
    user = User(email=email, password_hash=hash_password(PASSWORD), role=role, is_active=is_active)
    db.add(user)
    db.commit()
    return user


def _login(client: TestClient, email: str, password: str = PASSWORD):  # type: ignore[no-untyped-def]
    return client.post("/api/auth/login", json={"email": email, "password": password})


def test_register_creates_client_and_starts_session(client: TestClient, db_session: Session) -> None:
    response = client.post(
        "/api/auth/register",
        json={"email": "New.Client@Example.com", "password": PASSWORD, "first_name": "Ada"},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["email"] == "new.client@example.com"
    assert body["role"] == "client"
    assert "password_hash" not in body
    set_cookie = response.headers["set-cookie"].lower()
    assert "httponly" in set_cookie
    assert "samesite=strict" in set_cookie

    me = client.get("/api/auth/user")
    assert me.status_code == 200
    assert me.json()["id"] == body["id"]


def test_register_ignores_role_in_body(client: TestClient) -> None:
    response = client.post(
        "/api/auth/register",
        json={"email": "sneaky@example.com", "password": PASSWORD, "role": "admin"},
    )

    assert response.status_code == 201
    assert response.json()["role"] == "client"


def test_register_rejects_weak_password_and_duplicate_email(client: TestClient) -> None:
    weak = client.post("/api/auth/register", json={"email": "weak@example.com", "password": "password"})
    assert weak.status_code == 422
    assert weak.json()["code"] == "validation_error"

    assert client.post("/api/auth/register", json={"email": "dup@example.com", "password": PASSWORD}).status_code == 201
    duplicate = client.post("/api/auth/register", json={"email": "DUP@example.com", "password": PASSWORD})
    assert duplicate.status_code == 409


def test_login_rejects_bad_credentials_uniformly(client: TestClient, db_session: Session) -> None:
    _staff(db_session, "tech@example.com")

    wrong_password = _login(client, "tech@example.com", "Wr0ng!Pass")
    unknown_user = _login(client, "nobody@example.com")

    assert wrong_password.status_code == 401
    assert unknown_user.status_code == 401
    assert wrong_password.json()["message"] == unknown_user.json()["message"] == "Invalid email or password"


def test_unknown_account_costs_one_password_verification(
    client: TestClient, db_session: Session, monkeypatch: pytest.MonkeyPatch
) -> None:
    _staff(db_session, "tech@example.com")
    calls: list[str] = []
    original = PasswordHasher.verify

    def counting(self: PasswordHasher, hash: str, password: str) -> bool:  # noqa: A002
        calls.append(password)
        return original(self, hash, password)

    monkeypatch.setattr(PasswordHasher, "verify", counting)

    known = _login(client, "tech@example.com", "Wr0ng!Pass")
    unknown = _login(client, "nobody@example.com", "Wr0ng!Pass")

    assert known.status_code == unknown.status_code == 401
    assert calls == ["Wr0ng!Pass", "Wr0ng!Pass"]


def test_login_rejects_deactivated_account(client: TestClient, db_session: Session) -> None:
    _staff(db_session, "gone@example.com", is_active=False)

    response = _login(client, "gone@example.com")

    assert response.status_code == 403
    assert response.json()["message"] == "Account is deactivated"


def test_login_issues_fresh_session_id(client: TestClient, db_session: Session) -> None:
    user = _staff(db_session, "tech@example.com")

    first = _login(client, "tech@example.com")
    first_sid = first.cookies.get("sid")
    second = _login(client, "tech@example.com")
    second_sid = second.cookies.get("sid")

    assert first.status_code == second.status_code == 200
    assert first_sid and second_sid and first_sid != second_sid
    sids = db_session.scalars(select(UserSession.sid).where(UserSession.user_id == user.id)).all()
    assert sids == [second_sid]


def test_logout_destroys_session(client: TestClient, db_session: Session) -> None:
    _staff(db_session, "tech@example.com")
    assert _login(client, "tech@example.com").status_code == 200

    assert client.post("/api/auth/logout").status_code == 200

    assert db_session.scalar(select(UserSession)) is None
    assert client.get("/api/auth/user").status_code == 401


def test_session_of_deleted_user_is_anonymous(client: TestClient, db_session: Session) -> None:
    user = _staff(db_session, "tech@example.com")
    assert _login(client, "tech@example.com").status_code == 200

    db_session.delete(user)
    db_session.commit()

    response = client.get("/api/auth/user")
    assert response.status_code == 401
    assert response.json()["code"] == "unauthenticated"


def test_change_password_requires_current_password(client: TestClient, db_session: Session) -> None:
    _staff(db_session, "tech@example.com")
    assert _login(client, "tech@example.com").status_code == 200

    rejected = client.post(
        "/api/auth/change-password",
        json={"current_password": "Wr0ng!Pass", "new_password": "N3w!Passw0rd"},
    )
    assert rejected.status_code == 400

    accepted = client.post(
        "/api/auth/change-password",
        json={"current_password": PASSWORD, "new_password": "N3w!Passw0rd"},
    )
    assert accepted.status_code == 200
    assert _login(client, "tech@example.com", "N3w!Passw0rd").status_code == 200


def test_password_reset_request_does_not_reveal_accounts(client: TestClient, db_session: Session) -> None:
    _staff(db_session, "tech@example.com")

    known = client.post("/api/auth/password-reset/request", json={"email": "tech@example.com"})
    unknown = client.post("/api/auth/password-reset/request", json={"email": "nobody@example.com"})

    assert known.status_code == unknown.status_code == 202
    assert known.json() == unknown.json()


def test_password_reset_token_is_single_use(client: TestClient, db_session: Session) -> None:
    _staff(db_session, "tech@example.com")
    token = account_service.request_password_reset(db_session, "tech@example.com")
    assert token is not None
    payload = {"email": "tech@example.com", "token": token, "new_password": "R3set!Passw0rd"}

    assert client.post("/api/auth/password-reset/confirm", json=payload).status_code == 200
    assert client.post("/api/auth/password-reset/confirm", json=payload).status_code == 400
    assert _login(client, "tech@example.com", "R3set!Passw0rd").status_code == 200


def test_login_is_recorded_in_activity_log(client: TestClient, db_session: Session) -> None:
    user = _staff(db_session, "tech@example.com")

    assert _login(client, "tech@example.com").status_code == 200

    entry = db_session.scalar(select(Activity).where(Activity.action == "login"))
    assert entry is not None
    assert entry.user_id == user.id
    assert entry.correlation_id
