from __future__ import annotations

import uuid
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.accounts.models import User
from app.core.config import get_settings
from app.core.database import Base, get_db
from app.main import app
from app.middleware.rate_limit import reset_rate_limiter
from app.platform.security.roles import Role
from app.platform.security.sessions import SessionStore


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
    monkeypatch.setenv("METRICS_ENABLED", "true")
    get_settings.cache_clear()
    reset_rate_limiter()
    yield
    get_settings.cache_clear()
    reset_rate_limiter()


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _login_as(client: TestClient, db: Session, role: Role) -> None:
    user = User(email=f"{role.value}-{uuid.uuid4().hex[:8]}@example.com", role=role.value)
    db.add(user)
    db.commit()
    client.cookies.set("sid", SessionStore(db).create(user.id))


def test_admin_reads_metrics(client: TestClient, db_session: Session) -> None:
    _login_as(client, db_session, Role.ADMIN)
    client.get("/health")

    response = client.get("/metrics")

    assert response.status_code == 200
    assert "text/plain" in response.headers["content-type"]
    assert "authz_decisions_total" in response.text
    assert "http_requests_total" in response.text


def test_manager_cannot_read_metrics(client: TestClient, db_session: Session) -> None:
    _login_as(client, db_session, Role.MANAGER)

    response = client.get("/metrics")

    assert response.status_code == 403
    assert response.json()["code"] == "forbidden"


def test_anonymous_metrics_request_is_unauthenticated(client: TestClient) -> None:
    assert client.get("/metrics").status_code == 401


def test_metrics_hidden_when_disabled(
    client: TestClient, db_session: Session, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("METRICS_ENABLED", "false")
    get_settings.cache_clear()
    _login_as(client, db_session, Role.ADMIN)

    response = client.get("/metrics")

    assert response.status_code == 404
