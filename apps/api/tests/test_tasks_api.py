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


def _user(db: Session, role: Role) -> User:
    user = User(email=f"{role.value}-{uuid.uuid4().hex[:8]}@example.com", role=role.value)
    db.add(user)
    db.commit()
    return user


def _login_as(client: TestClient, db: Session, user: User) -> None:
    client.cookies.set("sid", SessionStore(db).create(user.id))


def test_technician_sees_only_assigned_tasks(client: TestClient, db_session: Session) -> None:
    manager = _user(db_session, Role.MANAGER)
    technician = _user(db_session, Role.EMPLOYEE)
    colleague = _user(db_session, Role.EMPLOYEE)
    _login_as(client, db_session, manager)
    created = client.post("/api/tasks", json={"title": "Mount cameras", "assigned_to_id": str(technician.id)})
    client.post("/api/tasks", json={"title": "Order cable"})
    assert created.status_code == 201
    task = created.json()

    _login_as(client, db_session, technician)
    mine = client.get("/api/tasks").json()
    _login_as(client, db_session, colleague)
    theirs = client.get("/api/tasks").json()
    foreign = client.get(f"/api/tasks/{task['id']}")

    assert task["task_number"] == "TSK-00001"
    assert [item["id"] for item in mine] == [task["id"]]
    assert theirs == []
    assert foreign.status_code == 403


def test_assignee_completes_task(client: TestClient, db_session: Session) -> None:
    manager = _user(db_session, Role.PROJECT_MANAGER)
    technician = _user(db_session, Role.EMPLOYEE)
    _login_as(client, db_session, manager)
    task = client.post("/api/tasks", json={"title": "Mount cameras", "assigned_to_id": str(technician.id)}).json()

    _login_as(client, db_session, technician)
    response = client.patch(f"/api/tasks/{task['id']}", json={"status": "completed"})

    assert response.status_code == 200
    assert response.json()["status"] == "completed"
    assert response.json()["completed_at"] is not None


def test_assignee_cannot_reassign_task(client: TestClient, db_session: Session) -> None:
    manager = _user(db_session, Role.MANAGER)
    technician = _user(db_session, Role.EMPLOYEE)
    _login_as(client, db_session, manager)
    task = client.post("/api/tasks", json={"title": "Mount cameras", "assigned_to_id": str(technician.id)}).json()

    _login_as(client, db_session, technician)
    response = client.patch(f"/api/tasks/{task['id']}", json={"assigned_to_id": str(uuid.uuid4())})

    assert response.status_code == 422


def test_employee_cannot_create_tasks(client: TestClient, db_session: Session) -> None:
    _login_as(client, db_session, _user(db_session, Role.EMPLOYEE))

    response = client.post("/api/tasks", json={"title": "Self-assigned"})

    assert response.status_code == 403


def test_task_on_unknown_project_is_not_found(client: TestClient, db_session: Session) -> None:
    _login_as(client, db_session, _user(db_session, Role.MANAGER))

    response = client.post("/api/tasks", json={"title": "Survey", "project_id": str(uuid.uuid4())})

    assert response.status_code == 404
