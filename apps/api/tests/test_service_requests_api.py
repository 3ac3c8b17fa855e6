from __future__ import annotations

import uuid
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.accounts.models import User
from app.core.config import get_settings
from app.core.database import Base, get_db
from app.main import app
from app.middleware.rate_limit import reset_rate_limiter
from app.models.audit import Activity
from app.operations.models import Communication, ServiceRequest
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


def _request(db: Session, owner: User, **overrides: object) -> ServiceRequest:
    values: dict[str, object] = {
        "client_id": owner.id,
        "service_type": "cctv",
        "title": "Parking lot cameras",
        "admin_notes": "Quote high, difficult site",
    }
    values.update(overrides)
    record = ServiceRequest(**values)
    db.add(record)
    db.commit()
    return record


def test_client_creates_request_owned_by_self(client: TestClient, db_session: Session) -> None:
    owner = _user(db_session, Role.CLIENT)
    _login_as(client, db_session, owner)

    response = client.post(
        "/api/service-requests",
        json={"service_type": "alarm", "title": "Shop alarm", "priority": "high"},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["client_id"] == str(owner.id)
    assert body["status"] == "pending"
    assert "admin_notes" not in body


def test_create_rejects_ownership_fields_in_body(client: TestClient, db_session: Session) -> None:
    _login_as(client, db_session, _user(db_session, Role.CLIENT))

    response = client.post(
        "/api/service-requests",
        json={"service_type": "alarm", "title": "Shop alarm", "client_id": str(uuid.uuid4()), "status": "approved"},
    )

    assert response.status_code == 422


def test_staff_without_request_capability_cannot_create(client: TestClient, db_session: Session) -> None:
    _login_as(client, db_session, _user(db_session, Role.EMPLOYEE))

    response = client.post("/api/service-requests", json={"service_type": "alarm", "title": "Shop alarm"})

    assert response.status_code == 403


def test_clients_list_only_their_requests_without_admin_notes(client: TestClient, db_session: Session) -> None:
    owner = _user(db_session, Role.CLIENT)
    mine = _request(db_session, owner)
    _request(db_session, _user(db_session, Role.CLIENT), title="Someone else's")
    _login_as(client, db_session, owner)

    response = client.get("/api/service-requests")

    assert response.status_code == 200
    assert [item["id"] for item in response.json()] == [str(mine.id)]
    assert "admin_notes" not in response.json()[0]


def test_manager_sees_all_but_admin_notes_stay_admin_only(client: TestClient, db_session: Session) -> None:
    first = _request(db_session, _user(db_session, Role.CLIENT))
    _request(db_session, _user(db_session, Role.CLIENT))

    _login_as(client, db_session, _user(db_session, Role.MANAGER))
    as_manager = client.get("/api/service-requests").json()

    _login_as(client, db_session, _user(db_session, Role.ADMIN))
    as_admin = client.get(f"/api/service-requests/{first.id}").json()

    assert len(as_manager) == 2
    assert all("admin_notes" not in item for item in as_manager)
    assert as_admin["admin_notes"] == "Quote high, difficult site"


def test_client_cannot_read_foreign_request(client: TestClient, db_session: Session) -> None:
    foreign = _request(db_session, _user(db_session, Role.CLIENT))
    _login_as(client, db_session, _user(db_session, Role.CLIENT))

    assert client.get(f"/api/service-requests/{foreign.id}").status_code == 403
    assert client.get(f"/api/service-requests/{uuid.uuid4()}").status_code == 403


def test_client_edits_pending_request_with_client_fields_only(client: TestClient, db_session: Session) -> None:
    owner = _user(db_session, Role.CLIENT)
    record = _request(db_session, owner)
    _login_as(client, db_session, owner)

    allowed = client.patch(f"/api/service-requests/{record.id}", json={"title": "Parking lot and gate cameras"})
    escalation = client.patch(f"/api/service-requests/{record.id}", json={"status": "approved"})

    assert allowed.status_code == 200
    assert allowed.json()["title"] == "Parking lot and gate cameras"
    assert escalation.status_code == 422
    db_session.refresh(record)
    assert record.status == "pending"


def test_client_cannot_edit_after_review(client: TestClient, db_session: Session) -> None:
    owner = _user(db_session, Role.CLIENT)
    record = _request(db_session, owner, status="quoted")
    _login_as(client, db_session, owner)

    response = client.patch(f"/api/service-requests/{record.id}", json={"title": "Changed my mind"})

    assert response.status_code == 409


def test_staff_update_is_audited_with_field_names(client: TestClient, db_session: Session) -> None:
    record = _request(db_session, _user(db_session, Role.CLIENT))
    manager = _user(db_session, Role.MANAGER)
    _login_as(client, db_session, manager)

    response = client.patch(
        f"/api/service-requests/{record.id}",
        json={"status": "quoted", "quoted_amount": "1250.00", "admin_notes": "Sent quote"},
    )

    assert response.status_code == 200
    assert response.json()["status"] == "quoted"
    assert "admin_notes" not in response.json()
    entry = db_session.scalar(select(Activity).where(Activity.entity_type == "service_request"))
    assert entry is not None
    assert entry.user_id == manager.id
    assert entry.details == {"fields": ["admin_notes", "quoted_amount", "status"]}


def test_messages_on_request_respect_internal_flag(client: TestClient, db_session: Session) -> None:
    owner = _user(db_session, Role.CLIENT)
    manager = _user(db_session, Role.MANAGER)
    admin = _user(db_session, Role.ADMIN)
    record = _request(db_session, owner)

    _login_as(client, db_session, manager)
    public_reply = client.post(f"/api/service-requests/{record.id}/messages", json={"message": "We can visit Monday"})
    internal_note = client.post(
        f"/api/service-requests/{record.id}/messages",
        json={"message": "Check credit first", "is_internal": True},
    )

    _login_as(client, db_session, owner)
    client_view = client.get(f"/api/service-requests/{record.id}/messages")
    client_internal = client.post(
        f"/api/service-requests/{record.id}/messages",
        json={"message": "sneaky", "is_internal": True},
    )
    inbox = client.get("/api/communications")

    _login_as(client, db_session, admin)
    admin_view = client.get(f"/api/service-requests/{record.id}/messages")

    assert public_reply.status_code == 201
    assert public_reply.json()["recipient_user_id"] == str(owner.id)
    assert internal_note.status_code == 201
    assert internal_note.json()["recipient_user_id"] is None
    assert [item["message"] for item in client_view.json()] == ["We can visit Monday"]
    assert client_internal.status_code == 403
    assert [item["message"] for item in inbox.json()] == ["We can visit Monday"]
    assert len(admin_view.json()) == 2
    assert db_session.scalar(select(Communication).where(Communication.message == "sneaky")) is None
