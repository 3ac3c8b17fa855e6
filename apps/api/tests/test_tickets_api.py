from __future__ import annotations

import uuid
from collections.abc import Generator
from dataclasses import dataclass

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.accounts.models import User
from app.core.config import get_settings
from app.core.database import Base, get_db
from app.crm.models import Client, Lead
from app.main import app
from app.middleware.rate_limit import reset_rate_limiter
from app.operations.models import Project, Ticket
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


@dataclass
class World:
    customer: User
    other_customer: User
    project_manager: User
    technician: User
    lead: Lead
    foreign_client: Client
    own_project: Project
    foreign_project: Project


def _user(db: Session, role: Role) -> User:
    user = User(email=f"{role.value}-{uuid.uuid4().hex[:8]}@example.com", role=role.value)
    db.add(user)
    db.commit()
    return user


def _login_as(client: TestClient, db: Session, user: User) -> None:
    client.cookies.set("sid", SessionStore(db).create(user.id))


@pytest.fixture()
def world(db_session: Session) -> World:
    customer = _user(db_session, Role.CLIENT)
    other_customer = _user(db_session, Role.CLIENT)
    project_manager = _user(db_session, Role.PROJECT_MANAGER)
    technician = _user(db_session, Role.EMPLOYEE)

    lead = Lead(user_id=customer.id, name="Lead One", email="lead1@example.com", phone="555-0101")
    foreign_client = Client(user_id=other_customer.id, name="Other", email="other@example.com", phone="555-0102")
    db_session.add_all([lead, foreign_client])
    db_session.flush()
    own_project = Project(project_number="PRJ-00001", project_name="Warehouse CCTV", lead_id=lead.id)
    foreign_project = Project(project_number="PRJ-00002", project_name="Office alarm", client_id=foreign_client.id)
    db_session.add_all([own_project, foreign_project])
    db_session.commit()
    return World(
        customer=customer,
        other_customer=other_customer,
        project_manager=project_manager,
        technician=technician,
        lead=lead,
        foreign_client=foreign_client,
        own_project=own_project,
        foreign_project=foreign_project,
    )


def _open_ticket(client: TestClient, project: Project, subject: str = "Camera 3 offline") -> dict:
    response = client.post("/api/tickets", json={"subject": subject, "project_id": str(project.id)})
    assert response.status_code == 201
    return response.json()


def test_client_opens_ticket_on_owned_project(client: TestClient, db_session: Session, world: World) -> None:
    _login_as(client, db_session, world.customer)

    ticket = _open_ticket(client, world.own_project)

    assert ticket["ticket_number"] == "TKT-00001"
    assert ticket["lead_id"] == str(world.lead.id)
    assert ticket["created_by_id"] == str(world.customer.id)
    assert ticket["status"] == "open"


@pytest.mark.parametrize(
    "target",
    ["foreign_project", "foreign_client", "foreign_lead", "nothing"],
)
def test_client_cannot_attach_ticket_to_records_they_do_not_own(
    client: TestClient, db_session: Session, world: World, target: str
) -> None:
    payload: dict[str, str] = {"subject": "Help"}
    if target == "foreign_project":
        payload["project_id"] = str(world.foreign_project.id)
    elif target == "foreign_client":
        payload["client_id"] = str(world.foreign_client.id)
    elif target == "foreign_lead":
        payload["lead_id"] = str(uuid.uuid4())
    _login_as(client, db_session, world.customer)

    response = client.post("/api/tickets", json=payload)

    assert response.status_code == 403
    assert db_session.query(Ticket).count() == 0


def test_owned_project_with_foreign_client_is_rejected(client: TestClient, db_session: Session, world: World) -> None:
    _login_as(client, db_session, world.customer)

    response = client.post(
        "/api/tickets",
        json={"subject": "Help", "project_id": str(world.own_project.id), "client_id": str(world.foreign_client.id)},
    )

    assert response.status_code == 403


def test_unknown_project_is_not_found(client: TestClient, db_session: Session, world: World) -> None:
    _login_as(client, db_session, world.project_manager)

    response = client.post("/api/tickets", json={"subject": "Help", "project_id": str(uuid.uuid4())})

    assert response.status_code == 404


def test_client_cannot_distinguish_missing_project_from_foreign(
    client: TestClient, db_session: Session, world: World
) -> None:
    _login_as(client, db_session, world.customer)

    missing = client.post("/api/tickets", json={"subject": "Help", "project_id": str(uuid.uuid4())})
    foreign = client.post("/api/tickets", json={"subject": "Help", "project_id": str(world.foreign_project.id)})

    assert missing.status_code == foreign.status_code == 403
    assert missing.json()["code"] == foreign.json()["code"] == "forbidden"
    assert missing.json()["message"] == foreign.json()["message"]


def test_ticket_lists_are_scoped(client: TestClient, db_session: Session, world: World) -> None:
    _login_as(client, db_session, world.customer)
    mine = _open_ticket(client, world.own_project)
    _login_as(client, db_session, world.project_manager)
    theirs = _open_ticket(client, world.foreign_project, "Siren fault")

    _login_as(client, db_session, world.customer)
    as_customer = client.get("/api/tickets").json()
    foreign = client.get(f"/api/tickets/{theirs['id']}")

    _login_as(client, db_session, world.project_manager)
    as_manager = client.get("/api/tickets").json()

    _login_as(client, db_session, _user(db_session, Role.SALES))
    as_sales = client.get("/api/tickets")

    assert [item["id"] for item in as_customer] == [mine["id"]]
    assert foreign.status_code == 403
    assert {item["id"] for item in as_manager} == {mine["id"], theirs["id"]}
    assert as_sales.status_code == 200
    assert as_sales.json() == []


def test_technician_sees_tickets_assigned_to_them(client: TestClient, db_session: Session, world: World) -> None:
    _login_as(client, db_session, world.project_manager)
    ticket = _open_ticket(client, world.foreign_project)
    assigned = client.patch(f"/api/tickets/{ticket['id']}", json={"assigned_to_id": str(world.technician.id)})
    assert assigned.status_code == 200

    _login_as(client, db_session, world.technician)
    listed = client.get("/api/tickets").json()
    progressed = client.patch(f"/api/tickets/{ticket['id']}", json={"status": "in_progress"})

    assert [item["id"] for item in listed] == [ticket["id"]]
    assert progressed.status_code == 200


def test_client_cannot_reassign_ticket(client: TestClient, db_session: Session, world: World) -> None:
    _login_as(client, db_session, world.customer)
    ticket = _open_ticket(client, world.own_project)

    response = client.patch(f"/api/tickets/{ticket['id']}", json={"assigned_to_id": str(world.technician.id)})

    assert response.status_code == 403


def test_resolving_sets_resolved_at(client: TestClient, db_session: Session, world: World) -> None:
    _login_as(client, db_session, world.project_manager)
    ticket = _open_ticket(client, world.own_project)

    response = client.patch(f"/api/tickets/{ticket['id']}", json={"status": "resolved"})

    assert response.status_code == 200
    assert response.json()["resolved_at"] is not None


def test_internal_comments_hidden_from_client(client: TestClient, db_session: Session, world: World) -> None:
    _login_as(client, db_session, world.customer)
    ticket = _open_ticket(client, world.own_project)
    by_client = client.post(f"/api/tickets/{ticket['id']}/comments", json={"comment": "Still broken"})
    client_internal = client.post(
        f"/api/tickets/{ticket['id']}/comments",
        json={"comment": "psst", "is_internal": True},
    )

    _login_as(client, db_session, world.project_manager)
    staff_internal = client.post(
        f"/api/tickets/{ticket['id']}/comments",
        json={"comment": "Replace under warranty", "is_internal": True},
    )
    staff_view = client.get(f"/api/tickets/{ticket['id']}/comments").json()

    _login_as(client, db_session, world.customer)
    client_view = client.get(f"/api/tickets/{ticket['id']}/comments").json()

    assert by_client.status_code == 201
    assert client_internal.status_code == 403
    assert staff_internal.status_code == 201
    assert [item["comment"] for item in client_view] == ["Still broken"]
    # Internal comments are withheld from every non-admin role.
    assert [item["comment"] for item in staff_view] == ["Still broken"]


def test_share_link_requires_ticket_management(client: TestClient, db_session: Session, world: World) -> None:
    _login_as(client, db_session, world.customer)
    ticket = _open_ticket(client, world.own_project)
    denied = client.post(f"/api/tickets/{ticket['id']}/share")

    _login_as(client, db_session, world.project_manager)
    issued = client.post(f"/api/tickets/{ticket['id']}/share")

    assert denied.status_code == 403
    assert issued.status_code == 200
    body = issued.json()
    assert body["number"] == "TKT-00001"
    assert body["path"] == f"/api/public/tickets/TKT-00001?token={body['token']}"
