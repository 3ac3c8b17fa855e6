from __future__ import annotations

import uuid
from collections.abc import Generator
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.accounts.models import User
from app.core.config import get_settings
from app.core.database import Base, get_db
from app.crm.models import Inquiry, Lead
from app.main import app
from app.middleware.rate_limit import reset_rate_limiter
from app.models.audit import Activity
from app.operations.models import Project, Ticket, TicketComment
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


def _shared_quotes(client: TestClient, db: Session) -> tuple[dict, dict]:
    """Create two quotes as sales, share the first, and drop the session cookie."""

    lead = Lead(name="Lead One", email="lead1@example.com", phone="555-0101")
    db.add(lead)
    db.commit()
    _login_as(client, db, _user(db, Role.SALES))
    payload = {
        "lead_id": str(lead.id),
        "items": [{"description": "Dome camera", "quantity": "2", "unit_price": "100.00"}],
        "tax_rate": "10",
        "status": "sent",
    }
    first = client.post("/api/quotes", json=payload)
    second = client.post("/api/quotes", json=payload)
    assert first.status_code == second.status_code == 201
    link = client.post(f"/api/quotes/{first.json()['id']}/share")
    assert link.status_code == 200
    client.cookies.clear()
    return first.json(), link.json()


def test_quote_totals_and_numbers(client: TestClient, db_session: Session) -> None:
    quote, link = _shared_quotes(client, db_session)

    assert quote["quote_number"] == "Q-00001"
    assert Decimal(quote["subtotal"]) == Decimal("200.00")
    assert Decimal(quote["tax"]) == Decimal("20.00")
    assert Decimal(quote["total"]) == Decimal("220.00")
    assert link["number"] == "Q-00001"


def test_share_link_opens_quote_without_session(client: TestClient, db_session: Session) -> None:
    _, link = _shared_quotes(client, db_session)

    response = client.get("/api/public/quotes/Q-00001", params={"token": link["token"]})

    assert response.status_code == 200
    body = response.json()
    assert body["quote_number"] == "Q-00001"
    assert Decimal(body["total"]) == Decimal("220.00")
    assert "notes" not in body
    assert "lead_id" not in body


@pytest.mark.parametrize(
    ("number", "token_override"),
    [("Q-00002", None), ("Q-00001", ""), ("Q-00001", "forged")],
)
def test_share_link_failures_look_identical(
    client: TestClient, db_session: Session, number: str, token_override: str | None
) -> None:
    _, link = _shared_quotes(client, db_session)
    token = link["token"] if token_override is None else token_override

    response = client.get(f"/api/public/quotes/{number}", params={"token": token})

    assert response.status_code == 404
    assert response.json()["code"] == "share_link_invalid"
    assert response.json()["message"] == "Link is invalid or has expired"


def test_approve_through_share_link_is_audited_anonymously(client: TestClient, db_session: Session) -> None:
    quote, link = _shared_quotes(client, db_session)

    approved = client.post("/api/public/quotes/Q-00001/approve", params={"token": link["token"]})
    again = client.post("/api/public/quotes/Q-00001/reject", params={"token": link["token"]})

    assert approved.status_code == 200
    assert approved.json()["status"] == "approved"
    assert again.status_code == 409
    entry = db_session.scalar(select(Activity).where(Activity.action == "approved"))
    assert entry is not None
    assert entry.user_id is None
    assert entry.entity_id == quote["id"]
    assert entry.details == {"via": "share_link"}


def test_approve_with_wrong_number_changes_nothing(client: TestClient, db_session: Session) -> None:
    _, link = _shared_quotes(client, db_session)

    response = client.post("/api/public/quotes/Q-00002/approve", params={"token": link["token"]})

    assert response.status_code == 404
    _login_as(client, db_session, _user(db_session, Role.SALES))
    statuses = {item["quote_number"]: item["status"] for item in client.get("/api/quotes").json()}
    assert statuses == {"Q-00001": "sent", "Q-00002": "sent"}


def test_shared_invoice_is_readable(client: TestClient, db_session: Session) -> None:
    _login_as(client, db_session, _user(db_session, Role.ADMIN))
    created = client.post(
        "/api/invoices",
        json={"client_id": str(uuid.uuid4()), "items": [{"description": "Install", "quantity": "1", "unit_price": "500"}]},
    )
    assert created.status_code == 201
    link = client.post(f"/api/invoices/{created.json()['id']}/share").json()
    client.cookies.clear()

    response = client.get("/api/public/invoices/INV-00001", params={"token": link["token"]})

    assert response.status_code == 200
    assert Decimal(response.json()["total"]) == Decimal("500.00")


def test_shared_ticket_shows_public_comments_only(client: TestClient, db_session: Session) -> None:
    manager = _user(db_session, Role.PROJECT_MANAGER)
    ticket = Ticket(ticket_number="TKT-00001", subject="Camera 3 offline", created_by_id=manager.id)
    db_session.add(ticket)
    db_session.flush()
    db_session.add_all(
        [
            TicketComment(ticket_id=ticket.id, user_id=manager.id, comment="Technician booked"),
            TicketComment(ticket_id=ticket.id, user_id=manager.id, comment="Bill as warranty", is_internal=True),
        ]
    )
    db_session.commit()
    _login_as(client, db_session, manager)
    link = client.post(f"/api/tickets/{ticket.id}/share").json()
    client.cookies.clear()

    response = client.get("/api/public/tickets/TKT-00001", params={"token": link["token"]})

    assert response.status_code == 200
    assert [item["comment"] for item in response.json()["comments"]] == ["Technician booked"]


def test_shared_project_omits_internal_fields(client: TestClient, db_session: Session) -> None:
    project = Project(project_number="PRJ-00001", project_name="Warehouse CCTV", work_notes="alarm code 4321")
    db_session.add(project)
    db_session.commit()
    _login_as(client, db_session, _user(db_session, Role.PROJECT_MANAGER))
    link = client.post(f"/api/projects/{project.id}/share").json()
    client.cookies.clear()

    response = client.get("/api/public/projects/PRJ-00001", params={"token": link["token"]})

    assert response.status_code == 200
    assert response.json()["project_name"] == "Warehouse CCTV"
    assert "work_notes" not in response.json()


def test_public_inquiry_forms(client: TestClient, db_session: Session) -> None:
    form = {
        "name": "Pat Doe",
        "email": "Pat@Example.com",
        "phone": "555-0199",
        "service_type": "cctv",
        "address": "1 Main St",
    }

    inquiry = client.post("/api/public/inquiries", json=form)
    quote_request = client.post("/api/public/quote-requests", json={**form, "type": "referral"})
    referral = client.post("/api/public/referrals", json={**form, "referred_by": "Sam"})

    assert inquiry.status_code == quote_request.status_code == referral.status_code == 201
    types = {row.id: row.type for row in db_session.scalars(select(Inquiry)).all()}
    assert types[uuid.UUID(inquiry.json()["id"])] == "inquiry"
    assert types[uuid.UUID(quote_request.json()["id"])] == "quote_request"
    assert types[uuid.UUID(referral.json()["id"])] == "referral"
    entries = db_session.scalars(select(Activity).where(Activity.entity_type == "inquiry")).all()
    assert len(entries) == 3
    assert all(entry.user_id is None for entry in entries)


def test_public_inquiry_validates_input(client: TestClient) -> None:
    response = client.post("/api/public/inquiries", json={"name": "Pat", "email": "not-an-email"})

    assert response.status_code == 422
    assert response.json()["code"] == "validation_error"
