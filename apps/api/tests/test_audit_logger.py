from __future__ import annotations

import uuid
from collections.abc import Generator
from typing import Any

import pytest
from fastapi.testclient import TestClient
from prometheus_client import REGISTRY
from sqlalchemy import create_engine, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.accounts.models import User
from app.context import reset_correlation_id, set_correlation_id
from app.core.auth import get_activity_logger
from app.core.celery_app import record_activity
from app.core.config import get_settings
from app.core.context import RequestContext
from app.core.database import Base, get_db
from app.main import app
from app.middleware.rate_limit import reset_rate_limiter
from app.models.audit import Activity
from app.operations.models import ServiceRequest
from app.platform.security.sessions import SessionStore
from app.services.audit import ActivityLogger


@pytest.fixture()
def engine():  # type: ignore[no-untyped-def]
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db_session(engine) -> Generator[Session, None, None]:  # type: ignore[no-untyped-def]
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def configure_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("RATE_LIMIT_DISABLED", "true")
    monkeypatch.setenv("AUDIT_DISPATCH", "inline")
    get_settings.cache_clear()
    reset_rate_limiter()
    yield
    get_settings.cache_clear()
    reset_rate_limiter()


def _broken_factory() -> Session:
    raise OperationalError("INSERT INTO activities", {}, Exception("disk full"))


def _failures(dispatch: str) -> float:
    return REGISTRY.get_sample_value("audit_write_failures_total", {"dispatch": dispatch}) or 0.0


def test_inline_write_persists_request_metadata(engine, db_session: Session) -> None:  # type: ignore[no-untyped-def]
    logger = ActivityLogger(sessionmaker(bind=engine), dispatch="inline")
    context = RequestContext(
        request_id="req-1",
        correlation_id="corr-1",
        user_id=None,
        ip_address="203.0.113.7",
        user_agent="pytest",
    )
    user_id = uuid.uuid4()

    logger.log_activity(user_id, "update", "project", "p-1", "PRJ-00001", details={"fields": ["status"]}, request_context=context)

    row = db_session.scalar(select(Activity))
    assert row is not None
    assert row.user_id == user_id
    assert row.entity_id == "p-1"
    assert row.details == {"fields": ["status"]}
    assert row.ip_address == "203.0.113.7"
    assert row.correlation_id == "corr-1"


def test_correlation_id_falls_back_to_context_var(engine, db_session: Session) -> None:  # type: ignore[no-untyped-def]
    logger = ActivityLogger(sessionmaker(bind=engine), dispatch="inline")
    token = set_correlation_id("from-middleware")
    try:
        logger.log_activity(None, "submit", "inquiry")
    finally:
        reset_correlation_id(token)

    row = db_session.scalar(select(Activity))
    assert row is not None
    assert row.user_id is None
    assert row.correlation_id == "from-middleware"


def test_inline_failure_is_absorbed_and_counted() -> None:
    before = _failures("inline")

    ActivityLogger(_broken_factory, dispatch="inline").log_activity(uuid.uuid4(), "delete", "user")

    assert _failures("inline") == before + 1


def test_celery_dispatch_enqueues_payload(monkeypatch: pytest.MonkeyPatch) -> None:
    sent: list[dict[str, Any]] = []
    monkeypatch.setattr(record_activity, "delay", lambda payload: sent.append(payload))

    ActivityLogger(_broken_factory, dispatch="celery").log_activity("u-1", "login", "user", "u-1", "a@example.com")

    assert len(sent) == 1
    assert sent[0]["action"] == "login"
    assert sent[0]["entity_name"] == "a@example.com"


def test_celery_enqueue_failure_is_absorbed(monkeypatch: pytest.MonkeyPatch) -> None:
    def refuse(payload: dict[str, Any]) -> None:
        raise ConnectionError("broker unavailable")

    monkeypatch.setattr(record_activity, "delay", refuse)
    before = _failures("celery")

    ActivityLogger(_broken_factory, dispatch="celery").log_activity("u-1", "login", "user")

    assert _failures("celery") == before + 1


def test_mutation_succeeds_when_audit_write_fails(db_session: Session) -> None:
    user = User(email="client@example.com", role="client")
    db_session.add(user)
    db_session.commit()
    sid = SessionStore(db_session).create(user.id)

    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_activity_logger] = lambda: ActivityLogger(_broken_factory, dispatch="inline")
    try:
        with TestClient(app) as client:
            client.cookies.set("sid", sid)
            response = client.post(
                "/api/service-requests",
                json={"service_type": "cctv", "title": "Front gate camera"},
            )
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 201
    assert db_session.scalar(select(ServiceRequest.title)) == "Front gate camera"
