from __future__ import annotations

import uuid
from collections.abc import Generator

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.core.database import Base
from app.operations.models import Task
from app.services import numbering
from app.services.numbering import add_numbered, next_business_number


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


def _task(db: Session, number: str) -> None:
    db.add(Task(task_number=number, title="Survey", created_by_id=uuid.uuid4()))
    db.commit()


def test_numbers_start_at_one(db_session: Session) -> None:
    assert next_business_number(db_session, Task, "task_number", "TSK") == "TSK-00001"


def test_numbers_follow_highest_issued_after_deletes(db_session: Session) -> None:
    _task(db_session, "TSK-00001")
    _task(db_session, "TSK-00003")

    assert next_business_number(db_session, Task, "task_number", "TSK") == "TSK-00004"


def test_numbers_keep_counting_past_five_digits(db_session: Session) -> None:
    _task(db_session, "TSK-99999")
    _task(db_session, "TSK-100000")

    assert next_business_number(db_session, Task, "task_number", "TSK") == "TSK-100001"


def test_collision_is_retried_with_fresh_number(db_session: Session, monkeypatch: pytest.MonkeyPatch) -> None:
    _task(db_session, "TSK-00001")
    original = numbering.next_business_number
    issued: list[str] = []

    def stale_first(session: Session, model: type, column_name: str, prefix: str) -> str:
        number = "TSK-00001" if not issued else original(session, model, column_name, prefix)
        issued.append(number)
        return number

    monkeypatch.setattr(numbering, "next_business_number", stale_first)
    task = Task(title="Mount cameras", created_by_id=uuid.uuid4())

    add_numbered(db_session, task, "task_number", "TSK")

    assert issued == ["TSK-00001", "TSK-00002"]
    assert task.task_number == "TSK-00002"
    assert db_session.scalar(select(func.count()).select_from(Task)) == 2


def test_persistent_collision_is_raised(db_session: Session, monkeypatch: pytest.MonkeyPatch) -> None:
    _task(db_session, "TSK-00001")
    monkeypatch.setattr(numbering, "next_business_number", lambda *args: "TSK-00001")

    with pytest.raises(IntegrityError):
        add_numbered(db_session, Task(title="Mount cameras", created_by_id=uuid.uuid4()), "task_number", "TSK")
