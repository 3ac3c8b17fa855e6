from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from typing import Any

from sqlalchemy.orm import Session

from app.context import get_correlation_id
from app.core.config import get_settings
from app.core.context import RequestContext
from app.metrics import observe_audit_write_failure
from app.models.audit import Activity


logger = logging.getLogger("app.audit")

SessionFactory = Callable[[], Session]


def build_activity_payload(
    user_id: uuid.UUID | str | None,
    action: str,
    entity_type: str,
    entity_id: uuid.UUID | str | None,
    entity_name: str | None,
    details: dict[str, Any] | None,
    request_context: RequestContext | None,
) -> dict[str, Any]:
    return {
        "user_id": str(user_id) if user_id is not None else None,
        "action": action,
        "entity_type": entity_type,
        "entity_id": str(entity_id) if entity_id is not None else None,
        "entity_name": entity_name,
        "details": details,
        "ip_address": request_context.ip_address if request_context else None,
        "user_agent": request_context.user_agent if request_context else None,
        "correlation_id": (request_context.correlation_id if request_context else None) or get_correlation_id(),
    }


def write_activity(session: Session, payload: dict[str, Any]) -> Activity:
    user_id = payload.get("user_id")
    event = Activity(
        user_id=uuid.UUID(user_id) if user_id else None,
        action=payload["action"],
        entity_type=payload["entity_type"],
        entity_id=payload.get("entity_id"),
        entity_name=payload.get("entity_name"),
        details=payload.get("details"),
        ip_address=payload.get("ip_address"),
        user_agent=payload.get("user_agent"),
        correlation_id=payload.get("correlation_id"),
    )
    session.add(event)
    session.commit()
    return event


class ActivityLogger:
    """Appends to the activity log without ever failing the caller.

    Inline dispatch writes through its own session and transaction, so a
    failed audit insert cannot roll back the mutation it describes. Celery
    dispatch hands the payload to ``app.tasks.record_activity``.
    """

    def __init__(self, session_factory: SessionFactory, dispatch: str | None = None) -> None:
        self._session_factory = session_factory
        self._dispatch = (dispatch or get_settings().audit_dispatch).lower()

    def log_activity(
        self,
        user_id: uuid.UUID | str | None,
        action: str,
        entity_type: str,
        entity_id: uuid.UUID | str | None = None,
        entity_name: str | None = None,
        details: dict[str, Any] | None = None,
        request_context: RequestContext | None = None,
    ) -> None:
        payload = build_activity_payload(
            user_id, action, entity_type, entity_id, entity_name, details, request_context
        )
        if self._dispatch == "celery":
            self._enqueue(payload)
            return
        self._write_inline(payload)

    def _write_inline(self, payload: dict[str, Any]) -> None:
        try:
            with self._session_factory() as session:
                write_activity(session, payload)
        except Exception as exc:
            observe_audit_write_failure("inline")
            logger.error(
                "activity_write_failed",
                extra={
                    "action": payload["action"],
                    "entity_type": payload["entity_type"],
                    "entity_id": payload.get("entity_id"),
                    "error": str(exc),
                },
            )

    def _enqueue(self, payload: dict[str, Any]) -> None:
        from app.core.celery_app import record_activity

        try:
            record_activity.delay(payload)
        except Exception as exc:
            observe_audit_write_failure("celery")
            logger.error(
                "activity_enqueue_failed",
                extra={
                    "action": payload["action"],
                    "entity_type": payload["entity_type"],
                    "error": str(exc),
                },
            )
