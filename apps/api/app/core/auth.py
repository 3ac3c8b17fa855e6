from __future__ import annotations

import uuid

from fastapi import Depends
from sqlalchemy.orm import Session, sessionmaker
from starlette.requests import Request

from app.core.config import get_settings
from app.core.context import RequestContext
from app.core.database import get_db
from app.platform.security.context import Principal
from app.platform.security.guard import AuthorizationGuard
from app.platform.security.ownership import OwnedEntityIds, resolve_owned_entity_ids
from app.platform.security.sessions import SessionStore
from app.services.audit import ActivityLogger


def get_session_id(request: Request) -> str | None:
    return request.cookies.get(get_settings().session_cookie_name)


def get_session_store(db: Session = Depends(get_db)) -> SessionStore:
    return SessionStore(db)


def get_principal(
    request: Request,
    store: SessionStore = Depends(get_session_store),
) -> Principal | None:
    principal = store.resolve_principal(get_session_id(request))
    context = getattr(request.state, "context", None)
    if principal is not None and context is not None:
        context.user_id = str(principal.id)
    return principal


def get_guard(db: Session = Depends(get_db)) -> AuthorizationGuard:
    def lookup(principal_id: uuid.UUID) -> OwnedEntityIds:
        return resolve_owned_entity_ids(db, principal_id)

    return AuthorizationGuard(lookup)


def require_principal(
    principal: Principal | None = Depends(get_principal),
    guard: AuthorizationGuard = Depends(get_guard),
) -> Principal:
    return guard.authenticate(principal)


def get_request_context(request: Request) -> RequestContext | None:
    return getattr(request.state, "context", None)


def get_activity_logger(db: Session = Depends(get_db)) -> ActivityLogger:
    # Separate session on the same engine: audit rows commit on their own.
    return ActivityLogger(sessionmaker(bind=db.get_bind(), autocommit=False, autoflush=False))
