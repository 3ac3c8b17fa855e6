from __future__ import annotations

import logging
import secrets
import uuid
from datetime import timedelta

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from app.accounts.models import User, UserSession
from app.core.clock import as_utc, utcnow
from app.core.config import get_settings
from app.platform.security.context import Principal
from app.platform.security.roles import Role


logger = logging.getLogger("app.security")


def new_session_id() -> str:
    return secrets.token_urlsafe(32)


class SessionStore:
    """Server-side sessions keyed by an opaque cookie value.

    Every write commits before returning so a response that carries a new
    ``sid`` can never reach the client ahead of the row it points to.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def create(self, user_id: uuid.UUID) -> str:
        sid = new_session_id()
        ttl = timedelta(hours=get_settings().session_ttl_hours)
        self.session.add(UserSession(sid=sid, user_id=user_id, expires_at=utcnow() + ttl))
        self.session.commit()
        return sid

    def regenerate(self, old_sid: str | None, user_id: uuid.UUID) -> str:
        if old_sid:
            self.session.execute(delete(UserSession).where(UserSession.sid == old_sid))
        return self.create(user_id)

    def destroy(self, sid: str | None) -> None:
        if not sid:
            return
        self.session.execute(delete(UserSession).where(UserSession.sid == sid))
        self.session.commit()

    def destroy_all_for_user(self, user_id: uuid.UUID, *, keep_sid: str | None = None) -> None:
        stmt = delete(UserSession).where(UserSession.user_id == user_id)
        if keep_sid:
            stmt = stmt.where(UserSession.sid != keep_sid)
        self.session.execute(stmt)
        self.session.commit()

    def get(self, sid: str | None) -> UserSession | None:
        if not sid:
            return None
        record = self.session.get(UserSession, sid)
        if record is None:
            return None
        if as_utc(record.expires_at) <= utcnow():
            return None
        return record

    def resolve_principal(self, sid: str | None) -> Principal | None:
        """Map a cookie value to a principal, or ``None`` for any dead end.

        A session whose user row has since been deleted resolves to ``None``
        rather than an error; the caller simply becomes anonymous.
        """

        record = self.get(sid)
        if record is None:
            return None
        user = self.session.scalar(select(User).where(User.id == record.user_id))
        if user is None:
            logger.info("session_user_missing", extra={"user_id": str(record.user_id)})
            return None
        role = Role.parse(user.role)
        if role is None:
            logger.warning("session_user_role_unknown", extra={"user_id": str(user.id), "role": user.role})
            return None
        return Principal(
            id=user.id,
            role=role,
            is_active=user.is_active,
            email=user.email,
            display_name=user.display_name,
        )
