from __future__ import annotations

import logging
import secrets
from datetime import timedelta
from typing import Any, TypeVar

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.clock import as_utc, utcnow
from app.core.config import get_settings
from app.metrics import observe_share_link_denial
from app.platform.security.errors import ShareLinkDenied


logger = logging.getLogger("app.security")

ModelT = TypeVar("ModelT")

SHARE_TOKEN_BYTES = 32


def generate_share_token() -> str:
    return secrets.token_urlsafe(SHARE_TOKEN_BYTES)


def issue_share_token(record: Any) -> str:
    """Attach a fresh token to ``record``; any earlier link stops working."""

    token = generate_share_token()
    record.share_token = token
    record.share_token_created_at = utcnow()
    return token


def revoke_share_token(record: Any) -> None:
    record.share_token = None
    record.share_token_created_at = None


def resolve_share_link(
    session: Session,
    model: type[ModelT],
    *,
    number_field: str,
    number: str,
    token: str,
    resource: str,
) -> ModelT:
    """Return the record a public link points to, or raise ``ShareLinkDenied``.

    The token must exist, belong to the record whose business number is in
    the URL, and be younger than ``share_link_validity_days``. Every failure
    looks the same to the caller.
    """

    if not token:
        raise _denied(resource, "missing_token")

    record = session.scalar(select(model).where(model.share_token == token))  # type: ignore[attr-defined]
    if record is None:
        raise _denied(resource, "unknown_token")

    expected = str(getattr(record, number_field)).encode("utf-8")
    if not secrets.compare_digest(expected, number.encode("utf-8")):
        raise _denied(resource, "number_mismatch")

    issued_at = getattr(record, "share_token_created_at", None)
    if issued_at is None:
        raise _denied(resource, "expired")
    validity = timedelta(days=get_settings().share_link_validity_days)
    if utcnow() - as_utc(issued_at) > validity:
        raise _denied(resource, "expired")
    return record


def _denied(resource: str, reason: str) -> ShareLinkDenied:
    observe_share_link_denial(resource, reason)
    logger.info("share_link_denied", extra={"entity_type": resource, "outcome": reason})
    return ShareLinkDenied(resource, reason)
