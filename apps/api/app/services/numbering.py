from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session


logger = logging.getLogger("app.numbering")

NUMBER_ATTEMPTS = 5


def next_business_number(session: Session, model: Any, column_name: str, prefix: str) -> str:
    """Next human-readable number for ``model``, e.g. ``TKT-00042``.

    Follows the highest number already issued, so deleted rows never cause a
    number to be handed out twice.
    """

    column = getattr(model, column_name)
    current = session.scalar(
        select(column)
        .where(column.like(f"{prefix}-%"))
        .order_by(func.length(column).desc(), column.desc())
        .limit(1)
    )
    counter = int(current.rsplit("-", 1)[1]) if current else 0
    return f"{prefix}-{counter + 1:05d}"


def add_numbered(session: Session, record: Any, column_name: str, prefix: str) -> None:
    """Assign the next number to ``record`` and commit it.

    Two concurrent creates can compute the same number; the unique constraint
    rejects the loser, which retries with a fresh number.
    """

    model = type(record)
    for attempt in range(1, NUMBER_ATTEMPTS + 1):
        setattr(record, column_name, next_business_number(session, model, column_name, prefix))
        session.add(record)
        try:
            session.commit()
            return
        except IntegrityError:
            session.rollback()
            if attempt == NUMBER_ATTEMPTS:
                raise
            logger.warning(
                "business_number_collision",
                extra={"entity_type": model.__tablename__, "outcome": "retry"},
            )
