from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.crm.models import Client, Lead
from app.metrics import observe_ownership_failure


logger = logging.getLogger("app.security")


@dataclass(frozen=True, slots=True)
class OwnedEntityIds:
    client_ids: frozenset[uuid.UUID] = frozenset()
    lead_ids: frozenset[uuid.UUID] = frozenset()

    @property
    def is_empty(self) -> bool:
        return not self.client_ids and not self.lead_ids


NO_OWNED_ENTITIES = OwnedEntityIds()


def resolve_owned_entity_ids(session: Session, principal_id: uuid.UUID) -> OwnedEntityIds:
    """Collect the Client and Lead ids whose ``user_id`` is the principal.

    Computed fresh on every call. A storage failure yields empty sets, which
    denies every scoped read instead of widening it.
    """

    try:
        client_ids = session.scalars(select(Client.id).where(Client.user_id == principal_id)).all()
        lead_ids = session.scalars(select(Lead.id).where(Lead.user_id == principal_id)).all()
    except SQLAlchemyError as exc:
        observe_ownership_failure()
        logger.error(
            "ownership_resolution_failed",
            extra={"user_id": str(principal_id), "error": str(exc)},
        )
        return NO_OWNED_ENTITIES
    return OwnedEntityIds(client_ids=frozenset(client_ids), lead_ids=frozenset(lead_ids))
