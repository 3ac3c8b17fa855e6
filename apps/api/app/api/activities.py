from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.rbac import require_capability
from app.models.audit import Activity
from app.platform.security.context import Principal
from app.platform.security.roles import Capability


router = APIRouter(prefix="/api/activities", tags=["audit"])


class ActivityRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID | None
    action: str
    entity_type: str
    entity_id: str | None
    entity_name: str | None
    details: dict[str, Any] | None
    ip_address: str | None
    user_agent: str | None
    correlation_id: str | None
    timestamp: datetime


@router.get("", response_model=list[ActivityRead])
def list_activities(
    entity_type: str | None = Query(default=None),
    entity_id: str | None = Query(default=None),
    user_id: uuid.UUID | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    principal: Principal = Depends(require_capability(Capability.VIEW_ACTIVITIES)),
    db: Session = Depends(get_db),
) -> list[ActivityRead]:
    stmt = select(Activity).order_by(Activity.timestamp.desc()).limit(limit)
    if entity_type:
        stmt = stmt.where(Activity.entity_type == entity_type)
    if entity_id:
        stmt = stmt.where(Activity.entity_id == entity_id)
    if user_id is not None:
        stmt = stmt.where(Activity.user_id == user_id)
    return [ActivityRead.model_validate(item) for item in db.scalars(stmt).all()]
