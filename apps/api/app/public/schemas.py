from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict


class PublicTicketComment(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    comment: str
    created_at: datetime


class PublicTicketRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    ticket_number: str
    subject: str
    description: str | None
    status: str
    priority: str
    resolved_at: datetime | None
    created_at: datetime
    comments: list[PublicTicketComment] = []


class PublicProjectRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    project_number: str
    project_name: str
    status: str
    start_date: datetime | None
    estimated_completion_date: datetime | None
    actual_completion_date: datetime | None
    total_cost: Decimal | None
    created_at: datetime
