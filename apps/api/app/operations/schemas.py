from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.crm.schemas import ServiceType


Priority = Literal["low", "medium", "high", "urgent"]
RequestStatus = Literal["pending", "reviewed", "quoted", "approved", "scheduled", "in_progress", "completed", "cancelled"]
ProjectStatus = Literal["scheduled", "in_progress", "on_hold", "completed", "cancelled"]
TaskStatus = Literal["pending", "in_progress", "completed", "cancelled"]
TicketStatus = Literal["open", "in_progress", "waiting", "resolved", "closed"]


class ServiceRequestCreate(BaseModel):
    """Fields a client may set on a new request; ownership and status are server-side."""

    model_config = ConfigDict(extra="forbid")

    service_type: ServiceType
    title: str = Field(min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=5000)
    priority: Priority = "medium"
    property_type: Literal["residential", "commercial", "industrial"] | None = None
    address: str | None = Field(default=None, max_length=500)
    estimated_value: Decimal | None = Field(default=None, ge=0)


class ServiceRequestClientUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=5000)
    priority: Priority | None = None
    address: str | None = Field(default=None, max_length=500)


class ServiceRequestStaffUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=5000)
    priority: Priority | None = None
    status: RequestStatus | None = None
    address: str | None = Field(default=None, max_length=500)
    quoted_amount: Decimal | None = Field(default=None, ge=0)
    admin_notes: str | None = None
    scheduled_date: datetime | None = None
    completed_date: datetime | None = None


class ServiceRequestRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    client_id: UUID
    service_type: str
    status: str
    priority: str
    title: str
    description: str | None
    property_type: str | None
    address: str | None
    estimated_value: Decimal | None
    quoted_amount: Decimal | None
    admin_notes: str | None = None
    scheduled_date: datetime | None
    completed_date: datetime | None
    created_at: datetime
    updated_at: datetime


class CommunicationCreate(BaseModel):
    message: str = Field(min_length=1, max_length=5000)
    is_internal: bool = False


class CommunicationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    service_request_id: UUID | None
    project_id: UUID | None
    from_user_id: UUID
    recipient_user_id: UUID | None
    message: str
    is_internal: bool
    created_at: datetime


class ProjectCreate(BaseModel):
    project_name: str = Field(min_length=1, max_length=255)
    service_request_id: UUID | None = None
    client_id: UUID | None = None
    lead_id: UUID | None = None
    assigned_technician_id: UUID | None = None
    status: ProjectStatus = "scheduled"
    start_date: datetime | None = None
    estimated_completion_date: datetime | None = None
    total_cost: Decimal | None = Field(default=None, ge=0)
    equipment_used: list[str] | None = None
    work_notes: str | None = None


class ProjectUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    project_name: str | None = Field(default=None, min_length=1, max_length=255)
    client_id: UUID | None = None
    lead_id: UUID | None = None
    assigned_technician_id: UUID | None = None
    status: ProjectStatus | None = None
    start_date: datetime | None = None
    estimated_completion_date: datetime | None = None
    actual_completion_date: datetime | None = None
    total_cost: Decimal | None = Field(default=None, ge=0)
    equipment_used: list[str] | None = None
    work_notes: str | None = None


class ProjectProgressUpdate(BaseModel):
    """What an assigned technician may change on their own project."""

    model_config = ConfigDict(extra="forbid")

    status: ProjectStatus | None = None
    actual_completion_date: datetime | None = None
    equipment_used: list[str] | None = None
    work_notes: str | None = None


class ProjectRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    project_number: str
    service_request_id: UUID | None
    client_id: UUID | None
    lead_id: UUID | None
    assigned_technician_id: UUID | None
    project_name: str
    status: str
    start_date: datetime | None
    estimated_completion_date: datetime | None
    actual_completion_date: datetime | None
    total_cost: Decimal | None
    equipment_used: list[str] | None
    work_notes: str | None = None
    client_feedback: str | None
    client_rating: int | None
    created_at: datetime
    updated_at: datetime


class ProjectCommentCreate(BaseModel):
    comment: str = Field(min_length=1, max_length=5000)


class ProjectCommentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    project_id: UUID
    user_id: UUID
    comment: str
    created_at: datetime


class ProjectFeedback(BaseModel):
    client_rating: int = Field(ge=1, le=5)
    client_feedback: str | None = Field(default=None, max_length=5000)


class TaskCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    priority: Priority = "medium"
    assigned_to_id: UUID | None = None
    project_id: UUID | None = None
    due_date: datetime | None = None


class TaskUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    status: TaskStatus | None = None
    priority: Priority | None = None
    due_date: datetime | None = None


class TaskRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    task_number: str
    title: str
    description: str | None
    status: str
    priority: str
    assigned_to_id: UUID | None
    created_by_id: UUID
    project_id: UUID | None
    due_date: datetime | None
    completed_at: datetime | None
    created_at: datetime
    updated_at: datetime


class TicketCreate(BaseModel):
    subject: str = Field(min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=5000)
    priority: Priority = "medium"
    project_id: UUID | None = None
    client_id: UUID | None = None
    lead_id: UUID | None = None


class TicketUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    subject: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=5000)
    status: TicketStatus | None = None
    priority: Priority | None = None
    assigned_to_id: UUID | None = None


class TicketRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    ticket_number: str
    project_id: UUID | None
    client_id: UUID | None
    lead_id: UUID | None
    created_by_id: UUID
    assigned_to_id: UUID | None
    subject: str
    description: str | None
    status: str
    priority: str
    resolved_at: datetime | None
    created_at: datetime
    updated_at: datetime


class TicketCommentCreate(BaseModel):
    comment: str = Field(min_length=1, max_length=5000)
    is_internal: bool = False


class TicketCommentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    ticket_id: UUID
    user_id: UUID
    comment: str
    is_internal: bool
    created_at: datetime


class ShareLinkRead(BaseModel):
    number: str
    token: str
    path: str
    expires_at: datetime


class ClientDashboard(BaseModel):
    active_requests: list[ServiceRequestRead]
    active_projects: list[ProjectRead]
    recent_communications: list[CommunicationRead]
