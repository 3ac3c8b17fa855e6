from __future__ import annotations

import uuid
from typing import Any

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.core.auth import get_activity_logger, get_request_context
from app.core.context import RequestContext
from app.core.database import get_db
from app.core.rbac import require_capability
from app.crm.schemas import (
    ClientCreate,
    ClientRead,
    ClientUpdate,
    InquiryRead,
    LeadConvertRequest,
    LeadCreate,
    LeadRead,
    LeadUpdate,
)
from app.crm.service import client_service, inquiry_service, lead_service
from app.platform.security.context import Principal
from app.platform.security.roles import Capability
from app.services.audit import ActivityLogger


clients_router = APIRouter(prefix="/api/clients", tags=["crm.clients"])
leads_router = APIRouter(prefix="/api/leads", tags=["crm.leads"])
inquiries_router = APIRouter(prefix="/api/inquiries", tags=["crm.inquiries"])


@clients_router.get("", response_model=list[ClientRead], response_model_exclude_unset=True)
def list_clients(
    status_filter: str | None = Query(default=None, alias="status"),
    q: str | None = Query(default=None),
    principal: Principal = Depends(require_capability(Capability.VIEW_CLIENTS)),
    db: Session = Depends(get_db),
) -> list[dict[str, Any]]:
    return client_service.list_clients(db, principal.role, status_filter=status_filter, q=q)


@clients_router.post("", response_model=ClientRead, response_model_exclude_unset=True, status_code=status.HTTP_201_CREATED)
def create_client(
    dto: ClientCreate,
    principal: Principal = Depends(require_capability(Capability.MANAGE_CLIENTS)),
    db: Session = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
    context: RequestContext | None = Depends(get_request_context),
) -> dict[str, Any]:
    client = client_service.create_client(db, principal.role, dto)
    activity.log_activity(principal.id, "create", "client", client["id"], client["name"], request_context=context)
    return client


@clients_router.get("/{client_id}", response_model=ClientRead, response_model_exclude_unset=True)
def get_client(
    client_id: uuid.UUID,
    principal: Principal = Depends(require_capability(Capability.VIEW_CLIENTS)),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    return client_service.get_client(db, principal.role, client_id)


@clients_router.patch("/{client_id}", response_model=ClientRead, response_model_exclude_unset=True)
def update_client(
    client_id: uuid.UUID,
    dto: ClientUpdate,
    principal: Principal = Depends(require_capability(Capability.MANAGE_CLIENTS)),
    db: Session = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
    context: RequestContext | None = Depends(get_request_context),
) -> dict[str, Any]:
    client = client_service.update_client(db, principal.role, client_id, dto)
    activity.log_activity(
        principal.id,
        "update",
        "client",
        client_id,
        client["name"],
        details={"fields": sorted(dto.model_dump(exclude_unset=True))},
        request_context=context,
    )
    return client


@leads_router.get("", response_model=list[LeadRead], response_model_exclude_unset=True)
def list_leads(
    status_filter: str | None = Query(default=None, alias="status"),
    principal: Principal = Depends(require_capability(Capability.VIEW_LEADS)),
    db: Session = Depends(get_db),
) -> list[dict[str, Any]]:
    return lead_service.list_leads(db, principal.role, status_filter=status_filter)


@leads_router.post("", response_model=LeadRead, response_model_exclude_unset=True, status_code=status.HTTP_201_CREATED)
def create_lead(
    dto: LeadCreate,
    principal: Principal = Depends(require_capability(Capability.MANAGE_LEADS)),
    db: Session = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
    context: RequestContext | None = Depends(get_request_context),
) -> dict[str, Any]:
    lead = lead_service.create_lead(db, principal.role, dto)
    activity.log_activity(principal.id, "create", "lead", lead["id"], lead["name"], request_context=context)
    return lead


@leads_router.get("/{lead_id}", response_model=LeadRead, response_model_exclude_unset=True)
def get_lead(
    lead_id: uuid.UUID,
    principal: Principal = Depends(require_capability(Capability.VIEW_LEADS)),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    return lead_service.get_lead(db, principal.role, lead_id)


@leads_router.patch("/{lead_id}", response_model=LeadRead, response_model_exclude_unset=True)
def update_lead(
    lead_id: uuid.UUID,
    dto: LeadUpdate,
    principal: Principal = Depends(require_capability(Capability.MANAGE_LEADS)),
    db: Session = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
    context: RequestContext | None = Depends(get_request_context),
) -> dict[str, Any]:
    lead = lead_service.update_lead(db, principal.role, lead_id, dto)
    activity.log_activity(
        principal.id,
        "update",
        "lead",
        lead_id,
        lead["name"],
        details={"fields": sorted(dto.model_dump(exclude_unset=True))},
        request_context=context,
    )
    return lead


@leads_router.post("/{lead_id}/convert", response_model=ClientRead, response_model_exclude_unset=True)
def convert_lead(
    lead_id: uuid.UUID,
    dto: LeadConvertRequest,
    principal: Principal = Depends(require_capability(Capability.MANAGE_LEADS)),
    db: Session = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
    context: RequestContext | None = Depends(get_request_context),
) -> dict[str, Any]:
    client = lead_service.convert_lead(db, principal.role, lead_id, dto)
    activity.log_activity(
        principal.id,
        "convert",
        "lead",
        lead_id,
        client["name"],
        details={"client_id": client["id"]},
        request_context=context,
    )
    return client


@inquiries_router.get("", response_model=list[InquiryRead])
def list_inquiries(
    status_filter: str | None = Query(default=None, alias="status"),
    principal: Principal = Depends(require_capability(Capability.VIEW_LEADS)),
    db: Session = Depends(get_db),
) -> list[InquiryRead]:
    return [InquiryRead.model_validate(item) for item in inquiry_service.list_inquiries(db, status_filter=status_filter)]


@inquiries_router.post("/{inquiry_id}/convert", response_model=LeadRead, response_model_exclude_unset=True)
def convert_inquiry(
    inquiry_id: uuid.UUID,
    principal: Principal = Depends(require_capability(Capability.MANAGE_LEADS)),
    db: Session = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
    context: RequestContext | None = Depends(get_request_context),
) -> dict[str, Any]:
    lead = inquiry_service.convert_to_lead(db, inquiry_id)
    activity.log_activity(
        principal.id,
        "convert",
        "inquiry",
        inquiry_id,
        lead.name,
        details={"lead_id": str(lead.id)},
        request_context=context,
    )
    return lead_service.get_lead(db, principal.role, lead.id)
