from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.business.billing.schemas import InvoiceCreate, InvoiceRead, QuoteCreate, QuoteRead
from app.business.billing.service import billing_service
from app.core.auth import get_activity_logger, get_guard, get_request_context, require_principal
from app.core.context import RequestContext
from app.core.database import get_db
from app.core.rbac import require_capability
from app.operations.schemas import ShareLinkRead
from app.platform.security.context import Principal
from app.platform.security.guard import AuthorizationGuard
from app.platform.security.roles import Capability
from app.services.audit import ActivityLogger


quotes_router = APIRouter(prefix="/api/quotes", tags=["billing.quotes"])
invoices_router = APIRouter(prefix="/api/invoices", tags=["billing.invoices"])


@quotes_router.get("", response_model=list[QuoteRead])
def list_quotes(
    status_filter: str | None = Query(default=None, alias="status"),
    principal: Principal = Depends(require_principal),
    guard: AuthorizationGuard = Depends(get_guard),
    db: Session = Depends(get_db),
) -> list[QuoteRead]:
    return billing_service.list_quotes(db, guard, principal, status_filter=status_filter)


@quotes_router.post("", response_model=QuoteRead, status_code=status.HTTP_201_CREATED)
def create_quote(
    dto: QuoteCreate,
    principal: Principal = Depends(require_capability(Capability.MANAGE_QUOTES)),
    db: Session = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
    context: RequestContext | None = Depends(get_request_context),
) -> QuoteRead:
    quote = billing_service.create_quote(db, principal, dto)
    activity.log_activity(
        principal.id,
        "create",
        "quote",
        quote.id,
        quote.quote_number,
        details={"total": str(quote.total)},
        request_context=context,
    )
    return quote


@quotes_router.get("/{quote_id}", response_model=QuoteRead)
def get_quote(
    quote_id: uuid.UUID,
    principal: Principal = Depends(require_principal),
    guard: AuthorizationGuard = Depends(get_guard),
    db: Session = Depends(get_db),
) -> QuoteRead:
    return billing_service.get_quote(db, guard, principal, quote_id)


@quotes_router.post("/{quote_id}/share", response_model=ShareLinkRead)
def share_quote(
    quote_id: uuid.UUID,
    principal: Principal = Depends(require_capability(Capability.MANAGE_QUOTES)),
    db: Session = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
    context: RequestContext | None = Depends(get_request_context),
) -> ShareLinkRead:
    link = billing_service.issue_quote_link(db, quote_id)
    activity.log_activity(principal.id, "share", "quote", quote_id, link.number, request_context=context)
    return link


@invoices_router.get("", response_model=list[InvoiceRead])
def list_invoices(
    status_filter: str | None = Query(default=None, alias="status"),
    principal: Principal = Depends(require_principal),
    guard: AuthorizationGuard = Depends(get_guard),
    db: Session = Depends(get_db),
) -> list[InvoiceRead]:
    return billing_service.list_invoices(db, guard, principal, status_filter=status_filter)


@invoices_router.post("", response_model=InvoiceRead, status_code=status.HTTP_201_CREATED)
def create_invoice(
    dto: InvoiceCreate,
    principal: Principal = Depends(require_capability(Capability.MANAGE_INVOICES)),
    db: Session = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
    context: RequestContext | None = Depends(get_request_context),
) -> InvoiceRead:
    invoice = billing_service.create_invoice(db, principal, dto)
    activity.log_activity(
        principal.id,
        "create",
        "invoice",
        invoice.id,
        invoice.invoice_number,
        details={"total": str(invoice.total)},
        request_context=context,
    )
    return invoice


@invoices_router.get("/{invoice_id}", response_model=InvoiceRead)
def get_invoice(
    invoice_id: uuid.UUID,
    principal: Principal = Depends(require_principal),
    guard: AuthorizationGuard = Depends(get_guard),
    db: Session = Depends(get_db),
) -> InvoiceRead:
    return billing_service.get_invoice(db, guard, principal, invoice_id)


@invoices_router.post("/{invoice_id}/share", response_model=ShareLinkRead)
def share_invoice(
    invoice_id: uuid.UUID,
    principal: Principal = Depends(require_capability(Capability.MANAGE_INVOICES)),
    db: Session = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
    context: RequestContext | None = Depends(get_request_context),
) -> ShareLinkRead:
    link = billing_service.issue_invoice_link(db, invoice_id)
    activity.log_activity(principal.id, "share", "invoice", invoice_id, link.number, request_context=context)
    return link
