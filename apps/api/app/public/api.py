from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.business.billing.models import Invoice, Quote
from app.business.billing.schemas import PublicInvoiceRead, PublicQuoteRead, QuoteResponse
from app.business.billing.service import billing_service
from app.core.auth import get_activity_logger, get_request_context
from app.core.context import RequestContext
from app.core.database import get_db
from app.crm.schemas import InquiryCreate, InquiryReceipt
from app.crm.service import inquiry_service
from app.operations.models import Project, Ticket, TicketComment
from app.platform.security.share_links import resolve_share_link
from app.public.schemas import PublicProjectRead, PublicTicketComment, PublicTicketRead
from app.services.audit import ActivityLogger


router = APIRouter(prefix="/api/public", tags=["public"])

INQUIRY_RECEIVED = "Thank you. Our team will contact you shortly."


@router.get("/quotes/{quote_number}", response_model=PublicQuoteRead)
def read_shared_quote(
    quote_number: str,
    token: str = Query(default="", max_length=256),
    db: Session = Depends(get_db),
) -> PublicQuoteRead:
    quote = resolve_share_link(db, Quote, number_field="quote_number", number=quote_number, token=token, resource="quote")
    return PublicQuoteRead.model_validate(quote)


def _respond(
    quote_number: str,
    token: str,
    new_status: str,
    db: Session,
    activity: ActivityLogger,
    context: RequestContext | None,
) -> QuoteResponse:
    quote = billing_service.respond_to_quote(db, quote_number, token, new_status)
    # Share-link holders are anonymous.
    activity.log_activity(
        None,
        new_status,
        "quote",
        quote.id,
        quote.quote_number,
        details={"via": "share_link"},
        request_context=context,
    )
    return QuoteResponse(quote_number=quote.quote_number, status=quote.status, message=f"Quote {new_status}")


@router.post("/quotes/{quote_number}/approve", response_model=QuoteResponse)
def approve_shared_quote(
    quote_number: str,
    token: str = Query(default="", max_length=256),
    db: Session = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
    context: RequestContext | None = Depends(get_request_context),
) -> QuoteResponse:
    return _respond(quote_number, token, "approved", db, activity, context)


@router.post("/quotes/{quote_number}/reject", response_model=QuoteResponse)
def reject_shared_quote(
    quote_number: str,
    token: str = Query(default="", max_length=256),
    db: Session = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
    context: RequestContext | None = Depends(get_request_context),
) -> QuoteResponse:
    return _respond(quote_number, token, "rejected", db, activity, context)


@router.get("/invoices/{invoice_number}", response_model=PublicInvoiceRead)
def read_shared_invoice(
    invoice_number: str,
    token: str = Query(default="", max_length=256),
    db: Session = Depends(get_db),
) -> PublicInvoiceRead:
    invoice = resolve_share_link(
        db,
        Invoice,
        number_field="invoice_number",
        number=invoice_number,
        token=token,
        resource="invoice",
    )
    return PublicInvoiceRead.model_validate(invoice)


@router.get("/tickets/{ticket_number}", response_model=PublicTicketRead)
def read_shared_ticket(
    ticket_number: str,
    token: str = Query(default="", max_length=256),
    db: Session = Depends(get_db),
) -> PublicTicketRead:
    ticket = resolve_share_link(db, Ticket, number_field="ticket_number", number=ticket_number, token=token, resource="ticket")
    comments = db.scalars(
        select(TicketComment)
        .where(TicketComment.ticket_id == ticket.id, TicketComment.is_internal.is_(False))
        .order_by(TicketComment.created_at.asc())
    ).all()
    result = PublicTicketRead.model_validate(ticket)
    result.comments = [PublicTicketComment.model_validate(item) for item in comments]
    return result


@router.get("/projects/{project_number}", response_model=PublicProjectRead)
def read_shared_project(
    project_number: str,
    token: str = Query(default="", max_length=256),
    db: Session = Depends(get_db),
) -> PublicProjectRead:
    project = resolve_share_link(
        db,
        Project,
        number_field="project_number",
        number=project_number,
        token=token,
        resource="project",
    )
    return PublicProjectRead.model_validate(project)


def _submit(
    dto: InquiryCreate,
    db: Session,
    activity: ActivityLogger,
    context: RequestContext | None,
) -> InquiryReceipt:
    inquiry = inquiry_service.submit(db, dto)
    activity.log_activity(
        None,
        "submit",
        "inquiry",
        inquiry.id,
        inquiry.name,
        details={"type": inquiry.type, "service_type": inquiry.service_type},
        request_context=context,
    )
    return InquiryReceipt(id=inquiry.id, message=INQUIRY_RECEIVED)


@router.post("/inquiries", response_model=InquiryReceipt, status_code=status.HTTP_201_CREATED)
def submit_inquiry(
    dto: InquiryCreate,
    db: Session = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
    context: RequestContext | None = Depends(get_request_context),
) -> InquiryReceipt:
    return _submit(dto, db, activity, context)


@router.post("/quote-requests", response_model=InquiryReceipt, status_code=status.HTTP_201_CREATED)
def submit_quote_request(
    dto: InquiryCreate,
    db: Session = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
    context: RequestContext | None = Depends(get_request_context),
) -> InquiryReceipt:
    return _submit(dto.model_copy(update={"type": "quote_request"}), db, activity, context)


@router.post("/referrals", response_model=InquiryReceipt, status_code=status.HTTP_201_CREATED)
def submit_referral(
    dto: InquiryCreate,
    db: Session = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
    context: RequestContext | None = Depends(get_request_context),
) -> InquiryReceipt:
    return _submit(dto.model_copy(update={"type": "referral"}), db, activity, context)
