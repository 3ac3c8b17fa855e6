from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.business.billing.models import Invoice, Quote
from app.business.billing.repository import InvoiceRepository, QuoteRepository
from app.business.billing.schemas import InvoiceCreate, InvoiceRead, LineItem, QuoteCreate, QuoteRead
from app.core.clock import utcnow
from app.operations.schemas import ShareLinkRead
from app.operations.service import share_link_payload
from app.platform.security import permissions as rules
from app.platform.security.context import Principal
from app.platform.security.errors import ResourceNotFound
from app.platform.security.guard import AuthorizationGuard
from app.platform.security.share_links import issue_share_token, resolve_share_link
from app.services.numbering import add_numbered


logger = logging.getLogger("app.billing")

OPEN_QUOTE_STATUSES = ("draft", "sent")


@dataclass(slots=True)
class BillingService:
    quote_repository: QuoteRepository = QuoteRepository()
    invoice_repository: InvoiceRepository = InvoiceRepository()

    def list_quotes(
        self,
        session: Session,
        guard: AuthorizationGuard,
        principal: Principal,
        *,
        status_filter: str | None = None,
    ) -> list[QuoteRead]:
        scope = guard.list_scope(principal, rules.QUOTE_VIEW)
        stmt = self.quote_repository.apply_scope_query(select(Quote), scope).order_by(Quote.created_at.desc())
        if status_filter:
            stmt = stmt.where(Quote.status == status_filter)
        return [QuoteRead.model_validate(item) for item in session.scalars(stmt).all()]

    def get_quote(self, session: Session, guard: AuthorizationGuard, principal: Principal, quote_id: uuid.UUID) -> QuoteRead:
        quote = guard.authorize(
            principal,
            rules.QUOTE_VIEW,
            lambda: session.get(Quote, quote_id),
            self.quote_repository.ownership,
            resource="Quote",
        )
        return QuoteRead.model_validate(quote)

    def create_quote(self, session: Session, principal: Principal, dto: QuoteCreate) -> QuoteRead:
        subtotal, tax, total = self._totals(dto.items, dto.tax_rate)
        quote = Quote(
            lead_id=dto.lead_id,
            client_id=dto.client_id,
            service_request_id=dto.service_request_id,
            created_by_id=principal.id,
            status=dto.status,
            items=[item.model_dump(mode="json") for item in dto.items],
            subtotal=subtotal,
            tax_rate=dto.tax_rate,
            tax=tax,
            total=total,
            valid_until=dto.valid_until,
            notes=dto.notes,
        )
        add_numbered(session, quote, "quote_number", "Q")
        session.refresh(quote)
        return QuoteRead.model_validate(quote)

    def issue_quote_link(self, session: Session, quote_id: uuid.UUID) -> ShareLinkRead:
        quote = session.get(Quote, quote_id)
        if quote is None:
            raise ResourceNotFound("Quote")
        issue_share_token(quote)
        session.commit()
        session.refresh(quote)
        logger.info("share_link_issued", extra={"entity_type": "quote", "entity_id": str(quote.id)})
        return share_link_payload(quote, quote.quote_number, "/api/public/quotes")

    def respond_to_quote(self, session: Session, quote_number: str, token: str, decision: str) -> Quote:
        """Record an approve/reject decision made through a share link."""

        quote = resolve_share_link(
            session,
            Quote,
            number_field="quote_number",
            number=quote_number,
            token=token,
            resource="quote",
        )
        if quote.status not in OPEN_QUOTE_STATUSES:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"Quote is already {quote.status}")
        quote.status = decision
        quote.responded_at = utcnow()
        session.commit()
        session.refresh(quote)
        return quote

    def list_invoices(
        self,
        session: Session,
        guard: AuthorizationGuard,
        principal: Principal,
        *,
        status_filter: str | None = None,
    ) -> list[InvoiceRead]:
        scope = guard.list_scope(principal, rules.INVOICE_VIEW)
        stmt = self.invoice_repository.apply_scope_query(select(Invoice), scope).order_by(Invoice.created_at.desc())
        if status_filter:
            stmt = stmt.where(Invoice.status == status_filter)
        return [InvoiceRead.model_validate(item) for item in session.scalars(stmt).all()]

    def get_invoice(self, session: Session, guard: AuthorizationGuard, principal: Principal, invoice_id: uuid.UUID) -> InvoiceRead:
        invoice = guard.authorize(
            principal,
            rules.INVOICE_VIEW,
            lambda: session.get(Invoice, invoice_id),
            self.invoice_repository.ownership,
            resource="Invoice",
        )
        return InvoiceRead.model_validate(invoice)

    def create_invoice(self, session: Session, principal: Principal, dto: InvoiceCreate) -> InvoiceRead:
        if dto.quote_id is not None and session.get(Quote, dto.quote_id) is None:
            raise ResourceNotFound("Quote")
        subtotal, tax, total = self._totals(dto.items, dto.tax_rate)
        invoice = Invoice(
            client_id=dto.client_id,
            lead_id=dto.lead_id,
            quote_id=dto.quote_id,
            project_id=dto.project_id,
            created_by_id=principal.id,
            status=dto.status,
            items=[item.model_dump(mode="json") for item in dto.items],
            subtotal=subtotal,
            tax_rate=dto.tax_rate,
            tax=tax,
            total=total,
            due_date=dto.due_date,
            notes=dto.notes,
        )
        add_numbered(session, invoice, "invoice_number", "INV")
        session.refresh(invoice)
        return InvoiceRead.model_validate(invoice)

    def issue_invoice_link(self, session: Session, invoice_id: uuid.UUID) -> ShareLinkRead:
        invoice = session.get(Invoice, invoice_id)
        if invoice is None:
            raise ResourceNotFound("Invoice")
        issue_share_token(invoice)
        session.commit()
        session.refresh(invoice)
        logger.info("share_link_issued", extra={"entity_type": "invoice", "entity_id": str(invoice.id)})
        return share_link_payload(invoice, invoice.invoice_number, "/api/public/invoices")

    def _totals(self, items: list[LineItem], tax_rate: Decimal) -> tuple[Decimal, Decimal, Decimal]:
        subtotal = self._q(sum((item.quantity * item.unit_price for item in items), Decimal("0")))
        tax = self._q(subtotal * tax_rate / Decimal("100"))
        return subtotal, tax, subtotal + tax

    @staticmethod
    def _q(value: Decimal) -> Decimal:
        return Decimal(value).quantize(Decimal("0.01"))


billing_service = BillingService()
