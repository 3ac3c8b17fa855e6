from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator


QuoteStatus = Literal["draft", "sent", "approved", "rejected", "expired"]
InvoiceStatus = Literal["draft", "sent", "paid", "overdue", "cancelled"]


class LineItem(BaseModel):
    description: str = Field(min_length=1, max_length=500)
    quantity: Decimal = Field(gt=Decimal("0"))
    unit_price: Decimal = Field(ge=Decimal("0"))


class QuoteCreate(BaseModel):
    lead_id: UUID | None = None
    client_id: UUID | None = None
    service_request_id: UUID | None = None
    items: list[LineItem] = Field(min_length=1)
    tax_rate: Decimal = Field(default=Decimal("0"), ge=Decimal("0"), le=Decimal("100"))
    valid_until: date | None = None
    notes: str | None = None
    status: Literal["draft", "sent"] = "draft"

    @model_validator(mode="after")
    def require_recipient(self) -> "QuoteCreate":
        if self.lead_id is None and self.client_id is None:
            raise ValueError("A quote needs a lead_id or a client_id")
        return self


class QuoteRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    quote_number: str
    lead_id: UUID | None
    client_id: UUID | None
    service_request_id: UUID | None
    created_by_id: UUID
    status: str
    items: list[LineItem]
    subtotal: Decimal
    tax_rate: Decimal
    tax: Decimal
    total: Decimal
    valid_until: date | None
    notes: str | None
    responded_at: datetime | None
    created_at: datetime
    updated_at: datetime


class PublicQuoteRead(BaseModel):
    """What a share-link holder sees: no internal ids or notes."""

    model_config = ConfigDict(from_attributes=True)

    quote_number: str
    status: str
    items: list[LineItem]
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    valid_until: date | None
    created_at: datetime


class InvoiceCreate(BaseModel):
    client_id: UUID | None = None
    lead_id: UUID | None = None
    quote_id: UUID | None = None
    project_id: UUID | None = None
    items: list[LineItem] = Field(min_length=1)
    tax_rate: Decimal = Field(default=Decimal("0"), ge=Decimal("0"), le=Decimal("100"))
    due_date: date | None = None
    notes: str | None = None
    status: Literal["draft", "sent"] = "draft"

    @model_validator(mode="after")
    def require_recipient(self) -> "InvoiceCreate":
        if self.lead_id is None and self.client_id is None:
            raise ValueError("An invoice needs a client_id or a lead_id")
        return self


class InvoiceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    invoice_number: str
    client_id: UUID | None
    lead_id: UUID | None
    quote_id: UUID | None
    project_id: UUID | None
    created_by_id: UUID
    status: str
    items: list[LineItem]
    subtotal: Decimal
    tax_rate: Decimal
    tax: Decimal
    total: Decimal
    due_date: date | None
    paid_date: date | None
    notes: str | None
    created_at: datetime
    updated_at: datetime


class PublicInvoiceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    invoice_number: str
    status: str
    items: list[LineItem]
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    due_date: date | None
    paid_date: date | None
    created_at: datetime


class QuoteResponse(BaseModel):
    quote_number: str
    status: str
    message: str
