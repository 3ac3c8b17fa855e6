from __future__ import annotations

from app.business.billing.models import Invoice, Quote
from app.platform.security.repository import BaseRepository


class QuoteRepository(BaseRepository):
    resource = "quote"
    model = Quote
    client_column = "client_id"
    lead_column = "lead_id"


class InvoiceRepository(BaseRepository):
    resource = "invoice"
    model = Invoice
    client_column = "client_id"
    lead_column = "lead_id"
