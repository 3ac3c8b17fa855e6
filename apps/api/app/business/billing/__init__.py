from app.business.billing.models import Invoice, Quote
from app.business.billing.schemas import InvoiceCreate, InvoiceRead, QuoteCreate, QuoteRead

__all__ = [
    "Quote",
    "Invoice",
    "QuoteCreate",
    "QuoteRead",
    "InvoiceCreate",
    "InvoiceRead",
]
