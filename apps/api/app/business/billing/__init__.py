from app.business.billing.models import Invoice, InvoiceItem, Payment, Quotation, QuotationItem

__all__ = [
    "Quotation",
    "QuotationItem",
    "Invoice",
    "InvoiceItem",
    "Payment",
]
