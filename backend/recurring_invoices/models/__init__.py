from recurring_invoices.models.customer import Customer
from recurring_invoices.models.invoice import Invoice, InvoiceItem, InvoiceStatus
from recurring_invoices.models.invoice_counter import InvoiceCounter
from recurring_invoices.models.organization import Organization
from recurring_invoices.models.recurring_template import (
    RecurringTemplate,
    TemplateFrequency,
    TemplateStatus,
)
from recurring_invoices.models.usage_record import UsageRecord

__all__ = [
    "Customer",
    "Invoice",
    "InvoiceCounter",
    "InvoiceItem",
    "InvoiceStatus",
    "Organization",
    "RecurringTemplate",
    "TemplateFrequency",
    "TemplateStatus",
    "UsageRecord",
]
