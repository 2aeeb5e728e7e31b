from recurring_invoices.repositories.customer_repository import CustomerRepository
from recurring_invoices.repositories.invoice_counter_repository import InvoiceCounterRepository
from recurring_invoices.repositories.invoice_repository import InvoiceRepository
from recurring_invoices.repositories.organization_repository import OrganizationRepository
from recurring_invoices.repositories.recurring_template_repository import (
    RecurringTemplateRepository,
    TemplateHasInvoicesError,
)
from recurring_invoices.repositories.usage_record_repository import UsageRecordRepository

__all__ = [
    "CustomerRepository",
    "InvoiceCounterRepository",
    "InvoiceRepository",
    "OrganizationRepository",
    "RecurringTemplateRepository",
    "TemplateHasInvoicesError",
    "UsageRecordRepository",
]
