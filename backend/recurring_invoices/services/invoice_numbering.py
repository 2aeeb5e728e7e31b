"""Sequential per-organization invoice numbering coupled to invoice creation."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from recurring_invoices.models import Invoice, InvoiceStatus
from recurring_invoices.repositories.invoice_counter_repository import InvoiceCounterRepository
from recurring_invoices.repositories.invoice_repository import InvoiceRepository
from recurring_invoices.repositories.usage_record_repository import UsageRecordRepository
from recurring_invoices.schemas.recurring_template import TemplateItem

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InvoiceDraft:
    """Everything needed to persist one generated invoice."""

    organization_id: UUID
    customer_id: UUID
    recurring_template_id: UUID | None
    status: InvoiceStatus
    currency: str
    notes: str | None
    issue_date: datetime
    due_date: datetime
    items: tuple[TemplateItem, ...]
    usage_record_ids: tuple[UUID, ...] = field(default_factory=tuple)


class InvoiceNumberAllocator:
    """Allocates the next invoice number and creates the invoice with it.

    ``create_invoice`` only stages writes. It must be called inside
    ``generation_transaction`` so the counter increment, the invoice, its
    items and the usage claim commit or roll back together.
    """

    def __init__(self, db: Session):
        self.db = db
        self.counter_repo = InvoiceCounterRepository(db)
        self.invoice_repo = InvoiceRepository(db)
        self.usage_repo = UsageRecordRepository(db)

    def create_invoice(self, draft: InvoiceDraft) -> Invoice:
        # The counter upsert is the first write so it takes the organization's
        # row lock before anything else is staged.
        invoice_no = self.counter_repo.increment_or_create(draft.organization_id)

        invoice = self.invoice_repo.create_with_items(
            organization_id=draft.organization_id,
            customer_id=draft.customer_id,
            recurring_template_id=draft.recurring_template_id,
            invoice_no=invoice_no,
            status=draft.status,
            currency=draft.currency,
            notes=draft.notes,
            issue_date=draft.issue_date,
            due_date=draft.due_date,
            items=list(draft.items),
        )

        if draft.usage_record_ids:
            self.usage_repo.claim(
                list(draft.usage_record_ids),
                invoice.id,  # type: ignore[arg-type]
            )

        logger.debug(
            "Allocated invoice number %d for organization %s", invoice_no, draft.organization_id
        )
        return invoice
