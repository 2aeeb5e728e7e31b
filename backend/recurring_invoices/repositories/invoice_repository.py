from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from recurring_invoices.models import Invoice, InvoiceItem, InvoiceStatus
from recurring_invoices.schemas.recurring_template import TemplateItem


class InvoiceRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, invoice_id: UUID, organization_id: UUID | None = None) -> Invoice | None:
        query = self.db.query(Invoice).filter(Invoice.id == invoice_id)
        if organization_id is not None:
            query = query.filter(Invoice.organization_id == organization_id)
        return query.first()

    def get_items(self, invoice_id: UUID) -> list[InvoiceItem]:
        return (
            self.db.query(InvoiceItem)
            .filter(InvoiceItem.invoice_id == invoice_id)
            .order_by(InvoiceItem.position)
            .all()
        )

    def get_recent_for_template(self, template_id: UUID, limit: int = 10) -> list[Invoice]:
        return (
            self.db.query(Invoice)
            .filter(
                Invoice.recurring_template_id == template_id,
                Invoice.status != InvoiceStatus.CANCELLED.value,
            )
            .order_by(Invoice.issue_date.desc())
            .limit(limit)
            .all()
        )

    def create_with_items(
        self,
        *,
        organization_id: UUID,
        customer_id: UUID,
        recurring_template_id: UUID | None,
        invoice_no: int,
        status: InvoiceStatus,
        currency: str,
        notes: str | None,
        issue_date: datetime,
        due_date: datetime,
        items: list[TemplateItem],
    ) -> Invoice:
        """Stage an invoice and copies of its items; the caller commits."""
        invoice = Invoice(
            organization_id=organization_id,
            customer_id=customer_id,
            recurring_template_id=recurring_template_id,
            invoice_no=invoice_no,
            status=status.value,
            currency=currency,
            notes=notes,
            issue_date=issue_date,
            due_date=due_date,
        )
        self.db.add(invoice)
        self.db.flush()

        for position, item in enumerate(items):
            self.db.add(
                InvoiceItem(
                    invoice_id=invoice.id,
                    product_id=item.product_id,
                    position=position,
                    description=item.description,
                    quantity=item.quantity,
                    price=item.price,
                    tax_rate=item.tax_rate,
                )
            )
        self.db.flush()
        return invoice
