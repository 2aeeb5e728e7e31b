from enum import Enum

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)

from recurring_invoices.core.database import Base
from recurring_invoices.models.shared import UUIDType, generate_uuid


class InvoiceStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    CANCELLED = "cancelled"


class Invoice(Base):
    __tablename__ = "invoices"
    __table_args__ = (
        UniqueConstraint("organization_id", "invoice_no", name="uq_invoices_organization_invoice_no"),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    organization_id = Column(
        UUIDType, ForeignKey("organizations.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    customer_id = Column(UUIDType, ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False)
    recurring_template_id = Column(
        UUIDType,
        ForeignKey("recurring_invoice_templates.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    invoice_no = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default=InvoiceStatus.DRAFT.value)
    currency = Column(String(3), nullable=False, default="USD")
    notes = Column(Text, nullable=True)

    issue_date = Column(DateTime(timezone=True), nullable=False)
    due_date = Column(DateTime(timezone=True), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class InvoiceItem(Base):
    """Materialized copy of a template line item; never a live reference."""

    __tablename__ = "invoice_items"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    invoice_id = Column(
        UUIDType, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id = Column(String(255), nullable=True)
    position = Column(Integer, nullable=False, default=0)
    description = Column(Text, nullable=False)
    quantity = Column(Numeric(18, 4), nullable=False)
    price = Column(Numeric(12, 4), nullable=False)
    # Percentage, e.g. 20 for 20%
    tax_rate = Column(Numeric(7, 4), nullable=False, default=0)
