from sqlalchemy import Column, DateTime, ForeignKey, Integer, func

from recurring_invoices.core.database import Base
from recurring_invoices.models.shared import UUIDType


class InvoiceCounter(Base):
    """Per-organization source of truth for invoice numbering."""

    __tablename__ = "invoice_counters"

    organization_id = Column(
        UUIDType, ForeignKey("organizations.id", ondelete="CASCADE"), primary_key=True
    )
    last_invoice_no = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
