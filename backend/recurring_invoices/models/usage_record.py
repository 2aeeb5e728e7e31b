from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, Numeric, String, func

from recurring_invoices.core.database import Base
from recurring_invoices.models.shared import UUIDType, generate_uuid, utc_now


class UsageRecord(Base):
    """A metered consumption entry; billed once, when ``invoice_id`` is set."""

    __tablename__ = "usage_records"
    __table_args__ = (
        Index(
            "ix_usage_records_template_period",
            "recurring_template_id",
            "period_start",
            "period_end",
        ),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    recurring_template_id = Column(
        UUIDType,
        ForeignKey("recurring_invoice_templates.id", ondelete="CASCADE"),
        nullable=False,
    )
    invoice_id = Column(
        UUIDType,
        ForeignKey("invoices.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )
    period_start = Column(DateTime(timezone=True), nullable=False)
    period_end = Column(DateTime(timezone=True), nullable=False)
    quantity = Column(Numeric(18, 4), nullable=False)
    usage_metadata = Column(JSON, nullable=True)
    recorded_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    recorded_by = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
