from enum import Enum

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)

from recurring_invoices.core.database import Base
from recurring_invoices.models.shared import DEFAULT_ORGANIZATION_ID, UUIDType, generate_uuid


class TemplateFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"
    CUSTOM = "custom"


class TemplateStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


class RecurringTemplate(Base):
    __tablename__ = "recurring_invoice_templates"
    __table_args__ = (
        Index("ix_recurring_templates_status_next_generation", "status", "next_generation_date"),
        Index("ix_recurring_templates_organization_status", "organization_id", "status"),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    organization_id = Column(
        UUIDType,
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        default=DEFAULT_ORGANIZATION_ID,
    )
    customer_id = Column(
        UUIDType,
        ForeignKey("customers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(String(255), nullable=False)

    # Schedule
    frequency = Column(String(20), nullable=False, default=TemplateFrequency.MONTHLY.value)
    interval = Column(Integer, nullable=False, default=1)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=True)
    next_generation_date = Column(DateTime(timezone=True), nullable=False)
    last_generated_at = Column(DateTime(timezone=True), nullable=True)
    status = Column(String(20), nullable=False, default=TemplateStatus.ACTIVE.value)
    total_generated = Column(Integer, nullable=False, default=0)

    # Invoice content: ordered list of line item specs stored as JSON
    template_items = Column(JSON, nullable=False, default=list)
    template_notes = Column(Text, nullable=True)
    days_until_due = Column(Integer, nullable=False, default=30)
    currency = Column(String(3), nullable=True)
    auto_send_email = Column(Boolean, nullable=False, default=True)

    # Usage-based billing
    is_usage_based = Column(Boolean, nullable=False, default=False)
    usage_unit = Column(String(50), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
