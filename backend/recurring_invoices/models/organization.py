from sqlalchemy import Column, DateTime, String, func

from recurring_invoices.core.database import Base
from recurring_invoices.models.shared import UUIDType, generate_uuid


class Organization(Base):
    __tablename__ = "organizations"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    default_currency = Column(String(3), nullable=False, default="USD")
    email = Column(String(255), nullable=True)

    # Branding passed to the notification dispatcher
    logo_url = Column(String(2048), nullable=True)
    accent_color = Column(String(7), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
