from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from recurring_invoices.models.recurring_template import TemplateFrequency, TemplateStatus
from recurring_invoices.models.shared import ensure_utc


class TemplateItem(BaseModel):
    """One line item spec on a recurring template.

    For usage-based templates ``quantity`` is the multiplier applied to the
    aggregated usage of the billing period.
    """

    model_config = ConfigDict(populate_by_name=True)

    product_id: str | None = Field(default=None, alias="productId")
    description: str = Field(..., min_length=1)
    quantity: Decimal = Field(..., gt=0)
    price: Decimal = Field(..., ge=0)
    tax_rate: Decimal = Field(default=Decimal("0"), ge=0, alias="taxRate")


def dump_template_items(items: list[TemplateItem]) -> list[dict[str, Any]]:
    """Serialize items to the JSON shape stored on the template."""
    return [item.model_dump(mode="json", by_alias=True, exclude_none=True) for item in items]


class RecurringTemplateCreate(BaseModel):
    customer_id: UUID
    name: str = Field(..., min_length=1, max_length=255)
    frequency: TemplateFrequency
    interval: int = Field(default=1, ge=1)
    start_date: datetime
    end_date: datetime | None = None
    template_items: list[TemplateItem] = Field(..., min_length=1)
    template_notes: str | None = None
    days_until_due: int = Field(default=30, ge=0)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    auto_send_email: bool = True
    is_usage_based: bool = False
    usage_unit: str | None = Field(default=None, max_length=50)

    @field_validator("start_date", "end_date")
    @classmethod
    def _to_utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)

    @model_validator(mode="after")
    def _check_dates(self) -> "RecurringTemplateCreate":
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class RecurringTemplateUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    frequency: TemplateFrequency | None = None
    interval: int | None = Field(default=None, ge=1)
    start_date: datetime | None = None
    end_date: datetime | None = None
    next_generation_date: datetime | None = None
    status: TemplateStatus | None = None
    template_items: list[TemplateItem] | None = Field(default=None, min_length=1)
    template_notes: str | None = None
    days_until_due: int | None = Field(default=None, ge=0)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    auto_send_email: bool | None = None
    usage_unit: str | None = Field(default=None, max_length=50)

    @field_validator("start_date", "end_date", "next_generation_date")
    @classmethod
    def _to_utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)


class RecurringTemplateResponse(BaseModel):
    id: UUID
    organization_id: UUID
    customer_id: UUID
    name: str
    frequency: str
    interval: int
    start_date: datetime
    end_date: datetime | None
    next_generation_date: datetime
    last_generated_at: datetime | None
    status: str
    total_generated: int
    template_items: list[dict[str, Any]]
    template_notes: str | None
    days_until_due: int
    currency: str | None
    auto_send_email: bool
    is_usage_based: bool
    usage_unit: str | None

    model_config = {"from_attributes": True}

    @field_validator("start_date", "end_date", "next_generation_date", "last_generated_at")
    @classmethod
    def _as_utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)
