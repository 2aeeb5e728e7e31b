from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from recurring_invoices.models.shared import ensure_utc


class UsageRecordCreate(BaseModel):
    period_start: datetime
    period_end: datetime
    quantity: Decimal = Field(..., ge=0)
    usage_metadata: dict[str, Any] | None = None
    recorded_by: str | None = Field(default=None, max_length=255)

    @field_validator("period_start", "period_end")
    @classmethod
    def _to_utc(cls, value: datetime) -> datetime:
        # Stored columns drop the offset on SQLite; naive input is read as UTC
        return ensure_utc(value)  # type: ignore[return-value]

    @model_validator(mode="after")
    def _check_period(self) -> "UsageRecordCreate":
        if self.period_end < self.period_start:
            raise ValueError("period_end must not be before period_start")
        return self


class UsageRecordResponse(BaseModel):
    id: UUID
    recurring_template_id: UUID
    invoice_id: UUID | None
    period_start: datetime
    period_end: datetime
    quantity: Decimal
    usage_metadata: dict[str, Any] | None
    recorded_at: datetime
    recorded_by: str | None

    model_config = {"from_attributes": True}

    @field_validator("period_start", "period_end", "recorded_at")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)  # type: ignore[return-value]
