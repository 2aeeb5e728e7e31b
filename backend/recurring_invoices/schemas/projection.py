from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field


class ProjectionResponse(BaseModel):
    template_id: UUID
    horizon_end: datetime
    generation_count: int
    average_invoice_value: Decimal
    projected_value: Decimal
    truncated: bool = False
    warnings: list[str] = Field(default_factory=list)

    @classmethod
    def from_projection(cls, projection: Any) -> "ProjectionResponse":
        return cls(
            template_id=projection.template_id,
            horizon_end=projection.horizon_end,
            generation_count=projection.generation_count,
            average_invoice_value=projection.average_invoice_value,
            projected_value=projection.projected_value,
            truncated=projection.truncated,
            warnings=list(projection.warnings),
        )


class ForecastMonth(BaseModel):
    month: str
    recurring_revenue: Decimal
    generation_count: int


class RecurringForecastResponse(BaseModel):
    horizon_end: datetime
    active_templates: int
    total_generations: int
    total_projected: Decimal
    months: list[ForecastMonth]
    warnings: list[str] = Field(default_factory=list)


class CustomerRecurringValueResponse(BaseModel):
    customer_id: UUID
    horizon_end: datetime
    active_templates: int
    generation_count: int
    projected_value: Decimal
    templates: list[ProjectionResponse]
    warnings: list[str] = Field(default_factory=list)
