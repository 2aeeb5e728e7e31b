"""Aggregation of metered usage into billable invoice line quantities."""

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_CEILING, Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from recurring_invoices.models import RecurringTemplate
from recurring_invoices.models.shared import ensure_utc
from recurring_invoices.repositories.usage_record_repository import UsageRecordRepository
from recurring_invoices.schemas.recurring_template import TemplateItem

DEFAULT_USAGE_UNIT = "units"


def _format_quantity(value: Decimal) -> str:
    """Render a usage total without trailing zeros (12.5000 -> 12.5)."""
    normalized = value.normalize()
    if normalized == normalized.to_integral():
        return str(normalized.quantize(Decimal(1)))
    return format(normalized, "f")


@dataclass(frozen=True)
class UsageAggregation:
    """Billable usage for one template and billing period."""

    period_start: datetime
    period_end: datetime
    total_usage: Decimal
    items: tuple[TemplateItem, ...]
    usage_record_ids: tuple[UUID, ...]


class UsageAggregationService:
    """Service for turning unbilled usage records into invoice items."""

    def __init__(self, db: Session):
        self.db = db
        self.usage_repo = UsageRecordRepository(db)

    @staticmethod
    def billing_period(template: RecurringTemplate, now: datetime) -> tuple[datetime, datetime]:
        """Billing period runs from the last generation (or start date) to now."""
        start = template.last_generated_at or template.start_date
        return ensure_utc(start), now  # type: ignore[return-value]

    def aggregate(
        self,
        template: RecurringTemplate,
        items: list[TemplateItem],
        now: datetime,
    ) -> UsageAggregation | None:
        """Aggregate unbilled usage for the template's current billing period.

        Args:
            template: A usage-based template.
            items: The template's line item specs; each ``quantity`` is the
                multiplier applied to the total usage.
            now: Invocation time, the end of the billing period.

        Returns:
            The aggregation, or None when no billable usage exists.
        """
        period_start, period_end = self.billing_period(template, now)
        records = self.usage_repo.get_unbilled_in_period(
            template.id,  # type: ignore[arg-type]
            period_start,
            period_end,
        )
        if not records:
            return None

        total_usage = sum((Decimal(str(r.quantity)) for r in records), Decimal("0"))
        unit = str(template.usage_unit) if template.usage_unit else DEFAULT_USAGE_UNIT
        label = f"{_format_quantity(total_usage)} {unit}"

        billed_items = tuple(
            item.model_copy(
                update={
                    "description": f"{item.description} ({label})",
                    "quantity": (total_usage * item.quantity).to_integral_value(
                        rounding=ROUND_CEILING
                    ),
                }
            )
            for item in items
        )

        return UsageAggregation(
            period_start=period_start,
            period_end=period_end,
            total_usage=total_usage,
            items=billed_items,
            usage_record_ids=tuple(r.id for r in records),  # type: ignore[misc]
        )
