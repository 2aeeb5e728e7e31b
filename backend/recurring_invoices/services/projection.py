"""Forward projection of recurring generations for forecasting consumers."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from recurring_invoices.core.config import settings
from recurring_invoices.core.exceptions import ConfigurationError
from recurring_invoices.models import RecurringTemplate, TemplateStatus
from recurring_invoices.models.shared import ensure_utc
from recurring_invoices.repositories.invoice_repository import InvoiceRepository
from recurring_invoices.repositories.recurring_template_repository import (
    RecurringTemplateRepository,
)
from recurring_invoices.services.frequency import (
    add_months,
    next_generation_date,
    parse_frequency,
    unknown_frequency_warning,
    validate_interval,
)
from recurring_invoices.services.invoice_totals import calculate_totals
from recurring_invoices.services.template_processor import parse_template_items

logger = logging.getLogger(__name__)

_CENT = Decimal("0.01")


@dataclass(frozen=True)
class ProjectedSchedule:
    dates: tuple[datetime, ...]
    truncated: bool


def project_schedule(
    frequency: str,
    interval: object,
    start: datetime,
    horizon_end: datetime,
    end_date: datetime | None = None,
    status: str = TemplateStatus.ACTIVE.value,
    max_iterations: int | None = None,
) -> ProjectedSchedule:
    """Walk the schedule forward from ``start`` without touching any state.

    Stops once the running date passes ``horizon_end`` or ``end_date``. At
    most ``max_iterations`` dates are returned; ``truncated`` is set when the
    ceiling cut the walk short.

    Raises:
        InvalidIntervalError: ``interval`` is not a positive integer.
    """
    interval = validate_interval(interval)
    if max_iterations is None:
        max_iterations = settings.PROJECTION_MAX_ITERATIONS
    if status != TemplateStatus.ACTIVE.value:
        return ProjectedSchedule(dates=(), truncated=False)

    dates: list[datetime] = []
    truncated = False
    current = start
    while current <= horizon_end and (end_date is None or current <= end_date):
        if len(dates) >= max_iterations:
            truncated = True
            break
        dates.append(current)
        current = next_generation_date(frequency, interval, current)
    return ProjectedSchedule(dates=tuple(dates), truncated=truncated)


@dataclass(frozen=True)
class Projection:
    """Projected generations and value of one template up to a horizon."""

    template_id: UUID
    horizon_end: datetime
    generation_dates: tuple[datetime, ...]
    average_invoice_value: Decimal
    truncated: bool = False
    warnings: tuple[str, ...] = ()

    @property
    def generation_count(self) -> int:
        return len(self.generation_dates)

    @property
    def projected_value(self) -> Decimal:
        return (self.average_invoice_value * self.generation_count).quantize(
            _CENT, rounding=ROUND_HALF_UP
        )


@dataclass(frozen=True)
class MonthlyForecast:
    month: str
    recurring_revenue: Decimal
    generation_count: int


@dataclass(frozen=True)
class RecurringForecast:
    horizon_end: datetime
    active_templates: int
    months: tuple[MonthlyForecast, ...]
    warnings: tuple[str, ...] = ()

    @property
    def total_generations(self) -> int:
        return sum(m.generation_count for m in self.months)

    @property
    def total_projected(self) -> Decimal:
        return sum((m.recurring_revenue for m in self.months), Decimal("0.00"))


@dataclass(frozen=True)
class CustomerProjection:
    """Projected recurring value of one customer's active templates."""

    customer_id: UUID
    horizon_end: datetime
    templates: tuple[Projection, ...]
    warnings: tuple[str, ...] = ()

    @property
    def generation_count(self) -> int:
        return sum(p.generation_count for p in self.templates)

    @property
    def projected_value(self) -> Decimal:
        return sum((p.projected_value for p in self.templates), Decimal("0.00"))


class ProjectionService:
    """Projects future generations and their value for templates."""

    def __init__(
        self,
        db: Session,
        max_iterations: int | None = None,
        recent_invoices: int | None = None,
    ):
        self.db = db
        self.template_repo = RecurringTemplateRepository(db)
        self.invoice_repo = InvoiceRepository(db)
        self.max_iterations = (
            max_iterations if max_iterations is not None else settings.PROJECTION_MAX_ITERATIONS
        )
        self.recent_invoices = (
            recent_invoices if recent_invoices is not None else settings.PROJECTION_RECENT_INVOICES
        )

    def average_invoice_value(self, template: RecurringTemplate) -> Decimal:
        """Average total of recent generated invoices, else of the template items."""
        invoices = self.invoice_repo.get_recent_for_template(
            template.id,  # type: ignore[arg-type]
            limit=self.recent_invoices,
        )
        if invoices:
            totals = [
                calculate_totals(self.invoice_repo.get_items(inv.id)).total  # type: ignore[arg-type]
                for inv in invoices
            ]
            return (sum(totals, Decimal("0")) / len(totals)).quantize(
                _CENT, rounding=ROUND_HALF_UP
            )
        return calculate_totals(parse_template_items(template.template_items)).total

    def project(
        self,
        template: RecurringTemplate,
        horizon_end: datetime,
        start: datetime | None = None,
    ) -> Projection:
        """Project generations from ``start`` (default: the next generation date).

        Raises:
            ConfigurationError: The interval or the line items are invalid.
        """
        horizon_end = ensure_utc(horizon_end)  # type: ignore[assignment]
        warnings: list[str] = []
        if parse_frequency(template.frequency) is None:  # type: ignore[arg-type]
            warnings.append(unknown_frequency_warning(template.frequency))

        schedule = project_schedule(
            frequency=template.frequency,  # type: ignore[arg-type]
            interval=template.interval,
            start=start or ensure_utc(template.next_generation_date),  # type: ignore[arg-type]
            horizon_end=horizon_end,
            end_date=ensure_utc(template.end_date),  # type: ignore[arg-type]
            status=template.status,  # type: ignore[arg-type]
            max_iterations=self.max_iterations,
        )
        if schedule.truncated:
            warnings.append(
                f"Projection capped at {self.max_iterations} generations before the horizon"
            )

        return Projection(
            template_id=template.id,  # type: ignore[arg-type]
            horizon_end=horizon_end,
            generation_dates=schedule.dates,
            average_invoice_value=self.average_invoice_value(template),
            truncated=schedule.truncated,
            warnings=tuple(warnings),
        )

    def forecast(self, organization_id: UUID, now: datetime, months: int = 12) -> RecurringForecast:
        """Recurring revenue per calendar month for the organization's active templates.

        Covers the current month and the following ``months - 1``. Overdue
        templates are projected from ``now``, where the next run will pick
        them up.
        """
        now = ensure_utc(now)  # type: ignore[assignment]
        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        horizon_end = add_months(month_start, months) - timedelta(microseconds=1)

        keys = [add_months(month_start, i).strftime("%Y-%m") for i in range(months)]
        revenue: dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
        counts: dict[str, int] = defaultdict(int)
        warnings: list[str] = []

        templates = self.template_repo.get_active(organization_id)
        for template in templates:
            next_date = ensure_utc(template.next_generation_date)  # type: ignore[arg-type]
            try:
                projection = self.project(
                    template, horizon_end, start=max(next_date, now)  # type: ignore[type-var]
                )
            except ConfigurationError as exc:
                logger.warning("Skipping template %s in forecast: %s", template.id, exc)
                warnings.append(f"{template.name}: {exc}")
                continue
            warnings.extend(f"{template.name}: {w}" for w in projection.warnings)
            for generated_at in projection.generation_dates:
                key = generated_at.strftime("%Y-%m")
                revenue[key] += projection.average_invoice_value
                counts[key] += 1

        return RecurringForecast(
            horizon_end=horizon_end,
            active_templates=len(templates),
            months=tuple(
                MonthlyForecast(
                    month=key,
                    recurring_revenue=revenue[key].quantize(_CENT, rounding=ROUND_HALF_UP),
                    generation_count=counts[key],
                )
                for key in keys
            ),
            warnings=tuple(warnings),
        )

    def customer_projection(
        self, organization_id: UUID, customer_id: UUID, now: datetime, months: int = 12
    ) -> CustomerProjection:
        """Projected recurring value of a customer over the next ``months``.

        Each active template is walked from its next generation date, so
        overdue generations still count towards the value.
        """
        horizon_end = add_months(ensure_utc(now), months)  # type: ignore[arg-type]
        projections: list[Projection] = []
        warnings: list[str] = []
        for template in self.template_repo.get_active(organization_id, customer_id=customer_id):
            try:
                projection = self.project(template, horizon_end)
            except ConfigurationError as exc:
                logger.warning("Skipping template %s in customer projection: %s", template.id, exc)
                warnings.append(f"{template.name}: {exc}")
                continue
            warnings.extend(f"{template.name}: {w}" for w in projection.warnings)
            projections.append(projection)

        return CustomerProjection(
            customer_id=customer_id,
            horizon_end=horizon_end,
            templates=tuple(projections),
            warnings=tuple(warnings),
        )
