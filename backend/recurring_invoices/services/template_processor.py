"""Per-template invoice generation: eligibility, items, numbering, schedule."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy.orm import Session

from recurring_invoices.core.database import generation_transaction
from recurring_invoices.core.exceptions import (
    ConfigurationError,
    InvalidTemplateItemsError,
    NotificationError,
    TransientPersistenceError,
)
from recurring_invoices.models import InvoiceStatus, RecurringTemplate, TemplateStatus
from recurring_invoices.models.shared import ensure_utc
from recurring_invoices.repositories.customer_repository import CustomerRepository
from recurring_invoices.repositories.organization_repository import OrganizationRepository
from recurring_invoices.repositories.recurring_template_repository import (
    RecurringTemplateRepository,
)
from recurring_invoices.schemas.generation import GenerationDetail
from recurring_invoices.schemas.recurring_template import TemplateItem
from recurring_invoices.services.email_service import EmailService, InvoiceNotification
from recurring_invoices.services.frequency import (
    next_generation_date,
    parse_frequency,
    unknown_frequency_warning,
    validate_interval,
)
from recurring_invoices.services.invoice_numbering import InvoiceDraft, InvoiceNumberAllocator
from recurring_invoices.services.invoice_totals import calculate_totals
from recurring_invoices.services.usage_aggregation import UsageAggregationService

logger = logging.getLogger(__name__)

NO_USAGE_REASON = "No usage records found for billing period"
NOT_ACTIVE_REASON = "Template is not active"
NOT_DUE_REASON = "Template is not due for generation"


class OutcomeStatus(str, Enum):
    GENERATED = "generated"
    SKIPPED = "skipped"
    FAILED = "failed"
    DRY_RUN = "dry_run"


class FailureKind(str, Enum):
    CONFIGURATION = "configuration"
    TRANSIENT = "transient"
    UNEXPECTED = "unexpected"


@dataclass(frozen=True)
class TemplateOutcome:
    """Immutable result of one generation attempt for one template."""

    template_id: UUID
    template_name: str
    status: OutcomeStatus
    invoice_id: UUID | None = None
    invoice_no: int | None = None
    next_generation_date: datetime | None = None
    would_generate: bool | None = None
    email_sent: bool = False
    reason: str | None = None
    error: str | None = None
    error_kind: FailureKind | None = None
    notification_error: str | None = None
    warnings: tuple[str, ...] = ()

    @classmethod
    def skipped(
        cls, template_id: UUID, template_name: str, reason: str, warnings: tuple[str, ...] = ()
    ) -> TemplateOutcome:
        return cls(
            template_id=template_id,
            template_name=template_name,
            status=OutcomeStatus.SKIPPED,
            reason=reason,
            warnings=warnings,
        )

    @classmethod
    def failed(
        cls,
        template_id: UUID,
        template_name: str,
        error: str,
        kind: FailureKind,
        warnings: tuple[str, ...] = (),
    ) -> TemplateOutcome:
        return cls(
            template_id=template_id,
            template_name=template_name,
            status=OutcomeStatus.FAILED,
            error=error,
            error_kind=kind,
            warnings=warnings,
        )

    def to_detail(self) -> GenerationDetail:
        return GenerationDetail(
            template_id=self.template_id,
            template_name=self.template_name,
            status=self.status.value,
            invoice_id=self.invoice_id,
            invoice_no=self.invoice_no,
            next_generation_date=self.next_generation_date,
            would_generate=self.would_generate,
            email_sent=self.email_sent,
            reason=self.reason,
            error=self.error,
            error_kind=self.error_kind.value if self.error_kind else None,
            notification_error=self.notification_error,
            warnings=list(self.warnings),
        )


def is_due(template: RecurringTemplate, now: datetime) -> bool:
    """Date clauses of the eligibility predicate."""
    next_date = ensure_utc(template.next_generation_date)  # type: ignore[arg-type]
    end_date = ensure_utc(template.end_date)  # type: ignore[arg-type]
    if next_date is None or next_date > now:
        return False
    return end_date is None or end_date >= now


def is_eligible(template: RecurringTemplate, now: datetime, force: bool = False) -> bool:
    """Whether the template should generate at ``now``.

    ``force`` bypasses the date clauses, never the active-status clause.
    """
    if template.status != TemplateStatus.ACTIVE.value:
        return False
    return force or is_due(template, now)


def parse_template_items(raw: Any) -> list[TemplateItem]:
    """Validate stored line item specs.

    Raises:
        InvalidTemplateItemsError: Items are missing, empty or malformed.
    """
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise InvalidTemplateItemsError(f"Template items are not valid JSON: {exc}") from exc
    if not isinstance(raw, list) or not raw:
        raise InvalidTemplateItemsError("Template has no line items")
    try:
        return [TemplateItem.model_validate(item) for item in raw]
    except ValidationError as exc:
        raise InvalidTemplateItemsError(f"Invalid template line item: {exc}") from exc


class TemplateProcessor:
    """Runs one generation attempt for a template.

    Every exit path yields a ``TemplateOutcome``; failures never leave the
    template, the counter or the usage records partially updated.
    """

    def __init__(self, db: Session, email_service: EmailService | None = None):
        self.db = db
        self.template_repo = RecurringTemplateRepository(db)
        self.customer_repo = CustomerRepository(db)
        self.organization_repo = OrganizationRepository(db)
        self.usage_service = UsageAggregationService(db)
        self.allocator = InvoiceNumberAllocator(db)
        self.email_service = email_service or EmailService()

    def process(
        self,
        template: RecurringTemplate,
        now: datetime,
        *,
        force: bool = False,
        dry_run: bool = False,
    ) -> TemplateOutcome:
        template_id: UUID = template.id  # type: ignore[assignment]
        template_name = str(template.name)
        warnings: list[str] = []
        try:
            return self._attempt(template, ensure_utc(now), force, dry_run, warnings)  # type: ignore[arg-type]
        except ConfigurationError as exc:
            logger.warning("Template %s is misconfigured: %s", template_id, exc)
            return TemplateOutcome.failed(
                template_id, template_name, str(exc), FailureKind.CONFIGURATION, tuple(warnings)
            )
        except TransientPersistenceError as exc:
            logger.warning("Generation transaction for template %s aborted: %s", template_id, exc)
            return TemplateOutcome.failed(
                template_id, template_name, str(exc), FailureKind.TRANSIENT, tuple(warnings)
            )
        except Exception as exc:
            logger.exception("Error processing template %s", template_id)
            return TemplateOutcome.failed(
                template_id, template_name, str(exc), FailureKind.UNEXPECTED, tuple(warnings)
            )

    def _attempt(
        self,
        template: RecurringTemplate,
        now: datetime,
        force: bool,
        dry_run: bool,
        warnings: list[str],
    ) -> TemplateOutcome:
        template_id: UUID = template.id  # type: ignore[assignment]
        template_name = str(template.name)

        def skip(reason: str) -> TemplateOutcome:
            if dry_run:
                return TemplateOutcome(
                    template_id=template_id,
                    template_name=template_name,
                    status=OutcomeStatus.DRY_RUN,
                    would_generate=False,
                    reason=reason,
                    warnings=tuple(warnings),
                )
            return TemplateOutcome.skipped(template_id, template_name, reason, tuple(warnings))

        if template.status != TemplateStatus.ACTIVE.value:
            return skip(NOT_ACTIVE_REASON)
        if not force and not is_due(template, now):
            return skip(NOT_DUE_REASON)

        if parse_frequency(template.frequency) is None:  # type: ignore[arg-type]
            warning = unknown_frequency_warning(template.frequency)
            logger.warning("Template %s: %s", template_id, warning)
            warnings.append(warning)

        interval = validate_interval(template.interval)
        items = parse_template_items(template.template_items)
        days_until_due = int(template.days_until_due)  # type: ignore[arg-type]
        if days_until_due < 0:
            raise ConfigurationError(f"days_until_due must not be negative, got {days_until_due}")

        issue_date = now
        due_date = issue_date + timedelta(days=days_until_due)

        usage_record_ids: tuple[UUID, ...] = ()
        if template.is_usage_based:
            aggregation = self.usage_service.aggregate(template, items, now)
            if aggregation is None:
                return skip(NO_USAGE_REASON)
            items = list(aggregation.items)
            usage_record_ids = aggregation.usage_record_ids

        # Anchored on the issue date, not the previous scheduled date
        next_date = next_generation_date(template.frequency, interval, issue_date)  # type: ignore[arg-type]
        end_date = ensure_utc(template.end_date)  # type: ignore[arg-type]
        new_status = (
            TemplateStatus.COMPLETED
            if end_date is not None and next_date > end_date
            else TemplateStatus.ACTIVE
        )

        if dry_run:
            return TemplateOutcome(
                template_id=template_id,
                template_name=template_name,
                status=OutcomeStatus.DRY_RUN,
                would_generate=True,
                next_generation_date=next_date,
                warnings=tuple(warnings),
            )

        customer = self.customer_repo.get_by_id(template.customer_id)  # type: ignore[arg-type]
        organization = self.organization_repo.get_by_id(template.organization_id)  # type: ignore[arg-type]
        currency = str(
            template.currency
            or (organization.default_currency if organization is not None else None)
            or "USD"
        )
        auto_send = bool(template.auto_send_email)
        # Loaded attributes expire on commit
        recipient = str(customer.email) if customer is not None and customer.email else None
        customer_name = str(customer.name) if customer is not None else ""
        organization_name = str(organization.name) if organization is not None else ""
        logo_url = organization.logo_url if organization is not None else None
        accent_color = organization.accent_color if organization is not None else None

        draft = InvoiceDraft(
            organization_id=template.organization_id,  # type: ignore[arg-type]
            customer_id=template.customer_id,  # type: ignore[arg-type]
            recurring_template_id=template_id,
            status=InvoiceStatus.SENT if auto_send else InvoiceStatus.DRAFT,
            currency=currency,
            notes=template.template_notes or None,  # type: ignore[arg-type]
            issue_date=issue_date,
            due_date=due_date,
            items=tuple(items),
            usage_record_ids=usage_record_ids,
        )

        with generation_transaction(self.db):
            invoice = self.allocator.create_invoice(draft)
            invoice_id: UUID = invoice.id  # type: ignore[assignment]
            invoice_no = int(invoice.invoice_no)  # type: ignore[arg-type]
            self.template_repo.advance_schedule(template, next_date, issue_date, new_status)

        logger.info(
            "Generated invoice #%d (%s) from template %s; next generation %s",
            invoice_no,
            invoice_id,
            template_id,
            next_date.isoformat(),
        )

        email_sent = False
        notification_error: str | None = None
        if auto_send and recipient:
            totals = calculate_totals(items)
            try:
                email_sent = self.email_service.send_invoice_email(
                    InvoiceNotification(
                        recipient=recipient,
                        customer_name=customer_name,
                        invoice_id=invoice_id,
                        invoice_no=invoice_no,
                        issue_date=issue_date,
                        due_date=due_date,
                        currency=currency,
                        organization_id=draft.organization_id,
                        organization_name=organization_name,
                        logo_url=logo_url,  # type: ignore[arg-type]
                        accent_color=accent_color,  # type: ignore[arg-type]
                        subtotal=totals.subtotal,
                        tax=totals.tax,
                        total=totals.total,
                    )
                )
            except NotificationError as exc:
                logger.warning("Invoice email for template %s failed: %s", template_id, exc)
                notification_error = str(exc)
            except Exception as exc:
                logger.exception("Unexpected error sending invoice email for template %s", template_id)
                notification_error = str(exc)

        return TemplateOutcome(
            template_id=template_id,
            template_name=template_name,
            status=OutcomeStatus.GENERATED,
            invoice_id=invoice_id,
            invoice_no=invoice_no,
            next_generation_date=next_date,
            email_sent=email_sent,
            notification_error=notification_error,
            warnings=tuple(warnings),
        )
