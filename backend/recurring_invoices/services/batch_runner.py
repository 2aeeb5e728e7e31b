"""Scheduled batch run over every eligible recurring template."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from functools import reduce
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from recurring_invoices.core.config import settings
from recurring_invoices.core.exceptions import EligibilityQueryError
from recurring_invoices.repositories.recurring_template_repository import (
    RecurringTemplateRepository,
)
from recurring_invoices.schemas.generation import GenerationSummary
from recurring_invoices.services.email_service import EmailService
from recurring_invoices.services.template_processor import (
    FailureKind,
    OutcomeStatus,
    TemplateOutcome,
    TemplateProcessor,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchContext:
    """Options shared by every template attempt in one run."""

    now: datetime
    dry_run: bool = False
    force_all: bool = False
    debug: bool = False


@dataclass(frozen=True)
class BatchResult:
    processed: int = 0
    generated: int = 0
    skipped: int = 0
    failed: int = 0
    details: tuple[TemplateOutcome, ...] = ()

    def merge(self, outcome: TemplateOutcome) -> BatchResult:
        """Return a new result with ``outcome`` folded in."""
        return BatchResult(
            processed=self.processed + 1,
            generated=self.generated + (outcome.status == OutcomeStatus.GENERATED),
            skipped=self.skipped + (outcome.status == OutcomeStatus.SKIPPED),
            failed=self.failed + (outcome.status == OutcomeStatus.FAILED),
            details=(*self.details, outcome),
        )

    def to_summary(self) -> GenerationSummary:
        return GenerationSummary(
            processed=self.processed,
            generated=self.generated,
            skipped=self.skipped,
            failed=self.failed,
            details=[o.to_detail() for o in self.details],
        )


class RecurringBatchRunner:
    """Enumerates eligible templates and processes each one in isolation.

    Every template gets its own session and transaction, so one failure never
    affects the others. With ``max_workers > 1`` templates are processed on a
    thread pool; the per-organization counter row lock keeps invoice numbers
    contiguous either way.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        email_service: EmailService | None = None,
        max_workers: int | None = None,
    ):
        self.session_factory = session_factory
        self.email_service = email_service or EmailService()
        self.max_workers = max_workers if max_workers is not None else settings.BATCH_MAX_WORKERS

    def run(self, context: BatchContext) -> BatchResult:
        """Process every eligible template and fold the outcomes.

        Raises:
            EligibilityQueryError: The eligible templates could not be loaded.
        """
        targets = self._eligible_templates(context)
        logger.info(
            "Recurring generation run: %d eligible templates (dry_run=%s, force_all=%s)",
            len(targets),
            context.dry_run,
            context.force_all,
        )

        outcomes: Iterable[TemplateOutcome]
        if self.max_workers > 1 and len(targets) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                outcomes = list(executor.map(lambda t: self._process_one(t, context), targets))
        else:
            outcomes = (self._process_one(target, context) for target in targets)

        result = reduce(BatchResult.merge, outcomes, BatchResult())
        logger.info(
            "Recurring generation finished: processed=%d generated=%d skipped=%d failed=%d",
            result.processed,
            result.generated,
            result.skipped,
            result.failed,
        )
        return result

    def _eligible_templates(self, context: BatchContext) -> list[tuple[UUID, str]]:
        db = self.session_factory()
        try:
            templates = RecurringTemplateRepository(db).get_eligible(
                context.now, force_all=context.force_all
            )
            return [(t.id, str(t.name)) for t in templates]  # type: ignore[misc]
        except SQLAlchemyError as exc:
            logger.exception("Failed to load eligible recurring templates")
            raise EligibilityQueryError(f"Could not load eligible templates: {exc}") from exc
        finally:
            db.close()

    def _process_one(self, target: tuple[UUID, str], context: BatchContext) -> TemplateOutcome:
        template_id, template_name = target
        db = self.session_factory()
        try:
            template = RecurringTemplateRepository(db).get_by_id(template_id)
            if template is None:
                outcome = TemplateOutcome.skipped(
                    template_id, template_name, "Template no longer exists"
                )
            else:
                outcome = TemplateProcessor(db, self.email_service).process(
                    template,
                    context.now,
                    force=context.force_all,
                    dry_run=context.dry_run,
                )
        except Exception as exc:
            logger.exception("Error processing template %s", template_id)
            outcome = TemplateOutcome.failed(
                template_id, template_name, str(exc), FailureKind.UNEXPECTED
            )
        finally:
            db.close()

        if context.debug:
            logger.info(
                "Template %s (%s): %s%s",
                template_id,
                template_name,
                outcome.status.value,
                f" - {outcome.reason or outcome.error}" if outcome.reason or outcome.error else "",
            )
        return outcome
