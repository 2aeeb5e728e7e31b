import logging
from datetime import UTC, datetime
from typing import Any

from arq import cron

from recurring_invoices.core.database import get_session_factory
from recurring_invoices.services.batch_runner import BatchContext, RecurringBatchRunner
from recurring_invoices.tasks import redis_settings

logger = logging.getLogger(__name__)


async def generate_recurring_invoices_task(
    ctx: dict[str, Any], dry_run: bool = False, force_all: bool = False
) -> int:
    """Background task: generate invoices for every due recurring template.

    Runs hourly. Returns the number of invoices generated.
    """
    runner = RecurringBatchRunner(get_session_factory())
    result = runner.run(
        BatchContext(now=datetime.now(UTC), dry_run=dry_run, force_all=force_all)
    )
    if result.generated > 0:
        logger.info("Generated %d recurring invoices", result.generated)
    if result.failed > 0:
        logger.warning("%d recurring templates failed to generate", result.failed)
    return result.generated


class WorkerSettings:
    functions = [generate_recurring_invoices_task]
    cron_jobs = [
        cron(generate_recurring_invoices_task, minute={0}),  # hourly
    ]
    redis_settings = redis_settings
