from datetime import UTC, datetime

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from recurring_invoices.core.auth import verify_cron_secret
from recurring_invoices.core.database import get_session_factory
from recurring_invoices.core.exceptions import EligibilityQueryError
from recurring_invoices.schemas.generation import GenerationRunResponse
from recurring_invoices.services.batch_runner import BatchContext, RecurringBatchRunner

router = APIRouter()


@router.api_route(
    "/generate-recurring",
    methods=["GET", "POST"],
    response_model=GenerationRunResponse,
    dependencies=[Depends(verify_cron_secret)],
)
def generate_recurring_invoices(
    dry_run: bool = Query(default=False, alias="dryRun"),
    force_all: bool = Query(default=False, alias="forceAll"),
    debug: bool = Query(default=False),
) -> GenerationRunResponse | JSONResponse:
    """Generate invoices for every recurring template that is due.

    Called by an external scheduler. ``dryRun`` reports what would happen
    without writing anything; ``forceAll`` ignores the schedule dates (but
    never the template status).
    """
    now = datetime.now(UTC)
    runner = RecurringBatchRunner(get_session_factory())
    try:
        result = runner.run(
            BatchContext(now=now, dry_run=dry_run, force_all=force_all, debug=debug)
        )
    except EligibilityQueryError as e:
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "timestamp": now.isoformat(),
                "error": "Failed to generate recurring invoices",
                "message": str(e),
            },
        )

    message = (
        f"Processed {result.processed} templates: {result.generated} generated, "
        f"{result.skipped} skipped, {result.failed} failed"
    )
    if dry_run:
        message = f"Dry run. {message}"

    return GenerationRunResponse(
        success=True,
        timestamp=now,
        dry_run=dry_run,
        summary=result.to_summary(),
        message=message,
    )
