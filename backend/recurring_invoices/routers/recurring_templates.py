from datetime import UTC, datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from recurring_invoices.core.auth import get_current_organization
from recurring_invoices.core.database import get_db
from recurring_invoices.core.exceptions import ConfigurationError
from recurring_invoices.models.recurring_template import TemplateStatus
from recurring_invoices.repositories.customer_repository import CustomerRepository
from recurring_invoices.repositories.recurring_template_repository import (
    RecurringTemplateRepository,
    TemplateHasInvoicesError,
)
from recurring_invoices.repositories.usage_record_repository import UsageRecordRepository
from recurring_invoices.schemas.generation import GenerationDetail
from recurring_invoices.schemas.projection import ProjectionResponse
from recurring_invoices.schemas.recurring_template import (
    RecurringTemplateCreate,
    RecurringTemplateResponse,
    RecurringTemplateUpdate,
)
from recurring_invoices.schemas.usage_record import UsageRecordCreate, UsageRecordResponse
from recurring_invoices.services.projection import ProjectionService
from recurring_invoices.services.template_processor import (
    FailureKind,
    OutcomeStatus,
    TemplateProcessor,
)

router = APIRouter()

_FAILURE_STATUS_CODES = {
    FailureKind.CONFIGURATION: 400,
    FailureKind.TRANSIENT: 409,
    FailureKind.UNEXPECTED: 500,
}

# Handlers are sync: generation and email delivery block, so they run in the threadpool.


@router.get("/", response_model=list[RecurringTemplateResponse])
def list_templates(
    status: TemplateStatus | None = Query(default=None),
    customer_id: UUID | None = Query(default=None),
    db: Session = Depends(get_db),
    organization_id: UUID = Depends(get_current_organization),
) -> list[RecurringTemplateResponse]:
    """List recurring templates, newest first."""
    repo = RecurringTemplateRepository(db)
    templates = repo.get_all(organization_id, status=status, customer_id=customer_id)
    return [RecurringTemplateResponse.model_validate(t) for t in templates]


@router.post("/", response_model=RecurringTemplateResponse, status_code=201)
def create_template(
    data: RecurringTemplateCreate,
    db: Session = Depends(get_db),
    organization_id: UUID = Depends(get_current_organization),
) -> RecurringTemplateResponse:
    """Create an active template whose first generation is due at ``start_date``."""
    if not CustomerRepository(db).get_by_id(data.customer_id, organization_id):
        raise HTTPException(status_code=404, detail="Customer not found")
    template = RecurringTemplateRepository(db).create(data, organization_id)
    return RecurringTemplateResponse.model_validate(template)


@router.get("/{template_id}", response_model=RecurringTemplateResponse)
def get_template(
    template_id: UUID,
    db: Session = Depends(get_db),
    organization_id: UUID = Depends(get_current_organization),
) -> RecurringTemplateResponse:
    template = RecurringTemplateRepository(db).get_by_id(template_id, organization_id)
    if not template:
        raise HTTPException(status_code=404, detail="Recurring template not found")
    return RecurringTemplateResponse.model_validate(template)


@router.put("/{template_id}", response_model=RecurringTemplateResponse)
def update_template(
    template_id: UUID,
    data: RecurringTemplateUpdate,
    db: Session = Depends(get_db),
    organization_id: UUID = Depends(get_current_organization),
) -> RecurringTemplateResponse:
    """Partially update a template; pausing and resuming go through ``status``."""
    template = RecurringTemplateRepository(db).update(template_id, data, organization_id)
    if not template:
        raise HTTPException(status_code=404, detail="Recurring template not found")
    return RecurringTemplateResponse.model_validate(template)


@router.post("/{template_id}/generate", response_model=GenerationDetail)
def generate_invoice_now(
    template_id: UUID,
    db: Session = Depends(get_db),
    organization_id: UUID = Depends(get_current_organization),
) -> GenerationDetail:
    """Generate an invoice for one template immediately, ignoring its schedule."""
    repo = RecurringTemplateRepository(db)
    template = repo.get_by_id(template_id, organization_id)
    if not template:
        raise HTTPException(status_code=404, detail="Recurring template not found")

    outcome = TemplateProcessor(db).process(template, datetime.now(UTC), force=True)
    if outcome.status == OutcomeStatus.SKIPPED:
        raise HTTPException(status_code=400, detail=outcome.reason)
    if outcome.status == OutcomeStatus.FAILED:
        status_code = _FAILURE_STATUS_CODES[outcome.error_kind or FailureKind.UNEXPECTED]
        raise HTTPException(status_code=status_code, detail=outcome.error)
    return outcome.to_detail()


@router.post(
    "/{template_id}/usage",
    response_model=UsageRecordResponse,
    status_code=201,
)
def record_usage(
    template_id: UUID,
    data: UsageRecordCreate,
    db: Session = Depends(get_db),
    organization_id: UUID = Depends(get_current_organization),
) -> UsageRecordResponse:
    """Record metered usage against a usage-based template."""
    template = RecurringTemplateRepository(db).get_by_id(template_id, organization_id)
    if not template:
        raise HTTPException(status_code=404, detail="Recurring template not found")
    if not template.is_usage_based:
        raise HTTPException(status_code=400, detail="Template is not usage-based")
    record = UsageRecordRepository(db).create(template_id, data)
    return UsageRecordResponse.model_validate(record)


@router.get("/{template_id}/usage", response_model=list[UsageRecordResponse])
def list_usage(
    template_id: UUID,
    period_start: datetime | None = Query(default=None),
    period_end: datetime | None = Query(default=None),
    db: Session = Depends(get_db),
    organization_id: UUID = Depends(get_current_organization),
) -> list[UsageRecordResponse]:
    """List usage records for a template, newest first."""
    template = RecurringTemplateRepository(db).get_by_id(template_id, organization_id)
    if not template:
        raise HTTPException(status_code=404, detail="Recurring template not found")
    records = UsageRecordRepository(db).get_by_template(template_id, period_start, period_end)
    return [UsageRecordResponse.model_validate(r) for r in records]


@router.delete("/{template_id}", status_code=204)
def delete_template(
    template_id: UUID,
    db: Session = Depends(get_db),
    organization_id: UUID = Depends(get_current_organization),
) -> None:
    """Delete a recurring template that has not generated any invoices."""
    repo = RecurringTemplateRepository(db)
    try:
        deleted = repo.delete(template_id, organization_id)
    except TemplateHasInvoicesError as e:
        raise HTTPException(status_code=409, detail=str(e)) from None
    if not deleted:
        raise HTTPException(status_code=404, detail="Recurring template not found")


@router.get("/{template_id}/projection", response_model=ProjectionResponse)
def project_template(
    template_id: UUID,
    horizon_end: datetime = Query(...),
    db: Session = Depends(get_db),
    organization_id: UUID = Depends(get_current_organization),
) -> ProjectionResponse:
    """Project the number and value of generations up to ``horizon_end``."""
    template = RecurringTemplateRepository(db).get_by_id(template_id, organization_id)
    if not template:
        raise HTTPException(status_code=404, detail="Recurring template not found")
    try:
        projection = ProjectionService(db).project(template, horizon_end)
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from None
    return ProjectionResponse.from_projection(projection)
