from datetime import UTC, datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from recurring_invoices.core.auth import get_current_organization
from recurring_invoices.core.database import get_db
from recurring_invoices.repositories.customer_repository import CustomerRepository
from recurring_invoices.schemas.projection import (
    CustomerRecurringValueResponse,
    ForecastMonth,
    ProjectionResponse,
    RecurringForecastResponse,
)
from recurring_invoices.services.projection import ProjectionService

router = APIRouter()


@router.get("/recurring_forecast", response_model=RecurringForecastResponse)
def get_recurring_forecast(
    months: int = Query(default=12, ge=1, le=36),
    db: Session = Depends(get_db),
    organization_id: UUID = Depends(get_current_organization),
) -> RecurringForecastResponse:
    """Forecast recurring revenue per month from the active templates."""
    forecast = ProjectionService(db).forecast(organization_id, datetime.now(UTC), months)
    return RecurringForecastResponse(
        horizon_end=forecast.horizon_end,
        active_templates=forecast.active_templates,
        total_generations=forecast.total_generations,
        total_projected=forecast.total_projected,
        months=[
            ForecastMonth(
                month=m.month,
                recurring_revenue=m.recurring_revenue,
                generation_count=m.generation_count,
            )
            for m in forecast.months
        ],
        warnings=list(forecast.warnings),
    )


@router.get(
    "/customers/{customer_id}/recurring_value",
    response_model=CustomerRecurringValueResponse,
)
def get_customer_recurring_value(
    customer_id: UUID,
    months: int = Query(default=12, ge=1, le=36),
    db: Session = Depends(get_db),
    organization_id: UUID = Depends(get_current_organization),
) -> CustomerRecurringValueResponse:
    """Projected value of a customer's active recurring templates."""
    if not CustomerRepository(db).get_by_id(customer_id, organization_id):
        raise HTTPException(status_code=404, detail="Customer not found")
    projection = ProjectionService(db).customer_projection(
        organization_id, customer_id, datetime.now(UTC), months
    )
    return CustomerRecurringValueResponse(
        customer_id=projection.customer_id,
        horizon_end=projection.horizon_end,
        active_templates=len(projection.templates),
        generation_count=projection.generation_count,
        projected_value=projection.projected_value,
        templates=[ProjectionResponse.from_projection(p) for p in projection.templates],
        warnings=list(projection.warnings),
    )
