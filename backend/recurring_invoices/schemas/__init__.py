from recurring_invoices.schemas.generation import (
    GenerationDetail,
    GenerationRunResponse,
    GenerationSummary,
)
from recurring_invoices.schemas.projection import (
    CustomerRecurringValueResponse,
    ForecastMonth,
    ProjectionResponse,
    RecurringForecastResponse,
)
from recurring_invoices.schemas.recurring_template import (
    RecurringTemplateCreate,
    RecurringTemplateResponse,
    RecurringTemplateUpdate,
    TemplateItem,
)
from recurring_invoices.schemas.usage_record import UsageRecordCreate, UsageRecordResponse

__all__ = [
    "CustomerRecurringValueResponse",
    "ForecastMonth",
    "GenerationDetail",
    "GenerationRunResponse",
    "GenerationSummary",
    "ProjectionResponse",
    "RecurringForecastResponse",
    "RecurringTemplateCreate",
    "RecurringTemplateResponse",
    "RecurringTemplateUpdate",
    "TemplateItem",
    "UsageRecordCreate",
    "UsageRecordResponse",
]
