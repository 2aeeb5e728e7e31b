from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class GenerationDetail(BaseModel):
    template_id: UUID
    template_name: str
    status: str
    invoice_id: UUID | None = None
    invoice_no: int | None = None
    next_generation_date: datetime | None = None
    would_generate: bool | None = None
    email_sent: bool = False
    reason: str | None = None
    error: str | None = None
    error_kind: str | None = None
    notification_error: str | None = None
    warnings: list[str] = Field(default_factory=list)


class GenerationSummary(BaseModel):
    processed: int
    generated: int
    skipped: int
    failed: int
    details: list[GenerationDetail]


class GenerationRunResponse(BaseModel):
    success: bool
    timestamp: datetime
    dry_run: bool
    summary: GenerationSummary
    message: str
