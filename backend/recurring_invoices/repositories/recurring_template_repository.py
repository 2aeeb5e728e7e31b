from datetime import datetime
from uuid import UUID

from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from recurring_invoices.core.exceptions import ConcurrentModificationError
from recurring_invoices.models import Invoice, RecurringTemplate, TemplateStatus
from recurring_invoices.schemas.recurring_template import (
    RecurringTemplateCreate,
    RecurringTemplateUpdate,
    dump_template_items,
)


# Fields an update may explicitly clear
_NULLABLE_FIELDS = frozenset({"end_date", "template_notes", "currency", "usage_unit"})


class TemplateHasInvoicesError(Exception):
    """Raised when deleting a template that still has generated invoices."""


class RecurringTemplateRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(
        self, template_id: UUID, organization_id: UUID | None = None
    ) -> RecurringTemplate | None:
        query = self.db.query(RecurringTemplate).filter(RecurringTemplate.id == template_id)
        if organization_id is not None:
            query = query.filter(RecurringTemplate.organization_id == organization_id)
        return query.first()

    def get_all(
        self,
        organization_id: UUID,
        status: TemplateStatus | None = None,
        customer_id: UUID | None = None,
    ) -> list[RecurringTemplate]:
        query = self.db.query(RecurringTemplate).filter(
            RecurringTemplate.organization_id == organization_id
        )
        if status is not None:
            query = query.filter(RecurringTemplate.status == status.value)
        if customer_id is not None:
            query = query.filter(RecurringTemplate.customer_id == customer_id)
        return query.order_by(RecurringTemplate.created_at.desc(), RecurringTemplate.id).all()

    def get_eligible(self, now: datetime, force_all: bool = False) -> list[RecurringTemplate]:
        """Templates due for generation at ``now``.

        ``force_all`` drops the date clauses but never the active-status clause.
        """
        query = self.db.query(RecurringTemplate).filter(
            RecurringTemplate.status == TemplateStatus.ACTIVE.value
        )
        if not force_all:
            query = query.filter(
                RecurringTemplate.next_generation_date <= now,
                or_(RecurringTemplate.end_date.is_(None), RecurringTemplate.end_date >= now),
            )
        return query.order_by(
            RecurringTemplate.next_generation_date, RecurringTemplate.id
        ).all()

    def get_active(
        self, organization_id: UUID, customer_id: UUID | None = None
    ) -> list[RecurringTemplate]:
        query = self.db.query(RecurringTemplate).filter(
            RecurringTemplate.organization_id == organization_id,
            RecurringTemplate.status == TemplateStatus.ACTIVE.value,
        )
        if customer_id is not None:
            query = query.filter(RecurringTemplate.customer_id == customer_id)
        return query.order_by(RecurringTemplate.next_generation_date).all()

    def advance_schedule(
        self,
        template: RecurringTemplate,
        next_generation_date: datetime,
        last_generated_at: datetime,
        status: TemplateStatus,
    ) -> None:
        """Record a generation on the template without committing.

        The update only applies while the template is still active and still
        carries the ``next_generation_date`` it was loaded with, so a
        concurrent run that already advanced it makes this call fail.
        """
        result = self.db.execute(
            update(RecurringTemplate)
            .where(
                RecurringTemplate.id == template.id,
                RecurringTemplate.status == TemplateStatus.ACTIVE.value,
                RecurringTemplate.next_generation_date == template.next_generation_date,
            )
            .values(
                next_generation_date=next_generation_date,
                last_generated_at=last_generated_at,
                total_generated=RecurringTemplate.total_generated + 1,
                status=status.value,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConcurrentModificationError(
                f"Template {template.id} was modified by another run"
            )

    def has_invoices(self, template_id: UUID) -> bool:
        return (
            self.db.query(Invoice.id).filter(Invoice.recurring_template_id == template_id).first()
            is not None
        )

    def delete(self, template_id: UUID, organization_id: UUID | None = None) -> bool:
        template = self.get_by_id(template_id, organization_id)
        if not template:
            return False
        if self.has_invoices(template_id):
            raise TemplateHasInvoicesError(
                "Template has generated invoices and cannot be deleted"
            )
        self.db.delete(template)
        self.db.commit()
        return True

    def create(self, data: RecurringTemplateCreate, organization_id: UUID) -> RecurringTemplate:
        values = data.model_dump(exclude={"template_items"})
        values["frequency"] = data.frequency.value
        template = RecurringTemplate(
            **values,
            template_items=dump_template_items(data.template_items),
            next_generation_date=data.start_date,
            status=TemplateStatus.ACTIVE.value,
            organization_id=organization_id,
        )
        self.db.add(template)
        self.db.commit()
        self.db.refresh(template)
        return template

    def update(
        self, template_id: UUID, data: RecurringTemplateUpdate, organization_id: UUID | None = None
    ) -> RecurringTemplate | None:
        template = self.get_by_id(template_id, organization_id)
        if not template:
            return None
        update_data = data.model_dump(exclude_unset=True, exclude={"template_items"})
        for key, value in update_data.items():
            if value is None and key not in _NULLABLE_FIELDS:
                continue
            if key in ("frequency", "status"):
                value = value.value
            setattr(template, key, value)
        if data.template_items is not None:
            template.template_items = dump_template_items(data.template_items)
        self.db.commit()
        self.db.refresh(template)
        return template
