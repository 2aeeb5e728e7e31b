from datetime import datetime
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from recurring_invoices.core.exceptions import ConcurrentModificationError
from recurring_invoices.models import UsageRecord
from recurring_invoices.models.shared import ensure_utc
from recurring_invoices.schemas.usage_record import UsageRecordCreate


class UsageRecordRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_template(
        self,
        template_id: UUID,
        period_start: datetime | None = None,
        period_end: datetime | None = None,
    ) -> list[UsageRecord]:
        query = self.db.query(UsageRecord).filter(UsageRecord.recurring_template_id == template_id)
        if period_start is not None:
            query = query.filter(UsageRecord.period_start >= ensure_utc(period_start))
        if period_end is not None:
            query = query.filter(UsageRecord.period_end <= ensure_utc(period_end))
        return query.order_by(UsageRecord.recorded_at.desc()).all()

    def get_unbilled_in_period(
        self, template_id: UUID, period_start: datetime, period_end: datetime
    ) -> list[UsageRecord]:
        """Unbilled records whose period lies inside [period_start, period_end]."""
        return (
            self.db.query(UsageRecord)
            .filter(
                UsageRecord.recurring_template_id == template_id,
                UsageRecord.invoice_id.is_(None),
                UsageRecord.period_start >= period_start,
                UsageRecord.period_end <= period_end,
            )
            .order_by(UsageRecord.period_start, UsageRecord.id)
            .all()
        )

    def create(self, template_id: UUID, data: UsageRecordCreate) -> UsageRecord:
        record = UsageRecord(
            recurring_template_id=template_id,
            period_start=data.period_start,
            period_end=data.period_end,
            quantity=data.quantity,
            usage_metadata=data.usage_metadata,
            recorded_by=data.recorded_by,
        )
        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)
        return record

    def claim(self, record_ids: list[UUID], invoice_id: UUID) -> int:
        """Link unbilled records to an invoice without committing.

        Records already claimed by another invoice are never overwritten; if
        any of ``record_ids`` was claimed in the meantime the claim fails.
        """
        if not record_ids:
            return 0
        result = self.db.execute(
            update(UsageRecord)
            .where(UsageRecord.id.in_(record_ids), UsageRecord.invoice_id.is_(None))
            .values(invoice_id=invoice_id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != len(record_ids):
            raise ConcurrentModificationError(
                f"Expected to claim {len(record_ids)} usage records, claimed {result.rowcount}"
            )
        return int(result.rowcount)
