from uuid import UUID

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from recurring_invoices.models import InvoiceCounter
from recurring_invoices.models.shared import utc_now


class InvoiceCounterRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_last_invoice_no(self, organization_id: UUID) -> int:
        counter = (
            self.db.query(InvoiceCounter)
            .filter(InvoiceCounter.organization_id == organization_id)
            .first()
        )
        return int(counter.last_invoice_no) if counter else 0

    def increment_or_create(self, organization_id: UUID) -> int:
        """Atomically bump the organization's counter and return the new value.

        Issued as a single ``INSERT ... ON CONFLICT DO UPDATE ... RETURNING``
        statement so the row lock it takes serializes concurrent allocations.
        Does not commit.
        """
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            insert = postgresql.insert
        elif dialect == "sqlite":
            insert = sqlite.insert
        else:
            raise NotImplementedError(f"Unsupported database dialect: {dialect}")

        now = utc_now()
        stmt = insert(InvoiceCounter).values(
            organization_id=organization_id, last_invoice_no=1, updated_at=now
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[InvoiceCounter.organization_id],
            set_={
                "last_invoice_no": InvoiceCounter.last_invoice_no + 1,
                "updated_at": now,
            },
        ).returning(InvoiceCounter.last_invoice_no)
        return int(self.db.execute(stmt).scalar_one())
