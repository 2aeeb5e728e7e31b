from uuid import UUID

from sqlalchemy.orm import Session

from recurring_invoices.models import Customer


class CustomerRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(
        self, customer_id: UUID, organization_id: UUID | None = None
    ) -> Customer | None:
        query = self.db.query(Customer).filter(Customer.id == customer_id)
        if organization_id is not None:
            query = query.filter(Customer.organization_id == organization_id)
        return query.first()
