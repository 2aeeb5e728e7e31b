"""Shared test fixtures for all test modules."""

import contextlib
import uuid
from datetime import UTC, datetime
from typing import Any

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from recurring_invoices.core import database as db_module
from recurring_invoices.core.database import Base, get_db
from recurring_invoices.models import Customer, Organization, RecurringTemplate

# Create an in-memory SQLite engine with StaticPool so all connections
# share the same database state and there are no file-locking issues.
_test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
_TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_test_engine)

# Well-known default organization ID used across all tests
DEFAULT_ORG_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")

DEFAULT_ITEMS = [
    {"description": "Hosting", "quantity": "1", "price": "100.00", "taxRate": "20"},
]


def _seed_default_organization(session: Session) -> None:
    """Insert a default organization used by all tests."""
    org = session.query(Organization).filter(Organization.id == DEFAULT_ORG_ID).first()
    if org is None:
        org = Organization(
            id=DEFAULT_ORG_ID,
            name="Default Test Organization",
            default_currency="EUR",
        )
        session.add(org)
        session.commit()


def build_template(customer: Customer, **overrides: Any) -> RecurringTemplate:
    """Build an unsaved monthly template that is due on 2024-01-01."""
    values: dict[str, Any] = {
        "organization_id": customer.organization_id,
        "customer_id": customer.id,
        "name": "Monthly hosting",
        "frequency": "monthly",
        "interval": 1,
        "start_date": datetime(2024, 1, 1, tzinfo=UTC),
        "next_generation_date": datetime(2024, 1, 1, tzinfo=UTC),
        "template_items": DEFAULT_ITEMS,
        "days_until_due": 30,
    }
    values.update(overrides)
    return RecurringTemplate(**values)


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test and truncate all data after.

    Patches the module-level engine and SessionLocal so all application code
    uses the in-memory test database. Clears data after each test.
    """
    # Patch module-level engine and session factory
    original_engine = db_module.engine
    original_session = db_module.SessionLocal
    db_module.engine = _test_engine
    db_module.SessionLocal = _TestSessionLocal

    Base.metadata.create_all(bind=_test_engine)

    # Seed default organization so all tests can reference it
    session = _TestSessionLocal()
    try:
        _seed_default_organization(session)
    finally:
        session.close()

    yield
    with _test_engine.connect() as conn:
        conn.execute(text("PRAGMA foreign_keys = OFF"))
        for table in reversed(Base.metadata.sorted_tables):
            with contextlib.suppress(OperationalError):
                conn.execute(table.delete())
        conn.execute(text("PRAGMA foreign_keys = ON"))
        conn.commit()

    # Restore originals
    db_module.engine = original_engine
    db_module.SessionLocal = original_session


@pytest.fixture
def default_org_id():
    """Return the default organization ID for tests."""
    return DEFAULT_ORG_ID


@pytest.fixture
def db_session():
    """Create a database session for direct repository testing."""
    gen = get_db()
    db = next(gen)
    try:
        yield db
    finally:
        for _ in gen:
            pass


@pytest.fixture
def customer(db_session):
    """A customer of the default organization with an email address."""
    c = Customer(
        organization_id=DEFAULT_ORG_ID,
        name="Jane Doe",
        email="jane@example.com",
    )
    db_session.add(c)
    db_session.commit()
    db_session.refresh(c)
    return c


@pytest.fixture
def make_template(db_session, customer):
    """Factory persisting templates for the default customer."""

    def _make(**overrides: Any) -> RecurringTemplate:
        template = build_template(customer, **overrides)
        db_session.add(template)
        db_session.commit()
        db_session.refresh(template)
        return template

    return _make
