"""Tests for usage aggregation into billable line items."""

from datetime import UTC, datetime
from decimal import Decimal

import pytest

from recurring_invoices.models import UsageRecord
from recurring_invoices.schemas.recurring_template import TemplateItem
from recurring_invoices.services.invoice_totals import calculate_totals
from recurring_invoices.services.usage_aggregation import (
    UsageAggregationService,
    _format_quantity,
)

NOW = datetime(2024, 2, 1, tzinfo=UTC)


def _record(template, start, end, quantity, **kwargs):  # type: ignore[no-untyped-def]
    return UsageRecord(
        recurring_template_id=template.id,
        period_start=start,
        period_end=end,
        quantity=Decimal(quantity),
        **kwargs,
    )


@pytest.fixture
def usage_template(make_template):
    return make_template(
        name="Metered API",
        is_usage_based=True,
        usage_unit="requests",
        template_items=[
            {"description": "API calls", "quantity": "1", "price": "0.10"},
            {"description": "Support", "quantity": "0.5", "price": "1.00"},
        ],
    )


@pytest.fixture
def items(usage_template):
    return [TemplateItem.model_validate(i) for i in usage_template.template_items]


class TestFormatQuantity:
    def test_integral(self):
        assert _format_quantity(Decimal("12.0000")) == "12"

    def test_fractional(self):
        assert _format_quantity(Decimal("12.5000")) == "12.5"

    def test_large_integral_has_no_exponent(self):
        assert _format_quantity(Decimal("1000")) == "1000"


class TestBillingPeriod:
    def test_starts_at_start_date_when_never_generated(self, usage_template):
        start, end = UsageAggregationService.billing_period(usage_template, NOW)
        assert start == datetime(2024, 1, 1, tzinfo=UTC)
        assert end == NOW

    def test_starts_at_last_generation(self, usage_template, db_session):
        usage_template.last_generated_at = datetime(2024, 1, 15, tzinfo=UTC)
        db_session.commit()
        db_session.refresh(usage_template)
        start, _ = UsageAggregationService.billing_period(usage_template, NOW)
        assert start == datetime(2024, 1, 15, tzinfo=UTC)


class TestAggregate:
    def test_returns_none_without_usage(self, db_session, usage_template, items):
        service = UsageAggregationService(db_session)
        assert service.aggregate(usage_template, items, NOW) is None

    def test_sums_and_ceils_quantities(self, db_session, usage_template, items):
        db_session.add_all(
            [
                _record(
                    usage_template,
                    datetime(2024, 1, 5, tzinfo=UTC),
                    datetime(2024, 1, 10, tzinfo=UTC),
                    "10.5",
                ),
                _record(
                    usage_template,
                    datetime(2024, 1, 11, tzinfo=UTC),
                    datetime(2024, 1, 20, tzinfo=UTC),
                    "2",
                ),
            ]
        )
        db_session.commit()

        result = UsageAggregationService(db_session).aggregate(usage_template, items, NOW)

        assert result is not None
        assert result.total_usage == Decimal("12.5")
        assert [i.quantity for i in result.items] == [Decimal("13"), Decimal("7")]
        assert result.items[0].description == "API calls (12.5 requests)"
        assert result.items[1].description == "Support (12.5 requests)"
        assert result.items[0].price == Decimal("0.10")
        assert len(result.usage_record_ids) == 2

    def test_excludes_records_outside_period_or_billed(
        self, db_session, usage_template, items, make_template
    ):
        other = make_template(name="Other", is_usage_based=True)
        inside = _record(
            usage_template,
            datetime(2024, 1, 2, tzinfo=UTC),
            datetime(2024, 1, 3, tzinfo=UTC),
            "4",
        )
        db_session.add_all(
            [
                inside,
                # Ends after now
                _record(
                    usage_template,
                    datetime(2024, 1, 25, tzinfo=UTC),
                    datetime(2024, 2, 5, tzinfo=UTC),
                    "100",
                ),
                # Starts before the billing period
                _record(
                    usage_template,
                    datetime(2023, 12, 20, tzinfo=UTC),
                    datetime(2024, 1, 5, tzinfo=UTC),
                    "100",
                ),
                # Belongs to another template
                _record(
                    other,
                    datetime(2024, 1, 2, tzinfo=UTC),
                    datetime(2024, 1, 3, tzinfo=UTC),
                    "100",
                ),
            ]
        )
        db_session.commit()

        result = UsageAggregationService(db_session).aggregate(usage_template, items, NOW)

        assert result is not None
        assert result.total_usage == Decimal("4")
        assert result.usage_record_ids == (inside.id,)

    def test_default_unit_label(self, db_session, make_template):
        template = make_template(is_usage_based=True, usage_unit=None)
        db_session.add(
            _record(
                template,
                datetime(2024, 1, 2, tzinfo=UTC),
                datetime(2024, 1, 3, tzinfo=UTC),
                "3",
            )
        )
        db_session.commit()
        items = [TemplateItem.model_validate(i) for i in template.template_items]

        result = UsageAggregationService(db_session).aggregate(template, items, NOW)

        assert result is not None
        assert result.items[0].description == "Hosting (3 units)"

    def test_zero_usage_records_still_bill(self, db_session, usage_template, items):
        db_session.add(
            _record(
                usage_template,
                datetime(2024, 1, 2, tzinfo=UTC),
                datetime(2024, 1, 3, tzinfo=UTC),
                "0",
            )
        )
        db_session.commit()

        result = UsageAggregationService(db_session).aggregate(usage_template, items, NOW)

        assert result is not None
        assert [i.quantity for i in result.items] == [Decimal("0"), Decimal("0")]


class TestCalculateTotals:
    def test_tax_rate_is_percentage(self):
        items = [
            TemplateItem(
                description="A",
                quantity=Decimal("2"),
                price=Decimal("50"),
                tax_rate=Decimal("20"),
            ),
            TemplateItem(description="B", quantity=Decimal("1"), price=Decimal("10")),
        ]
        totals = calculate_totals(items)
        assert totals.subtotal == Decimal("110.00")
        assert totals.tax == Decimal("20.00")
        assert totals.total == Decimal("130.00")

    def test_rounds_half_up_to_cents(self):
        items = [TemplateItem(description="A", quantity=Decimal("3"), price=Decimal("0.335"))]
        assert calculate_totals(items).subtotal == Decimal("1.01")

    def test_empty(self):
        assert calculate_totals([]).total == Decimal("0.00")
