"""API tests for template management, generation, usage, projection and analytics endpoints."""

import asyncio
import time
import uuid
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from unittest.mock import MagicMock, patch

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from recurring_invoices.core.database import init_db
from recurring_invoices.main import app
from recurring_invoices.models import Customer, Invoice, UsageRecord
from recurring_invoices.models.shared import ensure_utc
from recurring_invoices.repositories.recurring_template_repository import (
    RecurringTemplateRepository,
)
from recurring_invoices.services.email_service import EmailService
from recurring_invoices.services.template_processor import (
    NO_USAGE_REASON,
    NOT_ACTIVE_REASON,
    OutcomeStatus,
    TemplateProcessor,
)


@pytest.fixture
def client():
    """Create test client."""
    return TestClient(app)


@pytest.fixture
def due_template(make_template):
    now = datetime.now(UTC)
    return make_template(
        name="Due yesterday",
        start_date=now - timedelta(days=30),
        next_generation_date=now - timedelta(days=1),
    )


@pytest.fixture
def future_template(make_template):
    now = datetime.now(UTC)
    return make_template(
        name="Due next week",
        start_date=now,
        next_generation_date=now + timedelta(days=7),
    )


class TestRoot:
    def test_root(self, client: TestClient):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "running"

    def test_init_db_is_idempotent(self, client: TestClient, make_template):
        template = make_template()
        init_db()
        response = client.get(f"/v1/recurring_invoices/{template.id}/usage")
        assert response.status_code == 200


class TestCronTrigger:
    def test_generates_due_templates(self, client: TestClient, db_session, due_template, future_template):
        response = client.post("/v1/cron/generate-recurring")

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["dry_run"] is False
        assert data["summary"]["processed"] == 1
        assert data["summary"]["generated"] == 1
        assert data["message"] == "Processed 1 templates: 1 generated, 0 skipped, 0 failed"
        detail = data["summary"]["details"][0]
        assert detail["template_id"] == str(due_template.id)
        assert detail["status"] == "generated"
        assert detail["invoice_no"] == 1
        assert db_session.query(Invoice).count() == 1

    def test_get_is_accepted(self, client: TestClient):
        response = client.get("/v1/cron/generate-recurring")
        assert response.status_code == 200
        assert response.json()["summary"]["processed"] == 0

    def test_dry_run(self, client: TestClient, db_session, due_template):
        response = client.post("/v1/cron/generate-recurring", params={"dryRun": "true"})

        assert response.status_code == 200
        data = response.json()
        assert data["dry_run"] is True
        assert data["message"].startswith("Dry run. ")
        assert data["summary"]["details"][0]["status"] == "dry_run"
        assert data["summary"]["details"][0]["would_generate"] is True
        assert db_session.query(Invoice).count() == 0

    def test_force_all_includes_future_templates(self, client: TestClient, future_template):
        response = client.post("/v1/cron/generate-recurring", params={"forceAll": "true"})

        assert response.status_code == 200
        assert response.json()["summary"]["generated"] == 1

    def test_enumeration_failure_returns_500(self, client: TestClient, due_template):
        error = OperationalError("SELECT", {}, Exception("connection refused"))
        with patch.object(RecurringTemplateRepository, "get_eligible", side_effect=error):
            response = client.post("/v1/cron/generate-recurring")

        assert response.status_code == 500
        data = response.json()
        assert data["success"] is False
        assert data["error"] == "Failed to generate recurring invoices"
        assert "connection refused" in data["message"]
        assert "timestamp" in data

    def test_rejects_missing_secret(self, client: TestClient):
        with patch("recurring_invoices.core.auth.settings") as mock_settings:
            mock_settings.CRON_SECRET = "s3cret"
            response = client.post("/v1/cron/generate-recurring")
        assert response.status_code == 401

    def test_rejects_wrong_secret(self, client: TestClient):
        with patch("recurring_invoices.core.auth.settings") as mock_settings:
            mock_settings.CRON_SECRET = "s3cret"
            response = client.post(
                "/v1/cron/generate-recurring", headers={"Authorization": "Bearer nope"}
            )
        assert response.status_code == 401

    def test_accepts_matching_secret(self, client: TestClient):
        with patch("recurring_invoices.core.auth.settings") as mock_settings:
            mock_settings.CRON_SECRET = "s3cret"
            response = client.post(
                "/v1/cron/generate-recurring", headers={"Authorization": "Bearer s3cret"}
            )
        assert response.status_code == 200


class TestManualGeneration:
    def test_generates_ahead_of_schedule(self, client: TestClient, db_session, future_template):
        response = client.post(f"/v1/recurring_invoices/{future_template.id}/generate")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "generated"
        assert data["invoice_no"] == 1
        assert data["invoice_id"] is not None
        assert db_session.query(Invoice).count() == 1

    def test_unknown_template(self, client: TestClient):
        response = client.post(f"/v1/recurring_invoices/{uuid.uuid4()}/generate")
        assert response.status_code == 404
        assert response.json()["detail"] == "Recurring template not found"

    def test_paused_template(self, client: TestClient, make_template):
        template = make_template(status="paused")
        response = client.post(f"/v1/recurring_invoices/{template.id}/generate")
        assert response.status_code == 400
        assert response.json()["detail"] == NOT_ACTIVE_REASON

    def test_usage_template_without_usage(self, client: TestClient, make_template):
        template = make_template(is_usage_based=True)
        response = client.post(f"/v1/recurring_invoices/{template.id}/generate")
        assert response.status_code == 400
        assert response.json()["detail"] == NO_USAGE_REASON

    def test_configuration_failure(self, client: TestClient, make_template):
        template = make_template(interval=0)
        response = client.post(f"/v1/recurring_invoices/{template.id}/generate")
        assert response.status_code == 400

    def test_other_organization_cannot_see_template(self, client: TestClient, future_template):
        response = client.post(
            f"/v1/recurring_invoices/{future_template.id}/generate",
            headers={"X-Organization-Id": str(uuid.uuid4())},
        )
        assert response.status_code == 404

    def test_invalid_organization_header(self, client: TestClient, future_template):
        response = client.post(
            f"/v1/recurring_invoices/{future_template.id}/generate",
            headers={"X-Organization-Id": "not-a-uuid"},
        )
        assert response.status_code == 400


class TestUsageEndpoints:
    def _payload(self, **overrides):  # type: ignore[no-untyped-def]
        payload = {
            "period_start": "2024-01-05T00:00:00Z",
            "period_end": "2024-01-10T00:00:00Z",
            "quantity": "12.5",
            "recorded_by": "meter-1",
        }
        payload.update(overrides)
        return payload

    def test_records_usage(self, client: TestClient, db_session, make_template):
        template = make_template(is_usage_based=True, usage_unit="GB")

        response = client.post(
            f"/v1/recurring_invoices/{template.id}/usage", json=self._payload()
        )

        assert response.status_code == 201
        data = response.json()
        assert data["recurring_template_id"] == str(template.id)
        assert data["invoice_id"] is None
        assert Decimal(data["quantity"]) == Decimal("12.5")
        assert data["recorded_by"] == "meter-1"
        assert db_session.query(UsageRecord).count() == 1

    def test_rejects_fixed_template(self, client: TestClient, make_template):
        template = make_template()
        response = client.post(
            f"/v1/recurring_invoices/{template.id}/usage", json=self._payload()
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Template is not usage-based"

    def test_rejects_inverted_period(self, client: TestClient, make_template):
        template = make_template(is_usage_based=True)
        response = client.post(
            f"/v1/recurring_invoices/{template.id}/usage",
            json=self._payload(period_end="2024-01-01T00:00:00Z"),
        )
        assert response.status_code == 422

    def test_rejects_negative_quantity(self, client: TestClient, make_template):
        template = make_template(is_usage_based=True)
        response = client.post(
            f"/v1/recurring_invoices/{template.id}/usage",
            json=self._payload(quantity="-1"),
        )
        assert response.status_code == 422

    def test_unknown_template(self, client: TestClient):
        response = client.post(
            f"/v1/recurring_invoices/{uuid.uuid4()}/usage", json=self._payload()
        )
        assert response.status_code == 404

    def test_lists_usage(self, client: TestClient, make_template):
        template = make_template(is_usage_based=True)
        client.post(f"/v1/recurring_invoices/{template.id}/usage", json=self._payload())
        client.post(
            f"/v1/recurring_invoices/{template.id}/usage",
            json=self._payload(
                period_start="2024-02-01T00:00:00Z", period_end="2024-02-10T00:00:00Z"
            ),
        )

        response = client.get(f"/v1/recurring_invoices/{template.id}/usage")
        assert response.status_code == 200
        assert len(response.json()) == 2

        response = client.get(
            f"/v1/recurring_invoices/{template.id}/usage",
            params={"period_start": "2024-02-01T00:00:00Z"},
        )
        assert len(response.json()) == 1

    def test_offset_periods_are_stored_in_utc(self, client: TestClient, db_session, make_template):
        template = make_template(is_usage_based=True, usage_unit="GB")

        response = client.post(
            f"/v1/recurring_invoices/{template.id}/usage",
            json=self._payload(
                period_start="2024-01-01T03:00:00+05:00", period_end="2024-01-01T04:00:00+05:00"
            ),
        )

        assert response.status_code == 201
        data = response.json()
        assert datetime.fromisoformat(data["period_start"]) == datetime(2023, 12, 31, 22, tzinfo=UTC)
        assert datetime.fromisoformat(data["period_end"]) == datetime(2023, 12, 31, 23, tzinfo=UTC)
        record = db_session.query(UsageRecord).one()
        assert ensure_utc(record.period_start) == datetime(2023, 12, 31, 22, tzinfo=UTC)

        # The usage predates the template start, so no billing period covers it
        outcome = TemplateProcessor(db_session, MagicMock(spec=EmailService)).process(
            template, datetime(2024, 2, 1, tzinfo=UTC)
        )
        assert outcome.status == OutcomeStatus.SKIPPED
        assert outcome.reason == NO_USAGE_REASON

    def test_list_filter_accepts_offsets(self, client: TestClient, make_template):
        template = make_template(is_usage_based=True)
        client.post(
            f"/v1/recurring_invoices/{template.id}/usage",
            json=self._payload(
                period_start="2024-02-01T00:00:00Z", period_end="2024-02-10T00:00:00Z"
            ),
        )

        response = client.get(
            f"/v1/recurring_invoices/{template.id}/usage",
            params={"period_start": "2024-02-01T05:00:00+05:00"},
        )
        assert len(response.json()) == 1

        response = client.get(
            f"/v1/recurring_invoices/{template.id}/usage",
            params={"period_start": "2024-02-01T06:00:00+05:00"},
        )
        assert response.json() == []


class TestDeleteTemplate:
    def test_deletes_unused_template(self, client: TestClient, make_template):
        template = make_template()
        response = client.delete(f"/v1/recurring_invoices/{template.id}")
        assert response.status_code == 204

        response = client.delete(f"/v1/recurring_invoices/{template.id}")
        assert response.status_code == 404

    def test_refuses_template_with_invoices(self, client: TestClient, future_template):
        generated = client.post(f"/v1/recurring_invoices/{future_template.id}/generate")
        assert generated.status_code == 200

        response = client.delete(f"/v1/recurring_invoices/{future_template.id}")
        assert response.status_code == 409


class TestProjectionEndpoints:
    def test_projection_is_capped(self, client: TestClient, make_template):
        template = make_template()

        response = client.get(
            f"/v1/recurring_invoices/{template.id}/projection",
            params={"horizon_end": "2025-01-01T00:00:00+00:00"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["generation_count"] == 12
        assert data["truncated"] is True
        assert Decimal(data["average_invoice_value"]) == Decimal("120.00")
        assert Decimal(data["projected_value"]) == Decimal("1440.00")
        assert data["warnings"]

    def test_projection_requires_horizon(self, client: TestClient, make_template):
        template = make_template()
        response = client.get(f"/v1/recurring_invoices/{template.id}/projection")
        assert response.status_code == 422

    def test_projection_invalid_interval(self, client: TestClient, make_template):
        template = make_template(interval=0)
        response = client.get(
            f"/v1/recurring_invoices/{template.id}/projection",
            params={"horizon_end": "2025-01-01T00:00:00+00:00"},
        )
        assert response.status_code == 400

    def test_forecast_shape(self, client: TestClient, future_template):
        response = client.get("/v1/analytics/recurring_forecast", params={"months": 3})

        assert response.status_code == 200
        data = response.json()
        assert data["active_templates"] == 1
        assert len(data["months"]) == 3
        assert data["total_generations"] == sum(m["generation_count"] for m in data["months"])
        assert data["total_generations"] >= 1

    def test_forecast_months_bounds(self, client: TestClient):
        assert client.get("/v1/analytics/recurring_forecast", params={"months": 0}).status_code == 422
        assert client.get("/v1/analytics/recurring_forecast", params={"months": 37}).status_code == 422


class TestEmailWiring:
    def test_generation_uses_default_email_service(self, client: TestClient, future_template):
        mock_service = MagicMock()
        mock_service.send_invoice_email.return_value = True
        with patch(
            "recurring_invoices.services.template_processor.EmailService",
            return_value=mock_service,
        ):
            response = client.post(f"/v1/recurring_invoices/{future_template.id}/generate")

        assert response.status_code == 200
        assert response.json()["email_sent"] is True
        mock_service.send_invoice_email.assert_called_once()


class TestTemplateCrud:
    def _payload(self, customer, **overrides):  # type: ignore[no-untyped-def]
        payload = {
            "customer_id": str(customer.id),
            "name": "Support retainer",
            "frequency": "monthly",
            "start_date": "2024-03-01T00:00:00+02:00",
            "template_items": [
                {"description": "Support", "quantity": "2", "price": "50", "taxRate": "10"}
            ],
        }
        payload.update(overrides)
        return payload

    def test_creates_active_template(self, client: TestClient, customer):
        response = client.post("/v1/recurring_invoices/", json=self._payload(customer))

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "active"
        assert data["interval"] == 1
        assert data["days_until_due"] == 30
        assert data["auto_send_email"] is True
        assert data["is_usage_based"] is False
        assert data["total_generated"] == 0
        start = datetime(2024, 2, 29, 22, tzinfo=UTC)
        assert datetime.fromisoformat(data["start_date"]) == start
        assert datetime.fromisoformat(data["next_generation_date"]) == start
        assert data["template_items"] == [
            {"description": "Support", "quantity": "2", "price": "50", "taxRate": "10"}
        ]

    def test_created_template_generates(self, client: TestClient, db_session, customer):
        created = client.post("/v1/recurring_invoices/", json=self._payload(customer)).json()

        response = client.post(f"/v1/recurring_invoices/{created['id']}/generate")

        assert response.status_code == 200
        assert response.json()["invoice_no"] == 1
        assert db_session.query(Invoice).count() == 1

    def test_unknown_customer(self, client: TestClient, customer):
        payload = self._payload(customer, customer_id=str(uuid.uuid4()))
        response = client.post("/v1/recurring_invoices/", json=payload)
        assert response.status_code == 404
        assert response.json()["detail"] == "Customer not found"

    def test_customer_of_other_organization(self, client: TestClient, customer):
        response = client.post(
            "/v1/recurring_invoices/",
            json=self._payload(customer),
            headers={"X-Organization-Id": str(uuid.uuid4())},
        )
        assert response.status_code == 404

    @pytest.mark.parametrize(
        "overrides",
        [
            {"frequency": "fortnightly"},
            {"interval": 0},
            {"days_until_due": -1},
            {"template_items": []},
            {"template_items": [{"description": "No price", "quantity": "1"}]},
            {"end_date": "2024-01-01T00:00:00Z"},
        ],
    )
    def test_rejects_invalid_payload(self, client: TestClient, customer, overrides):
        response = client.post("/v1/recurring_invoices/", json=self._payload(customer, **overrides))
        assert response.status_code == 422

    def test_lists_with_filters(self, client: TestClient, db_session, customer, make_template):
        other = Customer(organization_id=customer.organization_id, name="Other Co")
        db_session.add(other)
        db_session.commit()
        active = make_template(name="Active")
        paused = make_template(name="Paused", status="paused")
        client.post("/v1/recurring_invoices/", json=self._payload(other))

        response = client.get("/v1/recurring_invoices/")
        assert response.status_code == 200
        assert len(response.json()) == 3

        response = client.get("/v1/recurring_invoices/", params={"status": "paused"})
        assert [t["id"] for t in response.json()] == [str(paused.id)]

        response = client.get(
            "/v1/recurring_invoices/",
            params={"customer_id": str(customer.id), "status": "active"},
        )
        assert [t["id"] for t in response.json()] == [str(active.id)]

        response = client.get("/v1/recurring_invoices/", params={"status": "archived"})
        assert response.status_code == 422

    def test_list_is_scoped_to_organization(self, client: TestClient, make_template):
        make_template()
        response = client.get(
            "/v1/recurring_invoices/", headers={"X-Organization-Id": str(uuid.uuid4())}
        )
        assert response.json() == []

    def test_get_template(self, client: TestClient, make_template):
        template = make_template()

        response = client.get(f"/v1/recurring_invoices/{template.id}")
        assert response.status_code == 200
        assert response.json()["name"] == "Monthly hosting"

        response = client.get(f"/v1/recurring_invoices/{uuid.uuid4()}")
        assert response.status_code == 404
        assert response.json()["detail"] == "Recurring template not found"

    def test_pause_and_resume(self, client: TestClient, db_session, make_template):
        template = make_template()

        response = client.put(f"/v1/recurring_invoices/{template.id}", json={"status": "paused"})
        assert response.status_code == 200
        assert response.json()["status"] == "paused"
        assert client.post(f"/v1/recurring_invoices/{template.id}/generate").status_code == 400

        response = client.put(f"/v1/recurring_invoices/{template.id}", json={"status": "active"})
        assert response.json()["status"] == "active"
        assert client.post(f"/v1/recurring_invoices/{template.id}/generate").status_code == 200

    def test_partial_update(self, client: TestClient, make_template):
        template = make_template()

        response = client.put(
            f"/v1/recurring_invoices/{template.id}",
            json={
                "frequency": "quarterly",
                "next_generation_date": "2024-04-01T00:00:00Z",
                "end_date": "2024-12-31T00:00:00Z",
                "template_items": [{"description": "Hosting", "quantity": "3", "price": "80"}],
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert data["frequency"] == "quarterly"
        assert data["name"] == "Monthly hosting"
        assert data["days_until_due"] == 30
        assert datetime.fromisoformat(data["next_generation_date"]) == datetime(
            2024, 4, 1, tzinfo=UTC
        )
        assert data["template_items"] == [
            {"description": "Hosting", "quantity": "3", "price": "80", "taxRate": "0"}
        ]

        response = client.put(f"/v1/recurring_invoices/{template.id}", json={"end_date": None})
        assert response.json()["end_date"] is None

    def test_update_ignores_null_for_required_fields(self, client: TestClient, make_template):
        template = make_template()
        response = client.put(f"/v1/recurring_invoices/{template.id}", json={"name": None})
        assert response.status_code == 200
        assert response.json()["name"] == "Monthly hosting"

    def test_update_rejects_invalid_values(self, client: TestClient, make_template):
        template = make_template()
        url = f"/v1/recurring_invoices/{template.id}"
        assert client.put(url, json={"frequency": "hourly"}).status_code == 422
        assert client.put(url, json={"template_items": []}).status_code == 422
        assert client.put(url, json={"status": "deleted"}).status_code == 422

    def test_update_unknown_template(self, client: TestClient):
        response = client.put(f"/v1/recurring_invoices/{uuid.uuid4()}", json={"name": "x"})
        assert response.status_code == 404


class TestCustomerRecurringValue:
    def test_projects_customer_templates(self, client: TestClient, customer, make_template):
        make_template()
        make_template(name="Paused", status="paused")

        response = client.get(f"/v1/analytics/customers/{customer.id}/recurring_value")

        assert response.status_code == 200
        data = response.json()
        assert data["customer_id"] == str(customer.id)
        assert data["active_templates"] == 1
        # Walked from 2024-01-01, so the generation ceiling applies
        assert data["generation_count"] == 12
        assert Decimal(data["projected_value"]) == Decimal("1440.00")
        assert data["templates"][0]["truncated"] is True
        assert data["warnings"]

    def test_customer_without_templates(self, client: TestClient, customer):
        response = client.get(
            f"/v1/analytics/customers/{customer.id}/recurring_value", params={"months": 6}
        )
        assert response.status_code == 200
        data = response.json()
        assert data["active_templates"] == 0
        assert Decimal(data["projected_value"]) == Decimal("0")

    def test_unknown_customer(self, client: TestClient):
        response = client.get(f"/v1/analytics/customers/{uuid.uuid4()}/recurring_value")
        assert response.status_code == 404
        assert response.json()["detail"] == "Customer not found"

    def test_customer_of_other_organization(self, client: TestClient, customer):
        response = client.get(
            f"/v1/analytics/customers/{customer.id}/recurring_value",
            headers={"X-Organization-Id": str(uuid.uuid4())},
        )
        assert response.status_code == 404

    def test_months_bounds(self, client: TestClient, customer):
        url = f"/v1/analytics/customers/{customer.id}/recurring_value"
        assert client.get(url, params={"months": 0}).status_code == 422
        assert client.get(url, params={"months": 37}).status_code == 422


async def _longest_loop_stall(request):  # type: ignore[no-untyped-def]
    """Await ``request`` while measuring the longest gap between event loop ticks."""
    gaps: list[float] = []
    done = asyncio.Event()

    async def tick() -> None:
        last = time.perf_counter()
        while not done.is_set():
            await asyncio.sleep(0.01)
            current = time.perf_counter()
            gaps.append(current - last)
            last = current

    ticker = asyncio.create_task(tick())
    await asyncio.sleep(0)
    try:
        response = await request
    finally:
        done.set()
        await ticker
    return response, max(gaps)


def _slow_send(*args, **kwargs):  # type: ignore[no-untyped-def]
    time.sleep(0.5)
    return True


class TestEventLoopResponsiveness:
    @pytest.mark.asyncio
    async def test_manual_generation_runs_off_the_loop(self, future_template):
        transport = httpx.ASGITransport(app=app)
        with patch.object(EmailService, "send_invoice_email", side_effect=_slow_send):
            async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
                response, stall = await _longest_loop_stall(
                    ac.post(f"/v1/recurring_invoices/{future_template.id}/generate")
                )

        assert response.status_code == 200
        assert response.json()["email_sent"] is True
        assert stall < 0.3

    @pytest.mark.asyncio
    async def test_cron_generation_runs_off_the_loop(self, due_template):
        transport = httpx.ASGITransport(app=app)
        with patch.object(EmailService, "send_invoice_email", side_effect=_slow_send):
            async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
                response, stall = await _longest_loop_stall(
                    ac.post("/v1/cron/generate-recurring")
                )

        assert response.status_code == 200
        assert response.json()["summary"]["generated"] == 1
        assert stall < 0.3
