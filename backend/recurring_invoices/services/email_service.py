"""Email dispatch for generated invoices via an HTTP email API."""

from __future__ import annotations

import html
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

import httpx

from recurring_invoices.core.config import settings
from recurring_invoices.core.exceptions import NotificationError

logger = logging.getLogger(__name__)


def _format_amount(value: object) -> str:
    """Format a monetary amount to two decimal places."""
    if value is None:
        return "0.00"
    return f"{Decimal(str(value)):.2f}"


def _format_date(dt: object) -> str:
    """Format a datetime to YYYY-MM-DD, or return empty string if None."""
    if dt is None:
        return ""
    return str(dt)[:10]


@dataclass(frozen=True)
class InvoiceNotification:
    """Data handed to the dispatcher for one generated invoice."""

    recipient: str
    customer_name: str
    invoice_id: UUID
    invoice_no: int
    issue_date: datetime
    due_date: datetime
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    currency: str
    organization_id: UUID
    organization_name: str
    logo_url: str | None = None
    accent_color: str | None = None

    @property
    def invoice_url(self) -> str:
        return f"{settings.APP_URL.rstrip('/')}/invoices/{self.invoice_id}"


class EmailService:
    """Sends invoice notifications through the configured email API."""

    def __init__(self, client: httpx.Client | None = None):
        self._client = client

    def send_email(self, to: str, subject: str, html_body: str) -> bool:
        """Deliver one email.

        Returns:
            True if sent successfully (or no-op when no email API is configured).

        Raises:
            NotificationError: The API rejected the message or was unreachable.
        """
        if not settings.email_enabled:
            logger.info("Email API not configured, skipping email to %s: %s", to, subject)
            return True

        payload: dict[str, Any] = {
            "from": f"{settings.EMAIL_FROM_NAME} <{settings.EMAIL_FROM_EMAIL}>",
            "to": [to],
            "subject": subject,
            "html": html_body,
        }
        headers = {"Authorization": f"Bearer {settings.EMAIL_API_KEY}"}

        try:
            if self._client is not None:
                response = self._client.post(settings.EMAIL_API_URL, json=payload, headers=headers)
            else:
                with httpx.Client(timeout=settings.EMAIL_TIMEOUT_SECONDS) as client:
                    response = client.post(settings.EMAIL_API_URL, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            raise NotificationError(f"Email delivery to {to} failed: {exc}") from exc

        if response.status_code >= 300:
            raise NotificationError(
                f"Email API returned {response.status_code} for {to}: {response.text[:200]}"
            )

        logger.info("Email sent to %s: %s", to, subject)
        return True

    def send_invoice_email(self, notification: InvoiceNotification) -> bool:
        """Send the "new invoice" email for a generated invoice."""
        subject = f"Invoice #{notification.invoice_no} from {notification.organization_name}"
        # Every interpolated value is user-controlled text
        org_name = html.escape(notification.organization_name)
        customer_name = html.escape(notification.customer_name or "Customer")
        accent = html.escape(notification.accent_color or "#111827")
        invoice_url = html.escape(notification.invoice_url)
        currency = html.escape(notification.currency)

        logo = (
            f'<img src="{html.escape(notification.logo_url)}" alt="{org_name}" height="48" />'
            if notification.logo_url
            else ""
        )
        html_body = (
            f"{logo}"
            f'<h2 style="color:{accent}">Invoice #{notification.invoice_no}</h2>'
            f"<p>Dear {customer_name},</p>"
            f"<p>A new invoice has been issued to you by {org_name}.</p>"
            f"<table>"
            f"<tr><td><strong>Issue Date:</strong></td>"
            f"<td>{_format_date(notification.issue_date)}</td></tr>"
            f"<tr><td><strong>Due Date:</strong></td>"
            f"<td>{_format_date(notification.due_date)}</td></tr>"
            f"<tr><td><strong>Subtotal:</strong></td>"
            f"<td>{_format_amount(notification.subtotal)} {currency}</td></tr>"
            f"<tr><td><strong>Tax:</strong></td>"
            f"<td>{_format_amount(notification.tax)} {currency}</td></tr>"
            f"<tr><td><strong>Total:</strong></td>"
            f"<td>{_format_amount(notification.total)} {currency}</td></tr>"
            f"</table>"
            f'<p><a href="{invoice_url}">View invoice</a></p>'
            f"<p>Thank you for your business.</p>"
        )

        return self.send_email(to=notification.recipient, subject=subject, html_body=html_body)
