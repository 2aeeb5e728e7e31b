import hmac
from uuid import UUID

from fastapi import HTTPException, Request

from recurring_invoices.core.config import settings
from recurring_invoices.models.shared import DEFAULT_ORGANIZATION_ID


def get_current_organization(request: Request) -> UUID:
    """Resolve the organization from the ``X-Organization-Id`` header.

    Falls back to the default organization when no header is sent.
    """
    org_id_header = request.headers.get("X-Organization-Id")
    if org_id_header:
        try:
            return UUID(org_id_header)
        except ValueError:
            raise HTTPException(
                status_code=400, detail="Invalid X-Organization-Id header"
            ) from None
    return DEFAULT_ORGANIZATION_ID


def verify_cron_secret(request: Request) -> None:
    """Reject trigger calls that do not carry the configured cron secret.

    When ``CRON_SECRET`` is empty every caller is accepted (development mode).
    """
    if not settings.CRON_SECRET:
        return

    auth_header = request.headers.get("Authorization", "")
    expected = f"Bearer {settings.CRON_SECRET}"
    if not hmac.compare_digest(auth_header.encode("utf-8"), expected.encode("utf-8")):
        raise HTTPException(status_code=401, detail="Unauthorized")
