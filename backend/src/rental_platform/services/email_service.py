"""SendGrid email service for Communication Center notifications.

Uses asyncio.to_thread to wrap the synchronous SendGrid client.
"""

import asyncio
import html
import logging
from dataclasses import dataclass
from typing import Optional

import sendgrid
from sendgrid.helpers.mail import Email, HtmlContent, Mail, To

logger = logging.getLogger(__name__)

FROM_NAME = "Rental Platform"


@dataclass
class EmailSendResult:
    success: bool
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# Configuration: read from Pydantic settings (which loads .env)
# ---------------------------------------------------------------------------


def _get_config():
    """Get email config from app settings (lazy to avoid import-time issues)."""
    from rental_platform.app.config import get_settings
    s = get_settings()
    return s.sendgrid_api_key, s.notification_from_email


def _get_client() -> sendgrid.SendGridAPIClient:
    """Return a configured SendGrid API client."""
    api_key, _ = _get_config()
    return sendgrid.SendGridAPIClient(api_key=api_key)


def format_cents(amount_cents: int) -> str:
    """Format integer cents as $X,XXX.XX."""
    return f"${amount_cents / 100:,.2f}"


def _send_mail(mail: Mail) -> EmailSendResult:
    """Synchronous send via SendGrid."""
    client = _get_client()
    response = client.send(mail)
    if response.status_code in (200, 201, 202):
        return EmailSendResult(success=True)
    logger.error(
        "SendGrid returned status %s: %s",
        response.status_code,
        response.body,
    )
    return EmailSendResult(success=False, error=f"SendGrid status {response.status_code}")


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


PAYMENT_METHOD_LABELS = {
    "etransfer": "e-Transfer",
    "stripe": "Credit Card",
}


def build_payment_received_email(
    tenant_name: str,
    tenant_email: str,
    building_name: str,
    unit_label: str,
    period_month: str,
    amount_cents: int,
    payment_method: str,
) -> tuple[str, str]:
    """Return ``(subject, html)`` for a payment-received summary."""
    amount = format_cents(amount_cents)
    method_label = PAYMENT_METHOD_LABELS.get(payment_method, payment_method)
    subject = f"Payment Received: {tenant_name} - {building_name} {unit_label} ({amount})"

    rows = [
        ("Tenant Name", tenant_name),
        ("Email", tenant_email),
        ("Building", building_name),
        ("Unit", unit_label),
        ("Period", period_month),
        ("Amount", f"{amount} CAD"),
        ("Payment Method", method_label),
    ]
    row_html = "".join(
        f'<tr><td style="padding: 4px 12px 4px 0; color: #6b7280;">{label}</td>'
        f'<td style="padding: 4px 0; color: #111827;"><strong>{html.escape(str(value or ""))}</strong></td></tr>'
        for label, value in rows
    )
    body = f"""<!DOCTYPE html>
<html>
<body style="margin: 0; padding: 24px; font-family: -apple-system, Segoe UI, Roboto, sans-serif;">
    <h2 style="color: #10b981; margin: 0 0 8px 0;">Payment Received</h2>
    <p style="color: #4b5563;">A payment has been received and recorded.</p>
    <table style="border-collapse: collapse; font-size: 15px;">{row_html}</table>
</body>
</html>"""
    return subject, body


# ---------------------------------------------------------------------------
# Public async API
# ---------------------------------------------------------------------------


async def send_email(to_email: str, subject: str, html_body: str) -> EmailSendResult:
    """Send one HTML email.

    Returns:
        An ``EmailSendResult``; failures are reported, never raised.
    """
    api_key, from_email = _get_config()
    if not api_key or not from_email:
        logger.warning("SendGrid not configured - skipping email to %s", to_email)
        return EmailSendResult(success=False, error="Email not configured")

    try:
        mail = Mail(
            from_email=Email(from_email, FROM_NAME),
            to_emails=To(to_email),
            subject=subject,
            html_content=HtmlContent(html_body),
        )
        result = await asyncio.to_thread(_send_mail, mail)
        if result.success:
            logger.info("Email sent to %s: %s", to_email, subject)
        return result
    except Exception as exc:
        logger.exception("Failed to send email to %s", to_email)
        return EmailSendResult(success=False, error=str(exc))
