"""Communication Center: fan platform events out to subscribed recipients.

Each recipient is e-mailed with up to three attempts, and every outcome is
written to the system activity log under the NOTIFICATION category.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rental_platform.app.config import get_settings
from rental_platform.domain.enums import AuditAction, AuditCategory, NotificationEventType
from rental_platform.domain.models import NotificationRecipient
from rental_platform.services.audit_log import AuditLog
from rental_platform.services.email_service import (
    EmailSendResult,
    build_payment_received_email,
    format_cents,
    send_email,
)

logger = logging.getLogger(__name__)

MAX_RETRY_ATTEMPTS = 3
RETRY_DELAY_SECONDS = 1.0

SYSTEM_ACTOR = "SYSTEM"

EmailSender = Callable[[str, str, str], Awaitable[EmailSendResult]]


@dataclass
class PaymentReceivedNotice:
    tenant_name: str
    tenant_email: str
    building_name: str
    unit_label: str
    period_month: str
    amount_cents: int
    payment_method: str


@dataclass
class NotificationResult:
    success: bool = True
    recipient_count: int = 0
    sent_count: int = 0
    failed_count: int = 0
    errors: list[str] = field(default_factory=list)


def _subscribed(recipient: NotificationRecipient, event_type: NotificationEventType) -> bool:
    events = {e.strip() for e in (recipient.event_types or "").split(",") if e.strip()}
    return event_type.value in events


class CommunicationCenter:
    """Dispatches event notifications on behalf of one request."""

    def __init__(self, db: AsyncSession, sender: Optional[EmailSender] = None):
        self.db = db
        self.sender = sender or send_email
        self.audit = AuditLog(db)

    async def recipients_for_event(
        self,
        event_type: NotificationEventType,
        building_name: Optional[str] = None,
    ) -> list[NotificationRecipient]:
        """Active recipients subscribed to ``event_type``.

        A recipient with a building filter only receives events for that
        building; one without a filter receives all buildings.
        """
        result = await self.db.execute(
            select(NotificationRecipient)
            .where(NotificationRecipient.is_active.is_(True))
            .order_by(NotificationRecipient.email)
        )
        recipients = []
        for recipient in result.scalars().all():
            if not _subscribed(recipient, event_type):
                continue
            if recipient.building_name and building_name and recipient.building_name != building_name:
                continue
            recipients.append(recipient)
        return recipients

    async def send_with_retry(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        max_attempts: int = MAX_RETRY_ATTEMPTS,
    ) -> tuple[EmailSendResult, int]:
        """Send, waiting ``RETRY_DELAY_SECONDS * attempt`` between failures."""
        result = EmailSendResult(success=False, error="No attempt made")
        for attempt in range(1, max_attempts + 1):
            result = await self.sender(to_email, subject, html_body)
            if result.success:
                return result, attempt
            logger.warning(
                "Email attempt %d/%d to %s failed: %s",
                attempt,
                max_attempts,
                to_email,
                result.error,
            )
            if attempt < max_attempts:
                await asyncio.sleep(RETRY_DELAY_SECONDS * attempt)
        return result, max_attempts

    async def dispatch(
        self,
        event_type: NotificationEventType,
        building_name: Optional[str],
        subject: str,
        html_body: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> NotificationResult:
        outcome = NotificationResult()

        if not get_settings().email_configured:
            logger.info("Email not configured, skipping %s notifications", event_type.value)
            return outcome

        recipients = await self.recipients_for_event(event_type, building_name)
        outcome.recipient_count = len(recipients)
        if not recipients:
            logger.info("No recipients configured for %s", event_type.value)
            return outcome

        logger.info("Dispatching %s notifications to %d recipients", event_type.value, len(recipients))

        for recipient in recipients:
            result, attempts = await self.send_with_retry(recipient.email, subject, html_body)
            entry_metadata = {
                "event_type": event_type.value,
                "recipient_email": recipient.email,
                "recipient_name": recipient.name,
                "attempts": attempts,
                **(metadata or {}),
            }
            if result.success:
                outcome.sent_count += 1
                await self.audit.record(
                    AuditAction.NOTIFICATION_SENT,
                    f"{event_type.value} notification to {recipient.email}: SENT",
                    metadata=entry_metadata,
                    category=AuditCategory.NOTIFICATION,
                    actor_id=SYSTEM_ACTOR,
                )
            else:
                outcome.failed_count += 1
                outcome.errors.append(f"{recipient.email}: {result.error}")
                await self.audit.record(
                    AuditAction.NOTIFICATION_FAILED,
                    f"{event_type.value} notification to {recipient.email}: FAILED",
                    metadata=entry_metadata,
                    success=False,
                    category=AuditCategory.NOTIFICATION,
                    actor_id=SYSTEM_ACTOR,
                    error_message=result.error,
                )

        outcome.success = outcome.failed_count == 0
        logger.info(
            "%s dispatch complete: %d/%d sent",
            event_type.value,
            outcome.sent_count,
            outcome.recipient_count,
        )
        return outcome

    async def notify_payment_received(self, notice: PaymentReceivedNotice) -> NotificationResult:
        logger.info(
            "Triggering PAYMENT_RECEIVED notification for %s - %s",
            notice.tenant_name,
            format_cents(notice.amount_cents),
        )
        subject, html_body = build_payment_received_email(
            tenant_name=notice.tenant_name,
            tenant_email=notice.tenant_email,
            building_name=notice.building_name,
            unit_label=notice.unit_label,
            period_month=notice.period_month,
            amount_cents=notice.amount_cents,
            payment_method=notice.payment_method,
        )
        return await self.dispatch(
            NotificationEventType.PAYMENT_RECEIVED,
            notice.building_name,
            subject,
            html_body,
            metadata={
                "tenant_name": notice.tenant_name,
                "building_name": notice.building_name,
                "unit_label": notice.unit_label,
                "period_month": notice.period_month,
                "amount_cents": notice.amount_cents,
                "payment_method": notice.payment_method,
            },
        )


PaymentNotifier = Callable[[AsyncSession, PaymentReceivedNotice], Awaitable[Any]]


async def notify_payment_received(db: AsyncSession, notice: PaymentReceivedNotice) -> NotificationResult:
    return await CommunicationCenter(db).notify_payment_received(notice)


def get_payment_notifier() -> PaymentNotifier:
    """FastAPI dependency: the payment-received notifier."""
    return notify_payment_received
