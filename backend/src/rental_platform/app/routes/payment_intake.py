"""Payment intake webhook: forwarded Interac e-Transfer notification emails.

Mail-forwarding providers POST each notification here. Every authenticated
call is persisted as a PaymentIntakeLog and answered with ``received: true``
plus the status it reached, so the provider never retries a call that was
understood.
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from rental_platform.domain.enums import AuditAction, IntakeStatus
from rental_platform.infra.database import get_db
from rental_platform.services.audit_log import AuditLog
from rental_platform.services.field_extractor import (
    FieldExtractor,
    extractor_configured,
    get_field_extractor,
)
from rental_platform.services.intake_errors import AuthError
from rental_platform.services.intake_normalizer import (
    authenticate_webhook,
    normalize_payload,
    webhook_source,
)
from rental_platform.services.notification_service import PaymentNotifier, get_payment_notifier
from rental_platform.services.payment_intake_pipeline import PaymentIntakePipeline
from rental_platform.services.webhook_secret_service import resolve_webhook_secret

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])

WEBHOOK_PATH = "/api/webhooks/payment-intake"


def _error(status_code: int, message: str, code: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"message": message, "code": code}},
    )


async def _read_form(request: Request, content_type: str) -> dict | None:
    if "multipart/form-data" not in content_type.lower():
        return None
    try:
        form = await request.form()
    except Exception as exc:
        logger.warning("Could not parse multipart payment webhook: %s", exc)
        return None
    return {key: value for key, value in form.items() if isinstance(value, str)}


@router.post("/payment-intake")
async def receive_payment_intake(
    request: Request,
    db: AsyncSession = Depends(get_db),
    extractor: FieldExtractor = Depends(get_field_extractor),
    notifier: PaymentNotifier = Depends(get_payment_notifier),
):
    """Authenticate, persist and reconcile one forwarded notification."""
    headers = request.headers
    source = webhook_source(headers, request.client.host if request.client else None)
    logger.info("Received payment intake webhook from %s", source)

    audit = AuditLog(db)
    expected_secret = await resolve_webhook_secret(db)
    try:
        is_verified = authenticate_webhook(headers, expected_secret)
    except AuthError:
        logger.warning("Payment webhook received without valid secret from %s", source)
        await audit.record(
            AuditAction.WEBHOOK_UNAUTHORIZED,
            "Unauthorized payment webhook attempt",
            metadata={"webhook_source": source},
            success=False,
        )
        return _error(401, "Unauthorized", "UNAUTHORIZED")

    content_type = headers.get("content-type", "")
    raw = await request.body()
    form = await _read_form(request, content_type)
    intake = normalize_payload(content_type, raw, form)

    pipeline = PaymentIntakePipeline(db, extractor, notifier)
    try:
        result = await pipeline.process(intake, is_verified=is_verified, webhook_source=source)
    except Exception as exc:
        logger.exception("Payment intake webhook error")
        await db.rollback()
        await audit.record(
            AuditAction.WEBHOOK_ERROR,
            f"Webhook processing error: {exc}",
            metadata={
                "webhook_source": source,
                "error": str(exc),
                "raw_subject": intake.subject,
                "raw_body_preview": intake.body[:200],
                "status": IntakeStatus.FAILED.value,
            },
            success=False,
            error_message=str(exc),
        )
        return _error(500, "Webhook processing failed", "PROCESSING_ERROR")

    logger.info("Payment intake %s finished with status %s", result.log_id, result.status.value)
    return result.to_response()


@router.get("/payment-intake/status")
async def payment_intake_status(db: AsyncSession = Depends(get_db)):
    """Health check for mail-forwarding setup."""
    return {
        "status": "ok",
        "configured": {
            "webhook_secret": bool(await resolve_webhook_secret(db)),
            "extractor": extractor_configured(),
        },
        "endpoint": WEBHOOK_PATH,
    }
