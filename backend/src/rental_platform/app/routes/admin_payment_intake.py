"""Admin endpoints for the payment intake review queue.

Lists intake records, resolves MANUAL_REVIEW records by hand (through the same
ledger update the webhook uses), dismisses them, runs dry-run simulations,
shows the e-Transfer payment history and manages the webhook secret. All routes require an ADMIN bearer token.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from rental_platform.app.routes.auth import require_admin
from rental_platform.app.routes.payment_intake import WEBHOOK_PATH
from rental_platform.domain.enums import (
    AuditAction,
    AuditCategory,
    IntakeStatus,
    PaymentMethod,
    ReconciliationType,
)
from rental_platform.domain.models import Invoice, Payment, PaymentIntakeLog, Unit, User
from rental_platform.domain.schemas import (
    DismissRequest,
    ManualMatchRequest,
    PaymentIntakeLogResponse,
    TestWebhookRequest,
    WebhookSecretRequest,
)
from rental_platform.infra.database import get_db
from rental_platform.services.audit_log import AuditLog, serialize_audit_entry
from rental_platform.services.field_extractor import (
    FieldExtractor,
    extractor_configured,
    get_field_extractor,
)
from rental_platform.services.intake_errors import LedgerConflictError, ReviewActionError
from rental_platform.services.intake_state_machine import InvalidTransitionError
from rental_platform.services.invoice_reconciler import find_pending_invoices
from rental_platform.services.notification_service import PaymentNotifier, get_payment_notifier
from rental_platform.services.payment_intake_pipeline import PaymentIntakePipeline
from rental_platform.services.webhook_secret_service import (
    mask_secret,
    resolve_webhook_secret,
    rotate_webhook_secret,
    secret_source,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/payment-intake", tags=["admin-payment-intake"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _http_error(status_code: int, message: str, code: str) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"message": message, "code": code})


async def _serialize_logs(db: AsyncSession, logs: list[PaymentIntakeLog]) -> list[dict]:
    """Intake records with their matched tenant and invoice summaries."""
    tenant_ids = {log.matched_tenant_id for log in logs if log.matched_tenant_id}
    invoice_ids = {log.matched_invoice_id for log in logs if log.matched_invoice_id}

    tenants = {}
    if tenant_ids:
        result = await db.execute(select(User).where(User.id.in_(tenant_ids)))
        tenants = {u.id: u for u in result.scalars().all()}
    invoices = {}
    if invoice_ids:
        result = await db.execute(select(Invoice).where(Invoice.id.in_(invoice_ids)))
        invoices = {i.id: i for i in result.scalars().all()}

    items = []
    for log in logs:
        data = PaymentIntakeLogResponse.model_validate(log).model_dump(mode="json")
        tenant = tenants.get(log.matched_tenant_id)
        invoice = invoices.get(log.matched_invoice_id)
        data["matched_tenant"] = (
            {"id": tenant.id, "name": tenant.name, "email": tenant.email} if tenant else None
        )
        data["matched_invoice"] = (
            {
                "id": invoice.id,
                "period_month": invoice.period_month,
                "amount_cents": invoice.amount_cents,
                "status": invoice.status,
            }
            if invoice
            else None
        )
        items.append(data)
    return items


# ---------------------------------------------------------------------------
# Intake log review queue
# ---------------------------------------------------------------------------


@router.get("/logs")
async def list_intake_logs(
    status: Optional[IntakeStatus] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    query = select(PaymentIntakeLog)
    count_query = select(func.count()).select_from(PaymentIntakeLog)
    if status is not None:
        query = query.where(PaymentIntakeLog.status == status.value)
        count_query = count_query.where(PaymentIntakeLog.status == status.value)

    result = await db.execute(
        query.order_by(PaymentIntakeLog.received_at.desc()).limit(limit).offset(offset)
    )
    logs = list(result.scalars().all())
    total = (await db.execute(count_query)).scalar() or 0

    return {
        "data": await _serialize_logs(db, logs),
        "total": total,
        "limit": limit,
        "offset": offset,
    }


@router.get("/logs/{log_id}")
async def get_intake_log(
    log_id: str,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    log = await db.get(PaymentIntakeLog, log_id)
    if log is None:
        raise _http_error(404, "Intake log not found", "NOT_FOUND")
    items = await _serialize_logs(db, [log])
    return {"data": items[0]}


@router.post("/logs/{log_id}/match")
async def manual_match(
    log_id: str,
    body: ManualMatchRequest,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
    extractor: FieldExtractor = Depends(get_field_extractor),
    notifier: PaymentNotifier = Depends(get_payment_notifier),
):
    """Settle a review record against an admin-chosen tenant and invoice."""
    admin_id = admin.id
    pipeline = PaymentIntakePipeline(db, extractor, notifier)
    try:
        result = await pipeline.manual_match(log_id, body.tenant_id, body.invoice_id, admin_id)
    except ReviewActionError as exc:
        raise _http_error(exc.status_code, exc.message, exc.code)
    except InvalidTransitionError as exc:
        raise _http_error(409, str(exc), "INVALID_TRANSITION")
    except LedgerConflictError as exc:
        raise _http_error(409, exc.message, "LEDGER_CONFLICT")

    logger.info("Admin %s manually matched intake %s to invoice %s", admin_id, log_id, body.invoice_id)
    return {"data": result}


@router.put("/logs/{log_id}/dismiss")
async def dismiss_intake_log(
    log_id: str,
    body: Optional[DismissRequest] = Body(None),
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
    extractor: FieldExtractor = Depends(get_field_extractor),
):
    admin_id = admin.id
    pipeline = PaymentIntakePipeline(db, extractor)
    try:
        record = await pipeline.dismiss(log_id, admin_id, reason=body.reason if body else None)
    except ReviewActionError as exc:
        raise _http_error(exc.status_code, exc.message, exc.code)
    except InvalidTransitionError as exc:
        raise _http_error(409, str(exc), "INVALID_TRANSITION")

    return {"data": {"success": True, "log_id": record.id, "status": record.status}}


@router.get("/tenants/{user_id}/pending-invoices")
async def tenant_pending_invoices(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """Outstanding invoices of a tenant, oldest first (manual-match helper)."""
    tenant = await db.get(User, user_id)
    if tenant is None:
        raise _http_error(404, "Tenant not found", "TENANT_NOT_FOUND")
    pending = await find_pending_invoices(db, user_id)
    return {"data": [inv.to_dict() for inv in pending]}


# ---------------------------------------------------------------------------
# Payment history
# ---------------------------------------------------------------------------


def _month_range(month: str) -> tuple[datetime, datetime]:
    year, month_num = (int(part) for part in month.split("-"))
    start = datetime(year, month_num, 1)
    end = datetime(year + 1, 1, 1) if month_num == 12 else datetime(year, month_num + 1, 1)
    return start, end


def _reconciliation_type(payment: Payment, intake_log: Optional[PaymentIntakeLog]) -> ReconciliationType:
    if payment.approved_by_admin_id or intake_log is None:
        return ReconciliationType.MANUAL
    if intake_log.status == IntakeStatus.PAID.value:
        return ReconciliationType.AUTO
    return ReconciliationType.FLAGGED


@router.get("/payment-history")
async def payment_history(
    building: Optional[str] = Query(None),
    month: Optional[str] = Query(None, pattern=r"^\d{4}-(0[1-9]|1[0-2])$"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """E-Transfer ledger payments, newest first, with how each was reconciled."""
    filters = [Payment.method == PaymentMethod.ETRANSFER.value]
    if building and building != "all":
        filters.append(Unit.building_name == building)
    if month:
        start, end = _month_range(month)
        filters.extend([Payment.paid_at >= start, Payment.paid_at < end])

    base = (
        select(Payment, User, Unit, Invoice)
        .join(User, User.id == Payment.user_id)
        .join(Unit, Unit.id == Payment.unit_id)
        .join(Invoice, Invoice.id == Payment.invoice_id)
        .where(*filters)
    )
    rows = (
        await db.execute(base.order_by(Payment.paid_at.desc(), Payment.id).limit(limit).offset(offset))
    ).all()
    total = (
        await db.execute(
            select(func.count())
            .select_from(Payment)
            .join(Unit, Unit.id == Payment.unit_id)
            .where(*filters)
        )
    ).scalar() or 0

    # A paid invoice can have several intake records (replays, flagged copies);
    # the PAID one describes how it was settled.
    invoice_ids = [payment.invoice_id for payment, _, _, _ in rows]
    intake_logs: dict[str, PaymentIntakeLog] = {}
    if invoice_ids:
        result = await db.execute(
            select(PaymentIntakeLog).where(PaymentIntakeLog.matched_invoice_id.in_(invoice_ids))
        )
        for log in result.scalars().all():
            current = intake_logs.get(log.matched_invoice_id)
            if current is None or log.status == IntakeStatus.PAID.value:
                intake_logs[log.matched_invoice_id] = log

    buildings = (
        await db.execute(select(Unit.building_name).distinct().order_by(Unit.building_name))
    ).scalars().all()

    items = []
    for payment, tenant, unit, invoice in rows:
        intake_log = intake_logs.get(payment.invoice_id)
        items.append({
            "id": payment.id,
            "tenant_id": tenant.id,
            "tenant_name": tenant.name,
            "tenant_email": tenant.email,
            "unit_id": unit.id,
            "building_name": unit.building_name,
            "unit_label": unit.unit_label,
            "invoice_id": invoice.id,
            "period_month": invoice.period_month,
            "amount_cents": payment.amount_cents,
            "method": payment.method,
            "reference_number": payment.reference_number,
            "paid_at": payment.paid_at.isoformat() if payment.paid_at else None,
            "approved_by_admin_id": payment.approved_by_admin_id,
            "intake_log_id": intake_log.id if intake_log else None,
            "raw_email_content": intake_log.raw_body if intake_log else None,
            "reconciliation_type": _reconciliation_type(payment, intake_log).value,
        })

    return {
        "data": items,
        "buildings": [b for b in buildings if b],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


# ---------------------------------------------------------------------------
# Dry run
# ---------------------------------------------------------------------------


@router.post("/test-webhook")
async def test_webhook(
    body: TestWebhookRequest,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
    extractor: FieldExtractor = Depends(get_field_extractor),
):
    """Simulate webhook processing. No database changes are made."""
    pipeline = PaymentIntakePipeline(db, extractor)
    secret_configured = bool(await resolve_webhook_secret(db))
    result = await pipeline.dry_run(body.raw_email_subject, body.raw_email_content, secret_configured)
    return {"data": result}


# ---------------------------------------------------------------------------
# System activity
# ---------------------------------------------------------------------------


@router.get("/activity")
async def system_activity(
    category: Optional[AuditCategory] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    entries, total = await AuditLog(db).list_activity(category=category, limit=limit, offset=offset)
    return {
        "data": [serialize_audit_entry(e) for e in entries],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


# ---------------------------------------------------------------------------
# Webhook configuration
# ---------------------------------------------------------------------------


@router.get("/webhook-config")
async def webhook_config(
    request: Request,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    webhook_url = f"{str(request.base_url).rstrip('/')}{WEBHOOK_PATH}"
    secret = await resolve_webhook_secret(db)
    return {
        "data": {
            "webhook_url": webhook_url,
            "webhook_secret": mask_secret(secret),
            "secret_source": secret_source() if secret else None,
            "is_configured": bool(secret),
            "extractor_configured": extractor_configured(),
            "instructions": {
                "step1": "Enable Autodeposit at your bank for your e-Transfer recipient email",
                "step2": f"Set up an email forwarder to POST to: {webhook_url}",
                "step3": "Check the system activity log for the provider's verification request after setup",
            },
        }
    }


@router.post("/webhook-secret")
async def set_webhook_secret(
    body: Optional[WebhookSecretRequest] = Body(None),
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """Store a new webhook secret. The full value is returned only here."""
    admin_id = admin.id
    try:
        secret = await rotate_webhook_secret(db, body.webhook_secret if body else None)
    except ValueError as exc:
        raise _http_error(400, str(exc), "INVALID_SECRET")

    await AuditLog(db).record(
        AuditAction.WEBHOOK_SECRET_ROTATED,
        "Payment webhook secret rotated",
        metadata={"generated": not (body and body.webhook_secret)},
        category=AuditCategory.PAYMENT_ADMIN,
        actor_id=admin_id,
    )
    return {
        "data": {
            "success": True,
            "webhook_secret": secret,
            "secret_source": secret_source(),
        }
    }
