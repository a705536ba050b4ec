"""Atomic ledger update: invoice PAID + Payment row + intake record PAID.

The three writes share one transaction and nothing else is written in it.
Concurrent reconciliations of the same invoice are settled by the database:
the invoice update is a compare-and-set on its status, ``payments.invoice_id``
and ``payments.reference_number`` are unique, and the intake record carries an
optimistic version counter. The loser rolls back and gets LedgerConflictError.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from rental_platform.domain.enums import (
    IntakeStatus,
    InvoiceStatus,
    PAYABLE_INVOICE_STATUSES,
    PaymentMethod,
)
from rental_platform.domain.models import Invoice, Payment, PaymentIntakeLog
from rental_platform.services.intake_errors import LedgerConflictError
from rental_platform.services.intake_state_machine import IntakeStateMachine

logger = logging.getLogger(__name__)


def receipt_text(reference_number: Optional[str]) -> Optional[str]:
    return f"Interac Ref: {reference_number}" if reference_number else None


async def apply_ledger_update(
    db: AsyncSession,
    record: PaymentIntakeLog,
    *,
    tenant_user_id: str,
    invoice_id: str,
    amount_cents: int,
    note: str,
    method: PaymentMethod = PaymentMethod.ETRANSFER,
    approved_by_admin_id: Optional[str] = None,
    state_machine: Optional[IntakeStateMachine] = None,
) -> Payment:
    """Settle ``invoice_id`` with ``record``'s payment in a single transaction.

    Any transaction already open on ``db`` is committed first, so the
    conditional invoice update is the first statement of the ledger
    transaction.

    Raises:
        InvalidTransitionError: ``record`` cannot move to PAID from its status.
        LedgerConflictError: the invoice is no longer payable, a Payment for
            it (or for the reference) exists, or the record changed underneath.
    """
    state_machine = state_machine or IntakeStateMachine()
    state_machine.validate_transition(IntakeStatus(record.status), IntakeStatus.PAID)

    if db.in_transaction():
        await db.commit()

    now = datetime.now(timezone.utc)
    try:
        result = await db.execute(
            update(Invoice)
            .where(
                Invoice.id == invoice_id,
                Invoice.status.in_([s.value for s in PAYABLE_INVOICE_STATUSES]),
            )
            .values(
                status=InvoiceStatus.PAID.value,
                payment_method=method.value,
                etransfer_status=InvoiceStatus.PAID.value,
                etransfer_marked_at=now,
                etransfer_marked_by_id=approved_by_admin_id,
                updated_at=now,
            )
        )
        if result.rowcount != 1:
            raise LedgerConflictError(
                f"Invoice {invoice_id} is no longer open or overdue",
                context={"invoice_id": invoice_id},
            )

        unit_id = (
            await db.execute(select(Invoice.unit_id).where(Invoice.id == invoice_id))
        ).scalar_one()

        payment = Payment(
            id=str(uuid.uuid4()),
            invoice_id=invoice_id,
            unit_id=unit_id,
            user_id=tenant_user_id,
            amount_cents=amount_cents,
            paid_at=now,
            method=method.value,
            receipt_url=receipt_text(record.reference_number),
            reference_number=record.reference_number,
            approved_by_admin_id=approved_by_admin_id,
        )
        db.add(payment)

        state_machine.transition(
            record,
            IntakeStatus.PAID,
            note,
            matched_tenant_id=tenant_user_id,
            matched_invoice_id=invoice_id,
            amount_cents=amount_cents,
        )
        await db.commit()

    except LedgerConflictError:
        await _rollback(db, record)
        raise
    except (IntegrityError, StaleDataError) as exc:
        await _rollback(db, record)
        logger.warning("Ledger conflict reconciling invoice %s: %s", invoice_id, exc)
        raise LedgerConflictError(
            f"Invoice {invoice_id} was settled by a concurrent reconciliation",
            context={"invoice_id": invoice_id, "intake_log_id": record.id},
        ) from exc
    except Exception:
        await _rollback(db, record)
        raise

    logger.info(
        "Ledger updated: invoice=%s payment=%s amount_cents=%d intake=%s",
        invoice_id,
        payment.id,
        amount_cents,
        record.id,
    )
    return payment


async def _rollback(db: AsyncSession, record: PaymentIntakeLog) -> None:
    await db.rollback()
    # Discard the in-memory PAID transition and reload what was committed
    await db.refresh(record)
