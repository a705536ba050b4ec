"""Reject replays of an already-settled Interac reference number."""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rental_platform.domain.enums import IntakeStatus
from rental_platform.domain.models import PaymentIntakeLog
from rental_platform.services.intake_errors import DuplicateError

logger = logging.getLogger(__name__)


async def find_settled_duplicate(
    db: AsyncSession,
    reference_number: Optional[str],
    exclude_id: Optional[str] = None,
) -> Optional[PaymentIntakeLog]:
    """Return the earliest PAID intake record carrying ``reference_number``."""
    if not reference_number:
        return None

    query = select(PaymentIntakeLog).where(
        PaymentIntakeLog.reference_number == reference_number,
        PaymentIntakeLog.status == IntakeStatus.PAID.value,
    )
    if exclude_id:
        query = query.where(PaymentIntakeLog.id != exclude_id)

    result = await db.execute(query.order_by(PaymentIntakeLog.reconciled_at.asc()).limit(1))
    return result.scalar_one_or_none()


def duplicate_note(reference_number: str, original: PaymentIntakeLog) -> str:
    when = original.reconciled_at.isoformat() if original.reconciled_at else "unknown date"
    return (
        f"Duplicate: Reference {reference_number} already processed on {when} "
        f"(intake record {original.id})"
    )


async def ensure_not_duplicate(
    db: AsyncSession,
    reference_number: Optional[str],
    exclude_id: Optional[str] = None,
) -> None:
    """Raise DuplicateError when the reference was already reconciled.

    A missing reference disables this check; the ledger's unique
    constraints still stop a second payment for the same invoice.
    """
    original = await find_settled_duplicate(db, reference_number, exclude_id)
    if original is None:
        return

    logger.warning(
        "Duplicate transaction detected: reference=%s original=%s new=%s",
        reference_number,
        original.id,
        exclude_id,
    )
    raise DuplicateError(
        duplicate_note(reference_number, original),
        original_log_id=original.id,
        context={
            "reference_number": reference_number,
            "original_log_id": original.id,
            "original_reconciled_at": original.reconciled_at.isoformat() if original.reconciled_at else None,
        },
    )
