"""Find the outstanding invoice a tenant's payment settles.

Only exact-amount matches are reconciled automatically. Partial payments and
overpayments are left for manual review, with the tenant's pending invoices
attached so an admin can decide.
"""

from dataclasses import asdict, dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rental_platform.domain.enums import PAYABLE_INVOICE_STATUSES
from rental_platform.domain.models import Invoice, Tenancy, Unit


@dataclass(frozen=True)
class MatchedInvoice:
    invoice_id: str
    unit_id: str
    period_month: str
    amount_cents: int
    status: str
    building_name: Optional[str] = None
    unit_label: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


def _payable_invoices_query(tenant_user_id: str):
    active_tenancies = select(Tenancy.id).where(
        Tenancy.user_id == tenant_user_id,
        Tenancy.is_active.is_(True),
    )
    return (
        select(Invoice, Unit)
        .join(Unit, Unit.id == Invoice.unit_id)
        .where(
            Invoice.tenancy_id.in_(active_tenancies),
            Invoice.status.in_([s.value for s in PAYABLE_INVOICE_STATUSES]),
        )
        .order_by(Invoice.due_date.asc(), Invoice.period_month.asc(), Invoice.id.asc())
    )


def _to_matched(invoice: Invoice, unit: Unit) -> MatchedInvoice:
    return MatchedInvoice(
        invoice_id=invoice.id,
        unit_id=invoice.unit_id,
        period_month=invoice.period_month,
        amount_cents=invoice.amount_cents,
        status=invoice.status,
        building_name=unit.building_name,
        unit_label=unit.unit_label,
    )


async def find_matching_invoice(
    db: AsyncSession,
    tenant_user_id: str,
    amount_cents: int,
) -> Optional[MatchedInvoice]:
    """Oldest OPEN/OVERDUE invoice of the tenant whose amount equals the payment."""
    result = await db.execute(
        _payable_invoices_query(tenant_user_id)
        .where(Invoice.amount_cents == amount_cents)
        .limit(1)
    )
    row = result.first()
    if row is None:
        return None
    invoice, unit = row
    return _to_matched(invoice, unit)


async def find_pending_invoices(
    db: AsyncSession,
    tenant_user_id: str,
    limit: Optional[int] = None,
) -> list[MatchedInvoice]:
    """All OPEN/OVERDUE invoices of the tenant, oldest due date first."""
    query = _payable_invoices_query(tenant_user_id)
    if limit is not None:
        query = query.limit(limit)
    result = await db.execute(query)
    return [_to_matched(invoice, unit) for invoice, unit in result.all()]
