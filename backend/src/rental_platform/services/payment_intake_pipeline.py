"""Payment intake pipeline: webhook processing, manual review actions and dry runs.

One ``PaymentIntakePipeline`` serves one request on one session. The intake
record is committed as RECEIVED before anything else happens, and each stage
commits the status it reaches, so a crash leaves the record at the last state
it actually got to. No transaction is open while the extractor runs.

Stage failures are raised as the typed errors from ``intake_errors`` and
mapped here onto an intake status, an audit entry and a webhook response:

- ExtractionError -> MANUAL_REVIEW (``verification_logged`` / ``manual_review``)
- DuplicateError -> FAILED (``duplicate_rejected``)
- NoMatchError -> MANUAL_REVIEW (``no_tenant_match`` / ``no_invoice_match``)
- LedgerConflictError -> FAILED (``duplicate_rejected``)
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from rental_platform.domain.enums import (
    AuditAction,
    AuditCategory,
    IntakeOutcome,
    IntakeStatus,
    InvoiceStatus,
    PAYABLE_INVOICE_STATUSES,
    PaymentMethod,
)
from rental_platform.domain.models import Invoice, PaymentIntakeLog, Unit, User
from rental_platform.services.audit_log import AuditLog
from rental_platform.services.duplicate_guard import ensure_not_duplicate, find_settled_duplicate
from rental_platform.services.email_service import format_cents
from rental_platform.services.field_extractor import (
    ExtractionResult,
    FieldExtractor,
    MIN_BODY_LENGTH,
    check_acceptance,
    check_body_length,
)
from rental_platform.services.intake_errors import (
    DuplicateError,
    ExtractionError,
    LedgerConflictError,
    NoMatchError,
    ReviewActionError,
)
from rental_platform.services.intake_normalizer import NormalizedIntake
from rental_platform.services.intake_state_machine import IntakeStateMachine, InvalidTransitionError
from rental_platform.services.invoice_reconciler import (
    MatchedInvoice,
    find_matching_invoice,
    find_pending_invoices,
)
from rental_platform.services.ledger_service import apply_ledger_update
from rental_platform.services.notification_service import PaymentNotifier, PaymentReceivedNotice
from rental_platform.services.tenant_matcher import (
    MatchedTenant,
    load_active_roster,
    rank_tenant_candidates,
    select_unambiguous,
)

logger = logging.getLogger(__name__)

PREVIEW_CHARS = 200
DRY_RUN_PENDING_LIMIT = 5


@dataclass
class IntakeResult:
    """Outcome of one webhook call, as reported back to the caller."""

    status: IntakeOutcome
    log_id: Optional[str] = None
    context: dict[str, Any] = field(default_factory=dict)

    def to_response(self) -> dict[str, Any]:
        body: dict[str, Any] = {"received": True, "status": self.status.value}
        if self.log_id:
            body["log_id"] = self.log_id
        body.update(self.context)
        return body


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _pending_summary(pending: list[MatchedInvoice]) -> str:
    if not pending:
        return "no pending invoices"
    listed = ", ".join(
        f"{inv.period_month} {format_cents(inv.amount_cents)} ({inv.status})" for inv in pending
    )
    return f"pending invoices: {listed}"


class PaymentIntakePipeline:
    """Drives intake records from receipt to a terminal or review state."""

    def __init__(
        self,
        db: AsyncSession,
        extractor: FieldExtractor,
        notifier: Optional[PaymentNotifier] = None,
        state_machine: Optional[IntakeStateMachine] = None,
    ):
        self.db = db
        self.extractor = extractor
        self.notifier = notifier
        self.state_machine = state_machine or IntakeStateMachine()
        self.audit = AuditLog(db)

    # ------------------------------------------------------------------
    # Webhook path
    # ------------------------------------------------------------------

    async def process(
        self,
        intake: NormalizedIntake,
        is_verified: bool,
        webhook_source: str,
    ) -> IntakeResult:
        """Run one normalized webhook call through the whole pipeline."""
        record = await self._persist_received(intake, is_verified, webhook_source)

        try:
            check_body_length(record.raw_body)
        except ExtractionError as exc:
            return await self._handle_verification(record, exc)

        logger.info("Extracting payment fields for intake %s", record.id)
        extraction = await self.extractor.extract(record.raw_subject or "", record.raw_body or "")

        try:
            await ensure_not_duplicate(self.db, extraction.reference_number, exclude_id=record.id)
            check_acceptance(extraction)
        except DuplicateError as exc:
            return await self._handle_duplicate(record, extraction, exc)
        except ExtractionError as exc:
            return await self._handle_parse_failed(record, extraction, exc)

        await self._transition(
            record,
            IntakeStatus.PARSED,
            f"Parsed: {format_cents(extraction.amount_cents)} from {extraction.sender_name}",
            **self._extracted_fields(extraction),
        )
        await self.audit.record(
            AuditAction.WEBHOOK_PARSED,
            f"Parsed payment of {format_cents(extraction.amount_cents)} from {extraction.sender_name}",
            metadata={
                "log_id": record.id,
                "sender_name": extraction.sender_name,
                "amount_cents": extraction.amount_cents,
                "reference_number": extraction.reference_number,
                "confidence": extraction.confidence,
            },
            entity_id=record.id,
        )

        try:
            tenant = await self._resolve_tenant(extraction)
        except NoMatchError as exc:
            return await self._handle_no_match(record, exc, AuditAction.WEBHOOK_NO_TENANT_MATCH)

        await self._transition(
            record,
            IntakeStatus.MATCHED,
            f"Matched sender {extraction.sender_name} to tenant {tenant.name}",
            matched_tenant_id=tenant.user_id,
        )
        await self.audit.record(
            AuditAction.WEBHOOK_MATCHED,
            f"Matched sender {extraction.sender_name} to tenant {tenant.name}",
            metadata={"log_id": record.id, "tenant_id": tenant.user_id, "tenant_name": tenant.name},
            entity_id=record.id,
        )

        try:
            invoice = await self._resolve_invoice(tenant, extraction.amount_cents)
        except NoMatchError as exc:
            return await self._handle_no_match(record, exc, AuditAction.WEBHOOK_NO_INVOICE_MATCH)

        return await self._reconcile(record, tenant, invoice, extraction)

    async def _persist_received(
        self,
        intake: NormalizedIntake,
        is_verified: bool,
        webhook_source: str,
    ) -> PaymentIntakeLog:
        record = PaymentIntakeLog(
            id=str(uuid.uuid4()),
            received_at=_now(),
            raw_subject=intake.subject,
            raw_body=intake.body,
            raw_from=intake.sender,
            raw_headers=intake.headers,
            webhook_source=webhook_source,
            is_verified=is_verified,
            status=IntakeStatus.RECEIVED.value,
        )
        self.db.add(record)
        await self.db.commit()

        await self.audit.record(
            AuditAction.WEBHOOK_RECEIVED,
            f"Payment webhook received from {webhook_source}",
            metadata={
                "log_id": record.id,
                "subject": (intake.subject or "")[:100],
                "from": intake.sender,
                "body_preview": (intake.body or "")[:PREVIEW_CHARS],
                "is_verified": is_verified,
            },
            entity_id=record.id,
        )
        return record

    @staticmethod
    def _extracted_fields(extraction: ExtractionResult) -> dict[str, Any]:
        return {
            "sender_name": extraction.sender_name,
            "amount_cents": extraction.amount_cents,
            "reference_number": extraction.reference_number,
            "parse_confidence": extraction.confidence,
            "parse_error": extraction.error,
        }

    async def _transition(self, record: PaymentIntakeLog, target: IntakeStatus, note: str, **fields):
        self.state_machine.transition(record, target, note, **fields)
        await self.db.commit()

    async def _resolve_tenant(self, extraction: ExtractionResult) -> MatchedTenant:
        roster = await load_active_roster(self.db)
        ranked = rank_tenant_candidates(extraction.sender_name, roster)
        tenant = select_unambiguous(ranked)
        if tenant is not None:
            return tenant

        amount = format_cents(extraction.amount_cents)
        tied = [c for c in ranked if c.score == ranked[0].score] if ranked else []
        if len(tied) > 1:
            reason = (
                f"Manual Review Required: Ambiguous payment of {amount} from "
                f"{extraction.sender_name} matches {len(tied)} tenants equally"
            )
        else:
            reason = f"Manual Review Required: Unmatched payment of {amount} from {extraction.sender_name}"
        raise NoMatchError(
            reason,
            IntakeOutcome.NO_TENANT_MATCH,
            context={
                "sender_name": extraction.sender_name,
                "amount_cents": extraction.amount_cents,
                "reference_number": extraction.reference_number,
                "candidate_count": len(tied),
            },
        )

    async def _resolve_invoice(self, tenant: MatchedTenant, amount_cents: int) -> MatchedInvoice:
        invoice = await find_matching_invoice(self.db, tenant.user_id, amount_cents)
        if invoice is not None:
            return invoice

        pending = await find_pending_invoices(self.db, tenant.user_id)
        raise NoMatchError(
            f"No matching invoice found for {tenant.name} - Amount: {format_cents(amount_cents)}; "
            f"{_pending_summary(pending)}",
            IntakeOutcome.NO_INVOICE_MATCH,
            context={
                "tenant_name": tenant.name,
                "tenant_email": tenant.email,
                "amount_cents": amount_cents,
                "pending_invoices": [inv.to_dict() for inv in pending],
            },
        )

    async def _reconcile(
        self,
        record: PaymentIntakeLog,
        tenant: MatchedTenant,
        invoice: MatchedInvoice,
        extraction: ExtractionResult,
    ) -> IntakeResult:
        amount_cents = extraction.amount_cents
        note = f"Auto-Payment: {format_cents(amount_cents)} from {tenant.name} reconciled."
        logger.info("Reconciling intake %s against invoice %s", record.id, invoice.invoice_id)

        try:
            await apply_ledger_update(
                self.db,
                record,
                tenant_user_id=tenant.user_id,
                invoice_id=invoice.invoice_id,
                amount_cents=amount_cents,
                note=note,
                method=PaymentMethod.ETRANSFER,
                state_machine=self.state_machine,
            )
        except LedgerConflictError as exc:
            return await self._handle_ledger_conflict(record, invoice, exc)

        await self.audit.record(
            AuditAction.AUTO_RECONCILED,
            note,
            metadata={
                "log_id": record.id,
                "tenant_name": tenant.name,
                "tenant_email": tenant.email,
                "amount_cents": amount_cents,
                "invoice_id": invoice.invoice_id,
                "period_month": invoice.period_month,
                "reference_number": record.reference_number,
                "building_name": invoice.building_name,
                "unit_label": invoice.unit_label,
            },
            entity_id=record.id,
        )

        await self._notify(tenant.name, tenant.email, invoice, amount_cents, PaymentMethod.ETRANSFER)

        logger.info(
            "Payment reconciled: intake=%s tenant=%s amount_cents=%d invoice=%s",
            record.id,
            tenant.user_id,
            amount_cents,
            invoice.invoice_id,
        )
        return IntakeResult(
            IntakeOutcome.RECONCILED,
            record.id,
            {
                "tenant_name": tenant.name,
                "amount_cents": amount_cents,
                "invoice_id": invoice.invoice_id,
                "reference_number": record.reference_number,
            },
        )

    async def _notify(
        self,
        tenant_name: str,
        tenant_email: str,
        invoice: MatchedInvoice,
        amount_cents: int,
        method: PaymentMethod,
    ) -> None:
        """Best-effort payment-received notification; never fails the caller."""
        if self.notifier is None:
            return
        notice = PaymentReceivedNotice(
            tenant_name=tenant_name,
            tenant_email=tenant_email,
            building_name=invoice.building_name or "",
            unit_label=invoice.unit_label or "",
            period_month=invoice.period_month,
            amount_cents=amount_cents,
            payment_method=method.value,
        )
        try:
            await self.notifier(self.db, notice)
        except Exception as exc:
            logger.error("Payment-received notification failed for invoice %s: %s", invoice.invoice_id, exc)

    # ------------------------------------------------------------------
    # Failure handlers
    # ------------------------------------------------------------------

    async def _handle_verification(self, record: PaymentIntakeLog, exc: ExtractionError) -> IntakeResult:
        await self._transition(record, IntakeStatus.MANUAL_REVIEW, exc.message)
        await self.audit.record(
            AuditAction.WEBHOOK_VERIFICATION,
            "Possible email provider verification request received",
            metadata={"log_id": record.id, **exc.context},
            entity_id=record.id,
        )
        return IntakeResult(exc.response_status, record.id)

    async def _handle_duplicate(
        self,
        record: PaymentIntakeLog,
        extraction: ExtractionResult,
        exc: DuplicateError,
    ) -> IntakeResult:
        await self._transition(
            record,
            IntakeStatus.FAILED,
            exc.message,
            parsed_at=_now(),
            **self._extracted_fields(extraction),
        )
        await self.audit.record(
            AuditAction.WEBHOOK_DUPLICATE,
            f"Duplicate transaction rejected: Reference {extraction.reference_number} was already processed",
            metadata={"log_id": record.id, **exc.context},
            success=False,
            entity_id=record.id,
        )
        return IntakeResult(
            IntakeOutcome.DUPLICATE_REJECTED,
            record.id,
            {
                "reason": "This transaction reference has already been processed",
                "reference_number": extraction.reference_number,
            },
        )

    async def _handle_parse_failed(
        self,
        record: PaymentIntakeLog,
        extraction: ExtractionResult,
        exc: ExtractionError,
    ) -> IntakeResult:
        await self._transition(
            record,
            IntakeStatus.MANUAL_REVIEW,
            exc.message,
            parsed_at=_now(),
            **self._extracted_fields(extraction),
        )
        await self.audit.record(
            AuditAction.WEBHOOK_PARSE_FAILED,
            f"Manual Review Required: {exc.message}",
            metadata={"log_id": record.id, **exc.context},
            success=False,
            entity_id=record.id,
        )
        return IntakeResult(
            exc.response_status,
            record.id,
            {
                "reason": exc.message,
                "sender_name": extraction.sender_name,
                "amount_cents": extraction.amount_cents,
            },
        )

    async def _handle_no_match(
        self,
        record: PaymentIntakeLog,
        exc: NoMatchError,
        action: AuditAction,
    ) -> IntakeResult:
        await self._transition(record, IntakeStatus.MANUAL_REVIEW, exc.message)
        await self.audit.record(
            action,
            exc.message,
            metadata={"log_id": record.id, **exc.context},
            success=False,
            entity_id=record.id,
        )
        context = {"reason": exc.message}
        for key in ("sender_name", "tenant_name", "amount_cents", "pending_invoices"):
            if key in exc.context:
                context[key] = exc.context[key]
        return IntakeResult(exc.response_status, record.id, context)

    async def _handle_ledger_conflict(
        self,
        record: PaymentIntakeLog,
        invoice: MatchedInvoice,
        exc: LedgerConflictError,
    ) -> IntakeResult:
        logger.warning("Ledger conflict for intake %s: %s", record.id, exc.message)
        note = f"Ledger conflict: {exc.message}"
        try:
            await self._transition(record, IntakeStatus.FAILED, note)
        except InvalidTransitionError as transition_error:
            # Another writer already moved the record to a terminal state
            logger.warning("Intake %s left at %s: %s", record.id, record.status, transition_error)

        await self.audit.record(
            AuditAction.WEBHOOK_LEDGER_CONFLICT,
            f"Reconciliation aborted: {exc.message}",
            metadata={
                "log_id": record.id,
                "invoice_id": invoice.invoice_id,
                "reference_number": record.reference_number,
            },
            success=False,
            entity_id=record.id,
        )
        return IntakeResult(
            IntakeOutcome.DUPLICATE_REJECTED,
            record.id,
            {
                "reason": exc.message,
                "invoice_id": invoice.invoice_id,
                "reference_number": record.reference_number,
            },
        )

    # ------------------------------------------------------------------
    # Admin review actions
    # ------------------------------------------------------------------

    async def _get_record(self, log_id: str) -> PaymentIntakeLog:
        record = await self.db.get(PaymentIntakeLog, log_id)
        if record is None:
            raise ReviewActionError("Intake log not found", "NOT_FOUND", status_code=404)
        return record

    async def manual_match(
        self,
        log_id: str,
        tenant_id: str,
        invoice_id: str,
        admin_id: str,
    ) -> dict[str, Any]:
        """Resolve a review record by hand, through the same ledger update.

        Raises:
            ReviewActionError: the record, tenant or invoice is missing, or
                the record/invoice is already settled.
            InvalidTransitionError: the record's status does not allow PAID.
            LedgerConflictError: a concurrent reconciliation won.
        """
        record = await self._get_record(log_id)
        if record.status == IntakeStatus.PAID.value:
            raise ReviewActionError("This payment has already been reconciled", "ALREADY_RECONCILED")

        tenant = await self.db.get(User, tenant_id)
        if tenant is None:
            raise ReviewActionError("Tenant not found", "TENANT_NOT_FOUND", status_code=404)

        invoice = await self.db.get(Invoice, invoice_id)
        if invoice is None:
            raise ReviewActionError("Invoice not found", "INVOICE_NOT_FOUND", status_code=404)
        if invoice.status == InvoiceStatus.PAID.value:
            raise ReviewActionError("Invoice is already paid", "INVOICE_ALREADY_PAID")
        if invoice.status not in {s.value for s in PAYABLE_INVOICE_STATUSES}:
            raise ReviewActionError(f"Invoice is {invoice.status} and cannot be paid", "INVOICE_NOT_PAYABLE")

        unit = await self.db.get(Unit, invoice.unit_id)
        matched = MatchedInvoice(
            invoice_id=invoice.id,
            unit_id=invoice.unit_id,
            period_month=invoice.period_month,
            amount_cents=invoice.amount_cents,
            status=invoice.status,
            building_name=unit.building_name if unit else None,
            unit_label=unit.unit_label if unit else None,
        )
        amount_cents = record.amount_cents or invoice.amount_cents
        tenant_name = tenant.name or "Tenant"
        tenant_email = tenant.email
        note = (
            f"Manual match by admin: {format_cents(amount_cents)} from {tenant_name} "
            f"to {matched.building_name} - {matched.unit_label}"
        )

        try:
            await apply_ledger_update(
                self.db,
                record,
                tenant_user_id=tenant_id,
                invoice_id=invoice_id,
                amount_cents=amount_cents,
                note=note,
                method=PaymentMethod.ETRANSFER,
                approved_by_admin_id=admin_id,
                state_machine=self.state_machine,
            )
        except LedgerConflictError as exc:
            await self.audit.record(
                AuditAction.WEBHOOK_LEDGER_CONFLICT,
                f"Manual match aborted: {exc.message}",
                metadata={"log_id": log_id, "invoice_id": invoice_id, "tenant_id": tenant_id},
                success=False,
                category=AuditCategory.PAYMENT_ADMIN,
                actor_id=admin_id,
                entity_id=log_id,
            )
            raise

        await self.audit.record(
            AuditAction.MANUAL_MATCHED,
            note,
            metadata={
                "log_id": log_id,
                "tenant_id": tenant_id,
                "tenant_name": tenant_name,
                "invoice_id": invoice_id,
                "amount_cents": amount_cents,
                "reference_number": record.reference_number,
            },
            category=AuditCategory.PAYMENT_ADMIN,
            actor_id=admin_id,
            entity_id=log_id,
        )

        await self._notify(tenant_name, tenant_email, matched, amount_cents, PaymentMethod.ETRANSFER)

        return {
            "success": True,
            "log_id": log_id,
            "invoice_id": invoice_id,
            "tenant_id": tenant_id,
            "amount_cents": amount_cents,
        }

    async def dismiss(self, log_id: str, admin_id: str, reason: Optional[str] = None) -> PaymentIntakeLog:
        """Discard a record without reconciling it.

        Raises:
            ReviewActionError: the record does not exist.
            InvalidTransitionError: the record is not RECEIVED or MANUAL_REVIEW.
        """
        record = await self._get_record(log_id)
        original_status = record.status

        note = f"Dismissed by admin on {_now().isoformat()}"
        if reason:
            note = f"{note}: {reason}"
        await self._transition(record, IntakeStatus.DISMISSED, note)

        await self.audit.record(
            AuditAction.INTAKE_DISMISSED,
            f"Payment intake {log_id} dismissed",
            metadata={"log_id": log_id, "original_status": original_status, "reason": reason},
            category=AuditCategory.PAYMENT_ADMIN,
            actor_id=admin_id,
            entity_id=log_id,
        )
        return record

    # ------------------------------------------------------------------
    # Dry run
    # ------------------------------------------------------------------

    async def dry_run(self, subject: str, body: str, secret_configured: bool) -> dict[str, Any]:
        """Simulate the webhook path step by step without writing anything."""
        steps: list[dict[str, str]] = []

        def add(step: str, status: str, message: str):
            steps.append({"step": step, "status": status, "message": message})

        if secret_configured:
            add("validate", "success", "Webhook secret is configured and would be validated")
        else:
            add("validate", "failure", "Webhook secret is not configured; calls would be accepted unverified")

        predicted = IntakeOutcome.RECONCILED
        try:
            check_body_length(body)
        except ExtractionError:
            add("parse", "skipped", f"Body shorter than {MIN_BODY_LENGTH} characters; would be logged as a verification request")
            add("match", "skipped", "Tenant matching skipped - no extraction attempted")
            add("reconcile", "skipped", "Invoice reconciliation skipped - no extraction attempted")
            return self._dry_run_result(steps, IntakeOutcome.VERIFICATION_LOGGED, None, None, None)

        extraction = await self.extractor.extract(subject or "", body)
        parsed_data = {
            "sender_name": extraction.sender_name,
            "amount": format_cents(extraction.amount_cents) if extraction.amount_cents else None,
            "amount_cents": extraction.amount_cents,
            "reference_number": extraction.reference_number,
            "confidence": extraction.confidence,
            "error": extraction.error,
        }

        duplicate = await find_settled_duplicate(self.db, extraction.reference_number)
        if duplicate is not None:
            add(
                "parse",
                "failure",
                f"Reference {extraction.reference_number} was already processed by intake {duplicate.id}",
            )
            predicted = IntakeOutcome.DUPLICATE_REJECTED
        else:
            try:
                check_acceptance(extraction)
            except ExtractionError as exc:
                add("parse", "failure", exc.message)
                predicted = IntakeOutcome.MANUAL_REVIEW
            else:
                add(
                    "parse",
                    "success",
                    f"Extracted: {extraction.sender_name}, {parsed_data['amount']}, "
                    f"{extraction.reference_number or 'no reference'}",
                )

        if predicted != IntakeOutcome.RECONCILED:
            add("match", "skipped", "Tenant matching skipped - extraction not accepted")
            add("reconcile", "skipped", "Invoice reconciliation skipped - extraction not accepted")
            return self._dry_run_result(steps, predicted, parsed_data, None, None)

        roster = await load_active_roster(self.db)
        ranked = rank_tenant_candidates(extraction.sender_name, roster)
        tenant = select_unambiguous(ranked)
        if tenant is None:
            if ranked:
                add("match", "failure", f"{len(ranked)} candidate tenants for \"{extraction.sender_name}\" with no single best match")
            else:
                add("match", "failure", f"No tenant found matching \"{extraction.sender_name}\"")
            add("reconcile", "skipped", "Invoice reconciliation skipped - no tenant matched")
            return self._dry_run_result(steps, IntakeOutcome.NO_TENANT_MATCH, parsed_data, None, None)

        matched_tenant = {
            "id": tenant.user_id,
            "name": tenant.name,
            "email": tenant.email,
            "unit": f"{tenant.building_name} - {tenant.unit_label}" if tenant.building_name else tenant.unit_label,
        }
        add("match", "success", f"Matched tenant: {tenant.name} ({matched_tenant['unit'] or 'no unit assigned'})")

        invoice = await find_matching_invoice(self.db, tenant.user_id, extraction.amount_cents)
        if invoice is None:
            pending = await find_pending_invoices(self.db, tenant.user_id, limit=DRY_RUN_PENDING_LIMIT)
            if pending:
                add(
                    "reconcile",
                    "failure",
                    f"No invoice found matching amount {parsed_data['amount']}. "
                    f"Pending invoices for {tenant.name}: {_pending_summary(pending)}",
                )
            else:
                add("reconcile", "failure", f"No pending invoices found for {tenant.name}")
            return self._dry_run_result(steps, IntakeOutcome.NO_INVOICE_MATCH, parsed_data, matched_tenant, None)

        matched_invoice = invoice.to_dict()
        add(
            "reconcile",
            "success",
            f"Would mark invoice {invoice.period_month} ({invoice.building_name} - {invoice.unit_label}) "
            "as PAID (DRY RUN - no changes made)",
        )
        return self._dry_run_result(steps, IntakeOutcome.RECONCILED, parsed_data, matched_tenant, matched_invoice)

    @staticmethod
    def _dry_run_result(steps, predicted, parsed_data, matched_tenant, matched_invoice) -> dict[str, Any]:
        return {
            "success": predicted == IntakeOutcome.RECONCILED,
            "predicted_status": predicted.value,
            "steps": steps,
            "parsed_data": parsed_data,
            "matched_tenant": matched_tenant,
            "matched_invoice": matched_invoice,
        }
