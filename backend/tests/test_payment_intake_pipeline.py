"""Pipeline-level tests for paths the webhook tests cannot reach directly."""

from unittest.mock import AsyncMock, patch

from sqlalchemy import select, text

from rental_platform.domain.enums import AuditAction, IntakeOutcome, IntakeStatus
from rental_platform.domain.models import PaymentIntakeLog, SystemAuditLog
from rental_platform.services.field_extractor import ExtractionResult, RegexFieldExtractor
from rental_platform.services.intake_errors import LedgerConflictError
from rental_platform.services.intake_normalizer import NormalizedIntake
from rental_platform.services.payment_intake_pipeline import IntakeResult, PaymentIntakePipeline

BODY = "John Smith sent you $950.00 (CAD) by Interac e-Transfer. Reference: INT123456"


def _intake(body: str = BODY) -> NormalizedIntake:
    return NormalizedIntake(subject="INTERAC e-Transfer", body=body, sender="notify@payments.interac.ca")


async def _actions(db_session) -> list[str]:
    return list((await db_session.execute(select(SystemAuditLog.action))).scalars().all())


class TestIntakeResult:
    def test_response_shape(self):
        result = IntakeResult(IntakeOutcome.MANUAL_REVIEW, "log-1", {"reason": "Could not extract amount"})
        assert result.to_response() == {
            "received": True,
            "status": "manual_review",
            "log_id": "log-1",
            "reason": "Could not extract amount",
        }


class TestLedgerConflict:
    async def test_conflict_fails_record_as_duplicate(self, db_session, make_tenant, make_invoice):
        tenant = await make_tenant(name="John Smith")
        invoice = await make_invoice(tenant)
        pipeline = PaymentIntakePipeline(db_session, RegexFieldExtractor())

        conflict = LedgerConflictError(f"Invoice {invoice.id} was settled by a concurrent reconciliation")
        with patch(
            "rental_platform.services.payment_intake_pipeline.apply_ledger_update",
            new_callable=AsyncMock,
            side_effect=conflict,
        ):
            result = await pipeline.process(_intake(), is_verified=True, webhook_source="127.0.0.1")

        assert result.status == IntakeOutcome.DUPLICATE_REJECTED
        assert result.context["invoice_id"] == invoice.id
        record = await db_session.get(PaymentIntakeLog, result.log_id)
        assert record.status == IntakeStatus.FAILED.value
        assert record.reconciliation_note.startswith("Ledger conflict:")
        assert AuditAction.WEBHOOK_LEDGER_CONFLICT.value in await _actions(db_session)


class TestNotification:
    async def test_notifier_failure_does_not_undo_reconciliation(self, db_session, make_tenant, make_invoice):
        tenant = await make_tenant(name="John Smith")
        await make_invoice(tenant)
        notifier = AsyncMock(side_effect=RuntimeError("smtp down"))
        pipeline = PaymentIntakePipeline(db_session, RegexFieldExtractor(), notifier)

        result = await pipeline.process(_intake(), is_verified=False, webhook_source="127.0.0.1")

        assert result.status == IntakeOutcome.RECONCILED
        notifier.assert_awaited_once()
        record = await db_session.get(PaymentIntakeLog, result.log_id)
        assert record.status == IntakeStatus.PAID.value


class TestDuplicateGuard:
    async def test_unsettled_reference_is_not_a_duplicate(self, db_session, make_tenant, make_invoice, make_intake_log):
        tenant = await make_tenant(name="John Smith")
        await make_invoice(tenant)
        # An earlier copy that only reached review does not block the reference
        await make_intake_log(status=IntakeStatus.MANUAL_REVIEW, reference_number="INT123456")
        pipeline = PaymentIntakePipeline(db_session, RegexFieldExtractor())

        result = await pipeline.process(_intake(), is_verified=False, webhook_source="127.0.0.1")

        assert result.status == IntakeOutcome.RECONCILED

    async def test_missing_reference_skips_duplicate_check(self, db_session, make_tenant, make_invoice, make_intake_log):
        tenant = await make_tenant(name="John Smith")
        await make_invoice(tenant)
        await make_intake_log(status=IntakeStatus.PAID, reference_number=None)
        extractor = AsyncMock()
        extractor.extract.return_value = ExtractionResult(
            sender_name="John Smith", amount_cents=95000, reference_number=None, confidence=0.9,
        )
        pipeline = PaymentIntakePipeline(db_session, extractor)

        result = await pipeline.process(_intake(), is_verified=False, webhook_source="127.0.0.1")

        assert result.status == IntakeOutcome.RECONCILED
        assert result.context["reference_number"] is None


class TestAuditTrail:
    async def test_reconciliation_audit_sequence(self, db_session, make_tenant, make_invoice):
        tenant = await make_tenant(name="John Smith")
        tenant_id = tenant.id
        await make_invoice(tenant)
        pipeline = PaymentIntakePipeline(db_session, RegexFieldExtractor())

        result = await pipeline.process(_intake(), is_verified=False, webhook_source="127.0.0.1")

        entries = (
            await db_session.execute(select(SystemAuditLog).order_by(SystemAuditLog.created_at))
        ).scalars().all()
        assert [e.action for e in entries] == [
            AuditAction.WEBHOOK_RECEIVED.value,
            AuditAction.WEBHOOK_PARSED.value,
            AuditAction.WEBHOOK_MATCHED.value,
            AuditAction.AUTO_RECONCILED.value,
        ]
        assert {e.entity_id for e in entries} == {result.log_id}
        received, parsed, matched, _ = entries
        assert received.data["from"] == "no***@payments.interac.ca"
        confidence = parsed.data.pop("confidence")
        assert 0.5 <= confidence <= 1.0
        assert parsed.data == {
            "log_id": result.log_id,
            "sender_name": "John Smith",
            "amount_cents": 95000,
            "reference_number": "INT123456",
        }
        assert matched.data["tenant_id"] == tenant_id

    async def test_unmatched_sender_stops_after_parsed_entry(self, db_session):
        pipeline = PaymentIntakePipeline(db_session, RegexFieldExtractor())

        await pipeline.process(_intake(), is_verified=False, webhook_source="127.0.0.1")

        actions = (
            await db_session.execute(select(SystemAuditLog.action).order_by(SystemAuditLog.created_at))
        ).scalars().all()
        assert actions == [
            AuditAction.WEBHOOK_RECEIVED.value,
            AuditAction.WEBHOOK_PARSED.value,
            AuditAction.WEBHOOK_NO_TENANT_MATCH.value,
        ]


class TestAuditFailure:
    async def test_lost_audit_table_does_not_change_outcome(self, db_session, make_tenant, make_invoice):
        tenant = await make_tenant(name="John Smith")
        await make_invoice(tenant)
        await db_session.commit()
        await db_session.execute(text("DROP TABLE system_audit_logs"))
        await db_session.commit()
        pipeline = PaymentIntakePipeline(db_session, RegexFieldExtractor())

        result = await pipeline.process(_intake(), is_verified=False, webhook_source="127.0.0.1")

        assert result.status == IntakeOutcome.RECONCILED
        record = await db_session.get(PaymentIntakeLog, result.log_id)
        assert record.status == IntakeStatus.PAID.value
        assert record.reconciliation_note == "Auto-Payment: $950.00 from John Smith reconciled."
