"""Pydantic v2 schemas for API request/response validation."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# AI extraction
# ---------------------------------------------------------------------------


class PaymentExtractionResponse(BaseModel):
    """LLM structured output for one e-Transfer notification."""

    sender_name: str | None = Field(default=None, description="Person who sent the money")
    amount_cents: float | None = Field(default=None, description="Amount transferred, in cents")
    reference_number: str | None = Field(default=None, description="Interac reference number")
    # Not range-validated: out-of-range values are clamped by the extractor
    confidence: float | None = Field(default=None, description="Certainty about all fields combined, 0-1")


# ---------------------------------------------------------------------------
# Admin: payment intake
# ---------------------------------------------------------------------------


class ManualMatchRequest(BaseModel):
    """Admin resolution of a MANUAL_REVIEW intake record."""

    tenant_id: str = Field(min_length=1)
    invoice_id: str = Field(min_length=1)


class DismissRequest(BaseModel):
    """Optional reason recorded when an admin discards an intake record."""

    reason: str | None = Field(default=None, max_length=500)


class TestWebhookRequest(BaseModel):
    """Dry-run simulation input: a pasted notification email."""

    raw_email_content: str = Field(min_length=1)
    raw_email_subject: str = ""


class PaymentIntakeLogResponse(BaseModel):
    """Intake record as shown in the admin review queue."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    received_at: datetime
    status: str
    raw_subject: str | None = None
    raw_body: str | None = None
    raw_from: str | None = None
    webhook_source: str | None = None
    is_verified: bool
    sender_name: str | None = None
    amount_cents: int | None = None
    reference_number: str | None = None
    parse_confidence: float | None = None
    parse_error: str | None = None
    matched_tenant_id: str | None = None
    matched_invoice_id: str | None = None
    reconciliation_note: str | None = None
    parsed_at: datetime | None = None
    reconciled_at: datetime | None = None


class WebhookSecretRequest(BaseModel):
    """Store a chosen webhook secret; omit it to have one generated."""

    webhook_secret: str | None = Field(default=None, min_length=10, max_length=255)
