"""SQLAlchemy ORM models for the rental platform.

All models use SQLite-compatible types:
- String(36) for UUID primary keys
- JSON for structured data (no JSONB)
- DateTime for timestamps (no TIMESTAMPTZ)

Only the tables the payment intake pipeline reads or writes live here. Users,
units, tenancies and invoices are owned by the property-management side of the
platform; this module mirrors the columns the pipeline depends on.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from rental_platform.domain.enums import IntakeStatus, InvoiceStatus, PaymentMethod
from rental_platform.infra.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Property / tenancy (read dependency)
# ---------------------------------------------------------------------------


class User(Base):
    """Platform user: tenants and administrators."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    role = Column(String(20), nullable=False, default="TENANT")  # UserRole
    status = Column(String(20), nullable=False, default="ACTIVE")  # UserStatus
    created_at = Column(DateTime, default=func.now())

    tenancies = relationship("Tenancy", back_populates="user")


class Unit(Base):
    """Rentable unit within a building."""

    __tablename__ = "units"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    building_name = Column(String(255), nullable=False)
    unit_label = Column(String(50), nullable=False)
    rent_amount_cents = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=func.now())

    tenancies = relationship("Tenancy", back_populates="unit")


class Tenancy(Base):
    """A tenant's occupancy of a unit."""

    __tablename__ = "tenancies"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    unit_id = Column(String(36), ForeignKey("units.id"), nullable=False)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=func.now())

    user = relationship("User", back_populates="tenancies")
    unit = relationship("Unit", back_populates="tenancies")


# ---------------------------------------------------------------------------
# Billing (read/write boundary)
# ---------------------------------------------------------------------------


class Invoice(Base):
    """Monthly rent invoice for a tenancy."""

    __tablename__ = "invoices"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    unit_id = Column(String(36), ForeignKey("units.id"), nullable=False)
    tenancy_id = Column(String(36), ForeignKey("tenancies.id"), nullable=False, index=True)
    period_month = Column(String(7), nullable=False)  # YYYY-MM
    due_date = Column(Date, nullable=False)
    amount_cents = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default=InvoiceStatus.OPEN.value)  # InvoiceStatus

    payment_method = Column(String(30), nullable=True)
    etransfer_status = Column(String(20), nullable=True)
    etransfer_marked_at = Column(DateTime, nullable=True)
    etransfer_marked_by_id = Column(String(36), nullable=True)

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    unit = relationship("Unit")
    tenancy = relationship("Tenancy")


class Payment(Base):
    """Ledger entry settling one invoice.

    ``invoice_id`` is unique: a second payment for an invoice is rejected by
    the database even if two reconciliations race past the status check.
    """

    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    invoice_id = Column(String(36), ForeignKey("invoices.id"), nullable=False, unique=True)
    unit_id = Column(String(36), ForeignKey("units.id"), nullable=False)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    amount_cents = Column(Integer, nullable=False)
    paid_at = Column(DateTime, nullable=False, default=_utcnow)
    method = Column(String(30), nullable=False, default=PaymentMethod.STRIPE.value)
    receipt_url = Column(String(500), nullable=True)
    reference_number = Column(String(100), nullable=True, unique=True)
    approved_by_admin_id = Column(String(36), nullable=True)

    invoice = relationship("Invoice")


# ---------------------------------------------------------------------------
# Payment intake
# ---------------------------------------------------------------------------


class PaymentIntakeLog(Base):
    """One inbound e-transfer webhook call and its reconciliation outcome.

    Status changes go through IntakeStateMachine; ``version`` guards against
    two writers reconciling the same record concurrently.
    """

    __tablename__ = "payment_intake_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    received_at = Column(DateTime, nullable=False, default=_utcnow)

    # Raw webhook data
    raw_subject = Column(Text, nullable=True)
    raw_body = Column(Text, nullable=True)
    raw_from = Column(String(500), nullable=True)
    raw_headers = Column(JSON, default=dict)
    webhook_source = Column(String(255), nullable=True)
    is_verified = Column(Boolean, nullable=False, default=False)

    # Extracted fields
    sender_name = Column(String(255), nullable=True)
    amount_cents = Column(Integer, nullable=True)
    reference_number = Column(String(100), nullable=True, index=True)
    parse_confidence = Column(Float, nullable=True)
    parse_error = Column(Text, nullable=True)

    # Resolution
    matched_tenant_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    matched_invoice_id = Column(String(36), ForeignKey("invoices.id"), nullable=True)

    status = Column(String(20), nullable=False, default=IntakeStatus.RECEIVED.value, index=True)
    reconciliation_note = Column(Text, nullable=True)
    parsed_at = Column(DateTime, nullable=True)
    reconciled_at = Column(DateTime, nullable=True)

    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


class SystemAuditLog(Base):
    """Append-only activity entry consumed by operator tooling."""

    __tablename__ = "system_audit_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    actor_id = Column(String(36), nullable=False, default="SYSTEM")
    action = Column(String(100), nullable=False, index=True)  # AuditAction
    category = Column(String(50), nullable=False, index=True)  # AuditCategory
    description = Column(Text, nullable=False)
    entity_id = Column(String(36), nullable=True)
    data = Column(JSON, nullable=True)
    success = Column(Boolean, nullable=False, default=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=_utcnow)


class NotificationRecipient(Base):
    """Communication Center recipient subscribed to platform events."""

    __tablename__ = "notification_recipients"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), nullable=False)
    name = Column(String(255), nullable=True)
    event_types = Column(String(500), nullable=False, default="")  # comma-separated NotificationEventType
    building_name = Column(String(255), nullable=True)  # null = all buildings
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=func.now())


class WebhookSettings(Base):
    """Singleton row holding the stored payment webhook secret."""

    __tablename__ = "webhook_settings"

    id = Column(String(20), primary_key=True, default="default")
    webhook_secret = Column(String(255), nullable=True)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())
