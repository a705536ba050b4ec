"""Domain enumerations for the rental platform.

All enums use the (str, Enum) pattern to ensure JSON serialization compatibility.
"""

from enum import Enum


class UserRole(str, Enum):
    """Platform role of a user account."""

    ADMIN = "ADMIN"
    TENANT = "TENANT"


class UserStatus(str, Enum):
    """Lifecycle status of a user account."""

    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class InvoiceStatus(str, Enum):
    """Status of a rent invoice."""

    OPEN = "OPEN"
    OVERDUE = "OVERDUE"
    PAID = "PAID"
    VOID = "VOID"


# Invoices a payment may settle
PAYABLE_INVOICE_STATUSES: tuple[InvoiceStatus, ...] = (InvoiceStatus.OPEN, InvoiceStatus.OVERDUE)


class PaymentMethod(str, Enum):
    """How a payment reached the ledger."""

    ETRANSFER = "etransfer"
    STRIPE = "stripe"


class ReconciliationType(str, Enum):
    """How a ledger payment was reconciled, as shown in payment history."""

    AUTO = "AUTO"
    MANUAL = "MANUAL"
    FLAGGED = "FLAGGED"


class IntakeStatus(str, Enum):
    """Lifecycle of one payment intake record."""

    RECEIVED = "RECEIVED"
    PARSED = "PARSED"
    MATCHED = "MATCHED"
    PAID = "PAID"
    MANUAL_REVIEW = "MANUAL_REVIEW"
    FAILED = "FAILED"
    DISMISSED = "DISMISSED"


class IntakeOutcome(str, Enum):
    """Status reported back to the webhook caller."""

    VERIFICATION_LOGGED = "verification_logged"
    MANUAL_REVIEW = "manual_review"
    NO_TENANT_MATCH = "no_tenant_match"
    NO_INVOICE_MATCH = "no_invoice_match"
    DUPLICATE_REJECTED = "duplicate_rejected"
    RECONCILED = "reconciled"


class AuditCategory(str, Enum):
    """Grouping for system audit log entries."""

    PAYMENT_WEBHOOK = "PAYMENT_WEBHOOK"
    PAYMENT_ADMIN = "PAYMENT_ADMIN"
    NOTIFICATION = "NOTIFICATION"


class AuditAction(str, Enum):
    """Actions recorded in the system audit log."""

    WEBHOOK_RECEIVED = "PAYMENT_WEBHOOK_RECEIVED"
    WEBHOOK_UNAUTHORIZED = "PAYMENT_WEBHOOK_UNAUTHORIZED"
    WEBHOOK_VERIFICATION = "PAYMENT_WEBHOOK_VERIFICATION"
    WEBHOOK_PARSED = "PAYMENT_WEBHOOK_PARSED"
    WEBHOOK_MATCHED = "PAYMENT_WEBHOOK_MATCHED"
    WEBHOOK_PARSE_FAILED = "PAYMENT_WEBHOOK_PARSE_FAILED"
    WEBHOOK_DUPLICATE = "PAYMENT_WEBHOOK_DUPLICATE"
    WEBHOOK_NO_TENANT_MATCH = "PAYMENT_WEBHOOK_NO_TENANT_MATCH"
    WEBHOOK_NO_INVOICE_MATCH = "PAYMENT_WEBHOOK_NO_INVOICE_MATCH"
    WEBHOOK_LEDGER_CONFLICT = "PAYMENT_WEBHOOK_LEDGER_CONFLICT"
    WEBHOOK_ERROR = "PAYMENT_WEBHOOK_ERROR"
    AUTO_RECONCILED = "PAYMENT_AUTO_RECONCILED"
    MANUAL_MATCHED = "PAYMENT_MANUAL_MATCHED"
    INTAKE_DISMISSED = "PAYMENT_INTAKE_DISMISSED"
    WEBHOOK_SECRET_ROTATED = "PAYMENT_WEBHOOK_SECRET_ROTATED"
    NOTIFICATION_SENT = "NOTIFICATION_SENT"
    NOTIFICATION_FAILED = "NOTIFICATION_FAILED"


class NotificationEventType(str, Enum):
    """Events the Communication Center can fan out."""

    PAYMENT_RECEIVED = "PAYMENT_RECEIVED"
