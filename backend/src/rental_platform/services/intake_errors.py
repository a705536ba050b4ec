"""Error taxonomy for the payment intake pipeline.

Each stage raises one of these; the pipeline maps it onto an intake status and
a webhook response. None of them are retried.
"""

from typing import Any, Optional

from rental_platform.domain.enums import IntakeOutcome


class PaymentIntakeError(Exception):
    """Base class for all payment intake errors."""

    def __init__(self, message: str, context: Optional[dict[str, Any]] = None):
        self.message = message
        self.context = context or {}
        super().__init__(message)


class TransportError(PaymentIntakeError):
    """Payload could not be decoded. Swallowed by the normalizer."""


class AuthError(PaymentIntakeError):
    """Webhook secret missing or wrong. Rejected before anything is persisted."""


class ExtractionError(PaymentIntakeError):
    """Extractor unavailable, or its output failed the acceptance rule.

    ``verification`` marks the short-body case, where extraction was never
    attempted because the call looks like a provider ownership ping.
    """

    def __init__(
        self,
        message: str,
        context: Optional[dict[str, Any]] = None,
        verification: bool = False,
    ):
        super().__init__(message, context)
        self.verification = verification

    @property
    def response_status(self) -> IntakeOutcome:
        if self.verification:
            return IntakeOutcome.VERIFICATION_LOGGED
        return IntakeOutcome.MANUAL_REVIEW


class DuplicateError(PaymentIntakeError):
    """Reference number already settled by an earlier intake record."""

    def __init__(self, message: str, original_log_id: str, context: Optional[dict[str, Any]] = None):
        super().__init__(message, context)
        self.original_log_id = original_log_id


class NoMatchError(PaymentIntakeError):
    """Tenant or invoice could not be resolved unambiguously."""

    def __init__(
        self,
        message: str,
        response_status: IntakeOutcome,
        context: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, context)
        self.response_status = response_status


class LedgerConflictError(PaymentIntakeError):
    """Invoice or intake record was settled by a concurrent reconciliation."""


class ReviewActionError(PaymentIntakeError):
    """An admin review action (manual match, dismiss) was refused.

    ``code`` is the machine-readable reason returned to the client.
    """

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int = 400,
        context: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, context)
        self.code = code
        self.status_code = status_code
