"""Payment intake state machine: validates transitions and stamps derived fields.

Every status change of a PaymentIntakeLog goes through
``IntakeStateMachine.transition`` so an illegal move (PAID -> MANUAL_REVIEW,
anything out of a terminal state) raises instead of being written.
"""

from datetime import datetime, timezone
from typing import Any

from rental_platform.domain.enums import IntakeStatus


class InvalidTransitionError(Exception):
    """Raised when an intake status transition is not allowed."""

    def __init__(
        self,
        current_status: IntakeStatus,
        target_status: IntakeStatus,
        reason: str,
    ):
        self.current_status = current_status
        self.target_status = target_status
        self.reason = reason
        super().__init__(
            f"Invalid transition from {current_status.value} to {target_status.value}: {reason}"
        )


# ---------------------------------------------------------------------------
# Transition map: from_status -> allowed target statuses
# ---------------------------------------------------------------------------

S = IntakeStatus

TRANSITION_MAP: dict[IntakeStatus, frozenset[IntakeStatus]] = {
    S.RECEIVED: frozenset({S.PARSED, S.MANUAL_REVIEW, S.FAILED, S.DISMISSED}),
    S.PARSED: frozenset({S.MATCHED, S.MANUAL_REVIEW, S.FAILED}),
    S.MATCHED: frozenset({S.PAID, S.MANUAL_REVIEW, S.FAILED}),
    # Human resolution: manual match or discard
    S.MANUAL_REVIEW: frozenset({S.PAID, S.DISMISSED}),
}

TERMINAL_STATES: frozenset[IntakeStatus] = frozenset({S.PAID, S.FAILED, S.DISMISSED})

# Statuses an admin may dismiss from
DISMISSABLE_STATES: frozenset[IntakeStatus] = frozenset(
    s for s, targets in TRANSITION_MAP.items() if S.DISMISSED in targets
)

# Fields that must be populated before a record may become PAID
PAID_REQUIRED_FIELDS = ("matched_tenant_id", "matched_invoice_id", "amount_cents")


class IntakeStateMachine:
    """Validates intake transitions and applies them to a record."""

    def validate_transition(self, current_status: IntakeStatus, target_status: IntakeStatus) -> bool:
        """Return True if the transition is valid. Raise InvalidTransitionError if not."""
        if current_status in TERMINAL_STATES:
            raise InvalidTransitionError(
                current_status,
                target_status,
                f"{current_status.value} is terminal",
            )

        allowed_targets = TRANSITION_MAP.get(current_status, frozenset())
        if target_status not in allowed_targets:
            raise InvalidTransitionError(
                current_status,
                target_status,
                f"Transition from {current_status.value} to {target_status.value} is not allowed",
            )
        return True

    def get_allowed_transitions(self, current_status: IntakeStatus) -> list[IntakeStatus]:
        """Return valid next states from the current status, in declaration order."""
        allowed = TRANSITION_MAP.get(current_status, frozenset())
        return [s for s in IntakeStatus if s in allowed]

    def transition(self, record, target_status: IntakeStatus, note: str, **fields: Any):
        """Move ``record`` to ``target_status``.

        ``fields`` are assigned onto the record before the PAID invariant is
        checked, so the ledger can set the matched invoice in the same call.
        The record is mutated in place and returned; persisting it is the
        caller's job.
        """
        current_status = IntakeStatus(record.status)
        self.validate_transition(current_status, target_status)

        if not note or not note.strip():
            raise InvalidTransitionError(
                current_status,
                target_status,
                "A reconciliation note is required",
            )

        for name, value in fields.items():
            if not hasattr(record, name):
                raise AttributeError(f"Intake record has no field {name!r}")
            setattr(record, name, value)

        now = datetime.now(timezone.utc)
        if target_status == S.PAID:
            missing = [f for f in PAID_REQUIRED_FIELDS if getattr(record, f, None) is None]
            if missing:
                raise InvalidTransitionError(
                    current_status,
                    target_status,
                    f"Cannot mark PAID without {', '.join(missing)}",
                )
            record.reconciled_at = now
        elif target_status == S.PARSED:
            record.parsed_at = record.parsed_at or now

        record.status = target_status.value
        record.reconciliation_note = note
        return record
