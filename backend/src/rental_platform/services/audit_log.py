"""Append-only system activity log for payment intake and notifications.

Entries are written for operators; the pipeline never reads them back. Writes
are best-effort: a failing audit insert is logged and swallowed so it can
never change a reconciliation outcome.
"""

import logging
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from rental_platform.domain.enums import AuditAction, AuditCategory
from rental_platform.domain.models import SystemAuditLog

logger = logging.getLogger(__name__)

SYSTEM_WEBHOOK_ACTOR = "SYSTEM_WEBHOOK"

REDACTED = "[REDACTED]"
PREVIEW_LIMIT = 200

_SENSITIVE_KEY = re.compile(
    r"password|secret|token|api[_-]?key|auth|bearer|credential|signature|cookie"
    r"|cvv|cvc|card[_-]?number|account[_-]?number|routing[_-]?number|transit|ssn",
    re.IGNORECASE,
)
_SENSITIVE_VALUE = re.compile(
    r"^(?:sk_|pk_|whsec_|SG\.)[\w.-]+$|^(?:Bearer|Basic)\s+.+$|^[a-f0-9]{32,}$|^eyJ[\w-]*\.eyJ",
    re.IGNORECASE,
)
# 12+ digit runs are card or bank account numbers; keep the last four.
_LONG_DIGITS = re.compile(r"\b(\d[ -]?){8,}(\d{4})\b")
_EMAIL = re.compile(r"^([^@\s]{1,2})[^@\s]*@([^@\s]+)$")


def _mask_email(value: str) -> str:
    match = _EMAIL.match(value)
    if not match:
        return value
    return f"{match.group(1)}***@{match.group(2)}"


def _redact_value(key: str, value: Any) -> Any:
    if isinstance(value, dict):
        return redact_metadata(value)
    if isinstance(value, (list, tuple)):
        return [_redact_value(key, v) for v in value]
    if not isinstance(value, str):
        return value
    if _SENSITIVE_KEY.search(key) or _SENSITIVE_VALUE.search(value.strip()):
        return REDACTED
    if "email" in key.lower() or key.lower() in ("from", "sender", "raw_from"):
        value = _mask_email(value)
    value = _LONG_DIGITS.sub(lambda m: f"****{m.group(2)}", value)
    if len(value) > PREVIEW_LIMIT:
        value = value[:PREVIEW_LIMIT] + "..."
    return value


def redact_metadata(metadata: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
    """Return a copy of ``metadata`` safe to persist in the audit log.

    Secret-looking keys and values are replaced, e-mail addresses are
    partially masked, long digit runs keep only their last four digits and
    free text is truncated to a preview.
    """
    if metadata is None:
        return None
    return {str(k): _redact_value(str(k), v) for k, v in metadata.items()}


class AuditLog:
    """Writes and reads SystemAuditLog entries on a given session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        action: AuditAction,
        description: str,
        metadata: Optional[dict[str, Any]] = None,
        success: bool = True,
        category: AuditCategory = AuditCategory.PAYMENT_WEBHOOK,
        actor_id: str = SYSTEM_WEBHOOK_ACTOR,
        entity_id: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> Optional[SystemAuditLog]:
        """Append one entry and commit it.

        Callers commit their own state changes first; this commit only
        carries the audit row. The insert runs in a savepoint so a failure
        rolls back the audit row alone and leaves the caller's loaded
        objects untouched.
        """
        try:
            entry = SystemAuditLog(
                id=str(uuid.uuid4()),
                actor_id=actor_id,
                action=action.value,
                category=category.value,
                description=description,
                entity_id=entity_id,
                data=redact_metadata(metadata),
                success=success,
                error_message=error_message,
                created_at=datetime.now(timezone.utc),
            )
            async with self.db.begin_nested():
                self.db.add(entry)
            await self.db.commit()
            return entry
        except Exception as exc:
            logger.error("Failed to write audit entry %s: %s", action.value, exc)
            return None

    async def list_activity(
        self,
        category: Optional[AuditCategory] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[SystemAuditLog], int]:
        """Return a page of entries (newest first) and the total count."""
        query = select(SystemAuditLog)
        count_query = select(func.count()).select_from(SystemAuditLog)
        if category is not None:
            query = query.where(SystemAuditLog.category == category.value)
            count_query = count_query.where(SystemAuditLog.category == category.value)

        result = await self.db.execute(
            query.order_by(SystemAuditLog.created_at.desc()).limit(limit).offset(offset)
        )
        total = (await self.db.execute(count_query)).scalar() or 0
        return list(result.scalars().all()), total


def serialize_audit_entry(entry: SystemAuditLog) -> dict:
    return {
        "id": entry.id,
        "actor_id": entry.actor_id,
        "action": entry.action,
        "category": entry.category,
        "description": entry.description,
        "entity_id": entry.entity_id,
        "metadata": entry.data,
        "success": entry.success,
        "error_message": entry.error_message,
        "created_at": entry.created_at.isoformat() if entry.created_at else None,
    }
