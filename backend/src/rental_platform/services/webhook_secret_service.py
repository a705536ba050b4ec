"""Payment webhook secret: environment value first, stored value as fallback."""

import logging
import secrets
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from rental_platform.app.config import get_settings
from rental_platform.domain.models import WebhookSettings

logger = logging.getLogger(__name__)

SETTINGS_ROW_ID = "default"
MIN_SECRET_LENGTH = 10


async def get_stored_secret(db: AsyncSession) -> str:
    row = await db.get(WebhookSettings, SETTINGS_ROW_ID)
    return (row.webhook_secret or "") if row else ""


async def resolve_webhook_secret(db: AsyncSession) -> str:
    """The secret webhook callers must present; empty when none is configured."""
    env_secret = get_settings().payment_webhook_secret
    if env_secret:
        return env_secret
    return await get_stored_secret(db)


def secret_source() -> str:
    return "environment" if get_settings().payment_webhook_secret else "stored"


def mask_secret(secret: str) -> str:
    """Show the first and last four characters only."""
    if not secret:
        return ""
    if len(secret) <= 8:
        return "*" * len(secret)
    return f"{secret[:4]}{'*' * (len(secret) - 8)}{secret[-4:]}"


async def rotate_webhook_secret(db: AsyncSession, new_secret: Optional[str] = None) -> str:
    """Store ``new_secret`` (or a freshly generated one) and return it.

    Raises:
        ValueError: ``new_secret`` is shorter than MIN_SECRET_LENGTH.
    """
    if new_secret is not None and len(new_secret) < MIN_SECRET_LENGTH:
        raise ValueError(f"Webhook secret must be at least {MIN_SECRET_LENGTH} characters")
    secret = new_secret or secrets.token_urlsafe(32)

    row = await db.get(WebhookSettings, SETTINGS_ROW_ID)
    if row is None:
        row = WebhookSettings(id=SETTINGS_ROW_ID)
        db.add(row)
    row.webhook_secret = secret
    row.updated_at = datetime.now(timezone.utc)
    await db.commit()

    if get_settings().payment_webhook_secret:
        logger.warning("Stored webhook secret rotated but PAYMENT_WEBHOOK_SECRET still takes precedence")
    return secret
