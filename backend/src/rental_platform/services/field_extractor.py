"""Field extraction boundary for e-Transfer notifications.

The pipeline only sees the ``FieldExtractor`` protocol. Implementations never
raise: a timeout, quota error or malformed model response comes back as an
``ExtractionResult`` with ``error`` set and every data field None.
"""

import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from rental_platform.agents.payment_extractor import PaymentExtractionAgent
from rental_platform.app.config import get_settings
from rental_platform.services.intake_errors import ExtractionError

logger = logging.getLogger(__name__)

# Bodies shorter than this are provider verification pings, not payments
MIN_BODY_LENGTH = 50
MIN_CONFIDENCE = 0.5
DEFAULT_CONFIDENCE = 0.5

NOT_CONFIGURED_ERROR = "extraction service not configured"


@dataclass
class ExtractionResult:
    """Fields pulled out of one notification."""

    sender_name: Optional[str] = None
    amount_cents: Optional[int] = None
    reference_number: Optional[str] = None
    confidence: float = 0.0
    error: Optional[str] = None

    @classmethod
    def failed(cls, error: str) -> "ExtractionResult":
        return cls(error=error)


class FieldExtractor(Protocol):
    """Anything that can turn a notification into an ExtractionResult."""

    async def extract(self, subject: str, body: str) -> ExtractionResult:
        ...


# ---------------------------------------------------------------------------
# Value coercion
# ---------------------------------------------------------------------------


def coerce_amount_cents(value: Any) -> Optional[int]:
    """Return a positive integer number of cents, or None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(amount):
        return None
    cents = int(round(amount))
    return cents if cents > 0 else None


def clamp_confidence(value: Any, default: float = DEFAULT_CONFIDENCE) -> float:
    if value is None or isinstance(value, bool):
        return default
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(confidence):
        return default
    return min(1.0, max(0.0, confidence))


def _clean_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = " ".join(str(value).split())
    return value or None


# ---------------------------------------------------------------------------
# Implementations
# ---------------------------------------------------------------------------


class GeminiFieldExtractor:
    """Extractor backed by the Gemini payment extraction agent."""

    def __init__(self, agent: Optional[PaymentExtractionAgent] = None):
        if agent is None:
            settings = get_settings()
            agent = PaymentExtractionAgent(
                model_name=settings.gemini_model,
                timeout_seconds=settings.extractor_timeout_seconds,
            )
        self.agent = agent

    async def extract(self, subject: str, body: str) -> ExtractionResult:
        try:
            result = await self.agent.extract(subject, body)
        except Exception as exc:
            logger.error("Payment extraction agent raised: %s", exc)
            return ExtractionResult.failed(f"Extraction failed: {exc}")

        if not result.ok:
            logger.warning("Payment extraction failed: %s", result.error)
            return ExtractionResult.failed(result.error or "Extraction failed")

        parsed = result.data
        return ExtractionResult(
            sender_name=_clean_text(parsed.sender_name),
            amount_cents=coerce_amount_cents(parsed.amount_cents),
            reference_number=_clean_text(parsed.reference_number),
            confidence=clamp_confidence(parsed.confidence),
        )


# Name tokens are case-sensitive (capitalised words); keywords are not.
_NAME = r"([A-Z][A-Za-z'\-]*\.?(?:[ \t]+[A-Z][A-Za-z'\-]*\.?)+)"

SENDER_PATTERNS = (
    re.compile(r"(?i:\bfrom)[ \t]+" + _NAME),
    re.compile(_NAME + r"[ \t]+(?i:sent[ \t]+you)"),
    re.compile(_NAME + r"[ \t]+(?i:has[ \t]+sent)"),
    re.compile(r"(?i:\bsender):[ \t]*" + r"([A-Z][A-Za-z'\-]*\.?(?:[ \t]+[A-Z][A-Za-z'\-]*\.?)*)"),
)

AMOUNT_PATTERNS = (
    re.compile(r"\$\s*([\d,]+(?:\.\d+)?)"),
    re.compile(r"\bCAD\s*([\d,]+(?:\.\d+)?)", re.IGNORECASE),
    re.compile(r"([\d,]+(?:\.\d+)?)\s*CAD\b", re.IGNORECASE),
    re.compile(r"\bamount[:\s]+\$?\s*([\d,]+(?:\.\d+)?)", re.IGNORECASE),
)

REFERENCE_PATTERNS = (
    re.compile(r"\breference(?:\s+number)?[:\s#]+([A-Za-z0-9]+)", re.IGNORECASE),
    re.compile(r"\bconfirmation(?:\s+number)?[:\s#]+([A-Za-z0-9]+)", re.IGNORECASE),
    re.compile(r"\bref[:\s#.]+([A-Za-z0-9]+)", re.IGNORECASE),
    re.compile(r"\btransfer\s+(?:id|number|#)[:\s]*([A-Za-z0-9]+)", re.IGNORECASE),
    # Bare Interac-style code: 10-14 alphanumerics with at least one digit
    re.compile(r"\b(?=[A-Za-z]*\d)([A-Za-z0-9]{10,14})\b"),
)


def _first_group(patterns, text: str) -> Optional[str]:
    for pattern in patterns:
        match = pattern.search(text)
        if match and match.group(1):
            return match.group(1).strip()
    return None


def _parse_amount(text: str) -> Optional[int]:
    for pattern in AMOUNT_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        try:
            dollars = float(match.group(1).replace(",", ""))
        except ValueError:
            continue
        cents = int(round(dollars * 100))
        if cents > 0:
            return cents
    return None


class RegexFieldExtractor:
    """Deterministic pattern-based extractor.

    Confidence is the fraction of the three fields that were found.
    """

    async def extract(self, subject: str, body: str) -> ExtractionResult:
        text = f"{subject or ''}\n{body or ''}"

        sender_name = _first_group(SENDER_PATTERNS, text)
        amount_cents = _parse_amount(text)
        reference_number = _first_group(REFERENCE_PATTERNS, text)

        found = sum(1 for value in (sender_name, amount_cents, reference_number) if value)
        return ExtractionResult(
            sender_name=sender_name,
            amount_cents=amount_cents,
            reference_number=reference_number,
            confidence=found / 3,
        )


class UnavailableFieldExtractor:
    """Used when no extraction backend is configured."""

    async def extract(self, subject: str, body: str) -> ExtractionResult:
        return ExtractionResult.failed(NOT_CONFIGURED_ERROR)


def get_field_extractor() -> FieldExtractor:
    """FastAPI dependency: the extractor the current settings allow."""
    settings = get_settings()
    if settings.gemini_api_key:
        return GeminiFieldExtractor()
    if settings.extractor_regex_fallback:
        return RegexFieldExtractor()
    return UnavailableFieldExtractor()


def extractor_configured() -> bool:
    settings = get_settings()
    return bool(settings.gemini_api_key or settings.extractor_regex_fallback)


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------


def check_body_length(body: Optional[str]) -> None:
    """Raise a verification ExtractionError for short or empty bodies."""
    length = len(body or "")
    if length < MIN_BODY_LENGTH:
        raise ExtractionError(
            "Short or empty body - possible verification request",
            context={"body_length": length},
            verification=True,
        )


def check_acceptance(result: ExtractionResult) -> None:
    """Raise ExtractionError unless sender, amount and confidence all pass.

    The message names exactly the missing field(s), or cites the low
    confidence when both fields are present.
    """
    missing = []
    if not result.sender_name:
        missing.append("Could not extract sender name")
    if not result.amount_cents:
        missing.append("Could not extract amount")

    if missing:
        reason = "; ".join(missing)
    elif result.confidence < MIN_CONFIDENCE:
        reason = f"Low parsing confidence ({result.confidence:.2f})"
    else:
        return

    if result.error:
        reason = f"{reason} (extractor error: {result.error})"

    raise ExtractionError(
        reason,
        context={
            "sender_name": result.sender_name,
            "amount_cents": result.amount_cents,
            "confidence": result.confidence,
        },
    )
