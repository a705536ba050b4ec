"""Normalize inbound payment-intake webhook calls.

Mail-forwarding providers post the same e-transfer notification in different
shapes (JSON, multipart form, plain text). ``normalize_payload`` reduces all of
them to one ``NormalizedIntake`` and never raises: a payload it cannot decode
still produces a record, possibly with every field empty.
"""

import hmac
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional
from urllib.parse import parse_qs

from rental_platform.services.intake_errors import AuthError, TransportError

logger = logging.getLogger(__name__)

BODY_KEYS = ("body", "text", "html", "content")
SUBJECT_KEYS = ("subject", "Subject")
SENDER_KEYS = ("from", "From", "sender")

SUBJECT_LINE = re.compile(r"^subject:\s*(.*)$", re.IGNORECASE)


@dataclass
class NormalizedIntake:
    """Canonical view of one webhook call."""

    subject: str = ""
    body: str = ""
    sender: str = ""
    headers: dict[str, str] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Payload decoding
# ---------------------------------------------------------------------------


def _decode(raw: bytes | str) -> str:
    if isinstance(raw, str):
        return raw
    return raw.decode("utf-8", errors="replace")


def _first(source: Mapping[str, Any], keys: tuple[str, ...]) -> str:
    for key in keys:
        value = source.get(key)
        if value:
            return str(value)
    return ""


def _headers_from(value: Any) -> dict[str, str]:
    if isinstance(value, Mapping):
        return {str(k): str(v) for k, v in value.items()}
    return {}


def _parse_json(text: str) -> Any:
    try:
        return json.loads(text)
    except (json.JSONDecodeError, ValueError) as exc:
        raise TransportError(f"Malformed JSON payload: {exc}") from exc


def _from_json_payload(payload: Any, text: str) -> NormalizedIntake:
    if not isinstance(payload, dict):
        # Valid JSON but not an object: keep it as the body
        return NormalizedIntake(body=text)
    body = _first(payload, BODY_KEYS) or json.dumps(payload)
    return NormalizedIntake(
        subject=_first(payload, SUBJECT_KEYS),
        body=body,
        sender=_first(payload, SENDER_KEYS),
        headers=_headers_from(payload.get("headers")),
    )


def _from_form(form: Mapping[str, Any]) -> NormalizedIntake:
    headers = form.get("headers")
    if isinstance(headers, str):
        try:
            headers = json.loads(headers)
        except (json.JSONDecodeError, ValueError):
            headers = None
    return NormalizedIntake(
        subject=_first(form, SUBJECT_KEYS),
        body=_first(form, BODY_KEYS),
        sender=_first(form, SENDER_KEYS),
        headers=_headers_from(headers),
    )


def _from_plain_text(text: str) -> NormalizedIntake:
    subject = ""
    for line in text.splitlines():
        match = SUBJECT_LINE.match(line.strip())
        if match:
            subject = match.group(1).strip()
            break
    return NormalizedIntake(subject=subject, body=text)


def normalize_payload(
    content_type: str,
    raw: bytes | str,
    form: Optional[Mapping[str, Any]] = None,
) -> NormalizedIntake:
    """Reduce a webhook request body to subject/body/sender/headers.

    Args:
        content_type: The request's Content-Type header (may be empty).
        raw: The undecoded request body.
        form: Already-parsed form fields for multipart requests. The route
            parses multipart bodies with Starlette; urlencoded bodies are
            parsed here when ``form`` is not supplied.

    Returns:
        A ``NormalizedIntake``; absent fields are empty strings.
    """
    content_type = (content_type or "").lower()
    text = _decode(raw or b"")

    try:
        if "application/json" in content_type:
            return _from_json_payload(_parse_json(text), text)

        if form is not None:
            return _from_form(form)

        if "application/x-www-form-urlencoded" in content_type:
            return _from_form({k: v[0] for k, v in parse_qs(text).items() if v})

        if "multipart/form-data" in content_type:
            # Multipart body the caller could not parse: keep it as raw text
            raise TransportError("Multipart payload could not be parsed")

        if "text/plain" in content_type:
            return _from_plain_text(text)

        # Unknown content type: try JSON, then fall back to raw text
        try:
            payload = _parse_json(text)
        except TransportError:
            return NormalizedIntake(body=text)
        return _from_json_payload(payload, text)

    except TransportError as exc:
        logger.warning("Payment intake payload not decodable (%s): %s", content_type or "none", exc.message)
        return NormalizedIntake(body=text)
    except Exception as exc:
        logger.warning("Unexpected payload shape (%s): %s", content_type or "none", exc)
        return NormalizedIntake(body=text)


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


def extract_provided_secret(headers: Mapping[str, str]) -> str:
    """Return the caller-supplied secret from ``x-webhook-secret`` or a Bearer token."""
    provided = headers.get("x-webhook-secret") or ""
    if not provided:
        auth_header = headers.get("authorization") or ""
        if auth_header.lower().startswith("bearer "):
            provided = auth_header[7:].strip()
    return provided


def authenticate_webhook(headers: Mapping[str, str], expected_secret: str) -> bool:
    """Check the caller's secret against the configured one.

    Returns ``is_verified``: True when a secret is configured and matches,
    False when no secret is configured (every call is accepted, unverified).

    Raises:
        AuthError: a secret is configured and the caller's is missing or wrong.
    """
    if not expected_secret:
        return False

    provided = extract_provided_secret(headers)
    if provided and hmac.compare_digest(provided.encode(), expected_secret.encode()):
        return True
    raise AuthError("Invalid or missing webhook secret")


def webhook_source(headers: Mapping[str, str], client_host: Optional[str] = None) -> str:
    """Best-effort network origin of the call for logging."""
    forwarded = headers.get("x-forwarded-for") or ""
    if forwarded:
        return forwarded.split(",")[0].strip()
    return headers.get("x-real-ip") or client_host or "unknown"
