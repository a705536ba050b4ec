"""Unit tests for field extraction: Gemini agent, regex fallback and acceptance policy."""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from rental_platform.agents.base import AgentResult
from rental_platform.agents.payment_extractor import MAX_BODY_CHARS, PaymentExtractionAgent
from rental_platform.domain.enums import IntakeOutcome
from rental_platform.domain.schemas import PaymentExtractionResponse
from rental_platform.services.field_extractor import (
    MIN_BODY_LENGTH,
    NOT_CONFIGURED_ERROR,
    ExtractionResult,
    GeminiFieldExtractor,
    RegexFieldExtractor,
    UnavailableFieldExtractor,
    check_acceptance,
    check_body_length,
    clamp_confidence,
    coerce_amount_cents,
    extractor_configured,
    get_field_extractor,
)
from rental_platform.services.intake_errors import ExtractionError


BODY = "John Smith sent you $950.00 by Interac e-Transfer. Reference: INT123456"


def _settings(**overrides):
    values = {
        "gemini_api_key": "",
        "gemini_model": "gemini-test",
        "extractor_timeout_seconds": 5.0,
        "extractor_regex_fallback": False,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


# ---------------------------------------------------------------------------
# Value coercion
# ---------------------------------------------------------------------------


class TestCoerceAmountCents:
    @pytest.mark.parametrize("value,expected", [
        (95000, 95000),
        (95000.0, 95000),
        (95000.4, 95000),
        ("95000", 95000),
        (0, None),
        (-500, None),
        (None, None),
        (True, None),
        ("a lot", None),
        (float("inf"), None),
        (float("nan"), None),
    ])
    def test_coercion(self, value, expected):
        assert coerce_amount_cents(value) == expected


class TestClampConfidence:
    @pytest.mark.parametrize("value,expected", [
        (0.9, 0.9),
        (1.7, 1.0),
        (-0.2, 0.0),
        (None, 0.5),
        ("high", 0.5),
        (float("nan"), 0.5),
    ])
    def test_clamp(self, value, expected):
        assert clamp_confidence(value) == expected


# ---------------------------------------------------------------------------
# Regex fallback
# ---------------------------------------------------------------------------


class TestRegexFieldExtractor:
    async def test_standard_notification(self):
        result = await RegexFieldExtractor().extract("INTERAC e-Transfer", BODY)
        assert result.sender_name == "John Smith"
        assert result.amount_cents == 95000
        assert result.reference_number == "INT123456"
        assert result.confidence == 1.0
        assert result.error is None

    async def test_from_phrase_and_confirmation_number(self):
        body = "You've received $1,250.50 from Mary-Jane O'Neil for rent. Confirmation #: C1AbC2dE3f"
        result = await RegexFieldExtractor().extract("", body)
        assert result.sender_name == "Mary-Jane O'Neil"
        assert result.amount_cents == 125050
        assert result.reference_number == "C1AbC2dE3f"

    async def test_cad_suffix_amount(self):
        result = await RegexFieldExtractor().extract("Deposit", "Payment of 950.00 CAD from Jane Doe")
        assert result.amount_cents == 95000
        assert result.sender_name == "Jane Doe"

    async def test_missing_amount_lowers_confidence(self):
        result = await RegexFieldExtractor().extract("", "Jane Doe sent you money. Reference: ABC123")
        assert result.amount_cents is None
        assert result.confidence == pytest.approx(2 / 3)

    async def test_unrelated_email_extracts_nothing(self):
        body = "Hello there, this is a newsletter about our services and products."
        result = await RegexFieldExtractor().extract("News", body)
        assert result.sender_name is None
        assert result.amount_cents is None
        assert result.reference_number is None
        assert result.confidence == 0.0


# ---------------------------------------------------------------------------
# Gemini-backed extractor
# ---------------------------------------------------------------------------


def _agent_returning(result):
    agent = MagicMock()
    agent.extract = AsyncMock(return_value=result)
    return agent


class TestGeminiFieldExtractor:
    async def test_success_is_cleaned_and_clamped(self):
        parsed = PaymentExtractionResponse(
            sender_name="  John   Smith ",
            amount_cents=95000.0,
            reference_number=" INT123456 ",
            confidence=1.4,
        )
        extractor = GeminiFieldExtractor(agent=_agent_returning(AgentResult.success(data=parsed)))
        result = await extractor.extract("INTERAC e-Transfer", BODY)
        assert result == ExtractionResult(
            sender_name="John Smith",
            amount_cents=95000,
            reference_number="INT123456",
            confidence=1.0,
        )

    async def test_missing_confidence_uses_default(self):
        parsed = PaymentExtractionResponse(sender_name="John Smith", amount_cents=95000)
        extractor = GeminiFieldExtractor(agent=_agent_returning(AgentResult.success(data=parsed)))
        result = await extractor.extract("", BODY)
        assert result.confidence == 0.5

    async def test_non_positive_amount_becomes_none(self):
        parsed = PaymentExtractionResponse(sender_name="John Smith", amount_cents=0, confidence=0.9)
        extractor = GeminiFieldExtractor(agent=_agent_returning(AgentResult.success(data=parsed)))
        result = await extractor.extract("", BODY)
        assert result.amount_cents is None

    async def test_agent_failure_becomes_error_result(self):
        failure = AgentResult.failure("Model call timed out after 20s")
        extractor = GeminiFieldExtractor(agent=_agent_returning(failure))
        result = await extractor.extract("", BODY)
        assert result.error == "Model call timed out after 20s"
        assert result.sender_name is None
        assert result.amount_cents is None
        assert result.confidence == 0.0

    async def test_agent_exception_never_propagates(self):
        agent = MagicMock()
        agent.extract = AsyncMock(side_effect=RuntimeError("quota exceeded"))
        result = await GeminiFieldExtractor(agent=agent).extract("", BODY)
        assert result.error == "Extraction failed: quota exceeded"


class TestUnavailableFieldExtractor:
    async def test_reports_not_configured(self):
        result = await UnavailableFieldExtractor().extract("", BODY)
        assert result.error == NOT_CONFIGURED_ERROR
        with pytest.raises(ExtractionError) as exc_info:
            check_acceptance(result)
        assert f"(extractor error: {NOT_CONFIGURED_ERROR})" in exc_info.value.message


class TestExtractorSelection:
    def test_gemini_when_key_present(self):
        with patch(
            "rental_platform.services.field_extractor.get_settings",
            return_value=_settings(gemini_api_key="key", extractor_regex_fallback=True),
        ):
            extractor = get_field_extractor()
        assert isinstance(extractor, GeminiFieldExtractor)
        assert extractor.agent.model_name == "gemini-test"
        assert extractor.agent.timeout_seconds == 5.0

    def test_regex_when_fallback_enabled(self):
        with patch(
            "rental_platform.services.field_extractor.get_settings",
            return_value=_settings(extractor_regex_fallback=True),
        ):
            assert isinstance(get_field_extractor(), RegexFieldExtractor)
            assert extractor_configured() is True

    def test_unavailable_by_default(self):
        with patch("rental_platform.services.field_extractor.get_settings", return_value=_settings()):
            assert isinstance(get_field_extractor(), UnavailableFieldExtractor)
            assert extractor_configured() is False


# ---------------------------------------------------------------------------
# Payment extraction agent
# ---------------------------------------------------------------------------


class TestPaymentExtractionAgent:
    def test_configuration(self):
        agent = PaymentExtractionAgent(model_name="gemini-test", timeout_seconds=7.0)
        assert agent.agent_name == "payment_extractor"
        assert agent.temperature == 0.1
        assert agent.timeout_seconds == 7.0

    async def test_valid_output_is_validated(self):
        agent = PaymentExtractionAgent()
        mock_result = AgentResult.success(
            data={"sender_name": "John Smith", "amount_cents": 95000, "reference_number": "INT123456", "confidence": 0.95},
            tokens_used=120,
            latency_ms=300,
        )
        with patch.object(agent, "generate_json", new_callable=AsyncMock, return_value=mock_result) as mock_gen:
            result = await agent.extract("INTERAC e-Transfer", BODY)

        assert result.ok is True
        assert isinstance(result.data, PaymentExtractionResponse)
        assert result.data.amount_cents == 95000
        assert result.tokens_used == 120

        kwargs = mock_gen.await_args.kwargs
        assert "INTERAC e-Transfer" in kwargs["prompt"]
        assert BODY in kwargs["prompt"]
        assert "amount_cents" in kwargs["response_schema"]["properties"]

    async def test_long_body_is_truncated(self):
        agent = PaymentExtractionAgent()
        mock_result = AgentResult.success(data={})
        body = "x" * (MAX_BODY_CHARS + 500)
        with patch.object(agent, "generate_json", new_callable=AsyncMock, return_value=mock_result) as mock_gen:
            await agent.extract("", body)
        assert "x" * (MAX_BODY_CHARS + 1) not in mock_gen.await_args.kwargs["prompt"]

    async def test_invalid_output_is_failure(self):
        agent = PaymentExtractionAgent()
        mock_result = AgentResult.success(data={"amount_cents": "a lot"})
        with patch.object(agent, "generate_json", new_callable=AsyncMock, return_value=mock_result):
            result = await agent.extract("", BODY)
        assert result.ok is False
        assert result.error.startswith("Validation error")

    async def test_model_timeout_is_failure(self):
        agent = PaymentExtractionAgent(timeout_seconds=0.01)

        async def _slow(prompt):
            await asyncio.sleep(1)

        model = MagicMock()
        model.generate_content_async = _slow
        with patch("rental_platform.infra.gemini_client.get_model", return_value=model):
            result = await agent.extract("", BODY)

        assert result.ok is False
        assert "timed out" in result.error


# ---------------------------------------------------------------------------
# Acceptance policy
# ---------------------------------------------------------------------------


class TestCheckBodyLength:
    @pytest.mark.parametrize("body", [None, "", "test", "x" * (MIN_BODY_LENGTH - 1)])
    def test_short_bodies_are_verification_requests(self, body):
        with pytest.raises(ExtractionError) as exc_info:
            check_body_length(body)
        assert exc_info.value.verification is True
        assert exc_info.value.response_status == IntakeOutcome.VERIFICATION_LOGGED

    def test_threshold_length_passes(self):
        check_body_length("x" * MIN_BODY_LENGTH)


class TestCheckAcceptance:
    def test_complete_result_passes(self):
        check_acceptance(ExtractionResult(sender_name="John Smith", amount_cents=95000, confidence=0.9))

    def test_confidence_at_threshold_passes(self):
        check_acceptance(ExtractionResult(sender_name="John Smith", amount_cents=95000, confidence=0.5))

    def test_missing_sender(self):
        with pytest.raises(ExtractionError) as exc_info:
            check_acceptance(ExtractionResult(amount_cents=95000, confidence=0.9))
        assert exc_info.value.message == "Could not extract sender name"
        assert exc_info.value.response_status == IntakeOutcome.MANUAL_REVIEW

    def test_missing_amount(self):
        with pytest.raises(ExtractionError) as exc_info:
            check_acceptance(ExtractionResult(sender_name="John Smith", confidence=0.9))
        assert exc_info.value.message == "Could not extract amount"

    def test_missing_both(self):
        with pytest.raises(ExtractionError) as exc_info:
            check_acceptance(ExtractionResult(confidence=0.9))
        assert exc_info.value.message == "Could not extract sender name; Could not extract amount"

    def test_low_confidence(self):
        with pytest.raises(ExtractionError) as exc_info:
            check_acceptance(ExtractionResult(sender_name="John Smith", amount_cents=95000, confidence=0.32))
        assert exc_info.value.message == "Low parsing confidence (0.32)"

    def test_extractor_error_is_appended(self):
        with pytest.raises(ExtractionError) as exc_info:
            check_acceptance(ExtractionResult.failed("timeout"))
        assert exc_info.value.message == (
            "Could not extract sender name; Could not extract amount (extractor error: timeout)"
        )
