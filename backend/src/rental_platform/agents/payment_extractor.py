"""Payment Extraction Agent - Reads e-Transfer notification emails into payment fields."""

import logging
from typing import Optional

from rental_platform.agents.base import AgentResult, BaseAgent, DEFAULT_TIMEOUT_SECONDS
from rental_platform.agents.prompts.payment_extraction import (
    PAYMENT_EXTRACTION_PROMPT,
    PAYMENT_EXTRACTION_SYSTEM_PROMPT,
)
from rental_platform.domain.schemas import PaymentExtractionResponse

logger = logging.getLogger(__name__)

# Bodies are truncated before being sent; notifications are a few hundred chars.
MAX_BODY_CHARS = 8000


class PaymentExtractionAgent(BaseAgent):
    """Extracts sender, amount and reference from one notification.

    Temperature is kept low (0.1) because the same email must always
    extract to the same fields.
    """

    def __init__(
        self,
        model_name: Optional[str] = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        super().__init__(
            agent_name="payment_extractor",
            model_name=model_name,
            temperature=0.1,
            timeout_seconds=timeout_seconds,
        )

    async def extract(self, subject: str, body: str) -> AgentResult:
        """Run the extraction prompt and validate the model output.

        Returns:
            AgentResult whose ``data`` is a validated
            ``PaymentExtractionResponse`` on success.
        """
        prompt = PAYMENT_EXTRACTION_PROMPT.format(
            subject=subject or "(none)",
            body=(body or "")[:MAX_BODY_CHARS],
        )

        result = await self.generate_json(
            prompt=prompt,
            system_instruction=PAYMENT_EXTRACTION_SYSTEM_PROMPT,
            response_schema=PaymentExtractionResponse.model_json_schema(),
        )

        if not result.ok:
            return result

        try:
            validated = PaymentExtractionResponse.model_validate(result.data)
        except Exception as exc:
            logger.warning("[%s] Pydantic validation failed: %s", self.agent_name, exc)
            return AgentResult.failure(f"Validation error: {exc}", latency_ms=result.latency_ms)

        return AgentResult.success(
            data=validated,
            tokens_used=result.tokens_used,
            latency_ms=result.latency_ms,
        )
