"""Gemini-backed agent base used by the payment extractor.

A BaseAgent owns one model round trip: it builds the model through
``infra.gemini_client``, bounds the call with ``asyncio.wait_for`` and reports
the outcome as an AgentResult instead of raising. Structured output goes
through ``generate_json`` with a Pydantic-derived response schema.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

from rental_platform.infra import gemini_client

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 120.0


@dataclass
class AgentResult:
    """Outcome of one agent call.

    ``ok`` is False when the model failed, timed out or returned output that
    could not be used; ``error`` then carries the reason, which the field
    extractor stores as the intake record's parse error.
    """

    ok: bool
    data: Any = None
    error: Optional[str] = None
    tokens_used: int = 0
    latency_ms: int = 0

    @classmethod
    def success(cls, data: Any, tokens_used: int = 0, latency_ms: int = 0) -> "AgentResult":
        return cls(ok=True, data=data, tokens_used=tokens_used, latency_ms=latency_ms)

    @classmethod
    def failure(cls, error: str, latency_ms: int = 0) -> "AgentResult":
        return cls(ok=False, error=error, latency_ms=latency_ms)


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def _token_count(response: Any) -> int:
    usage = getattr(response, "usage_metadata", None)
    if not usage:
        return 0
    prompt_tokens = getattr(usage, "prompt_token_count", 0) or 0
    completion_tokens = getattr(usage, "candidates_token_count", 0) or 0
    return prompt_tokens + completion_tokens


class BaseAgent:
    """A named Gemini model with a fixed temperature and a per-call deadline."""

    def __init__(
        self,
        agent_name: str,
        model_name: Optional[str] = None,
        temperature: float = 0.7,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        self.agent_name = agent_name
        self.model_name = model_name
        self.temperature = temperature
        self.timeout_seconds = timeout_seconds

    async def generate(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        json_mode: bool = False,
        response_schema: dict | None = None,
    ) -> AgentResult:
        """Send one prompt; the response text lands in ``data``."""
        start = time.monotonic()
        try:
            model = gemini_client.get_model(
                model_name=self.model_name,
                temperature=self.temperature,
                json_mode=json_mode,
                response_schema=response_schema,
                system_instruction=system_instruction,
            )
            response = await asyncio.wait_for(
                model.generate_content_async(prompt),
                timeout=self.timeout_seconds,
            )
            text = response.text
        except asyncio.TimeoutError:
            latency_ms = _elapsed_ms(start)
            logger.error("[%s] Model call timed out after %dms", self.agent_name, latency_ms)
            return AgentResult.failure(
                f"Model call timed out after {self.timeout_seconds:g}s",
                latency_ms=latency_ms,
            )
        except Exception as exc:
            latency_ms = _elapsed_ms(start)
            logger.error("[%s] Model call failed after %dms: %s", self.agent_name, latency_ms, exc)
            return AgentResult.failure(str(exc), latency_ms=latency_ms)

        latency_ms = _elapsed_ms(start)
        tokens_used = _token_count(response)
        logger.info("[%s] Model call ok: tokens=%d, latency=%dms", self.agent_name, tokens_used, latency_ms)
        return AgentResult.success(data=text, tokens_used=tokens_used, latency_ms=latency_ms)

    async def generate_json(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        response_schema: dict | None = None,
    ) -> AgentResult:
        """Like ``generate`` in JSON mode, with ``data`` decoded.

        Text that is not valid JSON becomes a failed result.
        """
        result = await self.generate(
            prompt=prompt,
            system_instruction=system_instruction,
            json_mode=True,
            response_schema=response_schema,
        )
        if not result.ok:
            return result

        try:
            parsed = json.loads(result.data)
        except (json.JSONDecodeError, TypeError) as exc:
            logger.warning("[%s] Model returned invalid JSON: %s, raw text: %.200s", self.agent_name, exc, result.data)
            return AgentResult.failure(f"JSON parse error: {exc}", latency_ms=result.latency_ms)

        return AgentResult.success(data=parsed, tokens_used=result.tokens_used, latency_ms=result.latency_ms)
