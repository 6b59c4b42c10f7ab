# mailsentry/features/classification/services/condition_evaluator.py
"""
AI Condition Evaluator
Asks an OpenAI chat model whether a free-text condition holds for an email.

The answer is always normalized into a ConditionEvaluation: unparseable or
malformed model output is recovered locally, while failing to reach the
backend at all surfaces as UpstreamCallError.
"""

import asyncio
import json
import math
import re
from typing import Any

import openai
from openai import AsyncOpenAI

from mailsentry.config import Settings, settings
from mailsentry.features.classification.domain import ConditionEvaluation, EmailMessage
from mailsentry.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

UNPARSEABLE_CONFIDENCE = 0.5
UNPARSEABLE_REASONING = "Unable to parse detailed AI response"
INVALID_FORMAT_REASONING = "Invalid AI response format"

# These model families take max_completion_tokens and reject temperature
NO_TEMPERATURE_MODEL_PREFIXES = ("gpt-5", "o3", "o4")

SYSTEM_MESSAGE = (
    "You are a precise email analysis system that evaluates conditions against "
    "email content. Always respond with valid JSON only."
)

DEFAULT_PROMPT_TEMPLATE = """You are an email classification system. Your task is to evaluate whether an email meets a specific condition.

CONDITION TO EVALUATE: "{condition}"

EMAIL TO ANALYZE:
{email_content}

IMPORTANT GUIDELINES:
- Be EXTREMELY conservative in your evaluation
- Only return true if you are absolutely certain the condition is met
- Consider the exact meaning of the condition, not just general topic similarity
- If there's any ambiguity or uncertainty, return false with low confidence
- Look for specific, concrete evidence that directly matches the condition
- Avoid false positives - it's better to miss a match than create incorrect ones

Based on the email content above, does this email meet the specified condition?

Respond with ONLY a JSON object in this exact format:
{
  "meets_condition": true/false,
  "confidence": 0.0-1.0,
  "reasoning": "Brief explanation of why the condition is met or not met, including specific evidence"
}

Be precise, conservative, and require strong evidence before returning true."""

_CODE_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)


class UpstreamCallError(Exception):
    """Raised when the AI backend cannot be reached or rejects every request."""

    def __init__(self, message: str, api_error: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.api_error = api_error
        self.recoverable = recoverable


class UpstreamTimeoutError(UpstreamCallError):
    """The AI backend did not answer within the configured deadline."""


def _clamp_confidence(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number):
        return 0.0
    return min(1.0, max(0.0, number))


def parse_evaluation(raw_text: str) -> ConditionEvaluation:
    """
    Normalize raw model output into a ConditionEvaluation.

    Never raises. Non-JSON text falls back to an affirmative-token search
    with a fixed 0.5 confidence; JSON without a boolean meets_condition is
    coerced to a negative answer with zero confidence.
    """
    text = (raw_text or "").strip()
    fenced = _CODE_FENCE.match(text)
    if fenced:
        text = fenced.group(1)

    try:
        parsed = json.loads(text)
    except (ValueError, RecursionError) as e:
        # Deeply nested arrays exhaust the decoder's recursion limit
        logger.warning(
            "Failed to parse AI condition response",
            raw_result=text[:200],
            error_type=type(e).__name__,
        )
        return ConditionEvaluation(
            meets_condition="true" in text.lower(),
            confidence=UNPARSEABLE_CONFIDENCE,
            reasoning=UNPARSEABLE_REASONING,
        )

    meets = None
    if isinstance(parsed, dict):
        meets = parsed.get("meets_condition", parsed.get("meetsCondition"))

    if not isinstance(meets, bool):
        logger.warning("AI condition response missing boolean verdict", raw_result=text[:200])
        return ConditionEvaluation(
            meets_condition=False, confidence=0.0, reasoning=INVALID_FORMAT_REASONING
        )

    reasoning = parsed.get("reasoning")
    return ConditionEvaluation(
        meets_condition=meets,
        confidence=_clamp_confidence(parsed.get("confidence")),
        reasoning=str(reasoning) if reasoning is not None else "",
    )


class AIConditionEvaluator:
    """
    Evaluates natural-language rule conditions with an OpenAI chat model.

    The settings object is injected so the API key, model list and prompt
    template are resolved once per process instead of inside each call.
    """

    def __init__(self, config: Settings, client: AsyncOpenAI | None = None):
        self.config = config
        self.client = client

    def _get_client(self) -> AsyncOpenAI:
        """Build the async client on first use."""
        if self.client is not None:
            return self.client

        if not self.config.OPENAI_API_KEY:
            raise UpstreamCallError("OpenAI API key not configured", recoverable=False)

        # SDK retries would stretch past the request deadline
        self.client = AsyncOpenAI(
            api_key=self.config.OPENAI_API_KEY,
            timeout=self.config.AI_CONDITION_TIMEOUT_SECONDS,
            max_retries=0,
        )
        logger.info(
            "OpenAI client initialized for condition evaluation",
            model=self.config.OPENAI_MODEL,
            timeout=self.config.AI_CONDITION_TIMEOUT_SECONDS,
        )
        return self.client

    def build_email_summary(self, email: EmailMessage) -> str:
        """Bounded plain-text view of the email handed to the model."""
        max_chars = self.config.AI_CONDITION_CONTENT_MAX_CHARS
        sender = email.sender_name or email.sender_email
        received = email.received_at
        if hasattr(received, "isoformat"):
            received = received.isoformat()

        lines = [
            f"Subject: {email.subject}",
            f"From: {sender} ({email.sender_email})",
            f"Importance: {email.importance}",
            f"Received: {received or 'unknown'}",
            f"Preview: {email.body_preview or 'No preview available'}",
        ]
        if email.body_content:
            lines.append(f"Content: {email.body_content[:max_chars]}...")

        return "\n".join(lines)

    def build_prompt(self, condition: str, email: EmailMessage) -> str:
        template = self.config.AI_CONDITION_PROMPT_TEMPLATE or DEFAULT_PROMPT_TEMPLATE
        # str.format would trip over the JSON braces in the template
        return template.replace("{condition}", condition).replace(
            "{email_content}", self.build_email_summary(email)
        )

    def _completion_params(self, model: str, prompt: str) -> dict[str, Any]:
        params: dict[str, Any] = {
            "model": model,
            "messages": [
                {"role": "system", "content": SYSTEM_MESSAGE},
                {"role": "user", "content": prompt},
            ],
            "response_format": {"type": "json_object"},
        }

        if model.startswith(NO_TEMPERATURE_MODEL_PREFIXES):
            params["max_completion_tokens"] = self.config.OPENAI_CONDITION_MAX_TOKENS
        else:
            params["max_tokens"] = self.config.OPENAI_CONDITION_MAX_TOKENS
            params["temperature"] = self.config.OPENAI_CONDITION_TEMPERATURE

        return params

    async def _call_with_fallback(self, prompt: str) -> str:
        """Try the configured model, then each fallback model, until one answers."""
        client = self._get_client()
        last_error: Exception | None = None
        timed_out = False

        for model in self.config.condition_models():
            try:
                response = await client.chat.completions.create(
                    **self._completion_params(model, prompt)
                )

            except (openai.AuthenticationError, openai.PermissionDeniedError) as e:
                last_error = e
                logger.error("OpenAI authentication error, not trying other models", model=model)
                break

            except openai.APITimeoutError as e:
                last_error = e
                timed_out = True
                logger.warning(
                    "OpenAI request timed out",
                    model=model,
                    timeout=self.config.AI_CONDITION_TIMEOUT_SECONDS,
                )

            except openai.APIError as e:
                last_error = e
                logger.warning(
                    "OpenAI model failed, trying next",
                    model=model,
                    error=str(e),
                    error_type=type(e).__name__,
                )

            else:
                content = response.choices[0].message.content if response.choices else None
                if not content:
                    raise UpstreamCallError("No response from AI", recoverable=True)

                logger.debug(
                    "OpenAI condition call succeeded",
                    model=model,
                    usage_tokens=response.usage.total_tokens if response.usage else 0,
                )
                return content

        logger.error("All OpenAI models failed", last_error=str(last_error))

        auth_failed = isinstance(
            last_error, (openai.AuthenticationError, openai.PermissionDeniedError)
        )
        if timed_out and not auth_failed:
            raise UpstreamTimeoutError(
                "AI condition evaluation timed out", api_error=str(last_error)
            ) from last_error

        raise UpstreamCallError(
            "AI condition evaluation unavailable",
            api_error=str(last_error) if last_error else None,
            recoverable=not auth_failed,
        ) from last_error

    async def evaluate(self, condition: str, email: EmailMessage) -> ConditionEvaluation:
        """
        Decide whether `condition` holds for `email`.

        Raises:
            UpstreamCallError: backend unreachable, misconfigured or silent
            UpstreamTimeoutError: backend did not answer in time
        """
        logger.info("Evaluating AI condition", email_id=email.id, condition=condition[:100])

        prompt = self.build_prompt(condition, email)
        deadline = self.config.AI_CONDITION_TIMEOUT_SECONDS
        try:
            # One deadline for the whole fallback chain, not per model
            async with asyncio.timeout(deadline):
                raw = await self._call_with_fallback(prompt)
        except TimeoutError as e:
            logger.error(
                "AI condition evaluation exceeded deadline", email_id=email.id, timeout=deadline
            )
            raise UpstreamTimeoutError("AI condition evaluation timed out") from e

        result = parse_evaluation(raw)

        logger.info(
            "AI condition evaluated",
            email_id=email.id,
            meets_condition=result.meets_condition,
            confidence=result.confidence,
        )
        return result


# Process-wide evaluator; the OpenAI client is built on first use
condition_evaluator = AIConditionEvaluator(settings)
