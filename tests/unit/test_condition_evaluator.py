import asyncio
import json

import httpx
import openai
import pytest

from mailsentry.config import Settings
from mailsentry.features.classification.services import (
    AIConditionEvaluator,
    UpstreamCallError,
    UpstreamTimeoutError,
    parse_evaluation,
)
from mailsentry.features.classification.services.condition_evaluator import (
    INVALID_FORMAT_REASONING,
    UNPARSEABLE_REASONING,
)

REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def _status_error(cls, status_code: int):
    return cls("boom", response=httpx.Response(status_code, request=REQUEST), body=None)


class TestParseEvaluation:
    def test_valid_json(self):
        result = parse_evaluation(
            json.dumps({"meets_condition": True, "confidence": 0.8, "reasoning": "invoice attached"})
        )

        assert result.meets_condition is True
        assert result.confidence == pytest.approx(0.8)
        assert result.reasoning == "invoice attached"

    def test_camel_case_verdict_is_accepted(self):
        result = parse_evaluation('{"meetsCondition": false, "confidence": 0.4, "reasoning": "x"}')

        assert result.meets_condition is False
        assert result.confidence == pytest.approx(0.4)

    @pytest.mark.parametrize("raw, expected", [(1.7, 1.0), (-0.2, 0.0), ("0.6", 0.6), ("high", 0.0)])
    def test_confidence_is_clamped(self, raw, expected):
        result = parse_evaluation(json.dumps({"meets_condition": True, "confidence": raw}))

        assert result.confidence == pytest.approx(expected)

    def test_code_fences_are_stripped(self):
        result = parse_evaluation('```json\n{"meets_condition": true, "confidence": 0.9}\n```')

        assert result.meets_condition is True
        assert result.confidence == pytest.approx(0.9)

    def test_free_text_falls_back_to_token_search(self):
        yes = parse_evaluation("I think this is TRUE for the email")
        no = parse_evaluation("Definitely not")

        assert (yes.meets_condition, yes.confidence) == (True, 0.5)
        assert (no.meets_condition, no.confidence) == (False, 0.5)
        assert yes.reasoning == UNPARSEABLE_REASONING

    @pytest.mark.parametrize(
        "raw", ['{"meets_condition": "yes", "confidence": 0.9}', "[true]", '{"confidence": 1}']
    )
    def test_json_without_boolean_verdict_is_negative(self, raw):
        result = parse_evaluation(raw)

        assert result.meets_condition is False
        assert result.confidence == 0.0
        assert result.reasoning == INVALID_FORMAT_REASONING

    def test_empty_response(self):
        result = parse_evaluation("")

        assert result.meets_condition is False
        assert result.reasoning == UNPARSEABLE_REASONING

    def test_deeply_nested_json_falls_back_to_token_search(self):
        result = parse_evaluation("[" * 5000 + "]" * 5000)

        assert result.meets_condition is False
        assert result.confidence == pytest.approx(0.5)
        assert result.reasoning == UNPARSEABLE_REASONING


class TestAIConditionEvaluator:
    @pytest.mark.asyncio
    async def test_evaluate_uses_configured_model(
        self, test_settings, fake_openai, chat_completion, email_factory
    ):
        fake_openai.chat.completions.create.return_value = chat_completion(
            '{"meets_condition": true, "confidence": 0.95, "reasoning": "asks for refund"}'
        )
        evaluator = AIConditionEvaluator(test_settings, client=fake_openai)

        result = await evaluator.evaluate("asks for a refund", email_factory("a@b.com"))

        assert result.meets_condition is True
        assert result.to_dict()["meetsCondition"] is True

        kwargs = fake_openai.chat.completions.create.await_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["temperature"] == pytest.approx(0.1)
        assert kwargs["max_tokens"] == 200
        assert kwargs["response_format"] == {"type": "json_object"}
        assert '"asks for a refund"' in kwargs["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_falls_back_to_next_model(
        self, test_settings, fake_openai, chat_completion, email_factory
    ):
        fake_openai.chat.completions.create.side_effect = [
            _status_error(openai.InternalServerError, 500),
            chat_completion('{"meets_condition": false, "confidence": 0.7, "reasoning": "no"}'),
        ]
        evaluator = AIConditionEvaluator(test_settings, client=fake_openai)

        result = await evaluator.evaluate("is spam", email_factory("a@b.com"))

        assert result.meets_condition is False
        models = [c.kwargs["model"] for c in fake_openai.chat.completions.create.await_args_list]
        assert models == ["gpt-4o-mini", "gpt-4o"]

    @pytest.mark.asyncio
    async def test_authentication_error_stops_fallback(
        self, test_settings, fake_openai, email_factory
    ):
        fake_openai.chat.completions.create.side_effect = _status_error(
            openai.AuthenticationError, 401
        )
        evaluator = AIConditionEvaluator(test_settings, client=fake_openai)

        with pytest.raises(UpstreamCallError) as exc_info:
            await evaluator.evaluate("is spam", email_factory("a@b.com"))

        assert exc_info.value.recoverable is False
        assert fake_openai.chat.completions.create.await_count == 1

    @pytest.mark.asyncio
    async def test_timeout_on_every_model(self, test_settings, fake_openai, email_factory):
        fake_openai.chat.completions.create.side_effect = openai.APITimeoutError(request=REQUEST)
        evaluator = AIConditionEvaluator(test_settings, client=fake_openai)

        with pytest.raises(UpstreamTimeoutError):
            await evaluator.evaluate("is spam", email_factory("a@b.com"))

        assert fake_openai.chat.completions.create.await_count == 2

    @pytest.mark.asyncio
    async def test_empty_completion_is_an_upstream_error(
        self, test_settings, fake_openai, chat_completion, email_factory
    ):
        fake_openai.chat.completions.create.return_value = chat_completion(None)
        evaluator = AIConditionEvaluator(test_settings, client=fake_openai)

        with pytest.raises(UpstreamCallError, match="No response from AI"):
            await evaluator.evaluate("is spam", email_factory("a@b.com"))

    @pytest.mark.asyncio
    async def test_missing_api_key(self, email_factory):
        evaluator = AIConditionEvaluator(Settings(_env_file=None, OPENAI_API_KEY=None))

        with pytest.raises(UpstreamCallError, match="API key not configured"):
            await evaluator.evaluate("is spam", email_factory("a@b.com"))

    def test_reasoning_models_use_completion_token_limit(self, test_settings):
        evaluator = AIConditionEvaluator(test_settings)

        params = evaluator._completion_params("gpt-5-mini", "prompt")

        assert params["max_completion_tokens"] == 200
        assert "temperature" not in params
        assert "max_tokens" not in params

    def test_email_summary_truncates_content(self, test_settings, email_factory):
        evaluator = AIConditionEvaluator(test_settings)
        email = email_factory(
            "cfo@co.com", sender_name="The CFO", body_content="x" * 500, body_preview="short"
        )

        summary = evaluator.build_email_summary(email)

        assert "From: The CFO (cfo@co.com)" in summary
        assert "Preview: short" in summary
        assert "x" * 100 + "..." in summary
        assert "x" * 101 not in summary

    def test_custom_prompt_template(self, email_factory):
        config = Settings(
            _env_file=None,
            AI_CONDITION_PROMPT_TEMPLATE="Does {condition} hold? {email_content}",
        )
        evaluator = AIConditionEvaluator(config)

        prompt = evaluator.build_prompt("urgent", email_factory("a@b.com", subject="Hello"))

        assert prompt.startswith("Does urgent hold? Subject: Hello")

    @pytest.mark.asyncio
    async def test_earlier_timeout_is_reported_as_timeout(
        self, test_settings, fake_openai, email_factory
    ):
        fake_openai.chat.completions.create.side_effect = [
            openai.APITimeoutError(request=REQUEST),
            _status_error(openai.InternalServerError, 500),
        ]
        evaluator = AIConditionEvaluator(test_settings, client=fake_openai)

        with pytest.raises(UpstreamTimeoutError):
            await evaluator.evaluate("is spam", email_factory("a@b.com"))

        assert fake_openai.chat.completions.create.await_count == 2

    @pytest.mark.asyncio
    async def test_deadline_covers_the_whole_fallback_chain(self, fake_openai, email_factory):
        config = Settings(
            _env_file=None,
            OPENAI_API_KEY="sk-test",
            OPENAI_MODEL="gpt-4o-mini",
            OPENAI_FALLBACK_MODELS=["gpt-4o", "gpt-4.1-mini-2025-04-14"],
            AI_CONDITION_TIMEOUT_SECONDS=0.05,
        )

        async def slow_completion(**kwargs):
            await asyncio.sleep(5)

        fake_openai.chat.completions.create.side_effect = slow_completion
        evaluator = AIConditionEvaluator(config, client=fake_openai)

        with pytest.raises(UpstreamTimeoutError, match="timed out"):
            await evaluator.evaluate("is spam", email_factory("a@b.com"))

        assert fake_openai.chat.completions.create.await_count == 1
