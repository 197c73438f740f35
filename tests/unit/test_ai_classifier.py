"""
Unit tests for the Stage 3 AI classifier gateway.
"""

import asyncio
from unittest.mock import Mock

import pytest

from conftest import FILLER

from docdetect.core.ai_classifier import AIClassifier, parse_verdict, strip_code_fence
from docdetect.core.errors import InferenceError, MalformedResponseError
from docdetect.core.models import FALLBACK_VERDICT, INSUFFICIENT_TEXT_VERDICT
from docdetect.core.policy import RESUME_POLICY
from docdetect.providers.base import CompletionSettings

GOOD_REPLY = '{"isMatch": true, "confidence": 0.92, "reason": "work history and education"}'


class TestParseVerdict:
    """Tests for response validation."""

    def test_plain_json(self):
        verdict = parse_verdict(GOOD_REPLY)

        assert verdict.is_match is True
        assert verdict.confidence == pytest.approx(0.92)
        assert verdict.reason == "work history and education"
        assert verdict.insufficient_text is False

    def test_fenced_json(self):
        raw = '```json\n{"isMatch": false, "confidence": 0.3}\n```'
        verdict = parse_verdict(raw)

        assert verdict.is_match is False
        assert verdict.confidence == pytest.approx(0.3)

    def test_only_match_and_confidence_required(self):
        verdict = parse_verdict('{"isMatch": true, "confidence": 0.6}')

        assert verdict.reason == ""
        assert verdict.insufficient_text is False

    def test_strip_code_fence_without_language(self):
        assert strip_code_fence('```\n{"a": 1}\n```') == '{"a": 1}'
        assert strip_code_fence('{"a": 1}') == '{"a": 1}'

    def test_json_wrapped_in_prose(self):
        raw = 'Sure! Here is my answer: {"isMatch": true, "confidence": 0.8} Hope it helps.'
        assert parse_verdict(raw).is_match is True

    def test_snake_case_keys(self):
        verdict = parse_verdict('{"is_match": true, "confidence": 0.5, "insufficient_text": true}')

        assert verdict.is_match is True
        assert verdict.insufficient_text is True

    def test_string_booleans(self):
        assert parse_verdict('{"isMatch": "True", "confidence": 0.5}').is_match is True

    def test_confidence_slightly_out_of_range_clamped(self):
        assert parse_verdict('{"isMatch": true, "confidence": 1.05}').confidence == 1.0
        assert parse_verdict('{"isMatch": false, "confidence": -0.05}').confidence == 0.0

    @pytest.mark.parametrize("raw", [
        "",
        "not json at all",
        "[1, 2, 3]",
        '{"confidence": 0.9}',
        '{"isMatch": true}',
        '{"isMatch": true, "confidence": 1.5}',
        '{"isMatch": true, "confidence": "high"}',
        '{"isMatch": "maybe", "confidence": 0.5}',
        '{"isMatch": true, "confidence": NaN}',
    ])
    def test_malformed(self, raw):
        with pytest.raises(MalformedResponseError):
            parse_verdict(raw)

    def test_malformed_keeps_raw_response(self):
        with pytest.raises(MalformedResponseError) as exc_info:
            parse_verdict('{"isMatch": true}')
        assert exc_info.value.raw_response == '{"isMatch": true}'

    def test_long_reason_truncated(self):
        raw = '{"isMatch": true, "confidence": 0.9, "reason": "%s"}' % ("r" * 2000)
        assert len(parse_verdict(raw).reason) == 500


class TestAIClassifier:
    """Tests for retry and fallback behavior."""

    def _classify(self, model, text=FILLER):
        return asyncio.run(AIClassifier(model).classify(text, RESUME_POLICY))

    def test_success_first_attempt(self):
        model = Mock()
        model.complete.return_value = GOOD_REPLY

        verdict = self._classify(model)

        assert verdict.is_match is True
        assert model.complete.call_count == 1

    def test_deterministic_settings(self):
        model = Mock()
        model.complete.return_value = GOOD_REPLY

        self._classify(model)

        prompt, settings = model.complete.call_args[0]
        assert FILLER in prompt
        assert isinstance(settings, CompletionSettings)
        assert settings.temperature == 0.0
        assert settings.max_tokens == 150

    def test_insufficient_text_skips_model(self):
        model = Mock()

        verdict = self._classify(model, text="Scanned image")

        assert verdict == INSUFFICIENT_TEXT_VERDICT
        model.complete.assert_not_called()

    @pytest.mark.parametrize("page_break", ["\f", "\n\n\n"])
    def test_blank_first_page_skips_model(self, page_break):
        model = Mock()
        model.complete.return_value = GOOD_REPLY

        verdict = self._classify(model, text=page_break + FILLER * 2)

        assert verdict == INSUFFICIENT_TEXT_VERDICT
        model.complete.assert_not_called()

    def test_retry_with_simplified_prompt(self):
        model = Mock()
        model.complete.side_effect = ["I think it is a CV", GOOD_REPLY]

        verdict = self._classify(model)

        assert verdict.is_match is True
        assert model.complete.call_count == 2
        first_prompt = model.complete.call_args_list[0][0][0]
        second_prompt = model.complete.call_args_list[1][0][0]
        assert len(second_prompt) < len(first_prompt)
        assert "Answer with JSON only" in second_prompt

    def test_fallback_after_two_malformed_responses(self):
        model = Mock()
        model.complete.return_value = "garbage"

        verdict = self._classify(model)

        assert verdict == FALLBACK_VERDICT
        assert model.complete.call_count == 2

    def test_inference_errors_are_retried(self):
        model = Mock()
        model.complete.side_effect = [InferenceError("HTTP 503"), GOOD_REPLY]

        assert self._classify(model).is_match is True

    def test_unexpected_exceptions_become_fallback(self):
        model = Mock()
        model.complete.side_effect = RuntimeError("socket closed")

        verdict = self._classify(model)

        assert verdict == FALLBACK_VERDICT
        assert model.complete.call_count == 2

    def test_non_text_response_is_malformed(self):
        model = Mock()
        model.complete.side_effect = [{"isMatch": True}, GOOD_REPLY]

        assert self._classify(model).is_match is True
        assert model.complete.call_count == 2

    def test_async_callable(self):
        calls = []

        async def ai_caller(prompt, settings):
            calls.append(prompt)
            return GOOD_REPLY

        verdict = asyncio.run(AIClassifier(ai_caller).classify(FILLER, RESUME_POLICY))

        assert verdict.is_match is True
        assert len(calls) == 1

    def test_non_callable_rejected(self):
        with pytest.raises(TypeError):
            AIClassifier(42)
