"""
Stage 3: AI classifier gateway.

Only medium-band attachments get here. The gateway prepares the text,
calls the injected model, validates the JSON verdict and retries once with
a simplified prompt. It never raises: after the retry it returns the fixed
fallback verdict.
"""

import asyncio
import json
import logging
import math
import re
from concurrent.futures import Executor
from typing import Any, Callable, Dict, Optional

from jsonschema import ValidationError, validate

from .errors import InferenceError, MalformedResponseError
from .models import AIVerdict, FALLBACK_VERDICT, INSUFFICIENT_TEXT_VERDICT, clamp
from .policy import Policy
from .prompt_engine import PromptEngine, get_prompt_engine, is_insufficient
from ..providers.base import CompletionSettings
from ..utils.async_utils import call_collaborator

logger = logging.getLogger(__name__)

# Confidence values this far outside [0, 1] are clamped, anything else is invalid
CONFIDENCE_TOLERANCE = 0.1

MAX_REASON_LENGTH = 500

_FENCE = re.compile(r"^\s*```[a-zA-Z]*\s*(.*?)\s*```\s*$", re.DOTALL)

VERDICT_SCHEMA = {
    "type": "object",
    "required": ["isMatch", "confidence"],
    "properties": {
        "isMatch": {"type": ["boolean", "string"]},
        "confidence": {
            "type": "number",
            "minimum": -CONFIDENCE_TOLERANCE,
            "maximum": 1 + CONFIDENCE_TOLERANCE,
        },
        "reason": {"type": ["string", "null"]},
        "insufficientText": {"type": ["boolean", "string", "null"]},
    },
}

_SNAKE_CASE_KEYS = {
    "is_match": "isMatch",
    "insufficient_text": "insufficientText",
}


def strip_code_fence(raw: str) -> str:
    """Remove a ```json ... ``` wrapper if the model added one."""
    text = (raw or "").strip()
    match = _FENCE.match(text)
    return match.group(1).strip() if match else text


def _load_json_object(text: str) -> Dict[str, Any]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        # Models sometimes wrap the object in prose
        start, end = text.find("{"), text.rfind("}")
        if start < 0 or end <= start:
            raise MalformedResponseError("No JSON object in response", text)
        try:
            data = json.loads(text[start:end + 1])
        except json.JSONDecodeError as e:
            raise MalformedResponseError(f"Invalid JSON: {e}", text)
    if not isinstance(data, dict):
        raise MalformedResponseError("Response is not a JSON object", text)
    return data


def _as_bool(value: Any, field_name: str, raw: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise MalformedResponseError(f"'{field_name}' is not a boolean: {value!r}", raw)


def parse_verdict(raw: str) -> AIVerdict:
    """
    Parse and validate a model response.

    Only isMatch and confidence are required. reason defaults to "" and
    insufficientText to False when the model leaves them out; snake_case
    spellings of both flags are accepted.

    Args:
        raw: Raw model output, possibly fenced

    Returns:
        AIVerdict with confidence clamped to [0, 1]

    Raises:
        MalformedResponseError: Missing fields, wrong types or a confidence
            far outside [0, 1]
    """
    text = strip_code_fence(raw)
    if not text:
        raise MalformedResponseError("Empty response", raw or "")

    data = _load_json_object(text)
    for snake, camel in _SNAKE_CASE_KEYS.items():
        if snake in data and camel not in data:
            data[camel] = data.pop(snake)

    confidence = data.get("confidence")
    if isinstance(confidence, float) and math.isnan(confidence):
        raise MalformedResponseError("'confidence' is NaN", raw)

    try:
        validate(instance=data, schema=VERDICT_SCHEMA)
    except ValidationError as e:
        raise MalformedResponseError(f"Invalid verdict: {e.message}", raw)

    insufficient = data.get("insufficientText")
    return AIVerdict(
        is_match=_as_bool(data["isMatch"], "isMatch", raw),
        confidence=clamp(float(data["confidence"]), 0.0, 1.0),
        reason=str(data.get("reason") or "")[:MAX_REASON_LENGTH],
        insufficient_text=False if insufficient is None else _as_bool(insufficient, "insufficientText", raw),
    )


class AIClassifier:
    """
    Gateway between extracted text and the external model.

    Usage:
        classifier = AIClassifier(provider)
        verdict = await classifier.classify(text, RESUME_POLICY)
    """

    def __init__(
        self,
        ai_caller: Callable[[str, CompletionSettings], Any],
        settings: Optional[CompletionSettings] = None,
        prompt_engine: Optional[PromptEngine] = None,
        executor: Optional[Executor] = None,
    ):
        """
        Args:
            ai_caller: complete(prompt, settings) -> str, sync or async.
                Objects with a complete() method are accepted too.
            settings: Generation settings (defaults: temperature 0, 150 tokens)
            prompt_engine: Template engine (defaults to the global one)
            executor: Thread pool for a blocking ai_caller (default pool if None)
        """
        complete = getattr(ai_caller, "complete", ai_caller)
        if not callable(complete):
            raise TypeError("ai_caller must be callable or expose complete()")
        self._complete = complete
        self.settings = settings or CompletionSettings()
        self.prompt_engine = prompt_engine or get_prompt_engine()
        self._executor = executor

    async def classify(self, text: str, policy: Policy) -> AIVerdict:
        """
        Classify extracted attachment text.

        Args:
            text: Extracted text (may be empty)
            policy: Document-type policy selecting the prompt

        Returns:
            AIVerdict; insufficient-text verdict for short input, fallback
            verdict after two failed attempts
        """
        if is_insufficient(text):
            logger.info(f"Stage 3 [{policy.name}]: insufficient text, model not called")
            return INSUFFICIENT_TEXT_VERDICT

        prepared = self.prompt_engine.prepare_text(text)
        if is_insufficient(prepared):
            # Blank first page: nothing left to show the model
            logger.info(f"Stage 3 [{policy.name}]: first page has too little text, model not called")
            return INSUFFICIENT_TEXT_VERDICT

        for attempt, simplified in enumerate((False, True), start=1):
            prompt = self.prompt_engine.build_prompt(prepared, policy, simplified=simplified)
            try:
                raw = await self._invoke(prompt)
                verdict = parse_verdict(raw)
                logger.debug(
                    f"Stage 3 [{policy.name}] attempt {attempt}: "
                    f"match={verdict.is_match} confidence={verdict.confidence:.2f}"
                )
                return verdict
            except MalformedResponseError as e:
                logger.warning(
                    f"Stage 3 [{policy.name}] attempt {attempt}: malformed response: {e}"
                )
            except InferenceError as e:
                logger.warning(f"Stage 3 [{policy.name}] attempt {attempt}: inference error: {e}")

        logger.error(f"Stage 3 [{policy.name}]: classification failed after retry")
        return FALLBACK_VERDICT

    async def _invoke(self, prompt: str) -> str:
        try:
            raw = await call_collaborator(
                self._complete, prompt, self.settings, executor=self._executor
            )
        except (InferenceError, asyncio.CancelledError):
            raise
        except Exception as e:
            raise InferenceError(f"{type(e).__name__}: {e}") from e
        if not isinstance(raw, str):
            raise MalformedResponseError(f"Expected text, got {type(raw).__name__}")
        return raw
