"""
LLM Client — the generative completion service used by panels and pipelines.

All generative calls go through :class:`LLMClient`, which wraps
``litellm.acompletion`` with:

- exponential backoff retry (base delay × 2^attempt, 3 attempts by default)
- no retry on authentication or malformed-request errors
- a structured mode that extracts JSON from the raw text and hands it
  to a caller-supplied validator

JSON handling is two explicit steps so each can be tested on its own:
raw text → extracted JSON string (:func:`extract_json_text`) → parsed
value (:func:`parse_json_payload`). An extraction failure raises
:class:`JSONExtractionError`; a schema failure is the validator's own
error and is never conflated with it.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

import litellm

from persona_x.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

CompletionFn = Callable[..., Awaitable[Any]]

_CODE_FENCE = re.compile(r"```(?:json)?\s*\n?([\s\S]*?)\n?```")
_RAW_JSON = re.compile(r"(\{[\s\S]*\}|\[[\s\S]*\])")


class LLMServiceError(Exception):
    """Raised when the generative service fails after all retries."""
    pass


class JSONExtractionError(Exception):
    """Raised when a completion does not contain parseable JSON."""

    def __init__(self, message: str, raw_text: str) -> None:
        super().__init__(message)
        self.raw_text = raw_text


@dataclass
class LLMResponse:
    content: str
    input_tokens: int = 0
    output_tokens: int = 0


def extract_json_text(text: str) -> str:
    """
    Pull the JSON portion out of a completion.

    Tries, in order: a fenced code block, the outermost embedded
    object/array, then the stripped text as-is.
    """
    fenced = _CODE_FENCE.search(text)
    if fenced and fenced.group(1).strip():
        return fenced.group(1).strip()

    embedded = _RAW_JSON.search(text)
    if embedded:
        return embedded.group(1).strip()

    return text.strip()


def parse_json_payload(text: str) -> Any:
    """
    Extract and decode JSON from raw completion text.

    Raises:
        JSONExtractionError: If no valid JSON can be decoded.
    """
    candidate = extract_json_text(text)
    try:
        return json.loads(candidate)
    except json.JSONDecodeError as e:
        raise JSONExtractionError(
            f"Failed to parse LLM response as JSON: {text[:200]}", raw_text=text
        ) from e


class LLMClient:
    """
    Async completion client with retry.

    The completion function defaults to ``litellm.acompletion`` and can
    be replaced (e.g. by a scripted fake in tests).
    """

    def __init__(
        self,
        model: str | None = None,
        max_retries: int | None = None,
        base_delay: float | None = None,
        completion_fn: CompletionFn | None = None,
        non_retryable: tuple[type[BaseException], ...] | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """
        Args:
            model: LiteLLM model identifier used when a call does not override it.
            max_retries: Maximum attempts per call.
            base_delay: Initial backoff delay in seconds; doubles per attempt.
            completion_fn: Async callable with the ``litellm.acompletion`` signature.
            non_retryable: Exception types that are re-raised immediately.
            sleep: Awaitable used for backoff delays.
        """
        self.model = model or settings.panel_model
        self.max_retries = max_retries if max_retries is not None else settings.llm_max_retries
        self.base_delay = base_delay if base_delay is not None else settings.llm_retry_base_delay
        self.completion_fn = completion_fn or litellm.acompletion
        self.non_retryable = (
            non_retryable
            if non_retryable is not None
            else (litellm.AuthenticationError, litellm.BadRequestError)
        )
        self._sleep = sleep

    async def complete(
        self,
        system: str | None,
        messages: list[dict[str, str]],
        max_tokens: int = 4096,
        temperature: float = 0.7,
        model: str | None = None,
    ) -> LLMResponse:
        """
        Free-text completion.

        Args:
            system: Optional system prompt.
            messages: Conversation as ``{"role", "content"}`` dicts.
            max_tokens: Completion token limit.
            temperature: Sampling temperature.
            model: Per-call model override.

        Returns:
            The completion text and token usage.

        Raises:
            LLMServiceError: If every attempt fails with a retryable error.
        """
        payload = ([{"role": "system", "content": system}] if system else []) + list(messages)
        target_model = model or self.model
        last_error: Exception | None = None

        for attempt in range(self.max_retries):
            try:
                response = await self.completion_fn(
                    model=target_model,
                    messages=payload,
                    max_tokens=max_tokens,
                    temperature=temperature,
                )
                content = response.choices[0].message.content
                if not content:
                    raise LLMServiceError("No text content in LLM response")
                usage = getattr(response, "usage", None)
                return LLMResponse(
                    content=content,
                    input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
                    output_tokens=getattr(usage, "completion_tokens", 0) or 0,
                )
            except self.non_retryable:
                logger.error("LLM request rejected by %s; not retrying", target_model)
                raise
            except Exception as e:
                last_error = e
                if attempt < self.max_retries - 1:
                    delay = self.base_delay * (2**attempt)
                    logger.warning(
                        "LLM request failed (attempt %d/%d): %s; retrying in %.1fs",
                        attempt + 1,
                        self.max_retries,
                        e,
                        delay,
                    )
                    await self._sleep(delay)

        logger.error("LLM request failed after %d attempts: %s", self.max_retries, last_error)
        raise LLMServiceError(
            f"LLM request failed after {self.max_retries} attempts: {last_error}"
        ) from last_error

    async def complete_structured(
        self,
        system: str | None,
        messages: list[dict[str, str]],
        validator: Callable[[Any], T],
        max_tokens: int = 4096,
        temperature: float = 0.7,
        model: str | None = None,
    ) -> T:
        """
        Completion whose JSON payload must satisfy ``validator``.

        Raises:
            LLMServiceError: On transport failure after retries.
            JSONExtractionError: If the completion holds no parseable JSON.
            Exception: Whatever ``validator`` raises for a schema mismatch.
        """
        response = await self.complete(
            system, messages, max_tokens=max_tokens, temperature=temperature, model=model
        )
        return validator(parse_json_payload(response.content))
