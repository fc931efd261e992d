"""Built-in OpenAI-compatible async httpx client with tenacity retry.

Provides an asyncio HTTP client for OpenAI-compatible chat completion
APIs over a server-sent-events stream. Reads configuration from
constructor arguments or environment variables.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import AsyncIterator
from typing import Any

import httpx
import tenacity

from strand.llm.errors import (
    LLMAuthError,
    LLMConfigError,
    LLMRateLimitError,
    LLMResponseError,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"

_RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}
_AUTH_ERROR_STATUS_CODES = {401, 403}


def _is_retryable(exc: BaseException) -> bool:
    """Check if an exception is retryable.

    Retryable: 429, 500, 502, 503, 504, connection errors.
    Not retryable: 401, 403, 400, other client errors.
    """
    if isinstance(exc, LLMAuthError):
        return False
    if isinstance(exc, LLMRateLimitError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in _RETRYABLE_STATUS_CODES
    return isinstance(exc, (httpx.ConnectError, httpx.ConnectTimeout))


def _parse_retry_after(raw: str | None) -> float | None:
    if raw is None:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


def _check_status(response: httpx.Response, body: str) -> None:
    """Raise the matching error for a failed response."""
    if response.status_code in _AUTH_ERROR_STATUS_CODES:
        raise LLMAuthError(f"Authentication failed: HTTP {response.status_code} - {body}")
    if response.status_code == 429:
        raise LLMRateLimitError(
            f"Rate limited: HTTP 429 - {body}",
            retry_after=_parse_retry_after(response.headers.get("Retry-After")),
        )
    response.raise_for_status()


def parse_sse_line(line: str) -> str | None:
    """Content delta carried by one ``data:`` line of a chat stream.

    Returns None for keep-alives, comments, the ``[DONE]`` marker and
    chunks without content.

    Raises:
        LLMResponseError: If the payload is not a chat completion chunk.
    """
    if not line.startswith("data:"):
        return None
    payload = line[len("data:"):].strip()
    if not payload or payload == "[DONE]":
        return None
    try:
        chunk = json.loads(payload)
        choices = chunk["choices"]
    except (json.JSONDecodeError, KeyError, TypeError) as exc:
        raise LLMResponseError(f"Malformed stream chunk: {payload[:200]}") from exc
    if not choices:
        return None
    delta = choices[0].get("delta") or {}
    return delta.get("content") or None


class AsyncOpenAIClient:
    """Async httpx client for OpenAI-compatible chat completions.

    Implements the LLMClient protocol. Retries transient errors (429, 5xx,
    connection failures) with exponential backoff and fails immediately on
    authentication errors. A stream is only retried before its first byte
    of content; once deltas have been yielded an error propagates.

    Usage::

        async with AsyncOpenAIClient(api_key="sk-...") as client:
            async for delta in client.stream_chat([{"role": "user", "content": "Hi"}]):
                print(delta, end="")
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        default_model: str = "gpt-4o-mini",
        timeout: float = 120.0,
        max_retries: int = 3,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            api_key: API key. Falls back to STRAND_OPENAI_API_KEY env var.
            base_url: API base URL. Falls back to STRAND_OPENAI_BASE_URL env
                var, then to https://api.openai.com/v1.
            default_model: Default model for chat requests.
            timeout: Request timeout in seconds.
            max_retries: Maximum number of attempts for retryable errors.
            transport: Custom httpx transport (tests use MockTransport).

        Raises:
            LLMConfigError: If no API key is provided or found in environment.
        """
        self._api_key = api_key or os.environ.get("STRAND_OPENAI_API_KEY", "")
        if not self._api_key:
            raise LLMConfigError(
                "No API key provided. Pass api_key= or set STRAND_OPENAI_API_KEY "
                "environment variable."
            )
        self._base_url = (
            base_url or os.environ.get("STRAND_OPENAI_BASE_URL", DEFAULT_BASE_URL)
        ).rstrip("/")
        self._default_model = default_model
        self._max_retries = max_retries
        self._client = httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self._api_key}",
            },
        )

    @property
    def default_model(self) -> str:
        return self._default_model

    def _retryer(self) -> tenacity.AsyncRetrying:
        return tenacity.AsyncRetrying(
            retry=tenacity.retry_if_exception(_is_retryable),
            wait=(
                tenacity.wait_exponential(multiplier=1, min=1, max=30)
                + tenacity.wait_random(0, 2)
            ),
            stop=tenacity.stop_after_attempt(self._max_retries),
            before_sleep=tenacity.before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    def _payload(
        self,
        messages: list[dict[str, str]],
        model: str | None,
        temperature: float | None,
        max_tokens: int | None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": model or self._default_model,
            "messages": messages,
        }
        if temperature is not None:
            payload["temperature"] = temperature
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        payload.update(kwargs)
        return payload

    async def stream_chat(
        self,
        messages: list[dict[str, str]],
        *,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> AsyncIterator[str]:
        """Stream a chat completion, yielding content deltas."""
        payload = self._payload(
            messages, model, temperature, max_tokens, stream=True, **kwargs
        )
        async for attempt in self._retryer():
            with attempt:
                request = self._client.build_request(
                    "POST", f"{self._base_url}/chat/completions", json=payload
                )
                response = await self._client.send(request, stream=True)
                if response.is_error:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    await response.aclose()
                    _check_status(response, body)

        try:
            async for line in response.aiter_lines():
                delta = parse_sse_line(line)
                if delta:
                    yield delta
        finally:
            await response.aclose()

    async def aclose(self) -> None:
        """Close the underlying httpx client."""
        await self._client.aclose()

    async def __aenter__(self) -> AsyncOpenAIClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()
