"""LLM client protocol.

Anything with an async ``stream_chat`` and ``aclose`` can back the
summary generator; the built-in AsyncOpenAIClient implements it.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class LLMClient(Protocol):
    """Protocol for pluggable streaming chat clients."""

    def stream_chat(
        self,
        messages: list[dict[str, str]],
        *,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> AsyncIterator[str]:
        """Yield content deltas of the assistant reply as they arrive."""
        ...

    async def aclose(self) -> None:
        """Release underlying resources."""
        ...
