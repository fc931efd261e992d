"""Summary generator backed by a streaming LLM client."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx

from strand.llm.errors import LLMClientError, LLMResponseError
from strand.models.compaction import SummaryResult
from strand.prompts.summarize import build_summary_messages

if TYPE_CHECKING:
    from strand.llm.protocols import LLMClient
    from strand.models.message import Message
    from strand.protocols import PartialTextCallback

logger = logging.getLogger(__name__)


class LLMSummaryGenerator:
    """Implements the SummaryGenerator protocol over an LLMClient.

    ``on_partial_text`` gets the accumulated summary after every delta.
    Client and HTTP errors are returned in the result instead of raised.
    """

    def __init__(
        self,
        client: LLMClient,
        *,
        model: str | None = None,
        temperature: float | None = None,
        target_tokens: int | None = None,
        instructions: str | None = None,
    ) -> None:
        self._client = client
        self._model = model
        self._temperature = temperature
        self._target_tokens = target_tokens
        self._instructions = instructions

    async def generate_summary(
        self,
        messages: list[Message],
        on_partial_text: PartialTextCallback | None = None,
    ) -> SummaryResult:
        prompt = build_summary_messages(
            messages,
            target_tokens=self._target_tokens,
            instructions=self._instructions,
        )
        parts: list[str] = []
        try:
            async for delta in self._client.stream_chat(
                prompt, model=self._model, temperature=self._temperature
            ):
                parts.append(delta)
                if on_partial_text is not None:
                    on_partial_text("".join(parts))
        except (LLMClientError, httpx.HTTPError) as exc:
            logger.warning("Summary generation failed: %s", exc)
            return SummaryResult(success=False, error=exc)

        summary = "".join(parts).strip()
        if not summary:
            return SummaryResult(
                success=False, error=LLMResponseError("Model returned an empty summary")
            )
        return SummaryResult(success=True, summary=summary)
