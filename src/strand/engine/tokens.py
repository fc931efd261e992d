"""Token counting for Strand.

Provides TiktokenCounter (production use) and NullTokenCounter (testing),
both implementing the TokenCounter protocol, plus the helpers the
context-token cache keys on: the tokenizer kind of a model and the
best-effort aggregate of per-message counts already known.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from strand.models.message import Message

TokenizerKind = Literal["default", "deepseek"]

# tiktoken has no DeepSeek vocabulary; cl100k_base is the closest stand-in.
TOKENIZER_ENCODINGS: dict[str, str] = {
    "default": "o200k_base",
    "deepseek": "cl100k_base",
}

# OpenAI cookbook overheads.
PER_MESSAGE_TOKENS = 3
RESPONSE_PRIMER_TOKENS = 3


def get_tokenizer_kind(provider_id: str | None, model_id: str | None) -> TokenizerKind:
    """Tokenizer family used to count a model's context."""
    for value in (provider_id, model_id):
        if value and "deepseek" in value.lower():
            return "deepseek"
    return "default"


class TiktokenCounter:
    """Token counter using tiktoken.

    Lazily imports tiktoken and caches the Encoding instance.

    Implements the TokenCounter protocol.
    """

    def __init__(self, encoding_name: str = TOKENIZER_ENCODINGS["default"]) -> None:
        import tiktoken

        self._enc = tiktoken.get_encoding(encoding_name)
        self._encoding_name = self._enc.name

    @classmethod
    def for_kind(cls, kind: TokenizerKind) -> TiktokenCounter:
        return cls(encoding_name=TOKENIZER_ENCODINGS[kind])

    @property
    def encoding_name(self) -> str:
        """Name of the tiktoken encoding being used."""
        return self._encoding_name

    def count_text(self, text: str) -> int:
        """Count tokens in a plain text string. Returns 0 for empty string."""
        if not text:
            return 0
        return len(self._enc.encode(text))

    def count_messages(self, messages: list[dict]) -> int:
        """Count tokens in a structured message list including overhead.

        Uses the OpenAI cookbook formula:
        - 3 tokens per message (role/content/separator overhead)
        - 1 token per name field (if present)
        - 3 tokens for the response primer (after all messages)
        """
        if not messages:
            return 0

        total = 0
        for message in messages:
            total += PER_MESSAGE_TOKENS
            for key, value in message.items():
                if isinstance(value, str):
                    total += len(self._enc.encode(value))
                if key == "name":
                    total += 1
        total += RESPONSE_PRIMER_TOKENS
        return total


class NullTokenCounter:
    """Token counter that always returns 0.

    Useful for testing when token counts are irrelevant.
    """

    def count_text(self, text: str) -> int:
        return 0

    def count_messages(self, messages: list[dict]) -> int:
        return 0


def message_to_dict(message: Message) -> dict:
    """Role/content dict of a message as sent to a model."""
    d: dict = {"role": message.role, "content": message.content or ""}
    for call in message.tool_calls:
        d[f"tool_call:{call.id}"] = f"{call.name}({call.arguments}) -> {call.result}"
    return d


def known_token_count(message: Message, kind: TokenizerKind | None = None) -> int | None:
    """Count recorded for ``kind``, else the message's own ``token_count``."""
    if kind is not None:
        count = message.token_counts.get(kind)
        if count is not None:
            return count
    return message.token_count


def sum_cached_tokens(messages: list[Message], kind: TokenizerKind | None = None) -> int:
    """Sum the per-message token counts that are already known.

    Messages without a cached count contribute nothing; this never runs a
    tokenizer.
    """
    total = 0
    for m in messages:
        count = known_token_count(m, kind)
        if count is not None:
            total += count
    return total
