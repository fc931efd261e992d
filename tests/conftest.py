"""Shared test fixtures for Strand.

Provides in-memory stores, a configuration with a small context window,
scripted summary generators and helpers that build sessions.
"""

from __future__ import annotations

import asyncio

import pytest

from strand.models.compaction import SummaryResult
from strand.models.config import ModelInfo, ProviderConfig, StrandConfig
from strand.models.message import Message, create_message
from strand.models.session import Session
from strand.storage.memory import InMemoryMessageStore
from strand.strand import Strand


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class FakeSummaryGenerator:
    """Scripted SummaryGenerator.

    Streams ``summary`` word by word through ``on_partial_text``. When a
    ``gate`` event is given, waits for it before answering. ``fail`` makes
    every call return a failed result carrying that error.
    """

    def __init__(
        self,
        summary: str = "Previously in this conversation: the user asked questions.",
        *,
        fail: Exception | None = None,
        gate: asyncio.Event | None = None,
    ) -> None:
        self.summary = summary
        self.fail = fail
        self.gate = gate
        self.calls: list[list[Message]] = []
        self.partials: list[str] = []

    async def generate_summary(self, messages, on_partial_text=None) -> SummaryResult:
        self.calls.append(list(messages))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail is not None:
            return SummaryResult(success=False, error=self.fail)
        text = ""
        for word in self.summary.split(" "):
            text = f"{text} {word}".strip()
            self.partials.append(text)
            if on_partial_text is not None:
                on_partial_text(text)
        return SummaryResult(success=True, summary=self.summary)


class FixedTokenCounter:
    """Counts ``per_message`` tokens per message and one per word of text."""

    def __init__(self, per_message: int = 10) -> None:
        self.per_message = per_message
        self.calls = 0

    def count_text(self, text: str) -> int:
        return len(text.split())

    def count_messages(self, messages: list[dict]) -> int:
        self.calls += 1
        return self.per_message * len(messages)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def msg(role: str, content: str = "", **fields) -> Message:
    return create_message(role, content, **fields)


def make_session(turns: int = 2, *, token_count: int | None = None, **fields) -> Session:
    """Session whose live timeline is a system prompt followed by ``turns``
    user/assistant pairs ("question N" / "answer N")."""
    messages = [msg("system", "You are helpful.", token_count=token_count)]
    for i in range(turns):
        messages.append(msg("user", f"question {i}", token_count=token_count))
        messages.append(msg("assistant", f"answer {i}", token_count=token_count))
    return Session(messages=messages, **fields)


def contents(messages) -> list[str]:
    return [m.content for m in messages]


def ids(messages) -> list[str]:
    return [m.id for m in messages]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def config() -> StrandConfig:
    """Configuration with one model whose context window is 1000 tokens."""
    return StrandConfig(
        default_provider="openai",
        default_model="gpt-4o-mini",
        providers={
            "openai": ProviderConfig(
                models=[ModelInfo(model_id="gpt-4o-mini", context_window=1000)]
            )
        },
    )


@pytest.fixture
def store() -> InMemoryMessageStore:
    return InMemoryMessageStore()


@pytest.fixture
def summarizer() -> FakeSummaryGenerator:
    return FakeSummaryGenerator()


@pytest.fixture
def counter() -> FixedTokenCounter:
    return FixedTokenCounter()


@pytest.fixture
def strand(config, summarizer, counter) -> Strand:
    """In-memory Strand with the fake summarizer and token counter."""
    return Strand.in_memory(config, summary_generator=summarizer, token_counter=counter)
