"""Domain models for the compaction subsystem.

Result objects returned by the orchestrator, the UI-observable state of a
session's compaction, and the explicit variants that tell an exact answer
apart from a degraded one (stale compaction boundary, estimated tokens).
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field

from strand.models.message import Message
from strand.models.session import CompactionPoint


class CompactionStatus(str, enum.Enum):
    """UI-observable compaction state of a session."""

    IDLE = "idle"
    RUNNING = "running"
    FAILED = "failed"


@dataclass(frozen=True)
class CompactionUIState:
    status: CompactionStatus = CompactionStatus.IDLE
    error: str | None = None
    streaming_text: str = ""


@dataclass(frozen=True)
class CompactionResult:
    """Outcome of ``run_compaction``.

    ``success=True, compacted=False`` is the no-op answer: compaction was not
    needed, or another compaction of the same session was already running.
    """

    success: bool
    compacted: bool
    error: Exception | None = None
    summary_message_id: str | None = None
    compaction_point: CompactionPoint | None = field(default=None, repr=False)


@dataclass(frozen=True)
class SummaryResult:
    """What a summary generator returns."""

    success: bool
    summary: str | None = None
    error: Exception | None = None


@dataclass(frozen=True)
class OverflowCheck:
    is_overflow: bool
    tokens: int
    limit: float | None
    """``context_window * threshold``; None when no context window is known."""


class ContextSource(str, enum.Enum):
    """How a built context was derived."""

    FULL = "full"
    """No compaction point: the whole timeline."""
    COMPACTED = "compacted"
    """Summary plus everything after the latest compaction boundary."""
    STALE_FALLBACK = "stale_fallback"
    """The latest boundary id is gone; fell back to the whole timeline."""


@dataclass(frozen=True)
class BuiltContext:
    messages: list[Message]
    source: ContextSource


class TokenSource(str, enum.Enum):
    """Where a context token total came from."""

    CACHED_EXACT = "cached_exact"
    CACHED_ESTIMATE = "cached_estimate"
    ESTIMATED = "estimated"
    COMPUTED = "computed"

    @property
    def is_exact(self) -> bool:
        return self in (TokenSource.CACHED_EXACT, TokenSource.COMPUTED)


@dataclass(frozen=True)
class TokenTotal:
    tokens: int
    message_count: int
    source: TokenSource
    # Per-message counts newly measured by an exact computation, by message id.
    message_tokens: dict[str, int] = field(default_factory=dict, compare=False)
