"""Context-token cache for Strand.

Memoizes the token total of a session's context under a structural key:
``(session_id, max_context_message_count, latest_context_message_id,
latest_compaction_boundary_id, tokenizer_kind)``. Any change of a key field
means a different key, so there is no explicit invalidation; entries only
leave through the time-to-live or the LRU size bound.

ContextTokensService layers the two ways of filling an entry on top: the
cheap estimate from already-known per-message counts (never runs a
tokenizer) and the exact computation with tiktoken.
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

from strand.engine.context import find_latest_compaction_point, get_context_messages_for_token_estimation
from strand.engine.tokens import (
    TiktokenCounter,
    TokenizerKind,
    get_tokenizer_kind,
    message_to_dict,
    sum_cached_tokens,
)
from strand.models.compaction import TokenSource, TokenTotal

if TYPE_CHECKING:
    from collections.abc import Mapping

    from strand.models.config import ResolvedSettings
    from strand.models.message import Message
    from strand.models.session import CompactionPoint, Session
    from strand.protocols import TokenCounter

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 60 * 60.0
DEFAULT_MAXSIZE = 256


@dataclass(frozen=True)
class ContextTokensCacheKey:
    session_id: str
    max_context_message_count: int
    latest_context_message_id: str | None
    latest_compaction_boundary_id: str | None
    tokenizer_kind: TokenizerKind


@dataclass(frozen=True)
class ContextTokensCacheEntry:
    context_tokens: int
    message_count: int
    timestamp: float
    source: Literal["exact", "estimated"] = "estimated"

    @property
    def is_exact(self) -> bool:
        return self.source == "exact"


def get_latest_compaction_boundary_id(
    compaction_points: Iterable[CompactionPoint] | None,
) -> str | None:
    """Boundary id of the latest compaction point, or None when there is none."""
    latest = find_latest_compaction_point(compaction_points)
    return latest.boundary_message_id if latest is not None else None


def make_cache_key(
    session: Session,
    settings: ResolvedSettings,
    context_messages: list[Message],
) -> ContextTokensCacheKey:
    return ContextTokensCacheKey(
        session_id=session.id,
        max_context_message_count=settings.message_limit,
        latest_context_message_id=context_messages[-1].id if context_messages else None,
        latest_compaction_boundary_id=get_latest_compaction_boundary_id(session.compaction_points),
        tokenizer_kind=get_tokenizer_kind(settings.provider, settings.model_id),
    )


def record_message_tokens(
    session: Session,
    kind: TokenizerKind,
    counts: Mapping[str, int],
) -> Session:
    """Copy of ``session`` with ``counts`` stored on its live messages under ``kind``."""
    if not counts:
        return session
    messages = [
        m.model_copy(update={"token_counts": {**m.token_counts, kind: counts[m.id]}})
        if m.id in counts
        else m
        for m in session.messages
    ]
    return session.model_copy(update={"messages": messages})


class ContextTokensCache:
    """LRU table of context-token entries with a time-to-live.

    Process-local and never persisted.
    """

    def __init__(
        self,
        *,
        ttl: float = DEFAULT_TTL_SECONDS,
        maxsize: int = DEFAULT_MAXSIZE,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._entries: OrderedDict[ContextTokensCacheKey, tuple[float, ContextTokensCacheEntry]] = OrderedDict()
        self._ttl = ttl
        self._maxsize = maxsize
        self._clock = clock

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return self.get(key) is not None  # type: ignore[arg-type]

    def get(self, key: ContextTokensCacheKey) -> ContextTokensCacheEntry | None:
        """Entry for ``key``, or None on miss or expiry."""
        item = self._entries.get(key)
        if item is None:
            logger.debug("Context tokens miss: %s", key.session_id[:8])
            return None
        stored_at, entry = item
        if self._clock() - stored_at > self._ttl:
            del self._entries[key]
            logger.debug("Context tokens expired: %s", key.session_id[:8])
            return None
        self._entries.move_to_end(key)
        logger.debug("Context tokens hit: %s", key.session_id[:8])
        return entry

    def put(self, key: ContextTokensCacheKey, entry: ContextTokensCacheEntry) -> None:
        if key in self._entries:
            self._entries.move_to_end(key)
        self._entries[key] = (self._clock(), entry)
        while len(self._entries) > self._maxsize:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Context tokens evict: %s", evicted.session_id[:8])

    def clear(self, session_id: str | None = None) -> None:
        """Drop every entry, or only those of one session."""
        if session_id is None:
            self._entries.clear()
            return
        for key in [k for k in self._entries if k.session_id == session_id]:
            del self._entries[key]


class ContextTokensService:
    """Reads and fills the context-token cache for sessions."""

    def __init__(
        self,
        cache: ContextTokensCache,
        *,
        token_counter: TokenCounter | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._cache = cache
        self._token_counter = token_counter
        self._counters: dict[str, TokenCounter] = {}
        self._clock = clock

    @property
    def cache(self) -> ContextTokensCache:
        return self._cache

    def _counter_for(self, kind: TokenizerKind) -> TokenCounter:
        if self._token_counter is not None:
            return self._token_counter
        counter = self._counters.get(kind)
        if counter is None:
            counter = TiktokenCounter.for_kind(kind)
            self._counters[kind] = counter
        return counter

    def context_messages(self, session: Session, settings: ResolvedSettings) -> list[Message]:
        return get_context_messages_for_token_estimation(session, settings)

    def lookup(self, session: Session, settings: ResolvedSettings) -> TokenTotal:
        """Cached total, or the known-counts estimate written into the cache.

        Never runs a tokenizer.
        """
        messages = self.context_messages(session, settings)
        key = make_cache_key(session, settings, messages)
        cached = self._cache.get(key)
        if cached is not None:
            source = TokenSource.CACHED_EXACT if cached.is_exact else TokenSource.CACHED_ESTIMATE
            return TokenTotal(cached.context_tokens, cached.message_count, source)

        estimate = sum_cached_tokens(messages, key.tokenizer_kind)
        self._cache.put(
            key,
            ContextTokensCacheEntry(
                context_tokens=estimate,
                message_count=len(messages),
                timestamp=self._clock(),
            ),
        )
        return TokenTotal(estimate, len(messages), TokenSource.ESTIMATED)

    def compute(self, session: Session, settings: ResolvedSettings) -> TokenTotal:
        """Exact total with the model's tokenizer; reuses an exact entry.

        Context messages with no count for the tokenizer kind are also
        measured one by one. The result's ``message_tokens`` carries those
        counts so the caller can persist them with :func:`record_message_tokens`.
        """
        messages = self.context_messages(session, settings)
        key = make_cache_key(session, settings, messages)
        cached = self._cache.get(key)
        if cached is not None and cached.is_exact:
            return TokenTotal(cached.context_tokens, cached.message_count, TokenSource.CACHED_EXACT)

        counter = self._counter_for(key.tokenizer_kind)
        tokens = counter.count_messages([message_to_dict(m) for m in messages])
        measured = {
            m.id: counter.count_messages([message_to_dict(m)])
            for m in messages
            if key.tokenizer_kind not in m.token_counts
        }
        self._cache.put(
            key,
            ContextTokensCacheEntry(
                context_tokens=tokens,
                message_count=len(messages),
                timestamp=self._clock(),
                source="exact",
            ),
        )
        logger.debug("Computed %d context tokens for %s", tokens, session.id[:8])
        return TokenTotal(tokens, len(messages), TokenSource.COMPUTED, message_tokens=measured)
