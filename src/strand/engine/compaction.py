"""Compaction orchestrator for Strand.

Decides when a session's context has outgrown its model and condenses it:
a summary generator writes an assistant message marked ``is_summary`` and
a CompactionPoint records which messages it replaces. Both are appended
in one store patch, so a reader sees either neither or both.

At most one compaction runs per session at a time. The in-flight set is
owned by the orchestrator; the membership check and the insertion happen
without an ``await`` in between, so on a single event loop no second
caller can get past the guard.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from strand.engine.context import get_context_messages_for_token_estimation
from strand.exceptions import CompactionError, SessionNotFoundError
from strand.models.compaction import (
    CompactionResult,
    CompactionStatus,
    OverflowCheck,
)
from strand.models.message import create_message, find_index
from strand.models.session import CompactionPoint

if TYPE_CHECKING:
    from strand.engine.cache import ContextTokensService
    from strand.models.config import StrandConfig
    from strand.models.message import Message
    from strand.models.session import Session, SessionSettings
    from strand.protocols import (
        CompactionUISink,
        MessageStore,
        ModelCatalog,
        SummaryGenerator,
    )

logger = logging.getLogger(__name__)

DEFAULT_COMPACTION_THRESHOLD = 0.8


def is_auto_compaction_enabled(
    session_settings: SessionSettings | None,
    config: StrandConfig | None,
) -> bool:
    """Session override wins, then the global setting, then True."""
    if session_settings is not None and session_settings.auto_compaction is not None:
        return session_settings.auto_compaction
    if config is not None:
        return config.auto_compaction
    return True


def check_overflow(
    tokens: int,
    context_window: int | None,
    threshold: float = DEFAULT_COMPACTION_THRESHOLD,
) -> OverflowCheck:
    """Whether ``tokens`` exceeds ``context_window * threshold``.

    Without a known context window nothing overflows.
    """
    if not context_window:
        return OverflowCheck(is_overflow=False, tokens=tokens, limit=None)
    limit = context_window * threshold
    return OverflowCheck(is_overflow=tokens > limit, tokens=tokens, limit=limit)


class ConfigModelCatalog:
    """Model catalog backed by ``StrandConfig.providers``."""

    def __init__(self, config: StrandConfig) -> None:
        self._config = config

    def get_context_window(self, provider_id: str | None, model_id: str) -> int | None:
        if provider_id is not None:
            provider = self._config.providers.get(provider_id)
            candidates = [provider] if provider is not None else []
        else:
            candidates = list(self._config.providers.values())
        for provider in candidates:
            for model in provider.models:
                if model.model_id == model_id:
                    return model.context_window
        return None


def _last_boundary_candidate(messages: list[Message]) -> Message | None:
    for message in reversed(messages):
        if not message.is_summary and not message.generating:
            return message
    return None


class CompactionOrchestrator:
    """Runs and guards compactions for sessions in one store."""

    def __init__(
        self,
        store: MessageStore,
        config: StrandConfig,
        token_service: ContextTokensService,
        summary_generator: SummaryGenerator | None = None,
        *,
        model_catalog: ModelCatalog | None = None,
        ui_sink: CompactionUISink | None = None,
    ) -> None:
        self._store = store
        self._config = config
        self._tokens = token_service
        self._summarizer = summary_generator
        self._catalog = model_catalog if model_catalog is not None else ConfigModelCatalog(config)
        self._ui_sink = ui_sink
        self._in_flight: set[str] = set()

    @property
    def summary_generator(self) -> SummaryGenerator | None:
        return self._summarizer

    @summary_generator.setter
    def summary_generator(self, generator: SummaryGenerator | None) -> None:
        self._summarizer = generator

    def is_compaction_in_progress(self, session_id: str) -> bool:
        return session_id in self._in_flight

    def _publish(self, session_id: str, **fields: object) -> None:
        if self._ui_sink is not None:
            self._ui_sink(session_id, **fields)

    def context_window_for(self, provider_id: str | None, model_id: str) -> int | None:
        window = self._catalog.get_context_window(provider_id, model_id)
        if window is None:
            return self._config.default_context_window
        return window

    async def needs_compaction(self, session_id: str) -> bool:
        """Whether the session's context is past its compaction threshold.

        Uses the cached token total, or on a miss the sum of per-message
        counts already known (written back to the cache). Never runs a
        tokenizer.
        """
        session = await self._store.get_session(session_id)
        if session is None:
            logger.debug("needs_compaction: session %s not found", session_id[:8])
            return False
        if not is_auto_compaction_enabled(session.settings, self._config):
            return False
        settings = self._config.merged_settings(session.settings)
        if not settings.model_id:
            logger.debug("needs_compaction: no model configured for %s", session_id[:8])
            return False

        total = self._tokens.lookup(session, settings)
        window = self.context_window_for(settings.provider, settings.model_id)
        check = check_overflow(total.tokens, window, settings.compaction_threshold)
        logger.debug(
            "needs_compaction %s: %d tokens (%s), limit %s -> %s",
            session_id[:8],
            total.tokens,
            total.source.value,
            check.limit,
            check.is_overflow,
        )
        return check.is_overflow

    async def run_compaction(
        self,
        session_id: str,
        *,
        force: bool = False,
        boundary_message_id: str | None = None,
    ) -> CompactionResult:
        """Summarize the session's context and commit a compaction point.

        Args:
            session_id: Session to compact.
            force: Skip the ``needs_compaction`` check.
            boundary_message_id: Summarize only the context up to and
                including this message, and use it as the boundary.

        Returns:
            ``success=True, compacted=False`` when nothing was needed or a
            compaction of this session is already running. Failures come
            back as ``success=False`` with the error; the session is then
            left untouched.
        """
        if not force and not await self.needs_compaction(session_id):
            return CompactionResult(success=True, compacted=False)

        if session_id in self._in_flight:
            logger.debug("Compaction of %s already running, skipping", session_id[:8])
            return CompactionResult(success=True, compacted=False)
        self._in_flight.add(session_id)

        try:
            self._publish(
                session_id, status=CompactionStatus.RUNNING, error=None, streaming_text=""
            )
            try:
                result = await self._compact(session_id, boundary_message_id)
            except Exception as exc:
                logger.warning("Compaction of %s raised: %s", session_id[:8], exc, exc_info=True)
                result = CompactionResult(success=False, compacted=False, error=exc)

            if result.success:
                self._publish(session_id, status=CompactionStatus.IDLE, error=None, streaming_text="")
            else:
                message = str(result.error) if result.error else "Compaction failed"
                logger.warning("Compaction of %s failed: %s", session_id[:8], message)
                self._publish(
                    session_id, status=CompactionStatus.FAILED, error=message, streaming_text=""
                )
            return result
        finally:
            self._in_flight.discard(session_id)

    async def _compact(self, session_id: str, boundary_message_id: str | None) -> CompactionResult:
        session = await self._store.get_session(session_id)
        if session is None:
            return CompactionResult(
                success=False, compacted=False, error=SessionNotFoundError(session_id)
            )
        settings = self._config.merged_settings(session.settings)
        if not settings.model_id:
            return CompactionResult(success=True, compacted=False)

        context = get_context_messages_for_token_estimation(session, settings)
        if boundary_message_id is not None:
            cut = find_index(context, boundary_message_id)
            if cut < 0:
                return CompactionResult(
                    success=False,
                    compacted=False,
                    error=CompactionError(
                        f"Boundary message {boundary_message_id} is not in the current context"
                    ),
                )
            context = context[:cut + 1]

        if boundary_message_id is not None:
            boundary_id: str | None = boundary_message_id
        else:
            boundary = _last_boundary_candidate(session.messages)
            boundary_id = boundary.id if boundary is not None else None
        if boundary_id is None or not any(m.role != "system" for m in context):
            return CompactionResult(
                success=False,
                compacted=False,
                error=CompactionError("No messages to compact"),
            )

        if self._summarizer is None:
            return CompactionResult(
                success=False,
                compacted=False,
                error=CompactionError("No summary generator configured"),
            )

        logger.info("Compacting %s: %d message(s)", session_id[:8], len(context))
        summary = await self._summarizer.generate_summary(
            context,
            on_partial_text=lambda text: self._publish(session_id, streaming_text=text),
        )
        if not summary.success or not summary.summary:
            return CompactionResult(
                success=False,
                compacted=False,
                error=summary.error or CompactionError("Failed to generate summary"),
            )

        summary_message = create_message("assistant", summary.summary, is_summary=True)
        point = CompactionPoint(
            boundary_message_id=boundary_id,
            summary_message_id=summary_message.id,
        )

        def commit(current: Session) -> Session:
            return current.model_copy(
                update={
                    "messages": [*current.messages, summary_message],
                    "compaction_points": [*current.compaction_points, point],
                }
            )

        await self._store.update_session(session_id, commit)
        logger.info(
            "Compacted %s: summary %s, boundary %s",
            session_id[:8],
            summary_message.id[:8],
            boundary_id[:8],
        )
        return CompactionResult(
            success=True,
            compacted=True,
            summary_message_id=summary_message.id,
            compaction_point=point,
        )
