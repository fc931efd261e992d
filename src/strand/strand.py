"""Strand facade -- the public entry point.

Wires a message store, the configuration, the context-token cache, the
fork engine, the thread archive and the compaction orchestrator, and
exposes their operations keyed by session id.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from strand.engine.cache import ContextTokensCache, ContextTokensService, record_message_tokens
from strand.engine.compaction import CompactionOrchestrator
from strand.engine.context import build_context_result
from strand.engine.forks import ForkEngine
from strand.engine.threads import ThreadArchive
from strand.engine.tokens import get_tokenizer_kind
from strand.exceptions import SessionNotFoundError, ThreadNotFoundError
from strand.llm.summarizer import LLMSummaryGenerator
from strand.models.config import StrandConfig
from strand.models.message import create_message
from strand.models.session import Session, SessionSettings
from strand.state import CompactionUIStore
from strand.storage.memory import InMemoryMessageStore
from strand.storage.sqlite import SqliteMessageStore

if TYPE_CHECKING:
    from strand.engine.forks import Direction
    from strand.llm.protocols import LLMClient
    from strand.models.compaction import BuiltContext, CompactionResult, TokenTotal
    from strand.models.message import Message, Role
    from strand.protocols import MessageStore, ModelCatalog, SummaryGenerator, TokenCounter

logger = logging.getLogger(__name__)


class Strand:
    """Conversation store with forks, threads and context compaction.

    Do not construct directly -- use :meth:`Strand.open` for a SQLite
    database or :meth:`Strand.in_memory`.
    """

    def __init__(
        self,
        store: MessageStore,
        config: StrandConfig,
        *,
        summary_generator: SummaryGenerator | None = None,
        model_catalog: ModelCatalog | None = None,
        token_counter: TokenCounter | None = None,
        ui_state: CompactionUIStore | None = None,
    ) -> None:
        self._store = store
        self._config = config
        self._ui_state = ui_state if ui_state is not None else CompactionUIStore()
        self._tokens = ContextTokensService(
            ContextTokensCache(
                ttl=config.context_tokens_cache_ttl,
                maxsize=config.context_tokens_cache_maxsize,
            ),
            token_counter=token_counter,
        )
        self._forks = ForkEngine(store)
        self._threads = ThreadArchive(store, config)
        self._compaction = CompactionOrchestrator(
            store,
            config,
            self._tokens,
            summary_generator,
            model_catalog=model_catalog,
            ui_sink=self._ui_state,
        )

    @classmethod
    def open(
        cls,
        path: str = ":memory:",
        *,
        config: StrandConfig | None = None,
        summary_generator: SummaryGenerator | None = None,
        llm_client: LLMClient | None = None,
        model_catalog: ModelCatalog | None = None,
        token_counter: TokenCounter | None = None,
    ) -> Strand:
        """Open (or create) a SQLite-backed Strand.

        Args:
            path: SQLite path.  ``":memory:"`` for in-memory (default).
            config: Strand configuration.  Defaults created if *None*.
            summary_generator: Produces compaction summaries.
            llm_client: Used to build an LLMSummaryGenerator when no
                *summary_generator* is given.
            model_catalog: Context windows of models.  Defaults to the
                providers in *config*.
            token_counter: Counter for exact context totals.  tiktoken by
                default, chosen per model.
        """
        if config is None:
            config = StrandConfig(db_path=path)
        if summary_generator is None and llm_client is not None:
            summary_generator = LLMSummaryGenerator(llm_client, model=config.default_model)
        return cls(
            SqliteMessageStore.open(path),
            config,
            summary_generator=summary_generator,
            model_catalog=model_catalog,
            token_counter=token_counter,
        )

    @classmethod
    def in_memory(cls, config: StrandConfig | None = None, **kwargs: Any) -> Strand:
        """Strand over an InMemoryMessageStore."""
        return cls(InMemoryMessageStore(), config or StrandConfig(), **kwargs)

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    @property
    def store(self) -> MessageStore:
        return self._store

    @property
    def config(self) -> StrandConfig:
        return self._config

    @property
    def forks(self) -> ForkEngine:
        return self._forks

    @property
    def threads(self) -> ThreadArchive:
        return self._threads

    @property
    def compaction(self) -> CompactionOrchestrator:
        return self._compaction

    @property
    def context_tokens(self) -> ContextTokensService:
        return self._tokens

    @property
    def ui_state(self) -> CompactionUIStore:
        return self._ui_state

    # ------------------------------------------------------------------
    # Sessions and messages
    # ------------------------------------------------------------------

    async def create_session(
        self,
        name: str = "Untitled",
        *,
        system_prompt: str | None = None,
        settings: SessionSettings | None = None,
    ) -> Session:
        """Create a session whose timeline starts with a system prompt."""
        prompt = system_prompt if system_prompt is not None else self._config.default_system_prompt
        session = Session(
            name=name,
            messages=[create_message("system", prompt)],
            settings=settings or SessionSettings(),
        )
        created = await self._store.create_session(session)
        logger.debug("Created session %s", created.id[:8])
        return created

    async def get_session(self, session_id: str) -> Session | None:
        return await self._store.get_session(session_id)

    async def require_session(self, session_id: str) -> Session:
        """Like :meth:`get_session`, raising SessionNotFoundError when missing."""
        session = await self._store.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def list_sessions(self) -> list[Session]:
        return list(await self._store.list_sessions())

    async def delete_session(self, session_id: str) -> bool:
        self._tokens.cache.clear(session_id)
        self._ui_state.reset(session_id)
        return await self._store.delete_session(session_id)

    async def append_message(
        self, session_id: str, role: Role, content: str = "", **fields: Any
    ) -> Message:
        """Append a message to the live timeline and return it."""
        message = create_message(role, content, **fields)
        await self._store.update_session(
            session_id,
            lambda s: s.model_copy(update={"messages": [*s.messages, message]}),
        )
        return message

    async def update_settings(self, session_id: str, **overrides: Any) -> Session:
        """Change session setting overrides; ``None`` restores the global default."""

        def patch(session: Session) -> Session:
            settings = SessionSettings.model_validate(
                {**session.settings.model_dump(), **overrides}
            )
            return session.model_copy(update={"settings": settings})

        return await self._store.update_session(session_id, patch)

    # ------------------------------------------------------------------
    # Forks
    # ------------------------------------------------------------------

    async def create_new_fork(self, session_id: str, anchor_id: str) -> Session:
        return await self._forks.create_new_fork(session_id, anchor_id)

    async def switch_fork(self, session_id: str, anchor_id: str, direction: Direction) -> Session:
        return await self._forks.switch_fork(session_id, anchor_id, direction)

    async def switch_fork_to_position(
        self, session_id: str, anchor_id: str, target_position: int
    ) -> Session:
        return await self._forks.switch_fork_to_position(session_id, anchor_id, target_position)

    async def delete_fork(self, session_id: str, anchor_id: str) -> Session:
        return await self._forks.delete_fork(session_id, anchor_id)

    async def expand_fork(self, session_id: str, anchor_id: str) -> Session:
        return await self._forks.expand_fork(session_id, anchor_id)

    # ------------------------------------------------------------------
    # Threads
    # ------------------------------------------------------------------

    async def new_thread(self, session_id: str, name: str | None = None) -> Session | None:
        return await self._threads.archive_current_timeline(session_id, name)

    async def new_thread_from_here(self, session_id: str, up_to_message_id: str) -> Session | None:
        return await self._threads.new_thread_from_here(session_id, up_to_message_id)

    async def compress_and_create_thread(self, session_id: str, summary: str) -> Session | None:
        return await self._threads.compress_and_create_thread(session_id, summary)

    async def switch_thread(self, session_id: str, thread_id: str) -> Session | None:
        return await self._threads.switch_thread(session_id, thread_id)

    async def remove_thread(self, session_id: str, thread_id: str) -> Session | None:
        return await self._threads.remove_thread(session_id, thread_id)

    async def rename_thread(self, session_id: str, thread_id: str, name: str) -> Session | None:
        return await self._threads.rename_thread(session_id, thread_id, name)

    async def move_thread_to_session(self, session_id: str, thread_id: str) -> Session | None:
        return await self._threads.move_thread_to_session(session_id, thread_id)

    # ------------------------------------------------------------------
    # Context and compaction
    # ------------------------------------------------------------------

    async def build_context(self, session_id: str, *, thread_id: str | None = None) -> BuiltContext:
        """Context of the live timeline, or of an archived thread.

        Raises:
            SessionNotFoundError: If the session does not exist.
            ThreadNotFoundError: If *thread_id* names no archived thread.
        """
        session = await self.require_session(session_id)
        settings = self._config.merged_settings(session.settings)
        thread = None
        if thread_id is not None:
            thread = session.find_thread(thread_id)
            if thread is None:
                raise ThreadNotFoundError(thread_id)
        messages = thread.messages if thread is not None else session.messages
        points = thread.compaction_points if thread is not None else session.compaction_points
        return build_context_result(
            messages,
            points,
            role_filter=settings.highlight_context_roles,
            keep_tool_call_rounds=settings.keep_tool_call_rounds,
        )

    async def count_context_tokens(self, session_id: str, *, exact: bool = False) -> TokenTotal:
        """Token total of the live context.

        ``exact`` runs the tokenizer and stores the per-message counts it
        measures on the session, so later estimates include them.
        """
        session = await self.require_session(session_id)
        settings = self._config.merged_settings(session.settings)
        if not exact:
            return self._tokens.lookup(session, settings)
        total = self._tokens.compute(session, settings)
        if total.message_tokens:
            kind = get_tokenizer_kind(settings.provider, settings.model_id)
            await self._store.update_session(
                session_id, lambda s: record_message_tokens(s, kind, total.message_tokens)
            )
        return total

    async def needs_compaction(self, session_id: str) -> bool:
        return await self._compaction.needs_compaction(session_id)

    async def run_compaction(
        self,
        session_id: str,
        *,
        force: bool = False,
        boundary_message_id: str | None = None,
    ) -> CompactionResult:
        return await self._compaction.run_compaction(
            session_id, force=force, boundary_message_id=boundary_message_id
        )

    def is_compaction_in_progress(self, session_id: str) -> bool:
        return self._compaction.is_compaction_in_progress(session_id)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Release the store. Safe to call more than once."""
        close = getattr(self._store, "close", None)
        if close is not None:
            await close()

    async def __aenter__(self) -> Strand:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
