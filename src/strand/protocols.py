"""Protocol definitions for Strand.

Defines the pluggable boundaries the core talks to: the message store,
the summary generator, the model catalog, the compaction UI sink and the
token counter. Everything behind these protocols is a collaborator; the
core never reaches past them.

No SQLAlchemy or httpx imports allowed in this module -- pure domain protocols.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any, Protocol, Union, runtime_checkable

if TYPE_CHECKING:
    from strand.models.compaction import SummaryResult
    from strand.models.message import Message
    from strand.models.session import Session


SessionPatchFn = Callable[["Session"], "Session"]
SessionPatch = Union[SessionPatchFn, dict[str, Any]]
PartialTextCallback = Callable[[str], None]


@runtime_checkable
class TokenCounter(Protocol):
    """Protocol for pluggable token counting."""

    def count_text(self, text: str) -> int:
        """Count tokens in a plain string."""
        ...

    def count_messages(self, messages: list[dict]) -> int:
        """Count tokens of role/content dicts including per-message overhead."""
        ...


@runtime_checkable
class MessageStore(Protocol):
    """Asynchronous session store.

    ``update_session`` is the only write path the core uses for existing
    sessions. A callable patch is applied to the latest stored value, so
    concurrent patches compose (last committed wins per field). A dict
    patch replaces the named fields.
    """

    async def get_session(self, session_id: str) -> Session | None:
        ...

    async def update_session(self, session_id: str, patch: SessionPatch) -> Session:
        """Apply ``patch`` atomically and return the stored result.

        Raises:
            SessionNotFoundError: If no session has this id.
        """
        ...

    async def create_session(self, session: Session) -> Session:
        ...

    async def delete_session(self, session_id: str) -> bool:
        ...

    async def list_sessions(self) -> Sequence[Session]:
        ...


@runtime_checkable
class SummaryGenerator(Protocol):
    """Produces the summary text of a compaction.

    ``on_partial_text`` receives the accumulated text so far each time the
    stream advances. Failures are reported in the result, not raised.
    """

    async def generate_summary(
        self,
        messages: list[Message],
        on_partial_text: PartialTextCallback | None = None,
    ) -> SummaryResult:
        ...


@runtime_checkable
class ModelCatalog(Protocol):
    """Looks up a model's context window."""

    def get_context_window(self, provider_id: str | None, model_id: str) -> int | None:
        ...


class CompactionUISink(Protocol):
    """Fire-and-forget notification of a session's compaction state.

    Only the given fields change; omitted fields keep their value.
    """

    def __call__(self, session_id: str, **fields: Any) -> None:
        """Update ``status``, ``error`` and/or ``streaming_text``."""
        ...
