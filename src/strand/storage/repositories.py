"""Abstract session store for Strand.

Defines the ABC every message store implements. No SQLAlchemy imports
here -- pure abstract contract plus the patch semantics shared by all
implementations.

Concrete implementations are in memory.py and sqlite.py.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Sequence

from strand.models.session import Session

if TYPE_CHECKING:
    from strand.protocols import SessionPatch


def apply_patch(session: Session, patch: SessionPatch) -> Session:
    """Apply a callable or dict patch to ``session`` without mutating it."""
    if callable(patch):
        result = patch(session)
        if not isinstance(result, Session):
            raise TypeError(
                f"Session patch must return a Session, got {type(result).__name__}"
            )
        return result
    return session.model_copy(update=dict(patch))


class SessionStore(ABC):
    """Abstract interface for session storage operations."""

    @abstractmethod
    async def get_session(self, session_id: str) -> Session | None:
        """Get a session by id. Returns None if not found."""
        ...

    @abstractmethod
    async def update_session(self, session_id: str, patch: SessionPatch) -> Session:
        """Apply ``patch`` to the latest stored value and persist the result.

        Raises:
            SessionNotFoundError: If no session has this id.
        """
        ...

    @abstractmethod
    async def create_session(self, session: Session) -> Session:
        """Store a new session.

        Raises:
            SessionExistsError: If the id is already taken.
        """
        ...

    @abstractmethod
    async def delete_session(self, session_id: str) -> bool:
        """Delete a session. Returns True if it existed."""
        ...

    @abstractmethod
    async def list_sessions(self) -> Sequence[Session]:
        """All sessions, oldest first."""
        ...

    async def close(self) -> None:
        """Release resources. No-op by default."""
