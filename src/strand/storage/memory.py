"""In-memory session store.

Keeps Session objects as-is, so message cancellation hooks stay attached
for the lifetime of the process. Writes are serialized by an asyncio.Lock
and patches are applied to the latest value.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Sequence

from strand.exceptions import SessionExistsError, SessionNotFoundError
from strand.storage.repositories import SessionStore, apply_patch

if TYPE_CHECKING:
    from strand.models.session import Session
    from strand.protocols import SessionPatch

logger = logging.getLogger(__name__)


class InMemoryMessageStore(SessionStore):
    def __init__(self, sessions: Sequence[Session] = ()) -> None:
        self._sessions: dict[str, Session] = {s.id: s for s in sessions}
        self._lock = asyncio.Lock()

    async def get_session(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    async def update_session(self, session_id: str, patch: SessionPatch) -> Session:
        async with self._lock:
            current = self._sessions.get(session_id)
            if current is None:
                raise SessionNotFoundError(session_id)
            updated = apply_patch(current, patch)
            self._sessions[session_id] = updated
            logger.debug("Updated session %s", session_id[:8])
            return updated

    async def create_session(self, session: Session) -> Session:
        async with self._lock:
            if session.id in self._sessions:
                raise SessionExistsError(session.id)
            self._sessions[session.id] = session
            return session

    async def delete_session(self, session_id: str) -> bool:
        async with self._lock:
            return self._sessions.pop(session_id, None) is not None

    async def list_sessions(self) -> Sequence[Session]:
        return list(self._sessions.values())
