"""Thread archive for Strand.

Moves timelines between the live slot of a session and its archived
threads. A timeline always travels together with its own fork map and
compaction points, so nothing in one timeline ever refers to another.

Operations on a missing session or thread are no-ops and return None.
Before the live timeline is archived or dropped, the cancellation hook
of each live message is fired so in-flight generations stop writing into
a timeline that is no longer live.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from strand.engine.forks import find_message_location, timeline_at
from strand.models.message import create_message, find_index
from strand.models.session import Session, SessionThread

if TYPE_CHECKING:
    from strand.models.config import StrandConfig
    from strand.models.message import Message
    from strand.protocols import MessageStore

logger = logging.getLogger(__name__)

SUMMARY_PREFIX = "Previous conversation summary:\n\n"


def cancel_generations(messages: list[Message]) -> None:
    """Fire the cancellation hook of every message that has one."""
    for message in messages:
        message.cancel()


def snapshot_live(session: Session, name: str | None = None) -> SessionThread:
    """Archive record of the live timeline with its fork and compaction state."""
    return SessionThread(
        name=name or session.live_thread_name,
        messages=list(session.messages),
        message_forks=dict(session.message_forks),
        compaction_points=list(session.compaction_points),
    )


def _live_from_thread(thread: SessionThread) -> dict:
    return {
        "messages": list(thread.messages),
        "message_forks": dict(thread.message_forks),
        "compaction_points": list(thread.compaction_points),
        "thread_name": thread.name,
    }


def _system_prompt_copy(messages: list[Message]) -> Message | None:
    system = next((m for m in messages if m.role == "system"), None)
    if system is None:
        return None
    return create_message("system", system.content)


class ThreadArchive:
    """Archive, restore, remove and move timelines of a session."""

    def __init__(self, store: MessageStore, config: StrandConfig) -> None:
        self._store = store
        self._config = config

    async def _get(self, session_id: str) -> Session | None:
        session = await self._store.get_session(session_id)
        if session is None:
            logger.debug("Session %s not found", session_id[:8])
        return session

    async def _archive_with(
        self, session_id: str, new_live: list[Message], *, name: str | None = None
    ) -> Session:
        """Push the live timeline onto ``threads`` and install ``new_live``."""

        def patch(session: Session) -> Session:
            return session.model_copy(
                update={
                    "threads": [*session.threads, snapshot_live(session, name)],
                    "messages": new_live,
                    "message_forks": {},
                    "compaction_points": [],
                    "thread_name": "",
                }
            )

        updated = await self._store.update_session(session_id, patch)
        logger.debug(
            "Archived live timeline of %s (%d thread(s))", session_id[:8], len(updated.threads)
        )
        return updated

    async def archive_current_timeline(
        self, session_id: str, name: str | None = None
    ) -> Session | None:
        """Start a fresh thread, keeping only a copy of the system prompt.

        The new live timeline holds a fresh copy of the session's system
        prompt, or the configured default prompt when it has none.
        """
        session = await self._get(session_id)
        if session is None:
            return None
        cancel_generations(session.messages)
        system = _system_prompt_copy(session.messages)
        if system is None:
            system = create_message("system", self._config.default_system_prompt)
        return await self._archive_with(session_id, [system], name=name)

    async def new_thread_from_here(self, session_id: str, up_to_message_id: str) -> Session | None:
        """Archive the live timeline and continue from a copy of its prefix.

        The copy runs up to and including ``up_to_message_id`` and every
        copied message gets a fresh id.
        """
        session = await self._get(session_id)
        if session is None:
            return None
        boundary = find_index(session.messages, up_to_message_id)
        if boundary < 0:
            return None
        cancel_generations(session.messages)
        prefix = [m.with_new_id() for m in session.messages[:boundary + 1]]
        return await self._archive_with(session_id, prefix)

    async def compress_and_create_thread(self, session_id: str, summary: str) -> Session | None:
        """Archive the live timeline and continue from its summary."""
        session = await self._get(session_id)
        if session is None:
            return None
        cancel_generations(session.messages)
        new_live: list[Message] = []
        system = _system_prompt_copy(session.messages)
        if system is not None and system.content:
            new_live.append(system)
        new_live.append(create_message("user", f"{SUMMARY_PREFIX}{summary}"))
        return await self._archive_with(session_id, new_live)

    async def switch_thread(self, session_id: str, thread_id: str) -> Session | None:
        """Make an archived thread live; the live timeline is archived in its place."""
        session = await self._get(session_id)
        if session is None or session.find_thread(thread_id) is None:
            return None
        cancel_generations(session.messages)

        def patch(current: Session) -> Session:
            target = current.find_thread(thread_id)
            if target is None:
                return current
            threads = [t for t in current.threads if t.id != thread_id]
            threads.append(snapshot_live(current))
            return current.model_copy(update={"threads": threads, **_live_from_thread(target)})

        updated = await self._store.update_session(session_id, patch)
        logger.debug("Switched %s to thread %s", session_id[:8], thread_id[:8])
        return updated

    async def remove_thread(self, session_id: str, thread_id: str) -> Session | None:
        """Delete an archived thread; ``thread_id == session_id`` means the live one."""
        if thread_id == session_id:
            return await self.remove_current_thread(session_id)
        session = await self._get(session_id)
        if session is None or session.find_thread(thread_id) is None:
            return None
        return await self._store.update_session(
            session_id,
            lambda s: s.model_copy(
                update={"threads": [t for t in s.threads if t.id != thread_id]}
            ),
        )

    async def remove_current_thread(self, session_id: str) -> Session | None:
        """Drop the live timeline.

        The most recently archived thread becomes live. Without archived
        threads the live timeline is reset to its first system message.
        """
        session = await self._get(session_id)
        if session is None:
            return None
        cancel_generations(session.messages)

        def patch(current: Session) -> Session:
            if current.threads:
                last = current.threads[-1]
                return current.model_copy(
                    update={"threads": current.threads[:-1], **_live_from_thread(last)}
                )
            system = [m for m in current.messages if m.role == "system"][:1]
            return current.model_copy(
                update={
                    "messages": system,
                    "message_forks": {},
                    "compaction_points": [],
                    "thread_name": "",
                }
            )

        return await self._store.update_session(session_id, patch)

    async def rename_thread(self, session_id: str, thread_id: str, name: str) -> Session | None:
        """Rename an archived thread, or the live one when ``thread_id == session_id``."""
        session = await self._get(session_id)
        if session is None:
            return None
        if thread_id == session_id:
            return await self._store.update_session(session_id, {"thread_name": name})
        if session.find_thread(thread_id) is None:
            return None
        return await self._store.update_session(
            session_id,
            lambda s: s.model_copy(
                update={
                    "threads": [
                        t.model_copy(update={"name": name}) if t.id == thread_id else t
                        for t in s.threads
                    ]
                }
            ),
        )

    async def move_thread_to_session(self, session_id: str, thread_id: str) -> Session | None:
        """Move a thread out into a new session of its own and return that session.

        ``thread_id == session_id`` moves the live timeline; the source
        session then falls back as in ``remove_current_thread``.
        """
        session = await self._get(session_id)
        if session is None:
            return None

        if thread_id == session_id:
            moved = Session(
                name=session.live_thread_name,
                messages=list(session.messages),
                message_forks=dict(session.message_forks),
                compaction_points=list(session.compaction_points),
                settings=session.settings,
            )
            await self._store.create_session(moved)
            await self.remove_current_thread(session_id)
        else:
            thread = session.find_thread(thread_id)
            if thread is None:
                return None
            moved = Session(
                name=thread.name or session.name,
                messages=list(thread.messages),
                message_forks=dict(thread.message_forks),
                compaction_points=list(thread.compaction_points),
                settings=session.settings,
            )
            await self._store.create_session(moved)
            await self.remove_thread(session_id, thread_id)

        logger.debug("Moved thread %s of %s to session %s", thread_id[:8], session_id[:8], moved.id[:8])
        return moved

    async def get_message_thread_context(self, session_id: str, message_id: str) -> list[Message]:
        """The timeline, live or archived, that holds ``message_id``; ``[]`` if none."""
        session = await self._get(session_id)
        if session is None:
            return []
        location = find_message_location(session, message_id)
        if location is None:
            return []
        return list(timeline_at(session, location))
