"""Fork engine for Strand.

Branching of a timeline at an anchor message. The alternative
continuations after the anchor are kept in a MessageForkEntry on the
fork map of the timeline that holds the anchor: the live timeline's map
for live messages, the thread's own map for archived ones.

The ``*_in_timeline`` functions are pure transforms over one timeline's
``(messages, forks)`` pair. They return a new pair, or None when the
operation does not apply. ForkEngine wraps them in atomic store patches.
"""

from __future__ import annotations

import logging
import warnings
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal, NamedTuple

from strand.models.fork import ForkBranch, MessageForkEntry
from strand.models.message import find_index

if TYPE_CHECKING:
    from strand.models.fork import MessageForks
    from strand.models.message import Message
    from strand.models.session import Session
    from strand.protocols import MessageStore

logger = logging.getLogger(__name__)

Direction = Literal["next", "prev"]


class TimelineEdit(NamedTuple):
    messages: list[Message]
    forks: MessageForks


TimelineTransform = Callable[[list["Message"], "MessageForks"], "TimelineEdit | None"]


@dataclass(frozen=True)
class MessageLocation:
    """Where a message sits: the live timeline (``thread_index is None``)
    or the archived thread at ``thread_index``."""

    thread_index: int | None
    index: int

    @property
    def is_live(self) -> bool:
        return self.thread_index is None


def find_message_location(session: Session, message_id: str) -> MessageLocation | None:
    """Locate a message, searching the live timeline before the threads."""
    index = find_index(session.messages, message_id)
    if index >= 0:
        return MessageLocation(thread_index=None, index=index)
    for thread_index, thread in enumerate(session.threads):
        index = find_index(thread.messages, message_id)
        if index >= 0:
            return MessageLocation(thread_index=thread_index, index=index)
    return None


def timeline_at(session: Session, location: MessageLocation) -> list[Message]:
    if location.thread_index is None:
        return session.messages
    return session.threads[location.thread_index].messages


def _with_entry(forks: MessageForks, anchor_id: str, entry: MessageForkEntry | None) -> MessageForks:
    """Copy of ``forks`` with the anchor's entry replaced, or removed when None.

    An entry left with a single branch is removed as well.
    """
    updated = dict(forks)
    if entry is None or entry.branch_count <= 1:
        updated.pop(anchor_id, None)
    else:
        updated[anchor_id] = entry
    return updated


def _swap_to(
    messages: list[Message],
    anchor_index: int,
    lists: list[ForkBranch],
    current: int | None,
    target: int,
) -> tuple[list[Message], list[ForkBranch]]:
    """Store the live tail in ``current`` (unless None) and splice ``target`` inline."""
    tail = messages[anchor_index + 1:]
    incoming = list(lists[target].stored_messages)
    lists = list(lists)
    if current is not None and current != target:
        lists[current] = lists[current].storing(tail)
    lists[target] = lists[target].emptied()
    return [*messages[:anchor_index + 1], *incoming], lists


# ---------------------------------------------------------------------------
# Timeline transforms
# ---------------------------------------------------------------------------


def create_fork_in_timeline(
    messages: list[Message], forks: MessageForks, anchor_id: str
) -> TimelineEdit | None:
    anchor_index = find_index(messages, anchor_id)
    if anchor_index < 0:
        return None
    tail = messages[anchor_index + 1:]
    if not tail:
        return None

    entry = forks.get(anchor_id)
    if entry is None:
        entry = MessageForkEntry(position=0, lists=(ForkBranch(),))

    lists = list(entry.lists)
    lists[entry.position] = ForkBranch().storing(tail)
    lists.append(ForkBranch())
    updated = MessageForkEntry(
        position=len(lists) - 1, lists=tuple(lists), created_at=entry.created_at
    )
    return TimelineEdit(messages[:anchor_index + 1], _with_entry(forks, anchor_id, updated))


def switch_fork_in_timeline(
    messages: list[Message],
    forks: MessageForks,
    anchor_id: str,
    direction: Direction,
) -> TimelineEdit | None:
    entry = forks.get(anchor_id)
    if entry is None or entry.branch_count <= 1:
        return None
    anchor_index = find_index(messages, anchor_id)
    if anchor_index < 0:
        return None

    lists = list(entry.lists)
    current: int | None = entry.position
    position = entry.position

    if len(messages) == anchor_index + 1:
        # Empty live branch: drop it before moving.
        del lists[entry.position]
        if len(lists) <= 1:
            remaining = list(lists[0].stored_messages) if lists else []
            return TimelineEdit(
                [*messages[:anchor_index + 1], *remaining],
                _with_entry(forks, anchor_id, None),
            )
        position = min(position, len(lists) - 1)
        current = None

    step = 1 if direction == "next" else -1
    target = (position + step) % len(lists)
    new_messages, lists = _swap_to(messages, anchor_index, lists, current, target)
    updated = MessageForkEntry(position=target, lists=tuple(lists), created_at=entry.created_at)
    return TimelineEdit(new_messages, _with_entry(forks, anchor_id, updated))


def switch_fork_to_position_in_timeline(
    messages: list[Message],
    forks: MessageForks,
    anchor_id: str,
    target_position: int,
) -> TimelineEdit | None:
    entry = forks.get(anchor_id)
    if entry is None or target_position == entry.position:
        return None
    if not 0 <= target_position < entry.branch_count:
        return None
    anchor_index = find_index(messages, anchor_id)
    if anchor_index < 0:
        return None

    new_messages, lists = _swap_to(
        messages, anchor_index, list(entry.lists), entry.position, target_position
    )
    updated = MessageForkEntry(
        position=target_position, lists=tuple(lists), created_at=entry.created_at
    )
    return TimelineEdit(new_messages, _with_entry(forks, anchor_id, updated))


def delete_fork_in_timeline(
    messages: list[Message], forks: MessageForks, anchor_id: str
) -> TimelineEdit | None:
    entry = forks.get(anchor_id)
    if entry is None:
        return None
    anchor_index = find_index(messages, anchor_id)
    if anchor_index < 0:
        return None

    trimmed = messages[:anchor_index + 1]
    remaining = [b for i, b in enumerate(entry.lists) if i != entry.position]
    if not remaining:
        return TimelineEdit(trimmed, _with_entry(forks, anchor_id, None))

    position = min(entry.position, len(remaining) - 1)
    carried = list(remaining[position].stored_messages)
    remaining[position] = remaining[position].emptied()
    new_messages = [*trimmed, *carried]
    if len(remaining) == 1:
        return TimelineEdit(new_messages, _with_entry(forks, anchor_id, None))
    updated = MessageForkEntry(
        position=position, lists=tuple(remaining), created_at=entry.created_at
    )
    return TimelineEdit(new_messages, _with_entry(forks, anchor_id, updated))


def expand_fork_in_timeline(
    messages: list[Message], forks: MessageForks, anchor_id: str
) -> TimelineEdit | None:
    entry = forks.get(anchor_id)
    if entry is None:
        return None
    if find_index(messages, anchor_id) < 0:
        return None
    merged = [m for branch in entry.lists for m in branch.stored_messages]
    return TimelineEdit([*messages, *merged], _with_entry(forks, anchor_id, None))


def apply_fork_transform(
    session: Session, anchor_id: str, transform: TimelineTransform
) -> Session | None:
    """Run ``transform`` on the timeline holding ``anchor_id``.

    Returns the updated session, or None when the anchor is unknown or the
    transform does not apply. Only that one timeline is touched.
    """
    location = find_message_location(session, anchor_id)
    if location is None:
        return None

    if location.thread_index is None:
        edit = transform(session.messages, session.message_forks)
        if edit is None:
            return None
        return session.model_copy(
            update={"messages": edit.messages, "message_forks": edit.forks}
        )

    thread = session.threads[location.thread_index]
    edit = transform(thread.messages, thread.message_forks)
    if edit is None:
        return None
    threads = list(session.threads)
    threads[location.thread_index] = thread.model_copy(
        update={"messages": edit.messages, "message_forks": edit.forks}
    )
    return session.model_copy(update={"threads": threads})


# ---------------------------------------------------------------------------
# ForkEngine
# ---------------------------------------------------------------------------


class ForkEngine:
    """Fork operations as atomic read-modify-write patches on a store.

    Each method returns the stored session after the patch; a patch that
    does not apply leaves the session unchanged.

    Raises:
        SessionNotFoundError: From the store when the session is missing.
    """

    def __init__(self, store: MessageStore) -> None:
        self._store = store

    async def _apply(
        self,
        session_id: str,
        anchor_id: str,
        transform: TimelineTransform,
        operation: str,
    ) -> Session:
        applied = False

        def patch(session: Session) -> Session:
            nonlocal applied
            updated = apply_fork_transform(session, anchor_id, transform)
            if updated is None:
                applied = False
                return session
            applied = True
            return updated

        result = await self._store.update_session(session_id, patch)
        if applied:
            logger.debug("%s at %s in session %s", operation, anchor_id[:8], session_id[:8])
        else:
            logger.debug("%s at %s in session %s: nothing to do", operation, anchor_id[:8], session_id[:8])
        return result

    async def create_new_fork(self, session_id: str, anchor_id: str) -> Session:
        """Park the tail after the anchor and start an empty branch."""
        return await self._apply(
            session_id,
            anchor_id,
            lambda msgs, forks: create_fork_in_timeline(msgs, forks, anchor_id),
            "create_new_fork",
        )

    async def switch_fork(self, session_id: str, anchor_id: str, direction: Direction) -> Session:
        """Cycle to the next or previous branch of the anchor."""
        if direction not in ("next", "prev"):
            raise ValueError(f"direction must be 'next' or 'prev', got {direction!r}")
        return await self._apply(
            session_id,
            anchor_id,
            lambda msgs, forks: switch_fork_in_timeline(msgs, forks, anchor_id, direction),
            f"switch_fork({direction})",
        )

    async def switch_fork_to_position(
        self, session_id: str, anchor_id: str, target_position: int
    ) -> Session:
        return await self._apply(
            session_id,
            anchor_id,
            lambda msgs, forks: switch_fork_to_position_in_timeline(
                msgs, forks, anchor_id, target_position
            ),
            f"switch_fork_to_position({target_position})",
        )

    async def delete_fork(self, session_id: str, anchor_id: str) -> Session:
        """Drop the live branch and bring in the neighbouring one."""
        return await self._apply(
            session_id,
            anchor_id,
            lambda msgs, forks: delete_fork_in_timeline(msgs, forks, anchor_id),
            "delete_fork",
        )

    async def expand_fork(self, session_id: str, anchor_id: str) -> Session:
        """Append every stored branch after the live tail and drop the entry.

        .. deprecated::
            Merges branches that never belonged together and cannot be undone.
        """
        warnings.warn(
            "expand_fork is deprecated; the merged timeline cannot be split again",
            DeprecationWarning,
            stacklevel=2,
        )
        return await self._apply(
            session_id,
            anchor_id,
            lambda msgs, forks: expand_fork_in_timeline(msgs, forks, anchor_id),
            "expand_fork",
        )

    async def fork_for_regeneration(self, session_id: str, message_id: str) -> str | None:
        """Fork at the message before ``message_id`` so a new reply gets its own branch.

        Returns the anchor id, or None when the message is missing or first
        in its timeline (regenerate in place then).
        """
        session = await self._store.get_session(session_id)
        if session is None:
            return None
        location = find_message_location(session, message_id)
        if location is None or location.index == 0:
            return None
        anchor = timeline_at(session, location)[location.index - 1]
        await self.create_new_fork(session_id, anchor.id)
        return anchor.id
