"""Context builder for Strand.

Derives the effective message sequence sent to a model from a timeline and
its compaction points: drops in-flight messages, starts from the latest
compaction summary, keeps the system prompt, honours the role filter and
collapses old tool-call rounds.

Everything here is pure: no I/O, and arguments are never mutated.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from strand.engine.tool_cleanup import DEFAULT_KEEP_TOOL_CALL_ROUNDS, clean_tool_calls
from strand.models.compaction import BuiltContext, ContextSource
from strand.models.config import UNLIMITED_MESSAGES
from strand.models.message import find_index

if TYPE_CHECKING:
    from strand.models.config import ResolvedSettings
    from strand.models.message import Message
    from strand.models.session import CompactionPoint, Session, SessionThread

logger = logging.getLogger(__name__)


def find_latest_compaction_point(
    compaction_points: Iterable[CompactionPoint] | None,
) -> CompactionPoint | None:
    """Compaction point with the greatest ``created_at``.

    Linear reduction: on equal timestamps the first one seen wins.
    """
    latest: CompactionPoint | None = None
    for point in compaction_points or ():
        if latest is None or point.created_at > latest.created_at:
            latest = point
    return latest


def _apply_role_filter(
    messages: list[Message],
    roles: Iterable[str] | None,
) -> list[Message]:
    """Keep allowed roles, plus the system message and the last user message."""
    if roles is None:
        return messages
    allowed = set(roles)
    keep: set[str] = set()
    system = next((m for m in messages if m.role == "system"), None)
    if system is not None:
        keep.add(system.id)
    last_user = next((m for m in reversed(messages) if m.role == "user"), None)
    if last_user is not None:
        keep.add(last_user.id)
    return [m for m in messages if m.role in allowed or m.id in keep]


def build_context_result(
    messages: list[Message],
    compaction_points: list[CompactionPoint] | None = None,
    *,
    role_filter: Iterable[str] | None = None,
    keep_tool_call_rounds: int = DEFAULT_KEEP_TOOL_CALL_ROUNDS,
) -> BuiltContext:
    """Build the context and report how it was derived."""
    completed = [m for m in messages if not m.generating]
    if not completed:
        return BuiltContext(messages=[], source=ContextSource.FULL)

    latest = find_latest_compaction_point(compaction_points)
    source = ContextSource.FULL
    context: list[Message] = completed

    if latest is not None:
        boundary_index = find_index(completed, latest.boundary_message_id)
        if boundary_index == -1:
            logger.debug(
                "Compaction boundary %s not in timeline, using full context",
                latest.boundary_message_id[:8],
            )
            source = ContextSource.STALE_FALLBACK
        else:
            source = ContextSource.COMPACTED
            after = [m for m in completed[boundary_index + 1:] if not m.is_summary]
            summary_index = find_index(completed, latest.summary_message_id)
            if summary_index >= 0:
                context = [completed[summary_index], *after]
            else:
                context = after

            system = next((m for m in completed if m.role == "system"), None)
            if system is not None and find_index(context, system.id) == -1:
                context = [system, *context]

    context = _apply_role_filter(context, role_filter)
    return BuiltContext(
        messages=clean_tool_calls(context, keep_tool_call_rounds),
        source=source,
    )


def build_context(
    messages: list[Message],
    compaction_points: list[CompactionPoint] | None = None,
    *,
    role_filter: Iterable[str] | None = None,
    keep_tool_call_rounds: int = DEFAULT_KEEP_TOOL_CALL_ROUNDS,
) -> list[Message]:
    """Effective message sequence to send to a model."""
    return build_context_result(
        messages,
        compaction_points,
        role_filter=role_filter,
        keep_tool_call_rounds=keep_tool_call_rounds,
    ).messages


def build_context_for_thread(
    thread: SessionThread,
    settings: ResolvedSettings | None = None,
) -> list[Message]:
    return build_context(
        thread.messages,
        thread.compaction_points,
        role_filter=settings.highlight_context_roles if settings else None,
        keep_tool_call_rounds=(
            settings.keep_tool_call_rounds if settings else DEFAULT_KEEP_TOOL_CALL_ROUNDS
        ),
    )


def build_context_for_session(
    session: Session,
    settings: ResolvedSettings | None = None,
    *,
    thread_id: str | None = None,
) -> list[Message]:
    """Context of the live timeline, or of an archived thread by id.

    An unknown ``thread_id`` falls back to the live timeline.
    """
    if thread_id is not None:
        thread = session.find_thread(thread_id)
        if thread is not None:
            return build_context_for_thread(thread, settings)

    return build_context(
        session.messages,
        session.compaction_points,
        role_filter=settings.highlight_context_roles if settings else None,
        keep_tool_call_rounds=(
            settings.keep_tool_call_rounds if settings else DEFAULT_KEEP_TOOL_CALL_ROUNDS
        ),
    )


def get_context_message_ids(
    session: Session,
    max_count: int | None = None,
    settings: ResolvedSettings | None = None,
) -> list[str]:
    """Ids of the live context; only the last ``max_count`` when positive."""
    ids = [m.id for m in build_context_for_session(session, settings)]
    if max_count and max_count > 0:
        return ids[-max_count:]
    return ids


def select_messages_for_send_context(
    messages: list[Message],
    max_context_message_count: int | None = None,
    *,
    preserve_last_user_message: bool = False,
) -> list[Message]:
    """Trim a built context to the configured message count.

    A leading system message is always kept. The rest is walked from the
    newest message backwards, skipping in-flight and errored messages, and
    stops once ``max_context_message_count + 1`` messages are taken (the
    extra one is the user's latest input).
    """
    limit = UNLIMITED_MESSAGES if max_context_message_count is None else max_context_message_count
    head = messages[0] if messages and messages[0].role == "system" else None
    working = messages[1:] if head is not None else messages

    picked: list[Message] = []
    for message in reversed(working):
        if message.generating or message.has_error:
            continue
        if limit < UNLIMITED_MESSAGES and len(picked) >= limit + 1:
            break
        picked.append(message)
    picked.reverse()

    if preserve_last_user_message:
        last_user = next(
            (
                m
                for m in reversed(working)
                if m.role == "user" and not m.generating and not m.has_error
            ),
            None,
        )
        if last_user is not None and find_index(picked, last_user.id) == -1:
            picked.insert(0, last_user)

    if head is not None:
        return [head, *picked]
    return picked


def get_context_messages_for_token_estimation(
    session: Session,
    settings: ResolvedSettings,
    *,
    preserve_last_user_message: bool = False,
) -> list[Message]:
    """Messages whose tokens make up the session's current context."""
    base = build_context_for_session(session, settings)
    return select_messages_for_send_context(
        base,
        settings.max_context_message_count,
        preserve_last_user_message=preserve_last_user_message,
    )
