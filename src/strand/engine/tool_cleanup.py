"""Tool-call cleanup for built contexts.

A tool-call round is an assistant message carrying tool calls. Only the
newest rounds are worth their tokens; older rounds keep their prose and
lose the tool-call parts.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from strand.models.message import Message

logger = logging.getLogger(__name__)

DEFAULT_KEEP_TOOL_CALL_ROUNDS = 2


def clean_tool_calls(
    messages: list[Message],
    keep_rounds: int = DEFAULT_KEEP_TOOL_CALL_ROUNDS,
) -> list[Message]:
    """Collapse tool-call rounds older than the newest ``keep_rounds``.

    Stale rounds are returned as copies without ``tool_calls``. A stale
    round with no text and no attachments is dropped. The input list and
    its messages are never mutated.
    """
    rounds = [i for i, m in enumerate(messages) if m.role == "assistant" and m.tool_calls]
    stale_count = len(rounds) - max(keep_rounds, 0)
    if stale_count <= 0:
        return list(messages)

    stale = set(rounds[:stale_count])
    result: list[Message] = []
    for i, message in enumerate(messages):
        if i not in stale:
            result.append(message)
            continue
        if not message.content.strip() and not message.has_attachments:
            logger.debug("Dropping empty tool-call round %s", message.id[:8])
            continue
        result.append(message.model_copy(update={"tool_calls": []}))
    return result
