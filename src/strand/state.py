"""In-process compaction UI state.

CompactionUIStore keeps one CompactionUIState per session and notifies
listeners on every change. It is callable with the CompactionUISink
signature, so an orchestrator can publish into it directly.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable
from typing import Any

from strand.models.compaction import CompactionStatus, CompactionUIState

logger = logging.getLogger(__name__)

StateListener = Callable[[str, CompactionUIState], None]

_FIELDS = frozenset(f.name for f in dataclasses.fields(CompactionUIState))


class CompactionUIStore:
    """Per-session ``{status, error, streaming_text}`` with change listeners."""

    def __init__(self) -> None:
        self._states: dict[str, CompactionUIState] = {}
        self._listeners: list[StateListener] = []

    def get(self, session_id: str) -> CompactionUIState:
        return self._states.get(session_id, CompactionUIState())

    def update(self, session_id: str, **fields: Any) -> CompactionUIState:
        """Change the given fields; the others keep their value."""
        unknown = set(fields) - _FIELDS
        if unknown:
            raise TypeError(f"Unknown compaction UI field(s): {', '.join(sorted(unknown))}")
        if "status" in fields:
            fields["status"] = CompactionStatus(fields["status"])
        state = dataclasses.replace(self.get(session_id), **fields)
        self._states[session_id] = state
        if "status" in fields:
            logger.debug("Compaction state of %s: %s", session_id[:8], state.status.value)
        for listener in list(self._listeners):
            listener(session_id, state)
        return state

    def __call__(self, session_id: str, **fields: Any) -> None:
        self.update(session_id, **fields)

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register ``listener``; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def reset(self, session_id: str | None = None) -> None:
        if session_id is None:
            self._states.clear()
        else:
            self._states.pop(session_id, None)
