"""Message domain model for Strand.

A Message is one node of a timeline. It is mutated in place while a
generation streams into it and treated as immutable once ``generating``
turns false. Every engine in Strand copies messages rather than editing
them, so the same Message instance may safely appear in several snapshots.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, PrivateAttr

logger = logging.getLogger(__name__)

Role = Literal["system", "user", "assistant"]

ROLES: tuple[str, ...] = ("system", "user", "assistant")


def new_id() -> str:
    """Return a fresh message/thread/branch identifier."""
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FileAttachment(BaseModel):
    """A file attached to a message.

    Only the opaque storage key is kept; the content is fetched lazily
    by whoever renders or sends the message.
    """

    id: str = Field(default_factory=new_id)
    name: str
    storage_key: Optional[str] = None


class LinkAttachment(BaseModel):
    """A link attached to a message (fetched page content lives in storage)."""

    id: str = Field(default_factory=new_id)
    url: str
    title: str = ""
    storage_key: Optional[str] = None


class ToolCallPart(BaseModel):
    """A tool invocation (and its result, once known) inside an assistant turn."""

    id: str
    name: str
    arguments: dict[str, Any] = {}
    result: Any = None


class Message(BaseModel):
    """A single message of a conversation timeline."""

    id: str = Field(default_factory=new_id)
    role: Role
    content: str = ""
    generating: bool = False
    is_summary: bool = False
    files: list[FileAttachment] = []
    links: list[LinkAttachment] = []
    tool_calls: list[ToolCallPart] = []
    token_count: Optional[int] = None
    # Exact counts keyed by tokenizer kind, filled by context-token computation.
    token_counts: dict[str, int] = {}
    error: Optional[str] = None
    error_code: Optional[int] = None
    created_at: datetime = Field(default_factory=_utcnow)

    # Cancellation hook of an in-flight generation. Never serialized.
    _cancel: Optional[Callable[[], None]] = PrivateAttr(default=None)

    def set_cancel_hook(self, hook: Callable[[], None] | None) -> None:
        """Attach the callable that aborts this message's generation."""
        self._cancel = hook

    def cancel(self) -> None:
        """Fire the cancellation hook, if any. The hook runs at most once."""
        hook = self._cancel
        if hook is None:
            return
        self._cancel = None
        logger.debug("Cancelling generation for message %s", self.id[:8])
        hook()

    @property
    def has_error(self) -> bool:
        return bool(self.error) or self.error_code is not None

    @property
    def has_attachments(self) -> bool:
        return bool(self.files) or bool(self.links)

    def with_new_id(self) -> Message:
        """Return a copy of this message under a fresh id."""
        return self.model_copy(update={"id": new_id()})


def create_message(role: Role, content: str = "", **fields: Any) -> Message:
    """Build a new, completed message with a fresh id."""
    return Message(role=role, content=content, **fields)


def find_index(messages: list[Message], message_id: str) -> int:
    """Index of ``message_id`` in ``messages``, or -1."""
    for i, m in enumerate(messages):
        if m.id == message_id:
            return i
    return -1
