"""Session aggregate and its parts.

A Session owns one live timeline plus any number of archived threads.
The live timeline and each thread carry their own fork map and their own
compaction points; nothing in one timeline references ids of another.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field

from strand.models.fork import MessageForkEntry
from strand.models.message import Message, Role, new_id


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CompactionPoint(BaseModel):
    """Marks that every non-summary message up to and including
    ``boundary_message_id`` has been condensed into ``summary_message_id``.
    """

    boundary_message_id: str
    summary_message_id: str
    created_at: datetime = Field(default_factory=_utcnow)


class SessionThread(BaseModel):
    """An archived timeline snapshot."""

    id: str = Field(default_factory=new_id)
    name: str = ""
    messages: list[Message] = []
    message_forks: dict[str, MessageForkEntry] = {}
    compaction_points: list[CompactionPoint] = []
    created_at: datetime = Field(default_factory=_utcnow)


class SessionSettings(BaseModel):
    """Per-session overrides. ``None`` means inherit the global value."""

    provider: Optional[str] = None
    model_id: Optional[str] = None
    auto_compaction: Optional[bool] = None
    compaction_threshold: Optional[float] = Field(default=None, gt=0, le=1)
    max_context_message_count: Optional[int] = Field(default=None, ge=0)
    highlight_context_roles: Optional[list[Role]] = None


class Session(BaseModel):
    """Aggregate root: live timeline, archived threads and their state."""

    id: str = Field(default_factory=new_id)
    name: str = "Untitled"
    thread_name: str = ""
    messages: list[Message] = []
    threads: list[SessionThread] = []
    message_forks: dict[str, MessageForkEntry] = {}
    compaction_points: list[CompactionPoint] = []
    settings: SessionSettings = Field(default_factory=SessionSettings)

    def find_thread(self, thread_id: str) -> SessionThread | None:
        for thread in self.threads:
            if thread.id == thread_id:
                return thread
        return None

    @property
    def live_thread_name(self) -> str:
        return self.thread_name or self.name
