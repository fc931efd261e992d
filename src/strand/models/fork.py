"""Fork domain models for Strand.

A MessageForkEntry hangs off an anchor message and records the alternative
continuations after it. Exactly one continuation is live: its messages sit
inline in the timeline after the anchor and its slot in the entry is an
``EmptySlot``. Every other continuation is out of line, held by a
``StoredSlot``. Content therefore lives either inline or stored, never both.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from strand.exceptions import ForkInvariantError
from strand.models.message import Message, new_id


def new_branch_id() -> str:
    return f"fork_list_{new_id()}"


class EmptySlot(BaseModel):
    """Slot of the live branch; its content is the timeline after the anchor."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["empty"] = "empty"


class StoredSlot(BaseModel):
    """Slot of a non-live branch holding its out-of-line messages."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["stored"] = "stored"
    messages: tuple[Message, ...] = ()


BranchSlot = Annotated[Union[EmptySlot, StoredSlot], Field(discriminator="kind")]


class ForkBranch(BaseModel):
    """One alternative continuation of an anchor message."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_branch_id)
    slot: BranchSlot = Field(default_factory=EmptySlot)

    @property
    def is_live(self) -> bool:
        return isinstance(self.slot, EmptySlot)

    @property
    def stored_messages(self) -> tuple[Message, ...]:
        """Out-of-line messages, empty for the live branch."""
        if isinstance(self.slot, StoredSlot):
            return self.slot.messages
        return ()

    def emptied(self) -> ForkBranch:
        return ForkBranch(id=self.id, slot=EmptySlot())

    def storing(self, messages: list[Message] | tuple[Message, ...]) -> ForkBranch:
        return ForkBranch(id=self.id, slot=StoredSlot(messages=tuple(messages)))


class MessageForkEntry(BaseModel):
    """The branches attached to one anchor message.

    Validated on construction: at least one branch, ``position`` indexes
    into ``lists``, the branch at ``position`` is live (empty slot) and all
    other branches are stored.
    """

    model_config = ConfigDict(frozen=True)

    position: int = 0
    lists: tuple[ForkBranch, ...]
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @model_validator(mode="after")
    def _check_invariants(self) -> MessageForkEntry:
        if len(self.lists) < 1:
            raise ForkInvariantError("A fork entry needs at least one branch")
        if not 0 <= self.position < len(self.lists):
            raise ForkInvariantError(
                f"Fork position {self.position} out of range for {len(self.lists)} branch(es)"
            )
        for index, branch in enumerate(self.lists):
            if index == self.position and not branch.is_live:
                raise ForkInvariantError(
                    f"Live branch at position {index} must have an empty slot"
                )
            if index != self.position and branch.is_live:
                raise ForkInvariantError(
                    f"Non-live branch at position {index} must store its messages"
                )
        return self

    @property
    def branch_count(self) -> int:
        return len(self.lists)


MessageForks = dict[str, MessageForkEntry]
