"""Strand exception hierarchy.

All Strand-specific exceptions inherit from StrandError.
"""


class StrandError(Exception):
    """Base exception for all Strand errors."""


class SessionNotFoundError(StrandError):
    """Raised when a session lookup fails and the caller requires it."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Session not found: {session_id}")


class SessionExistsError(StrandError):
    """Raised when creating a session whose id is already taken."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Session already exists: {session_id}")


class ThreadNotFoundError(StrandError):
    """Raised when a thread lookup fails."""

    def __init__(self, thread_id: str) -> None:
        self.thread_id = thread_id
        super().__init__(f"Thread not found: {thread_id}")


class ForkInvariantError(StrandError):
    """Raised when a fork entry would violate its branch invariants.

    A fork entry must hold at least one branch, its position must index
    into its branches, the live slot must be empty and every other slot
    must hold stored messages.
    """


class CompactionError(StrandError):
    """Raised when a compaction cannot be carried out."""


class ConfigError(StrandError):
    """Raised when configuration is missing or invalid."""
