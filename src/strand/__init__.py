"""Strand: branching conversation history with context compaction.

Keeps a conversation as a live timeline with forks at any message,
archives timelines as threads, and condenses long contexts into summaries
before they outgrow the model's context window.
"""

from strand._version import __version__

# Core entry point
from strand.strand import Strand

# Domain models
from strand.models.message import (
    FileAttachment,
    LinkAttachment,
    Message,
    ToolCallPart,
    create_message,
)
from strand.models.fork import EmptySlot, ForkBranch, MessageForkEntry, StoredSlot
from strand.models.session import CompactionPoint, Session, SessionSettings, SessionThread
from strand.models.compaction import (
    BuiltContext,
    CompactionResult,
    CompactionStatus,
    CompactionUIState,
    ContextSource,
    OverflowCheck,
    SummaryResult,
    TokenSource,
    TokenTotal,
)

# Configuration
from strand.models.config import ModelInfo, ProviderConfig, ResolvedSettings, StrandConfig

# Protocols
from strand.protocols import (
    CompactionUISink,
    MessageStore,
    ModelCatalog,
    SummaryGenerator,
    TokenCounter,
)

# Engines
from strand.engine.cache import ContextTokensCache, ContextTokensCacheKey, ContextTokensService
from strand.engine.compaction import CompactionOrchestrator, check_overflow, is_auto_compaction_enabled
from strand.engine.context import build_context, build_context_result
from strand.engine.forks import ForkEngine, find_message_location
from strand.engine.threads import ThreadArchive
from strand.state import CompactionUIStore

# Storage
from strand.storage.memory import InMemoryMessageStore
from strand.storage.sqlite import SqliteMessageStore

# Exceptions
from strand.exceptions import (
    CompactionError,
    ConfigError,
    ForkInvariantError,
    SessionExistsError,
    SessionNotFoundError,
    StrandError,
    ThreadNotFoundError,
)

__all__ = [
    "__version__",
    # Core
    "Strand",
    # Models
    "Message",
    "FileAttachment",
    "LinkAttachment",
    "ToolCallPart",
    "create_message",
    "EmptySlot",
    "StoredSlot",
    "ForkBranch",
    "MessageForkEntry",
    "CompactionPoint",
    "Session",
    "SessionSettings",
    "SessionThread",
    "BuiltContext",
    "CompactionResult",
    "CompactionStatus",
    "CompactionUIState",
    "ContextSource",
    "OverflowCheck",
    "SummaryResult",
    "TokenSource",
    "TokenTotal",
    # Configuration
    "StrandConfig",
    "ResolvedSettings",
    "ProviderConfig",
    "ModelInfo",
    # Protocols
    "MessageStore",
    "SummaryGenerator",
    "ModelCatalog",
    "CompactionUISink",
    "TokenCounter",
    # Engines
    "ForkEngine",
    "find_message_location",
    "ThreadArchive",
    "build_context",
    "build_context_result",
    "ContextTokensCache",
    "ContextTokensCacheKey",
    "ContextTokensService",
    "CompactionOrchestrator",
    "check_overflow",
    "is_auto_compaction_enabled",
    "CompactionUIStore",
    # Storage
    "InMemoryMessageStore",
    "SqliteMessageStore",
    # Exceptions
    "StrandError",
    "SessionNotFoundError",
    "SessionExistsError",
    "ThreadNotFoundError",
    "ForkInvariantError",
    "CompactionError",
    "ConfigError",
]
