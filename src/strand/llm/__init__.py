"""LLM client infrastructure for Strand.

Provides an OpenAI-compatible async streaming client, the LLMClient
protocol and a summary generator for compaction.
"""

from strand.llm.client import AsyncOpenAIClient
from strand.llm.errors import (
    LLMAuthError,
    LLMClientError,
    LLMConfigError,
    LLMRateLimitError,
    LLMResponseError,
)
from strand.llm.protocols import LLMClient
from strand.llm.summarizer import LLMSummaryGenerator

__all__ = [
    "AsyncOpenAIClient",
    "LLMClient",
    "LLMSummaryGenerator",
    "LLMClientError",
    "LLMConfigError",
    "LLMRateLimitError",
    "LLMAuthError",
    "LLMResponseError",
]
