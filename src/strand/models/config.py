"""Configuration models for Strand.

StrandConfig holds the global defaults (auto compaction, threshold, model
catalog, cache sizing). Session-level overrides live on SessionSettings;
``StrandConfig.merged_settings()`` folds the two into a ResolvedSettings.
"""

from __future__ import annotations

import json
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError

from strand.exceptions import ConfigError
from strand.models.session import SessionSettings

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."

# Sentinel used in cache keys and selection when no message limit is set.
UNLIMITED_MESSAGES = sys.maxsize


class ModelInfo(BaseModel):
    """A model entry of a provider's catalog."""

    model_id: str
    context_window: Optional[int] = Field(default=None, gt=0)


class ProviderConfig(BaseModel):
    """Models known for a provider."""

    models: list[ModelInfo] = []


class StrandConfig(BaseModel):
    """Global Strand configuration."""

    db_path: str = ":memory:"
    auto_compaction: bool = True
    compaction_threshold: float = Field(default=0.8, gt=0, le=1)
    max_context_message_count: Optional[int] = Field(default=None, ge=0)
    keep_tool_call_rounds: int = Field(default=2, ge=0)
    default_provider: Optional[str] = None
    default_model: Optional[str] = None
    providers: dict[str, ProviderConfig] = {}
    default_context_window: Optional[int] = Field(default=None, gt=0)
    default_system_prompt: str = DEFAULT_SYSTEM_PROMPT
    context_tokens_cache_ttl: float = Field(default=3600.0, gt=0)
    context_tokens_cache_maxsize: int = Field(default=256, gt=0)

    @classmethod
    def load(cls, path: str | Path) -> StrandConfig:
        """Read a configuration from a JSON file.

        Raises:
            ConfigError: If the file is missing, not JSON, or fails validation.
        """
        path = Path(path)
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            raise ConfigError(f"Config file not found: {path}") from None
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Config file {path} is not valid JSON: {exc}") from exc
        try:
            return cls.model_validate(raw)
        except ValidationError as exc:
            raise ConfigError(f"Invalid config in {path}: {exc}") from exc

    def merged_settings(self, session_settings: SessionSettings | None = None) -> ResolvedSettings:
        """Resolve session overrides against these defaults."""
        s = session_settings or SessionSettings()
        auto = s.auto_compaction if s.auto_compaction is not None else self.auto_compaction
        threshold = (
            s.compaction_threshold
            if s.compaction_threshold is not None
            else self.compaction_threshold
        )
        max_count = (
            s.max_context_message_count
            if s.max_context_message_count is not None
            else self.max_context_message_count
        )
        return ResolvedSettings(
            provider=s.provider or self.default_provider,
            model_id=s.model_id or self.default_model,
            auto_compaction=auto,
            compaction_threshold=threshold,
            max_context_message_count=max_count,
            highlight_context_roles=(
                tuple(s.highlight_context_roles)
                if s.highlight_context_roles is not None
                else None
            ),
            keep_tool_call_rounds=self.keep_tool_call_rounds,
        )


@dataclass(frozen=True)
class ResolvedSettings:
    """Effective settings for one session."""

    provider: str | None
    model_id: str | None
    auto_compaction: bool
    compaction_threshold: float
    max_context_message_count: int | None
    highlight_context_roles: tuple[str, ...] | None
    keep_tool_call_rounds: int = 2

    @property
    def message_limit(self) -> int:
        """``max_context_message_count`` with ``None`` mapped to unlimited."""
        if self.max_context_message_count is None:
            return UNLIMITED_MESSAGES
        return self.max_context_message_count
