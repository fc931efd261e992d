"""Tests for the in-process compaction UI state store."""

from __future__ import annotations

import pytest

from strand.models.compaction import CompactionStatus, CompactionUIState
from strand.state import CompactionUIStore


class TestCompactionUIStore:
    def test_default_state(self):
        assert CompactionUIStore().get("s1") == CompactionUIState()

    def test_partial_update_keeps_other_fields(self):
        store = CompactionUIStore()
        store.update("s1", status="running")
        state = store.update("s1", streaming_text="Previously")
        assert state.status is CompactionStatus.RUNNING
        assert state.streaming_text == "Previously"
        assert state.error is None

    def test_sessions_are_independent(self):
        store = CompactionUIStore()
        store("s1", status=CompactionStatus.FAILED, error="boom")
        assert store.get("s2").status is CompactionStatus.IDLE

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError, match="progress"):
            CompactionUIStore().update("s1", progress=0.5)

    def test_invalid_status_rejected(self):
        with pytest.raises(ValueError):
            CompactionUIStore().update("s1", status="exploded")

    def test_subscribe_and_unsubscribe(self):
        store = CompactionUIStore()
        seen = []
        unsubscribe = store.subscribe(lambda sid, state: seen.append((sid, state.status)))
        store.update("s1", status="running")
        unsubscribe()
        unsubscribe()
        store.update("s1", status="idle")
        assert seen == [("s1", CompactionStatus.RUNNING)]

    def test_reset(self):
        store = CompactionUIStore()
        store.update("s1", status="failed", error="x")
        store.update("s2", status="running")
        store.reset("s1")
        assert store.get("s1") == CompactionUIState()
        assert store.get("s2").status is CompactionStatus.RUNNING
        store.reset()
        assert store.get("s2") == CompactionUIState()
