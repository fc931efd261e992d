"""Tests for the Strand facade: wiring, sessions, and end-to-end flows."""

from __future__ import annotations

import pytest

from strand import Strand, StrandConfig
from strand.exceptions import SessionNotFoundError, ThreadNotFoundError
from strand.models.compaction import CompactionStatus, ContextSource, TokenSource
from strand.models.session import SessionSettings
from strand.storage.sqlite import SqliteMessageStore
from tests.conftest import FakeSummaryGenerator, FixedTokenCounter, contents


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


class TestConstruction:
    @pytest.mark.asyncio
    async def test_in_memory_defaults(self):
        async with Strand.in_memory() as s:
            assert isinstance(s.config, StrandConfig)
            session = await s.create_session()
            assert contents(session.messages) == [s.config.default_system_prompt]

    @pytest.mark.asyncio
    async def test_open_sqlite(self, tmp_path):
        path = str(tmp_path / "strand.db")
        s = Strand.open(path)
        assert isinstance(s.store, SqliteMessageStore)
        session = await s.create_session("Persisted", system_prompt="Be brief.")
        await s.append_message(session.id, "user", "hello")
        await s.close()

        reopened = Strand.open(path)
        loaded = await reopened.require_session(session.id)
        await reopened.close()
        assert loaded.name == "Persisted"
        assert contents(loaded.messages) == ["Be brief.", "hello"]

    @pytest.mark.asyncio
    async def test_open_with_llm_client_builds_summarizer(self):
        class Client:
            async def stream_chat(self, messages, **kwargs):
                yield "Summary."

            async def aclose(self):
                pass

        s = Strand.open(config=StrandConfig(default_model="gpt-4o"), llm_client=Client())
        assert s.compaction.summary_generator is not None
        await s.close()


# ---------------------------------------------------------------------------
# Sessions and messages
# ---------------------------------------------------------------------------


class TestSessions:
    @pytest.mark.asyncio
    async def test_create_list_delete(self, strand):
        a = await strand.create_session("a")
        b = await strand.create_session("b")
        assert [s.name for s in await strand.list_sessions()] == ["a", "b"]
        assert await strand.delete_session(a.id) is True
        assert [s.id for s in await strand.list_sessions()] == [b.id]

    @pytest.mark.asyncio
    async def test_require_missing(self, strand):
        assert await strand.get_session("missing") is None
        with pytest.raises(SessionNotFoundError):
            await strand.require_session("missing")

    @pytest.mark.asyncio
    async def test_append_message(self, strand):
        session = await strand.create_session()
        m = await strand.append_message(session.id, "user", "hi", token_count=3)
        stored = await strand.require_session(session.id)
        assert stored.messages[-1].id == m.id
        assert stored.messages[-1].token_count == 3

    @pytest.mark.asyncio
    async def test_append_to_missing_session(self, strand):
        with pytest.raises(SessionNotFoundError):
            await strand.append_message("missing", "user", "hi")

    @pytest.mark.asyncio
    async def test_update_settings(self, strand):
        session = await strand.create_session()
        updated = await strand.update_settings(session.id, auto_compaction=False, model_id="gpt-4o")
        assert updated.settings.auto_compaction is False
        assert updated.settings.model_id == "gpt-4o"
        restored = await strand.update_settings(session.id, auto_compaction=None)
        assert restored.settings.auto_compaction is None
        assert restored.settings.model_id == "gpt-4o"

    @pytest.mark.asyncio
    async def test_delete_clears_cache_and_ui_state(self, strand):
        session = await strand.create_session()
        await strand.count_context_tokens(session.id)
        strand.ui_state.update(session.id, status="failed", error="x")
        await strand.delete_session(session.id)
        assert len(strand.context_tokens.cache) == 0
        assert strand.ui_state.get(session.id).status is CompactionStatus.IDLE


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------


class TestContext:
    @pytest.mark.asyncio
    async def test_build_context_of_thread(self, strand):
        session = await strand.create_session(system_prompt="sys")
        await strand.append_message(session.id, "user", "old question")
        archived = await strand.new_thread(session.id, "Old")
        await strand.append_message(session.id, "user", "new question")

        live = await strand.build_context(session.id)
        assert contents(live.messages) == ["sys", "new question"]
        old = await strand.build_context(session.id, thread_id=archived.threads[0].id)
        assert contents(old.messages) == ["sys", "old question"]
        assert old.source is ContextSource.FULL

    @pytest.mark.asyncio
    async def test_build_context_unknown_thread(self, strand):
        session = await strand.create_session()
        with pytest.raises(ThreadNotFoundError):
            await strand.build_context(session.id, thread_id="missing")

    @pytest.mark.asyncio
    async def test_role_filter_from_settings(self, strand):
        session = await strand.create_session(
            system_prompt="sys", settings=SessionSettings(highlight_context_roles=["assistant"])
        )
        await strand.append_message(session.id, "user", "q1")
        await strand.append_message(session.id, "assistant", "a1")
        await strand.append_message(session.id, "user", "q2")
        built = await strand.build_context(session.id)
        assert contents(built.messages) == ["sys", "a1", "q2"]

    @pytest.mark.asyncio
    async def test_count_context_tokens(self, strand, counter):
        session = await strand.create_session()
        await strand.append_message(session.id, "user", "hi", token_count=4)

        estimate = await strand.count_context_tokens(session.id)
        assert estimate.source is TokenSource.ESTIMATED
        assert estimate.tokens == 4

        exact = await strand.count_context_tokens(session.id, exact=True)
        assert exact.source is TokenSource.COMPUTED
        assert exact.tokens == 2 * counter.per_message


# ---------------------------------------------------------------------------
# End to end
# ---------------------------------------------------------------------------


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_fork_regenerate_and_compact(self, config):
        summarizer = FakeSummaryGenerator(summary="Previously: trip to Lisbon.")
        s = Strand.in_memory(config, summary_generator=summarizer, token_counter=FixedTokenCounter())
        session = await s.create_session("Trip", system_prompt="sys")
        question = await s.append_message(session.id, "user", "Where to?", token_count=450)
        first = await s.append_message(session.id, "assistant", "Porto", token_count=450)

        anchor_id = await s.forks.fork_for_regeneration(session.id, first.id)
        assert anchor_id == question.id
        await s.append_message(session.id, "assistant", "Lisbon", token_count=450)

        back = await s.switch_fork(session.id, question.id, "prev")
        assert contents(back.messages) == ["sys", "Where to?", "Porto"]
        forward = await s.switch_fork(session.id, question.id, "next")
        assert contents(forward.messages) == ["sys", "Where to?", "Lisbon"]

        assert await s.needs_compaction(session.id)
        result = await s.run_compaction(session.id)
        assert result.compacted

        built = await s.build_context(session.id)
        assert contents(built.messages) == ["sys", "Previously: trip to Lisbon."]
        assert not await s.needs_compaction(session.id)

    @pytest.mark.asyncio
    async def test_thread_round_trip(self, strand):
        session = await strand.create_session("Chat", system_prompt="sys")
        await strand.append_message(session.id, "user", "first topic")
        archived = await strand.new_thread(session.id, "Topic 1")
        thread_id = archived.threads[0].id

        await strand.append_message(session.id, "user", "second topic")
        await strand.rename_thread(session.id, session.id, "Topic 2")
        switched = await strand.switch_thread(session.id, thread_id)
        assert contents(switched.messages) == ["sys", "first topic"]
        assert [t.name for t in switched.threads] == ["Topic 2"]

        moved = await strand.move_thread_to_session(session.id, switched.threads[0].id)
        assert contents(moved.messages) == ["sys", "second topic"]
        assert len(await strand.list_sessions()) == 2
