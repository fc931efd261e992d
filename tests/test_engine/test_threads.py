"""Tests for the thread archive: archiving, switching, removing and moving timelines."""

from __future__ import annotations

import pytest

from strand.engine.threads import SUMMARY_PREFIX, ThreadArchive, snapshot_live
from strand.models.config import StrandConfig
from strand.models.fork import ForkBranch, MessageForkEntry
from strand.models.session import CompactionPoint, Session, SessionSettings
from strand.storage.memory import InMemoryMessageStore
from tests.conftest import contents, ids, make_session, msg


@pytest.fixture
def seeded() -> Session:
    return make_session(2, name="Trip planning")


@pytest.fixture
def store(seeded) -> InMemoryMessageStore:
    return InMemoryMessageStore([seeded])


@pytest.fixture
def archive(store) -> ThreadArchive:
    return ThreadArchive(store, StrandConfig(default_system_prompt="Default prompt."))


def _with_fork(session: Session) -> Session:
    """Session with a fork entry at its second message."""
    anchor = session.messages[1]
    entry = MessageForkEntry(
        position=1,
        lists=(ForkBranch().storing([msg("assistant", "parked")]), ForkBranch()),
    )
    point = CompactionPoint(
        boundary_message_id=session.messages[-1].id,
        summary_message_id=session.messages[-1].id,
    )
    return session.model_copy(
        update={"message_forks": {anchor.id: entry}, "compaction_points": [point]}
    )


# ---------------------------------------------------------------------------
# Archiving
# ---------------------------------------------------------------------------


class TestArchiveCurrentTimeline:
    @pytest.mark.asyncio
    async def test_archives_live_and_keeps_system_copy(self, archive, seeded):
        updated = await archive.archive_current_timeline(seeded.id)

        assert len(updated.threads) == 1
        thread = updated.threads[0]
        assert ids(thread.messages) == ids(seeded.messages)
        assert thread.name == "Trip planning"

        assert contents(updated.messages) == ["You are helpful."]
        assert updated.messages[0].role == "system"
        assert updated.messages[0].id != seeded.messages[0].id
        assert updated.message_forks == {}
        assert updated.compaction_points == []
        assert updated.thread_name == ""

    @pytest.mark.asyncio
    async def test_named_archive(self, archive, seeded):
        updated = await archive.archive_current_timeline(seeded.id, "Day 1")
        assert updated.threads[0].name == "Day 1"

    @pytest.mark.asyncio
    async def test_default_prompt_without_system_message(self, store, archive):
        session = Session(messages=[msg("user", "hi")])
        await store.create_session(session)
        updated = await archive.archive_current_timeline(session.id)
        assert contents(updated.messages) == ["Default prompt."]

    @pytest.mark.asyncio
    async def test_forks_and_compaction_travel_with_timeline(self, store, archive, seeded):
        await store.update_session(seeded.id, _with_fork)
        updated = await archive.archive_current_timeline(seeded.id)

        thread = updated.threads[0]
        assert seeded.messages[1].id in thread.message_forks
        assert len(thread.compaction_points) == 1
        assert updated.message_forks == {}

    @pytest.mark.asyncio
    async def test_cancels_in_flight_generations(self, store, archive, seeded):
        pending = msg("assistant", generating=True)
        cancelled = []
        pending.set_cancel_hook(lambda: cancelled.append(pending.id))
        await store.update_session(
            seeded.id, lambda s: s.model_copy(update={"messages": [*s.messages, pending]})
        )
        await archive.archive_current_timeline(seeded.id)
        assert cancelled == [pending.id]

    @pytest.mark.asyncio
    async def test_missing_session(self, archive):
        assert await archive.archive_current_timeline("missing") is None

    def test_snapshot_live_copies_state(self, seeded):
        session = _with_fork(seeded)
        thread = snapshot_live(session, "snap")
        assert thread.name == "snap"
        assert ids(thread.messages) == ids(session.messages)
        assert thread.message_forks == session.message_forks
        assert thread.messages is not session.messages


class TestNewThreadFromHere:
    @pytest.mark.asyncio
    async def test_prefix_copy_with_fresh_ids(self, archive, seeded):
        cut = seeded.messages[2]
        updated = await archive.new_thread_from_here(seeded.id, cut.id)

        assert contents(updated.messages) == ["You are helpful.", "question 0", "answer 0"]
        assert not set(ids(updated.messages)) & set(ids(seeded.messages))
        assert ids(updated.threads[0].messages) == ids(seeded.messages)

    @pytest.mark.asyncio
    async def test_unknown_message(self, archive, seeded):
        assert await archive.new_thread_from_here(seeded.id, "missing") is None


class TestCompressAndCreateThread:
    @pytest.mark.asyncio
    async def test_summary_becomes_user_message(self, archive, seeded):
        updated = await archive.compress_and_create_thread(seeded.id, "They planned a trip.")
        assert [m.role for m in updated.messages] == ["system", "user"]
        assert updated.messages[1].content == f"{SUMMARY_PREFIX}They planned a trip."
        assert len(updated.threads) == 1

    @pytest.mark.asyncio
    async def test_without_system_prompt(self, store, archive):
        session = Session(messages=[msg("user", "hi")])
        await store.create_session(session)
        updated = await archive.compress_and_create_thread(session.id, "S")
        assert [m.role for m in updated.messages] == ["user"]


# ---------------------------------------------------------------------------
# Switching and removing
# ---------------------------------------------------------------------------


class TestSwitchThread:
    @pytest.mark.asyncio
    async def test_switch_swaps_live_and_archived(self, store, archive, seeded):
        await store.update_session(seeded.id, _with_fork)
        archived = await archive.archive_current_timeline(seeded.id, "Day 1")
        fresh_live = archived.messages
        thread_id = archived.threads[0].id

        updated = await archive.switch_thread(seeded.id, thread_id)
        assert ids(updated.messages) == ids(seeded.messages)
        assert seeded.messages[1].id in updated.message_forks
        assert len(updated.compaction_points) == 1
        assert updated.thread_name == "Day 1"
        assert len(updated.threads) == 1
        assert ids(updated.threads[0].messages) == ids(fresh_live)

    @pytest.mark.asyncio
    async def test_unknown_thread(self, archive, seeded):
        assert await archive.switch_thread(seeded.id, "missing") is None


class TestRemoveThread:
    @pytest.mark.asyncio
    async def test_remove_archived(self, archive, seeded):
        archived = await archive.archive_current_timeline(seeded.id)
        updated = await archive.remove_thread(seeded.id, archived.threads[0].id)
        assert updated.threads == []
        assert ids(updated.messages) == ids(archived.messages)

    @pytest.mark.asyncio
    async def test_remove_live_restores_last_thread(self, archive, seeded):
        await archive.archive_current_timeline(seeded.id, "Day 1")
        updated = await archive.remove_thread(seeded.id, seeded.id)
        assert ids(updated.messages) == ids(seeded.messages)
        assert updated.threads == []
        assert updated.thread_name == "Day 1"

    @pytest.mark.asyncio
    async def test_remove_live_without_threads_keeps_system(self, archive, seeded):
        updated = await archive.remove_current_thread(seeded.id)
        assert ids(updated.messages) == [seeded.messages[0].id]

    @pytest.mark.asyncio
    async def test_unknown_thread(self, archive, seeded):
        assert await archive.remove_thread(seeded.id, "missing") is None


class TestRenameThread:
    @pytest.mark.asyncio
    async def test_rename_archived(self, archive, seeded):
        archived = await archive.archive_current_timeline(seeded.id)
        updated = await archive.rename_thread(seeded.id, archived.threads[0].id, "Renamed")
        assert updated.threads[0].name == "Renamed"

    @pytest.mark.asyncio
    async def test_rename_live(self, archive, seeded):
        updated = await archive.rename_thread(seeded.id, seeded.id, "Live one")
        assert updated.thread_name == "Live one"
        assert updated.live_thread_name == "Live one"

    @pytest.mark.asyncio
    async def test_rename_unknown(self, archive, seeded):
        assert await archive.rename_thread(seeded.id, "missing", "x") is None
        assert await archive.rename_thread("missing", "missing", "x") is None


# ---------------------------------------------------------------------------
# Moving and lookup
# ---------------------------------------------------------------------------


class TestMoveThreadToSession:
    @pytest.mark.asyncio
    async def test_move_archived_thread(self, store, archive, seeded):
        await store.update_session(
            seeded.id, {"settings": SessionSettings(model_id="gpt-4o")}
        )
        archived = await archive.archive_current_timeline(seeded.id, "Day 1")
        thread_id = archived.threads[0].id

        moved = await archive.move_thread_to_session(seeded.id, thread_id)
        assert moved.id != seeded.id
        assert moved.name == "Day 1"
        assert ids(moved.messages) == ids(seeded.messages)
        assert moved.settings.model_id == "gpt-4o"

        assert await store.get_session(moved.id) is not None
        source = await store.get_session(seeded.id)
        assert source.threads == []

    @pytest.mark.asyncio
    async def test_move_live_timeline(self, store, archive, seeded):
        moved = await archive.move_thread_to_session(seeded.id, seeded.id)
        assert ids(moved.messages) == ids(seeded.messages)
        source = await store.get_session(seeded.id)
        assert ids(source.messages) == [seeded.messages[0].id]

    @pytest.mark.asyncio
    async def test_move_unknown(self, store, archive, seeded):
        assert await archive.move_thread_to_session(seeded.id, "missing") is None
        assert len(await store.list_sessions()) == 1


class TestGetMessageThreadContext:
    @pytest.mark.asyncio
    async def test_finds_live_and_archived(self, store, archive, seeded):
        archived = await archive.archive_current_timeline(seeded.id)
        old = await archive.get_message_thread_context(seeded.id, seeded.messages[3].id)
        assert ids(old) == ids(seeded.messages)
        live = await archive.get_message_thread_context(seeded.id, archived.messages[0].id)
        assert ids(live) == ids(archived.messages)

    @pytest.mark.asyncio
    async def test_unknown(self, archive, seeded):
        assert await archive.get_message_thread_context(seeded.id, "missing") == []
        assert await archive.get_message_thread_context("missing", "missing") == []
