"""CLI tests for Strand via Click's CliRunner.

Each test uses runner.isolated_filesystem() with a file-backed database
since the CLI opens its own connection (separate from SDK setup).
"""

from __future__ import annotations

import asyncio
import json

import pytest
from click.testing import CliRunner

from strand.cli import cli


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def runner():
    """Create a Click test runner."""
    return CliRunner()


def _setup_session(db_path: str) -> tuple[str, str, str]:
    """Create a session (system prompt, question, answer) with the SDK.

    Returns the session id, the question id and the answer id.
    """
    from strand.strand import Strand

    async def build():
        s = Strand.open(db_path)
        session = await s.create_session("Chat", system_prompt="sys")
        question = await s.append_message(session.id, "user", "Where to?")
        answer = await s.append_message(session.id, "assistant", "Porto")
        await s.close()
        return session.id, question.id, answer.id

    return asyncio.run(build())


def _load(db_path: str, session_id: str):
    from strand.strand import Strand

    async def load():
        s = Strand.open(db_path)
        session = await s.require_session(session_id)
        await s.close()
        return session

    return asyncio.run(load())


# ---------------------------------------------------------------------------
# Session commands
# ---------------------------------------------------------------------------


class TestSessionCommands:
    def test_new_and_sessions(self, runner):
        with runner.isolated_filesystem():
            result = runner.invoke(cli, ["--db", "test.db", "new", "Planning", "--system", "sys"])
            assert result.exit_code == 0, result.output
            session_id = result.output.strip()
            assert len(session_id) == 36

            listed = runner.invoke(cli, ["--db", "test.db", "sessions"])
            assert listed.exit_code == 0
            assert "Planning" in listed.output
            assert session_id[:8] in listed.output

    def test_sessions_empty(self, runner):
        with runner.isolated_filesystem():
            result = runner.invoke(cli, ["--db", "test.db", "sessions"])
            assert result.exit_code == 0
            assert "No sessions" in result.output

    def test_add_and_show(self, runner):
        with runner.isolated_filesystem():
            session_id, _, _ = _setup_session("test.db")
            added = runner.invoke(
                cli, ["--db", "test.db", "add", session_id[:8], "user", "And Lisbon?", "--tokens", "4"]
            )
            assert added.exit_code == 0, added.output

            stored = _load("test.db", session_id)
            assert stored.messages[-1].id == added.output.strip()
            assert stored.messages[-1].token_count == 4

            shown = runner.invoke(cli, ["--db", "test.db", "show", session_id])
            assert shown.exit_code == 0
            assert "And Lisbon?" in shown.output
            assert "Porto" in shown.output

    def test_unknown_session(self, runner):
        with runner.isolated_filesystem():
            _setup_session("test.db")
            result = runner.invoke(cli, ["--db", "test.db", "show", "zzzz"])
            assert result.exit_code == 1
            assert "No session matches" in result.output

    def test_config_file(self, runner):
        with runner.isolated_filesystem():
            with open("strand.json", "w") as f:
                json.dump({"default_system_prompt": "From config."}, f)
            result = runner.invoke(cli, ["--db", "test.db", "--config", "strand.json", "new"])
            assert result.exit_code == 0, result.output
            stored = _load("test.db", result.output.strip())
            assert stored.messages[0].content == "From config."

    def test_bad_config_file(self, runner):
        with runner.isolated_filesystem():
            with open("strand.json", "w") as f:
                f.write("{nope")
            result = runner.invoke(cli, ["--db", "test.db", "--config", "strand.json", "sessions"])
            assert result.exit_code == 1
            assert "not valid JSON" in result.output


# ---------------------------------------------------------------------------
# Fork commands
# ---------------------------------------------------------------------------


class TestForkCommands:
    def test_fork_switch_roundtrip(self, runner):
        with runner.isolated_filesystem():
            session_id, question_id, _ = _setup_session("test.db")

            created = runner.invoke(cli, ["--db", "test.db", "fork", "new", session_id, question_id[:8]])
            assert created.exit_code == 0, created.output
            assert "2/2" in created.output
            assert "Porto" not in created.output

            runner.invoke(cli, ["--db", "test.db", "add", session_id, "assistant", "Lisbon"])
            back = runner.invoke(cli, ["--db", "test.db", "fork", "prev", session_id, question_id])
            assert back.exit_code == 0
            assert "Porto" in back.output
            assert "1/2" in back.output

            goto = runner.invoke(cli, ["--db", "test.db", "fork", "goto", session_id, question_id, "2"])
            assert goto.exit_code == 0
            assert "Lisbon" in goto.output

            stored = _load("test.db", session_id)
            assert [m.content for m in stored.messages] == ["sys", "Where to?", "Lisbon"]

    def test_fork_delete(self, runner):
        with runner.isolated_filesystem():
            session_id, question_id, _ = _setup_session("test.db")
            runner.invoke(cli, ["--db", "test.db", "fork", "new", session_id, question_id])
            result = runner.invoke(cli, ["--db", "test.db", "fork", "delete", session_id, question_id])
            assert result.exit_code == 0
            stored = _load("test.db", session_id)
            assert [m.content for m in stored.messages] == ["sys", "Where to?", "Porto"]
            assert stored.message_forks == {}


# ---------------------------------------------------------------------------
# Thread commands
# ---------------------------------------------------------------------------


class TestThreadCommands:
    def test_new_list_switch(self, runner):
        with runner.isolated_filesystem():
            session_id, _, _ = _setup_session("test.db")

            archived = runner.invoke(cli, ["--db", "test.db", "thread", "new", session_id, "--name", "Day 1"])
            assert archived.exit_code == 0, archived.output
            assert "Archived as thread" in archived.output

            listed = runner.invoke(cli, ["--db", "test.db", "thread", "list", session_id])
            assert "Day 1" in listed.output
            assert "(live)" in listed.output

            thread_id = _load("test.db", session_id).threads[0].id
            switched = runner.invoke(cli, ["--db", "test.db", "thread", "switch", session_id, thread_id[:8]])
            assert switched.exit_code == 0
            assert "Day 1" in switched.output
            stored = _load("test.db", session_id)
            assert [m.content for m in stored.messages] == ["sys", "Where to?", "Porto"]

    def test_rename_and_move(self, runner):
        with runner.isolated_filesystem():
            session_id, _, _ = _setup_session("test.db")
            runner.invoke(cli, ["--db", "test.db", "thread", "new", session_id])
            thread_id = _load("test.db", session_id).threads[0].id

            renamed = runner.invoke(cli, ["--db", "test.db", "thread", "rename", session_id, thread_id, "Old"])
            assert renamed.exit_code == 0
            assert _load("test.db", session_id).threads[0].name == "Old"

            moved = runner.invoke(cli, ["--db", "test.db", "thread", "move", session_id, thread_id])
            assert moved.exit_code == 0
            new_session = _load("test.db", moved.output.strip())
            assert new_session.name == "Old"
            assert _load("test.db", session_id).threads == []


# ---------------------------------------------------------------------------
# Context and compaction
# ---------------------------------------------------------------------------


class TestContextCommand:
    def test_context(self, runner):
        with runner.isolated_filesystem():
            session_id, _, _ = _setup_session("test.db")
            result = runner.invoke(cli, ["--db", "test.db", "context", session_id])
            assert result.exit_code == 0, result.output
            assert "Source: full" in result.output
            assert "Tokens:" in result.output
            assert "Porto" in result.output


class TestCompactCommand:
    def test_compact_without_api_key_fails(self, runner, monkeypatch):
        monkeypatch.delenv("STRAND_OPENAI_API_KEY", raising=False)
        with runner.isolated_filesystem():
            session_id, _, _ = _setup_session("test.db")
            result = runner.invoke(cli, ["--db", "test.db", "compact", session_id, "--force"])
            assert result.exit_code == 1
            assert "API key" in result.output
            assert _load("test.db", session_id).compaction_points == []
