"""strand fork -- create, switch and delete branches at a message."""

from __future__ import annotations

import warnings

import click


def _fork_action(ctx: click.Context, session_id: str, anchor: str, op: str, *args: object) -> None:
    from strand.cli import resolve_message_id, resolve_session, run_with_strand
    from strand.cli.formatting import format_timeline

    async def action(s, console):
        session = await resolve_session(s, session_id)
        anchor_id = resolve_message_id(session, anchor)
        updated = await getattr(s, op)(session.id, anchor_id, *args)
        format_timeline(updated.messages, console, forks=updated.message_forks)

    run_with_strand(ctx, action)


@click.group()
def fork() -> None:
    """Branch the conversation at a message."""


@fork.command("new")
@click.argument("session_id")
@click.argument("anchor")
@click.pass_context
def fork_new(ctx: click.Context, session_id: str, anchor: str) -> None:
    """Park everything after ANCHOR and start an empty branch."""
    _fork_action(ctx, session_id, anchor, "create_new_fork")


@fork.command("next")
@click.argument("session_id")
@click.argument("anchor")
@click.pass_context
def fork_next(ctx: click.Context, session_id: str, anchor: str) -> None:
    """Switch to the next branch after ANCHOR."""
    _fork_action(ctx, session_id, anchor, "switch_fork", "next")


@fork.command("prev")
@click.argument("session_id")
@click.argument("anchor")
@click.pass_context
def fork_prev(ctx: click.Context, session_id: str, anchor: str) -> None:
    """Switch to the previous branch after ANCHOR."""
    _fork_action(ctx, session_id, anchor, "switch_fork", "prev")


@fork.command("goto")
@click.argument("session_id")
@click.argument("anchor")
@click.argument("position", type=int)
@click.pass_context
def fork_goto(ctx: click.Context, session_id: str, anchor: str, position: int) -> None:
    """Switch to branch POSITION (1-based) after ANCHOR."""
    _fork_action(ctx, session_id, anchor, "switch_fork_to_position", position - 1)


@fork.command("delete")
@click.argument("session_id")
@click.argument("anchor")
@click.pass_context
def fork_delete(ctx: click.Context, session_id: str, anchor: str) -> None:
    """Delete the live branch after ANCHOR."""
    _fork_action(ctx, session_id, anchor, "delete_fork")


@fork.command("expand")
@click.argument("session_id")
@click.argument("anchor")
@click.pass_context
def fork_expand(ctx: click.Context, session_id: str, anchor: str) -> None:
    """Merge every branch after ANCHOR into one timeline (deprecated)."""
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", DeprecationWarning)
        _fork_action(ctx, session_id, anchor, "expand_fork")
