"""strand thread -- archive, restore and manage threads of a session."""

from __future__ import annotations

import click


@click.group()
def thread() -> None:
    """Manage the threads of a session."""


@thread.command("list")
@click.argument("session_id")
@click.pass_context
def thread_list(ctx: click.Context, session_id: str) -> None:
    """List the live thread and the archived ones."""
    from strand.cli import resolve_session, run_with_strand
    from strand.cli.formatting import format_threads

    async def action(s, console):
        format_threads(await resolve_session(s, session_id), console)

    run_with_strand(ctx, action)


@thread.command("new")
@click.argument("session_id")
@click.option("--name", default=None, help="Name of the archived thread.")
@click.pass_context
def thread_new(ctx: click.Context, session_id: str, name: str | None) -> None:
    """Archive the live timeline and start over from the system prompt."""
    from strand.cli import resolve_session, run_with_strand

    async def action(s, console):
        session = await resolve_session(s, session_id)
        updated = await s.new_thread(session.id, name)
        console.print(f"Archived as thread {updated.threads[-1].id[:8]}")

    run_with_strand(ctx, action)


@thread.command("from-here")
@click.argument("session_id")
@click.argument("message")
@click.pass_context
def thread_from_here(ctx: click.Context, session_id: str, message: str) -> None:
    """Archive the live timeline and continue from a copy up to MESSAGE."""
    from strand.cli import resolve_message_id, resolve_session, run_with_strand

    async def action(s, console):
        session = await resolve_session(s, session_id)
        updated = await s.new_thread_from_here(session.id, resolve_message_id(session, message))
        if updated is None:
            raise click.ClickException("Message is not in the live timeline")
        console.print(f"New live timeline with {len(updated.messages)} message(s)")

    run_with_strand(ctx, action)


@thread.command("switch")
@click.argument("session_id")
@click.argument("thread_id")
@click.pass_context
def thread_switch(ctx: click.Context, session_id: str, thread_id: str) -> None:
    """Make an archived thread live."""
    from strand.cli import resolve_session, resolve_thread_id, run_with_strand

    async def action(s, console):
        session = await resolve_session(s, session_id)
        updated = await s.switch_thread(session.id, resolve_thread_id(session, thread_id))
        if updated is not None:
            console.print(f"Live thread: {updated.live_thread_name}")

    run_with_strand(ctx, action)


@thread.command("remove")
@click.argument("session_id")
@click.argument("thread_id")
@click.pass_context
def thread_remove(ctx: click.Context, session_id: str, thread_id: str) -> None:
    """Delete a thread (the session id removes the live one)."""
    from strand.cli import resolve_session, resolve_thread_id, run_with_strand

    async def action(s, console):
        session = await resolve_session(s, session_id)
        await s.remove_thread(session.id, resolve_thread_id(session, thread_id))
        console.print("[green]Removed.[/green]")

    run_with_strand(ctx, action)


@thread.command("rename")
@click.argument("session_id")
@click.argument("thread_id")
@click.argument("name")
@click.pass_context
def thread_rename(ctx: click.Context, session_id: str, thread_id: str, name: str) -> None:
    """Rename a thread (the session id renames the live one)."""
    from strand.cli import resolve_session, resolve_thread_id, run_with_strand

    async def action(s, console):
        session = await resolve_session(s, session_id)
        await s.rename_thread(session.id, resolve_thread_id(session, thread_id), name)
        console.print("[green]Renamed.[/green]")

    run_with_strand(ctx, action)


@thread.command("move")
@click.argument("session_id")
@click.argument("thread_id")
@click.pass_context
def thread_move(ctx: click.Context, session_id: str, thread_id: str) -> None:
    """Move a thread out into a new session and print its id."""
    from strand.cli import resolve_session, resolve_thread_id, run_with_strand

    async def action(s, console):
        session = await resolve_session(s, session_id)
        moved = await s.move_thread_to_session(session.id, resolve_thread_id(session, thread_id))
        if moved is not None:
            console.print(moved.id)

    run_with_strand(ctx, action)
