"""strand new / sessions / add / show -- session and message commands."""

from __future__ import annotations

import click


@click.command()
@click.argument("name", default="Untitled")
@click.option("--system", "system_prompt", default=None, help="System prompt for the first message.")
@click.pass_context
def new(ctx: click.Context, name: str, system_prompt: str | None) -> None:
    """Create a session and print its id."""
    from strand.cli import run_with_strand

    async def action(s, console):
        session = await s.create_session(name, system_prompt=system_prompt)
        console.print(session.id)

    run_with_strand(ctx, action)


@click.command()
@click.pass_context
def sessions(ctx: click.Context) -> None:
    """List sessions."""
    from strand.cli import run_with_strand
    from strand.cli.formatting import format_sessions

    async def action(s, console):
        format_sessions(await s.list_sessions(), console)

    run_with_strand(ctx, action)


@click.command()
@click.argument("session_id")
@click.argument("role", type=click.Choice(["system", "user", "assistant"]))
@click.argument("content")
@click.option("--tokens", type=int, default=None, help="Known token count of the message.")
@click.pass_context
def add(ctx: click.Context, session_id: str, role: str, content: str, tokens: int | None) -> None:
    """Append a message to the live timeline and print its id."""
    from strand.cli import resolve_session, run_with_strand

    async def action(s, console):
        session = await resolve_session(s, session_id)
        message = await s.append_message(session.id, role, content, token_count=tokens)
        console.print(message.id)

    run_with_strand(ctx, action)


@click.command()
@click.argument("session_id")
@click.option("--thread", "thread_id", default=None, help="Show an archived thread instead.")
@click.pass_context
def show(ctx: click.Context, session_id: str, thread_id: str | None) -> None:
    """Show a session's live timeline, forks and threads."""
    from strand.cli import resolve_session, resolve_thread_id, run_with_strand
    from strand.cli.formatting import format_session, format_timeline

    async def action(s, console):
        session = await resolve_session(s, session_id)
        if thread_id is None:
            format_session(session, console)
            return
        thread = session.find_thread(resolve_thread_id(session, thread_id))
        if thread is None:
            format_session(session, console)
            return
        format_timeline(
            thread.messages, console, forks=thread.message_forks, title=thread.name
        )

    run_with_strand(ctx, action)
