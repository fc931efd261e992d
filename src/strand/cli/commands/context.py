"""strand context -- show the context a model would receive."""

from __future__ import annotations

import click


@click.command()
@click.argument("session_id")
@click.option("--thread", "thread_id", default=None, help="Build the context of an archived thread.")
@click.option("--exact", is_flag=True, help="Count tokens with the model's tokenizer.")
@click.pass_context
def context(ctx: click.Context, session_id: str, thread_id: str | None, exact: bool) -> None:
    """Show the built context and its token total."""
    from strand.cli import resolve_session, resolve_thread_id, run_with_strand
    from strand.cli.formatting import format_context

    async def action(s, console):
        session = await resolve_session(s, session_id)
        resolved_thread = resolve_thread_id(session, thread_id) if thread_id else None
        if resolved_thread == session.id:
            resolved_thread = None
        built = await s.build_context(session.id, thread_id=resolved_thread)
        tokens = None
        if resolved_thread is None:
            tokens = await s.count_context_tokens(session.id, exact=exact)
        format_context(built, tokens, console)

    run_with_strand(ctx, action)
