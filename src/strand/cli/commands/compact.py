"""strand compact -- summarize a session's context into a compaction point."""

from __future__ import annotations

import click


@click.command()
@click.argument("session_id")
@click.option("--force", is_flag=True, help="Compact even when the context is below the threshold.")
@click.option("--boundary", default=None, help="Last message to fold into the summary.")
@click.option("--model", default=None, help="Model used to write the summary.")
@click.pass_context
def compact(
    ctx: click.Context,
    session_id: str,
    force: bool,
    boundary: str | None,
    model: str | None,
) -> None:
    """Compact a session's context with an LLM-written summary.

    Reads STRAND_OPENAI_API_KEY and STRAND_OPENAI_BASE_URL.
    """
    from strand.cli import resolve_message_id, resolve_session, run_with_strand
    from strand.cli.formatting import format_compaction_result
    from strand.llm.client import AsyncOpenAIClient
    from strand.llm.summarizer import LLMSummaryGenerator

    async def action(s, console):
        session = await resolve_session(s, session_id)
        boundary_id = resolve_message_id(session, boundary) if boundary else None
        async with AsyncOpenAIClient() as client:
            s.compaction.summary_generator = LLMSummaryGenerator(
                client, model=model or s.config.default_model
            )
            with console.status("Summarizing..."):
                result = await s.run_compaction(
                    session.id, force=force, boundary_message_id=boundary_id
                )
        format_compaction_result(result, console)
        if not result.success:
            raise SystemExit(1)

    run_with_strand(ctx, action)
