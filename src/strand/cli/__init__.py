"""Strand CLI -- terminal interface for branching conversations.

This module is NEVER imported from strand/__init__.py.
It is only loaded via the ``strand`` entry point defined in pyproject.toml.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, TypeVar

import click

from strand.cli.formatting import format_error, get_console

if TYPE_CHECKING:
    from rich.console import Console

    from strand.models.session import Session
    from strand.strand import Strand

T = TypeVar("T")


@click.group()
@click.option(
    "--db",
    default=".strand.db",
    envvar="STRAND_DB",
    help="Path to the strand database.",
)
@click.option(
    "--config",
    "config_path",
    default=None,
    envvar="STRAND_CONFIG",
    type=click.Path(dir_okay=False),
    help="JSON configuration file.",
)
@click.pass_context
def cli(ctx: click.Context, db: str, config_path: str | None) -> None:
    """Strand: branching conversation history with context compaction."""
    ctx.ensure_object(dict)
    ctx.obj["db_path"] = db
    ctx.obj["config_path"] = config_path


def _get_strand(ctx: click.Context, **kwargs: object) -> Strand:
    """Open a Strand instance from Click context."""
    from strand.models.config import StrandConfig
    from strand.strand import Strand

    db_path = ctx.obj["db_path"]
    config_path = ctx.obj["config_path"]
    if config_path is not None:
        config = StrandConfig.load(config_path).model_copy(update={"db_path": db_path})
    else:
        config = StrandConfig(db_path=db_path)
    return Strand.open(db_path, config=config, **kwargs)  # type: ignore[arg-type]


def run_with_strand(
    ctx: click.Context,
    action: Callable[[Strand, Console], Awaitable[T]],
    **strand_kwargs: object,
) -> T:
    """Open a Strand, run ``action`` on a fresh event loop and close it.

    Exceptions are printed as CLI errors and exit with status 1.
    """
    console = get_console()

    async def main() -> T:
        s = _get_strand(ctx, **strand_kwargs)
        try:
            return await action(s, console)
        finally:
            await s.close()

    try:
        return asyncio.run(main())
    except SystemExit:
        raise
    except Exception as e:
        format_error(str(e), console)
        raise SystemExit(1) from None


async def resolve_session(s: Strand, prefix: str) -> Session:
    """Find a session by id or unique id prefix."""
    session = await s.get_session(prefix)
    if session is not None:
        return session
    matches = [x for x in await s.list_sessions() if x.id.startswith(prefix)]
    if len(matches) == 1:
        return matches[0]
    if not matches:
        raise click.ClickException(f"No session matches '{prefix}'")
    raise click.ClickException(f"Session prefix '{prefix}' is ambiguous ({len(matches)} matches)")


def resolve_message_id(session: Session, prefix: str) -> str:
    """Find a message id (live timeline or threads) by id or unique prefix."""
    ids = [m.id for m in session.messages]
    for thread in session.threads:
        ids.extend(m.id for m in thread.messages)
    if prefix in ids:
        return prefix
    matches = [i for i in ids if i.startswith(prefix)]
    if len(matches) == 1:
        return matches[0]
    if not matches:
        raise click.ClickException(f"No message matches '{prefix}'")
    raise click.ClickException(f"Message prefix '{prefix}' is ambiguous ({len(matches)} matches)")


def resolve_thread_id(session: Session, prefix: str) -> str:
    """Thread id by unique prefix; the session id itself names the live thread."""
    if prefix == session.id:
        return prefix
    matches = [t.id for t in session.threads if t.id.startswith(prefix)]
    if len(matches) == 1:
        return matches[0]
    if not matches:
        raise click.ClickException(f"No thread matches '{prefix}'")
    raise click.ClickException(f"Thread prefix '{prefix}' is ambiguous ({len(matches)} matches)")


# Register subcommands after cli group is defined
from strand.cli.commands.session import add, new, sessions, show  # noqa: E402
from strand.cli.commands.context import context  # noqa: E402
from strand.cli.commands.fork import fork  # noqa: E402
from strand.cli.commands.thread import thread  # noqa: E402
from strand.cli.commands.compact import compact  # noqa: E402

cli.add_command(new)
cli.add_command(sessions)
cli.add_command(add)
cli.add_command(show)
cli.add_command(context)
cli.add_command(fork)
cli.add_command(thread)
cli.add_command(compact)
