"""Rich formatting helpers for the Strand CLI.

Rich auto-detects TTY and degrades gracefully when piped (no ANSI codes).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.markup import escape
from rich.table import Table

if TYPE_CHECKING:
    from strand.models.compaction import BuiltContext, CompactionResult, TokenTotal
    from strand.models.message import Message
    from strand.models.session import Session

_ROLE_STYLES = {"system": "magenta", "user": "cyan", "assistant": "green"}


def get_console() -> Console:
    """Create a Rich Console that auto-detects TTY for graceful pipe degradation."""
    return Console(stderr=False)


def format_error(message: str, console: Console) -> None:
    """Display an error message."""
    console.print(f"[red]Error:[/red] {message}", highlight=False)


def _preview(text: str, width: int = 60) -> str:
    flat = " ".join(text.split())
    if len(flat) > width:
        flat = flat[: width - 3] + "..."
    return escape(flat)


def format_sessions(sessions: list[Session], console: Console) -> None:
    if not sessions:
        console.print("[dim]No sessions.[/dim]")
        return
    table = Table(show_header=True, header_style="bold", box=None, pad_edge=False)
    table.add_column("Id", style="yellow", width=8)
    table.add_column("Name")
    table.add_column("Messages", justify="right")
    table.add_column("Threads", justify="right")
    table.add_column("Forks", justify="right")
    for session in sessions:
        table.add_row(
            session.id[:8],
            escape(session.name),
            str(len(session.messages)),
            str(len(session.threads)),
            str(len(session.message_forks)),
        )
    console.print(table)


def format_timeline(
    messages: list[Message],
    console: Console,
    *,
    forks: dict | None = None,
    title: str | None = None,
) -> None:
    """Messages with fork markers (``[pos/total]``) after anchor messages."""
    if title:
        console.print(f"[bold]{escape(title)}[/bold]")
    if not messages:
        console.print("[dim]No messages.[/dim]")
        return
    forks = forks or {}
    table = Table(show_header=True, header_style="bold", box=None, pad_edge=False)
    table.add_column("Id", style="yellow", width=8)
    table.add_column("Role")
    table.add_column("Fork", style="blue")
    table.add_column("Content")
    for message in messages:
        entry = forks.get(message.id)
        marker = f"{entry.position + 1}/{entry.branch_count}" if entry is not None else ""
        role = message.role
        if message.is_summary:
            role = f"{role} (summary)"
        if message.generating:
            role = f"{role} ..."
        style = _ROLE_STYLES.get(message.role, "")
        table.add_row(
            message.id[:8],
            f"[{style}]{role}[/{style}]" if style else role,
            marker,
            _preview(message.content),
        )
    console.print(table)


def format_session(session: Session, console: Console) -> None:
    console.print(f"[bold]Session[/bold] {session.id}  [dim]{escape(session.name)}[/dim]")
    console.print(f"Thread:      {escape(session.live_thread_name)}")
    console.print(f"Compactions: {len(session.compaction_points)}")
    console.print()
    format_timeline(session.messages, console, forks=session.message_forks)
    if session.threads:
        console.print()
        console.print(f"[bold]Archived threads[/bold] ({len(session.threads)})")
        format_threads(session, console)


def format_threads(session: Session, console: Console) -> None:
    table = Table(show_header=True, header_style="bold", box=None, pad_edge=False)
    table.add_column("Id", style="yellow", width=8)
    table.add_column("Name")
    table.add_column("Messages", justify="right")
    table.add_column("Created", style="dim")
    table.add_row(
        session.id[:8],
        f"{escape(session.live_thread_name)} [green](live)[/green]",
        str(len(session.messages)),
        "",
    )
    for thread in session.threads:
        table.add_row(
            thread.id[:8],
            escape(thread.name),
            str(len(thread.messages)),
            thread.created_at.strftime("%Y-%m-%d %H:%M"),
        )
    console.print(table)


def format_context(built: BuiltContext, tokens: TokenTotal | None, console: Console) -> None:
    console.print(f"Source: [cyan]{built.source.value}[/cyan]")
    if tokens is not None:
        console.print(
            f"Tokens: [green]{tokens.tokens}[/green] over {tokens.message_count} message(s) "
            f"[dim]({tokens.source.value})[/dim]"
        )
    console.print()
    format_timeline(built.messages, console)


def format_compaction_result(result: CompactionResult, console: Console) -> None:
    if not result.success:
        format_error(str(result.error) if result.error else "Compaction failed", console)
        return
    if not result.compacted:
        console.print("[dim]Nothing to compact.[/dim]")
        return
    point = result.compaction_point
    console.print(f"[green]Compacted.[/green] Summary {result.summary_message_id[:8]}")
    if point is not None:
        console.print(f"Boundary: {point.boundary_message_id[:8]}")
