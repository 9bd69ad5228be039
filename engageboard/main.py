"""engageboard CLI — a thin presentation layer over LinkBoard.

Commands:
    engageboard profile NAME HANDLE   — onboard / update display identity
    engageboard board                 — list links, newest first
    engageboard status                — profile stamps + whether you may submit
    engageboard submit URL            — submit a link (gate-checked)
    engageboard engage LINK_ID        — open a link and record the engagement
    engageboard react LINK_ID         — react to a link you engaged with
    engageboard watch                 — live board, re-rendered on every push
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from engageboard.utils import setup_logging

# Initialize logging on import
setup_logging()

app = typer.Typer(
    name="engageboard",
    help="🔗 engageboard — engage with others' links, then share your own",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
console = Console()


def _build_store():
    """Store backend from settings: redis (shared board) or memory (this process only)."""
    from engageboard.config import settings

    if settings.store_backend == "memory":
        from engageboard.tools.document_store import MemoryDocumentStore
        return MemoryDocumentStore()
    from engageboard.tools.redis_store import RedisDocumentStore
    return RedisDocumentStore()


@asynccontextmanager
async def _open_board(**overrides) -> AsyncIterator:
    """Connect a LinkBoard, wait for the first snapshots, always close."""
    from engageboard.board.service import LinkBoard
    from engageboard.config import settings
    from engageboard.tools.identity import LocalIdentityProvider

    board = LinkBoard.from_settings(
        _build_store(),
        LocalIdentityProvider(settings.identity_file),
        **overrides,
    )
    try:
        with console.status("[dim]Connecting to the board...[/]", spinner="dots"):
            connected = await board.connect()
            if connected:
                await board.wait_ready()
        yield board
    finally:
        await board.close()


def _print_notice(notice) -> None:
    if notice is None:
        return
    colour = "green" if notice.ok else "red"
    icon = "✅" if notice.ok else "⚠"
    console.print(f"[{colour}]{icon} {notice.message}[/]")


def _links_table(board) -> Table:
    from engageboard.config import settings
    from engageboard.utils.clock import format_timestamp

    reaction = settings.default_reaction
    table = Table(title="Links on the Board", show_lines=False)
    table.add_column("ID", style="dim")
    table.add_column("URL", style="cyan", overflow="fold")
    table.add_column("Posted by", style="white")
    table.add_column("When", style="dim")
    table.add_column("Engaged?", justify="center")
    table.add_column(reaction, justify="right")

    for link in board.state.links:
        mine = link.reaction_of(board.user_id or "")
        count = str(link.reaction_count(reaction))
        table.add_row(
            link.id,
            link.url,
            f"{link.submitter_name} ({link.submitter_handle})",
            format_timestamp(link.created_at),
            "✅" if link.has_engaged(board.user_id or "") else "—",
            f"[bold]{count}[/]" if mine == reaction else count,
        )
    return table


def _status_panel(board) -> Panel:
    from engageboard.utils.clock import format_timestamp

    profile = board.state.profile
    lines = [f"User ID: [dim]{board.user_id or '—'}[/]"]
    if profile is None:
        lines.append("[yellow]No profile yet — run [bold]engageboard profile NAME HANDLE[/bold][/]")
    else:
        lines.append(f"Welcome, [bold]{profile.name}[/] ([bold]{profile.handle}[/])!")
        if profile.last_submission_timestamp:
            lines.append(f"Last Submitted: {format_timestamp(profile.last_submission_timestamp)}")
        if profile.last_engagement_timestamp:
            lines.append(f"Last Engaged: {format_timestamp(profile.last_engagement_timestamp)}")
    blocked = board.explain_block()
    if blocked is None:
        lines.append("[green]You can submit a new link.[/]")
    else:
        lines.append(f"[yellow]{blocked}[/]")
    return Panel("\n".join(lines), title="[bold cyan]🔗 engageboard[/]", border_style="cyan")


def _run_intent(intent: Callable[..., Awaitable], **board_overrides) -> None:
    async def _go():
        async with _open_board(**board_overrides) as board:
            if board.notice is not None and not board.notice.ok:
                _print_notice(board.notice)
                raise typer.Exit(code=1)
            notice = await intent(board)
            _print_notice(notice)
            if not notice.ok:
                raise typer.Exit(code=1)

    asyncio.run(_go())


# ── engageboard profile ───────────────────────────────────────


@app.command()
def profile(
    name: str = typer.Argument(..., help="Your display name"),
    handle: str = typer.Argument(..., help="Your handle, e.g. @johndoe"),
):
    """🪪 Save your display identity (required before anything else)."""
    _run_intent(lambda board: board.save_profile(name, handle))


# ── engageboard board / status ────────────────────────────────


@app.command()
def board():
    """📋 Show every link on the board, newest first."""
    asyncio.run(_board())


async def _board():
    async with _open_board() as b:
        _print_notice(b.notice)
        console.print(_status_panel(b))
        if not b.state.links:
            console.print("[dim]No links posted yet. Be the first to share![/]")
        else:
            console.print(_links_table(b))


@app.command()
def status():
    """🩺 Your profile stamps and whether you may submit right now."""
    asyncio.run(_status())


async def _status():
    async with _open_board() as b:
        _print_notice(b.notice)
        console.print(_status_panel(b))


# ── engageboard submit / engage / react ───────────────────────


@app.command()
def submit(url: str = typer.Argument(..., help="Link to share")):
    """📤 Submit a link (one per cooldown, after a fresh engagement)."""
    _run_intent(lambda board: board.submit(url))


@app.command()
def engage(
    link_id: str = typer.Argument(..., help="Link ID from `engageboard board`"),
    no_open: bool = typer.Option(False, "--no-open", help="Record without opening a browser tab"),
):
    """👀 Open a link and record your engagement."""
    _run_intent(lambda board: board.engage(link_id, open_link=not no_open))


@app.command()
def react(
    link_id: str = typer.Argument(..., help="Link ID from `engageboard board`"),
    reaction: str = typer.Option(None, "--reaction", "-r", help="Reaction (default from settings)"),
):
    """👍 React to a link you have engaged with."""
    from engageboard.config import settings

    _run_intent(lambda board: board.react(link_id, reaction or settings.default_reaction))


# ── engageboard watch ─────────────────────────────────────────


@app.command()
def watch():
    """📡 Live board — re-rendered on every push. Ctrl-C to stop."""
    try:
        asyncio.run(_watch())
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped watching.[/]")


async def _watch():
    async with _open_board() as b:
        def render(_state) -> None:
            console.clear()
            console.print(_status_panel(b))
            console.print(_links_table(b))
            _print_notice(b.notice)

        remove = b.state.add_listener(render)
        render(b.state)
        try:
            await asyncio.Event().wait()
        finally:
            remove()


# ── engageboard version ───────────────────────────────────────


@app.command()
def version():
    """📦 Show engageboard version."""
    from engageboard import __version__
    console.print(f"[bold cyan]🔗 engageboard[/] v{__version__}")


# ── Entry point ───────────────────────────────────────────────

if __name__ == "__main__":
    app()
