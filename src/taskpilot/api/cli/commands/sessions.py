"""Sessions command - Inspect persisted sessions."""

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from taskpilot.api.cli.output_formatter import TaskpilotConsole
from taskpilot.api.cli.runtime import load_settings
from taskpilot.infrastructure.persistence.file_session_store import FileSessionStore

app = typer.Typer(help="Session management")
console = Console()


def _store(ctx: typer.Context) -> FileSessionStore:
    try:
        settings = load_settings(ctx)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    return FileSessionStore(settings.sessions_dir)


@app.command("list")
def list_sessions(ctx: typer.Context):
    """List all sessions."""
    sessions = asyncio.run(_store(ctx).load_sessions())
    tp_console = TaskpilotConsole(console)

    table = Table(title="Sessions")
    table.add_column("Session ID", style="cyan")
    table.add_column("Mode", style="white")
    table.add_column("Status")
    table.add_column("Tasks", justify="right")
    table.add_column("Goal", style="white")

    for session in sessions:
        table.add_row(
            session.id,
            session.mode.value,
            tp_console.status_text(session.status),
            str(len(session.tasks)),
            session.goal[:60],
        )

    console.print(table)


@app.command("show")
def show_session(
    ctx: typer.Context,
    session_id: str = typer.Argument(..., help="Session ID"),
    as_json: bool = typer.Option(False, "--json", help="Print the raw session record"),
):
    """Show session details."""
    session = asyncio.run(_store(ctx).load(session_id))

    if session is None:
        console.print(f"[red]Session '{session_id}' not found[/red]")
        raise typer.Exit(1)

    if as_json:
        console.print_json(data=session.to_dict())
        return
    TaskpilotConsole(console, debug=True).print_session(session)
