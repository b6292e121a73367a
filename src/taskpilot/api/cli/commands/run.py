"""Run commands - Execute, resume and repair sessions."""

import typer
from rich.console import Console

from taskpilot.api.cli.output_formatter import TaskpilotConsole
from taskpilot.api.cli.runtime import create_orchestrator, run_with_stop
from taskpilot.core.domain.errors import TaskpilotError
from taskpilot.core.domain.models import SessionStatus

console = Console()


def _orchestrator(ctx: typer.Context, tp_console: TaskpilotConsole):
    try:
        return create_orchestrator(ctx, console)
    except (FileNotFoundError, ValueError) as e:
        tp_console.print_error(str(e))
        raise typer.Exit(1)


def run_command(
    ctx: typer.Context,
    session_id: str = typer.Argument(..., help="Session ID"),
):
    """Execute the tasks of a planned session."""
    tp_console = TaskpilotConsole(console, debug=(ctx.obj or {}).get("verbose", False))
    orchestrator = _orchestrator(ctx, tp_console)

    try:
        session = run_with_stop(
            orchestrator, lambda: orchestrator.execute_session(session_id), console
        )
    except TaskpilotError as e:
        tp_console.print_error(str(e))
        raise typer.Exit(1)

    tp_console.print_tasks(session)
    tp_console.print_outcome(session)
    if session.status in (SessionStatus.ERROR, SessionStatus.MAX_STEPS_REACHED):
        raise typer.Exit(1)


def answer_command(
    ctx: typer.Context,
    session_id: str = typer.Argument(..., help="Session ID"),
    answer: str = typer.Argument(..., help="Answer to the pending question"),
):
    """Answer a session's pending question and continue it."""
    tp_console = TaskpilotConsole(console, debug=(ctx.obj or {}).get("verbose", False))
    orchestrator = _orchestrator(ctx, tp_console)

    try:
        session = run_with_stop(
            orchestrator,
            lambda: orchestrator.resume_with_answer(session_id, answer),
            console,
        )
    except TaskpilotError as e:
        tp_console.print_error(str(e))
        raise typer.Exit(1)

    tp_console.print_outcome(session)


def repair_command(
    ctx: typer.Context,
    session_id: str = typer.Argument(..., help="Session ID"),
    execute: bool = typer.Option(
        False, "--run", "-r", help="Execute the repaired plan right away"
    ),
):
    """Ask the model to fix the failed task of a session in error."""
    tp_console = TaskpilotConsole(console, debug=(ctx.obj or {}).get("verbose", False))
    orchestrator = _orchestrator(ctx, tp_console)

    try:
        session = run_with_stop(
            orchestrator,
            lambda: orchestrator.retry_with_fix(session_id, auto_execute=execute),
            console,
        )
    except TaskpilotError as e:
        tp_console.print_error(f"Repair failed: {e}")
        raise typer.Exit(1)

    tp_console.print_tasks(session)
    tp_console.print_outcome(session)
