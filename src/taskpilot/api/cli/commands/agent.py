"""Agent command - Autonomous function-calling run."""

from typing import Optional

import typer
from rich.console import Console

from taskpilot.api.cli.output_formatter import TaskpilotConsole
from taskpilot.api.cli.runtime import create_orchestrator, run_with_stop
from taskpilot.core.domain.errors import TaskpilotError
from taskpilot.core.domain.models import SessionStatus

console = Console()


def agent_command(
    ctx: typer.Context,
    goal: str = typer.Argument(..., help="What the agent should accomplish"),
    active_file: Optional[str] = typer.Option(
        None, "--file", "-f", help="Restrict edits to existing files, focused on this one"
    ),
):
    """Let the model work on GOAL with tools, without an upfront plan.

    Examples:
        taskpilot agent "Fix the failing tests"
        taskpilot agent "Rename the fetch helper" --file src/api.js
    """
    tp_console = TaskpilotConsole(console, debug=(ctx.obj or {}).get("verbose", False))
    try:
        orchestrator = create_orchestrator(ctx, console)
    except (FileNotFoundError, ValueError) as e:
        tp_console.print_error(str(e))
        raise typer.Exit(1)

    tp_console.print_banner()
    tp_console.print_system_message(f"Goal: {goal}", "system")
    if active_file:
        tp_console.print_system_message(f"File scope: {active_file}", "info")
    tp_console.print_divider()

    try:
        session = run_with_stop(
            orchestrator,
            lambda: orchestrator.start_autonomous(goal, active_file=active_file),
            console,
        )
    except TaskpilotError as e:
        tp_console.print_error(str(e))
        raise typer.Exit(1)

    tp_console.print_debug(f"Session ID: {session.id}")
    if session.tasks:
        tp_console.print_tasks(session)
    tp_console.print_outcome(session)
    if session.status in (SessionStatus.ERROR, SessionStatus.MAX_STEPS_REACHED):
        raise typer.Exit(1)
