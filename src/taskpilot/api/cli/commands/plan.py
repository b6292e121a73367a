"""Plan command - Generate a plan and optionally start it."""

import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn

from taskpilot.api.cli.output_formatter import TaskpilotConsole
from taskpilot.api.cli.runtime import create_orchestrator, load_settings, run_with_stop
from taskpilot.core.domain.errors import TaskpilotError
from taskpilot.core.interfaces.llm import StreamDelta

console = Console()


def plan_command(
    ctx: typer.Context,
    goal: str = typer.Argument(..., help="What the agent should accomplish"),
    execute: bool = typer.Option(
        False, "--run", "-r", help="Start the plan immediately after generating it"
    ),
):
    """Generate a plan for GOAL; the session waits for approval.

    Examples:
        taskpilot plan "Create a vite react app called shop"
        taskpilot plan "Add a README" --run
    """
    verbose = (ctx.obj or {}).get("verbose", False)
    tp_console = TaskpilotConsole(console, debug=verbose)

    try:
        settings = load_settings(ctx)
        orchestrator = create_orchestrator(ctx, console, settings)
    except (FileNotFoundError, ValueError) as e:
        tp_console.print_error(str(e))
        raise typer.Exit(1)

    tp_console.print_banner()
    tp_console.print_system_message(f"Goal: {goal}", "system")
    tp_console.print_divider()

    async def _plan_and_run():
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            transient=True,
        ) as progress:
            task = progress.add_task("[>] Planning...", total=None)

            def on_delta(delta: StreamDelta) -> None:
                progress.update(
                    task, description=f"[>] Planning... ({len(delta.content)} chars)"
                )

            session = await orchestrator.create_plan(
                goal, on_stream_delta=on_delta if settings.stream_planning else None
            )
        tp_console.print_session(session)
        if execute:
            tp_console.print_divider()
            session = await orchestrator.execute_session(session.id)
        return session

    try:
        session = run_with_stop(orchestrator, _plan_and_run, console)
    except TaskpilotError as e:
        tp_console.print_error(f"Planning failed: {e}")
        raise typer.Exit(1)

    if execute:
        tp_console.print_tasks(session)
    tp_console.print_outcome(session)
